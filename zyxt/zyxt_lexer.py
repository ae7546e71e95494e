"""
A regex tokenizer producing the finished token stream the parser consumes.
"""
import re
from typing import List

from zyxt.zyxt_errors import ParseError
from zyxt.zyxt_tokens import (
    COMPOUND_OPERATORS, KEYWORDS, Position, Span, Token, TokenType,
)

_TOKEN_SPEC = [
    ("WS", r"[ \t\r]+"),
    ("LINE_COMMENT", r"//[^\n]*"),
    ("BLOCK_COMMENT", r"/\*.*?\*/"),
    ("NEWLINE", r"\n"),
    ("FLOAT", r"\d+\.\d+(?:[eE][+-]?\d+)?"),
    ("INT", r"\d+"),
    ("STR", r'"(?:[^"\\\n]|\\.)*"'),
    ("NAME", r"[A-Za-z_][A-Za-z0-9_]*"),
    ("OP", r":=|&&|\|\||==|!=|<=|>=|[-+*/%~]=|[-+*/%~@<>=!.,:;|(){}\[\]]"),
]
_MASTER = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in _TOKEN_SPEC), re.DOTALL)

_OPERATORS = {t.value: t for t in TokenType if not t.value.isalpha() and t.value not in ("OP=", "\\n")}

# A newline after one of these continues the statement on the next line
_CONTINUATION = {
    TokenType.ASSIGN, TokenType.DECLARE, TokenType.ASSIGN_OPR, TokenType.AND, TokenType.OR,
    TokenType.EQ, TokenType.NE, TokenType.LT, TokenType.LE, TokenType.GT, TokenType.GE,
    TokenType.CONCAT, TokenType.ADD, TokenType.SUB, TokenType.MUL, TokenType.DIV, TokenType.MOD,
    TokenType.TYPECAST, TokenType.NOT, TokenType.COMMA, TokenType.DOT, TokenType.COLON,
}
# A newline before one of these continues the statement too
_LEADING_CONTINUATION = {TokenType.ELIF, TokenType.ELSE}


def tokenize(source: str, filename: str = "<script>") -> List[Token]:
    """Splits `source` into tokens.

    Newlines become NEWLINE tokens (statement separators) unless they sit inside
    parentheses or square brackets, follow an operator, or precede `elif`/`else`.
    Whitespace and comments are kept verbatim on the following token.
    """
    tokens: List[Token] = []
    pending_ws = ""
    depth = 0
    line, line_start = 1, 0
    pos = 0
    while pos < len(source):
        m = _MASTER.match(source, pos)
        if m is None:
            start = Position(line, pos - line_start + 1, filename)
            bad = Token(TokenType.IDENT, source[pos], Span(start, start))
            raise ParseError.unexpected_token(bad)
        kind = m.lastgroup
        text = m.group()
        start = Position(line, pos - line_start + 1, filename)
        # Advance line bookkeeping over the matched text
        newlines = text.count("\n")
        if newlines:
            line += newlines
            line_start = pos + text.rfind("\n") + 1
        end = Position(line, m.end() - line_start + 1, filename)
        pos = m.end()

        if kind in ("WS", "LINE_COMMENT", "BLOCK_COMMENT"):
            pending_ws += text
            continue
        if kind == "NEWLINE":
            if depth > 0 or (tokens and tokens[-1].ty in _CONTINUATION):
                pending_ws += text
                continue
            tokens.append(Token(TokenType.NEWLINE, text, Span(start, end), pending_ws))
            pending_ws = ""
            continue

        ty, opr = _classify(kind, text)
        if ty in (TokenType.PAREN_OPEN, TokenType.SQUARE_OPEN):
            depth += 1
        elif ty in (TokenType.PAREN_CLOSE, TokenType.SQUARE_CLOSE):
            depth = max(depth - 1, 0)
        tokens.append(Token(ty, text, Span(start, end), pending_ws, opr))
        pending_ws = ""
    return _fold_leading_continuations(tokens)


def _classify(kind: str, text: str):
    match kind:
        case "FLOAT":
            return TokenType.FLOAT, None
        case "INT":
            return TokenType.INT, None
        case "STR":
            return TokenType.STR, None
        case "NAME":
            if text in ("true", "false"):
                return TokenType.BOOL, None
            return KEYWORDS.get(text, TokenType.IDENT), None
    if len(text) == 2 and text.endswith("=") and text[0] in COMPOUND_OPERATORS:
        return TokenType.ASSIGN_OPR, COMPOUND_OPERATORS[text[0]]
    return _OPERATORS[text], None


def _fold_leading_continuations(tokens: List[Token]) -> List[Token]:
    """Drops NEWLINE tokens directly before `elif`/`else`, keeping their text."""
    out: List[Token] = []
    for tok in reversed(tokens):
        if tok.ty == TokenType.NEWLINE and out and out[-1].ty in _LEADING_CONTINUATION:
            nxt = out.pop()
            out.append(Token(nxt.ty, nxt.value, nxt.span, tok.raw + nxt.whitespace, nxt.opr))
            continue
        out.append(tok)
    out.reverse()
    return out
