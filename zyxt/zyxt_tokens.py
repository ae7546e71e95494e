"""
Token and source-position types shared by the lexer, the buffer and the AST.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


@dataclass(frozen=True, order=True)
class Position:
    """A single point in a source file. Lines and columns are 1-based."""
    line: int = 1
    column: int = 1
    filename: str = "<script>"

    def __str__(self) -> str:
        return f"{self.filename}:{self.line}:{self.column}"


@dataclass(frozen=True)
class Span:
    """A source range, start inclusive, end exclusive."""
    start: Position
    end: Position

    def merge(self, other: Optional['Span']) -> 'Span':
        if other is None:
            return self
        return Span(min(self.start, other.start), max(self.end, other.end))

    def __str__(self) -> str:
        return f"{self.start}-{self.end.line}:{self.end.column}"


class TokenType(Enum):
    # Literals and names
    INT = "int"
    FLOAT = "float"
    STR = "str"
    BOOL = "bool"
    IDENT = "ident"

    # Keywords
    LET = "let"
    CONST = "const"
    INST = "inst"
    DEL = "del"
    RETURN = "return"
    DEFER = "defer"
    CLASS = "class"
    STRUCT = "struct"
    FN = "fn"
    PROC = "proc"
    IF = "if"
    ELIF = "elif"
    ELSE = "else"

    # Brackets and punctuation
    PAREN_OPEN = "("
    PAREN_CLOSE = ")"
    BRACE_OPEN = "{"
    BRACE_CLOSE = "}"
    SQUARE_OPEN = "["
    SQUARE_CLOSE = "]"
    BAR = "|"
    COMMA = ","
    DOT = "."
    COLON = ":"
    SEMICOLON = ";"
    NEWLINE = "\\n"

    # Operators
    ASSIGN = "="
    DECLARE = ":="
    ASSIGN_OPR = "OP="
    AND = "&&"
    OR = "||"
    EQ = "=="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    CONCAT = "~"
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    MOD = "%"
    TYPECAST = "@"
    NOT = "!"


KEYWORDS = {
    "let": TokenType.LET,
    "const": TokenType.CONST,
    "inst": TokenType.INST,
    "del": TokenType.DEL,
    "return": TokenType.RETURN,
    "defer": TokenType.DEFER,
    "class": TokenType.CLASS,
    "struct": TokenType.STRUCT,
    "fn": TokenType.FN,
    "proc": TokenType.PROC,
    "if": TokenType.IF,
    "elif": TokenType.ELIF,
    "else": TokenType.ELSE,
}

# Operator tokens usable in compound assignment (`x += 1`)
COMPOUND_OPERATORS = {
    "+": TokenType.ADD,
    "-": TokenType.SUB,
    "*": TokenType.MUL,
    "/": TokenType.DIV,
    "%": TokenType.MOD,
    "~": TokenType.CONCAT,
}

BRACKET_PAIRS = {
    TokenType.PAREN_OPEN: TokenType.PAREN_CLOSE,
    TokenType.BRACE_OPEN: TokenType.BRACE_CLOSE,
    TokenType.SQUARE_OPEN: TokenType.SQUARE_CLOSE,
}


@dataclass(frozen=True)
class Token:
    """One lexed token.

    `whitespace` holds the verbatim text between the previous token and this
    one, so joining `raw` over a run of tokens reproduces the source exactly.
    `opr` is only set on ASSIGN_OPR tokens and names the arithmetic operator.
    """
    ty: TokenType
    value: str
    span: Optional[Span] = None
    whitespace: str = ""
    opr: Optional[TokenType] = None

    @property
    def raw(self) -> str:
        return self.whitespace + self.value

    def __repr__(self) -> str:
        return f"Token<{self.ty.name} {self.value!r}>"


def span_of(item: Any) -> Optional[Span]:
    """Returns the span of a token, node, span or sequence of those."""
    if item is None:
        return None
    if isinstance(item, Span):
        return item
    if isinstance(item, Token):
        return item.span
    if isinstance(item, (list, tuple)):
        return merge_spans(*item)
    span = getattr(item, "span", None)
    if callable(span):
        return span()
    return span


def merge_spans(*items: Any) -> Optional[Span]:
    """Union of the spans of every item; items without a span are skipped."""
    out: Optional[Span] = None
    for item in items:
        s = span_of(item)
        if s is None:
            continue
        out = s if out is None else out.merge(s)
    return out
