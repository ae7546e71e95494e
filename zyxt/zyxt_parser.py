"""
Reduces a token stream to a syntax tree with an ordered ladder of rewrite passes.

Each pass scans a Buffer for its trigger, cuts out the window it owns, builds
one node from it and splices the node back. Passes run in a fixed order, so a
pass only ever sees what the earlier passes left behind.
"""
import re
from dataclasses import replace
from typing import Any, List, Optional, Sequence

from zyxt.zyxt_ast import (
    Argument, Ast, BinaryOpr, Block, Call, Class, Condition, Declare, Defer,
    Delete, Ident, If, Literal, Member, Procedure, Return, Set, UnaryOpr,
)
from zyxt.zyxt_buffer import Buffer, is_token, raw_of
from zyxt.zyxt_errors import ParseError
from zyxt.zyxt_log import dbg
from zyxt.zyxt_primitives import F64_T, STR_T, bool_value, int_literal_type
from zyxt.zyxt_tokens import Token, TokenType as T
from zyxt.zyxt_values import Value

# Lowest precedence first; each pass splits on the last operator of its group
BINARY_GROUPS = [
    {T.OR},
    {T.AND},
    {T.EQ, T.NE, T.LT, T.LE, T.GT, T.GE},
    {T.CONCAT},
    {T.ADD, T.SUB},
    {T.MUL, T.DIV, T.MOD},
    {T.TYPECAST},
]

_STR_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", '"': '"', "\\": "\\"}


class Parser:
    """Builds the root Block of a program from its tokens."""

    def __init__(self):
        self._passes = [
            ("literals", self._parse_literals),
            ("enclosed", self._parse_enclosed),
            ("keywords", self._parse_keywords),
            ("assignment", self._parse_assignment),
            ("procedures", self._parse_procedures),
            ("classes", self._parse_classes),
            ("if", self._parse_if),
            ("binary", self._parse_binary),
            ("unary", self._parse_unary),
        ]

    def parse(self, tokens: Sequence[Token]) -> Block:
        return self.parse_as_block(Buffer(tokens))

    def parse_as_block(self, buffer: Buffer, brace_open: Optional[Token] = None,
                       brace_close: Optional[Token] = None) -> Block:
        """Parses every `;`- or newline-separated statement of the buffer."""
        raw = raw_of(buffer.content)
        if brace_open is not None:
            raw = brace_open.raw + raw + (brace_close.raw if brace_close is not None else "")
        windows = buffer.get_split(T.SEMICOLON, T.NEWLINE)
        content = [self.parse_as_expr(w.as_buffer()) for w in windows.non_empty()]
        return Block(content, brace_open=brace_open, brace_close=brace_close, raw=raw)

    def parse_as_expr(self, buffer: Buffer) -> Ast:
        """Runs the pass ladder and requires exactly one node to remain."""
        for name, run in self._passes:
            if len(buffer) == 1 and isinstance(buffer.content[0], Ast):
                break
            buffer.reset_cursor()
            run(buffer)
        if not buffer.content:
            raise ParseError.expected_expression()
        if len(buffer) > 1:
            raise ParseError.unexpected_token(buffer.content[1])
        node = buffer.content[0]
        if isinstance(node, Token):
            raise ParseError.unexpected_token(node)
        return node

    def _parse_items(self, items: List[Any], at: Any) -> Ast:
        if not items:
            raise ParseError.expected_expression(at)
        return self.parse_as_expr(Buffer(items))

    # ------------------------------------------------------------------
    # 1. Literals and identifiers
    # ------------------------------------------------------------------

    def _parse_literals(self, buffer: Buffer) -> None:
        while (item := buffer.next()) is not None:
            if not isinstance(item, Token):
                continue
            node = self._literal(item)
            if node is not None:
                buffer.replace(buffer.cursor, buffer.cursor + 1, [node])

    def _literal(self, token: Token) -> Optional[Ast]:
        match token.ty:
            case T.INT:
                n = int(token.value)
                return Literal(Value(int_literal_type(n), n), token=token, raw=token.raw)
            case T.FLOAT:
                return Literal(Value(F64_T, float(token.value)), token=token, raw=token.raw)
            case T.STR:
                return Literal(Value(STR_T, _unescape(token)), token=token, raw=token.raw)
            case T.BOOL:
                return Literal(bool_value(token.value == "true"), token=token, raw=token.raw)
            case T.IDENT:
                return Ident(token.value, token=token, raw=token.raw)
        return None

    # ------------------------------------------------------------------
    # 2. Brackets, calls and member access
    # ------------------------------------------------------------------

    def _parse_enclosed(self, buffer: Buffer) -> None:
        while (item := buffer.next()) is not None:
            if is_token(item, T.PAREN_CLOSE, T.BRACE_CLOSE, T.SQUARE_CLOSE):
                raise ParseError.unmatched_bracket(item)
            if is_token(item, T.BRACE_OPEN):
                start = buffer.cursor
                window = buffer.get_between(T.BRACE_OPEN, T.BRACE_CLOSE)
                dbg(2, "pass enclosed: block", window.raw().strip())
                block = self.parse_as_block(window.as_buffer(), item, buffer.current())
                buffer.replace(start, window.range[1], [block])
            elif is_token(item, T.PAREN_OPEN):
                prev = buffer.prev()
                if isinstance(prev, Ast):
                    self._call(buffer, prev, item)
                else:
                    start = buffer.cursor
                    window = buffer.get_between(T.PAREN_OPEN, T.PAREN_CLOSE)
                    raw = raw_of(buffer.content[start:window.range[1]])
                    node = self._parse_items(window.slice, item)
                    buffer.replace(start, window.range[1], [_with_raw(node, raw)])
            elif is_token(item, T.DOT):
                self._member(buffer, item)

    def _call(self, buffer: Buffer, callee: Ast, paren_open: Token) -> None:
        start = buffer.cursor - 1
        windows = buffer.get_split_between(T.PAREN_OPEN, T.PAREN_CLOSE, T.COMMA)
        paren_close = buffer.current()
        args = []
        for window in windows:
            if not window.slice:
                if len(windows) == 1:
                    continue
                raise ParseError.expected_expression(paren_close)
            args.append(self.parse_as_expr(window.as_buffer()))
        if isinstance(callee, Member):
            callee = replace(callee, is_method=True)
        end = windows.range[1]
        dbg(2, "pass enclosed: call", callee.describe())
        call = Call(callee, args, paren_open=paren_open, paren_close=paren_close,
                    raw=raw_of(buffer.content[start:end]))
        buffer.replace(start, end, [call])

    def _member(self, buffer: Buffer, dot: Token) -> None:
        parent = buffer.prev()
        name = buffer.peek()
        if not isinstance(parent, Ast):
            raise ParseError.missing_operand(dot)
        if not isinstance(name, Ident):
            raise ParseError.expected_token("a member name after `.`", dot)
        start = buffer.cursor - 1
        member = Member(parent, name.name, dot=dot, name_token=name.token,
                        raw=raw_of(buffer.content[start:start + 3]))
        buffer.replace(start, start + 3, [member])

    # ------------------------------------------------------------------
    # 3. del / return / defer
    # ------------------------------------------------------------------

    def _parse_keywords(self, buffer: Buffer) -> None:
        while (item := buffer.next()) is not None:
            if not is_token(item, T.DEL, T.RETURN, T.DEFER):
                continue
            start = buffer.cursor
            rest = buffer.content[start + 1:]
            raw = raw_of(buffer.content[start:])
            dbg(2, "pass keywords:", raw.strip())
            match item.ty:
                case T.RETURN:
                    content = self.parse_as_expr(Buffer(rest)) if rest else None
                    node = Return(content, keyword=item, raw=raw)
                case T.DEFER:
                    node = Defer(self._parse_items(rest, item), keyword=item, raw=raw)
                case _:
                    names = []
                    for window in Buffer(rest).get_split(T.COMMA):
                        target = self.parse_as_expr(window.as_buffer()) if window.slice else None
                        if not isinstance(target, Ident):
                            raise ParseError.expected_token("an identifier to delete", target or item)
                        names.append(target)
                    node = Delete(names, keyword=item, raw=raw)
            buffer.replace(start, len(buffer), [node])

    # ------------------------------------------------------------------
    # 4. Assignment
    # ------------------------------------------------------------------

    def _parse_assignment(self, buffer: Buffer) -> None:
        in_bars = False
        while (item := buffer.next()) is not None:
            if is_token(item, T.BAR):
                in_bars = not in_bars
                continue
            if in_bars or not is_token(item, T.ASSIGN, T.ASSIGN_OPR, T.DECLARE):
                continue
            if buffer.prev() is None:
                raise ParseError.missing_operand(item)
            idx = buffer.cursor
            raw = raw_of(buffer.content)
            dbg(2, "pass assignment:", raw.strip())
            content = self._parse_items(buffer.content[idx + 1:], item)
            node = self._assignment(buffer.content[:idx], item, content, raw)
            buffer.replace(0, len(buffer), [node])
            return

    def _assignment(self, lhs: List[Any], opr: Token, content: Ast, raw: str) -> Ast:
        """`[let] [inst|const]* target [: type] OP content`"""
        items = list(lhs)
        let = items.pop(0) if items and is_token(items[0], T.LET) else None
        flags, flag_tokens = [], []
        while items and is_token(items[0], T.INST, T.CONST):
            flag_tokens.append(items.pop(0))
            flags.append(flag_tokens[-1].value)
        if not items:
            raise ParseError.invalid_target(opr)
        target = items.pop(0)
        if not isinstance(target, Ident):
            raise ParseError.invalid_target(target)
        ty = None
        if items:
            colon = items.pop(0)
            if not is_token(colon, T.COLON):
                raise ParseError.unexpected_token(colon)
            if not items:
                raise ParseError.expected_token("a type after `:`", colon)
            ty = self.parse_as_expr(Buffer(items))

        declaring = let is not None or bool(flags) or ty is not None or opr.ty == T.DECLARE
        if opr.ty == T.ASSIGN_OPR:
            if declaring:
                raise ParseError.invalid_declaration(opr)
            return Set(target, BinaryOpr(opr.opr, target, content, opr=opr, raw=raw), opr=opr, raw=raw)
        if declaring:
            return Declare(target, content, tuple(flags), ty, let=let, opr=opr,
                           flag_tokens=tuple(flag_tokens), raw=raw)
        return Set(target, content, opr=opr, raw=raw)

    # ------------------------------------------------------------------
    # 5. Procedure literals
    # ------------------------------------------------------------------

    def _parse_procedures(self, buffer: Buffer) -> None:
        while (item := buffer.next()) is not None:
            if is_token(item, T.FN, T.PROC):
                self._procedure(buffer, item)
            elif is_token(item, T.BAR):
                if is_token(buffer.prev(), T.CLASS, T.STRUCT):
                    # Constructor arguments belong to the class pass
                    buffer.get_between(T.BAR, T.BAR)
                else:
                    self._procedure(buffer, item)

    def _procedure(self, buffer: Buffer, keyword: Token) -> None:
        start = buffer.cursor
        buffer.start_raw_collection()
        args: List[Argument] = []
        if is_token(keyword, T.BAR):
            args = self._arguments(buffer)
        elif is_token(buffer.peek(), T.BAR):
            buffer.next()
            args = self._arguments(buffer)

        ret = None
        if is_token(buffer.peek(), T.COLON):
            colon = buffer.next()
            ret_items = []
            while not isinstance(item := buffer.next(), Block):
                if item is None:
                    raise ParseError.expected_token("a block after the return type", colon)
                ret_items.append(item)
            ret = self._parse_items(ret_items, colon)
            body = item
        else:
            item = buffer.next()
            if item is None:
                raise ParseError.expected_expression(keyword)
            if isinstance(item, Block):
                body = item
            else:
                rest = [item]
                while (nxt := buffer.next()) is not None:
                    rest.append(nxt)
                body = Block([self.parse_as_expr(Buffer(rest))], raw=raw_of(rest))

        end = buffer.cursor + 1 if buffer.current() is not None else len(buffer)
        raw = buffer.end_raw_collection()
        dbg(2, "pass procedures:", raw.strip())
        node = Procedure(not is_token(keyword, T.PROC), args, ret, body, keyword=keyword, raw=raw)
        buffer.replace(start, end, [node])

    def _arguments(self, buffer: Buffer) -> List[Argument]:
        """Parses `|a: T = default, ...|` with the cursor on the opening bar."""
        windows = buffer.get_split_between(T.BAR, T.BAR, T.COMMA)
        args = []
        for window in windows:
            if not window.slice:
                if len(windows) == 1:
                    continue
                raise ParseError.expected_token("an argument", buffer.current())
            args.append(self._argument(window.slice))
        return args

    def _argument(self, items: List[Any]) -> Argument:
        name = items[0]
        if not isinstance(name, Ident):
            raise ParseError.expected_token("an argument name", name)
        rest = items[1:]
        default = None
        eq = next((i for i, item in enumerate(rest) if is_token(item, T.ASSIGN)), None)
        if eq is not None:
            default = self._parse_items(rest[eq + 1:], rest[eq])
            rest = rest[:eq]
        ty = None
        if rest:
            if not is_token(rest[0], T.COLON):
                raise ParseError.unexpected_token(rest[0])
            ty = self._parse_items(rest[1:], rest[0])
        return Argument(name.name, ty, default, name_token=name.token, raw=raw_of(items))

    # ------------------------------------------------------------------
    # 6. class / struct
    # ------------------------------------------------------------------

    def _parse_classes(self, buffer: Buffer) -> None:
        while (item := buffer.next()) is not None:
            if not is_token(item, T.CLASS, T.STRUCT):
                continue
            start = buffer.cursor
            buffer.start_raw_collection()
            args = None
            if is_token(buffer.peek(), T.BAR):
                buffer.next()
                args = self._arguments(buffer)
            body = buffer.next()
            if not isinstance(body, Block):
                raise ParseError.expected_token(f"a block after `{item.value}`", body or item)
            raw = buffer.end_raw_collection()
            dbg(2, "pass classes:", raw.strip())
            node = Class(item.ty == T.STRUCT, body, args, keyword=item, raw=raw)
            buffer.replace(start, buffer.cursor + 1, [node])

    # ------------------------------------------------------------------
    # 7. if / elif / else
    # ------------------------------------------------------------------

    def _parse_if(self, buffer: Buffer) -> None:
        while (item := buffer.next()) is not None:
            if not is_token(item, T.IF):
                continue
            start = buffer.cursor
            buffer.start_raw_collection()
            conditions = []
            keyword = item
            while True:
                cond_items = []
                while not isinstance(body := buffer.next(), Block):
                    if body is None:
                        raise ParseError.expected_token("a block after the condition", keyword)
                    cond_items.append(body)
                condition = self._parse_items(cond_items, keyword)
                raw = keyword.raw + raw_of(cond_items) + body.raw
                conditions.append(Condition(condition, body, keyword=keyword, raw=raw))
                if is_token(buffer.peek(), T.ELIF):
                    keyword = buffer.next()
                    continue
                if is_token(buffer.peek(), T.ELSE):
                    keyword = buffer.next()
                    body = buffer.next()
                    if not isinstance(body, Block):
                        raise ParseError.expected_token("a block after `else`", body or keyword)
                    conditions.append(Condition(None, body, keyword=keyword, raw=keyword.raw + body.raw))
                break
            raw = buffer.end_raw_collection()
            dbg(2, "pass if:", raw.strip())
            buffer.replace(start, buffer.cursor + 1, [If(conditions, raw=raw)])

    # ------------------------------------------------------------------
    # 8-9. Operators
    # ------------------------------------------------------------------

    def _parse_binary(self, buffer: Buffer) -> None:
        content = buffer.content
        for group in BINARY_GROUPS:
            idx = next((i for i in range(len(content) - 1, 0, -1)
                        if is_token(content[i], *group) and isinstance(content[i - 1], Ast)), None)
            if idx is None:
                continue
            opr = content[idx]
            raw = raw_of(content)
            dbg(2, "pass binary:", raw.strip())
            left = self.parse_as_expr(Buffer(content[:idx]))
            right = self._parse_items(content[idx + 1:], opr)
            buffer.replace(0, len(buffer), [BinaryOpr(opr.ty, left, right, opr=opr, raw=raw)])
            return

    def _parse_unary(self, buffer: Buffer) -> None:
        first = buffer.content[0] if buffer.content else None
        if not is_token(first, T.NOT, T.SUB, T.ADD):
            return
        raw = raw_of(buffer.content)
        operand = self._parse_items(buffer.content[1:], first)
        buffer.replace(0, len(buffer), [UnaryOpr(first.ty, operand, opr=first, raw=raw)])


def _unescape(token: Token) -> str:
    def sub(m):
        c = m.group(1)
        if c not in _STR_ESCAPES:
            raise ParseError.invalid_literal(token)
        return _STR_ESCAPES[c]
    return re.sub(r"\\(.)", sub, token.value[1:-1])


def _with_raw(node: Ast, raw: str) -> Ast:
    return replace(node, raw=raw)
