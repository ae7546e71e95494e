"""
A splice-able sequence of tokens and already-reduced AST nodes.

Parser passes scan a Buffer with a cursor, cut out a window, reduce it to a
single node and splice that node back in place.
"""

from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from zyxt.zyxt_errors import ParseError
from zyxt.zyxt_tokens import BRACKET_PAIRS, Token, TokenType, merge_spans

T = TypeVar("T")

_CLOSERS = {close: open_ for open_, close in BRACKET_PAIRS.items()}


def is_token(item: Any, *types: TokenType) -> bool:
    return isinstance(item, Token) and (not types or item.ty in types)


def raw_of(items: Iterable[Any]) -> str:
    return "".join(getattr(item, "raw", "") or "" for item in items)


class BufferWindow:
    """A copied slice of a Buffer plus the half-open range it was cut from."""

    def __init__(self, slice: Sequence[Any], range: Tuple[int, int]):
        self.slice: List[Any] = list(slice)
        self.range = range

    def as_buffer(self) -> 'Buffer':
        return Buffer(self.slice)

    def with_as_buffer(self, f: Callable[['Buffer'], T]) -> T:
        """Runs `f` over a buffer of the slice and keeps the rewritten slice."""
        buffer = self.as_buffer()
        result = f(buffer)
        self.slice = buffer.content
        return result

    def raw(self) -> str:
        return raw_of(self.slice)

    def span(self):
        return merge_spans(*self.slice)

    def __len__(self):
        return len(self.slice)

    def __repr__(self):
        return f"BufferWindow({self.range}, {self.slice!r})"


class BufferWindows:
    """The segments produced by a split, with the range the split covered."""

    def __init__(self, windows: List[BufferWindow], range: Tuple[int, int]):
        self.windows = windows
        self.range = range

    def with_as_buffers(self, f: Callable[['Buffer'], T]) -> List[T]:
        return [w.with_as_buffer(f) for w in self.windows]

    def non_empty(self) -> List[BufferWindow]:
        return [w for w in self.windows if w.slice]

    def __iter__(self):
        return iter(self.windows)

    def __len__(self):
        return len(self.windows)


class Buffer:
    """Items are Tokens or Ast nodes. The cursor points at the current item.

    The first `next()` only marks the buffer as started, so the first item is
    current without any lookahead bookkeeping.
    """

    def __init__(self, content: Iterable[Any]):
        self.content: List[Any] = list(content)
        self.cursor = 0
        self.started = False
        self._raw: Optional[str] = None

    def __len__(self):
        return len(self.content)

    def __repr__(self):
        return f"Buffer(cursor={self.cursor}, started={self.started}, {self.content!r})"

    # ------------------------------------------------------------------
    # Cursor
    # ------------------------------------------------------------------

    def current(self) -> Optional[Any]:
        if self.started and 0 <= self.cursor < len(self.content):
            return self.content[self.cursor]
        return None

    def next(self) -> Optional[Any]:
        if not self.started:
            self.started = True
        elif self.cursor < len(self.content):
            self.cursor += 1
        item = self.current()
        if item is not None and self._raw is not None:
            self._raw += getattr(item, "raw", "") or ""
        return item

    def next_or_err(self) -> Any:
        item = self.next()
        if item is None:
            last = self.content[-1] if self.content else None
            raise ParseError.expected_token("more input", last)
        return item

    def prev(self) -> Optional[Any]:
        if not self.started or self.cursor == 0:
            return None
        return self.content[min(self.cursor, len(self.content)) - 1]

    def peek(self) -> Optional[Any]:
        pos = self.next_cursor_pos()
        return self.content[pos] if pos < len(self.content) else None

    def reset_cursor(self) -> None:
        self.cursor = 0
        self.started = False

    def next_cursor_pos(self) -> int:
        return self.cursor + 1 if self.started else 0

    # ------------------------------------------------------------------
    # Windows
    # ------------------------------------------------------------------

    def window(self, start: int, end: int) -> BufferWindow:
        return BufferWindow(self.content[start:end], (start, end))

    def rest_incl_curr(self) -> BufferWindow:
        start = self.cursor if self.started else 0
        return self.window(start, len(self.content))

    def get_between(self, open_ty: TokenType, close_ty: TokenType) -> BufferWindow:
        """Cuts out the interior of a bracket whose opener is the current item.

        Nesting of the same bracket kind is tracked; a delimiter that opens and
        closes with the same symbol cannot nest, so its counter stays in {0, 1}.
        """
        start = self.cursor
        opener = self.content[start] if start < len(self.content) else None
        nesting = 1
        while nesting > 0:
            item = self.next()
            if item is None:
                raise ParseError.unterminated_bracket(opener)
            if not isinstance(item, Token):
                continue
            if open_ty == close_ty:
                if item.ty == open_ty:
                    nesting = 0
            elif item.ty == open_ty:
                nesting += 1
            elif item.ty == close_ty:
                nesting -= 1
        return BufferWindow(self.content[start + 1:self.cursor], (start, self.cursor + 1))

    def get_split(self, *dividers: TokenType) -> BufferWindows:
        """Splits the items from the cursor to the end on top-level dividers.

        Every bracket pair counts towards depth, and a `|...|` argument list is
        never split.
        """
        start = self.cursor if self.started else 0
        self.started = True
        windows: List[BufferWindow] = []
        openers: List[Token] = []
        in_bars = False
        seg_start = start
        for idx in range(start, len(self.content)):
            self.cursor = idx
            item = self.content[idx]
            if not isinstance(item, Token):
                continue
            if item.ty in BRACKET_PAIRS:
                openers.append(item)
            elif item.ty in _CLOSERS:
                if not openers or openers[-1].ty != _CLOSERS[item.ty]:
                    raise ParseError.unmatched_bracket(item)
                openers.pop()
            elif item.ty == TokenType.BAR and not openers:
                in_bars = not in_bars
            elif item.ty in dividers and not openers and not in_bars:
                windows.append(self.window(seg_start, idx))
                seg_start = idx + 1
        if openers:
            raise ParseError.unterminated_bracket(openers[-1])
        windows.append(self.window(seg_start, len(self.content)))
        self.cursor = len(self.content)
        return BufferWindows(windows, (start, len(self.content)))

    def get_split_between(self, open_ty: TokenType, close_ty: TokenType, *dividers: TokenType) -> BufferWindows:
        """Like get_between, emitting one window per top-level segment between dividers."""
        start = self.cursor
        opener = self.content[start] if start < len(self.content) else None
        same = open_ty == close_ty
        nesting = 1
        inner: List[Token] = []
        in_bars = False
        windows: List[BufferWindow] = []
        seg_start = start + 1
        while True:
            item = self.next()
            if item is None:
                raise ParseError.unterminated_bracket(opener)
            if not isinstance(item, Token):
                continue
            if same and item.ty == open_ty and not inner:
                nesting = 0
            elif not same and item.ty == open_ty and not inner:
                nesting += 1
            elif not same and item.ty == close_ty and not inner:
                nesting -= 1
            elif item.ty in BRACKET_PAIRS:
                inner.append(item)
            elif item.ty in _CLOSERS:
                if not inner or inner[-1].ty != _CLOSERS[item.ty]:
                    raise ParseError.unmatched_bracket(item)
                inner.pop()
            elif not same and item.ty == TokenType.BAR and not inner:
                in_bars = not in_bars
            elif item.ty in dividers and nesting == 1 and not inner and not in_bars:
                windows.append(self.window(seg_start, self.cursor))
                seg_start = self.cursor + 1
            if nesting == 0:
                break
        windows.append(self.window(seg_start, self.cursor))
        return BufferWindows(windows, (start, self.cursor + 1))

    def splice_buffer(self, window: BufferWindow) -> None:
        """Replaces `window.range` with `window.slice`, leaving the cursor on
        the last spliced item."""
        start, end = window.range
        self.content[start:end] = window.slice
        pos = start + len(window.slice) - 1
        if pos < 0:
            self.reset_cursor()
        else:
            self.cursor = pos
            self.started = True

    def replace(self, start: int, end: int, items: List[Any]) -> None:
        self.splice_buffer(BufferWindow(items, (start, end)))

    # ------------------------------------------------------------------
    # Raw text
    # ------------------------------------------------------------------

    def start_raw_collection(self) -> None:
        current = self.current()
        self._raw = (getattr(current, "raw", "") or "") if current is not None else ""

    def end_raw_collection(self) -> str:
        raw, self._raw = self._raw or "", None
        return raw
