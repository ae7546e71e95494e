import pytest

from zyxt.zyxt_ast import Ident
from zyxt.zyxt_buffer import Buffer, BufferWindow, raw_of
from zyxt.zyxt_errors import ParseError
from zyxt.zyxt_lexer import tokenize
from zyxt.zyxt_tokens import TokenType as T


def buffer_of(source):
    return Buffer(tokenize(source))


def values(items):
    return [getattr(i, "value", None) for i in items]


# --- Cursor ---

def test_first_next_only_starts():
    buf = buffer_of("a b")
    assert buf.prev() is None
    assert buf.peek().value == "a"
    assert buf.next().value == "a"
    assert buf.cursor == 0
    assert buf.prev() is None
    assert buf.peek().value == "b"
    assert buf.next().value == "b"
    assert buf.prev().value == "a"
    assert buf.next() is None
    assert buf.peek() is None


def test_reset_cursor():
    buf = buffer_of("a b")
    buf.next()
    buf.next()
    buf.reset_cursor()
    assert buf.next_cursor_pos() == 0
    assert buf.next().value == "a"


def test_next_or_err_at_end():
    buf = buffer_of("a")
    buf.next()
    with pytest.raises(ParseError) as exc:
        buf.next_or_err()
    assert exc.value.code == "2.2"


# --- Windows ---

def test_window_copies_without_consuming():
    buf = buffer_of("a b c")
    window = buf.window(1, 3)
    assert values(window.slice) == ["b", "c"]
    assert window.range == (1, 3)
    assert len(buf) == 3


def test_rest_incl_curr():
    buf = buffer_of("a b c")
    buf.next()
    buf.next()
    assert values(buf.rest_incl_curr().slice) == ["b", "c"]


def test_get_between_nested():
    buf = buffer_of("{ { a } b } c")
    buf.next()
    window = buf.get_between(T.BRACE_OPEN, T.BRACE_CLOSE)
    assert values(window.slice) == ["{", "a", "}", "b"]
    assert window.range == (0, 6)
    assert buf.current().value == "}"


def test_get_between_same_symbol_does_not_nest():
    buf = buffer_of("| a | b |")
    buf.next()
    window = buf.get_between(T.BAR, T.BAR)
    assert values(window.slice) == ["a"]
    assert window.range == (0, 3)


def test_get_between_unterminated():
    buf = buffer_of("{ a { b }")
    buf.next()
    with pytest.raises(ParseError) as exc:
        buf.get_between(T.BRACE_OPEN, T.BRACE_CLOSE)
    assert exc.value.code == "2.0"
    assert exc.value.span.start.column == 1


def test_get_split_respects_brackets():
    buf = buffer_of("a, (b, c), d")
    windows = buf.get_split(T.COMMA)
    assert [values(w.slice) for w in windows] == [["a"], ["(", "b", ",", "c", ")"], ["d"]]
    assert windows.range == (0, 9)


def test_get_split_ignores_dividers_between_bars():
    buf = buffer_of("|a, b| a, c")
    windows = buf.get_split(T.COMMA)
    assert len(windows) == 2


def test_get_split_stray_closer():
    with pytest.raises(ParseError) as exc:
        buffer_of("a )").get_split(T.COMMA)
    assert exc.value.code == "2.1"


def test_get_split_unclosed_opener():
    with pytest.raises(ParseError) as exc:
        buffer_of("(a, b").get_split(T.COMMA)
    assert exc.value.code == "2.0"


def test_get_split_non_empty():
    windows = buffer_of("a;;b;").get_split(T.SEMICOLON)
    assert len(windows) == 4
    assert [values(w.slice) for w in windows.non_empty()] == [["a"], ["b"]]


def test_get_split_between_top_level_segments():
    buf = buffer_of("(a, f(b, c), d) e")
    buf.next()
    windows = buf.get_split_between(T.PAREN_OPEN, T.PAREN_CLOSE, T.COMMA)
    assert [len(w) for w in windows] == [1, 6, 1]
    assert windows.range == (0, 12)
    assert buf.current().value == ")"


def test_get_split_between_unterminated():
    buf = buffer_of("(a, b")
    buf.next()
    with pytest.raises(ParseError) as exc:
        buf.get_split_between(T.PAREN_OPEN, T.PAREN_CLOSE, T.COMMA)
    assert exc.value.code == "2.0"


# --- Splicing ---

def test_splice_buffer_places_cursor_on_last_item():
    buf = buffer_of("a b c")
    buf.splice_buffer(BufferWindow([Ident("x")], (0, 2)))
    assert len(buf) == 2
    assert buf.current() == Ident("x")
    assert buf.next().value == "c"


def test_splice_empty_window_resets():
    buf = buffer_of("a b")
    buf.next()
    buf.splice_buffer(BufferWindow([], (0, 2)))
    assert len(buf) == 0
    assert buf.next() is None


def test_with_as_buffer_stores_rewritten_slice():
    buf = buffer_of("a b c")
    window = buf.window(0, 3)

    def drop_first(inner):
        return inner.content.pop(0)

    dropped = window.with_as_buffer(drop_first)
    assert dropped.value == "a"
    assert values(window.slice) == ["b", "c"]


def test_with_as_buffers():
    windows = buffer_of("a, b").get_split(T.COMMA)
    assert windows.with_as_buffers(len) == [1, 1]


# --- Raw collection ---

def test_raw_collection_from_current():
    buf = buffer_of("a  b c d")
    buf.next()
    buf.start_raw_collection()
    buf.next()
    buf.next()
    assert buf.end_raw_collection() == "a  b c"
    buf.next()
    assert buf.end_raw_collection() == ""


def test_window_raw():
    buf = buffer_of("f(x,  y)")
    assert buf.window(2, 5).raw() == raw_of(buf.content[2:5]) == "x,  y"
