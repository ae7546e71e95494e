"""
Error types raised by every stage of the Zyxt pipeline.

Each stage is first-error-wins: the first ZError raised aborts the stage and
propagates to the ScriptRunner, which renders it with source context.
"""

from typing import Any, List, Optional

from zyxt.zyxt_tokens import Span, span_of


class ZError(Exception):
    """Base class for all Zyxt errors."""
    kind = "Error"

    def __init__(self, code: str, message: str, span: Optional[Span] = None, raw: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.span = span
        self.raw = raw
        # FrameData of the function frames this error unwound through, innermost first
        self.stack: List[Any] = []

    def with_span(self, item: Any) -> 'ZError':
        """Attaches the span of a token, node or span, keeping any earlier one."""
        if self.span is None:
            self.span = span_of(item)
        if self.raw is None:
            raw = getattr(item, "raw", None)
            if isinstance(raw, str) and raw.strip():
                self.raw = raw.strip()
        return self

    def add_frame_trace(self, frame_data: Any) -> None:
        if frame_data is not None:
            self.stack.append(frame_data)

    def __str__(self) -> str:
        return f"{self.kind} [{self.code}]: {self.message}"


class ParseError(ZError):
    kind = "ParseError"

    @classmethod
    def unterminated_bracket(cls, opener: Any) -> 'ParseError':
        text = getattr(opener, "value", str(opener))
        return cls("2.0", f"unterminated bracket `{text}`").with_span(opener)

    @classmethod
    def unmatched_bracket(cls, closer: Any) -> 'ParseError':
        text = getattr(closer, "value", str(closer))
        return cls("2.1", f"unmatched closing bracket `{text}`").with_span(closer)

    @classmethod
    def expected_token(cls, expected: str, at: Any = None) -> 'ParseError':
        err = cls("2.2", f"expected {expected}")
        return err.with_span(at) if at is not None else err

    @classmethod
    def missing_operand(cls, operator: Any) -> 'ParseError':
        text = getattr(operator, "value", str(operator))
        return cls("2.3", f"operator `{text}` is missing its left operand").with_span(operator)

    @classmethod
    def unexpected_token(cls, token: Any) -> 'ParseError':
        text = getattr(token, "value", None)
        if text is None:
            text = (getattr(token, "raw", "") or "").strip() or type(token).__name__
        return cls("2.4", f"unexpected `{text}`").with_span(token)

    @classmethod
    def expected_expression(cls, at: Any = None) -> 'ParseError':
        err = cls("2.5", "expected an expression")
        return err.with_span(at) if at is not None else err

    @classmethod
    def invalid_target(cls, target: Any) -> 'ParseError':
        return cls("2.6", "assignment target must be an identifier").with_span(target)

    @classmethod
    def invalid_declaration(cls, operator: Any) -> 'ParseError':
        text = getattr(operator, "value", str(operator))
        return cls("2.7", f"`{text}` cannot be used in a declaration").with_span(operator)

    @classmethod
    def invalid_literal(cls, token: Any) -> 'ParseError':
        return cls("2.8", f"invalid literal `{token.value}`").with_span(token)


class TypeCheckError(ZError):
    kind = "TypeError"

    def __init__(self, code: str, message: str, expected: Any = None, actual: Any = None, **kwargs):
        super().__init__(code, message, **kwargs)
        self.expected = expected
        self.actual = actual

    @classmethod
    def mismatch(cls, expected: Any, actual: Any) -> 'TypeCheckError':
        return cls("3.0", f"expected type `{expected}`, got `{actual}`", expected=expected, actual=actual)

    @classmethod
    def divergent_returns(cls, first: Any, other: Any) -> 'TypeCheckError':
        return cls("3.1", f"block returns both `{first}` and `{other}`", expected=first, actual=other)

    @classmethod
    def field_default_mismatch(cls, name: str, declared: Any, default: Any) -> 'TypeCheckError':
        return cls("3.2", f"default of field `{name}` has type `{default}`, declared `{declared}`",
                   expected=declared, actual=default)

    @classmethod
    def init_with_args(cls) -> 'TypeCheckError':
        return cls("3.3", "a type cannot have both constructor arguments and an `_init` method")

    @classmethod
    def inst_with_args(cls, name: str) -> 'TypeCheckError':
        return cls("3.4", f"instance field `{name}` declared on a type with constructor arguments")

    @classmethod
    def no_member(cls, ty: Any, name: str) -> 'TypeCheckError':
        return cls("3.5", f"type `{ty}` has no member `{name}`", actual=ty)

    @classmethod
    def not_callable(cls, ty: Any) -> 'TypeCheckError':
        return cls("3.6", f"type `{ty}` is not callable", actual=ty)

    @classmethod
    def wrong_arg_count(cls, expected: int, actual: int) -> 'TypeCheckError':
        return cls("3.7", f"expected {expected} argument(s), got {actual}", expected=expected, actual=actual)

    @classmethod
    def not_a_type(cls, name: str) -> 'TypeCheckError':
        return cls("3.8", f"`{name}` is not a type")

    @classmethod
    def not_castable(cls, ty: Any) -> 'TypeCheckError':
        return cls("3.9", f"type `{ty}` cannot be typecast", actual=ty)

    @classmethod
    def recursive_member(cls, name: str) -> 'TypeCheckError':
        return cls("3.10", f"the type of member `{name}` depends on itself; annotate its return type")


class ScopeError(ZError):
    kind = "NameError"

    def __init__(self, code: str, message: str, name: str = "", **kwargs):
        super().__init__(code, message, **kwargs)
        self.name = name

    @classmethod
    def undeclared(cls, name: str) -> 'ScopeError':
        return cls("4.0", f"`{name}` is not declared", name=name)

    @classmethod
    def not_in_frame(cls, name: str) -> 'ScopeError':
        return cls("4.1", f"`{name}` is not declared in the current frame", name=name)

    @classmethod
    def constant(cls, name: str) -> 'ScopeError':
        return cls("4.2", f"`{name}` is a constant and cannot be reassigned", name=name)


class ZRuntimeError(ZError):
    kind = "RuntimeError"

    @classmethod
    def failed_call(cls, name: str, args: List[Any]) -> 'ZRuntimeError':
        shown = ", ".join(str(a) for a in args)
        return cls("5.0", f"`{name}` failed for arguments ({shown})")

    @classmethod
    def division_by_zero(cls) -> 'ZRuntimeError':
        return cls("5.1", "division by zero")

    @classmethod
    def missing_argument(cls, name: str) -> 'ZRuntimeError':
        return cls("5.2", f"missing argument `{name}`")

    @classmethod
    def recursion(cls) -> 'ZRuntimeError':
        return cls("5.3", "maximum recursion depth exceeded")


class CliError(ZError):
    kind = "Error"

    @classmethod
    def file_not_found(cls, filename: str) -> 'CliError':
        return cls("1.1", f"file `{filename}` does not exist")

    @classmethod
    def file_is_directory(cls, filename: str) -> 'CliError':
        return cls("1.2", f"`{filename}` is a directory")
