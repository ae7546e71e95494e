"""
Frame-based scope engine shared by the typechecker and the interpreter.

A SymTable is a stack of Frames with the innermost frame at index 0. Lookups
scan outward; once a FUNCTION frame has been crossed only CONSTANTS frames
remain visible, so a function body sees its own locals and program constants
but never its caller's variables.
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, Iterator, List, Optional, Tuple

from zyxt.zyxt_errors import ScopeError, TypeCheckError, ZError
from zyxt.zyxt_log import dbg
from zyxt.zyxt_primitives import primitives
from zyxt.zyxt_tokens import Span
from zyxt.zyxt_types import TYPE_T, Type
from zyxt.zyxt_values import ReturnValue


class FrameType(Enum):
    NORMAL = "normal"
    CONSTANTS = "constants"
    FUNCTION = "function"


@dataclass
class FrameData:
    """Call-site metadata kept on FUNCTION frames for stack traces."""
    span: Optional[Span] = None
    raw_call: str = ""
    args: Dict[str, Any] = field(default_factory=dict)

    def __str__(self):
        where = f" at {self.span.start}" if self.span is not None else ""
        return f"{self.raw_call or '<call>'}{where}"


@dataclass
class Frame:
    heap: Dict[str, Any] = field(default_factory=dict)
    typedefs: Dict[str, Type] = field(default_factory=dict)
    defer: List[Any] = field(default_factory=list)
    frame_data: Optional[FrameData] = None
    ty: FrameType = FrameType.NORMAL


class SymTable:
    """The frame stack. Subclasses bootstrap it and decide what a pop does."""

    def __init__(self):
        self.frames: Deque[Frame] = deque()
        self.add_frame(ty=FrameType.CONSTANTS)
        self._bootstrap(self.frames[0])
        self.add_frame()

    def _bootstrap(self, constants: Frame) -> None:
        pass

    @property
    def depth(self) -> int:
        return len(self.frames)

    @property
    def innermost(self) -> Frame:
        return self.frames[0]

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    def add_frame(self, frame_data: Optional[FrameData] = None, ty: FrameType = FrameType.NORMAL) -> Frame:
        frame = Frame(frame_data=frame_data, ty=ty)
        self.frames.appendleft(frame)
        dbg(3, "push frame", ty.value, "depth", len(self.frames))
        return frame

    def pop_frame(self) -> Optional[Any]:
        """Discards the innermost frame. Returns an overriding result, if any."""
        frame = self.frames.popleft()
        dbg(3, "pop frame", frame.ty.value, "depth", len(self.frames))
        return None

    def unwind_frame(self) -> None:
        """Discards the innermost frame on the error path."""
        self.frames.popleft()

    def unwind_to(self, depth: int) -> None:
        while len(self.frames) > depth:
            self.unwind_frame()

    def add_defer(self, statement: Any) -> None:
        self.frames[0].defer.append(statement)

    # ------------------------------------------------------------------
    # Bindings
    # ------------------------------------------------------------------

    def _visible(self) -> Iterator[Frame]:
        crossed_function = False
        for frame in self.frames:
            if not crossed_function or frame.ty == FrameType.CONSTANTS:
                yield frame
            if frame.ty == FrameType.FUNCTION:
                crossed_function = True

    def _find(self, name: str) -> Frame:
        for frame in self._visible():
            if name in frame.heap:
                return frame
        raise ScopeError.undeclared(name)

    def has_val(self, name: str) -> bool:
        return any(name in frame.heap for frame in self._visible())

    def get_val(self, name: str, at: Any = None) -> Any:
        try:
            return self._find(name).heap[name]
        except ZError as e:
            raise e.with_span(at) if at is not None else e

    def set_val(self, name: str, value: Any, at: Any = None) -> Any:
        try:
            frame = self._find(name)
            if frame.ty == FrameType.CONSTANTS:
                raise ScopeError.constant(name)
        except ZError as e:
            raise e.with_span(at) if at is not None else e
        frame.heap[name] = value
        return value

    def delete_val(self, name: str, at: Any = None) -> Any:
        frame = self.frames[0]
        if name not in frame.heap:
            err = ScopeError.not_in_frame(name)
            raise err.with_span(at) if at is not None else err
        frame.typedefs.pop(name, None)
        return frame.heap.pop(name)

    def declare_val(self, name: str, value: Any) -> Any:
        self.frames[0].heap[name] = value
        return value

    def constants_frame(self) -> Frame:
        """The nearest CONSTANTS frame; the bottom frame always is one."""
        for frame in self.frames:
            if frame.ty == FrameType.CONSTANTS:
                return frame
        return self.frames[-1]

    def declare_const(self, name: str, value: Any) -> Any:
        self.constants_frame().heap[name] = value
        return value

    def heap_to_string(self) -> str:
        lines = []
        for i, frame in enumerate(self.frames):
            names = ", ".join(f"{k}: {v}" for k, v in frame.heap.items())
            lines.append(f"[{i}] {frame.ty.value}: {{{names}}}")
        return "\n".join(lines)


class TypecheckSymTable(SymTable):
    """Frames map names to static types; `typedefs` maps type names to the types they denote.

    `returns` holds one collector per enclosing returnable block, gathering
    the type of every `return` typechecked inside it.
    """

    def __init__(self):
        self.returns: List[List[Type]] = []
        super().__init__()

    def begin_returns(self) -> None:
        self.returns.append([])

    def end_returns(self) -> List[Type]:
        return self.returns.pop()

    def note_return(self, ty: Type, at: Any = None) -> None:
        if not self.returns:
            return
        collected = self.returns[-1]
        if collected and not (collected[0].accepts(ty) or ty.accepts(collected[0])):
            raise TypeCheckError.divergent_returns(collected[0], ty).with_span(at)
        collected.append(ty)

    def _bootstrap(self, constants: Frame) -> None:
        for name, value in primitives().items():
            constants.heap[name] = TYPE_T
            constants.typedefs[name] = value.data

    def get_type_from_ident(self, name: str, at: Any = None) -> Type:
        """The type denoted by the type name `name`."""
        for frame in self._visible():
            if name in frame.typedefs:
                return frame.typedefs[name]
        if self.has_val(name):
            raise TypeCheckError.not_a_type(name).with_span(at)
        err = ScopeError.undeclared(name)
        raise err.with_span(at) if at is not None else err

    def declare_typedef(self, name: str, ty: Type, const: bool = False) -> None:
        frame = self.constants_frame() if const else self.frames[0]
        frame.typedefs[name] = ty

    def save_state(self) -> Tuple[List[Frame], List[List[Type]]]:
        """The current frame stack and return collectors.

        Frames are shared, not copied: loading a saved state later and
        declaring names binds them in the very frames that were saved.
        """
        return list(self.frames), list(self.returns)

    def load_state(self, state: Tuple[List[Frame], List[List[Type]]]) -> None:
        frames, returns = state
        self.frames = deque(frames)
        self.returns = list(returns)


class InterpretSymTable(SymTable):
    """Frames map names to runtime Values; popping runs deferred statements."""

    def __init__(self, defer_on_error: bool = False):
        self.defer_on_error = defer_on_error
        super().__init__()

    def _bootstrap(self, constants: Frame) -> None:
        constants.heap.update(primitives())

    def _run_defers(self, frame: Frame) -> Optional[Any]:
        override = None
        statements, frame.defer = frame.defer, []
        for statement in statements:
            dbg(3, "run defer", statement.reconstruct())
            result = statement.interpret_expr(self)
            if isinstance(result, ReturnValue):
                override = result
        return override

    def pop_frame(self) -> Optional[Any]:
        """Runs the innermost frame's deferred statements, then discards it.

        A deferred `return` overrides the frame's result and is returned.
        """
        try:
            override = self._run_defers(self.frames[0])
        finally:
            super().pop_frame()
        return override

    def flush_defers(self) -> Optional[Any]:
        """Runs the innermost frame's deferred statements without popping it."""
        return self._run_defers(self.frames[0])

    def unwind_frame(self) -> None:
        frame = self.frames[0]
        try:
            if self.defer_on_error and frame.defer:
                self._run_defers(frame)
        finally:
            self.frames.popleft()
