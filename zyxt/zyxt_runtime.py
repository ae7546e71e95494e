"""
The script runner: tokenize, parse, desugar, typecheck and interpret a program.
"""
import sys
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Literal as Lit, Optional, Tuple

from zyxt.zyxt_ast import Block
from zyxt.zyxt_config import RunConfig
from zyxt.zyxt_errors import ZError, ZRuntimeError
from zyxt.zyxt_lexer import tokenize
from zyxt.zyxt_log import dbg, get_verbosity, set_verbosity
from zyxt.zyxt_parser import Parser
from zyxt.zyxt_printer import Printer
from zyxt.zyxt_symtable import InterpretSymTable, TypecheckSymTable
from zyxt.zyxt_values import ReturnValue, Value


@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Lit['success', 'error']
    value: Optional[Value] = None
    exit_code: int = 0
    error: Optional[ZError] = None
    error_message: Optional[str] = None

    def format_error(self) -> str:
        """The error with its location, source context and Zyxt stacktrace."""
        if self.status != 'error':
            return ""
        return str(self.error_message or "Unknown error")


def exit_code_of(value: Optional[Value]) -> int:
    """The program's exit status: its final value when that is an integer, else 0."""
    if value is None:
        return 0
    data = value.data
    if isinstance(data, int) and not isinstance(data, bool):
        return data
    return 0


class ScriptRunner:
    """Compiles and runs Zyxt code.

    The typecheck and runtime symbol tables live as long as the runner, so
    successive `handle_script` calls (one per REPL line) share declarations.
    """

    def __init__(self, config: Optional[RunConfig] = None):
        self.config = config if config is not None else RunConfig(verbosity=get_verbosity())
        set_verbosity(self.config.verbosity)
        if self.config.recursion_limit:
            sys.setrecursionlimit(self.config.recursion_limit)
        self.parser = Parser()
        self.ty_symt = TypecheckSymTable()
        self.val_symt = InterpretSymTable(defer_on_error=self.config.defer_on_error)

    def compile(self, source: str, filename: str = "<script>") -> Block:
        """Tokenizes, parses, desugars and typechecks `source`, returning the core tree."""
        started = time.perf_counter()
        tokens = tokenize(source, filename)
        dbg(1, f"lexed {len(tokens)} tokens in {_ms(started)}")

        started = time.perf_counter()
        tree = self.parser.parse(tokens)
        dbg(1, f"parsed {len(tree.content)} statements in {_ms(started)}")

        started = time.perf_counter()
        core = tree.desugared()
        dbg(1, f"desugared in {_ms(started)}")
        dbg(3, "core:", core.reconstruct())

        started = time.perf_counter()
        ty = core.typecheck(self.ty_symt, add_frame=False)
        dbg(1, f"typechecked to {ty} in {_ms(started)}")
        return core

    def handle_script(self, source_code: str, filename: str = "<script>") -> ExecutionResult:
        """The main entry point to execute a script."""
        ty_depth, val_depth = self.ty_symt.depth, self.val_symt.depth
        ty_snapshot = _snapshot(self.ty_symt)
        try:
            try:
                core = self.compile(source_code, filename)
            except (ZError, RecursionError):
                _restore(self.ty_symt, ty_snapshot)
                raise

            started = time.perf_counter()
            value = core.interpret_expr(self.val_symt, add_frame=False)
            override = self.val_symt.flush_defers()
            if override is not None:
                value = override.value
            if isinstance(value, ReturnValue):
                value = value.value
            dbg(1, f"interpreted in {_ms(started)}")
            dbg(3, self.val_symt.heap_to_string())
            return ExecutionResult(status='success', value=value, exit_code=exit_code_of(value))

        except RecursionError:
            err = ZRuntimeError.recursion()
            return self._error_result(err, source_code, ty_depth, val_depth)
        except ZError as e:
            return self._error_result(e, source_code, ty_depth, val_depth)

    def _error_result(self, err: ZError, source: str, ty_depth: int, val_depth: int) -> ExecutionResult:
        self.ty_symt.returns.clear()
        self.ty_symt.unwind_to(ty_depth)
        while self.val_symt.depth > val_depth:
            try:
                self.val_symt.unwind_frame()
            except ZError as deferred:
                # unwind_frame pops even when a deferred statement fails; the first error wins
                dbg(1, "deferred statement failed while unwinding:", deferred)
        _forget_missing(self.ty_symt, self.val_symt)
        return ExecutionResult(
            status='error',
            exit_code=1,
            error=err,
            error_message=self._format_error(err, source),
        )

    def _format_error(self, err: ZError, source: str) -> str:
        msg = str(err)
        if err.span is not None:
            start = err.span.start
            msg = f"{msg} ({start})"
            context = self._source_context(source, start.line, start.column)
            if context:
                msg += "\n" + context
        elif err.raw:
            msg = f"{msg}\nAt: {err.raw}"
        if self.config.show_stacktrace:
            st = self._format_stacktrace(err)
            if st:
                msg += "\n" + st
        return msg

    def _source_context(self, source: str, line: int, col: Optional[int], radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            ln = str(i).rjust(width)
            content = lines[i - 1]
            out.append(f"{prefix} {ln} | {content}")
            if i == line and col is not None:
                caret = " " * max(col - 1, 0)
                out.append(f"  {' ' * width} | {caret}^")
        return "\n".join(out)

    def _format_stacktrace(self, err: ZError) -> str:
        if not err.stack:
            return ""
        pf = Printer().pformat
        lines = ["Zyxt stacktrace:"]
        for frame_data in err.stack:
            args = ", ".join(f"{k}={pf(v)}" for k, v in frame_data.args.items())
            lines.append(f"  in {frame_data}" + (f" with ({args})" if args else ""))
        return "\n".join(lines)


def _ms(started: float) -> str:
    return f"{(time.perf_counter() - started) * 1000:.2f}ms"


def _snapshot(symt: TypecheckSymTable) -> List[Tuple[Dict[str, Any], Dict[str, Any]]]:
    return [(dict(f.heap), dict(f.typedefs)) for f in symt.frames]


def _restore(symt: TypecheckSymTable, snapshot) -> None:
    """Rolls the typecheck frames back to a snapshot taken before compiling."""
    symt.returns.clear()
    while symt.depth > len(snapshot):
        symt.frames.popleft()
    for frame, (heap, typedefs) in zip(reversed(symt.frames), reversed(snapshot)):
        frame.heap = dict(heap)
        frame.typedefs = dict(typedefs)


def _forget_missing(ty_symt: TypecheckSymTable, val_symt: InterpretSymTable) -> None:
    """Drops static bindings whose runtime binding never happened because
    interpretation stopped early."""
    for ty_frame, val_frame in zip(reversed(ty_symt.frames), reversed(val_symt.frames)):
        for name in [n for n in ty_frame.heap if n not in val_frame.heap]:
            del ty_frame.heap[name]
            ty_frame.typedefs.pop(name, None)
