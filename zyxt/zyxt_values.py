"""
Runtime values of the Zyxt interpreter.
"""

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple, TYPE_CHECKING

from zyxt.zyxt_types import (
    TYPE_T, Type, TypeDefinition, TypeInstance, proc_type,
)

if TYPE_CHECKING:
    from zyxt.zyxt_ast import Block


@dataclass(frozen=True)
class Value:
    """A runtime value: its type plus a Python payload.

    Payloads: int/float/str/bool for primitives, None for unit, a Type for
    type values, a BuiltinProc/UserProc for procedures and a dict of field
    values for class instances.
    """
    ty: Type
    data: Any = None

    def value_ty(self) -> Type:
        return self.ty

    @property
    def is_type(self) -> bool:
        return isinstance(self.data, Type) and self.ty == TYPE_T

    def __str__(self):
        from zyxt.zyxt_printer import Printer
        return Printer().pformat(self)


@dataclass(frozen=True)
class ReturnValue:
    """A value travelling out of a `return` until the nearest block unwraps it."""
    value: Value

    def value_ty(self) -> Type:
        return self.value.value_ty()


class BuiltinProc:
    """A procedure implemented in Python.

    `fn` receives the list of argument Values and returns a Value, or None when
    the arguments are outside what it supports (reported as a runtime error).
    """

    def __init__(self, name: str, arg_types: Sequence[Type], ret: Type, fn: Callable[[List[Value]], Optional[Value]]):
        self.name = name
        self.arg_types = tuple(arg_types)
        self.ret = ret
        self.fn = fn

    @property
    def ty(self) -> Type:
        return proc_type(True, self.arg_types, self.ret)

    def __repr__(self):
        return f"<BuiltinProc {self.name}>"


@dataclass(frozen=True, eq=False)
class UserProc:
    """A procedure literal evaluated at runtime.

    Bodies close over program constants only, so no scope is captured. The
    name is the declared one, taken from the tree when the literal is bound.
    """
    is_fn: bool
    args: Tuple[Tuple[str, Type, Optional[Value]], ...]
    ret: Type
    content: 'Block'
    name: str = "<proc>"

    @property
    def ty(self) -> Type:
        return proc_type(self.is_fn, [a[1] for a in self.args], self.ret)

    def __eq__(self, other):
        if not isinstance(other, UserProc):
            return NotImplemented
        return (self.is_fn, self.args, self.ret, self.content) == (other.is_fn, other.args, other.ret, other.content)

    def __hash__(self):
        return id(self)

    def __repr__(self):
        return f"<UserProc {self.name} {self.ty}>"


def type_value(ty: Type) -> Value:
    return Value(TYPE_T, ty)


def proc_value(proc: Any) -> Value:
    return Value(proc.ty, proc)


def instance_value(definition: TypeDefinition, fields: dict) -> Value:
    return Value(definition.get_instance(), dict(fields))


def payload_type(value: Value) -> Optional[Type]:
    """The type a type value denotes, or None for non-type values."""
    if isinstance(value, Value) and isinstance(value.data, Type):
        return value.data
    return None


def is_instance_value(value: Value) -> bool:
    return isinstance(value.ty, TypeInstance) and isinstance(value.data, dict)
