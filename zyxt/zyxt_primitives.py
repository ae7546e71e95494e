"""
The catalog of built-in primitive types and their operator tables.

Each primitive is a TypeDefinition whose `implementations` namespace holds its
operator methods (`_add`, `_eq`, `_typecast`, ...) as BuiltinProcs. The tables
are populated once, on the first call to `primitives()`, and are read-only
afterwards.
"""

import math
import struct
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional

from zyxt.zyxt_errors import ZRuntimeError
from zyxt.zyxt_types import (
    ANY, PROC_DEF, TYPE_DEF, TYPE_T, LazyType, Type, TypeDefinition, TypeInstance,
)
from zyxt.zyxt_values import BuiltinProc, Value, proc_value, type_value

# name -> (bit width, signed); None width means arbitrary precision
INT_KINDS = {
    "i8": (8, True), "i16": (16, True), "i32": (32, True), "i64": (64, True),
    "i128": (128, True), "isize": (64, True), "ibig": (None, True),
    "u8": (8, False), "u16": (16, False), "u32": (32, False), "u64": (64, False),
    "u128": (128, False), "usize": (64, False), "ubig": (None, False),
}
FLOAT_KINDS = {"f32": 32, "f64": 64}


def _builtin(inst_name: str) -> TypeDefinition:
    return TypeDefinition(name=f"{{builtin {inst_name}}}", inst_name=inst_name)


DEFINITIONS: Dict[str, TypeDefinition] = {name: _builtin(name) for name in ("str", "bool", "_unit")}
DEFINITIONS.update({name: _builtin(name) for name in INT_KINDS})
DEFINITIONS.update({name: _builtin(name) for name in FLOAT_KINDS})
DEFINITIONS["type"] = TYPE_DEF
DEFINITIONS["proc"] = PROC_DEF

INSTANCES: Dict[str, TypeInstance] = {name: d.get_instance() for name, d in DEFINITIONS.items()}
INSTANCES["type"] = TYPE_T

STR_T = INSTANCES["str"]
BOOL_T = INSTANCES["bool"]
UNIT_T = INSTANCES["_unit"]
I32_T = INSTANCES["i32"]
I64_T = INSTANCES["i64"]
IBIG_T = INSTANCES["ibig"]
F64_T = INSTANCES["f64"]

_INT_TYPES = frozenset(INSTANCES[name] for name in INT_KINDS)

UNIT = Value(UNIT_T, None)
TRUE = Value(BOOL_T, True)
FALSE = Value(BOOL_T, False)

# Names bound in every symbol table's constants frame
PRIM_NAMES = (
    "str", "bool", "i8", "i16", "i32", "i64", "i128", "isize", "ibig",
    "u8", "u16", "u32", "u64", "u128", "usize", "ubig", "f32", "f64",
    "_unit", "_any", "type",
)

_registry: Optional[Mapping[str, Value]] = None


def primitives() -> Mapping[str, Value]:
    """Returns the process-wide table of primitive type values, building it once."""
    global _registry
    if _registry is None:
        for name, (bits, signed) in INT_KINDS.items():
            _install_int(name, bits, signed)
        for name, bits in FLOAT_KINDS.items():
            _install_float(name, bits)
        _install_str()
        _install_bool()
        _install_unit()
        _install_type()
        table = {name: type_value(INSTANCES[name]) for name in PRIM_NAMES if name != "_any"}
        table["_any"] = type_value(ANY)
        _registry = MappingProxyType(table)
    return _registry


def bool_value(b: bool) -> Value:
    return TRUE if b else FALSE


def int_literal_type(n: int) -> TypeInstance:
    """The type of an integer literal: i32 if it fits, else i64, else ibig."""
    for name in ("i32", "i64"):
        lo, hi = _int_bounds(*INT_KINDS[name])
        if lo <= n <= hi:
            return INSTANCES[name]
    return IBIG_T


def display_str(value: Value) -> str:
    """Text used by `~` and str typecasts: strings unquoted, the rest printed."""
    if value.ty == STR_T:
        return value.data
    from zyxt.zyxt_printer import Printer
    return Printer().pformat(value)


# =================================================================
# Registration helpers
# =================================================================

def _register(defn: TypeDefinition, name: str, arg_types: List[Type], ret: Type,
              fn: Callable[[List[Value]], Optional[Value]]) -> None:
    proc = BuiltinProc(f"{defn.inst_name}.{name}", arg_types, ret, fn)
    defn.implementations[name] = LazyType(proc_value(proc), Value.value_ty)


def _register_const(defn: TypeDefinition, name: str, value: Value) -> None:
    defn.implementations[name] = LazyType(value, Value.value_ty)


def _register_comparisons(defn: TypeDefinition, ty: Type, ops: Dict[str, Callable]) -> None:
    for name, op in ops.items():
        _register(defn, name, [ty, ty], BOOL_T, lambda x, op=op: bool_value(op(x[0].data, x[1].data)))


def _register_concat(defn: TypeDefinition, ty: Type) -> None:
    _register(defn, "_concat", [ty, ANY], STR_T,
              lambda x: Value(STR_T, display_str(x[0]) + display_str(x[1])))


def _register_typecast(defn: TypeDefinition, ty: Type, cast: Callable[[Value, Type], Optional[Value]]) -> None:
    def typecast(x: List[Value]) -> Optional[Value]:
        target = x[1].data
        if target == TYPE_T:
            return type_value(ty)
        if target == ty:
            return x[0]
        return cast(x[0], target)
    _register(defn, "_typecast", [ty, TYPE_T], ANY, typecast)


_COMPARISONS = {
    "_eq": lambda a, b: a == b,
    "_ne": lambda a, b: a != b,
    "_lt": lambda a, b: a < b,
    "_le": lambda a, b: a <= b,
    "_gt": lambda a, b: a > b,
    "_ge": lambda a, b: a >= b,
}


def _int_bounds(bits: Optional[int], signed: bool):
    if bits is None:
        return (-math.inf if signed else 0), math.inf
    if signed:
        return -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    return 0, (1 << bits) - 1


def _make_int(name: str, n: int) -> Optional[Value]:
    lo, hi = _int_bounds(*INT_KINDS[name])
    if lo <= n <= hi:
        return Value(INSTANCES[name], n)
    return None


def _make_float(name: str, f: float) -> Value:
    if FLOAT_KINDS[name] == 32 and math.isfinite(f):
        f = struct.unpack("f", struct.pack("f", f))[0]
    return Value(INSTANCES[name], f)


def _trunc_div(a: int, b: int) -> int:
    if b == 0:
        raise ZRuntimeError.division_by_zero()
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def _trunc_rem(a: int, b: int) -> int:
    return a - b * _trunc_div(a, b)


def _cast_number(value: Value, target: Type) -> Optional[Value]:
    """Casts an int, float or bool payload to another primitive."""
    n = value.data
    for name in INT_KINDS:
        if target == INSTANCES[name]:
            if isinstance(n, float) and not math.isfinite(n):
                return None
            return _make_int(name, int(n))
    for name in FLOAT_KINDS:
        if target == INSTANCES[name]:
            return _make_float(name, float(n))
    if target == STR_T:
        return Value(STR_T, display_str(value))
    if target == BOOL_T:
        return bool_value(n != 0)
    return None


# =================================================================
# Per-type tables
# =================================================================

def _install_int(name: str, bits: Optional[int], signed: bool) -> None:
    defn = DEFINITIONS[name]
    ty = INSTANCES[name]
    _register_const(defn, "_default", Value(ty, 0))
    arith = {
        "_add": lambda a, b: a + b,
        "_sub": lambda a, b: a - b,
        "_mul": lambda a, b: a * b,
        "_div": _trunc_div,
        "_rem": _trunc_rem,
    }
    for op_name, op in arith.items():
        _register(defn, op_name, [ty, ty], ty, lambda x, op=op: _make_int(name, op(x[0].data, x[1].data)))
    _register_comparisons(defn, ty, _COMPARISONS)
    _register(defn, "_un_add", [ty], ty, lambda x: x[0])
    if signed:
        _register(defn, "_un_sub", [ty], ty, lambda x: _make_int(name, -x[0].data))
    _register_concat(defn, ty)
    _register_typecast(defn, ty, _cast_number)


def _install_float(name: str, bits: int) -> None:
    defn = DEFINITIONS[name]
    ty = INSTANCES[name]

    def div(a: float, b: float) -> float:
        if b == 0:
            raise ZRuntimeError.division_by_zero()
        return a / b

    def rem(a: float, b: float) -> float:
        if b == 0:
            raise ZRuntimeError.division_by_zero()
        return math.fmod(a, b)

    _register_const(defn, "_default", Value(ty, 0.0))
    arith = {
        "_add": lambda a, b: a + b,
        "_sub": lambda a, b: a - b,
        "_mul": lambda a, b: a * b,
        "_div": div,
        "_rem": rem,
    }
    for op_name, op in arith.items():
        _register(defn, op_name, [ty, ty], ty, lambda x, op=op: _make_float(name, op(x[0].data, x[1].data)))
    _register_comparisons(defn, ty, _COMPARISONS)
    _register(defn, "_un_add", [ty], ty, lambda x: x[0])
    _register(defn, "_un_sub", [ty], ty, lambda x: _make_float(name, -x[0].data))
    _register_concat(defn, ty)
    _register_typecast(defn, ty, _cast_number)


def _install_str() -> None:
    defn = DEFINITIONS["str"]

    def cast(value: Value, target: Type) -> Optional[Value]:
        s = value.data
        if target == BOOL_T:
            return bool_value(s != "")
        try:
            for name in INT_KINDS:
                if target == INSTANCES[name]:
                    return _make_int(name, int(s.strip()))
            for name in FLOAT_KINDS:
                if target == INSTANCES[name]:
                    return _make_float(name, float(s.strip()))
        except ValueError:
            return None
        return None

    _register_const(defn, "_default", Value(STR_T, ""))
    _register_comparisons(defn, STR_T, _COMPARISONS)
    _register_concat(defn, STR_T)
    def repeat(x: List[Value]) -> Optional[Value]:
        n = x[1].data
        if x[1].ty not in _INT_TYPES or n < 0:
            return None
        return Value(STR_T, x[0].data * n)

    # Any integer kind repeats; negative counts fail at runtime
    _register(defn, "_mul", [STR_T, ANY], STR_T, repeat)
    _register_typecast(defn, STR_T, cast)


def _install_bool() -> None:
    defn = DEFINITIONS["bool"]
    _register_const(defn, "_default", FALSE)
    _register_comparisons(defn, BOOL_T, {"_eq": _COMPARISONS["_eq"], "_ne": _COMPARISONS["_ne"]})
    _register(defn, "_not", [BOOL_T], BOOL_T, lambda x: bool_value(not x[0].data))
    _register_concat(defn, BOOL_T)
    _register_typecast(defn, BOOL_T, lambda v, t: _cast_number(Value(v.ty, int(v.data)), t)
                       if t != STR_T else Value(STR_T, display_str(v)))


def _install_unit() -> None:
    defn = DEFINITIONS["_unit"]
    _register_const(defn, "_default", UNIT)
    _register_comparisons(defn, UNIT_T, {"_eq": _COMPARISONS["_eq"], "_ne": _COMPARISONS["_ne"]})
    _register_concat(defn, UNIT_T)
    _register_typecast(defn, UNIT_T, lambda v, t: Value(STR_T, display_str(v)) if t == STR_T else None)


def _install_type() -> None:
    _register_comparisons(TYPE_DEF, TYPE_T, {"_eq": _COMPARISONS["_eq"], "_ne": _COMPARISONS["_ne"]})
    _register_concat(TYPE_DEF, TYPE_T)
    _register_typecast(TYPE_DEF, TYPE_T, lambda v, t: Value(STR_T, display_str(v)) if t == STR_T else None)
