"""
The static type algebra of Zyxt.

Types are compared structurally; equality is the only dispatch mechanism used
for operator, typecast and compatibility decisions. A TypeDefinition keeps its
namespace members behind LazyType cells, so a member whose type mentions the
enclosing definition is typed once, on first access, and never eagerly.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple


class Type(ABC):
    """Abstract base class for every static type."""

    @abstractmethod
    def implementation(self) -> 'TypeDefinition':
        """The definition whose namespace serves values of this type."""

    def accepts(self, other: 'Type') -> bool:
        """Compatibility check: equality, with `_any` matching anything."""
        return isinstance(self, AnyType) or isinstance(other, AnyType) or self == other

    def unwrap_return(self) -> 'Type':
        return self


class AnyType(Type):
    """The wildcard type `_any`."""
    _instance: Optional['AnyType'] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def implementation(self) -> 'TypeDefinition':
        return ANY_DEF

    def __eq__(self, other):
        return isinstance(other, AnyType)

    def __hash__(self):
        return hash("_any")

    def __str__(self):
        return "_any"

    def __repr__(self):
        return "<AnyType>"


ANY = AnyType()


class LazyType:
    """A namespace member: its payload plus a type computed once, on demand."""
    __slots__ = ("data", "_resolver", "_ty")

    def __init__(self, data: Any, resolver: Optional[Callable[[Any], Type]] = None, ty: Optional[Type] = None):
        if resolver is None and ty is None:
            raise ValueError("LazyType needs a resolver or a resolved type.")
        self.data = data
        self._resolver = resolver
        self._ty = ty

    @property
    def is_resolved(self) -> bool:
        return self._ty is not None

    def get(self) -> Type:
        if self._ty is None:
            self._ty = self._resolver(self.data)
            self._resolver = None
        return self._ty

    def __repr__(self):
        state = str(self._ty) if self._ty is not None else "<unresolved>"
        return f"LazyType({state})"


class TypeDefinition(Type):
    """A type constructor: class, struct, or a built-in like `i32`.

    `implementations` maps method/operator names to LazyType members;
    `inst_fields` maps instance field names to (declared type, default). The
    default is an AST node while typechecking and a Value at runtime.
    """

    def __init__(self,
                 name: Optional[str] = None,
                 inst_name: Optional[str] = None,
                 generics: Sequence[str] = (),
                 implementations: Optional[Dict[str, LazyType]] = None,
                 inst_fields: Optional[Dict[str, Tuple[Type, Any]]] = None):
        self.name = name
        self.inst_name = inst_name
        self.generics = tuple(generics)
        self.implementations: Dict[str, LazyType] = implementations if implementations is not None else {}
        self.inst_fields: Dict[str, Tuple[Type, Any]] = inst_fields if inst_fields is not None else {}

    def implementation(self) -> 'TypeDefinition':
        return TYPE_DEF

    def member(self, name: str) -> Optional[LazyType]:
        return self.implementations.get(name)

    def member_type(self, name: str) -> Optional[Type]:
        lazy = self.implementations.get(name)
        return lazy.get() if lazy is not None else None

    def member_value(self, name: str) -> Any:
        lazy = self.implementations.get(name)
        return lazy.data if lazy is not None else None

    def get_instance(self, type_args: Iterable[Tuple[str, Any]] = ()) -> 'TypeInstance':
        return TypeInstance(self.inst_name or self.name, tuple(type_args), self)

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, TypeDefinition):
            return NotImplemented
        # Member types are deliberately not compared: they may refer back to this definition.
        return (
            self.name == other.name
            and self.inst_name == other.inst_name
            and self.generics == other.generics
            and set(self.implementations) == set(other.implementations)
            and {k: v[0] for k, v in self.inst_fields.items()} == {k: v[0] for k, v in other.inst_fields.items()}
        )

    def __hash__(self):
        return hash((self.name, self.inst_name))

    def __str__(self):
        return self.name or "{unknown}"

    def __repr__(self):
        members = ", ".join(self.implementations)
        fields = ", ".join(self.inst_fields)
        return f"<TypeDefinition {self} for {self.inst_name or '{unknown}'} members=[{members}] fields=[{fields}]>"


class TypeInstance(Type):
    """A concrete use of a TypeDefinition, e.g. `i32` or `proc[ret: i32]`."""

    def __init__(self, name: Optional[str], type_args: Tuple[Tuple[str, Any], ...], implementation: TypeDefinition):
        self.name = strip_type_args(name) if name else name
        self.type_args = tuple(type_args)
        self._implementation = implementation

    def implementation(self) -> TypeDefinition:
        return self._implementation

    def with_type_args(self, type_args: Iterable[Tuple[str, Any]]) -> 'TypeInstance':
        return TypeInstance(self.name, tuple(type_args), self._implementation)

    def type_arg(self, param: str, default: Any = None) -> Any:
        for key, value in self.type_args:
            if key == param:
                return value
        return default

    def __eq__(self, other):
        if self is other:
            return True
        if not isinstance(other, TypeInstance):
            return NotImplemented
        return (
            self.name == other.name
            and self.type_args == other.type_args
            and self._implementation == other._implementation
        )

    def __hash__(self):
        return hash((self.name, len(self.type_args)))

    def __str__(self):
        return format_type_name(self.name or "{unknown}", self.type_args)

    def __repr__(self):
        return f"<TypeInstance {self}>"


class ReturnType(Type):
    """The type flowing out of a `return`, unwrapped by the nearest block."""

    def __init__(self, inner: Type):
        self.inner = inner.unwrap_return()

    def implementation(self) -> TypeDefinition:
        return self.inner.implementation()

    def unwrap_return(self) -> Type:
        return self.inner

    def __eq__(self, other):
        if not isinstance(other, ReturnType):
            return NotImplemented
        return self.inner == other.inner

    def __hash__(self):
        return hash(("return", self.inner))

    def __str__(self):
        return str(self.inner)

    def __repr__(self):
        return f"<ReturnType {self.inner}>"


# =================================================================
# Bracketed type-argument display
# =================================================================

def strip_type_args(name: str) -> str:
    """`proc[ret: i32]` -> `proc`; names without an argument list pass through."""
    if name.endswith("]") and "[" in name:
        return name[:name.index("[")]
    return name


def format_type_arg(arg: Any) -> str:
    if isinstance(arg, bool):
        return "true" if arg else "false"
    if isinstance(arg, (tuple, list)):
        return "(" + ", ".join(format_type_arg(a) for a in arg) + ")"
    return str(arg)


def format_type_name(name: str, type_args: Iterable[Tuple[str, Any]]) -> str:
    base = strip_type_args(name)
    args = ", ".join(f"{k}: {format_type_arg(v)}" for k, v in type_args)
    return f"{base}[{args}]" if args else base


# =================================================================
# Definitions the algebra itself depends on
# =================================================================

TYPE_DEF = TypeDefinition(name="{builtin type}", inst_name="type")
TYPE_T = TYPE_DEF.get_instance()

ANY_DEF = TypeDefinition(name="{builtin _any}", inst_name="_any")

PROC_DEF = TypeDefinition(name="{builtin proc}", inst_name="proc", generics=("is_fn", "args", "ret"))


def proc_type(is_fn: bool, arg_types: Iterable[Type], ret: Type) -> TypeInstance:
    return PROC_DEF.get_instance((("is_fn", bool(is_fn)), ("args", tuple(arg_types)), ("ret", ret)))


def proc_signature(ty: Type) -> Optional[Tuple[bool, Tuple[Type, ...], Type]]:
    """(is_fn, arg types, return type) of a procedure type, else None."""
    if isinstance(ty, TypeInstance) and ty.implementation() is PROC_DEF:
        return ty.type_arg("is_fn", False), ty.type_arg("args", ()), ty.type_arg("ret", ANY)
    return None
