"""
The Zyxt syntax tree.

Every node implements the same contract:

- `span()` is the union of its spanned children and its own keyword and
  delimiter tokens, or None when nothing is spanned.
- `typecheck(symt)` typechecks children first and returns the node's static
  Type; only Declare, Delete and Class change the scope they are given.
- `desugared()` returns an equivalent tree over the core node set. It is a
  fixed point: desugaring a desugared tree returns an equal tree.
- `interpret_expr(symt)` evaluates the node and returns a Value (UNIT for
  statements with no result).

Nodes are frozen dataclasses. Tokens and `raw` source text do not take part in
equality, so trees compare by structure.
"""

from dataclasses import dataclass, field, replace
from typing import Any, List, Optional, Tuple

from zyxt.zyxt_errors import TypeCheckError, ZError, ZRuntimeError
from zyxt.zyxt_log import dbg
from zyxt.zyxt_primitives import BOOL_T, FALSE, TRUE, UNIT, UNIT_T, bool_value
from zyxt.zyxt_symtable import FrameData, FrameType
from zyxt.zyxt_tokens import Token, TokenType, merge_spans
from zyxt.zyxt_types import (
    ANY, TYPE_T, LazyType, ReturnType, Type, TypeDefinition, TypeInstance,
    proc_signature, proc_type,
)
from zyxt.zyxt_values import (
    BuiltinProc, ReturnValue, UserProc, Value, instance_value, is_instance_value,
    payload_type, proc_value, type_value,
)

BINARY_METHODS = {
    TokenType.ADD: "_add",
    TokenType.SUB: "_sub",
    TokenType.MUL: "_mul",
    TokenType.DIV: "_div",
    TokenType.MOD: "_rem",
    TokenType.EQ: "_eq",
    TokenType.NE: "_ne",
    TokenType.LT: "_lt",
    TokenType.LE: "_le",
    TokenType.GT: "_gt",
    TokenType.GE: "_ge",
    TokenType.CONCAT: "_concat",
}

UNARY_METHODS = {
    TokenType.ADD: "_un_add",
    TokenType.SUB: "_un_sub",
    TokenType.NOT: "_not",
}


def _token():
    return field(default=None, compare=False, kw_only=True)


# =================================================================
# Helpers shared by the nodes
# =================================================================

def compatible(expected: Type, actual: Type) -> bool:
    """Whether a value of type `actual` may stand where `expected` is declared."""
    expected, actual = expected.unwrap_return(), actual.unwrap_return()
    if expected.accepts(actual):
        return True
    # A class expression is a type value
    return expected == TYPE_T and isinstance(actual, TypeDefinition)


def check_type(expected: Type, actual: Type, at: Any) -> None:
    if not compatible(expected, actual):
        raise TypeCheckError.mismatch(expected, actual).with_span(at)


def resolve_type_expr(node: 'Ast', symt) -> Type:
    """The type a type expression denotes, during typechecking."""
    if isinstance(node, Ident):
        return symt.get_type_from_ident(node.name, node)
    ty = node.typecheck(symt)
    if isinstance(ty, TypeDefinition):
        return ty.get_instance()
    raise TypeCheckError.not_a_type(node.describe()).with_span(node)


def resolve_type_value(node: 'Ast', symt) -> Type:
    """The type a type expression denotes, at runtime."""
    value = node.interpret_expr(symt)
    ty = payload_type(value)
    if ty is None:
        raise TypeCheckError.not_a_type(node.describe()).with_span(node)
    if isinstance(ty, TypeDefinition):
        return ty.get_instance()
    return ty


def _namespace(ty: Type) -> TypeDefinition:
    return ty if isinstance(ty, TypeDefinition) else ty.implementation()


def call_proc(proc: Value, args: List[Value], symt, site: 'Ast') -> Value:
    """Calls a procedure, builtin or class value with already evaluated arguments."""
    data = proc.data
    if isinstance(data, BuiltinProc):
        if len(args) != len(data.arg_types):
            raise TypeCheckError.wrong_arg_count(len(data.arg_types), len(args)).with_span(site)
        for param, arg in zip(data.arg_types, args):
            check_type(param, arg.ty, site)
        try:
            result = data.fn(args)
        except ZError as e:
            raise e.with_span(site)
        if result is None:
            raise ZRuntimeError.failed_call(data.name, args).with_span(site)
        return result

    if isinstance(data, UserProc):
        return _call_user_proc(data, args, symt, site)

    if proc.is_type and isinstance(data, TypeDefinition):
        return _construct(data, args, symt, site)

    raise TypeCheckError.not_callable(proc.ty).with_span(site)


def _call_user_proc(proc: UserProc, args: List[Value], symt, site: 'Ast') -> Value:
    if len(args) > len(proc.args):
        raise TypeCheckError.wrong_arg_count(len(proc.args), len(args)).with_span(site)
    frame_data = FrameData(site.span(), site.describe())
    symt.add_frame(frame_data, FrameType.FUNCTION)
    try:
        for i, (name, ty, default) in enumerate(proc.args):
            if i < len(args):
                value = args[i]
                check_type(ty, value.ty, site)
            elif default is not None:
                value = default
            else:
                raise ZRuntimeError.missing_argument(name).with_span(site)
            frame_data.args[name] = value
            symt.declare_val(name, value)
        dbg(3, "call", frame_data)
        result = proc.content.interpret_expr(symt, add_frame=False)
    except ZError as e:
        e.add_frame_trace(frame_data)
        symt.unwind_frame()
        raise
    try:
        override = symt.pop_frame()
    except ZError as e:
        e.add_frame_trace(frame_data)
        raise
    if override is not None:
        result = override.value
    return result


def _construct(definition: TypeDefinition, args: List[Value], symt, site: 'Ast') -> Value:
    init = definition.member_value("_init")
    if init is not None:
        return call_proc(init, args, symt, site)
    fields = list(definition.inst_fields.items())
    if len(args) > len(fields):
        raise TypeCheckError.wrong_arg_count(len(fields), len(args)).with_span(site)
    values = {}
    for i, (name, (ty, default)) in enumerate(fields):
        if i < len(args):
            check_type(ty, args[i].ty, site)
            values[name] = args[i]
        elif default is not None:
            values[name] = default
        else:
            raise ZRuntimeError.missing_argument(name).with_span(site)
    return instance_value(definition, values)


def cast_value(value: Value, target: Type, symt, site: 'Ast') -> Value:
    if target == ANY or value.ty == target:
        return value
    caster = value.ty.implementation().member_value("_typecast")
    if caster is None:
        raise TypeCheckError.not_castable(value.ty).with_span(site)
    return call_proc(caster, [value, type_value(target)], symt, site)


# =================================================================
# Node base
# =================================================================

@dataclass(frozen=True)
class Ast:
    """Base class of every syntax tree node."""
    raw: str = field(default="", compare=False, kw_only=True)

    def _spanned(self) -> List[Any]:
        return []

    def span(self):
        return merge_spans(*self._spanned())

    def typecheck(self, symt) -> Type:
        raise NotImplementedError(type(self).__name__)

    def desugared(self) -> 'Ast':
        return self

    def interpret_expr(self, symt) -> Value:
        raise NotImplementedError(type(self).__name__)

    def reconstruct(self) -> str:
        raise NotImplementedError(type(self).__name__)

    def describe(self) -> str:
        """Source text of the node for diagnostics."""
        return self.raw.strip() or self.reconstruct()


# =================================================================
# Leaves
# =================================================================

@dataclass(frozen=True)
class Literal(Ast):
    value: Value
    token: Optional[Token] = _token()

    def _spanned(self):
        return [self.token]

    def typecheck(self, symt):
        return self.value.ty

    def interpret_expr(self, symt):
        return self.value

    def reconstruct(self):
        if self.token is not None:
            return self.token.value
        return str(self.value)


@dataclass(frozen=True)
class Ident(Ast):
    name: str
    token: Optional[Token] = _token()

    def _spanned(self):
        return [self.token]

    def typecheck(self, symt):
        return symt.get_val(self.name, self)

    def interpret_expr(self, symt):
        return symt.get_val(self.name, self)

    def reconstruct(self):
        return self.name


# =================================================================
# Operators
# =================================================================

def _as_bool(node: Ast) -> Ast:
    """`node @ bool`, unless the node already is exactly that cast."""
    if (isinstance(node, BinaryOpr) and node.ty == TokenType.TYPECAST
            and isinstance(node.operand2, Ident) and node.operand2.name == "bool"):
        return node
    return BinaryOpr(TokenType.TYPECAST, node, Ident("bool"))


@dataclass(frozen=True)
class BinaryOpr(Ast):
    ty: TokenType
    operand1: Ast
    operand2: Ast
    opr: Optional[Token] = _token()

    def _spanned(self):
        return [self.operand1, self.opr, self.operand2]

    def desugared(self):
        op1 = self.operand1.desugared()
        op2 = self.operand2.desugared()
        match self.ty:
            case TokenType.AND | TokenType.OR:
                return replace(self, operand1=_as_bool(op1), operand2=_as_bool(op2))
            case TokenType.TYPECAST:
                return replace(self, operand1=op1, operand2=op2)
        member = Member(op1, BINARY_METHODS[self.ty], is_method=True, name_token=self.opr)
        dbg(3, "desugar", self.reconstruct(), "->", f"{op1.reconstruct()}.{member.name}(...)")
        return Call(member, [op2], raw=self.raw)

    def typecheck(self, symt):
        match self.ty:
            case TokenType.AND | TokenType.OR:
                check_type(BOOL_T, self.operand1.typecheck(symt), self.operand1)
                check_type(BOOL_T, self.operand2.typecheck(symt), self.operand2)
                return BOOL_T
            case TokenType.TYPECAST:
                source = self.operand1.typecheck(symt).unwrap_return()
                target = resolve_type_expr(self.operand2, symt)
                if source == ANY or target == ANY or source == target:
                    return target
                if source.implementation().member("_typecast") is None:
                    raise TypeCheckError.not_castable(source).with_span(self.operand1)
                return target
        return self.desugared().typecheck(symt)

    def interpret_expr(self, symt):
        match self.ty:
            case TokenType.AND:
                if not self.operand1.interpret_expr(symt).data:
                    return FALSE
                return bool_value(bool(self.operand2.interpret_expr(symt).data))
            case TokenType.OR:
                if self.operand1.interpret_expr(symt).data:
                    return TRUE
                return bool_value(bool(self.operand2.interpret_expr(symt).data))
            case TokenType.TYPECAST:
                value = self.operand1.interpret_expr(symt)
                target = resolve_type_value(self.operand2, symt)
                return cast_value(value, target, symt, self)
        return self.desugared().interpret_expr(symt)

    def reconstruct(self):
        return f"{self.operand1.reconstruct()} {self.ty.value} {self.operand2.reconstruct()}"


@dataclass(frozen=True)
class UnaryOpr(Ast):
    ty: TokenType
    operand: Ast
    opr: Optional[Token] = _token()

    def _spanned(self):
        return [self.opr, self.operand]

    def desugared(self):
        member = Member(self.operand.desugared(), UNARY_METHODS[self.ty], is_method=True, name_token=self.opr)
        return Call(member, [], raw=self.raw)

    def typecheck(self, symt):
        return self.desugared().typecheck(symt)

    def interpret_expr(self, symt):
        return self.desugared().interpret_expr(symt)

    def reconstruct(self):
        return f"{self.ty.value}{self.operand.reconstruct()}"


# =================================================================
# Access and calls
# =================================================================

@dataclass(frozen=True)
class Member(Ast):
    """`parent.name`. As the callee of a Call it is a method access."""
    parent: Ast
    name: str
    is_method: bool = False
    dot: Optional[Token] = _token()
    name_token: Optional[Token] = _token()

    def _spanned(self):
        return [self.parent, self.dot, self.name_token]

    def desugared(self):
        return replace(self, parent=self.parent.desugared())

    def static_member(self, symt) -> Tuple[Type, Optional[Type]]:
        """(member type, receiver type) where the receiver is None for
        accesses that do not pass the parent as the first argument."""
        parent_ty = self.parent.typecheck(symt).unwrap_return()
        if parent_ty == ANY:
            return ANY, None
        if isinstance(parent_ty, TypeInstance) and self.name in parent_ty.implementation().inst_fields:
            return parent_ty.implementation().inst_fields[self.name][0], None
        member_ty = parent_ty.implementation().member_type(self.name)
        if member_ty is not None:
            return member_ty, parent_ty
        if parent_ty == TYPE_T or isinstance(parent_ty, TypeDefinition):
            denoted = parent_ty if isinstance(parent_ty, TypeDefinition) else resolve_type_expr(self.parent, symt)
            member_ty = _namespace(denoted).member_type(self.name)
            if member_ty is not None:
                return member_ty, None
        raise TypeCheckError.no_member(parent_ty, self.name).with_span(self)

    def runtime_member(self, symt) -> Tuple[Value, Optional[Value]]:
        """(member value, receiver) mirroring static_member."""
        parent = self.parent.interpret_expr(symt)
        if is_instance_value(parent) and self.name in parent.data:
            return parent.data[self.name], None
        member = parent.ty.implementation().member_value(self.name)
        if member is not None:
            return member, parent
        if parent.is_type:
            member = _namespace(parent.data).member_value(self.name)
            if member is not None:
                return member, None
        raise TypeCheckError.no_member(parent.ty, self.name).with_span(self)

    def typecheck(self, symt):
        return self.static_member(symt)[0]

    def interpret_expr(self, symt):
        return self.runtime_member(symt)[0]

    def reconstruct(self):
        return f"{self.parent.reconstruct()}.{self.name}"


@dataclass(frozen=True)
class Call(Ast):
    callee: Ast
    args: List[Ast] = field(default_factory=list)
    paren_open: Optional[Token] = _token()
    paren_close: Optional[Token] = _token()

    def _spanned(self):
        return [self.callee, self.paren_open, *self.args, self.paren_close]

    def desugared(self):
        return replace(self, callee=self.callee.desugared(), args=[a.desugared() for a in self.args])

    def typecheck(self, symt):
        arg_nodes: List[Ast] = list(self.args)
        if isinstance(self.callee, Member) and self.callee.is_method:
            callee_ty, receiver = self.callee.static_member(symt)
            arg_types = [a.typecheck(symt) for a in self.args]
            if receiver is not None:
                arg_types.insert(0, receiver)
                arg_nodes.insert(0, self.callee.parent)
        else:
            callee_ty = self.callee.typecheck(symt)
            arg_types = [a.typecheck(symt) for a in self.args]
        return self._check_call(callee_ty.unwrap_return(), arg_types, arg_nodes)

    def _check_call(self, callee_ty: Type, arg_types: List[Type], arg_nodes: List[Ast]) -> Type:
        if callee_ty == ANY:
            return ANY
        if isinstance(callee_ty, TypeDefinition):
            init = callee_ty.member_type("_init")
            if init is not None:
                return self._check_call(init, arg_types, arg_nodes)
            fields = list(callee_ty.inst_fields.items())
            if len(arg_types) > len(fields):
                raise TypeCheckError.wrong_arg_count(len(fields), len(arg_types)).with_span(self)
            for i, (name, (field_ty, default)) in enumerate(fields):
                if i < len(arg_types):
                    check_type(field_ty, arg_types[i], arg_nodes[i])
                elif default is None:
                    raise TypeCheckError.wrong_arg_count(len(fields), len(arg_types)).with_span(self)
            return callee_ty.get_instance()
        signature = proc_signature(callee_ty)
        if signature is None:
            raise TypeCheckError.not_callable(callee_ty).with_span(self.callee)
        _, params, ret = signature
        if len(arg_types) > len(params):
            raise TypeCheckError.wrong_arg_count(len(params), len(arg_types)).with_span(self)
        for param, arg_ty, node in zip(params, arg_types, arg_nodes):
            check_type(param, arg_ty, node)
        return ret

    def interpret_expr(self, symt):
        if isinstance(self.callee, Member) and self.callee.is_method:
            proc, receiver = self.callee.runtime_member(symt)
            args = [a.interpret_expr(symt) for a in self.args]
            if receiver is not None:
                args.insert(0, receiver)
        else:
            proc = self.callee.interpret_expr(symt)
            args = [a.interpret_expr(symt) for a in self.args]
        return call_proc(proc, args, symt, self)

    def reconstruct(self):
        args = ", ".join(a.reconstruct() for a in self.args)
        return f"{self.callee.reconstruct()}({args})"


# =================================================================
# Blocks and control flow
# =================================================================

@dataclass(frozen=True)
class Block(Ast):
    content: List[Ast] = field(default_factory=list)
    brace_open: Optional[Token] = _token()
    brace_close: Optional[Token] = _token()

    def _spanned(self):
        return [self.brace_open, *self.content, self.brace_close]

    def desugared(self):
        return replace(self, content=[c.desugared() for c in self.content])

    def typecheck(self, symt, add_frame: bool = True, returnable: bool = True):
        """`returnable` blocks absorb the `return`s inside them; If branches
        pass them on to the enclosing block."""
        if add_frame:
            symt.add_frame()
        if returnable:
            symt.begin_returns()
        last: Type = UNIT_T
        last_node: Optional[Ast] = None
        try:
            for child in self.content:
                last = child.typecheck(symt)
                last_node = child
        finally:
            returns = symt.end_returns() if returnable else []
            if add_frame:
                symt.pop_frame()
        if not returnable:
            return last
        if returns:
            if not isinstance(last, ReturnType):
                check_type(returns[0], last, last_node)
            return returns[0]
        return last.unwrap_return()

    def interpret_expr(self, symt, add_frame: bool = True, returnable: bool = True):
        if add_frame:
            symt.add_frame()
        result: Any = UNIT
        try:
            for child in self.content:
                result = child.interpret_expr(symt)
                if isinstance(result, ReturnValue):
                    break
        except ZError:
            if add_frame:
                symt.unwind_frame()
            raise
        if add_frame:
            override = symt.pop_frame()
            if override is not None:
                result = override
        if returnable and isinstance(result, ReturnValue):
            return result.value
        return result

    def reconstruct(self):
        inner = "; ".join(c.reconstruct() for c in self.content)
        return f"{{{inner}}}"


@dataclass(frozen=True)
class Condition(Ast):
    """One `if`/`elif`/`else` arm. `condition` is None for `else`."""
    condition: Optional[Ast]
    body: Block
    keyword: Optional[Token] = _token()

    def _spanned(self):
        return [self.keyword, self.condition, self.body]

    def desugared(self):
        condition = self.condition.desugared() if self.condition is not None else None
        return replace(self, condition=condition, body=self.body.desugared())

    def typecheck(self, symt):
        if self.condition is not None:
            check_type(BOOL_T, self.condition.typecheck(symt), self.condition)
        return self.body.typecheck(symt, returnable=False)

    def interpret_expr(self, symt):
        return self.body.interpret_expr(symt, returnable=False)

    def reconstruct(self):
        keyword = self.keyword.value if self.keyword is not None else ("if" if self.condition else "else")
        head = f"{keyword} {self.condition.reconstruct()} " if self.condition is not None else f"{keyword} "
        return head + self.body.reconstruct()


@dataclass(frozen=True)
class If(Ast):
    conditions: List[Condition] = field(default_factory=list)

    def _spanned(self):
        return list(self.conditions)

    @property
    def has_else(self) -> bool:
        return any(c.condition is None for c in self.conditions)

    def desugared(self):
        return replace(self, conditions=[c.desugared() for c in self.conditions])

    def typecheck(self, symt):
        branches = [(c.typecheck(symt), c) for c in self.conditions]
        if not self.has_else:
            return UNIT_T
        values = [(ty, c) for ty, c in branches if not isinstance(ty, ReturnType)]
        if not values:
            return branches[0][0]
        first = values[0][0]
        for ty, c in values[1:]:
            if not (compatible(first, ty) or compatible(ty, first)):
                raise TypeCheckError.mismatch(first, ty).with_span(c.body)
        return first

    def interpret_expr(self, symt):
        for c in self.conditions:
            if c.condition is None or c.condition.interpret_expr(symt).data:
                result = c.interpret_expr(symt)
                if self.has_else or isinstance(result, ReturnValue):
                    return result
                return UNIT
        return UNIT

    def reconstruct(self):
        return " ".join(c.reconstruct() for c in self.conditions)


# =================================================================
# Bindings
# =================================================================

@dataclass(frozen=True)
class Declare(Ast):
    """`let x = ...`, `x := ...`, `const x: T = ...` and `inst` fields."""
    target: Ident
    content: Ast
    flags: Tuple[str, ...] = ()
    ty: Optional[Ast] = None
    let: Optional[Token] = _token()
    opr: Optional[Token] = _token()
    flag_tokens: Tuple[Token, ...] = field(default=(), compare=False, kw_only=True)

    def _spanned(self):
        return [self.let, *self.flag_tokens, self.target, self.ty, self.opr, self.content]

    @property
    def is_const(self) -> bool:
        return "const" in self.flags

    @property
    def is_inst(self) -> bool:
        return "inst" in self.flags

    def desugared(self):
        content = self.content.desugared()
        if isinstance(content, (Class, Procedure)) and content.name is None:
            content = replace(content, name=self.target.name)
        ty = self.ty.desugared() if self.ty is not None else None
        return replace(self, content=content, ty=ty)

    def _bind(self, symt, value) -> None:
        if self.is_const:
            symt.declare_const(self.target.name, value)
        else:
            symt.declare_val(self.target.name, value)

    def typecheck(self, symt):
        annotation = resolve_type_expr(self.ty, symt) if self.ty is not None else None
        definition = None
        if isinstance(self.content, Class):
            # Bound before the body is typechecked so its members may name it
            definition = self.content.new_definition()
            self._bind(symt, definition)
            symt.declare_typedef(self.target.name, definition.get_instance(), self.is_const)
        elif isinstance(self.content, Procedure):
            signature = annotation if proc_signature(annotation or ANY) else self.content.declared_type(symt)
            if signature is not None:
                self._bind(symt, signature)

        if definition is not None:
            content_ty = self.content.typecheck(symt, definition=definition)
        else:
            content_ty = self.content.typecheck(symt)
        if annotation is not None:
            check_type(annotation, content_ty, self.content)
        ty = annotation if annotation is not None and annotation != TYPE_T else content_ty
        self._bind(symt, ty)
        if isinstance(content_ty, TypeDefinition):
            symt.declare_typedef(self.target.name, content_ty.get_instance(), self.is_const)
        return ty

    def interpret_expr(self, symt):
        if isinstance(self.content, Class):
            definition = self.content.new_definition()
            self._bind(symt, type_value(definition))
            value = self.content.interpret_expr(symt, definition=definition)
        else:
            value = self.content.interpret_expr(symt)
        self._bind(symt, value)
        return value

    def reconstruct(self):
        flags = "".join(f"{f} " for f in self.flags)
        ty = f": {self.ty.reconstruct()}" if self.ty is not None else ""
        return f"let {flags}{self.target.name}{ty} = {self.content.reconstruct()}"


@dataclass(frozen=True)
class Set(Ast):
    target: Ident
    content: Ast
    opr: Optional[Token] = _token()

    def _spanned(self):
        return [self.target, self.opr, self.content]

    def desugared(self):
        return replace(self, content=self.content.desugared())

    def typecheck(self, symt):
        declared = symt.get_val(self.target.name, self.target)
        new_ty = self.content.typecheck(symt)
        check_type(declared, new_ty, self.content)
        symt.set_val(self.target.name, declared, self)
        return new_ty

    def interpret_expr(self, symt):
        value = self.content.interpret_expr(symt)
        symt.set_val(self.target.name, value, self)
        return value

    def reconstruct(self):
        return f"{self.target.name} = {self.content.reconstruct()}"


@dataclass(frozen=True)
class Delete(Ast):
    names: List[Ident] = field(default_factory=list)
    keyword: Optional[Token] = _token()

    def _spanned(self):
        return [self.keyword, *self.names]

    def typecheck(self, symt):
        for name in self.names:
            symt.delete_val(name.name, name)
        return UNIT_T

    def interpret_expr(self, symt):
        for name in self.names:
            symt.delete_val(name.name, name)
        return UNIT

    def reconstruct(self):
        return "del " + ", ".join(n.name for n in self.names)


@dataclass(frozen=True)
class Return(Ast):
    content: Optional[Ast] = None
    keyword: Optional[Token] = _token()

    def _spanned(self):
        return [self.keyword, self.content]

    def desugared(self):
        return replace(self, content=self.content.desugared() if self.content is not None else None)

    def typecheck(self, symt):
        ty = self.content.typecheck(symt).unwrap_return() if self.content is not None else UNIT_T
        symt.note_return(ty, self)
        return ReturnType(ty)

    def interpret_expr(self, symt):
        value = self.content.interpret_expr(symt) if self.content is not None else UNIT
        if isinstance(value, ReturnValue):
            return value
        return ReturnValue(value)

    def reconstruct(self):
        return "return" + (f" {self.content.reconstruct()}" if self.content is not None else "")


@dataclass(frozen=True)
class Defer(Ast):
    content: Ast
    keyword: Optional[Token] = _token()

    def _spanned(self):
        return [self.keyword, self.content]

    def desugared(self):
        return replace(self, content=self.content.desugared())

    def typecheck(self, symt):
        self.content.typecheck(symt)
        return UNIT_T

    def interpret_expr(self, symt):
        symt.add_defer(self.content)
        return UNIT

    def reconstruct(self):
        return f"defer {self.content.reconstruct()}"


# =================================================================
# Procedures and classes
# =================================================================

@dataclass(frozen=True)
class Argument(Ast):
    name: str
    ty: Optional[Ast] = None
    default: Optional[Ast] = None
    name_token: Optional[Token] = _token()

    def _spanned(self):
        return [self.name_token, self.ty, self.default]

    def desugared(self):
        return replace(self,
                       ty=self.ty.desugared() if self.ty is not None else None,
                       default=self.default.desugared() if self.default is not None else None)

    def typecheck(self, symt):
        """The declared type; untyped arguments accept anything."""
        declared = resolve_type_expr(self.ty, symt) if self.ty is not None else ANY
        if self.default is not None:
            check_type(declared, self.default.typecheck(symt), self.default)
        return declared

    def runtime_type(self, symt) -> Type:
        return resolve_type_value(self.ty, symt) if self.ty is not None else ANY

    def interpret_expr(self, symt):
        return self.default.interpret_expr(symt) if self.default is not None else UNIT

    def reconstruct(self):
        ty = f": {self.ty.reconstruct()}" if self.ty is not None else ""
        default = f" = {self.default.reconstruct()}" if self.default is not None else ""
        return f"{self.name}{ty}{default}"


@dataclass(frozen=True)
class Procedure(Ast):
    is_fn: bool
    args: List[Argument] = field(default_factory=list)
    ret: Optional[Ast] = None
    content: Block = field(default_factory=Block)
    name: Optional[str] = None
    keyword: Optional[Token] = _token()

    def _spanned(self):
        return [self.keyword, *self.args, self.ret, self.content]

    def desugared(self):
        return replace(self,
                       args=[a.desugared() for a in self.args],
                       ret=self.ret.desugared() if self.ret is not None else None,
                       content=self.content.desugared())

    def declared_type(self, symt) -> Optional[Type]:
        """The procedure type when the return type is annotated, else None."""
        if self.ret is None:
            return None
        return proc_type(self.is_fn, [a.typecheck(symt) for a in self.args], resolve_type_expr(self.ret, symt))

    def typecheck(self, symt):
        arg_types = [a.typecheck(symt) for a in self.args]
        ret = resolve_type_expr(self.ret, symt) if self.ret is not None else None
        symt.add_frame(FrameData(self.span(), self.describe()), FrameType.FUNCTION)
        try:
            for arg, ty in zip(self.args, arg_types):
                symt.declare_val(arg.name, ty)
            body_ty = self.content.typecheck(symt, add_frame=False)
        finally:
            symt.pop_frame()
        if ret is None:
            ret = body_ty
        else:
            check_type(ret, body_ty, self.content)
        return proc_type(self.is_fn, arg_types, ret)

    def interpret_expr(self, symt):
        args = tuple((a.name, a.runtime_type(symt), a.interpret_expr(symt) if a.default is not None else None)
                     for a in self.args)
        ret = resolve_type_value(self.ret, symt) if self.ret is not None else ANY
        name = self.name or ("fn" if self.is_fn else "proc")
        return proc_value(UserProc(self.is_fn, args, ret, self.content, name))

    def reconstruct(self):
        keyword = "fn" if self.is_fn else "proc"
        args = f"|{', '.join(a.reconstruct() for a in self.args)}|" if self.args else ""
        ret = f": {self.ret.reconstruct()}" if self.ret is not None else ""
        return f"{keyword}{args}{ret} {self.content.reconstruct()}"


@dataclass(frozen=True)
class Class(Ast):
    is_struct: bool
    content: Block
    args: Optional[List[Argument]] = None
    name: Optional[str] = None
    keyword: Optional[Token] = _token()

    def _spanned(self):
        return [self.keyword, *(self.args or []), self.content]

    def desugared(self):
        args = [a.desugared() for a in self.args] if self.args is not None else None
        return replace(self, content=self.content.desugared(), args=args)

    def new_definition(self) -> TypeDefinition:
        name = self.name or ("{struct}" if self.is_struct else "{class}")
        return TypeDefinition(name=name, inst_name=name)

    def typecheck(self, symt, definition: Optional[TypeDefinition] = None):
        """Fills a Definition: `inst` declarations become fields, every other
        declaration a namespace member."""
        definition = definition if definition is not None else self.new_definition()
        for arg in self.args or []:
            definition.inst_fields[arg.name] = (arg.typecheck(symt), arg.default)

        inst_names = []
        symt.add_frame()
        class_state = (list(symt.frames), [])
        checked = set()
        resolving = set()

        def member_resolver(child: Declare):
            """Typechecks a member on first use, against the class frame
            whatever frames are live at that point."""
            def resolve(_content):
                name = child.target.name
                if name in resolving:
                    raise TypeCheckError.recursive_member(name).with_span(child)
                resolving.add(name)
                outer = symt.save_state()
                symt.load_state(class_state)
                try:
                    if isinstance(child.content, Procedure):
                        declared = child.content.declared_type(symt)
                        if declared is not None:
                            return declared
                    checked.add(name)
                    return child.typecheck(symt)
                finally:
                    symt.load_state(outer)
                    resolving.discard(name)
            return resolve

        try:
            members = [c for c in self.content.content if isinstance(c, Declare) and not c.is_inst]
            for child in members:
                definition.implementations[child.target.name] = LazyType(child.content, member_resolver(child))

            for child in self.content.content:
                if isinstance(child, Declare) and child.is_inst:
                    default_ty = child.content.typecheck(symt)
                    declared = resolve_type_expr(child.ty, symt) if child.ty is not None else default_ty
                    if not compatible(declared, default_ty):
                        raise TypeCheckError.field_default_mismatch(
                            child.target.name, declared, default_ty).with_span(child)
                    definition.inst_fields[child.target.name] = (declared, child.content)
                    inst_names.append(child.target.name)

            for child in self.content.content:
                if isinstance(child, Declare) and child.is_inst:
                    continue
                if isinstance(child, Declare):
                    definition.member_type(child.target.name)
                    if child.target.name not in checked:
                        # Resolved from its signature; the body still needs checking
                        checked.add(child.target.name)
                        child.typecheck(symt)
                else:
                    child.typecheck(symt)
        finally:
            symt.pop_frame()

        if self.args is not None:
            if "_init" in definition.implementations:
                raise TypeCheckError.init_with_args().with_span(self)
            if inst_names:
                raise TypeCheckError.inst_with_args(inst_names[0]).with_span(self)
        return definition

    def interpret_expr(self, symt, definition: Optional[TypeDefinition] = None):
        definition = definition if definition is not None else self.new_definition()
        for arg in self.args or []:
            default = arg.interpret_expr(symt) if arg.default is not None else None
            definition.inst_fields[arg.name] = (arg.runtime_type(symt), default)

        symt.add_frame()
        try:
            for child in self.content.content:
                if isinstance(child, Declare) and child.is_inst:
                    default = child.content.interpret_expr(symt)
                    declared = resolve_type_value(child.ty, symt) if child.ty is not None else default.ty
                    definition.inst_fields[child.target.name] = (declared, default)
                elif isinstance(child, Declare):
                    member = child.interpret_expr(symt)
                    definition.implementations[child.target.name] = LazyType(member, Value.value_ty)
                else:
                    child.interpret_expr(symt)
        except ZError:
            symt.unwind_frame()
            raise
        symt.pop_frame()
        return type_value(definition)

    def reconstruct(self):
        keyword = "struct" if self.is_struct else "class"
        args = f"|{', '.join(a.reconstruct() for a in self.args)}|" if self.args else ""
        return f"{keyword}{args} {self.content.reconstruct()}"
