import pytest

from zyxt.zyxt_primitives import BOOL_T, DEFINITIONS, I32_T, STR_T
from zyxt.zyxt_types import (
    ANY, ANY_DEF, PROC_DEF, TYPE_DEF, TYPE_T, LazyType, ReturnType, TypeDefinition,
    TypeInstance, format_type_name, proc_signature, proc_type, strip_type_args,
)


# --- Display ---

def test_plain_instance_display():
    assert str(I32_T) == "i32"
    assert str(TYPE_T) == "type"
    assert str(ANY) == "_any"


def test_proc_type_display():
    ty = proc_type(True, [I32_T, STR_T], BOOL_T)
    assert str(ty) == "proc[is_fn: true, args: (i32, str), ret: bool]"


def test_redisplay_is_stable():
    ty = proc_type(False, [I32_T], I32_T)
    again = TypeInstance(str(ty), ty.type_args, PROC_DEF)
    assert str(again) == str(ty)
    assert again == ty


def test_strip_and_format_type_args():
    assert strip_type_args("proc[ret: i32]") == "proc"
    assert strip_type_args("i32") == "i32"
    assert format_type_name("box[t: i32]", [("t", "str")]) == "box[t: str]"
    assert format_type_name("box", []) == "box"


def test_with_type_args():
    box = TypeDefinition("{box}", "box", generics=("t",))
    inst = box.get_instance().with_type_args([("t", I32_T)])
    assert str(inst) == "box[t: i32]"
    assert inst.type_arg("t") == I32_T
    assert inst.type_arg("missing", "dflt") == "dflt"


# --- Compatibility ---

def test_equality_is_structural():
    assert I32_T == DEFINITIONS["i32"].get_instance()
    assert I32_T != STR_T


def test_any_accepts_everything():
    assert ANY.accepts(I32_T)
    assert I32_T.accepts(ANY)
    assert not I32_T.accepts(STR_T)


def test_implementation_per_variant():
    assert I32_T.implementation() is DEFINITIONS["i32"]
    assert DEFINITIONS["i32"].implementation() is TYPE_DEF
    assert ANY.implementation() is ANY_DEF
    assert ReturnType(I32_T).implementation() is DEFINITIONS["i32"]


def test_return_type_flattens():
    nested = ReturnType(ReturnType(STR_T))
    assert nested.inner == STR_T
    assert nested.unwrap_return() == STR_T
    assert I32_T.unwrap_return() is I32_T


def test_proc_signature():
    ty = proc_type(True, [I32_T], STR_T)
    assert proc_signature(ty) == (True, (I32_T,), STR_T)
    assert proc_signature(I32_T) is None
    assert proc_signature(ANY) is None


# --- Lazy members ---

def test_lazy_type_resolves_once():
    calls = []

    def resolve(data):
        calls.append(data)
        return I32_T

    lazy = LazyType("payload", resolve)
    assert not lazy.is_resolved
    assert lazy.get() == I32_T
    assert lazy.get() == I32_T
    assert calls == ["payload"]
    assert lazy.is_resolved


def test_lazy_type_needs_resolver_or_type():
    with pytest.raises(ValueError):
        LazyType("payload")
    assert LazyType(None, ty=STR_T).get() == STR_T


def test_self_referential_definitions_compare():
    def node_def():
        d = TypeDefinition("Node", "Node")
        d.implementations["next"] = LazyType(None, lambda _: d.get_instance())
        d.inst_fields["value"] = (I32_T, None)
        return d

    a, b = node_def(), node_def()
    assert a == b
    assert a.get_instance() == b.get_instance()
    assert not a.implementations["next"].is_resolved
    assert a.member_type("next") == a.get_instance()


def test_definitions_differ_on_fields():
    a = TypeDefinition("P", "P", inst_fields={"x": (I32_T, None)})
    b = TypeDefinition("P", "P", inst_fields={"x": (STR_T, None)})
    assert a != b


def test_member_lookup():
    definition = DEFINITIONS["i32"]
    assert definition.member("nope") is None
    assert definition.member_type("nope") is None
    assert definition.member_value("nope") is None
