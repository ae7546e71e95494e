from zyxt.zyxt_primitives import BOOL_T, F64_T, I32_T, STR_T, UNIT, primitives
from zyxt.zyxt_printer import Printer
from zyxt.zyxt_runtime import ScriptRunner
from zyxt.zyxt_types import TypeDefinition
from zyxt.zyxt_values import Value, instance_value, type_value


def pf(obj):
    return Printer().pformat(obj)


# --- Primitives ---

def test_strings_are_quoted_and_escaped():
    assert pf(Value(STR_T, 'a"b\n')) == '"a\\"b\\n"'
    assert pf(Value(STR_T, "\\")) == '"\\\\"'


def test_bools_and_unit():
    assert pf(Value(BOOL_T, True)) == "true"
    assert pf(Value(BOOL_T, False)) == "false"
    assert pf(UNIT) == "()"


def test_numbers():
    assert pf(Value(I32_T, -4)) == "-4"
    assert pf(Value(F64_T, 2.5)) == "2.5"
    assert pf(Value(F64_T, float("nan"))) == "nan"
    assert pf(Value(F64_T, float("-inf"))) == "-inf"


def test_value_str_uses_printer():
    assert str(Value(STR_T, "x")) == '"x"'


# --- Types and procedures ---

def test_type_values():
    assert pf(primitives()["i32"]) == "i32"
    point = TypeDefinition("Point", "Point", inst_fields={"x": (I32_T, None)})
    assert pf(type_value(point)) == "Point{x: i32}"


def test_builtin_proc():
    primitives()
    add = I32_T.implementation().member_value("_add")
    assert pf(add) == "<i32._add: proc[is_fn: true, args: (i32, i32), ret: i32]>"


def test_user_proc_takes_declared_name():
    res = ScriptRunner().handle_script("let double = fn |a: i32|: i32 { a * 2 }; double")
    assert pf(res.value) == "<double: proc[is_fn: true, args: (i32), ret: i32]>"


# --- Instances ---

def test_instance_fields():
    point = TypeDefinition("Point", "Point")
    value = instance_value(point, {"x": Value(I32_T, 1), "name": Value(STR_T, "p")})
    assert pf(value) == 'Point{x: 1, name: "p"}'


def test_empty_instance():
    empty = TypeDefinition("E", "E")
    assert pf(instance_value(empty, {})) == "E{}"


def test_long_instances_wrap():
    point = TypeDefinition("Row", "Row")
    fields = {f"field_{i}": Value(STR_T, "value") for i in range(5)}
    text = pf(instance_value(point, fields))
    lines = text.splitlines()
    assert lines[0] == "Row{"
    assert lines[1] == '  field_0: "value",'
    assert lines[-1] == "}"


def test_indent_width():
    point = TypeDefinition("Row", "Row")
    fields = {f"field_{i}": Value(STR_T, "value") for i in range(5)}
    text = Printer(indent_width=4).pformat(instance_value(point, fields))
    assert text.splitlines()[1].startswith('    field_0')
