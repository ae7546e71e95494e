import math

import pytest

from zyxt.zyxt_primitives import (
    DEFINITIONS, F64_T, I32_T, I64_T, IBIG_T, INSTANCES, PRIM_NAMES, STR_T, UNIT,
    display_str, int_literal_type, primitives,
)
from zyxt.zyxt_runtime import ScriptRunner
from zyxt.zyxt_types import ANY, TYPE_T
from zyxt.zyxt_values import Value


def run(source):
    res = ScriptRunner().handle_script(source)
    assert res.status == 'success', res.error_message
    return res.value


def run_error(source):
    res = ScriptRunner().handle_script(source)
    assert res.status == 'error'
    return res.error


# --- Registry ---

def test_registry_is_a_singleton():
    assert primitives() is primitives()


def test_registry_is_read_only():
    with pytest.raises(TypeError):
        primitives()["i32"] = None


def test_registry_names():
    table = primitives()
    assert set(table) == set(PRIM_NAMES)
    assert table["i32"] == Value(TYPE_T, I32_T)
    assert table["_any"] == Value(TYPE_T, ANY)


def test_every_numeric_type_has_operator_table():
    primitives()
    for name in ("i8", "u64", "ibig", "f32"):
        definition = DEFINITIONS[name]
        for member in ("_add", "_sub", "_mul", "_div", "_rem", "_eq", "_lt", "_concat", "_typecast"):
            assert definition.member(member) is not None, f"{name}.{member}"


def test_unsigned_types_have_no_negation():
    primitives()
    assert DEFINITIONS["u8"].member("_un_sub") is None
    assert DEFINITIONS["i8"].member("_un_sub") is not None


def test_int_literal_type():
    assert int_literal_type(2 ** 31 - 1) == I32_T
    assert int_literal_type(-(2 ** 31)) == I32_T
    assert int_literal_type(2 ** 31) == I64_T
    assert int_literal_type(2 ** 63) == IBIG_T


def test_display_str():
    assert display_str(Value(STR_T, "raw")) == "raw"
    assert display_str(Value(I32_T, 5)) == "5"
    assert display_str(UNIT) == "()"


# --- Integer arithmetic ---

def test_int_arithmetic():
    assert run("1 + 2 * 3 - 4") == Value(I32_T, 3)


def test_division_truncates_toward_zero():
    assert run("7 / 2").data == 3
    assert run("-7 / 2").data == -3
    assert run("-7 % 2").data == -1
    assert run("7 % -2").data == 1


def test_division_by_zero():
    assert run_error("1 / 0").code == "5.1"
    assert run_error("1.0 / 0.0").code == "5.1"


def test_overflow_is_a_runtime_error():
    err = run_error("2147483647 + 1")
    assert err.code == "5.0"
    assert "i32._add" in err.message


def test_unsigned_negation_is_not_a_member():
    assert run_error("-(1 @ u8)").code == "3.5"


def test_widening_cast():
    value = run("2147483647 @ i64 + 1 @ i64")
    assert value == Value(I64_T, 2 ** 31)


def test_ibig_is_unbounded():
    assert run("100000000000000000000 * 100000000000000000000").data == 10 ** 40


def test_mixed_kinds_do_not_typecheck():
    assert run_error("1 + 1 @ i64").code == "3.0"


# --- Floats ---

def test_float_arithmetic():
    assert run("1.5 * 2.0") == Value(F64_T, 3.0)
    assert run("7.5 % 2.0").data == 1.5


def test_f32_rounds():
    value = run("0.1 @ f32").data
    assert value != 0.1
    assert math.isclose(value, 0.1, rel_tol=1e-6)


# --- Comparisons and logic ---

def test_comparisons():
    assert run("1 < 2 && 2 <= 2 && 3 > 2 && 3 >= 3 && 1 != 2 && 1 == 1").data is True
    assert run('"a" < "b"').data is True


def test_not():
    assert run("!false").data is True


def test_type_equality():
    assert run("i32 == i32").data is True
    assert run("i32 == str").data is False


# --- Strings ---

def test_concat_accepts_anything():
    assert run('"a" ~ 1 ~ true ~ 2.5').data == "a1true2.5"


def test_string_repeat():
    assert run('"ab" * 3').data == "ababab"
    assert run_error('"ab" * -1').code == "5.0"


def test_string_default():
    assert run("str._default").data == ""
    assert run("i32._default") == Value(I32_T, 0)


# --- Typecasts ---

def test_casts_between_primitives():
    assert run('"42" @ i32') == Value(I32_T, 42)
    assert run("3.9 @ i32").data == 3
    assert run("1 @ str").data == "1"
    assert run("0 @ bool").data is False
    assert run('"" @ bool').data is False
    assert run("true @ i32").data == 1
    assert run("true @ str").data == "true"
    assert run("1 @ f64") == Value(F64_T, 1.0)


def test_failed_parse_cast():
    assert run_error('"x" @ i32').code == "5.0"


def test_cast_to_type_gives_the_type():
    assert run("(1 @ type) == i32").data is True


def test_cast_to_any_is_identity():
    assert run("1 @ _any") == Value(I32_T, 1)


def test_unit_has_no_numeric_cast():
    assert run_error("if false { 1 } @ i32").code == "5.0"


def test_instances_table_covers_all_types():
    assert set(PRIM_NAMES) - {"_any"} <= set(INSTANCES)
