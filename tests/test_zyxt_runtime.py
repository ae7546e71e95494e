from dataclasses import FrozenInstanceError

import pytest

from zyxt.zyxt_ast import Block
from zyxt.zyxt_config import RunConfig
from zyxt.zyxt_errors import ScopeError, TypeCheckError, ZRuntimeError
from zyxt.zyxt_primitives import I32_T, STR_T, UNIT
from zyxt.zyxt_runtime import ExecutionResult, ScriptRunner, exit_code_of
from zyxt.zyxt_values import Value


def run(source, runner=None):
    res = (runner or ScriptRunner()).handle_script(source)
    assert res.status == 'success', res.error_message
    return res.value


def run_error(source, runner=None):
    res = (runner or ScriptRunner()).handle_script(source)
    assert res.status == 'error', f"expected an error, got {res.value}"
    return res


# --- Scenarios ---

def test_compound_assignment_scenario():
    res = ScriptRunner().handle_script("let x = 1; x += 2; x")
    assert res.status == 'success', res.error_message
    assert res.value == Value(I32_T, 3)
    assert res.exit_code == 3


def test_recursive_constant_procedure():
    source = "const fact = fn |n: i32|: i32 { if n < 2 { return 1 }; n * fact(n - 1) }; fact(5)"
    assert run(source) == Value(I32_T, 120)


def test_multiline_program():
    source = """
    const fib = fn |n: i32|: i32 {
        if n < 2 {
            return n
        }
        fib(n - 1) + fib(n - 2)
    }
    let total = 0
    total += fib(10)
    total
    """
    assert run(source).data == 55


def test_non_constant_procedure_cannot_recurse():
    res = run_error("let f = fn |n: i32|: i32 { f(n) }")
    assert isinstance(res.error, ScopeError)
    assert res.error.code == "4.0"


def test_function_cannot_see_caller_locals():
    res = run_error("let a = 1; let f = fn { a }; f()")
    assert res.error.code == "4.0"


def test_function_sees_constants():
    assert run("const a = 1; let f = fn { a }; f()").data == 1


def test_constant_reassignment():
    res = run_error("const a = 1; a = 2")
    assert res.error.code == "4.2"


def test_del_in_outer_frame():
    res = run_error("let a = 1; { del a }")
    assert res.error.code == "4.1"


def test_del_then_use():
    res = run_error("let a = 1; del a; a")
    assert res.error.code == "4.0"


def test_block_scope():
    assert run("let a = 1; { let a = 2; a } + a").data == 3


def test_default_and_missing_arguments():
    assert run("let f = fn |a: i32, b: i32 = 10| { a + b }; f(1)").data == 11
    assert run("let f = fn |a: i32, b: i32 = 10| { a + b }; f(1, 2)").data == 3


def test_untyped_argument_accepts_anything():
    assert run('let show = fn |v| { "<" ~ v ~ ">" }; show(1) ~ show("s")').data == "<1><s>"


def test_procedure_values_are_first_class():
    source = "let apply = fn |f, x: i32| { f(x) }; apply(|v: i32| v * 2, 21)"
    assert run(source).data == 42



def test_procedure_name_is_fixed():
    proc = run("let f = fn { 1 }; f").data
    assert proc.name == "f"
    with pytest.raises(FrozenInstanceError):
        proc.name = "g"

# --- Control flow ---

def test_if_elif_else():
    source = 'let n = 5; if n < 3 { "small" } elif n < 10 { "medium" } else { "large" }'
    assert run(source) == Value(STR_T, "medium")


def test_if_without_else_gives_unit():
    res = ScriptRunner().handle_script("if true { 5 }")
    assert res.value == UNIT
    assert res.exit_code == 0


def test_return_inside_branch_leaves_procedure():
    source = """
    const sign = fn |n: i32|: i32 {
        if n < 0 { return -1 }
        if n == 0 { return 0 }
        1
    }
    sign(-5) ~ "," ~ sign(0) ~ "," ~ sign(3)
    """
    assert run(source).data == "-1,0,1"


def test_short_circuit_skips_failing_operand():
    assert run("false && 1 / 0 == 0").data is False
    assert run("true || 1 / 0 == 0").data is True


def test_top_level_return():
    assert run("return 4; 5").data == 4


# --- Defer ---

def test_defer_runs_when_block_ends():
    assert run("let x = 0; { defer x = 1; x = 5 }; x").data == 1


def test_defers_run_in_registration_order():
    source = "let x = 0; { defer x = x * 10 + 1; defer x = x * 10 + 2 }; x"
    assert run(source).data == 12


def test_deferred_return_overrides_result():
    assert run("let f = fn: i32 { defer return 2; 1 }; f()").data == 2


def test_top_level_defers_flush():
    assert run("let x = 5; defer return 7; x").data == 7


def test_defer_on_error_is_opt_in():
    source = "let x = 0; { defer x = 1; 1 / 0 }"
    runner = ScriptRunner()
    run_error(source, runner)
    assert run("x", runner).data == 0

    runner = ScriptRunner(RunConfig(defer_on_error=True))
    run_error(source, runner)
    assert run("x", runner).data == 1


# --- Classes ---

def test_struct_construction_and_fields():
    source = """
    let Point = struct {
        inst x: i32 = 0
        inst y: i32 = 0
    }
    let p = Point(3, 4)
    p.x * p.y
    """
    assert run(source).data == 12


def test_field_defaults():
    assert run("let P = class { inst x: i32 = 7 }; P().x").data == 7


def test_constructor_arguments():
    assert run('let P = class |name: str, n: i32 = 2| {}; P("a").name ~ P("b").n').data == "a2"


def test_missing_constructor_argument():
    res = run_error("let P = class |a: i32| {}; P()")
    assert isinstance(res.error, TypeCheckError)


def test_methods_receive_the_instance():
    source = """
    const Counter = class {
        inst n: i32 = 1
        doubled := fn |self: Counter|: i32 { self.n * 2 }
    }
    Counter(21).doubled()
    """
    assert run(source).data == 42


def test_static_members():
    source = """
    const Point = class {
        inst x: i32 = 0
        origin := fn: Point { Point() }
    }
    Point.origin().x
    """
    assert run(source).data == 0


def test_init_factory():
    source = """
    const Pair = class {
        inst a: i32 = 0
        inst b: i32 = 0
        make := fn |a: i32, b: i32|: i32 { a * 10 + b }
        _init := fn |n: i32|: i32 { Pair.make(n, n + 1) }
    }
    Pair(4)
    """
    assert run(source).data == 45


def test_member_calls_a_later_member():
    assert run("const P = class { const a = fn { P.b() }; const b = fn { 1 } }; P.a()").data == 1


def test_self_dependent_member_is_reported():
    res = run_error("const P = class { a := fn { P.a() } }; P.a()")
    assert isinstance(res.error, TypeCheckError)
    assert res.error.code == "3.10"


def test_instance_printing():
    res = ScriptRunner().handle_script("const P = struct { inst x: i32 = 1; inst s: str = \"a\" }; P()")
    assert str(res.value) == 'P{x: 1, s: "a"}'


# --- Errors ---

def test_error_message_has_location_and_context():
    res = run_error('let a = 1\nlet b: str = a')
    assert res.exit_code == 1
    message = res.format_error()
    assert message.startswith("TypeError [3.0]: expected type `str`, got `i32` (<script>:2:14)")
    assert "> 2 | let b: str = a" in message
    assert "  1 | let a = 1" in message
    assert message.splitlines()[-1].endswith("^")


def test_error_location_uses_filename():
    res = ScriptRunner().handle_script("nope", filename="main.zx")
    assert "(main.zx:1:1)" in res.format_error()


def test_runtime_error_stacktrace():
    source = "const f = fn |n: i32|: i32 { n / 0 }\nconst g = fn |n: i32|: i32 { f(n) }\ng(1)"
    res = run_error(source)
    assert isinstance(res.error, ZRuntimeError)
    assert res.error.code == "5.1"
    assert [str(fd).split(" at ")[0] for fd in res.error.stack] == ["f(n)", "g(1)"]
    message = res.format_error()
    assert "Zyxt stacktrace:" in message
    assert "in f(n)" in message
    assert "with (n=1)" in message


def test_stacktrace_can_be_disabled():
    runner = ScriptRunner(RunConfig(show_stacktrace=False))
    res = run_error("const f = fn { 1 / 0 }; f()", runner)
    assert "Zyxt stacktrace:" not in res.format_error()


def test_recursion_limit_is_a_runtime_error():
    res = run_error("const f = fn |n: i32|: i32 { f(n + 1) }; f(0)")
    assert res.error.code == "5.3"


def test_parse_error_result():
    res = run_error("let = 1")
    assert res.error.kind == "ParseError"
    assert res.status == 'error'


def test_success_has_no_error_text():
    res = ScriptRunner().handle_script("1")
    assert res.format_error() == ""


# --- Sessions ---

def test_declarations_persist_across_scripts():
    runner = ScriptRunner()
    run("let a = 2", runner)
    assert run("a * 3", runner).data == 6


def test_failed_compile_does_not_leak_names():
    runner = ScriptRunner()
    run_error('let b = 1; b + "x"', runner)
    assert run_error("b", runner).error.code == "4.0"
    assert run("1", runner).data == 1


def test_runtime_error_drops_unbound_names():
    runner = ScriptRunner()
    run_error("let c = 1; let d = 1 / 0", runner)
    assert run("c", runner).data == 1
    assert run_error("d", runner).error.code == "4.0"


def test_runner_recovers_after_error_in_function():
    runner = ScriptRunner()
    run_error("const f = fn { 1 / 0 }; f()", runner)
    assert runner.val_symt.depth == 2
    assert runner.ty_symt.depth == 2
    assert run("1", runner).data == 1


def test_compile_returns_typed_core():
    core = ScriptRunner().compile("1 + 2")
    assert isinstance(core, Block)
    assert core.desugared() == core


# --- Exit codes ---

def test_exit_codes():
    assert exit_code_of(Value(I32_T, 3)) == 3
    assert exit_code_of(Value(STR_T, "3")) == 0
    assert exit_code_of(None) == 0
    assert ScriptRunner().handle_script("true").exit_code == 0


def test_execution_result_defaults():
    res = ExecutionResult(status='success')
    assert res.exit_code == 0
    assert res.error is None
