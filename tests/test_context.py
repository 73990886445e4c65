"""
Unit tests for the evaluation context.
"""

import math
from concurrent.futures import ThreadPoolExecutor

import pytest
from numscript import Context, Scalar, String, evaluate, UndefinedSymbolError
from numscript.runtime import ContextState


class TestLifecycle:
    """Context states."""

    def test_ready_after_construction(self):
        assert Context().state == ContextState.READY

    def test_idle_after_evaluation(self):
        ctx = Context()
        evaluate("1 + 1", ctx)
        assert ctx.state == ContextState.IDLE

    def test_idle_after_failure(self):
        ctx = Context()
        evaluate("nope", ctx)
        assert ctx.state == ContextState.IDLE
        assert ctx.call_depth == 0


class TestScopes:
    """Lookup, assignment and clearing."""

    def test_constants_visible(self):
        assert Context().lookup("pi") == math.pi

    def test_lookup_undefined(self):
        with pytest.raises(UndefinedSymbolError) as exc_info:
            Context().lookup("x")
        assert exc_info.value.name == "x"

    def test_find_undefined(self):
        assert Context().find("x") is None

    def test_assign_shadows_constant(self):
        ctx = Context()
        ctx.assign("pi", Scalar(3))
        assert ctx.lookup("pi") == 3
        ctx.clear(["pi"])
        assert ctx.lookup("pi") == math.pi

    def test_constants_cannot_be_cleared(self):
        ctx = Context()
        ctx.clear(["e"])
        assert ctx.lookup("e") == math.e

    def test_clear_all(self):
        ctx = Context()
        ctx.assign("a", Scalar(1))
        ctx.assign("b", Scalar(2))
        ctx.clear()
        assert ctx.variables == {}
        assert ctx.find("pi") is not None

    def test_child_scope(self):
        ctx = Context()
        ctx.assign("outer", Scalar(1))
        with ctx.child_scope("f"):
            ctx.assign("inner", Scalar(2))
            assert ctx.lookup("outer") == 1
            assert ctx.call_depth == 1
        assert ctx.find("inner") is None
        assert ctx.call_depth == 0

    def test_variables_snapshot(self):
        ctx = Context()
        evaluate("x = 2; y = x * 3", ctx)
        assert ctx.variables == {"x": Scalar(2), "y": Scalar(6)}


class TestExtensions:
    """Per-context custom functions and constants."""

    def test_custom_function(self):
        ctx = Context()
        ctx.add_custom_function("twice", lambda v: v.multiply(Scalar(2)))
        assert evaluate("twice(21)", ctx)[0].value == 42

    def test_custom_function_python_result(self):
        ctx = Context()
        ctx.add_custom_function("greet", lambda name: "hello " + name.text)
        assert evaluate('greet("bob")', ctx)[0].value == String("hello bob")

    def test_custom_function_is_per_context(self):
        ctx = Context()
        ctx.add_custom_function("twice", lambda v: v)
        result = evaluate("twice(1)", Context())[0]
        assert not result.success
        assert result.diagnostics[0].code == "E401"

    def test_custom_function_wrong_arity(self):
        ctx = Context()
        ctx.add_custom_function("twice", lambda v: v.multiply(Scalar(2)))
        results = evaluate("twice(1, 2); twice(4)", ctx)
        assert not results[0].success
        assert results[0].diagnostics[0].code == "E403"
        assert "twice" in results[0].diagnostics[0].message
        assert results[1].value == 8

    def test_custom_function_variadic(self):
        ctx = Context()
        ctx.add_custom_function("count", lambda *values: len(values))
        assert evaluate("count(1, 2, 3)", ctx)[0].value == 3

    def test_custom_function_shadows_builtin(self):
        ctx = Context()
        ctx.add_custom_function("sqrt", lambda v: Scalar(-1))
        assert evaluate("sqrt(4)", ctx)[0].value == -1

    def test_custom_constant(self):
        ctx = Context()
        ctx.add_custom_constant("g", 9.81)
        assert evaluate("g * 2", ctx)[0].value.real == pytest.approx(19.62)
        assert Context().find("g") is None

    def test_set_format(self):
        ctx = Context()
        ctx.set_format("long")
        assert ctx.settings.mode == "long"


class TestConcurrency:
    """Independent contexts evaluate in parallel."""

    def test_threads(self):
        def run(k):
            ctx = Context()
            return evaluate(f"x = {k}; y = x * 2; y + 1", ctx)[-1].value

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(run, range(32)))
        assert results == [Scalar(2 * k + 1) for k in range(32)]
