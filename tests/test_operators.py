"""
Unit tests for the binary operator registry.
"""

import pytest
from numscript import (
    Scalar, Matrix, String, Arguments, OperatorRegistry, initialize,
    OperationNotSupportedError, RegistrySealedError,
)
from numscript.kinds import SCALAR, MATRIX, STRING


@pytest.fixture
def operators():
    registry, _ = initialize()
    return registry


class TestRegistration:
    """Registering mappings on a private registry."""

    def test_register_returns_true_once(self):
        registry = OperatorRegistry()
        impl = lambda l, r: String("x")
        assert registry.register("+", STRING, SCALAR, impl) is True
        assert registry.register("+", STRING, SCALAR, impl) is False
        assert len(registry.mappings("+")) == 1

    def test_first_registration_wins(self):
        registry = OperatorRegistry()
        first = lambda l, r: String("first")
        second = lambda l, r: String("second")
        registry.register("+", STRING, SCALAR, first)
        registry.register("+", STRING, SCALAR, second)
        assert registry.apply("+", String("a"), Scalar(1)) == "first"

    def test_kinds_are_ordered(self):
        """(string, scalar) and (scalar, string) are separate entries."""
        registry = OperatorRegistry()
        registry.register("+", STRING, SCALAR, lambda l, r: l)
        assert registry.mappings("+").contains(STRING, SCALAR)
        assert not registry.mappings("+").contains(SCALAR, STRING)

    def test_sealed_rejects_new_keys(self):
        registry = OperatorRegistry()
        registry.register("+", STRING, SCALAR, lambda l, r: l)
        registry.seal()
        assert registry.sealed
        with pytest.raises(RegistrySealedError):
            registry.register("-", STRING, SCALAR, lambda l, r: l)

    def test_sealed_ignores_repeated_keys(self):
        registry = OperatorRegistry()
        registry.register("+", STRING, SCALAR, lambda l, r: l)
        registry.seal()
        assert registry.register("+", STRING, SCALAR, lambda l, r: r) is False

    def test_unknown_symbol_has_empty_list(self):
        assert len(OperatorRegistry().mappings("%")) == 0


class TestResolution:
    """Resolution against the runtime registry."""

    def test_global_registry_is_sealed(self, operators):
        assert operators.sealed
        with pytest.raises(RegistrySealedError):
            operators.register("*", STRING, STRING, lambda l, r: l)

    def test_repeated_registration_is_harmless(self, operators):
        before = len(operators.mappings("+"))
        assert operators.register("+", STRING, SCALAR, lambda l, r: l) is False
        assert len(operators.mappings("+")) == before

    def test_string_plus_scalar_both_orders(self, operators):
        left = operators.apply("+", String("a"), Scalar(1))
        right = operators.apply("+", Scalar(1), String("a"))
        assert isinstance(left, String) and left == "a1"
        assert isinstance(right, String) and right == "1a"

    def test_same_kind_fallback(self, operators):
        """Scalar + Scalar is not registered; the add method is used."""
        assert not operators.mappings("+").contains(SCALAR, SCALAR)
        assert operators.apply("+", Scalar(1), Scalar(2)) == 3

    def test_scalar_times_matrix(self, operators):
        assert operators.apply("*", Scalar(2), Matrix([[1, 2]])) == Matrix([[2, 4]])

    def test_matrix_minus_scalar(self, operators):
        assert operators.apply("-", Matrix([[1, 2]]), Scalar(1)) == Matrix([[0, 1]])

    def test_comparison(self, operators):
        assert operators.apply("<", Scalar(1), Scalar(2)) == 1
        assert operators.apply(">=", Scalar(1), Scalar(2)) == 0

    def test_elementwise_comparison(self, operators):
        result = operators.apply(">", Matrix([[1, 5, 3]]), Scalar(2))
        assert result == Matrix([[0, 1, 1]])

    def test_equality_fallback(self, operators):
        assert operators.apply("==", Matrix([[1, 2]]), Matrix([[1, 2]])) == 1
        assert operators.apply("~=", String("a"), String("b")) == 1

    def test_unsupported_kinds(self, operators):
        with pytest.raises(OperationNotSupportedError) as exc_info:
            operators.apply("+", String("a"), Arguments())
        assert exc_info.value.symbol == "+"
        assert exc_info.value.kinds == ("string", "arguments")
        assert exc_info.value.diagnostic.code == "E402"

    def test_same_kind_without_method(self, operators):
        with pytest.raises(OperationNotSupportedError):
            operators.apply("*", String("a"), String("b"))
