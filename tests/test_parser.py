"""
Unit tests for the numscript parser.
"""

import dataclasses

import pytest
from numscript import parse_source, format_ast, ParseError, LexerError, BracketEmptyError
from numscript.ast import (
    ExpressionStatement, FunctionDefinition, ClearStatement, FormatStatement,
    Literal, Identifier, BinaryOp, UnaryOp, PostfixOp, Group,
    FunctionCall, MatrixLiteral, RangeExpr, Assignment, MultiAssignment,
)


def parse_one(source):
    """Parse a single statement and return it."""
    statements = parse_source(source)
    assert len(statements) == 1
    return statements[0]


def expr(source):
    """Parse a single expression statement and return its expression."""
    statement = parse_one(source)
    assert statement.ok, statement.errors
    assert isinstance(statement.node, ExpressionStatement)
    return statement.node.expression


def error_of(source):
    statement = parse_one(source)
    assert not statement.ok
    return statement.errors[0]


def value_of(node):
    assert isinstance(node, Literal)
    return node.value


class TestPrecedence:
    """Binding power and associativity."""

    def test_multiplication_binds_tighter(self):
        node = expr("1 + 2 * 3")
        assert isinstance(node, BinaryOp)
        assert node.operator == "+"
        assert value_of(node.left) == 1
        assert node.right.operator == "*"

    def test_left_associative_subtraction(self):
        node = expr("1 - 2 - 3")
        assert node.operator == "-"
        assert isinstance(node.left, BinaryOp)
        assert value_of(node.right) == 3

    def test_right_associative_power(self):
        node = expr("2 ^ 3 ^ 2")
        assert node.operator == "^"
        assert value_of(node.left) == 2
        assert node.right.operator == "^"

    def test_negative_literal_before_power(self):
        """-2^2 is -(2^2)."""
        node = expr("-2^2")
        assert isinstance(node, UnaryOp)
        assert node.operator == "-"
        assert isinstance(node.operand, BinaryOp)
        assert value_of(node.operand.left) == 2

    def test_negated_name_before_power(self):
        node = expr("-x^2")
        assert isinstance(node, UnaryOp)
        assert node.operand.operator == "^"

    def test_negative_literal_alone(self):
        assert value_of(expr("-2")) == -2

    def test_comparison_below_arithmetic(self):
        node = expr("a + 1 < b * 2")
        assert node.operator == "<"

    def test_not_equal_spellings(self):
        assert expr("a != b").operator == "~="
        assert expr("a ~= b").operator == "~="

    def test_elementwise_operators(self):
        node = expr("a .* b .^ 2")
        assert node.operator == ".*"
        assert node.right.operator == ".^"

    def test_group(self):
        node = expr("(1 + 2) * 3")
        assert isinstance(node.left, Group)


class TestPostfix:
    """Postfix transpose and factorial."""

    def test_transpose(self):
        node = expr("A'")
        assert isinstance(node, PostfixOp)
        assert node.operator == "'"
        assert isinstance(node.operand, Identifier)

    def test_factorial_binds_tighter_than_power(self):
        node = expr("2^3!")
        assert node.operator == "^"
        assert isinstance(node.right, PostfixOp)

    def test_chained_postfix(self):
        node = expr("A''")
        assert isinstance(node.operand, PostfixOp)


class TestRangesAndAssignment:
    """Ranges, single and multiple assignment."""

    def test_simple_range(self):
        node = expr("1:5")
        assert isinstance(node, RangeExpr)
        assert node.step is None

    def test_range_with_step(self):
        node = expr("0:2:10")
        assert value_of(node.start) == 0
        assert value_of(node.step) == 2
        assert value_of(node.stop) == 10

    def test_range_below_arithmetic(self):
        node = expr("1:n+1")
        assert isinstance(node.stop, BinaryOp)

    def test_assignment(self):
        node = expr("x = 1 + 2")
        assert isinstance(node, Assignment)
        assert node.target == "x"
        assert isinstance(node.value, BinaryOp)

    def test_chained_assignment(self):
        node = expr("x = y = 3")
        assert node.target == "x"
        assert isinstance(node.value, Assignment)
        assert node.value.target == "y"

    def test_multi_assignment(self):
        node = expr("[v, k] = max(A)")
        assert isinstance(node, MultiAssignment)
        assert node.targets == ("v", "k")
        assert isinstance(node.value, FunctionCall)

    def test_invalid_assignment_target(self):
        error = error_of("1 + 2 = 3")
        assert isinstance(error, ParseError)
        assert error.diagnostic.code == "E104"
        assert error.column == 1
        assert error.length == 5


class TestPrimaries:
    """Calls, matrix literals and literals."""

    def test_call(self):
        node = expr("f(1, x)")
        assert isinstance(node, FunctionCall)
        assert node.name == "f"
        assert len(node.arguments) == 2

    def test_call_without_arguments(self):
        node = expr("f()")
        assert isinstance(node, FunctionCall)
        assert node.arguments == ()

    def test_matrix_literal(self):
        node = expr("[1, 2; 3, 4]")
        assert isinstance(node, MatrixLiteral)
        assert len(node.rows) == 2
        assert len(node.rows[0]) == 2

    def test_empty_matrix(self):
        assert expr("[]").rows == ()

    def test_nested_matrix_literal(self):
        node = expr("[[1; 2], [3; 4]]")
        assert isinstance(node.rows[0][0], MatrixLiteral)

    def test_string_literal(self):
        assert value_of(expr('"abc"')) == "abc"

    def test_imaginary_literal(self):
        assert value_of(expr("5i")) == 5.0


class TestStatements:
    """Keyword statements and statement splitting."""

    def test_function_definition(self):
        statement = parse_one("function f(x, y) = x + y")
        node = statement.node
        assert isinstance(node, FunctionDefinition)
        assert node.name == "f"
        assert node.parameters == ("x", "y")
        assert isinstance(node.body, BinaryOp)
        assert node.source == "function f(x, y) = x + y"

    def test_function_without_parameters(self):
        assert parse_one("function g() = 1").node.parameters == ()

    def test_clear_names(self):
        node = parse_one("clear a b").node
        assert isinstance(node, ClearStatement)
        assert node.names == ("a", "b")

    def test_clear_all(self):
        assert parse_one("clear").node.names == ()

    def test_format(self):
        node = parse_one("format long").node
        assert isinstance(node, FormatStatement)
        assert node.mode == "long"

    def test_invalid_format(self):
        assert error_of("format wide").diagnostic.code == "E101"

    def test_statement_separators(self):
        statements = parse_source("1; 2\n3")
        assert len(statements) == 3
        assert all(s.ok for s in statements)
        assert [s.text for s in statements] == ["1", "2", "3"]

    def test_separator_inside_brackets(self):
        assert len(parse_source("[1; 2]; 3")) == 2

    def test_blank_statements_are_skipped(self):
        assert len(parse_source("1;;\n\n2")) == 2

    def test_failure_is_isolated(self):
        statements = parse_source("1; 2 +; 3")
        assert [s.ok for s in statements] == [True, False, True]


class TestParseErrors:
    """Diagnostics produced by the parser."""

    def test_empty_parentheses(self):
        error = error_of("()")
        assert isinstance(error, BracketEmptyError)
        assert error.diagnostic.code == "E103"
        assert error.line == 1
        assert error.column == 1

    def test_empty_parentheses_position(self):
        assert error_of("1 + ()").column == 5

    def test_missing_operand(self):
        error = error_of("1 +")
        assert error.diagnostic.code == "E102"
        assert isinstance(error.part, Literal)
        assert error.length == 1

    def test_missing_closing_paren(self):
        error = error_of("(1 + 2")
        assert error.diagnostic.code == "E102"
        assert "')'" in error.message

    def test_unbalanced_closing_paren(self):
        error = error_of("1 + 2)")
        assert error.diagnostic.code == "E105"
        assert error.column == 6

    def test_unexpected_token(self):
        assert error_of("1 2").diagnostic.code == "E101"

    def test_lexer_error_fails_only_its_statement(self):
        statements = parse_source("1 $ 2; 3")
        assert isinstance(statements[0].errors[0], LexerError)
        assert statements[0].errors[0].diagnostic.code == "E001"
        assert statements[1].ok

    def test_deep_nesting(self):
        source = "(" * 3000 + "1" + ")" * 3000 + "; 2"
        statements = parse_source(source)
        assert statements[0].errors[0].diagnostic.code == "E106"
        assert statements[0].errors[0].line == 1
        assert statements[1].ok

    def test_error_has_source_line(self):
        error = error_of("1 + ()")
        assert error.diagnostic.source_line == "1 + ()"
        assert "Line 001, Pos. 005" in error.diagnostic.format()


class TestAst:
    """AST nodes are immutable and printable."""

    def test_nodes_are_frozen(self):
        node = expr("1 + 2")
        with pytest.raises(dataclasses.FrozenInstanceError):
            node.operator = "-"

    def test_format_ast(self):
        text = format_ast(parse_one("x = 1 + 2").node)
        assert "Assignment" in text
        assert "BinaryOp" in text

    def test_spans(self):
        node = expr("foo + 1")
        assert node.left.span.start.column == 1
        assert node.left.span.length == 3
