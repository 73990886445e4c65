"""
Tree-walking interpreter for numscript.

Evaluates statement ASTs against a Context, resolving operators through the
OperatorRegistry and calls through the context bindings, custom functions
and the BuiltinRegistry (in that order).
"""

import inspect
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .values import Value, Scalar, Matrix, String, Arguments, FunctionValue, to_value
from .context import Context
from .bootstrap import initialize

from ..ast import (
    AstNode, AstVisitor,
    Statement, ExpressionStatement, FunctionDefinition, ClearStatement, FormatStatement,
    Expression, Literal, Identifier, BinaryOp, UnaryOp, PostfixOp, Group,
    FunctionCall, MatrixLiteral, RangeExpr, Assignment, MultiAssignment,
)
from ..errors import (
    Diagnostic,
    EvaluationError,
    UndefinedSymbolError,
    OperationNotSupportedError,
    NoApplicableOverloadError,
    MalformedLiteralError,
    RecursionLimitError,
)
from ..tokens import SourceSpan, TokenType
from ..lexer import Lexer
from ..parser import Parser

logger = logging.getLogger(__name__)

# Deepest nesting of user function calls.
MAX_CALL_DEPTH = 128

# Most elements a range expression may produce.
MAX_RANGE_LENGTH = 10_000_000


@dataclass
class StatementResult:
    """Outcome of one top-level statement."""
    value: Optional[Value]
    diagnostics: List[Diagnostic] = field(default_factory=list)
    text: str = ""
    span: Optional[SourceSpan] = None

    @property
    def success(self) -> bool:
        return not self.diagnostics

    @property
    def has_value(self) -> bool:
        """False for failures and for statements that produce nothing."""
        return self.value is not None and not (isinstance(self.value, Arguments) and len(self.value) == 0)

    def to_json(self, settings: Any = None) -> Dict[str, Any]:
        data: Dict[str, Any] = {"statement": self.text, "success": self.success}
        if self.has_value:
            data["kind"] = str(self.value.kind)
            data["value"] = self.value.display(settings)
        data["diagnostics"] = [d.to_json() for d in self.diagnostics]
        return data


def single(value: Value) -> Value:
    """The value a single-result position sees."""
    if isinstance(value, Arguments):
        return value.single()
    return value


class Interpreter(AstVisitor):
    """
    Tree-walking interpreter for numscript.

    AST nodes hold no evaluation state, so one parsed statement can be run by
    any number of interpreters against different contexts.
    """

    def __init__(self, context: Context):
        self.context = context
        self.operators, self.builtins = initialize()

    # =========================================================================
    # Entry points
    # =========================================================================

    def execute(self, statement: Statement) -> Value:
        """Run one top-level statement."""
        return self._eval(statement)

    def evaluate_node(self, node: AstNode) -> Value:
        """Evaluate any node, statement or expression."""
        return self._eval(node)

    def _eval(self, node: AstNode) -> Value:
        try:
            return node.accept(self)
        except EvaluationError as exc:
            # innermost node wins; outer frames keep its location
            raise exc.locate(node.span, self.context.source_line(node.span.start.line))

    def _eval_single(self, node: Expression) -> Value:
        return single(self._eval(node))

    # =========================================================================
    # Statements
    # =========================================================================

    def visit_ExpressionStatement(self, stmt: ExpressionStatement) -> Value:
        value = self._eval(stmt.expression)
        if not isinstance(stmt.expression, (Assignment, MultiAssignment)):
            if not (isinstance(value, Arguments) and len(value) == 0):
                self.context.assign("ans", single(value))
        return value

    def visit_FunctionDefinition(self, stmt: FunctionDefinition) -> Value:
        function = FunctionValue.from_definition(stmt)
        self.context.assign(stmt.name, function)
        return function

    def visit_ClearStatement(self, stmt: ClearStatement) -> Value:
        self.context.clear(stmt.names)
        return Arguments()

    def visit_FormatStatement(self, stmt: FormatStatement) -> Value:
        self.context.set_format(stmt.mode)
        return Arguments()

    # =========================================================================
    # Expressions
    # =========================================================================

    def visit_Literal(self, lit: Literal) -> Value:
        if lit.literal_type == TokenType.STRING_LITERAL:
            return String(lit.value)
        if lit.literal_type == TokenType.IMAG_LITERAL:
            return Scalar(0.0, lit.value)
        return Scalar.from_python(lit.value)

    def visit_Identifier(self, ident: Identifier) -> Value:
        value = self.context.find(ident.name)
        if value is not None:
            return value
        # a bare function name is a call without arguments
        if self._is_function(ident.name):
            return self._call_named(ident.name, [])
        raise UndefinedSymbolError(ident.name)

    def visit_Group(self, group: Group) -> Value:
        return self._eval(group.expression)

    def visit_BinaryOp(self, op: BinaryOp) -> Value:
        left = self._eval_single(op.left)
        right = self._eval_single(op.right)
        return self.operators.apply(op.operator, left, right)

    def visit_UnaryOp(self, op: UnaryOp) -> Value:
        operand = self._eval_single(op.operand)
        if op.operator == "-":
            return operand.negate()
        if not isinstance(operand, (Scalar, Matrix)):
            raise OperationNotSupportedError(op.operator, operand.kind)
        return operand

    def visit_PostfixOp(self, op: PostfixOp) -> Value:
        operand = self._eval_single(op.operand)
        if op.operator == "'":
            return operand.conjugate_transpose()
        return operand.faculty()

    def visit_MatrixLiteral(self, lit: MatrixLiteral) -> Value:
        rows = [[self._eval_single(e) for e in row] for row in lit.rows]
        return Matrix.concatenate(rows)

    def visit_RangeExpr(self, rng: RangeExpr) -> Value:
        start = self._range_bound(self._eval_single(rng.start))
        stop = self._range_bound(self._eval_single(rng.stop))
        step = 1.0 if rng.step is None else self._range_bound(self._eval_single(rng.step))
        if not all(math.isfinite(b) for b in (start, stop, step)):
            raise MalformedLiteralError("range bounds must be finite")
        if step == 0.0 or (stop - start) / step < 0:
            return Matrix(np.zeros((1, 0)))
        steps = (stop - start) / step + 1e-10
        if steps >= MAX_RANGE_LENGTH:
            raise MalformedLiteralError(f"range has more than {MAX_RANGE_LENGTH} elements")
        count = int(math.floor(steps)) + 1
        return Matrix(start + step * np.arange(count)).simplify()

    def _range_bound(self, value: Value) -> float:
        if not isinstance(value, Scalar):
            raise OperationNotSupportedError(":", value.kind)
        return value.real

    def visit_Assignment(self, assign: Assignment) -> Value:
        value = self._eval_single(assign.value)
        self.context.assign(assign.target, value)
        return value

    def visit_MultiAssignment(self, assign: MultiAssignment) -> Value:
        value = self._eval(assign.value)
        if isinstance(value, Arguments):
            values = list(value)
        elif isinstance(value, Matrix) and value.is_vector and len(assign.targets) > 1:
            values = value.scalars()
        else:
            values = [value]
        if len(values) < len(assign.targets):
            raise EvaluationError(
                f"expected {len(assign.targets)} results, got {len(values)}")
        assigned = values[:len(assign.targets)]
        for name, v in zip(assign.targets, assigned):
            self.context.assign(name, v)
        return Arguments(assigned)

    def visit_FunctionCall(self, call: FunctionCall) -> Value:
        arguments = [self._eval_single(a) for a in call.arguments]
        bound = self.context.find(call.name)
        if isinstance(bound, FunctionValue):
            return self._call_user(bound, arguments)
        if isinstance(bound, Scalar):
            return Matrix([[bound.to_complex()]]).index(arguments)
        if bound is not None:
            return bound.index(arguments)
        if self._is_function(call.name):
            return self._call_named(call.name, arguments)
        raise UndefinedSymbolError(call.name)

    # =========================================================================
    # Calls
    # =========================================================================

    def _is_function(self, name: str) -> bool:
        return (self.context.get_custom_function(name) is not None
                or self.builtins.has_function(name))

    def _call_named(self, name: str, arguments: Sequence[Value]) -> Value:
        custom = self.context.get_custom_function(name)
        if custom is not None:
            try:
                inspect.signature(custom).bind(*arguments)
            except TypeError:
                raise NoApplicableOverloadError(name, [a.kind for a in arguments]) from None
            except ValueError:
                pass  # no introspectable signature (some C callables)
            return to_value(custom(*arguments))
        return self.builtins.call(name, arguments, self.context)

    def _call_user(self, function: FunctionValue, arguments: Sequence[Value]) -> Value:
        if len(arguments) != function.arity:
            raise NoApplicableOverloadError(function.name, [a.kind for a in arguments])
        if self.context.call_depth >= MAX_CALL_DEPTH:
            raise RecursionLimitError(
                f"maximum call depth {MAX_CALL_DEPTH} exceeded in '{function.name}'")
        with self.context.child_scope(function.name) as scope:
            for parameter, argument in zip(function.parameters, arguments):
                scope.set(parameter, argument)
            return self._eval_single(function.body)


def evaluate(source: str, context: Optional[Context] = None,
             filename: Optional[str] = None) -> List[StatementResult]:
    """
    Evaluate source text, one result per top-level statement.

    Statements run in order against ``context`` (a fresh one if omitted).
    A failing statement records its diagnostics and produces no value;
    bindings made by earlier statements are kept.
    """
    context = context if context is not None else Context()
    context.source_lines = source.splitlines()

    tokens = Lexer(source, filename).tokenize()
    statements = Parser(tokens, filename, source).parse()
    interpreter = Interpreter(context)

    results = []
    for statement in statements:
        if not statement.ok:
            diagnostics = [e.diagnostic for e in statement.errors]
            results.append(StatementResult(None, diagnostics, statement.text, statement.span))
            continue
        logger.debug("evaluating %r", statement.text)
        with context.evaluating():
            try:
                value = interpreter.execute(statement.node)
            except EvaluationError as exc:
                results.append(StatementResult(None, [exc.diagnostic], statement.text, statement.span))
                continue
            except RecursionError:
                error = RecursionLimitError("expression nested too deeply").locate(statement.span)
                results.append(StatementResult(None, [error.diagnostic], statement.text, statement.span))
                continue
        results.append(StatementResult(value, [], statement.text, statement.span))
    return results
