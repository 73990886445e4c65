"""
Abstract Syntax Tree (AST) node definitions for numscript.

Nodes are frozen dataclasses holding tuples, so a parsed statement can be
interpreted any number of times against different contexts. Interpretation
lives in ``runtime.interpreter``; ``AstNode.interpret`` is a shortcut to it.
"""

from dataclasses import dataclass, fields
from typing import Any, List, Optional, Tuple, Union
from abc import ABC

from .tokens import SourceSpan, TokenType


# =============================================================================
# Base Classes
# =============================================================================

@dataclass(frozen=True)
class AstNode(ABC):
    """Base class for all AST nodes."""
    span: SourceSpan  # Source location for error reporting

    def accept(self, visitor: "AstVisitor") -> Any:
        """Accept a visitor for traversal."""
        method_name = f"visit_{self.__class__.__name__}"
        method = getattr(visitor, method_name, visitor.generic_visit)
        return method(self)

    def interpret(self, context: Any) -> Any:
        """Evaluate this node against a Context."""
        from .runtime.interpreter import Interpreter
        return Interpreter(context).evaluate_node(self)


class AstVisitor(ABC):
    """Base class for AST visitors."""

    def generic_visit(self, node: AstNode) -> Any:
        """Default visit method."""
        raise NotImplementedError(f"No visitor for {node.__class__.__name__}")


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass(frozen=True)
class Expression(AstNode):
    """Base class for all expressions."""
    pass


@dataclass(frozen=True)
class Literal(Expression):
    """A number or string literal."""
    value: Union[int, float, str]
    literal_type: TokenType  # INT_LITERAL, FLOAT_LITERAL, IMAG_LITERAL, STRING_LITERAL


@dataclass(frozen=True)
class Identifier(Expression):
    """A variable, constant or function name reference."""
    name: str


@dataclass(frozen=True)
class BinaryOp(Expression):
    """A binary operation (e.g., a + b, A .* B)."""
    left: Expression
    operator: str  # operator symbol as registered, '+', '.^', '==' ...
    right: Expression


@dataclass(frozen=True)
class UnaryOp(Expression):
    """A prefix operation (-x, +x)."""
    operator: str
    operand: Expression


@dataclass(frozen=True)
class PostfixOp(Expression):
    """A postfix operation: ' (conjugate transpose) or ! (factorial)."""
    operand: Expression
    operator: str


@dataclass(frozen=True)
class Group(Expression):
    """A parenthesized expression."""
    expression: Expression


@dataclass(frozen=True)
class FunctionCall(Expression):
    """A call or index (e.g., sin(x), A(2, 1), s([1, 3]))."""
    name: str
    arguments: Tuple[Expression, ...]


@dataclass(frozen=True)
class MatrixLiteral(Expression):
    """A bracketed matrix literal, rows separated by ';'."""
    rows: Tuple[Tuple[Expression, ...], ...]


@dataclass(frozen=True)
class RangeExpr(Expression):
    """A range start:stop or start:step:stop."""
    start: Expression
    stop: Expression
    step: Optional[Expression] = None


@dataclass(frozen=True)
class Assignment(Expression):
    """Binding a name (x = expr)."""
    target: str
    value: Expression


@dataclass(frozen=True)
class MultiAssignment(Expression):
    """Spreading a multi-valued result ([a, b] = expr)."""
    targets: Tuple[str, ...]
    value: Expression


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass(frozen=True)
class Statement(AstNode):
    """Base class for top-level statements."""
    pass


@dataclass(frozen=True)
class ExpressionStatement(Statement):
    """An expression evaluated for its value."""
    expression: Expression


@dataclass(frozen=True)
class FunctionDefinition(Statement):
    """A user function (function f(x, y) = x + y).

    ``source`` keeps the original text so the function can be serialized
    and reparsed.
    """
    name: str
    parameters: Tuple[str, ...]
    body: Expression
    source: str = ""


@dataclass(frozen=True)
class ClearStatement(Statement):
    """Removing bindings (clear, clear a b). No names clears everything."""
    names: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FormatStatement(Statement):
    """Switching the display mode (format short, format long)."""
    mode: str


# =============================================================================
# Visitor Helpers
# =============================================================================

class FormatVisitor(AstVisitor):
    """Debug visitor that renders the AST structure as indented text."""

    def __init__(self, indent: int = 0):
        self.indent = indent
        self.lines: List[str] = []

    def _emit(self, text: str) -> None:
        self.lines.append("  " * self.indent + text)

    def _child(self, node: AstNode) -> None:
        nested = FormatVisitor(self.indent + 2)
        nested.generic_visit(node)
        self.lines.extend(nested.lines)

    def generic_visit(self, node: AstNode) -> None:
        self._emit(node.__class__.__name__)
        for f in fields(node):
            if f.name == "span":
                continue
            value = getattr(node, f.name)
            if isinstance(value, AstNode):
                self._emit(f"  {f.name}:")
                self._child(value)
            elif isinstance(value, tuple) and any(isinstance(v, (AstNode, tuple)) for v in value):
                self._emit(f"  {f.name}: [")
                for item in value:
                    if isinstance(item, tuple):
                        for cell in item:
                            self._child(cell)
                        self._emit("    ;")
                    else:
                        self._child(item)
                self._emit("  ]")
            elif isinstance(value, TokenType):
                self._emit(f"  {f.name}: {value.name}")
            else:
                self._emit(f"  {f.name}: {value!r}")


def format_ast(node: AstNode) -> str:
    """Render an AST node for debugging."""
    visitor = FormatVisitor()
    visitor.generic_visit(node)
    return "\n".join(visitor.lines)
