"""
Execution context for the numscript interpreter.

A Context owns a chain of scopes:

    constants (read-only: pi, e, i ... and custom constants)
      global  (variables assigned by statements)
        call  (one per active user function call)

Lookup walks outward from the innermost scope; assignment writes to the
nearest writable scope. The context also carries the display settings and
per-context custom functions.
"""

import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, TextIO

from ..errors import UndefinedSymbolError, EvaluationError
from ..settings import FormatSettings
from .values import Value, to_value

logger = logging.getLogger(__name__)


class ContextState(Enum):
    """Lifecycle of a Context."""
    CREATED = "created"          # scopes exist, defaults not yet installed
    READY = "ready"              # constants installed, nothing evaluated yet
    EVALUATING = "evaluating"    # a statement is being interpreted
    IDLE = "idle"                # between statements


@dataclass
class Scope:
    """
    A single scope containing variable bindings.

    Scopes form a chain via the `parent` field.
    """
    variables: Dict[str, Value] = field(default_factory=dict)
    parent: Optional["Scope"] = None
    name: str = "anonymous"  # For debugging
    writable: bool = True

    def get(self, name: str) -> Optional[Value]:
        """Look up a variable in this scope or parent scopes."""
        if name in self.variables:
            return self.variables[name]
        if self.parent:
            return self.parent.get(name)
        return None

    def set(self, name: str, value: Value) -> None:
        """Set a variable in this scope (shadowing parent if exists)."""
        self.variables[name] = value

    def remove(self, name: str) -> bool:
        """Remove a binding from the nearest writable scope that has it."""
        if self.writable and name in self.variables:
            del self.variables[name]
            return True
        if self.parent:
            return self.parent.remove(name)
        return False

    def nearest_writable(self) -> "Scope":
        scope: Optional[Scope] = self
        while scope is not None:
            if scope.writable:
                return scope
            scope = scope.parent
        raise EvaluationError("no writable scope")

    def contains(self, name: str) -> bool:
        """Check if a variable exists in this scope or parents."""
        return self.get(name) is not None


class Context:
    """
    Symbol table and settings for evaluating numscript statements.

    Usage:
        ctx = Context()
        ctx.assign("x", Scalar(2))
        ctx.add_custom_function("twice", lambda v: v.multiply(Scalar(2)))
        results = evaluate("twice(x)", ctx)
    """

    def __init__(self, settings: Optional[FormatSettings] = None,
                 output: Optional[TextIO] = None):
        self.state = ContextState.CREATED
        self.settings = settings or FormatSettings()
        self.output = output
        self.custom_functions: Dict[str, Callable[..., Any]] = {}
        self.source_lines: List[str] = []
        self.call_depth = 0

        self.constants_scope = Scope(name="constants", writable=False)
        self.global_scope = Scope(parent=self.constants_scope, name="global")
        self.current_scope = self.global_scope
        self._install_defaults()

    def _install_defaults(self) -> None:
        from .bootstrap import initialize

        _, builtins = initialize()
        self.constants_scope.variables.update(builtins.constants())
        self.state = ContextState.READY

    # --- bindings ---

    def find(self, name: str) -> Optional[Value]:
        """Look up a name, returning None if it is unbound."""
        return self.current_scope.get(name)

    def lookup(self, name: str) -> Value:
        """Look up a name, raising UndefinedSymbolError if it is unbound."""
        value = self.current_scope.get(name)
        if value is None:
            raise UndefinedSymbolError(name)
        return value

    def assign(self, name: str, value: Value) -> None:
        """Bind a name in the nearest writable scope."""
        self.current_scope.nearest_writable().set(name, value)

    def clear(self, names: Iterable[str] = ()) -> None:
        """Remove the given bindings, or every variable if none are named."""
        names = list(names)
        if not names:
            self.current_scope.nearest_writable().variables.clear()
            return
        for name in names:
            self.current_scope.remove(name)

    @property
    def variables(self) -> Dict[str, Value]:
        """Variables of the global scope."""
        return dict(self.global_scope.variables)

    @contextmanager
    def child_scope(self, name: str = "call"):
        """
        Context manager for a nested scope, used for user function calls.

        Usage:
            with ctx.child_scope("f"):
                ctx.assign("x", Scalar(1))   # local to the call
        """
        old_scope = self.current_scope
        self.current_scope = Scope(parent=old_scope, name=name)
        self.call_depth += 1
        logger.debug("push scope %s (depth %d)", name, self.call_depth)
        try:
            yield self.current_scope
        finally:
            self.current_scope = old_scope
            self.call_depth -= 1
            logger.debug("pop scope %s", name)

    @contextmanager
    def evaluating(self):
        """Mark the context busy for the duration of one statement."""
        self.state = ContextState.EVALUATING
        try:
            yield self
        finally:
            self.current_scope = self.global_scope
            self.call_depth = 0
            self.state = ContextState.IDLE

    # --- extension ---

    def add_custom_function(self, name: str, function: Callable[..., Any]) -> None:
        """
        Make a host callable available to this context only.

        The callable receives the argument Values positionally; a Python
        number, string, list, array or tuple result is converted to a Value.
        """
        self.custom_functions[name] = function

    def get_custom_function(self, name: str) -> Optional[Callable[..., Any]]:
        return self.custom_functions.get(name)

    def add_custom_constant(self, name: str, value: Any) -> None:
        """Add a read-only constant visible to this context only."""
        self.constants_scope.set(name, to_value(value))

    # --- settings and output ---

    def set_format(self, mode: str) -> None:
        self.settings = self.settings.with_mode(mode)

    def write(self, text: str) -> None:
        stream = self.output if self.output is not None else sys.stdout
        stream.write(text + "\n")

    def source_line(self, line: int) -> Optional[str]:
        if 1 <= line <= len(self.source_lines):
            return self.source_lines[line - 1]
        return None
