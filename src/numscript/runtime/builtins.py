"""
Built-in function and constant registry for the numscript interpreter.

A built-in function owns one or more overloads. Each overload declares the
kind of every parameter (and optionally a variadic tail kind). A call picks
the overload whose parameters accept the argument kinds with the smallest
total widening distance; no candidate, or a tie for the smallest distance,
is a NoApplicableOverloadError.

The registry starts empty. ``register_defaults`` installs the standard
library; ``bootstrap.initialize`` calls it once and then seals the registry.
"""

import logging
import math
import re
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..kinds import ValueKind, VALUE, SCALAR, MATRIX, STRING
from ..errors import (
    NoApplicableOverloadError,
    RegistrySealedError,
    IndexOutOfRangeError,
    MalformedLiteralError,
)
from .values import Value, Scalar, Matrix, String, Arguments, to_value

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Overload:
    """One entry point of a built-in function."""
    parameters: Tuple[ValueKind, ...]
    implementation: Callable[..., Any]
    variadic: Optional[ValueKind] = None   # kind of extra trailing arguments
    system: bool = False                    # implementation takes the Context first
    doc: str = ""

    @property
    def signature(self) -> Tuple[Tuple[ValueKind, ...], Optional[ValueKind]]:
        return (self.parameters, self.variadic)

    def distance(self, kinds: Sequence[ValueKind]) -> Optional[int]:
        """Total widening distance for these argument kinds, or None."""
        fixed = len(self.parameters)
        if len(kinds) < fixed or (len(kinds) > fixed and self.variadic is None):
            return None
        total = 0
        for i, kind in enumerate(kinds):
            declared = self.parameters[i] if i < fixed else self.variadic
            step = declared.widening_distance(kind)
            if step is None:
                return None
            total += step
        return total

    def __str__(self) -> str:
        parts = [str(k) for k in self.parameters]
        if self.variadic is not None:
            parts.append(f"{self.variadic}...")
        return f"({', '.join(parts)})"


@dataclass
class BuiltinFunction:
    """A named function with its overloads."""
    name: str
    overloads: List[Overload] = field(default_factory=list)
    doc: str = ""

    def add_overload(self, overload: Overload) -> bool:
        if any(o.signature == overload.signature for o in self.overloads):
            return False
        self.overloads.append(overload)
        return True

    def resolve(self, kinds: Sequence[ValueKind]) -> Overload:
        """Select the single most specific applicable overload."""
        scored = [(o.distance(kinds), o) for o in self.overloads]
        scored = [(d, o) for d, o in scored if d is not None]
        if not scored:
            raise NoApplicableOverloadError(self.name, kinds)
        best = min(d for d, _ in scored)
        winners = [o for d, o in scored if d == best]
        if len(winners) > 1:
            raise NoApplicableOverloadError(self.name, kinds, ambiguous=True)
        return winners[0]


class BuiltinRegistry:
    """
    Registry of built-in functions and constants.

    Functions are registered by name with one or more overloads and are
    dispatched on the kinds of their arguments.
    """

    def __init__(self):
        self._functions: Dict[str, BuiltinFunction] = {}
        self._constants: Dict[str, Value] = {}
        self._sealed = False

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        self._sealed = True
        logger.debug("builtin registry sealed: %d function(s), %d constant(s)",
                     len(self._functions), len(self._constants))

    def get_function(self, name: str) -> Optional[BuiltinFunction]:
        """Look up a function by name."""
        return self._functions.get(name)

    def has_function(self, name: str) -> bool:
        return name in self._functions

    def get_constant(self, name: str) -> Optional[Value]:
        return self._constants.get(name)

    def function_names(self) -> List[str]:
        return sorted(self._functions)

    def constants(self) -> Dict[str, Value]:
        return dict(self._constants)

    def register(self, name: str, parameters: Sequence[ValueKind],
                 implementation: Callable[..., Any], variadic: Optional[ValueKind] = None,
                 system: bool = False, doc: str = "") -> bool:
        """Register one overload of a function. Duplicate signatures are ignored."""
        overload = Overload(tuple(parameters), implementation, variadic, system, doc)
        function = self._functions.get(name)
        if function is not None and any(o.signature == overload.signature for o in function.overloads):
            return False
        if self._sealed:
            raise RegistrySealedError(f"cannot register function '{name}{overload}' after startup")
        if function is None:
            function = self._functions[name] = BuiltinFunction(name, doc=doc)
        function.add_overload(overload)
        logger.debug("registered builtin %s%s", name, overload)
        return True

    def register_constant(self, name: str, value: Value) -> bool:
        if name in self._constants:
            return False
        if self._sealed:
            raise RegistrySealedError(f"cannot register constant '{name}' after startup")
        self._constants[name] = value
        return True

    def call(self, name: str, arguments: Sequence[Value], context: Any = None) -> Value:
        """Dispatch a call on the kinds of its arguments."""
        function = self._functions[name]
        overload = function.resolve([a.kind for a in arguments])
        fixed = list(arguments[:len(overload.parameters)])
        if overload.variadic is not None:
            fixed.append(Arguments(arguments[len(overload.parameters):]))
        if overload.system:
            fixed.insert(0, context)
        return to_value(overload.implementation(*fixed))

    # =========================================================================
    # Standard library
    # =========================================================================

    def register_defaults(self) -> None:
        """Register all built-in functions and constants."""
        self._register_constants()
        self._register_elementary_functions()
        self._register_construction_functions()
        self._register_matrix_functions()
        self._register_conversion_functions()
        self._register_predicates()

    # --- Constants ---

    def _register_constants(self) -> None:
        self.register_constant("pi", Scalar(math.pi))
        self.register_constant("e", Scalar(math.e))
        self.register_constant("i", Scalar(0.0, 1.0))
        self.register_constant("true", Scalar(1.0))
        self.register_constant("false", Scalar(0.0))
        self.register_constant("eps", Scalar(sys.float_info.epsilon))
        self.register_constant("inf", Scalar(math.inf))
        self.register_constant("nan", Scalar(math.nan))

    # --- Elementary functions ---

    def _register_elementary_functions(self) -> None:
        """Scalar functions, applied entry by entry to matrices."""

        def scalar_function(name: str, fn: Callable[[Scalar], Scalar], doc: str) -> None:
            self.register(name, [SCALAR], fn, doc=doc)
            self.register(name, [MATRIX], lambda m: m.map(fn), doc=doc)

        scalar_function("exp", Scalar.exp, "Exponential function")
        scalar_function("ln", Scalar.ln, "Natural logarithm")
        scalar_function("log", Scalar.ln, "Natural logarithm")
        scalar_function("sqrt", Scalar.sqrt, "Principal square root")
        scalar_function("sin", Scalar.sin, "Sine")
        scalar_function("cos", Scalar.cos, "Cosine")
        scalar_function("tan", Scalar.tan, "Tangent")
        scalar_function("abs", lambda z: Scalar(z.abs()), "Modulus")
        scalar_function("arg", lambda z: Scalar(z.arg()), "Argument (phase angle)")
        scalar_function("real", lambda z: Scalar(z.real), "Real part")
        scalar_function("imag", lambda z: Scalar(z.imag), "Imaginary part")
        scalar_function("conj", Scalar.conjugate, "Complex conjugate")

        def _log_base(x: Scalar, base: Scalar) -> Scalar:
            return x.ln().divide(base.ln())

        self.register("log", [SCALAR, SCALAR], _log_base, doc="Logarithm to a base")
        self.register("log", [MATRIX, SCALAR], lambda m, b: m.map(lambda z: _log_base(z, b)),
                      doc="Logarithm to a base")

    # --- Matrix construction ---

    def _register_construction_functions(self) -> None:
        """zeros, ones and eye with 0, 1 or 2 size arguments."""

        def constructor(name: str, build: Callable[[int, int], Matrix], doc: str) -> None:
            self.register(name, [], lambda: build(1, 1).simplify(), doc=doc)
            self.register(name, [SCALAR], lambda n: _sized(build, n, n), doc=doc)
            self.register(name, [SCALAR, SCALAR], lambda r, c: _sized(build, r, c), doc=doc)
            self.register(name, [MATRIX], lambda v: _sized(build, *_size_vector(v)), doc=doc)

        constructor("zeros", Matrix.zeros, "Matrix of zeros")
        constructor("ones", Matrix.ones, "Matrix of ones")
        constructor("eye", Matrix.identity, "Identity matrix")

    # --- Matrix functions ---

    def _register_matrix_functions(self) -> None:

        def _size(value: Value) -> Matrix:
            rows, columns = _shape(value)
            return Matrix([[rows, columns]])

        self.register("size", [MATRIX], _size, doc="[rows, columns]")
        self.register("size", [STRING], _size, doc="[1, length]")
        self.register("length", [MATRIX], lambda m: Scalar(as_matrix(m).length))
        self.register("length", [STRING], lambda s: Scalar(len(s)))
        self.register("numel", [MATRIX], lambda m: Scalar(as_matrix(m).numel))
        self.register("numel", [STRING], lambda s: Scalar(len(s)))
        self.register("transpose", [SCALAR], lambda z: z)
        self.register("transpose", [MATRIX], lambda m: m.transpose())
        self.register("trace", [MATRIX], lambda m: as_matrix(m).trace())
        self.register("det", [MATRIX], lambda m: as_matrix(m).determinant())
        self.register("sum", [MATRIX], lambda m: as_matrix(m).sum())
        self.register("max", [MATRIX], lambda m: as_matrix(m).extreme(largest=True),
                      doc="[value, index] = max(v)")
        self.register("min", [MATRIX], lambda m: as_matrix(m).extreme(largest=False),
                      doc="[value, index] = min(v)")

    # --- Conversion and text ---

    def _register_conversion_functions(self) -> None:

        def _num(text: String) -> Scalar:
            from ..lexer import NumberScanner

            source = text.text.strip()
            scanner = NumberScanner()
            length = scanner.scan(source, 0, None) if source else 0
            if length == 0 or length != len(source):
                raise MalformedLiteralError(f"'{text.text}' is not a number")
            _, number = scanner.create(source, None)
            if source.endswith("i"):
                return Scalar(0.0, number)
            return Scalar.from_python(number)

        def _str(context: Any, value: Value) -> String:
            return String(value.display(_settings(context)))

        def _disp(context: Any, value: Value) -> Arguments:
            text = value.display(_settings(context))
            if context is not None:
                context.write(text)
            return Arguments()

        def _printf(context: Any, template: String, arguments: Arguments) -> String:
            settings = _settings(context)

            def substitute(match: "re.Match") -> str:
                k = int(match.group(1))
                if k >= len(arguments):
                    raise IndexOutOfRangeError(k + 1, len(arguments), "placeholder")
                return arguments[k].display(settings)

            return String(re.sub(r"\{(\d+)\}", substitute, template.text))

        self.register("num", [STRING], _num, doc="Parse text as a number")
        self.register("num", [SCALAR], lambda z: z)
        self.register("scalar", [STRING], lambda s: s.to_scalar(),
                      doc="(sum of character codes, length)")
        self.register("str", [VALUE], _str, system=True, doc="Display form as a string")
        self.register("disp", [VALUE], _disp, system=True, doc="Print a value")
        self.register("printf", [STRING], _printf, variadic=VALUE, system=True,
                      doc="Fill {0}, {1} ... placeholders with the arguments")

    # --- Predicates ---

    def _register_predicates(self) -> None:

        def predicate(name: str, test: Callable[[Value], bool]) -> None:
            self.register(name, [VALUE], lambda v: Scalar(1.0 if test(v) else 0.0))

        predicate("isscalar", lambda v: isinstance(v, Scalar))
        predicate("ismatrix", lambda v: isinstance(v, (Scalar, Matrix)))
        predicate("isstring", lambda v: isinstance(v, String))


# =============================================================================
# Helpers
# =============================================================================

def as_matrix(value: Value) -> Matrix:
    """View a Scalar as a 1x1 Matrix."""
    if isinstance(value, Scalar):
        return Matrix([[value.to_complex()]])
    return value


def _shape(value: Value) -> Tuple[int, int]:
    if isinstance(value, String):
        return 1, len(value)
    return as_matrix(value).shape


def _sized(build: Callable[[int, int], Matrix], rows: Any, columns: Any) -> Value:
    r = rows.to_int("size") if isinstance(rows, Scalar) else int(rows)
    c = columns.to_int("size") if isinstance(columns, Scalar) else int(columns)
    return build(max(r, 0), max(c, 0)).simplify()


def _size_vector(value: Value) -> Tuple[Scalar, Scalar]:
    entries = as_matrix(value).scalars()
    if len(entries) != 2:
        raise MalformedLiteralError(f"size vector needs 2 entries, got {len(entries)}")
    return entries[0], entries[1]


def _settings(context: Any):
    return getattr(context, "settings", None)


_registry: Optional[BuiltinRegistry] = None


def get_builtin_registry() -> BuiltinRegistry:
    """Get the global built-in registry, initializing the runtime if needed."""
    from .bootstrap import initialize

    initialize()
    return _registry


def _install_registry(registry: BuiltinRegistry) -> None:
    global _registry
    _registry = registry
