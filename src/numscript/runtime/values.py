"""
Runtime values for the numscript interpreter.

All values are immutable: arithmetic returns a new value and never modifies
an operand, so a value may safely be bound to several names at once.

Each value class registers the operator combinations it supports with the
OperatorRegistry through ``register_operators``. Same-kind arithmetic needs
no registration; the registry falls back to the left operand's own methods
(``add``, ``subtract`` ...) when both operands have the same kind.
"""

import math
import struct
from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Optional, Sequence, Tuple, Type

import numpy as np

from ..kinds import ValueKind, SCALAR, MATRIX, STRING, ARGUMENTS, FUNCTION
from ..settings import FormatSettings
from ..errors import (
    OperationNotSupportedError,
    IndexOutOfRangeError,
    MalformedLiteralError,
    DimensionMismatchError,
    EvaluationError,
)

_DEFAULT_SETTINGS = FormatSettings()

# Integral exponents up to this size use repeated squaring.
_MAX_EXACT_POWER = 1 << 16


# =============================================================================
# Float helpers
# =============================================================================

def _divide(x: float, y: float) -> float:
    """IEEE division: x/0 is a signed infinity, 0/0 is NaN."""
    if y == 0.0:
        if x == 0.0 or math.isnan(x):
            return math.nan
        return math.copysign(math.inf, x) * math.copysign(1.0, y)
    return x / y


def _exp(x: float) -> float:
    try:
        return math.exp(x)
    except OverflowError:
        return math.inf


def _cosh(x: float) -> float:
    try:
        return math.cosh(x)
    except OverflowError:
        return math.inf


def _sinh(x: float) -> float:
    try:
        return math.sinh(x)
    except OverflowError:
        return math.copysign(math.inf, x)


def _real_pow(base: float, exponent: float) -> float:
    try:
        return base ** exponent
    except OverflowError:
        negative = base < 0 and exponent.is_integer() and int(exponent) % 2 == 1
        return -math.inf if negative else math.inf


def _faculty(x: float, zero: float) -> float:
    """Factorial of the truncated magnitude, carrying the sign of x.

    A zero component gives ``zero``; any other |x| < 1 gives the sign alone.
    """
    if math.isnan(x) or math.isinf(x):
        return x
    if x == 0.0:
        return zero
    k = int(abs(x))
    value = math.copysign(1.0, x)
    while k > 1:
        value *= k
        k -= 1
    return value


def format_real(x: float, settings: Optional[FormatSettings] = None) -> str:
    """Render one real number for display."""
    settings = settings or _DEFAULT_SETTINGS
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "Inf" if x > 0 else "-Inf"
    if abs(x) < settings.epsilon:
        return "0"
    if x.is_integer() and abs(x) < 1e15:
        return str(int(x))
    return format(x, f".{settings.precision}g")


# =============================================================================
# Base class
# =============================================================================

class Value(ABC):
    """
    Base class for runtime values.

    Subclasses set ``kind`` (used for dispatch) and ``header`` (the short
    type name used when serializing).
    """

    kind: ClassVar[ValueKind]
    header: ClassVar[str]

    __slots__ = ()

    def _unsupported(self, symbol: str, other: Optional["Value"] = None):
        if other is None:
            raise OperationNotSupportedError(symbol, self.kind)
        raise OperationNotSupportedError(symbol, self.kind, other.kind)

    # Same-kind arithmetic; subclasses override what they support.

    def add(self, other: "Value") -> "Value":
        self._unsupported("+", other)

    def subtract(self, other: "Value") -> "Value":
        self._unsupported("-", other)

    def multiply(self, other: "Value") -> "Value":
        self._unsupported("*", other)

    def divide(self, other: "Value") -> "Value":
        self._unsupported("/", other)

    def power(self, other: "Value") -> "Value":
        self._unsupported("^", other)

    def elementwise_multiply(self, other: "Value") -> "Value":
        self._unsupported(".*", other)

    def elementwise_divide(self, other: "Value") -> "Value":
        self._unsupported("./", other)

    def elementwise_power(self, other: "Value") -> "Value":
        self._unsupported(".^", other)

    # Unary operations

    def negate(self) -> "Value":
        self._unsupported("-")

    def conjugate_transpose(self) -> "Value":
        self._unsupported("'")

    def faculty(self) -> "Value":
        self._unsupported("!")

    def index(self, arguments: Sequence["Value"]) -> "Value":
        """Call syntax on a value: A(i), A(i, j), s(v)."""
        self._unsupported("()")

    def copy(self) -> "Value":
        return self

    @abstractmethod
    def display(self, settings: Optional[FormatSettings] = None) -> str:
        """Text form of the value."""

    @abstractmethod
    def serialize(self) -> bytes:
        """Binary payload; the header is written by the caller."""

    @classmethod
    @abstractmethod
    def deserialize(cls, data: bytes) -> "Value":
        """Rebuild a value from its binary payload."""

    @classmethod
    def register_operators(cls, registry: Any) -> None:
        """Register cross-kind operator implementations."""
        pass

    def __str__(self) -> str:
        return self.display()


# =============================================================================
# Scalar
# =============================================================================

class Scalar(Value):
    """A complex number held as a pair of doubles."""

    kind = SCALAR
    header = "Scalar"
    __slots__ = ("_real", "_imag")

    def __init__(self, real: float = 0.0, imag: float = 0.0):
        self._real = float(real)
        self._imag = float(imag)

    @classmethod
    def from_python(cls, value: Any) -> "Scalar":
        if isinstance(value, (bool, np.bool_)):
            return cls(1.0 if value else 0.0)
        if isinstance(value, (complex, np.complexfloating)):
            return cls(value.real, value.imag)
        try:
            return cls(float(value))
        except OverflowError:
            return cls(math.inf if value > 0 else -math.inf)

    @property
    def real(self) -> float:
        return self._real

    @property
    def imag(self) -> float:
        return self._imag

    @property
    def is_real(self) -> bool:
        return self._imag == 0.0

    def to_complex(self) -> complex:
        return complex(self._real, self._imag)

    def to_int(self, what: str = "argument") -> int:
        """Coerce to an integer, failing for non-integral values."""
        if self._imag != 0.0 or not self._real.is_integer():
            raise MalformedLiteralError(f"{what} must be an integer, got {self.display()}")
        return int(self._real)

    # --- arithmetic ---

    def add(self, other: "Scalar") -> "Scalar":
        return Scalar(self._real + other._real, self._imag + other._imag)

    def subtract(self, other: "Scalar") -> "Scalar":
        return Scalar(self._real - other._real, self._imag - other._imag)

    def multiply(self, other: "Scalar") -> "Scalar":
        a, b = self._real, self._imag
        c, d = other._real, other._imag
        if b == 0.0 and d == 0.0:
            return Scalar(a * c)
        return Scalar(a * c - b * d, a * d + b * c)

    def divide(self, other: "Scalar") -> "Scalar":
        # z / w = z * conj(w) / |w|^2
        c, d = other._real, other._imag
        if self._imag == 0.0 and d == 0.0:
            return Scalar(_divide(self._real, c))
        numerator = self.multiply(other.conjugate())
        modulus = c * c + d * d
        return Scalar(_divide(numerator._real, modulus), _divide(numerator._imag, modulus))

    def power(self, exponent: "Scalar") -> "Scalar":
        a, b = self._real, self._imag
        c, d = exponent._real, exponent._imag
        if c == 0.0 and d == 0.0:
            return Scalar(1.0)
        if a == 0.0 and b == 0.0:
            if c > 0.0:
                return Scalar(0.0)
            if d == 0.0:
                return Scalar(math.inf)
            return Scalar(math.nan, math.nan)
        if b == 0.0 and d == 0.0 and (a > 0.0 or c.is_integer()):
            return Scalar(_real_pow(a, c))
        if d == 0.0 and c.is_integer() and abs(c) <= _MAX_EXACT_POWER:
            return self._integer_power(int(c))
        return exponent.multiply(self.ln()).exp()

    def _integer_power(self, n: int) -> "Scalar":
        result = Scalar(1.0)
        base = self
        k = abs(n)
        while k:
            if k & 1:
                result = result.multiply(base)
            base = base.multiply(base)
            k >>= 1
        if n < 0:
            return Scalar(1.0).divide(result)
        return result

    elementwise_multiply = multiply
    elementwise_divide = divide
    elementwise_power = power

    def negate(self) -> "Scalar":
        return Scalar(-self._real, -self._imag)

    def conjugate(self) -> "Scalar":
        return Scalar(self._real, -self._imag)

    conjugate_transpose = conjugate

    def faculty(self) -> "Scalar":
        return Scalar(_faculty(self._real, 1.0), _faculty(self._imag, 0.0))

    def compare(self, other: "Scalar") -> int:
        """Order by real part."""
        if self._real < other._real:
            return -1
        if self._real > other._real:
            return 1
        return 0

    # --- elementary functions ---

    def abs(self) -> float:
        return math.hypot(self._real, self._imag)

    def arg(self) -> float:
        return math.atan2(self._imag, self._real)

    def exp(self) -> "Scalar":
        f = _exp(self._real)
        if self._imag == 0.0:
            return Scalar(f)
        return Scalar(f * math.cos(self._imag), f * math.sin(self._imag))

    def ln(self) -> "Scalar":
        modulus = self.abs()
        re = math.log(modulus) if modulus > 0.0 else -math.inf
        return Scalar(re, self.arg())

    def sin(self) -> "Scalar":
        a, b = self._real, self._imag
        if b == 0.0:
            return Scalar(math.sin(a))
        return Scalar(math.sin(a) * _cosh(b), math.cos(a) * _sinh(b))

    def cos(self) -> "Scalar":
        a, b = self._real, self._imag
        if b == 0.0:
            return Scalar(math.cos(a))
        return Scalar(math.cos(a) * _cosh(b), -math.sin(a) * _sinh(b))

    def tan(self) -> "Scalar":
        return self.sin().divide(self.cos())

    def sqrt(self) -> "Scalar":
        """Principal square root."""
        a, b = self._real, self._imag
        if b == 0.0:
            if a >= 0.0:
                return Scalar(math.sqrt(a))
            return Scalar(0.0, math.sqrt(-a))
        r = self.abs()
        if a >= 0.0:
            t = math.sqrt((r + a) / 2.0)
            return Scalar(t, b / (2.0 * t))
        t = math.sqrt((r - a) / 2.0)
        return Scalar(abs(b) / (2.0 * t), math.copysign(t, b))

    # --- protocol ---

    def copy(self) -> "Scalar":
        return Scalar(self._real, self._imag)

    def display(self, settings: Optional[FormatSettings] = None) -> str:
        settings = settings or _DEFAULT_SETTINGS
        re, im = self._real, self._imag
        if abs(im) < settings.epsilon:
            return format_real(re, settings)
        if abs(re) < settings.epsilon:
            return f"{format_real(im, settings)}i"
        sign = "-" if im < 0 else "+"
        return f"{format_real(re, settings)}{sign}{format_real(abs(im), settings)}i"

    def serialize(self) -> bytes:
        return struct.pack("<dd", self._real, self._imag)

    @classmethod
    def deserialize(cls, data: bytes) -> "Scalar":
        real, imag = struct.unpack("<dd", data)
        return cls(real, imag)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Scalar):
            return self._real == other._real and self._imag == other._imag
        if isinstance(other, (int, float)) and not isinstance(other, bool):
            return self._imag == 0.0 and self._real == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(complex(self._real, self._imag))

    def __repr__(self) -> str:
        return f"Scalar({self._real!r}, {self._imag!r})"

    @classmethod
    def register_operators(cls, registry: Any) -> None:
        registry.register("*", SCALAR, MATRIX, lambda s, m: m.scale(s))
        registry.register("+", SCALAR, MATRIX, lambda s, m: m.map(s.add))
        registry.register("-", SCALAR, MATRIX, lambda s, m: m.map(s.subtract))
        for symbol, test in _COMPARISONS.items():
            registry.register(symbol, SCALAR, SCALAR,
                              lambda l, r, test=test: _truth(test(l.compare(r))))


def _truth(flag: bool) -> Scalar:
    return Scalar(1.0 if flag else 0.0)


_COMPARISONS: Dict[str, Callable[[int], bool]] = {
    "<": lambda c: c < 0,
    ">": lambda c: c > 0,
    "<=": lambda c: c <= 0,
    ">=": lambda c: c >= 0,
}

_NUMPY_COMPARISONS = {
    "<": np.less,
    ">": np.greater,
    "<=": np.less_equal,
    ">=": np.greater_equal,
}


# =============================================================================
# Matrix
# =============================================================================

class Matrix(Value):
    """
    A rows x columns grid of complex numbers with 1-based indexing.

    Entries live in a read-only numpy complex128 array. Linear indexes run
    down the columns first.
    """

    kind = MATRIX
    header = "Matrix"

    def __init__(self, data: Any = None):
        if data is None:
            array = np.zeros((0, 0), dtype=np.complex128)
        else:
            array = np.array(data, dtype=np.complex128)
            if array.ndim == 0:
                array = array.reshape(1, 1)
            elif array.ndim == 1:
                array = array.reshape(1, -1)
            elif array.ndim != 2:
                raise DimensionMismatchError(f"matrices have two dimensions, got {array.ndim}")
        array.flags.writeable = False
        self._data = array

    @classmethod
    def zeros(cls, rows: int, columns: int) -> "Matrix":
        return cls(np.zeros((rows, columns), dtype=np.complex128))

    @classmethod
    def ones(cls, rows: int, columns: int) -> "Matrix":
        return cls(np.ones((rows, columns), dtype=np.complex128))

    @classmethod
    def identity(cls, rows: int, columns: int) -> "Matrix":
        return cls(np.eye(rows, columns, dtype=np.complex128))

    @classmethod
    def concatenate(cls, rows: Sequence[Sequence[Value]]) -> Value:
        """Join literal elements: ',' horizontally, ';' vertically."""
        blocks = []
        for row in rows:
            parts = []
            for element in row:
                if isinstance(element, Scalar):
                    parts.append(np.array([[element.to_complex()]], dtype=np.complex128))
                elif isinstance(element, Matrix):
                    if not element.is_empty:
                        parts.append(element._data)
                else:
                    raise OperationNotSupportedError("[]", element.kind)
            if not parts:
                continue
            if len({p.shape[0] for p in parts}) > 1:
                raise DimensionMismatchError("horizontal concatenation needs equal row counts")
            blocks.append(np.hstack(parts))
        if not blocks:
            return cls()
        if len({b.shape[1] for b in blocks}) > 1:
            raise DimensionMismatchError("vertical concatenation needs equal column counts")
        return cls(np.vstack(blocks)).simplify()

    @property
    def array(self) -> np.ndarray:
        return self._data

    @property
    def rows(self) -> int:
        return self._data.shape[0]

    @property
    def columns(self) -> int:
        return self._data.shape[1]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.rows, self.columns

    @property
    def is_empty(self) -> bool:
        return self._data.size == 0

    @property
    def is_vector(self) -> bool:
        return self.rows == 1 or self.columns == 1

    @property
    def length(self) -> int:
        return 0 if self.is_empty else max(self.shape)

    @property
    def numel(self) -> int:
        return self._data.size

    def simplify(self) -> Value:
        """A 1x1 matrix becomes the Scalar it holds."""
        if self.shape == (1, 1):
            return Scalar.from_python(self._data[0, 0])
        return self

    def _flat(self) -> np.ndarray:
        return self._data.flatten(order="F")

    def get(self, row: int, column: int) -> Scalar:
        """1-based element access."""
        if not 1 <= row <= self.rows:
            raise IndexOutOfRangeError(row, self.rows, "row index")
        if not 1 <= column <= self.columns:
            raise IndexOutOfRangeError(column, self.columns, "column index")
        return Scalar.from_python(self._data[row - 1, column - 1])

    def get_linear(self, k: int) -> Scalar:
        if not 1 <= k <= self.numel:
            raise IndexOutOfRangeError(k, self.numel)
        return Scalar.from_python(self._flat()[k - 1])

    def index(self, arguments: Sequence[Value]) -> Value:
        if len(arguments) == 1:
            positions = _indices(arguments[0], self.numel, "index")
            picked = self._flat()[[p - 1 for p in positions]]
            if self.columns == 1 and self.rows != 1:
                return Matrix(picked.reshape(-1, 1)).simplify()
            return Matrix(picked.reshape(1, -1)).simplify()
        if len(arguments) == 2:
            rows = _indices(arguments[0], self.rows, "row index")
            cols = _indices(arguments[1], self.columns, "column index")
            picked = self._data[np.ix_([r - 1 for r in rows], [c - 1 for c in cols])]
            return Matrix(picked).simplify()
        raise MalformedLiteralError(f"matrix index takes 1 or 2 arguments, got {len(arguments)}")

    def scalars(self) -> List[Scalar]:
        """Entries in linear (column-major) order."""
        return [Scalar.from_python(z) for z in self._flat()]

    def map(self, fn: Callable[[Scalar], Scalar]) -> "Matrix":
        out = np.empty(self.shape, dtype=np.complex128)
        for idx in np.ndindex(*self.shape):
            out[idx] = fn(Scalar.from_python(self._data[idx])).to_complex()
        return Matrix(out)

    def _zip(self, other: "Matrix", fn: Callable[[Scalar, Scalar], Scalar], symbol: str) -> "Matrix":
        self._require_same_shape(other, symbol)
        out = np.empty(self.shape, dtype=np.complex128)
        for idx in np.ndindex(*self.shape):
            left = Scalar.from_python(self._data[idx])
            right = Scalar.from_python(other._data[idx])
            out[idx] = fn(left, right).to_complex()
        return Matrix(out)

    def _require_same_shape(self, other: "Matrix", symbol: str) -> None:
        if self.shape != other.shape:
            raise DimensionMismatchError(
                f"operator '{symbol}' needs equal sizes, got "
                f"{self.rows}x{self.columns} and {other.rows}x{other.columns}")

    # --- arithmetic ---

    def add(self, other: "Matrix") -> "Matrix":
        self._require_same_shape(other, "+")
        return Matrix(self._data + other._data)

    def subtract(self, other: "Matrix") -> "Matrix":
        self._require_same_shape(other, "-")
        return Matrix(self._data - other._data)

    def multiply(self, other: "Matrix") -> Value:
        if self.columns != other.rows:
            raise DimensionMismatchError(
                f"inner dimensions must agree for '*', got "
                f"{self.rows}x{self.columns} and {other.rows}x{other.columns}")
        return Matrix(self._data @ other._data).simplify()

    def scale(self, factor: Scalar) -> "Matrix":
        return Matrix(self._data * factor.to_complex())

    def elementwise_multiply(self, other: "Matrix") -> "Matrix":
        self._require_same_shape(other, ".*")
        return Matrix(self._data * other._data)

    def elementwise_divide(self, other: "Matrix") -> "Matrix":
        return self._zip(other, Scalar.divide, "./")

    def elementwise_power(self, other: "Matrix") -> "Matrix":
        return self._zip(other, Scalar.power, ".^")

    def matrix_power(self, exponent: Scalar) -> "Matrix":
        if self.rows != self.columns:
            raise DimensionMismatchError("matrix power needs a square matrix")
        n = exponent.to_int("matrix exponent")
        try:
            if n < 0:
                return Matrix(np.linalg.matrix_power(np.linalg.inv(self._data), -n))
            return Matrix(np.linalg.matrix_power(self._data, n))
        except np.linalg.LinAlgError as exc:
            raise EvaluationError(f"matrix power failed: {exc}") from exc

    def compare(self, other: Value, symbol: str, reverse: bool = False) -> "Matrix":
        """Elementwise comparison of real parts, giving 1 or 0."""
        if isinstance(other, Matrix):
            self._require_same_shape(other, symbol)
            right = other._data.real
        else:
            right = other.real
        left = self._data.real
        if reverse:
            left, right = right, left
        return Matrix(_NUMPY_COMPARISONS[symbol](left, right).astype(np.complex128))

    def negate(self) -> "Matrix":
        return Matrix(-self._data)

    def transpose(self) -> "Matrix":
        return Matrix(self._data.T)

    def conjugate_transpose(self) -> "Matrix":
        return Matrix(self._data.conj().T)

    def faculty(self) -> "Matrix":
        return self.map(Scalar.faculty)

    # --- reductions ---

    def trace(self) -> Scalar:
        if self.rows != self.columns:
            raise DimensionMismatchError("trace needs a square matrix")
        return Scalar.from_python(np.trace(self._data))

    def determinant(self) -> Scalar:
        if self.rows != self.columns:
            raise DimensionMismatchError("determinant needs a square matrix")
        if self.is_empty:
            return Scalar(1.0)
        return Scalar.from_python(np.linalg.det(self._data))

    def sum(self) -> Value:
        """Sum of a vector, or the column sums of a matrix."""
        if self.is_empty:
            return Scalar(0.0)
        if self.is_vector:
            return Scalar.from_python(self._data.sum())
        return Matrix(self._data.sum(axis=0))

    def extreme(self, largest: bool) -> "Arguments":
        """(values, 1-based indexes) of the maxima or minima.

        Real matrices compare by value, complex ones by modulus.
        """
        if self.is_empty:
            return Arguments((Matrix(), Matrix()))
        keys = np.abs(self._data) if np.any(self._data.imag) else self._data.real
        pick = np.argmax if largest else np.argmin
        if self.is_vector:
            flat_keys = keys.flatten(order="F")
            k = int(pick(flat_keys))
            return Arguments((Scalar.from_python(self._flat()[k]), Scalar(k + 1)))
        rows = pick(keys, axis=0)
        values = self._data[rows, np.arange(self.columns)]
        return Arguments((Matrix(values), Matrix(rows + 1)))

    # --- protocol ---

    def copy(self) -> "Matrix":
        return Matrix(self._data.copy())

    def display(self, settings: Optional[FormatSettings] = None) -> str:
        if self.is_empty:
            return "[]"
        cells = [[Scalar.from_python(z).display(settings) for z in row] for row in self._data]
        widths = [max(len(cells[r][c]) for r in range(self.rows)) for c in range(self.columns)]
        return "\n".join(
            "  ".join(cell.rjust(width) for cell, width in zip(row, widths))
            for row in cells
        )

    def serialize(self) -> bytes:
        return struct.pack("<ii", self.rows, self.columns) + self._data.astype("<c16").tobytes(order="C")

    @classmethod
    def deserialize(cls, data: bytes) -> "Matrix":
        rows, columns = struct.unpack_from("<ii", data)
        if rows * columns == 0:
            return cls(np.zeros((rows, columns), dtype=np.complex128))
        array = np.frombuffer(data, dtype="<c16", offset=8, count=rows * columns)
        return cls(array.reshape(rows, columns).copy())

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Matrix):
            return self.shape == other.shape and bool(np.array_equal(self._data, other._data))
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.shape, self._data.tobytes()))

    def __repr__(self) -> str:
        return f"Matrix({self._data.tolist()!r})"

    @classmethod
    def register_operators(cls, registry: Any) -> None:
        registry.register("*", MATRIX, SCALAR, lambda m, s: m.scale(s))
        registry.register("/", MATRIX, SCALAR, lambda m, s: m.map(lambda z: z.divide(s)))
        registry.register("+", MATRIX, SCALAR, lambda m, s: m.map(lambda z: z.add(s)))
        registry.register("-", MATRIX, SCALAR, lambda m, s: m.map(lambda z: z.subtract(s)))
        registry.register("^", MATRIX, SCALAR, lambda m, s: m.matrix_power(s))
        registry.register(".*", MATRIX, SCALAR, lambda m, s: m.scale(s))
        registry.register(".*", SCALAR, MATRIX, lambda s, m: m.scale(s))
        registry.register("./", MATRIX, SCALAR, lambda m, s: m.map(lambda z: z.divide(s)))
        registry.register("./", SCALAR, MATRIX, lambda s, m: m.map(s.divide))
        registry.register(".^", MATRIX, SCALAR, lambda m, s: m.map(lambda z: z.power(s)))
        registry.register(".^", SCALAR, MATRIX, lambda s, m: m.map(s.power))
        for symbol in _NUMPY_COMPARISONS:
            registry.register(symbol, MATRIX, MATRIX,
                              lambda l, r, symbol=symbol: l.compare(r, symbol))
            registry.register(symbol, MATRIX, SCALAR,
                              lambda m, s, symbol=symbol: m.compare(s, symbol))
            registry.register(symbol, SCALAR, MATRIX,
                              lambda s, m, symbol=symbol: m.compare(s, symbol, reverse=True))


def _indices(value: Value, bound: int, what: str) -> List[int]:
    """1-based positions named by a Scalar or a vector of Scalars."""
    if isinstance(value, Scalar):
        candidates = [value]
    elif isinstance(value, Matrix):
        candidates = value.scalars()
    else:
        raise OperationNotSupportedError("()", value.kind)
    positions = []
    for scalar in candidates:
        k = scalar.to_int(what)
        if not 1 <= k <= bound:
            raise IndexOutOfRangeError(k, bound, what)
        positions.append(k)
    return positions


# =============================================================================
# String
# =============================================================================

def _concatenate(left: Value, right: Value) -> "String":
    return String(left.display() + right.display())


class String(Value):
    """An immutable character sequence, indexed from 1."""

    kind = STRING
    header = "String"
    __slots__ = ("_text",)

    def __init__(self, text: str = ""):
        self._text = str(text)

    @property
    def text(self) -> str:
        return self._text

    @property
    def lines(self) -> int:
        return len(self._text.split("\n"))

    def __len__(self) -> int:
        return len(self._text)

    def add(self, other: "String") -> "String":
        return String(self._text + other._text)

    def to_scalar(self) -> Scalar:
        """Narrowing conversion: (sum of character codes, length)."""
        return Scalar(float(sum(ord(c) for c in self._text)), float(len(self._text)))

    def char_at(self, position: int) -> str:
        if not 1 <= position <= len(self._text):
            raise IndexOutOfRangeError(position, len(self._text))
        return self._text[position - 1]

    def subset(self, indices: Value) -> "String":
        if isinstance(indices, Scalar):
            return String(self.char_at(indices.to_int("index")))
        if isinstance(indices, Matrix):
            return String("".join(self.char_at(s.to_int("index")) for s in indices.scalars()))
        raise OperationNotSupportedError("()", self.kind, indices.kind)

    def index(self, arguments: Sequence[Value]) -> "String":
        if len(arguments) != 1:
            raise MalformedLiteralError(f"string index takes 1 argument, got {len(arguments)}")
        return self.subset(arguments[0])

    def display(self, settings: Optional[FormatSettings] = None) -> str:
        return self._text

    def serialize(self) -> bytes:
        encoded = self._text.encode("utf-8")
        return struct.pack("<i", len(encoded)) + encoded

    @classmethod
    def deserialize(cls, data: bytes) -> "String":
        (length,) = struct.unpack_from("<i", data)
        return cls(data[4:4 + length].decode("utf-8"))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, String):
            return self._text == other._text
        if isinstance(other, str):
            return self._text == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._text)

    def __repr__(self) -> str:
        return f"String({self._text!r})"

    @classmethod
    def register_operators(cls, registry: Any) -> None:
        for other in (SCALAR, MATRIX, ARGUMENTS, FUNCTION):
            registry.register("+", STRING, other, _concatenate)
            registry.register("+", other, STRING, _concatenate)


# =============================================================================
# Arguments
# =============================================================================

class Arguments(Value):
    """An ordered, fixed tuple of values: variadic input or multiple results."""

    kind = ARGUMENTS
    header = "Arguments"
    __slots__ = ("_values",)

    def __init__(self, values: Iterable[Value] = ()):
        self._values: Tuple[Value, ...] = tuple(values)

    @property
    def values(self) -> Tuple[Value, ...]:
        return self._values

    def single(self) -> Value:
        """The value a single-result caller sees: the first one."""
        if not self._values:
            raise EvaluationError("a multi-valued result was empty")
        return self._values[0]

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self):
        return iter(self._values)

    def __getitem__(self, i: int) -> Value:
        return self._values[i]

    def display(self, settings: Optional[FormatSettings] = None) -> str:
        return "\n".join(v.display(settings) for v in self._values)

    def serialize(self) -> bytes:
        parts = [struct.pack("<i", len(self._values))]
        for value in self._values:
            header = value.header.encode("ascii")
            payload = value.serialize()
            parts.append(struct.pack("<i", len(header)) + header)
            parts.append(struct.pack("<i", len(payload)) + payload)
        return b"".join(parts)

    @classmethod
    def deserialize(cls, data: bytes) -> "Arguments":
        (count,) = struct.unpack_from("<i", data)
        offset = 4
        values = []
        for _ in range(count):
            (size,) = struct.unpack_from("<i", data, offset)
            header = data[offset + 4:offset + 4 + size].decode("ascii")
            offset += 4 + size
            (size,) = struct.unpack_from("<i", data, offset)
            values.append(deserialize_value(header, data[offset + 4:offset + 4 + size]))
            offset += 4 + size
        return cls(values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Arguments):
            return self._values == other._values
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._values)

    def __repr__(self) -> str:
        return f"Arguments({list(self._values)!r})"


# =============================================================================
# User functions
# =============================================================================

class FunctionValue(Value):
    """A function defined with ``function name(params) = body``."""

    kind = FUNCTION
    header = "Function"

    def __init__(self, name: str, parameters: Sequence[str], body: Any, source: str = ""):
        self.name = name
        self.parameters = tuple(parameters)
        self.body = body
        self.source = source

    @classmethod
    def from_definition(cls, node: Any) -> "FunctionValue":
        return cls(node.name, node.parameters, node.body, node.source)

    @property
    def arity(self) -> int:
        return len(self.parameters)

    def display(self, settings: Optional[FormatSettings] = None) -> str:
        return self.source or f"function {self.name}({', '.join(self.parameters)})"

    def serialize(self) -> bytes:
        return self.source.encode("utf-8")

    @classmethod
    def deserialize(cls, data: bytes) -> "FunctionValue":
        from ..parser import parse_source
        from ..ast import FunctionDefinition

        text = data.decode("utf-8")
        statements = parse_source(text)
        if len(statements) != 1 or not isinstance(statements[0].node, FunctionDefinition):
            raise MalformedLiteralError(f"not a function definition: {text!r}")
        return cls.from_definition(statements[0].node)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FunctionValue):
            return (self.name, self.parameters, self.body) == (other.name, other.parameters, other.body)
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.name, self.parameters))

    def __repr__(self) -> str:
        return f"FunctionValue({self.name!r}, {self.parameters!r})"


# =============================================================================
# Serialization and conversion
# =============================================================================

VALUE_CLASSES: Tuple[Type[Value], ...] = (Scalar, Matrix, String, Arguments, FunctionValue)

_BY_HEADER: Dict[str, Type[Value]] = {cls.header: cls for cls in VALUE_CLASSES}


def deserialize_value(header: str, payload: bytes) -> Value:
    """Rebuild a value from its type header and serialized payload."""
    cls = _BY_HEADER.get(header)
    if cls is None:
        raise MalformedLiteralError(f"unknown value type header '{header}'")
    return cls.deserialize(payload)


def to_value(obj: Any) -> Value:
    """Convert a Python result (from a host callable) into a Value."""
    if isinstance(obj, Value):
        return obj
    if isinstance(obj, (bool, int, float, complex, np.number, np.bool_)):
        return Scalar.from_python(obj)
    if isinstance(obj, str):
        return String(obj)
    if isinstance(obj, tuple):
        return Arguments(to_value(o) for o in obj)
    if isinstance(obj, (list, np.ndarray)):
        return Matrix(obj)
    raise EvaluationError(f"cannot convert {type(obj).__name__} to a value")
