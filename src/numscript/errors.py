"""
numscript exceptions and diagnostics.

Error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
- E4xx: Evaluation errors

Parse errors are collected per statement and never interpreted. Evaluation
errors abort only the statement that raised them; ``evaluate()`` turns both
into diagnostics on the statement result instead of propagating.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, List, Optional, Sequence

from .tokens import SourceSpan


class ErrorSeverity(Enum):
    """Severity levels for diagnostics."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class Diagnostic:
    """A single diagnostic message (error, warning, etc.)."""
    code: str                       # E001, E101, E401 ...
    message: str
    severity: ErrorSeverity
    span: Optional[SourceSpan] = None
    source_line: Optional[str] = None
    length: int = 1                 # characters to underline
    hints: List[str] = field(default_factory=list)

    @property
    def line(self) -> int:
        return self.span.start.line if self.span else 0

    @property
    def column(self) -> int:
        return self.span.start.column if self.span else 0

    def format(self, show_source: bool = True) -> str:
        """Format the diagnostic for display."""
        if self.span is not None:
            header = f"Line {self.line:03d}, Pos. {self.column:03d}: "
        else:
            header = ""
        parts = [f"{header}{self.severity.value}[{self.code}]: {self.message}"]

        if show_source and self.span is not None and self.source_line is not None:
            width = len(str(self.line))
            parts.append(f"{self.line} | {self.source_line}")
            room = max(1, len(self.source_line) - self.column + 1)
            underline = "^" * max(1, min(self.length, room))
            parts.append(f"{' ' * width} | {' ' * (self.column - 1)}{underline}")

        for hint in self.hints:
            parts.append(f"  = hint: {hint}")

        return "\n".join(parts)

    def to_json(self) -> dict:
        """Convert to a JSON-serializable dict for tooling integration."""
        data = {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "length": self.length,
            "hints": list(self.hints),
        }
        if self.span is not None:
            data["line"] = self.line
            data["column"] = self.column
            data["offset"] = self.span.start.offset
        return data


class NumscriptError(Exception):
    """Base exception for all numscript errors."""

    def __init__(self, diagnostic: Diagnostic):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.message)

    @property
    def message(self) -> str:
        return self.diagnostic.message

    @property
    def line(self) -> int:
        return self.diagnostic.line

    @property
    def column(self) -> int:
        return self.diagnostic.column

    def __str__(self) -> str:
        return self.diagnostic.format(show_source=False)


# --- Parse errors ---

class ParseError(NumscriptError):
    """Lexical or grammatical failure.

    ``part`` is the smallest AST fragment recognized when the error was
    found; its span gives the error length. Without a fragment the length
    is 1.
    """

    def __init__(self, diagnostic: Diagnostic, part: Any = None):
        self.part = part
        if part is not None:
            diagnostic = replace(diagnostic, length=part.span.length)
        super().__init__(diagnostic)

    @property
    def length(self) -> int:
        return self.diagnostic.length


class LexerError(ParseError):
    """Error during lexical analysis (E0xx)."""
    pass


class BracketEmptyError(ParseError):
    """A closing bracket followed its opening bracket with nothing between."""
    pass


def _diag(code: str, message: str, span: Optional[SourceSpan],
          source_line: Optional[str] = None, hints: Sequence[str] = ()) -> Diagnostic:
    return Diagnostic(
        code=code,
        message=message,
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=list(hints),
    )


def error_unexpected_character(char: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E001: Unexpected character."""
    return LexerError(_diag("E001", f"unexpected character '{char}'", span, source_line))


def error_unterminated_string(span: SourceSpan, source_line: str = None) -> LexerError:
    """E002: Unterminated string literal."""
    return LexerError(_diag(
        "E002", "unterminated string literal", span, source_line,
        hints=["string literals must be closed with a matching '\"'"],
    ))


def error_invalid_escape_sequence(seq: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E003: Invalid escape sequence in string."""
    return LexerError(_diag(
        "E003", f"invalid escape sequence '\\{seq}'", span, source_line,
        hints=["valid escape sequences: \\n, \\t, \\r, \\\", \\\\, \\0, \\x##, \\u####"],
    ))


def error_unexpected_token(expected: str, found: str, span: SourceSpan,
                           source_line: str = None, part: Any = None) -> ParseError:
    """E101: Unexpected token."""
    return ParseError(_diag("E101", f"expected {expected}, found {found}", span, source_line), part)


def error_unexpected_end(expected: str, span: SourceSpan,
                         source_line: str = None, part: Any = None) -> ParseError:
    """E102: Input ended in the middle of a statement."""
    return ParseError(_diag("E102", f"unexpected end of input, expected {expected}", span, source_line), part)


def error_empty_bracket(span: SourceSpan, source_line: str = None) -> BracketEmptyError:
    """E103: Empty bracket, usually a missing operand."""
    return BracketEmptyError(_diag(
        "E103", "an unexpected bracket has been found, are you missing something?",
        span, source_line,
    ))


def error_invalid_assignment_target(span: SourceSpan, source_line: str = None,
                                    part: Any = None) -> ParseError:
    """E104: Left side of '=' is not a name or a list of names."""
    return ParseError(_diag(
        "E104", "invalid assignment target", span, source_line,
        hints=["assign to a name (x = 1) or a list of names ([a, b] = f(x))"],
    ), part)


def error_unbalanced_bracket(char: str, span: SourceSpan, source_line: str = None) -> ParseError:
    """E105: Closing bracket without an opening one."""
    return ParseError(_diag("E105", f"unbalanced bracket '{char}'", span, source_line))


def error_nesting_too_deep(span: SourceSpan, source_line: str = None) -> ParseError:
    """E106: Brackets or operators nested deeper than the parser can follow."""
    return ParseError(_diag("E106", "expression nested too deeply", span, source_line))


# --- Evaluation errors ---

class EvaluationError(NumscriptError):
    """Evaluation-time failure (E4xx).

    Raised by values, registries and the interpreter. Errors raised below
    the AST level carry no span until the interpreter locates them on the
    node being evaluated.
    """

    code = "E400"

    def __init__(self, message: str, span: Optional[SourceSpan] = None,
                 hints: Iterable[str] = ()):
        super().__init__(_diag(self.code, message, span, hints=list(hints)))

    def locate(self, span: SourceSpan, source_line: Optional[str] = None) -> "EvaluationError":
        """Attach a source location unless one is already known."""
        if self.diagnostic.span is None:
            self.diagnostic.span = span
            self.diagnostic.length = span.length
        if source_line is not None and self.diagnostic.source_line is None:
            self.diagnostic.source_line = source_line
        return self


class UndefinedSymbolError(EvaluationError):
    """E401: A referenced name is not bound in any scope."""

    code = "E401"

    def __init__(self, name: str, span: Optional[SourceSpan] = None):
        self.name = name
        super().__init__(f"undefined symbol '{name}'", span)


class OperationNotSupportedError(EvaluationError):
    """E402: No implementation for an operator and the operand kinds."""

    code = "E402"

    def __init__(self, symbol: str, *kinds: Any):
        self.symbol = symbol
        self.kinds = tuple(str(k) for k in kinds)
        message = f"operation '{symbol}' is not supported for {' and '.join(self.kinds)}"
        super().__init__(message)


class NoApplicableOverloadError(EvaluationError):
    """E403: No single overload of a function accepts the supplied kinds."""

    code = "E403"

    def __init__(self, function: str, kinds: Sequence[Any], ambiguous: bool = False):
        self.function = function
        self.kinds = tuple(str(k) for k in kinds)
        self.ambiguous = ambiguous
        supplied = ", ".join(self.kinds) or "no arguments"
        reason = "ambiguous call to" if ambiguous else "no overload of"
        super().__init__(f"{reason} '{function}' for ({supplied})")


class IndexOutOfRangeError(EvaluationError):
    """E404: 1-based index outside the valid range."""

    code = "E404"

    def __init__(self, index: int, bound: int, what: str = "index"):
        self.index = index
        self.bound = bound
        super().__init__(f"{what} {index} out of range 1..{bound}")


class MalformedLiteralError(EvaluationError):
    """E405: An argument could not be coerced (e.g. a non-integral count)."""

    code = "E405"


class DimensionMismatchError(EvaluationError):
    """E406: Matrix shapes are not conformant for the operation."""

    code = "E406"


class RegistrySealedError(EvaluationError):
    """E407: A registry received a new entry after startup completed."""

    code = "E407"


class RecursionLimitError(EvaluationError):
    """E408: User function calls nested deeper than the interpreter allows."""

    code = "E408"


class DiagnosticCollector:
    """Collects diagnostics across one input."""

    def __init__(self):
        self.diagnostics: List[Diagnostic] = []
        self._error_count = 0

    def add(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)
        if diagnostic.severity == ErrorSeverity.ERROR:
            self._error_count += 1

    def add_error(self, error: NumscriptError) -> None:
        """Add an error exception as a diagnostic."""
        self.add(error.diagnostic)

    @property
    def error_count(self) -> int:
        return self._error_count

    @property
    def has_errors(self) -> bool:
        return self._error_count > 0

    def to_json(self) -> dict:
        return {
            "diagnostics": [d.to_json() for d in self.diagnostics],
            "error_count": self._error_count,
        }
