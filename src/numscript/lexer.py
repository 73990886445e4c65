"""
Lexer for numscript.

The lexer walks the source and, at each position, asks every registered
scanner how many characters it recognizes. The longest match wins; ties go
to the scanner registered first. Scanners are pure: they see the source,
the position and the previous token, and report a length.

Besides the scanners, the lexer itself handles:
- horizontal whitespace
- ``#`` comments to end of line
- a trailing backslash that continues the line
- significant newlines (NEWLINE tokens outside brackets)

Unrecognized characters do not stop the scan. Each one is reported through
the diagnostic collector and emitted as an ERROR token so the parser can
reject the statement that contains it.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from .tokens import (
    Token, TokenType, SourceLocation, SourceSpan, KEYWORDS, SYMBOLS,
    STATEMENT_BOUNDARIES, is_keyword_token, is_operand_end,
)
from .errors import (
    DiagnosticCollector,
    LexerError,
    error_unexpected_character,
    error_unterminated_string,
    error_invalid_escape_sequence,
)

logger = logging.getLogger(__name__)


def _is_ident_start(ch: str) -> bool:
    return ch.isalpha() or ch == "_"


def _is_ident_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


class Scanner(ABC):
    """Recognizes one kind of token at a position in the source."""

    @abstractmethod
    def scan(self, text: str, pos: int, previous: Optional[Token]) -> int:
        """Return the number of characters recognized at ``pos`` (0 = none)."""

    @abstractmethod
    def create(self, lexeme: str, span: SourceSpan) -> Tuple[TokenType, Any]:
        """Build the token type and value for a recognized lexeme."""


class NumberScanner(Scanner):
    """Numeric literals.

    Grammar: optional sign, optional integer digits, optional ``.`` followed
    by at least one digit, optional exponent (``e``/``E``, optional sign,
    digits), optional trailing ``i``. At least one mantissa digit is
    required. A sign is only part of the literal where an operand may begin,
    so ``1-2`` stays a subtraction.
    """

    def scan(self, text: str, pos: int, previous: Optional[Token]) -> int:
        n = len(text)
        i = pos
        if i < n and text[i] in "+-":
            if is_operand_end(previous):
                return 0
            i += 1

        digits = 0
        while i < n and text[i].isdigit():
            i += 1
            digits += 1

        if i + 1 < n and text[i] == "." and text[i + 1].isdigit():
            i += 1
            while i < n and text[i].isdigit():
                i += 1
                digits += 1

        if digits == 0:
            return 0

        # Exponent is only consumed when digits follow it.
        if i < n and text[i] in "eE":
            j = i + 1
            if j < n and text[j] in "+-":
                j += 1
            if j < n and text[j].isdigit():
                while j < n and text[j].isdigit():
                    j += 1
                i = j

        if i < n and text[i] == "i" and not (i + 1 < n and _is_ident_char(text[i + 1])):
            i += 1

        return i - pos

    def create(self, lexeme: str, span: SourceSpan) -> Tuple[TokenType, Any]:
        if lexeme.endswith("i"):
            return TokenType.IMAG_LITERAL, float(lexeme[:-1])
        if any(c in lexeme for c in ".eE"):
            return TokenType.FLOAT_LITERAL, float(lexeme)
        return TokenType.INT_LITERAL, int(lexeme)


class StringScanner(Scanner):
    """Double-quoted string literals with backslash escapes."""

    ESCAPES = {
        "n": "\n",
        "t": "\t",
        "r": "\r",
        "\\": "\\",
        '"': '"',
        "0": "\0",
    }

    def scan(self, text: str, pos: int, previous: Optional[Token]) -> int:
        if text[pos] != '"':
            return 0
        i = pos + 1
        while i < len(text) and text[i] != '"':
            if text[i] == "\n":
                return 0
            if text[i] == "\\":
                i += 1
            i += 1
        if i >= len(text):
            return 0
        return i + 1 - pos

    def create(self, lexeme: str, span: SourceSpan) -> Tuple[TokenType, Any]:
        body = lexeme[1:-1]
        chars = []
        i = 0
        while i < len(body):
            ch = body[i]
            if ch != "\\":
                chars.append(ch)
                i += 1
                continue
            esc = body[i + 1]
            if esc in self.ESCAPES:
                chars.append(self.ESCAPES[esc])
                i += 2
            elif esc in "xu":
                width = 2 if esc == "x" else 4
                digits = body[i + 2:i + 2 + width]
                try:
                    if len(digits) != width:
                        raise ValueError(digits)
                    chars.append(chr(int(digits, 16)))
                except ValueError:
                    raise error_invalid_escape_sequence(esc + digits, span)
                i += 2 + width
            else:
                raise error_invalid_escape_sequence(esc, span)
        return TokenType.STRING_LITERAL, "".join(chars)


class IdentifierScanner(Scanner):
    """Names of variables, constants and functions."""

    def scan(self, text: str, pos: int, previous: Optional[Token]) -> int:
        if not _is_ident_start(text[pos]):
            return 0
        i = pos + 1
        while i < len(text) and _is_ident_char(text[i]):
            i += 1
        return i - pos

    def create(self, lexeme: str, span: SourceSpan) -> Tuple[TokenType, Any]:
        return TokenType.IDENTIFIER, lexeme


class KeywordScanner(IdentifierScanner):
    """Statement keywords, recognized only as the first token of a statement.

    Registered ahead of the identifier scanner so it wins the tie on equal
    length. Anywhere else the same word is an ordinary identifier.
    """

    def __init__(self, keywords: Optional[dict] = None):
        self.keywords = dict(keywords or KEYWORDS)

    def scan(self, text: str, pos: int, previous: Optional[Token]) -> int:
        if previous is not None and previous.type not in STATEMENT_BOUNDARIES:
            return 0
        length = super().scan(text, pos, previous)
        if length and text[pos:pos + length] in self.keywords:
            return length
        return 0

    def create(self, lexeme: str, span: SourceSpan) -> Tuple[TokenType, Any]:
        return self.keywords[lexeme], lexeme


class SymbolScanner(Scanner):
    """Operators and delimiters."""

    def __init__(self, symbols: Optional[dict] = None):
        self.symbols = dict(symbols or SYMBOLS)
        self._widths = sorted({len(s) for s in self.symbols}, reverse=True)

    def scan(self, text: str, pos: int, previous: Optional[Token]) -> int:
        for width in self._widths:
            if text[pos:pos + width] in self.symbols:
                return width
        return 0

    def create(self, lexeme: str, span: SourceSpan) -> Tuple[TokenType, Any]:
        return self.symbols[lexeme], lexeme


def default_scanners() -> List[Scanner]:
    """The scanners every lexer starts with, in tie-breaking order."""
    return [
        NumberScanner(),
        StringScanner(),
        KeywordScanner(),
        IdentifierScanner(),
        SymbolScanner(),
    ]


class Lexer:
    """
    Tokenizer for numscript.

    Usage:
        lexer = Lexer(source)
        tokens = lexer.tokenize()
        if lexer.diagnostics.has_errors:
            ...

    Or for streaming:
        for token in Lexer(source):
            process(token)
    """

    def __init__(self, source: str, filename: Optional[str] = None,
                 scanners: Optional[Sequence[Scanner]] = None,
                 diagnostics: Optional[DiagnosticCollector] = None):
        self.source = source
        self.filename = filename
        self.scanners: List[Scanner] = list(scanners) if scanners is not None else default_scanners()
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()
        self.pos = 0
        self.line = 1
        self.column = 1
        self.bracket_depth = 0
        self.previous: Optional[Token] = None
        self._lines: Optional[List[str]] = None

    @property
    def lines(self) -> List[str]:
        if self._lines is None:
            self._lines = self.source.splitlines()
        return self._lines

    def get_source_line(self, line_num: int) -> Optional[str]:
        """Get a specific line of source (1-indexed)."""
        if 1 <= line_num <= len(self.lines):
            return self.lines[line_num - 1]
        return None

    def register_scanner(self, scanner: Scanner, first: bool = False) -> None:
        """Add a scanner; ``first`` makes it win ties against the built-ins."""
        if first:
            self.scanners.insert(0, scanner)
        else:
            self.scanners.append(scanner)

    def _location(self) -> SourceLocation:
        return SourceLocation(self.line, self.column, self.pos, self.filename)

    def _peek(self, offset: int = 0) -> str:
        idx = self.pos + offset
        if idx >= len(self.source):
            return "\0"
        return self.source[idx]

    def _advance(self, count: int = 1) -> None:
        for _ in range(count):
            if self.pos >= len(self.source):
                return
            if self.source[self.pos] == "\n":
                self.line += 1
                self.column = 1
            else:
                self.column += 1
            self.pos += 1

    def _is_at_end(self) -> bool:
        return self.pos >= len(self.source)

    def _skip_trivia(self) -> None:
        """Skip spaces, comments and backslash line continuations."""
        while not self._is_at_end():
            ch = self._peek()
            if ch in " \t\r":
                self._advance()
            elif ch == "#":
                while not self._is_at_end() and self._peek() != "\n":
                    self._advance()
            elif ch == "\\" and self._continues_line():
                while self._peek() != "\n":
                    self._advance()
                self._advance()
            else:
                return

    def _continues_line(self) -> bool:
        i = self.pos + 1
        while i < len(self.source) and self.source[i] in " \t\r":
            i += 1
        return i < len(self.source) and self.source[i] == "\n"

    def _emit(self, token_type: TokenType, value: Any, start: SourceLocation) -> Token:
        token = Token(token_type, value, self.source[start.offset:self.pos],
                      SourceSpan(start, self._location()))
        if token_type != TokenType.ERROR:
            self.previous = token
        return token

    def _longest_match(self) -> Tuple[Optional[Scanner], int]:
        best, best_length = None, 0
        for scanner in self.scanners:
            length = scanner.scan(self.source, self.pos, self.previous)
            if length > best_length:
                best, best_length = scanner, length
        return best, best_length

    def _scan_token(self) -> Token:
        self._skip_trivia()
        start = self._location()

        if self._is_at_end():
            return self._emit(TokenType.EOF, None, start)

        if self._peek() == "\n":
            self._advance()
            if self.bracket_depth > 0:
                return self._scan_token()
            return self._emit(TokenType.NEWLINE, None, start)

        scanner, length = self._longest_match()
        if scanner is None:
            return self._scan_error(start)

        self._advance(length)
        span = SourceSpan(start, self._location())
        try:
            token_type, value = scanner.create(self.source[start.offset:self.pos], span)
        except LexerError as exc:
            exc.diagnostic.source_line = self.get_source_line(start.line)
            self.diagnostics.add_error(exc)
            return self._emit(TokenType.ERROR, exc, start)

        # A row separator inside brackets does not start a statement.
        if is_keyword_token(token_type) and self.bracket_depth > 0:
            token_type = TokenType.IDENTIFIER

        if token_type in (TokenType.LPAREN, TokenType.LBRACKET):
            self.bracket_depth += 1
        elif token_type in (TokenType.RPAREN, TokenType.RBRACKET):
            self.bracket_depth = max(0, self.bracket_depth - 1)
        elif token_type in (TokenType.SEMICOLON, TokenType.NEWLINE) and self.bracket_depth == 0:
            logger.debug("statement boundary at %s", start)
        return self._emit(token_type, value, start)

    def _scan_error(self, start: SourceLocation) -> Token:
        ch = self._peek()
        self._advance()
        span = SourceSpan(start, self._location())
        source_line = self.get_source_line(start.line)
        if ch == '"':
            error = error_unterminated_string(span, source_line)
            while not self._is_at_end() and self._peek() != "\n":
                self._advance()
        else:
            error = error_unexpected_character(ch, span, source_line)
        self.diagnostics.add_error(error)
        return self._emit(TokenType.ERROR, error, start)

    def tokenize(self) -> List[Token]:
        """Tokenize the entire source, returning a list of tokens."""
        return list(self)

    def __iter__(self) -> Iterator[Token]:
        while True:
            token = self._scan_token()
            yield token
            if token.type == TokenType.EOF:
                break


def tokenize(source: str, filename: Optional[str] = None,
             diagnostics: Optional[DiagnosticCollector] = None) -> List[Token]:
    """
    Convenience function to tokenize source code.

    Lexical errors are recorded in ``diagnostics`` (when given) and appear in
    the token list as ERROR tokens; this function does not raise for them.
    """
    return Lexer(source, filename, diagnostics=diagnostics).tokenize()
