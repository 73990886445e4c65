"""
Token types for the numscript lexer.

Error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
- E4xx: Evaluation errors
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import Any, Optional


class TokenType(Enum):
    """All token types recognized by the lexer."""

    # --- Literals ---
    INT_LITERAL = auto()        # 42
    FLOAT_LITERAL = auto()      # 3.14, 2e-3, .5
    IMAG_LITERAL = auto()       # 5i, 2.5e3i
    STRING_LITERAL = auto()     # "hello"

    # --- Identifiers ---
    IDENTIFIER = auto()

    # --- Keywords (statement start only) ---
    FUNCTION = auto()           # function f(x) = ...
    CLEAR = auto()              # clear, clear a b
    FORMAT = auto()             # format short | format long

    # --- Arithmetic operators ---
    PLUS = auto()               # +
    MINUS = auto()              # -
    STAR = auto()               # *
    SLASH = auto()              # /
    CARET = auto()              # ^
    DOT_STAR = auto()           # .*
    DOT_SLASH = auto()          # ./
    DOT_CARET = auto()          # .^

    # --- Comparison operators ---
    EQ = auto()                 # ==
    NE = auto()                 # ~= or !=
    LT = auto()                 # <
    GT = auto()                 # >
    LE = auto()                 # <=
    GE = auto()                 # >=

    # --- Postfix operators ---
    APOSTROPHE = auto()         # ' (conjugate transpose)
    BANG = auto()               # ! (factorial)

    # --- Assignment and range ---
    ASSIGN = auto()             # =
    COLON = auto()              # :

    # --- Delimiters ---
    LPAREN = auto()             # (
    RPAREN = auto()             # )
    LBRACKET = auto()           # [
    RBRACKET = auto()           # ]
    COMMA = auto()              # ,
    SEMICOLON = auto()          # ; (statement separator, row separator in [])
    NEWLINE = auto()            # statement separator outside brackets

    # --- Special ---
    ERROR = auto()              # unrecognized input, value carries the LexerError
    EOF = auto()


@dataclass(frozen=True)
class SourceLocation:
    """Represents a position in source code."""
    line: int           # 1-indexed line number
    column: int         # 1-indexed column number
    offset: int         # 0-indexed character offset from start
    filename: Optional[str] = None

    def __str__(self) -> str:
        if self.filename:
            return f"{self.filename}:{self.line}:{self.column}"
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class SourceSpan:
    """Represents a range in source code."""
    start: SourceLocation
    end: SourceLocation

    @property
    def length(self) -> int:
        return max(1, self.end.offset - self.start.offset)

    def __str__(self) -> str:
        if self.start.filename:
            return f"{self.start.filename}:{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"
        return f"{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"


@dataclass(frozen=True)
class Token:
    """A single token from the lexer."""
    type: TokenType
    value: Any              # int, float, decoded string, or keyword text
    lexeme: str             # The original source text
    span: SourceSpan

    @property
    def is_signed_number(self) -> bool:
        return self.type in NUMBER_LITERALS and self.lexeme[:1] in ("+", "-")

    def __str__(self) -> str:
        if self.type in (TokenType.INT_LITERAL, TokenType.FLOAT_LITERAL,
                         TokenType.IMAG_LITERAL, TokenType.STRING_LITERAL,
                         TokenType.IDENTIFIER):
            return f"{self.type.name}({self.value!r})"
        return self.type.name


NUMBER_LITERALS = frozenset({
    TokenType.INT_LITERAL,
    TokenType.FLOAT_LITERAL,
    TokenType.IMAG_LITERAL,
})

# Keywords are only recognized as the first token of a statement.
KEYWORDS: dict[str, TokenType] = {
    "function": TokenType.FUNCTION,
    "clear": TokenType.CLEAR,
    "format": TokenType.FORMAT,
}

# Operator and delimiter lexemes. Longest match wins ("==" over "=").
SYMBOLS: dict[str, TokenType] = {
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.STAR,
    "/": TokenType.SLASH,
    "^": TokenType.CARET,
    ".*": TokenType.DOT_STAR,
    "./": TokenType.DOT_SLASH,
    ".^": TokenType.DOT_CARET,
    "==": TokenType.EQ,
    "~=": TokenType.NE,
    "!=": TokenType.NE,
    "<": TokenType.LT,
    ">": TokenType.GT,
    "<=": TokenType.LE,
    ">=": TokenType.GE,
    "'": TokenType.APOSTROPHE,
    "!": TokenType.BANG,
    "=": TokenType.ASSIGN,
    ":": TokenType.COLON,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    ",": TokenType.COMMA,
    ";": TokenType.SEMICOLON,
}

# Tokens after which a '+' or '-' is a binary operator rather than a sign.
OPERAND_ENDINGS = frozenset({
    TokenType.INT_LITERAL,
    TokenType.FLOAT_LITERAL,
    TokenType.IMAG_LITERAL,
    TokenType.STRING_LITERAL,
    TokenType.IDENTIFIER,
    TokenType.RPAREN,
    TokenType.RBRACKET,
    TokenType.APOSTROPHE,
    TokenType.BANG,
})

# Tokens after which a new statement begins.
STATEMENT_BOUNDARIES = frozenset({
    TokenType.SEMICOLON,
    TokenType.NEWLINE,
})


def is_keyword_token(token_type: TokenType) -> bool:
    """Check if a token type represents a statement keyword."""
    return token_type in KEYWORDS.values()


def is_operand_end(token: Optional[Token]) -> bool:
    """Check if a token can end an operand (so a following sign is binary)."""
    return token is not None and token.type in OPERAND_ENDINGS
