"""
numscript - an embeddable expression language for complex scalar and matrix
computation.

This module provides:
- Lexer: Tokenizes source text with pluggable scanners
- Parser: Builds one AST per statement by precedence climbing
- Runtime: Value model, operator and function dispatch, interpreter

Usage:
    from numscript import evaluate, Context

    ctx = Context()
    for result in evaluate("x = [1, 2; 3, 4]; x * [1; 1]", ctx):
        if result.success:
            print(result.value)
        else:
            for diag in result.diagnostics:
                print(diag.format())
"""

from .tokens import (
    Token,
    TokenType,
    SourceLocation,
    SourceSpan,
    KEYWORDS,
)

from .lexer import (
    Lexer,
    Scanner,
    tokenize,
)

from .parser import (
    Parser,
    ParsedStatement,
    parse,
    parse_source,
)

from .ast import (
    AstNode,
    AstVisitor,
    Expression,
    Statement,
    format_ast,
)

from .errors import (
    Diagnostic,
    DiagnosticCollector,
    ErrorSeverity,
    NumscriptError,
    ParseError,
    LexerError,
    BracketEmptyError,
    EvaluationError,
    UndefinedSymbolError,
    OperationNotSupportedError,
    NoApplicableOverloadError,
    IndexOutOfRangeError,
    MalformedLiteralError,
    DimensionMismatchError,
    RegistrySealedError,
    RecursionLimitError,
)

from .kinds import ValueKind
from .settings import FormatSettings

from .runtime import (
    Value,
    Scalar,
    Matrix,
    String,
    Arguments,
    FunctionValue,
    deserialize_value,
    OperatorRegistry,
    BuiltinRegistry,
    initialize,
    register_startup_hook,
    Context,
    StatementResult,
    Interpreter,
    evaluate,
)

__version__ = "0.3.0"

__all__ = [
    # Tokens
    "Token",
    "TokenType",
    "SourceLocation",
    "SourceSpan",
    "KEYWORDS",
    # Lexer / parser
    "Lexer",
    "Scanner",
    "tokenize",
    "Parser",
    "ParsedStatement",
    "parse",
    "parse_source",
    # AST
    "AstNode",
    "AstVisitor",
    "Expression",
    "Statement",
    "format_ast",
    # Errors
    "Diagnostic",
    "DiagnosticCollector",
    "ErrorSeverity",
    "NumscriptError",
    "ParseError",
    "LexerError",
    "BracketEmptyError",
    "EvaluationError",
    "UndefinedSymbolError",
    "OperationNotSupportedError",
    "NoApplicableOverloadError",
    "IndexOutOfRangeError",
    "MalformedLiteralError",
    "DimensionMismatchError",
    "RegistrySealedError",
    "RecursionLimitError",
    # Kinds and settings
    "ValueKind",
    "FormatSettings",
    # Runtime
    "Value",
    "Scalar",
    "Matrix",
    "String",
    "Arguments",
    "FunctionValue",
    "deserialize_value",
    "OperatorRegistry",
    "BuiltinRegistry",
    "initialize",
    "register_startup_hook",
    "Context",
    "StatementResult",
    "Interpreter",
    "evaluate",
]
