"""
Precedence-climbing parser for numscript.

Converts a token stream into one AST per top-level statement. Statements are
split at ``;`` and newlines outside brackets and parsed independently, so a
malformed statement never prevents its neighbours from being parsed.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

from .tokens import Token, TokenType, SourceLocation, SourceSpan, NUMBER_LITERALS, STATEMENT_BOUNDARIES
from .ast import (
    # Expressions
    Expression, Literal, Identifier, BinaryOp, UnaryOp, PostfixOp, Group,
    FunctionCall, MatrixLiteral, RangeExpr, Assignment, MultiAssignment,
    # Statements
    Statement, ExpressionStatement, FunctionDefinition, ClearStatement,
    FormatStatement,
)
from .errors import (
    ParseError,
    DiagnosticCollector,
    error_unexpected_token,
    error_unexpected_end,
    error_empty_bracket,
    error_invalid_assignment_target,
    error_unbalanced_bracket,
    error_nesting_too_deep,
)

logger = logging.getLogger(__name__)


def _shift(location: SourceLocation, count: int) -> SourceLocation:
    return replace(location, column=location.column + count, offset=location.offset + count)


@dataclass
class ParsedStatement:
    """One top-level statement: its AST, or the errors that prevented one."""
    node: Optional[Statement]
    text: str
    span: SourceSpan
    errors: List[ParseError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.node is not None and not self.errors


class Parser:
    """
    Precedence-climbing parser for numscript.

    Usage:
        parser = Parser(tokens, source=text)
        statements = parser.parse()

    Binding power, lowest first:
        Lowest:  =                 (right-associative)
                 :                 range, a:b and a:step:b
                 == ~= < > <= >=
                 + -
                 * / .* ./
                 unary - +
                 ^ .^              (right-associative)
        Highest: postfix ' and !
    """

    # Operator precedence levels (higher = tighter binding)
    PRECEDENCE = {
        TokenType.ASSIGN: 1,
        TokenType.COLON: 2,
        TokenType.EQ: 3,
        TokenType.NE: 3,
        TokenType.LT: 3,
        TokenType.GT: 3,
        TokenType.LE: 3,
        TokenType.GE: 3,
        TokenType.PLUS: 4,
        TokenType.MINUS: 4,
        TokenType.STAR: 5,
        TokenType.SLASH: 5,
        TokenType.DOT_STAR: 5,
        TokenType.DOT_SLASH: 5,
        TokenType.CARET: 7,
        TokenType.DOT_CARET: 7,
    }

    POWER_PRECEDENCE = 7

    # Right-associative operators
    RIGHT_ASSOCIATIVE = {TokenType.ASSIGN, TokenType.CARET, TokenType.DOT_CARET}

    # Canonical operator symbols; '!=' is spelled '~=' in the registry.
    SYMBOLS = {
        TokenType.EQ: "==",
        TokenType.NE: "~=",
        TokenType.LT: "<",
        TokenType.GT: ">",
        TokenType.LE: "<=",
        TokenType.GE: ">=",
        TokenType.PLUS: "+",
        TokenType.MINUS: "-",
        TokenType.STAR: "*",
        TokenType.SLASH: "/",
        TokenType.DOT_STAR: ".*",
        TokenType.DOT_SLASH: "./",
        TokenType.CARET: "^",
        TokenType.DOT_CARET: ".^",
        TokenType.APOSTROPHE: "'",
        TokenType.BANG: "!",
    }

    POSTFIX = {TokenType.APOSTROPHE, TokenType.BANG}

    # A signed literal before these binds its sign loosest: -2^2 is -(2^2).
    SIGN_SPLITTING = {TokenType.CARET, TokenType.DOT_CARET, TokenType.APOSTROPHE, TokenType.BANG}

    OPENERS = {TokenType.LPAREN: TokenType.RPAREN, TokenType.LBRACKET: TokenType.RBRACKET}

    def __init__(self, tokens: List[Token], filename: Optional[str] = None, source: Optional[str] = None):
        self.tokens = tokens
        self.filename = filename
        self.source = source
        self.pos = 0
        self.diagnostics = DiagnosticCollector()
        self._lines = source.splitlines() if source is not None else []
        self._last_node: Optional[Expression] = None

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _current(self) -> Token:
        """Get current token."""
        if self.pos >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[self.pos]

    def _peek(self, offset: int = 0) -> Token:
        """Peek at token at current position + offset."""
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[idx]

    def _is_at_end(self) -> bool:
        return self._current().type == TokenType.EOF

    def _check(self, token_type: TokenType) -> bool:
        return self._current().type == token_type

    def _advance(self) -> Token:
        """Consume and return current token."""
        token = self._current()
        if not self._is_at_end():
            self.pos += 1
        return token

    def _match(self, *token_types: TokenType) -> Optional[Token]:
        """Consume token if it matches any of the given types."""
        if self._current().type in token_types:
            return self._advance()
        return None

    def _consume(self, token_type: TokenType, expected: str) -> Token:
        """Consume token of expected type, or raise error."""
        if self._check(token_type):
            return self._advance()
        self._error(expected)

    def _source_line(self, line: int) -> Optional[str]:
        if 1 <= line <= len(self._lines):
            return self._lines[line - 1]
        return None

    def _error(self, expected: str) -> None:
        """Raise a parser error at the current token."""
        token = self._current()
        source_line = self._source_line(token.span.start.line)
        if token.type == TokenType.ERROR:
            raise token.value
        if token.type == TokenType.EOF:
            raise error_unexpected_end(expected, token.span, source_line, part=self._last_node)
        if token.type in (TokenType.RPAREN, TokenType.RBRACKET) and self._bracket_depth() < 0:
            raise error_unbalanced_bracket(token.lexeme, token.span, source_line)
        raise error_unexpected_token(expected, f"'{token.lexeme}'", token.span,
                                     source_line, part=self._last_node)

    def _bracket_depth(self) -> int:
        depth = 0
        for token in self.tokens[:self.pos + 1]:
            if token.type in self.OPENERS:
                depth += 1
            elif token.type in (TokenType.RPAREN, TokenType.RBRACKET):
                depth -= 1
        return depth

    def _span_from(self, start: Token) -> SourceSpan:
        """Create a span from start token to the last consumed token."""
        end_token = self.tokens[max(0, self.pos - 1)]
        return SourceSpan(start.span.start, end_token.span.end)

    def _node(self, node: Expression) -> Expression:
        self._last_node = node
        return node

    # =========================================================================
    # Statement Splitting
    # =========================================================================

    def _split(self) -> List[List[Token]]:
        """Split the token stream at separators outside brackets."""
        chunks: List[List[Token]] = []
        current: List[Token] = []
        depth = 0
        for token in self.tokens:
            if token.type in self.OPENERS:
                depth += 1
            elif token.type in (TokenType.RPAREN, TokenType.RBRACKET):
                depth = max(0, depth - 1)
            if token.type == TokenType.EOF or (token.type in STATEMENT_BOUNDARIES and depth == 0):
                if current:
                    eof_at = token.span.start
                    current.append(Token(TokenType.EOF, None, "", SourceSpan(eof_at, eof_at)))
                    chunks.append(current)
                current = []
                depth = 0
                continue
            current.append(token)
        logger.debug("split input into %d statement(s)", len(chunks))
        return chunks

    def _statement_text(self, chunk: List[Token]) -> Tuple[str, SourceSpan]:
        span = SourceSpan(chunk[0].span.start, chunk[-2].span.end)
        if self.source is None:
            return " ".join(t.lexeme for t in chunk[:-1]), span
        return self.source[span.start.offset:span.end.offset], span

    # =========================================================================
    # Statement Parsing
    # =========================================================================

    def parse(self) -> List[ParsedStatement]:
        """Parse every statement in the token stream."""
        results = []
        all_tokens = self.tokens
        try:
            for chunk in self._split():
                text, span = self._statement_text(chunk)
                lexer_errors = [t.value for t in chunk if t.type == TokenType.ERROR]
                if lexer_errors:
                    results.append(ParsedStatement(None, text, span, lexer_errors))
                    continue
                self.tokens = chunk
                self.pos = 0
                self._last_node = None
                try:
                    node = self._parse_statement(text)
                except RecursionError:
                    exc = error_nesting_too_deep(span, self._source_line(span.start.line))
                    self.diagnostics.add_error(exc)
                    results.append(ParsedStatement(None, text, span, [exc]))
                except ParseError as exc:
                    self.diagnostics.add_error(exc)
                    results.append(ParsedStatement(None, text, span, [exc]))
                else:
                    results.append(ParsedStatement(node, text, span))
        finally:
            self.tokens = all_tokens
            self.pos = 0
        return results

    def _parse_statement(self, text: str) -> Statement:
        start = self._current()
        if self._match(TokenType.FUNCTION):
            return self._parse_function_definition(start, text)
        if self._match(TokenType.CLEAR):
            return self._parse_clear(start)
        if self._match(TokenType.FORMAT):
            return self._parse_format(start)

        expression = self._parse_binary_expr(1)
        if not self._is_at_end():
            self._error("operator or end of statement")
        return ExpressionStatement(span=expression.span, expression=expression)

    def _parse_function_definition(self, start: Token, text: str) -> FunctionDefinition:
        """function name(p1, p2, ...) = expression"""
        name = self._consume(TokenType.IDENTIFIER, "function name").value
        self._consume(TokenType.LPAREN, "'('")
        parameters = []
        if not self._check(TokenType.RPAREN):
            parameters.append(self._consume(TokenType.IDENTIFIER, "parameter name").value)
            while self._match(TokenType.COMMA):
                parameters.append(self._consume(TokenType.IDENTIFIER, "parameter name").value)
        self._consume(TokenType.RPAREN, "')'")
        self._consume(TokenType.ASSIGN, "'='")
        body = self._parse_binary_expr(2)
        if not self._is_at_end():
            self._error("end of function definition")
        return FunctionDefinition(
            span=self._span_from(start),
            name=name,
            parameters=tuple(parameters),
            body=body,
            source=text,
        )

    def _parse_clear(self, start: Token) -> ClearStatement:
        """clear, clear a b, clear a, b"""
        names = []
        while not self._is_at_end():
            names.append(self._consume(TokenType.IDENTIFIER, "variable name").value)
            self._match(TokenType.COMMA)
        return ClearStatement(span=self._span_from(start), names=tuple(names))

    def _parse_format(self, start: Token) -> FormatStatement:
        """format short | format long"""
        token = self._current()
        if token.type != TokenType.IDENTIFIER or token.value not in ("short", "long"):
            self._error("'short' or 'long'")
        self._advance()
        if not self._is_at_end():
            self._error("end of statement")
        return FormatStatement(span=self._span_from(start), mode=token.value)

    # =========================================================================
    # Expression Parsing
    # =========================================================================

    def _parse_expression(self) -> Expression:
        """An expression that may not contain an assignment."""
        return self._parse_binary_expr(2)

    def _parse_binary_expr(self, min_precedence: int, left: Optional[Expression] = None) -> Expression:
        """Parse binary expressions with precedence climbing."""
        if left is None:
            left = self._parse_unary_expr()

        while True:
            op_token = self._current()
            precedence = self.PRECEDENCE.get(op_token.type)

            if precedence is None or precedence < min_precedence:
                break

            self._advance()  # consume operator

            # Right-associative operators use same precedence, others use precedence + 1
            next_precedence = precedence if op_token.type in self.RIGHT_ASSOCIATIVE else precedence + 1
            right = self._parse_binary_expr(next_precedence)
            span = SourceSpan(left.span.start, right.span.end)

            if op_token.type == TokenType.ASSIGN:
                left = self._node(self._make_assignment(left, right, span))
            elif op_token.type == TokenType.COLON:
                left = self._node(self._make_range(left, right, span, op_token))
            else:
                left = self._node(BinaryOp(
                    span=span,
                    left=left,
                    operator=self.SYMBOLS[op_token.type],
                    right=right,
                ))

        return left

    def _make_assignment(self, target: Expression, value: Expression, span: SourceSpan) -> Expression:
        if isinstance(target, Identifier):
            return Assignment(span=span, target=target.name, value=value)
        if (isinstance(target, MatrixLiteral) and len(target.rows) == 1
                and all(isinstance(e, Identifier) for e in target.rows[0])):
            return MultiAssignment(span=span, targets=tuple(e.name for e in target.rows[0]), value=value)
        raise error_invalid_assignment_target(
            target.span, self._source_line(target.span.start.line), part=target)

    def _make_range(self, left: Expression, right: Expression, span: SourceSpan,
                    op_token: Token) -> RangeExpr:
        # a:b:c arrives as (a:b):c; the middle operand becomes the step
        if isinstance(left, RangeExpr):
            if left.step is not None:
                raise error_unexpected_token(
                    "end of range", "':'", op_token.span,
                    self._source_line(op_token.span.start.line), part=left)
            return RangeExpr(span=span, start=left.start, stop=right, step=left.stop)
        return RangeExpr(span=span, start=left, stop=right)

    def _parse_unary_expr(self) -> Expression:
        """Parse prefix - and +. The operand binds at power level."""
        token = self._current()
        if token.type in (TokenType.MINUS, TokenType.PLUS):
            self._advance()
            operand = self._parse_binary_expr(self.POWER_PRECEDENCE)
            return self._node(UnaryOp(
                span=SourceSpan(token.span.start, operand.span.end),
                operator=token.lexeme,
                operand=operand,
            ))

        if token.is_signed_number and self._peek(1).type in self.SIGN_SPLITTING:
            self._advance()
            literal = self._node(Literal(
                span=SourceSpan(_shift(token.span.start, 1), token.span.end),
                value=abs(token.value),
                literal_type=token.type,
            ))
            operand = self._parse_binary_expr(self.POWER_PRECEDENCE, self._parse_postfix_ops(literal))
            return self._node(UnaryOp(
                span=SourceSpan(token.span.start, operand.span.end),
                operator=token.lexeme[0],
                operand=operand,
            ))

        return self._parse_postfix_expr()

    def _parse_postfix_expr(self) -> Expression:
        return self._parse_postfix_ops(self._parse_primary_expr())

    def _parse_postfix_ops(self, expr: Expression) -> Expression:
        """Parse trailing ' and ! operators."""
        while self._current().type in self.POSTFIX:
            op = self._advance()
            expr = self._node(PostfixOp(
                span=SourceSpan(expr.span.start, op.span.end),
                operand=expr,
                operator=self.SYMBOLS[op.type],
            ))
        return expr

    def _parse_primary_expr(self) -> Expression:
        """Parse literals, names, calls, groups and matrix literals."""
        token = self._current()

        if token.type in NUMBER_LITERALS or token.type == TokenType.STRING_LITERAL:
            self._advance()
            return self._node(Literal(span=token.span, value=token.value, literal_type=token.type))

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            if self._check(TokenType.LPAREN):
                return self._parse_call(token)
            return self._node(Identifier(span=token.span, name=token.value))

        if token.type == TokenType.LPAREN:
            self._advance()
            if self._check(TokenType.RPAREN):
                raise error_empty_bracket(token.span, self._source_line(token.span.start.line))
            inner = self._parse_expression()
            self._consume(TokenType.RPAREN, "')'")
            return self._node(Group(span=self._span_from(token), expression=inner))

        if token.type == TokenType.LBRACKET:
            return self._parse_matrix_literal()

        if token.type == TokenType.ERROR:
            raise token.value

        self._error("expression")

    def _parse_call(self, name: Token) -> FunctionCall:
        """name(arg, ...); an empty argument list is allowed."""
        self._consume(TokenType.LPAREN, "'('")
        arguments = []
        if not self._check(TokenType.RPAREN):
            arguments.append(self._parse_expression())
            while self._match(TokenType.COMMA):
                arguments.append(self._parse_expression())
        self._consume(TokenType.RPAREN, "')' or ','")
        return self._node(FunctionCall(
            span=self._span_from(name),
            name=name.value,
            arguments=tuple(arguments),
        ))

    def _parse_matrix_literal(self) -> MatrixLiteral:
        """[a, b; c, d]; [] is the empty matrix."""
        start = self._consume(TokenType.LBRACKET, "'['")
        rows = []
        if not self._check(TokenType.RBRACKET):
            while True:
                row = [self._parse_expression()]
                while self._match(TokenType.COMMA):
                    row.append(self._parse_expression())
                rows.append(tuple(row))
                if not self._match(TokenType.SEMICOLON):
                    break
        self._consume(TokenType.RBRACKET, "']', ',' or ';'")
        return self._node(MatrixLiteral(span=self._span_from(start), rows=tuple(rows)))


def parse(tokens: List[Token], filename: Optional[str] = None,
          source: Optional[str] = None) -> List[ParsedStatement]:
    """Convenience function to parse a token stream into statements."""
    return Parser(tokens, filename, source).parse()


def parse_source(source: str, filename: Optional[str] = None) -> List[ParsedStatement]:
    """Tokenize and parse source text."""
    from .lexer import tokenize
    return parse(tokenize(source, filename), filename, source)
