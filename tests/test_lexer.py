"""
Unit tests for the numscript lexer.
"""

import pytest
from numscript import tokenize, Lexer, Scanner, TokenType, DiagnosticCollector


def types_of(source):
    return [t.type for t in tokenize(source)]


class TestLexerBasics:
    """Test basic lexer functionality."""

    def test_empty_source(self):
        """Empty source produces only EOF."""
        tokens = tokenize("")
        assert len(tokens) == 1
        assert tokens[0].type == TokenType.EOF

    def test_whitespace_only(self):
        """Spaces and tabs produce no tokens."""
        assert types_of("   \t  ") == [TokenType.EOF]

    def test_simple_assignment(self):
        """Basic assignment tokenization."""
        assert types_of("x = 42") == [
            TokenType.IDENTIFIER,
            TokenType.ASSIGN,
            TokenType.INT_LITERAL,
            TokenType.EOF,
        ]

    def test_position_tracking(self):
        """Token positions are tracked correctly."""
        tokens = tokenize("x = 5")
        assert tokens[0].span.start.line == 1
        assert tokens[0].span.start.column == 1
        assert tokens[2].span.start.column == 5

    def test_multiline_position_tracking(self):
        """Position tracking across multiple lines."""
        tokens = tokenize("x = 5\ny = 10")
        names = [t for t in tokens if t.type == TokenType.IDENTIFIER]
        assert names[0].span.start.line == 1
        assert names[1].span.start.line == 2
        assert names[1].span.start.column == 1

    def test_streaming(self):
        """A Lexer can be iterated directly."""
        assert [t.type for t in Lexer("1")] == [TokenType.INT_LITERAL, TokenType.EOF]


class TestNumberLiterals:
    """Test numeric literal scanning."""

    def test_integer(self):
        tokens = tokenize("42")
        assert tokens[0].type == TokenType.INT_LITERAL
        assert tokens[0].value == 42

    def test_decimal(self):
        tokens = tokenize("3.14")
        assert tokens[0].type == TokenType.FLOAT_LITERAL
        assert tokens[0].value == 3.14

    def test_leading_dot(self):
        tokens = tokenize(".5")
        assert tokens[0].type == TokenType.FLOAT_LITERAL
        assert tokens[0].value == 0.5

    def test_exponent(self):
        tokens = tokenize("2e-3")
        assert tokens[0].type == TokenType.FLOAT_LITERAL
        assert tokens[0].value == 0.002

    def test_imaginary(self):
        tokens = tokenize("5i")
        assert tokens[0].type == TokenType.IMAG_LITERAL
        assert tokens[0].value == 5.0

    def test_imaginary_with_exponent(self):
        tokens = tokenize("2.5e3i")
        assert tokens[0].type == TokenType.IMAG_LITERAL
        assert tokens[0].value == 2500.0

    def test_exponent_without_digits_is_identifier(self):
        """'2e' is the number 2 followed by the name e."""
        tokens = tokenize("2e")
        assert [t.type for t in tokens] == [TokenType.INT_LITERAL, TokenType.IDENTIFIER, TokenType.EOF]
        assert tokens[1].value == "e"

    def test_imaginary_suffix_needs_word_boundary(self):
        """'2if' is the number 2 followed by the name if."""
        tokens = tokenize("2if")
        assert tokens[0].value == 2
        assert tokens[1].type == TokenType.IDENTIFIER
        assert tokens[1].value == "if"


class TestSigns:
    """A sign belongs to a literal only where an operand can start."""

    def test_subtraction_stays_binary(self):
        tokens = tokenize("1-2")
        assert [t.type for t in tokens] == [
            TokenType.INT_LITERAL, TokenType.MINUS, TokenType.INT_LITERAL, TokenType.EOF,
        ]
        assert tokens[2].value == 2

    def test_negative_literal_after_operator(self):
        tokens = tokenize("x = -2")
        assert tokens[2].type == TokenType.INT_LITERAL
        assert tokens[2].value == -2
        assert tokens[2].is_signed_number

    def test_negative_literal_at_start(self):
        tokens = tokenize("-1.5")
        assert tokens[0].type == TokenType.FLOAT_LITERAL
        assert tokens[0].value == -1.5

    def test_sign_after_closing_bracket_is_binary(self):
        assert types_of("(1)-2")[3] == TokenType.MINUS

    def test_sign_after_identifier_is_binary(self):
        assert types_of("x+1")[1] == TokenType.PLUS

    def test_sign_before_name_is_operator(self):
        assert types_of("-x") == [TokenType.MINUS, TokenType.IDENTIFIER, TokenType.EOF]


class TestKeywords:
    """Keywords are recognized only at the start of a statement."""

    def test_keyword_at_start(self):
        assert types_of("clear x")[0] == TokenType.CLEAR

    def test_keyword_after_separator(self):
        tokens = tokenize("x = 1; format long")
        assert TokenType.FORMAT in [t.type for t in tokens]

    def test_keyword_elsewhere_is_identifier(self):
        tokens = tokenize("y = clear")
        assert tokens[2].type == TokenType.IDENTIFIER
        assert tokens[2].value == "clear"

    def test_keyword_inside_brackets_is_identifier(self):
        """A row separator does not start a statement."""
        types = types_of("[1; clear]")
        assert TokenType.CLEAR not in types
        assert types[3] == TokenType.IDENTIFIER

    def test_function_keyword(self):
        assert types_of("function f(x) = x")[0] == TokenType.FUNCTION


class TestOperators:
    """Test operator and delimiter scanning."""

    def test_dotted_operators(self):
        assert types_of("a .* b ./ c .^ d")[1::2][:3] == [
            TokenType.DOT_STAR, TokenType.DOT_SLASH, TokenType.DOT_CARET,
        ]

    def test_comparisons(self):
        types = types_of("a == b ~= c != d <= e >= f < g > h")
        assert types[1::2][:7] == [
            TokenType.EQ, TokenType.NE, TokenType.NE, TokenType.LE,
            TokenType.GE, TokenType.LT, TokenType.GT,
        ]

    def test_postfix(self):
        assert types_of("A'") == [TokenType.IDENTIFIER, TokenType.APOSTROPHE, TokenType.EOF]
        assert types_of("5!") == [TokenType.INT_LITERAL, TokenType.BANG, TokenType.EOF]

    def test_longest_symbol_wins(self):
        """'==' is one token, not two assignments."""
        assert types_of("a==b")[1] == TokenType.EQ

    def test_range(self):
        assert types_of("1:2:10") == [
            TokenType.INT_LITERAL, TokenType.COLON, TokenType.INT_LITERAL,
            TokenType.COLON, TokenType.INT_LITERAL, TokenType.EOF,
        ]


class TestStringLiterals:
    """Test string literal scanning."""

    def test_simple_string(self):
        tokens = tokenize('"hello"')
        assert tokens[0].type == TokenType.STRING_LITERAL
        assert tokens[0].value == "hello"

    def test_escape_sequences(self):
        assert tokenize(r'"a\tb\n"')[0].value == "a\tb\n"

    def test_hex_and_unicode_escapes(self):
        assert tokenize(r'"\x41é"')[0].value == "Aé"

    def test_escaped_quote(self):
        assert tokenize(r'"say \"hi\""')[0].value == 'say "hi"'

    def test_invalid_escape(self):
        diagnostics = DiagnosticCollector()
        tokens = tokenize(r'"\q"', diagnostics=diagnostics)
        assert tokens[0].type == TokenType.ERROR
        assert diagnostics.diagnostics[0].code == "E003"

    def test_unterminated_string(self):
        diagnostics = DiagnosticCollector()
        tokens = tokenize('"open', diagnostics=diagnostics)
        assert tokens[0].type == TokenType.ERROR
        assert diagnostics.has_errors
        assert diagnostics.diagnostics[0].code == "E002"


class TestTrivia:
    """Whitespace, comments, line continuations and newlines."""

    def test_comment(self):
        assert types_of("1 # a note") == [TokenType.INT_LITERAL, TokenType.EOF]

    def test_newline_separates_statements(self):
        assert types_of("1\n2") == [
            TokenType.INT_LITERAL, TokenType.NEWLINE, TokenType.INT_LITERAL, TokenType.EOF,
        ]

    def test_newline_inside_brackets_is_ignored(self):
        assert TokenType.NEWLINE not in types_of("[1,\n2]")

    def test_line_continuation(self):
        assert types_of("1 + \\\n2") == [
            TokenType.INT_LITERAL, TokenType.PLUS, TokenType.INT_LITERAL, TokenType.EOF,
        ]


class TestLexerErrors:
    """Unrecognized input becomes an ERROR token and scanning continues."""

    def test_unexpected_character(self):
        diagnostics = DiagnosticCollector()
        tokens = tokenize("1 $ 2", diagnostics=diagnostics)
        assert [t.type for t in tokens] == [
            TokenType.INT_LITERAL, TokenType.ERROR, TokenType.INT_LITERAL, TokenType.EOF,
        ]
        assert diagnostics.diagnostics[0].code == "E001"
        assert diagnostics.diagnostics[0].column == 3

    def test_error_does_not_affect_sign_handling(self):
        """An ERROR token is not an operand end."""
        tokens = tokenize("1 $ -2")
        assert tokens[2].type == TokenType.MINUS


class HexScanner(Scanner):
    """Recognizes 0x1F style integers."""

    def scan(self, text, pos, previous):
        if not text.startswith("0x", pos):
            return 0
        end = pos + 2
        while end < len(text) and text[end] in "0123456789abcdefABCDEF":
            end += 1
        return end - pos if end > pos + 2 else 0

    def create(self, lexeme, span):
        return TokenType.INT_LITERAL, int(lexeme, 16)


class TestScannerRegistration:
    """Scanners compete by longest match."""

    def test_custom_scanner_longest_match(self):
        lexer = Lexer("0x1F + 1")
        lexer.register_scanner(HexScanner(), first=True)
        tokens = lexer.tokenize()
        assert tokens[0].type == TokenType.INT_LITERAL
        assert tokens[0].value == 31
        assert tokens[1].type == TokenType.PLUS

    def test_custom_scanner_loses_shorter_match(self):
        """Plain numbers still go to the number scanner."""
        lexer = Lexer("12")
        lexer.register_scanner(HexScanner())
        assert lexer.tokenize()[0].value == 12

    def test_tie_goes_to_earlier_scanner(self):
        """Keyword and identifier scanners match 'clear' equally; keyword is first."""
        assert types_of("clear")[0] == TokenType.CLEAR
