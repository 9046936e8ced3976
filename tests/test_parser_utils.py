"""Tests for the scanner primitives."""

import re

from app.services.sql_conversion.utils.parser_utils import (
    NOT_FOUND,
    apply_edits,
    extract_operand_after,
    extract_operand_before,
    find_matching_bracket,
    is_plsql_block,
    literal_regions,
    mask_literals,
    rewrite_function_calls,
    safe_parse_one,
    split_conjuncts,
    split_function_arguments,
    split_statements,
    statement_spans,
)


class TestMasking:
    """Test literal and comment masking."""

    def test_mask_keeps_length_and_delimiters(self) -> None:
        """Masked text lines up with the original."""
        sql = "SELECT 'a;b' FROM t -- c;d\nWHERE x = \"y(z\""
        masked = mask_literals(sql)
        assert len(masked) == len(sql)
        assert ';' not in masked
        assert "'   '" in masked
        assert '(' not in masked

    def test_doubled_quote_is_escape(self) -> None:
        """A doubled quote does not end the literal."""
        regions = literal_regions("SELECT 'it''s' FROM t")
        assert len(regions) == 1
        assert regions[0].kind == 'string'
        assert regions[0].closed

    def test_unterminated_literal_region(self) -> None:
        """An unterminated literal runs to the end and is not closed."""
        regions = literal_regions("SELECT 'abc FROM t")
        assert regions[-1].closed is False
        assert regions[-1].end == len("SELECT 'abc FROM t")


class TestBrackets:
    """Test bracket matching and argument splitting."""

    def test_find_matching_bracket(self) -> None:
        """The index after the matching parenthesis is returned."""
        text = "f(a, g(b), 'c)')"
        assert find_matching_bracket(text, 1) == len(text)

    def test_find_matching_bracket_truncated(self) -> None:
        """Truncated text yields NOT_FOUND."""
        assert find_matching_bracket("f(a, (b)", 1) == NOT_FOUND
        assert find_matching_bracket("f(a)", 0) == NOT_FOUND

    def test_bracket_inside_comment_ignored(self) -> None:
        """Parentheses inside comments do not count."""
        text = "(a /* ) */ + b)"
        assert find_matching_bracket(text, 0) == len(text)

    def test_split_arguments(self) -> None:
        """Commas inside nested calls and literals do not split."""
        args = split_function_arguments("a, NVL(b, c), 'x, y', (1, 2)")
        assert args == ['a', 'NVL(b, c)', "'x, y'", '(1, 2)']

    def test_split_arguments_blank(self) -> None:
        """Blank input gives an empty list."""
        assert split_function_arguments('   ') == []

    def test_split_arguments_rejoin(self) -> None:
        """Joining the split arguments gives back the normalised argument text."""
        text = "x ,  DECODE(y, 1, 'a,b', 2) , z"
        assert ', '.join(split_function_arguments(text)) == "x, DECODE(y, 1, 'a,b', 2), z"

    def test_split_conjuncts_keeps_between(self) -> None:
        """BETWEEN ... AND ... stays one conjunct."""
        parts = split_conjuncts("a = 1 AND b BETWEEN 2 AND 3 AND (c = 1 AND d = 2)")
        assert parts == ['a = 1', 'b BETWEEN 2 AND 3', '(c = 1 AND d = 2)']


class TestOperands:
    """Test operand extraction around infix operators."""

    def test_operand_before_function_call(self) -> None:
        """A function call left of the operator is taken whole."""
        text = "SELECT UPPER(a) || b FROM t"
        operand, start = extract_operand_before(text, text.index('||'))
        assert operand == 'UPPER(a)'
        assert start == text.index('UPPER')

    def test_operand_before_case(self) -> None:
        """A CASE ... END block is one operand."""
        text = "SELECT CASE WHEN x THEN 'a' END || 'b'"
        operand, _ = extract_operand_before(text, text.index('||'))
        assert operand == "CASE WHEN x THEN 'a' END"

    def test_operand_after_literal(self) -> None:
        """A quoted literal right of the operator is taken whole."""
        text = "a || 'x || y' FROM t"
        operand, end = extract_operand_after(text, text.index('||') + 2)
        assert operand == "'x || y'"
        assert text[end:] == ' FROM t'

    def test_keyword_is_not_an_operand(self) -> None:
        """Keywords yield the empty operand."""
        text = "SELECT || a"
        assert extract_operand_before(text, text.index('||'))[0] == ''


class TestEdits:
    """Test edit application and call rewriting."""

    def test_apply_edits_outer_wins(self) -> None:
        """Overlapping edits keep the earlier, wider span."""
        assert apply_edits('abcdef', [(1, 5, 'X'), (2, 3, 'Y')]) == 'aXf'

    def test_apply_edits_empty(self) -> None:
        """No edits returns the text unchanged."""
        assert apply_edits('abc', []) == 'abc'

    def test_rewrite_nested_calls(self) -> None:
        """Nested calls of the same function are each rewritten."""
        pattern = re.compile(r'\bNVL\s*\(', re.IGNORECASE)
        text, count = rewrite_function_calls(
            "SELECT NVL(NVL(a, b), 'NVL(c)') FROM t", pattern, lambda args: f"IFNULL({', '.join(args)})",
        )
        assert text == "SELECT IFNULL(IFNULL(a, b), 'NVL(c)') FROM t"
        assert count == 2


class TestStatements:
    """Test statement splitting."""

    def test_split_on_semicolons_outside_literals(self) -> None:
        """Semicolons inside literals and comments do not split."""
        text = "SELECT ';' FROM t; -- a;b\nSELECT 2;"
        assert split_statements(text) == ["SELECT ';' FROM t", '-- a;b\nSELECT 2']

    def test_plsql_block_extends_to_slash(self) -> None:
        """A PL/SQL block ends at a line holding only a slash."""
        text = "BEGIN\n  x := 1;\n  y := 2;\nEND;\n/\nSELECT 1 FROM dual;"
        statements = split_statements(text)
        assert len(statements) == 2
        assert statements[0].startswith('BEGIN') and statements[0].endswith('END;')
        assert is_plsql_block(statements[0])
        assert not is_plsql_block(statements[1])

    def test_spans_exclude_semicolon(self) -> None:
        """Spans stop before their terminating semicolon."""
        assert statement_spans('a;b') == [(0, 1), (2, 3)]


class TestSafeParse:
    """Test the sqlglot parse wrapper."""

    def test_parse_success(self) -> None:
        """Valid SQL parses without error."""
        ast, error = safe_parse_one('SELECT a FROM t', 'mysql')
        assert ast is not None
        assert error is None

    def test_parse_empty(self) -> None:
        """Blank SQL is reported, not raised."""
        assert safe_parse_one('  ', 'oracle') == (None, 'Empty statement')

    def test_parse_failure_captured(self) -> None:
        """Broken SQL returns an error message."""
        ast, error = safe_parse_one('SELECT (a FROM', 'postgres')
        assert ast is None
        assert error
