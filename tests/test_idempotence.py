"""Identity and idempotence over every dialect pair."""

from itertools import permutations

import pytest

from app.services.sql_conversion import Dialect

PAIRS = list(permutations(Dialect, 2))


class TestIdentity:
    """Test that a dialect converted to itself is untouched."""

    @pytest.mark.parametrize('dialect', list(Dialect))
    def test_identity_pair(self, orchestrator, sql_corpus: dict, dialect: Dialect) -> None:
        """Same source and target returns the exact input."""
        text = ';\n'.join(sql_corpus[dialect]) + ';'
        outcome = orchestrator(dialect, dialect).convert_sql(text)
        assert outcome.converted_sql == text
        assert outcome.warnings == ()
        assert outcome.applied_rules == ()


class TestIdempotence:
    """Test that converting converted output changes nothing."""

    @pytest.mark.parametrize('source,target', PAIRS, ids=lambda d: d.value)
    def test_second_pass_is_stable(self, convert, sql_corpus: dict, source: Dialect, target: Dialect) -> None:
        """A second run of the same pair returns its input."""
        for sql in sql_corpus[source]:
            once, _ = convert(source, target, sql)
            twice, _ = convert(source, target, once)
            assert twice == once, sql

    def test_literals_are_preserved(self, convert) -> None:
        """Function names inside literals and comments are not rewritten."""
        sql = "SELECT 'NVL(a, b)', x /* NVL(c, d) */ FROM t -- ROWNUM <= 1"
        converted, context = convert('oracle', 'mysql', sql)
        assert converted == sql
        assert context.applied_rules == []
