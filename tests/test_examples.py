"""End-to-end conversions of the documented examples."""

import pytest

from app.services.sql_conversion import Severity, SqlConversionValidator, WarningKind


class TestDocumentedExamples:
    """Test the reference conversions."""

    @pytest.mark.parametrize('target', ['mysql', 'postgresql'])
    def test_decode(self, orchestrator, target: str) -> None:
        """DECODE becomes a simple CASE expression."""
        outcome = orchestrator('oracle', target).convert_sql(
            "SELECT DECODE(status, 'A', 'Active', 'I', 'Inactive', 'Unknown') FROM accounts"
        )
        assert ("CASE status WHEN 'A' THEN 'Active' WHEN 'I' THEN 'Inactive' ELSE 'Unknown' END"
                in outcome.converted_sql)

    @pytest.mark.parametrize('target', ['mysql', 'postgresql'])
    def test_rownum_limit(self, orchestrator, target: str) -> None:
        """ROWNUM <= 10 becomes LIMIT 10."""
        outcome = orchestrator('oracle', target).convert_sql('SELECT * FROM users WHERE ROWNUM <= 10')
        assert outcome.converted_sql == 'SELECT * FROM users LIMIT 10'

    def test_outer_join(self, orchestrator) -> None:
        """The (+) predicate moves into a LEFT JOIN and WHERE disappears."""
        outcome = orchestrator('oracle', 'postgresql').convert_sql(
            'SELECT a.name, b.val FROM a, b WHERE a.id = b.id(+)'
        )
        assert 'a LEFT JOIN b ON a.id = b.id' in outcome.converted_sql
        assert 'WHERE' not in outcome.converted_sql
        assert '(+)' not in outcome.converted_sql

    def test_nested_nvl(self, orchestrator) -> None:
        """Both NVL levels become IFNULL."""
        outcome = orchestrator('oracle', 'mysql').convert_sql("SELECT NVL(NVL(a, b), 'default') FROM t")
        assert 'NVL(' not in outcome.converted_sql.replace('IFNULL(', '')
        assert "IFNULL(IFNULL(a, b), 'default')" in outcome.converted_sql

    @pytest.mark.parametrize('target', ['mysql', 'postgresql'])
    def test_pagination_both_directions(self, orchestrator, target: str) -> None:
        """OFFSET/FETCH and LIMIT/OFFSET convert into each other."""
        to_limit = orchestrator('oracle', target).convert_sql(
            'SELECT * FROM t ORDER BY id OFFSET 5 ROWS FETCH NEXT 10 ROWS ONLY'
        )
        back = orchestrator(target, 'oracle').convert_sql(to_limit.converted_sql)
        assert to_limit.converted_sql == 'SELECT * FROM t ORDER BY id LIMIT 10 OFFSET 5'
        assert back.converted_sql == 'SELECT * FROM t ORDER BY id OFFSET 5 ROWS FETCH NEXT 10 ROWS ONLY'

    def test_clause_loss_flagged(self) -> None:
        """Dropping WHERE is an error-severity finding."""
        report = SqlConversionValidator().validate(
            'SELECT * FROM users WHERE active=1', 'SELECT * FROM users', 'oracle', 'mysql',
        )
        losses = [w for w in report.warnings
                  if w.kind is WarningKind.MANUAL_REVIEW_NEEDED and 'WHERE' in w.message]
        assert len(losses) == 1
        assert losses[0].severity is Severity.ERROR
