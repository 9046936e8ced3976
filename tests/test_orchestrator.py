"""Tests for ConversionOrchestrator: text mode and file mode."""

import json
from pathlib import Path

import pytest

from app.services.sql_conversion import ConversionOrchestrator, Severity, UnsupportedDialectError, WarningKind


class TestTextMode:
    """Test multi-statement text conversion."""

    def test_unknown_dialect(self) -> None:
        """Unknown dialect names fail at construction."""
        with pytest.raises(UnsupportedDialectError):
            ConversionOrchestrator('oracle', 'sqlserver')

    def test_dialect_aliases(self, orchestrator) -> None:
        """Common aliases resolve."""
        assert orchestrator('ORA', 'postgres').target.value == 'postgresql'

    def test_blank_input(self, orchestrator) -> None:
        """Blank text comes back as given."""
        outcome = orchestrator('oracle', 'mysql').convert_sql('   ')
        assert outcome.converted_sql == '   '
        assert outcome.warnings == ()

    def test_statements_keep_order_and_terminators(self, orchestrator) -> None:
        """Each statement converts on its own; semicolons are restored."""
        text = "SELECT NVL(a, 1) FROM t;\nSELECT SYSDATE FROM dual;\nSELECT 'x;y' FROM t"
        outcome = orchestrator('oracle', 'mysql').convert_sql(text)
        assert outcome.converted_sql == (
            "SELECT IFNULL(a, 1) FROM t;\nSELECT NOW() FROM dual;\nSELECT 'x;y' FROM t"
        )
        assert outcome.applied_rules == ('NVL() -> IFNULL()', 'SYSDATE -> NOW()')

    def test_pool_matches_serial(self, orchestrator) -> None:
        """The thread pool gives the same result as serial conversion."""
        text = ';\n'.join(f"SELECT NVL(c{i}, {i}) FROM t{i} WHERE ROWNUM <= {i + 1}" for i in range(12)) + ';'
        serial = orchestrator('oracle', 'postgresql', max_workers=1).convert_sql(text)
        pooled = orchestrator('oracle', 'postgresql', max_workers=4).convert_sql(text)
        assert pooled == serial
        assert serial.converted_sql.count('LIMIT') == 12

    def test_plsql_block(self, orchestrator) -> None:
        """A PL/SQL block keeps its slash terminator and is flagged."""
        text = "BEGIN\n  UPDATE t SET d = SYSDATE;\nEND;\n/\nSELECT 1 FROM dual;"
        outcome = orchestrator('oracle', 'postgresql').convert_sql(text)
        assert outcome.converted_sql.startswith('BEGIN\n  UPDATE t SET d = CURRENT_TIMESTAMP;\nEND;\n/')
        assert any(w.kind is WarningKind.MANUAL_REVIEW_NEEDED and 'PL/SQL' in w.message
                   for w in outcome.warnings)

    def test_statement_failure_is_captured(self, orchestrator, monkeypatch) -> None:
        """An exception in one statement becomes an error warning; the rest still convert."""
        subject = orchestrator('oracle', 'mysql')
        original_convert = subject.statement_converter.convert

        def flaky(sql, context):
            if 'boom' in sql:
                raise RuntimeError('converter failure')
            return original_convert(sql, context)

        monkeypatch.setattr(subject.statement_converter, 'convert', flaky)
        outcome = subject.convert_sql("SELECT boom FROM t; SELECT NVL(a, b) FROM t;")
        assert outcome.converted_sql == "SELECT boom FROM t;\nSELECT IFNULL(a, b) FROM t;"
        assert outcome.has_errors
        assert 'RuntimeError' in outcome.warnings[0].message

    def test_validation_score(self, orchestrator) -> None:
        """With validation on, the outcome carries the weakest statement's score."""
        outcome = orchestrator('oracle', 'mysql', validate=True).convert_sql(
            "SELECT NVL(a, b) FROM t; SELECT * FROM users WHERE ROWNUM <= 10"
        )
        assert outcome.quality_score is not None
        assert 0.0 <= outcome.quality_score < 1.0
        assert any(w.kind is WarningKind.PERFORMANCE_WARNING for w in outcome.warnings)
        assert outcome.to_dict()['quality_score'] == outcome.quality_score

    def test_no_score_without_validation(self, orchestrator) -> None:
        """Validation is off by default."""
        outcome = orchestrator('oracle', 'mysql').convert_sql('SELECT NVL(a, b) FROM t')
        assert outcome.quality_score is None
        assert 'quality_score' not in outcome.to_dict()


class TestFileMode:
    """Test directory conversion."""

    @pytest.fixture
    def input_dir(self, tmp_path: Path) -> Path:
        """Directory with SQL files, a nested one and a non-SQL file."""
        source = tmp_path / 'input'
        (source / 'nested').mkdir(parents=True)
        (source / 'a.sql').write_text("SELECT NVL(a, b) FROM t;\nSELECT seq.NEXTVAL FROM dual;\n", encoding='utf-8')
        (source / 'nested' / 'b.sql').write_text('SELECT * FROM users WHERE ROWNUM <= 5;\n', encoding='utf-8')
        (source / 'notes.txt').write_text('SELECT NVL(x, y) FROM t;', encoding='utf-8')
        return source

    def test_convert_directory(self, orchestrator, input_dir: Path, tmp_path: Path) -> None:
        """Every .sql file is converted into the output tree with a summary."""
        output = tmp_path / 'output'
        result = orchestrator('oracle', 'mysql').convert_directory(str(input_dir), str(output))

        assert result['status'] == 'success'
        assert result['stats']['total_files'] == 2
        assert result['stats']['files_converted'] == 2
        assert result['stats']['total_statements'] == 3
        assert (output / 'a.sql').read_text(encoding='utf-8').startswith('SELECT IFNULL(a, b) FROM t;')
        assert (output / 'nested' / 'b.sql').read_text(encoding='utf-8') == 'SELECT * FROM users LIMIT 5;\n'
        assert not (output / 'notes.txt').exists()
        assert 'Processing 2 SQL files' in (output / 'conversion.log').read_text(encoding='utf-8')

        summary = json.loads((output / 'conversion_summary.json').read_text(encoding='utf-8'))
        assert summary['stats']['files_successful'] == 2
        assert summary['conversion_summary']['NVL() -> IFNULL()'] == 1

    def test_manual_review_log(self, orchestrator, input_dir: Path, tmp_path: Path) -> None:
        """Error findings are written to the manual review log."""
        output = tmp_path / 'output'
        result = orchestrator('oracle', 'mysql').convert_directory(str(input_dir), str(output))

        log_path = Path(result['manual_review_log'])
        assert log_path.exists()
        assert log_path.with_suffix('.csv').exists()
        review = json.loads(log_path.read_text(encoding='utf-8'))
        severities = {item['severity'] for item in review['review_items']}
        assert Severity.ERROR.value in severities
        assert review['summary_by_file']['a.sql'] >= 1

    def test_no_sql_files(self, orchestrator, tmp_path: Path) -> None:
        """An input without SQL files reports an error."""
        result = orchestrator('oracle', 'mysql').convert_directory(str(tmp_path))
        assert result['status'] == 'error'
        assert result['results'] == []
