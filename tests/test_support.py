"""Tests for models, result formatting and the manual review logger."""

import pytest

from app.services.sql_conversion import (
    ConversionWarning, Dialect, Severity, UnsupportedDialectError, WarningKind,
)
from app.services.sql_conversion.converters.declarative.statement_converter import StatementKind, classify_statement
from app.services.sql_conversion.utils.manual_review_logger import DEFAULT_SUGGESTED_ACTIONS, ManualReviewLogger
from app.services.sql_conversion.utils.result_formatter import (
    create_result_dictionary, overall_status, summarize_applied_rules,
)
from app.config import config
from app.utils.path_utils import create_run_directory, workspace_path


class TestDialect:
    """Test dialect resolution."""

    @pytest.mark.parametrize('name,expected', [
        ('Oracle', Dialect.ORACLE),
        (' mysql ', Dialect.MYSQL),
        ('postgres', Dialect.POSTGRESQL),
        ('mariadb', Dialect.MYSQL),
        (Dialect.ORACLE, Dialect.ORACLE),
    ])
    def test_from_name(self, name, expected: Dialect) -> None:
        """Names and aliases resolve case-insensitively."""
        assert Dialect.from_name(name) is expected

    def test_unknown(self) -> None:
        """Unknown names raise and are also ValueErrors."""
        with pytest.raises(ValueError):
            Dialect.from_name('sqlite')
        with pytest.raises(UnsupportedDialectError):
            Dialect.from_name(None)


class TestClassification:
    """Test statement kind detection."""

    @pytest.mark.parametrize('sql,kind', [
        ('select 1 from dual', StatementKind.SELECT),
        ('(SELECT 1) UNION (SELECT 2)', StatementKind.SELECT),
        ('WITH x AS (SELECT 1 FROM dual) SELECT * FROM x', StatementKind.WITH),
        ('CREATE OR REPLACE FORCE VIEW v AS SELECT 1 FROM dual', StatementKind.CREATE_VIEW),
        ('CREATE OR REPLACE PROCEDURE p IS BEGIN NULL; END;', StatementKind.PLSQL),
        ('MERGE INTO t USING s ON (t.id = s.id) WHEN MATCHED THEN UPDATE SET t.x = s.x', StatementKind.MERGE),
        ('CREATE TABLE t (id NUMBER)', StatementKind.OTHER),
    ])
    def test_classify(self, sql: str, kind: StatementKind) -> None:
        """Leading keywords decide the kind."""
        assert classify_statement(sql) is kind


class TestResultFormatter:
    """Test file-mode result dictionaries."""

    def test_overall_status(self) -> None:
        """Status depends on how many files succeeded."""
        assert overall_status([{'status': 'success'}, {'status': 'skipped'}]) == 'success'
        assert overall_status([{'status': 'error'}]) == 'error'
        assert overall_status([{'status': 'success'}, {'status': 'error'}]) == 'partial_success'

    def test_rule_summary_order(self) -> None:
        """Applied rules are counted, most frequent first."""
        summary = summarize_applied_rules([
            {'applied_rules': ['a', 'b']},
            {'applied_rules': ['b']},
        ])
        assert list(summary.items()) == [('b', 2), ('a', 1)]

    def test_result_dictionary(self) -> None:
        """Extra entries are added only when set."""
        result = create_result_dictionary('success', 'done', {'total_files': 1}, [{'status': 'success'}],
                                          '/tmp/out', summary_file='/tmp/out/s.json', manual_review_log=None)
        assert result['stats'] == {'total_files': 1, 'files_successful': 1, 'files_failed': 0}
        assert result['output_directory'] == '/tmp/out'
        assert result['summary_file'] == '/tmp/out/s.json'
        assert 'manual_review_log' not in result


class TestManualReviewLogger:
    """Test review item collection."""

    def test_severity_filter_and_default_suggestion(self, tmp_path) -> None:
        """INFO findings are dropped; missing suggestions get the default."""
        review = ManualReviewLogger(str(tmp_path))
        kept = review.log_warnings('x.sql', 1, [
            ConversionWarning(WarningKind.SYNTAX_DIFFERENCE, 'note', Severity.INFO),
            ConversionWarning(WarningKind.UNSUPPORTED_FUNCTION, 'gone', Severity.ERROR),
        ], 'SELECT', 'SELECT   s.NEXTVAL\nFROM dual')
        assert kept == 1
        item = review.review_items[0]
        assert item['suggested_action'] == DEFAULT_SUGGESTED_ACTIONS[WarningKind.UNSUPPORTED_FUNCTION]
        assert item['statement_preview'] == 'SELECT s.NEXTVAL FROM dual'

    def test_nothing_to_write(self, tmp_path) -> None:
        """No items means no log file."""
        assert ManualReviewLogger(str(tmp_path)).write_manual_review_log() is None

    def test_summary_report(self, tmp_path) -> None:
        """The text report names the files."""
        review = ManualReviewLogger(str(tmp_path))
        review.log_manual_review_item('y.sql', 2, 'MANUAL_REVIEW_NEEDED', 'check', 'WARNING')
        assert 'y.sql' in review.create_summary_report()


class TestWorkspacePath:
    """Test workspace path resolution."""

    def test_blank_segment(self) -> None:
        """Blank segments are rejected."""
        with pytest.raises(ValueError):
            workspace_path('converted', ' ')

    def test_join(self) -> None:
        """Segments are joined under the workspace root."""
        assert workspace_path('converted', 'run').parts[-2:] == ('converted', 'run')

    def test_run_directory(self, tmp_path, monkeypatch) -> None:
        """Run folders are named after the prefix and timestamp."""
        monkeypatch.setitem(config['base_dirs'], 'workspace', str(tmp_path))
        folder = create_run_directory('oracle_mysql', stamp='20240101_120000')
        assert folder == tmp_path / 'converted' / 'oracle_mysql_20240101_120000'
        assert folder.is_dir()
