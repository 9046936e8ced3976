"""Tests for the sql-switch console commands."""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from app.cli import cli


@pytest.fixture
def runner() -> CliRunner:
    """Click runner for the Typer app."""
    return CliRunner()


class TestConvertCommand:
    """Test `sql-switch convert`."""

    def test_stdin(self, runner: CliRunner) -> None:
        """SQL on stdin is converted to stdout."""
        result = runner.invoke(cli, ['convert', '--from', 'oracle', '--to', 'postgresql'],
                               input='SELECT NVL(a, b) FROM t WHERE ROWNUM <= 5')
        assert result.exit_code == 0
        assert 'SELECT COALESCE(a, b) FROM t LIMIT 5' in result.stdout

    def test_file_argument(self, runner: CliRunner, tmp_path: Path) -> None:
        """A file argument is read instead of stdin."""
        source = tmp_path / 'q.sql'
        source.write_text('SELECT IFNULL(a, b) FROM t', encoding='utf-8')
        result = runner.invoke(cli, ['convert', '-s', 'mysql', '-t', 'oracle', str(source)])
        assert result.exit_code == 0
        assert 'NVL(a, b)' in result.stdout

    def test_empty_input(self, runner: CliRunner) -> None:
        """Blank input fails."""
        result = runner.invoke(cli, ['convert', '--from', 'oracle', '--to', 'mysql'], input='  ')
        assert result.exit_code == 1

    def test_unknown_dialect(self, runner: CliRunner) -> None:
        """Unknown dialects exit with status 2."""
        result = runner.invoke(cli, ['convert', '--from', 'oracle', '--to', 'db2'], input='SELECT 1')
        assert result.exit_code == 2

    def test_strict_fails_on_errors(self, runner: CliRunner) -> None:
        """--strict turns ERROR findings into a failing exit status."""
        args = ['convert', '--from', 'oracle', '--to', 'mysql']
        sql = 'SELECT seq.NEXTVAL FROM dual'
        assert runner.invoke(cli, args, input=sql).exit_code == 0
        assert runner.invoke(cli, args + ['--strict'], input=sql).exit_code == 1


class TestConvertFilesCommand:
    """Test `sql-switch convert-files`."""

    def test_folder(self, runner: CliRunner, tmp_path: Path) -> None:
        """Files are written to the output folder."""
        (tmp_path / 'in').mkdir()
        (tmp_path / 'in' / 'q.sql').write_text('SELECT NVL(a, b) FROM t;\n', encoding='utf-8')
        result = runner.invoke(cli, ['convert-files', '--from', 'oracle', '--to', 'mysql',
                                     str(tmp_path / 'in'), '-o', str(tmp_path / 'out')])
        assert result.exit_code == 0
        assert (tmp_path / 'out' / 'q.sql').read_text(encoding='utf-8') == 'SELECT IFNULL(a, b) FROM t;\n'

    def test_no_sql_files(self, runner: CliRunner, tmp_path: Path) -> None:
        """A folder without SQL files fails."""
        result = runner.invoke(cli, ['convert-files', '--from', 'oracle', '--to', 'mysql', str(tmp_path)])
        assert result.exit_code == 1
