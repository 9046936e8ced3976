"""
SQL Conversion Package - rewrites SQL between Oracle, MySQL and PostgreSQL.

Main Components:
    - ConversionOrchestrator: Main entry point, splits text into statements and converts them
    - StatementConverter: Routes one statement through the rewrite steps for its kind
    - FunctionDispatcher: Applies the per-pair function rules and structural rewrites
    - SqlConversionValidator: Scores a converted statement against its original
    - Utils: Literal-aware scanning, rule tables, dialect helpers

Usage:
    from app.services.sql_conversion import ConversionOrchestrator

    orchestrator = ConversionOrchestrator("oracle", "postgresql")
    outcome = orchestrator.convert_sql("SELECT NVL(a, 0) FROM t WHERE ROWNUM <= 10")
    print(outcome.converted_sql)
"""

from .exceptions import RuleConfigurationError, SqlConversionError, UnsupportedDialectError
from .models import ConversionOutcome, ConversionWarning, Dialect, Severity, WarningKind
from .orchestrator import ConversionOrchestrator
from .validator import SqlConversionValidator, ValidationReport

__all__ = [
    'ConversionOrchestrator',
    'ConversionOutcome',
    'ConversionWarning',
    'Dialect',
    'RuleConfigurationError',
    'Severity',
    'SqlConversionError',
    'SqlConversionValidator',
    'UnsupportedDialectError',
    'ValidationReport',
    'WarningKind',
]
