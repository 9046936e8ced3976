"""
Dialect utilities for SQL conversion.
Handles mapping between dialect names, the Dialect enum and sqlglot dialects.
"""
from typing import Tuple

from ..models import Dialect

_SQLGLOT_DIALECTS = {
    Dialect.ORACLE: 'oracle',
    Dialect.MYSQL: 'mysql',
    Dialect.POSTGRESQL: 'postgres',
}


def get_sqlglot_dialect(source_type) -> str:
    """
    Get the sqlglot dialect used to parse a given database type.

    Args:
        source_type: Dialect or database name (e.g., 'oracle', 'postgresql', 'postgres')

    Returns:
        sqlglot dialect string
    """
    return _SQLGLOT_DIALECTS[Dialect.from_name(source_type)]


def resolve_pair(source, target) -> Tuple[Dialect, Dialect]:
    """Resolve a (source, target) pair, raising UnsupportedDialectError for unknown names."""
    return Dialect.from_name(source), Dialect.from_name(target)


def pair_name(source: Dialect, target: Dialect) -> str:
    """Directory-style pair name used by the rule tables, e.g. 'oracle_mysql'."""
    return f"{source.value}_{target.value}"
