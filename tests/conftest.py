"""Pytest configuration and fixtures."""

from typing import Callable

import pytest

from app.services.sql_conversion import ConversionOrchestrator, Dialect
from app.services.sql_conversion.converters.declarative.statement_converter import StatementConverter
from app.services.sql_conversion.models import ConversionContext
from app.services.sql_conversion.rules.registry import RuleRegistry, load_rule_registry


@pytest.fixture(scope='session')
def registry() -> RuleRegistry:
    """Default rule registry loaded from the JSON tables."""
    return load_rule_registry()


@pytest.fixture
def convert(registry: RuleRegistry) -> Callable:
    """Convert one statement; returns (sql, context)."""
    converters = {}

    def _convert(source: str, target: str, sql: str):
        key = (Dialect.from_name(source), Dialect.from_name(target))
        if key not in converters:
            converters[key] = StatementConverter(key[0], key[1], registry)
        context = ConversionContext(*key)
        return converters[key].convert(sql, context), context

    return _convert


@pytest.fixture
def orchestrator(registry: RuleRegistry) -> Callable:
    """Factory for orchestrators sharing the session registry."""

    def _make(source: str, target: str, **kwargs) -> ConversionOrchestrator:
        kwargs.setdefault('max_workers', 1)
        return ConversionOrchestrator(source, target, registry=registry, **kwargs)

    return _make


@pytest.fixture
def sql_corpus() -> dict:
    """Representative statements per source dialect."""
    return {
        Dialect.ORACLE: [
            "SELECT NVL(name, 'n/a'), SUBSTR(code, 1, 3) FROM users WHERE ROWNUM <= 10",
            "SELECT DECODE(status, 'A', 'Active', 'I', 'Inactive', 'Unknown') FROM accounts",
            "SELECT a.name, b.val FROM a, b WHERE a.id = b.id(+)",
            "SELECT first_name || ' ' || last_name AS full_name FROM employees",
            "SELECT TO_CHAR(hire_date, 'YYYY-MM-DD'), ADD_MONTHS(hire_date, 6) FROM employees",
            "SELECT * FROM orders ORDER BY id OFFSET 5 ROWS FETCH NEXT 10 ROWS ONLY",
            "SELECT deptno, LISTAGG(ename, ',') WITHIN GROUP (ORDER BY ename) FROM emp GROUP BY deptno",
            "SELECT 'it''s NVL(x, y) -- not code' AS note FROM dual",
            "INSERT INTO t (id, created) VALUES (t_seq.NEXTVAL, SYSDATE)",
            "SELECT empno, ename FROM emp START WITH mgr IS NULL CONNECT BY PRIOR empno = mgr",
        ],
        Dialect.MYSQL: [
            "SELECT IFNULL(name, 'n/a'), IF(active = 1, 'yes', 'no') FROM users LIMIT 10",
            "SELECT * FROM orders ORDER BY id LIMIT 10 OFFSET 5",
            "SELECT CONCAT(first_name, ' ', last_name) FROM `employees`",
            "SELECT LOCATE('x', name), NOW(), CURDATE() FROM t",
            "SELECT DATE_FORMAT(created, '%Y-%m-%d') FROM t",
            "SELECT 'IFNULL(a, b)' AS literal_text FROM t",
        ],
        Dialect.POSTGRESQL: [
            "SELECT COALESCE(name, 'n/a'), STRPOS(name, 'x') FROM users LIMIT 10",
            "SELECT TO_CHAR(created, 'YYYY-MM-DD') FROM t",
            "SELECT nextval('order_seq')",
            "SELECT id FROM a EXCEPT SELECT id FROM b",
            "SELECT \"Mixed Case\" FROM t WHERE note = 'O''Brien'",
        ],
    }
