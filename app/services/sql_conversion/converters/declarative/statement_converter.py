import re
from enum import Enum
from typing import Optional

from app.utils.logger import setup_logger
from app.services.sql_conversion.converters.base_converter import BaseConverter
from app.services.sql_conversion.converters.function_dispatcher import FunctionDispatcher
from app.services.sql_conversion.converters.structural.cte import CteConverter
from app.services.sql_conversion.converters.structural.identifier_quotes import IdentifierQuoteConverter
from app.services.sql_conversion.converters.structural.legacy_join import LegacyJoinConverter
from app.services.sql_conversion.converters.structural.oracle_specific import OracleSpecificConverter
from app.services.sql_conversion.converters.structural.window_function import WindowFunctionConverter
from app.services.sql_conversion.models import ConversionContext, Dialect, Severity, WarningKind
from app.services.sql_conversion.rules.registry import RuleRegistry, load_rule_registry
from app.services.sql_conversion.utils.dialect_utils import get_sqlglot_dialect
from app.services.sql_conversion.utils.parser_utils import is_plsql_block, mask_literals, safe_parse_one
from app.services.sql_conversion.utils.regex_utils import sub_code


class StatementKind(str, Enum):
    SELECT = 'SELECT'
    WITH = 'WITH'
    INSERT = 'INSERT'
    UPDATE = 'UPDATE'
    DELETE = 'DELETE'
    MERGE = 'MERGE'
    CREATE_VIEW = 'CREATE_VIEW'
    PLSQL = 'PLSQL'
    OTHER = 'OTHER'


_LEADING_WORD = re.compile(r'^[\s(]*([A-Za-z]+)')
_CREATE_VIEW = re.compile(
    r'^\s*CREATE\s+(?:OR\s+REPLACE\s+)?(?:(?:NO)?FORCE\s+)?(?:MATERIALIZED\s+)?VIEW\b', re.IGNORECASE,
)
_QUERY_KINDS = {
    'SELECT': StatementKind.SELECT,
    'WITH': StatementKind.WITH,
    'INSERT': StatementKind.INSERT,
    'UPDATE': StatementKind.UPDATE,
    'DELETE': StatementKind.DELETE,
    'MERGE': StatementKind.MERGE,
}


def classify_statement(sql: str) -> StatementKind:
    """Detect the kind of a single statement from its leading keywords."""
    if is_plsql_block(sql):
        return StatementKind.PLSQL
    masked = mask_literals(sql)
    if _CREATE_VIEW.match(masked):
        return StatementKind.CREATE_VIEW
    match = _LEADING_WORD.match(masked)
    if not match:
        return StatementKind.OTHER
    return _QUERY_KINDS.get(match.group(1).upper(), StatementKind.OTHER)


class StatementConverter(BaseConverter):
    """
    Acts as a router, inspecting one SQL statement and running the rewrite
    steps that apply to its kind:

        pre-dispatch    legacy (+) joins, window-function extensions, CTEs
        dispatch        FunctionDispatcher (registry rules + structural steps)
        post-dispatch   per-pair syntax fixes, sequences / DUAL, identifier quotes

    PL/SQL blocks only go through the dispatcher; their procedural syntax is
    left for manual review. Other statements (DDL and the like) skip the
    query-level pre-dispatch steps.
    """
    name = 'statement'

    def __init__(self, source: Dialect, target: Dialect, registry: Optional[RuleRegistry] = None):
        super().__init__(source, target)
        self.logger = setup_logger('StatementConverter')
        self.registry = registry if registry is not None else load_rule_registry()
        self.dispatcher = FunctionDispatcher(self.source, self.target, self.registry)
        self.pre_dispatch = [
            LegacyJoinConverter(self.source, self.target),
            WindowFunctionConverter(self.source, self.target),
            CteConverter(self.source, self.target),
        ]
        self.post_dispatch = [
            OracleSpecificConverter(self.source, self.target),
            IdentifierQuoteConverter(self.source, self.target),
        ]
        self.syntax_fixes = self.registry.get_syntax_fixes(self.source, self.target)

    def convert(self, sql: str, context: ConversionContext) -> str:
        """
        Converts a single statement.

        Args:
            sql: One statement, without its terminating semicolon.
            context: Collector for the warnings and applied rules of this call.
        """
        if not self.applies() or not mask_literals(sql).strip():
            return sql

        kind = classify_statement(sql)
        self._preflight_parse(sql, kind)
        self.logger.debug(f"Routing {kind.value} statement ({self.source.value} -> {self.target.value})")

        if kind is StatementKind.PLSQL:
            context.warn(
                WarningKind.MANUAL_REVIEW_NEEDED,
                "PL/SQL block: only functions and expressions were converted; procedural syntax was not translated.",
                Severity.WARNING,
                f"Port the block to the {self.target.label} procedural language by hand.",
            )
            return self.dispatcher.convert(sql, context)

        if kind is not StatementKind.OTHER:
            for step in self.pre_dispatch:
                sql = step.convert(sql, context)
        sql = self.dispatcher.convert(sql, context)
        sql = self._apply_syntax_fixes(sql, context)
        for step in self.post_dispatch:
            sql = step.convert(sql, context)
        return sql

    def _preflight_parse(self, sql: str, kind: StatementKind) -> None:
        """Parse check with sqlglot; the string engine runs either way."""
        if kind is StatementKind.PLSQL:
            return
        _, error = safe_parse_one(sql, get_sqlglot_dialect(self.source))
        if error:
            self.logger.debug(f"sqlglot could not parse the {kind.value} statement, using string rewrites only: "
                              f"{error}")

    def _apply_syntax_fixes(self, sql: str, context: ConversionContext) -> str:
        for fix in self.syntax_fixes:
            sql, count = sub_code(fix.pattern, fix.replacement, sql)
            if not count:
                continue
            self.record(context, fix.name, count)
            if fix.warning:
                context.warnings.append(fix.warning)
        return sql
