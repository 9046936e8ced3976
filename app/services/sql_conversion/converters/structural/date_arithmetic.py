"""
Date arithmetic.

Oracle source:
    ADD_MONTHS(d, n)        MySQL DATE_ADD(d, INTERVAL n MONTH)   PostgreSQL (d + INTERVAL 'n months')
    MONTHS_BETWEEN(a, b)    MySQL TIMESTAMPDIFF(MONTH, b, a)      PostgreSQL EXTRACT/AGE arithmetic
    TRUNC(d [, 'fmt'])      MySQL DATE(d) / DATE_FORMAT           PostgreSQL DATE_TRUNC('unit', d)
    TRUNC(x, n)             MySQL TRUNCATE(x, n)
    d + n, d - n            days added to a date-looking operand

MySQL source:
    DATE_ADD / DATE_SUB(d, INTERVAL n unit)   Oracle d + n, ADD_MONTHS, NUMTODSINTERVAL
                                              PostgreSQL (d + INTERVAL 'n unit')
    DATEDIFF(a, b)                            day difference
"""
import re
from typing import List, Optional

from ..base_converter import BaseConverter
from ...models import ConversionContext, Dialect, Severity, WarningKind
from ...utils.date_format import is_quoted_literal, literal_body
from ...utils.parser_utils import rewrite_function_calls
from ...utils.regex_utils import function_call_pattern, sub_code

_INTEGER = re.compile(r'^-?\d+$')
_INTERVAL_ARG = re.compile(r'^INTERVAL\s+(.+?)\s+([A-Z_]+)$', re.IGNORECASE | re.DOTALL)

_DATE_OPERAND = (
    r'(?:(?:[\w$#]+\.)?(?:\w+_date|\w+_at|date)\b|\bNOW\(\)|\bCURRENT_TIMESTAMP\b|\bCURRENT_DATE\b|\bSYSDATE\b)'
)
_DATE_PLUS_DAYS = re.compile(
    rf'(?<![\w.$#])({_DATE_OPERAND})\s*([+-])\s*(\d+)\b(?![.\w])(?!\s*[*/])',
    re.IGNORECASE,
)
_DATE_LIKE = re.compile(
    rf'^\s*(?:{_DATE_OPERAND}|(?:TO_DATE|TO_TIMESTAMP|STR_TO_DATE|CAST)\s*\(.*\)|DATE\s*\'.*\')\s*$',
    re.IGNORECASE | re.DOTALL,
)

# Oracle TRUNC format model -> unit
_TRUNC_UNITS = {
    'YYYY': 'year', 'YEAR': 'year', 'YYY': 'year', 'YY': 'year', 'Y': 'year', 'SYYYY': 'year', 'RRRR': 'year',
    'Q': 'quarter',
    'MM': 'month', 'MON': 'month', 'MONTH': 'month', 'RM': 'month',
    'IW': 'week', 'WW': 'week', 'W': 'week', 'DAY': 'week', 'DY': 'week', 'D': 'week',
    'DD': 'day', 'DDD': 'day', 'J': 'day',
    'HH': 'hour', 'HH12': 'hour', 'HH24': 'hour',
    'MI': 'minute',
}

_MYSQL_TRUNC_FORMATS = {
    'year': "'%Y-01-01'",
    'month': "'%Y-%m-01'",
    'hour': "'%Y-%m-%d %H:00:00'",
    'minute': "'%Y-%m-%d %H:%i:00'",
}

_ORACLE_DS_UNITS = ('HOUR', 'MINUTE', 'SECOND')
_PG_UNITS = ('DAY', 'WEEK', 'MONTH', 'YEAR', 'HOUR', 'MINUTE', 'SECOND')


def _negate(value: str) -> str:
    if _INTEGER.match(value):
        return value[1:] if value.startswith('-') else f"-{value}"
    return f"-({value})"


def _pg_interval(value: str, unit: str) -> str:
    unit = unit.lower()
    if _INTEGER.match(value):
        plural = '' if value.lstrip('-') == '1' else 's'
        return f"INTERVAL '{value} {unit}{plural}'"
    return f"({value}) * INTERVAL '1 {unit}'"


class DateArithmeticConverter(BaseConverter):
    name = 'date_arithmetic'

    def applies(self) -> bool:
        if self.source is self.target:
            return False
        return self.source is Dialect.ORACLE or self.source is Dialect.MYSQL

    def convert(self, sql: str, context: ConversionContext) -> str:
        if not self.applies():
            return sql
        if self.source is Dialect.ORACLE:
            sql = self._add_months(sql, context)
            sql = self._months_between(sql, context)
            sql = self._trunc(sql, context)
            sql = self._date_plus_days(sql, context)
        else:
            sql = self._mysql_date_add(sql, context, 'DATE_ADD', subtract=False)
            sql = self._mysql_date_add(sql, context, 'DATE_SUB', subtract=True)
            sql = self._datediff(sql, context)
        return sql

    # ------------------------------------------------------------------
    # Oracle source
    # ------------------------------------------------------------------

    def _add_months(self, sql: str, context: ConversionContext) -> str:
        def rebuild(args):
            if len(args) != 2:
                return None
            date_expr, months = args
            if self.target is Dialect.MYSQL:
                return f"DATE_ADD({date_expr}, INTERVAL {months} MONTH)"
            return f"({date_expr} + {_pg_interval(months, 'month')})"

        sql, count = rewrite_function_calls(sql, function_call_pattern('ADD_MONTHS'), rebuild)
        if count:
            self.record(context, "ADD_MONTHS() -> interval arithmetic", count)
            context.warn(
                WarningKind.PARTIAL_SUPPORT,
                "ADD_MONTHS keeps month-end dates at month end in Oracle; interval addition does not.",
                Severity.INFO,
            )
        return sql

    def _months_between(self, sql: str, context: ConversionContext) -> str:
        def rebuild(args):
            if len(args) != 2:
                return None
            later, earlier = args
            if self.target is Dialect.MYSQL:
                return f"TIMESTAMPDIFF(MONTH, {earlier}, {later})"
            return (f"(EXTRACT(YEAR FROM AGE({later}, {earlier})) * 12 "
                    f"+ EXTRACT(MONTH FROM AGE({later}, {earlier})))")

        sql, count = rewrite_function_calls(sql, function_call_pattern('MONTHS_BETWEEN'), rebuild)
        if count:
            self.record(context, "MONTHS_BETWEEN() -> month difference", count)
            context.warn(
                WarningKind.PARTIAL_SUPPORT,
                "MONTHS_BETWEEN returns fractional months in Oracle; the converted expression returns whole months.",
                Severity.INFO,
            )
        return sql

    def _trunc(self, sql: str, context: ConversionContext) -> str:
        problems: List[str] = []
        assumed_numeric = []

        def rebuild(args):
            if len(args) == 1:
                if _DATE_LIKE.match(args[0]):
                    return self._trunc_date(args[0], 'day')
                assumed_numeric.append(args[0])
                return f"TRUNCATE({args[0]}, 0)" if self.target is Dialect.MYSQL else None
            if len(args) != 2:
                return None
            value, precision = args
            if is_quoted_literal(precision):
                unit = _TRUNC_UNITS.get(literal_body(precision).strip().upper())
                replacement = self._trunc_date(value, unit) if unit else None
                if replacement is None:
                    problems.append(precision)
                return replacement
            return f"TRUNCATE({value}, {precision})" if self.target is Dialect.MYSQL else None

        sql, count = rewrite_function_calls(sql, function_call_pattern('TRUNC'), rebuild)
        for fmt in problems:
            context.warn(
                WarningKind.MANUAL_REVIEW_NEEDED,
                f"TRUNC with format {fmt} has no direct {self.target.label} equivalent; left unchanged.",
                Severity.WARNING,
            )
        if assumed_numeric:
            context.warn(
                WarningKind.MANUAL_REVIEW_NEEDED,
                f"TRUNC({assumed_numeric[0]}) was treated as numeric truncation.",
                Severity.WARNING,
                "If the argument is a date, use the date truncation of the target dialect.",
            )
        if count:
            self.record(context, "TRUNC() -> target truncation", count)
        return sql

    def _trunc_date(self, value: str, unit: Optional[str]) -> Optional[str]:
        if self.target is Dialect.POSTGRESQL:
            return f"DATE_TRUNC('{unit}', {value})"
        if unit == 'day':
            return f"DATE({value})"
        fmt = _MYSQL_TRUNC_FORMATS.get(unit)
        return f"DATE_FORMAT({value}, {fmt})" if fmt else None

    def _date_plus_days(self, sql: str, context: ConversionContext) -> str:
        def _replace(match):
            date_expr, operator, days = match.group(1), match.group(2), match.group(3)
            if self.target is Dialect.MYSQL:
                function = 'DATE_ADD' if operator == '+' else 'DATE_SUB'
                return f"{function}({date_expr}, INTERVAL {days} DAY)"
            plural = '' if days == '1' else 's'
            return f"({date_expr} {operator} INTERVAL '{days} day{plural}')"

        sql, count = sub_code(_DATE_PLUS_DAYS, _replace, sql)
        if count:
            self.record(context, "date +/- n days -> interval arithmetic", count)
        return sql

    # ------------------------------------------------------------------
    # MySQL source
    # ------------------------------------------------------------------

    def _mysql_date_add(self, sql: str, context: ConversionContext, function: str, subtract: bool) -> str:
        unsupported = []

        def rebuild(args):
            if len(args) != 2:
                return None
            match = _INTERVAL_ARG.match(args[1])
            if not match:
                unsupported.append(args[1])
                return None
            date_expr, value, unit = args[0], match.group(1).strip(), match.group(2).upper()
            if is_quoted_literal(value) and _INTEGER.match(literal_body(value).strip()):
                value = literal_body(value).strip()
            replacement = (self._interval_for_oracle(date_expr, value, unit, subtract)
                           if self.target is Dialect.ORACLE
                           else self._interval_for_postgres(date_expr, value, unit, subtract))
            if replacement is None:
                unsupported.append(args[1])
            return replacement

        sql, count = rewrite_function_calls(sql, function_call_pattern(function), rebuild)
        for interval in unsupported:
            context.warn(
                WarningKind.MANUAL_REVIEW_NEEDED,
                f"{function} with {interval} was left unchanged.",
                Severity.WARNING,
                "Only simple DAY, WEEK, MONTH, YEAR, HOUR, MINUTE and SECOND intervals are converted.",
            )
        if count:
            self.record(context, f"{function}() -> {self.target.label} date arithmetic", count)
        return sql

    @staticmethod
    def _interval_for_oracle(date_expr: str, value: str, unit: str, subtract: bool) -> Optional[str]:
        operator = '-' if subtract else '+'
        if unit == 'DAY':
            return f"({date_expr} {operator} {value})"
        if unit == 'WEEK':
            days = str(int(value) * 7) if _INTEGER.match(value) else f"({value}) * 7"
            return f"({date_expr} {operator} {days})"
        if unit in ('MONTH', 'YEAR'):
            months = value
            if unit == 'YEAR':
                months = str(int(value) * 12) if _INTEGER.match(value) else f"({value}) * 12"
            return f"ADD_MONTHS({date_expr}, {_negate(months) if subtract else months})"
        if unit in _ORACLE_DS_UNITS:
            return f"({date_expr} {operator} NUMTODSINTERVAL({value}, '{unit}'))"
        return None

    @staticmethod
    def _interval_for_postgres(date_expr: str, value: str, unit: str, subtract: bool) -> Optional[str]:
        if unit not in _PG_UNITS:
            return None
        operator = '-' if subtract else '+'
        return f"({date_expr} {operator} {_pg_interval(value, unit)})"

    def _datediff(self, sql: str, context: ConversionContext) -> str:
        def rebuild(args):
            if len(args) != 2:
                return None
            later, earlier = args
            if self.target is Dialect.ORACLE:
                return f"(TRUNC({later}) - TRUNC({earlier}))"
            return f"(CAST({later} AS DATE) - CAST({earlier} AS DATE))"

        sql, count = rewrite_function_calls(sql, function_call_pattern('DATEDIFF'), rebuild)
        if count:
            self.record(context, "DATEDIFF() -> date subtraction", count)
        return sql
