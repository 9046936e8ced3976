"""
Row limiting clauses.

    Oracle  OFFSET m ROWS FETCH NEXT n ROWS ONLY   <->   LIMIT n OFFSET m
    Oracle  FETCH FIRST n ROWS ONLY                <->   LIMIT n
    MySQL   LIMIT m, n                              ->   LIMIT n OFFSET m  /  OFFSET m ROWS FETCH NEXT n ROWS ONLY
"""
import re
from typing import List, Tuple

from ..base_converter import BaseConverter
from ...models import ConversionContext, Dialect, Severity, WarningKind
from ...utils.regex_utils import search_code, sub_code

_VALUE = r'(\d+|\?|:\w+)'

_OFFSET_FETCH = re.compile(
    rf'\bOFFSET\s+{_VALUE}\s+ROWS?\s+FETCH\s+(?:FIRST|NEXT)\s+{_VALUE}\s+ROWS?\s+ONLY\b', re.IGNORECASE,
)
_FETCH_ONLY = re.compile(rf'\bFETCH\s+(?:FIRST|NEXT)\s+{_VALUE}\s+ROWS?\s+ONLY\b', re.IGNORECASE)
_OFFSET_ROWS = re.compile(rf'\bOFFSET\s+{_VALUE}\s+ROWS?\b(?!\s+FETCH)', re.IGNORECASE)
_FETCH_UNSUPPORTED = re.compile(r'\bFETCH\s+(?:FIRST|NEXT)\s+\S+\s+(?:PERCENT\b|ROWS?\s+WITH\s+TIES\b)',
                                re.IGNORECASE)

_LIMIT_OFFSET = re.compile(rf'\bLIMIT\s+{_VALUE}\s+OFFSET\s+{_VALUE}(?!\w)', re.IGNORECASE)
_LIMIT_COMMA = re.compile(rf'\bLIMIT\s+{_VALUE}\s*,\s*{_VALUE}', re.IGNORECASE)
_LIMIT_ONLY = re.compile(rf'\bLIMIT\s+{_VALUE}(?!\w)(?!\s*,)(?!\s+OFFSET\b)', re.IGNORECASE)

# MySQL cannot express OFFSET without LIMIT; this is the documented workaround
_MYSQL_MAX_ROWS = '18446744073709551615'


class PaginationConverter(BaseConverter):
    name = 'pagination'

    def convert(self, sql: str, context: ConversionContext) -> str:
        if not self.applies():
            return sql
        if self.target is Dialect.ORACLE:
            return self._limit_to_fetch(sql, context)
        if self.source is Dialect.MYSQL:
            return self._apply(sql, context, [
                (_LIMIT_COMMA, r'LIMIT \2 OFFSET \1', "LIMIT m, n -> LIMIT n OFFSET m"),
            ])
        return self._fetch_to_limit(sql, context)

    def _apply(self, sql: str, context: ConversionContext,
               rules: List[Tuple[re.Pattern, object, str]]) -> str:
        for pattern, replacement, description in rules:
            sql, count = sub_code(pattern, replacement, sql)
            if count:
                self.record(context, description, count)
        return sql

    def _fetch_to_limit(self, sql: str, context: ConversionContext) -> str:
        if search_code(_FETCH_UNSUPPORTED, sql):
            context.warn(
                WarningKind.UNSUPPORTED_FUNCTION,
                f"FETCH ... PERCENT / WITH TIES has no {self.target.label} LIMIT equivalent; left unchanged.",
                Severity.WARNING,
                "Use a window function (RANK / PERCENT_RANK) in a subquery.",
            )
        offset_only = r'OFFSET \1'
        if self.target is Dialect.MYSQL:
            offset_only = rf'LIMIT {_MYSQL_MAX_ROWS} OFFSET \1'
        return self._apply(sql, context, [
            (_OFFSET_FETCH, r'LIMIT \2 OFFSET \1', "OFFSET ... FETCH -> LIMIT ... OFFSET"),
            (_FETCH_ONLY, r'LIMIT \1', "FETCH FIRST n ROWS ONLY -> LIMIT n"),
            (_OFFSET_ROWS, offset_only, "OFFSET m ROWS -> OFFSET m"),
        ])

    def _limit_to_fetch(self, sql: str, context: ConversionContext) -> str:
        before = len(context.applied_rules)
        sql = self._apply(sql, context, [
            (_LIMIT_OFFSET, r'OFFSET \2 ROWS FETCH NEXT \1 ROWS ONLY', "LIMIT ... OFFSET -> OFFSET ... FETCH"),
            (_LIMIT_COMMA, r'OFFSET \1 ROWS FETCH NEXT \2 ROWS ONLY', "LIMIT m, n -> OFFSET ... FETCH"),
            (_LIMIT_ONLY, r'FETCH FIRST \1 ROWS ONLY', "LIMIT n -> FETCH FIRST n ROWS ONLY"),
        ])
        if len(context.applied_rules) > before:
            context.warn(
                WarningKind.SYNTAX_DIFFERENCE,
                "OFFSET ... FETCH requires Oracle 12c or later.",
                Severity.INFO,
                "On older releases wrap the query and filter on ROWNUM.",
            )
        return sql
