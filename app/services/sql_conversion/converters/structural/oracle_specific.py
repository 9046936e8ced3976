"""
Sequence access and the DUAL table.

    Oracle seq.NEXTVAL / seq.CURRVAL   <->   PostgreSQL nextval('seq') / currval('seq')
    either of them toward MySQL              unsupported marker (MySQL has no sequences)
    SELECT 1   (toward Oracle)               SELECT 1 FROM DUAL
"""
import re

from ..base_converter import BaseConverter
from ...models import ConversionContext, Dialect, Severity, WarningKind
from ...utils.parser_utils import mask_literals, search_top_level
from ...utils.regex_utils import sub_code

_ORACLE_SEQUENCE = re.compile(r'\b((?:[\w$#]+\.)?[\w$#]+)\.(NEXTVAL|CURRVAL)\b', re.IGNORECASE)
_PG_SEQUENCE = re.compile(r"\b(NEXTVAL|CURRVAL)\s*\(\s*('[^']*')(?:\s*::\s*regclass)?\s*\)", re.IGNORECASE)
_SEQUENCE_NAME = re.compile(r"^'([\w$#.]+)'$")
_SELECT_START = re.compile(r'^\s*SELECT\b', re.IGNORECASE)
_FROM = re.compile(r'\bFROM\b', re.IGNORECASE)
_SET_OPERATOR = re.compile(r'\b(?:UNION|INTERSECT|EXCEPT|MINUS)\b', re.IGNORECASE)


class OracleSpecificConverter(BaseConverter):
    name = 'oracle_specific'

    def applies(self) -> bool:
        if self.source is self.target:
            return False
        return Dialect.ORACLE in (self.source, self.target) or self.target is Dialect.MYSQL

    def convert(self, sql: str, context: ConversionContext) -> str:
        if not self.applies():
            return sql
        sql = self._sequences(sql, context)
        if self.target is Dialect.ORACLE:
            sql = self._from_dual(sql, context)
        return sql

    def _sequences(self, sql: str, context: ConversionContext) -> str:
        if self.source is Dialect.ORACLE:
            pattern = _ORACLE_SEQUENCE

            def parts(match):
                return match.group(1), match.group(2).upper()
        elif self.source is Dialect.POSTGRESQL:
            pattern = _PG_SEQUENCE

            def parts(match):
                name = _SEQUENCE_NAME.match(match.group(2))
                return (name.group(1) if name else None), match.group(1).upper()
        else:
            return sql

        def _replace(match):
            sequence, operation = parts(match)
            if sequence is None:
                return None
            if self.target is Dialect.POSTGRESQL:
                return f"{operation.lower()}('{sequence}')"
            if self.target is Dialect.ORACLE:
                return f"{sequence}.{operation}"
            return f"NULL /* {sequence}.{operation} - not supported in MySQL */"

        sql, count = sub_code(pattern, _replace, sql)
        if not count:
            return sql
        if self.target is Dialect.MYSQL:
            self.record(context, "sequence access marked unsupported", count)
            context.warn(
                WarningKind.UNSUPPORTED_FUNCTION,
                "MySQL has no sequences; the sequence call was replaced by NULL.",
                Severity.ERROR,
                "Use an AUTO_INCREMENT column or a counter table.",
            )
        else:
            self.record(context, f"sequence access -> {self.target.label} syntax", count)
        return sql

    def _from_dual(self, sql: str, context: ConversionContext) -> str:
        masked = mask_literals(sql)
        if not _SELECT_START.match(masked) or search_top_level(_FROM, masked) or search_top_level(
                _SET_OPERATOR, masked):
            return sql
        end = len(masked)
        while end > 0 and (masked[end - 1].isspace() or masked[end - 1] == ';'):
            end -= 1
        self.record(context, "FROM DUAL added")
        return f"{sql[:end]} FROM DUAL{sql[end:]}"
