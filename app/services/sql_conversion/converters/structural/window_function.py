"""
Analytic and aggregate extensions.

    MAX(x) KEEP (DENSE_RANK FIRST ORDER BY d)    FIRST_VALUE(x) OVER (ORDER BY d)
    LISTAGG(x, ',') WITHIN GROUP (ORDER BY d)    STRING_AGG(x, ',' ORDER BY d)
                                                 GROUP_CONCAT(x ORDER BY d SEPARATOR ',')
    GROUP_CONCAT / STRING_AGG                    converted between each other and to LISTAGG
    RATIO_TO_REPORT(x) OVER (...)                x / SUM(x) OVER (...)
    PERCENTILE_CONT / PERCENTILE_DISC            kept for PostgreSQL, marked unsupported in MySQL
    FIRST_VALUE(x) IGNORE NULLS                  stripped for MySQL

KEEP to FIRST_VALUE / LAST_VALUE is exact only when the ORDER BY has no ties.
"""
import re
from typing import List, Optional, Tuple

from ..base_converter import BaseConverter
from ...models import ConversionContext, Dialect, Severity, WarningKind
from ...utils.parser_utils import (
    NOT_FOUND, apply_edits, find_function_calls, find_matching_bracket, find_matching_open_bracket,
    mask_literals, search_top_level, split_function_arguments,
)
from ...utils.regex_utils import function_call_pattern, sub_code

_KEEP = re.compile(r'\bKEEP\s*\(', re.IGNORECASE)
_KEEP_BODY = re.compile(r'^\s*DENSE_RANK\s+(FIRST|LAST)\s+ORDER\s+BY\s+(.+?)\s*$', re.IGNORECASE | re.DOTALL)
_WITHIN_GROUP = re.compile(r'\s*WITHIN\s+GROUP\s*\(', re.IGNORECASE)
_OVER = re.compile(r'\s*OVER\s*\(', re.IGNORECASE)
_ORDER_BY = re.compile(r'\bORDER\s+BY\b', re.IGNORECASE)
_ORDER_BY_BODY = re.compile(r'^\s*ORDER\s+BY\s+(.+?)\s*$', re.IGNORECASE | re.DOTALL)
_SEPARATOR = re.compile(r'\bSEPARATOR\b', re.IGNORECASE)
_ON_OVERFLOW = re.compile(r'\bON\s+OVERFLOW\b', re.IGNORECASE)
_PERCENTILE = re.compile(r'\b(PERCENTILE_CONT|PERCENTILE_DISC)\s*\(', re.IGNORECASE)
_IGNORE_NULLS = re.compile(r'\s*\bIGNORE\s+NULLS\b', re.IGNORECASE)
_NAME_BEFORE = re.compile(r'([A-Za-z_][\w$#]*)\s*$')
_SIMPLE_OPERAND = re.compile(r'^(?:[\w$#]+\.)?[\w$#]+$')

_KEEP_AGGREGATES = ('MIN', 'MAX')
_FULL_FRAME = 'ROWS BETWEEN UNBOUNDED PRECEDING AND UNBOUNDED FOLLOWING'


def _bracket_after(pattern: re.Pattern, masked: str, pos: int) -> Optional[Tuple[int, int]]:
    """(open, end) of the bracket opened by *pattern* right at *pos*."""
    match = pattern.match(masked, pos)
    if not match:
        return None
    end = find_matching_bracket(masked, match.end() - 1)
    if end == NOT_FOUND:
        return None
    return match.end() - 1, end


def _split_trailing(text: str, keyword: re.Pattern) -> Tuple[str, Optional[str]]:
    """Split ``expr KEYWORD rest`` at a depth-0 keyword."""
    match = search_top_level(keyword, mask_literals(text))
    if not match:
        return text.strip(), None
    return text[:match.start()].strip(), text[match.end():].strip()


class _Aggregate:
    """A string aggregate reduced to its parts."""

    def __init__(self, expression: str, separator: str, order_by: Optional[str]):
        self.expression = expression
        self.separator = separator
        self.order_by = order_by

    def render(self, target: Dialect) -> str:
        if target is Dialect.ORACLE:
            return (f"LISTAGG({self.expression}, {self.separator}) "
                    f"WITHIN GROUP (ORDER BY {self.order_by or 'NULL'})")
        order = f" ORDER BY {self.order_by}" if self.order_by else ''
        if target is Dialect.MYSQL:
            return f"GROUP_CONCAT({self.expression}{order} SEPARATOR {self.separator})"
        return f"STRING_AGG({self.expression}, {self.separator}{order})"


class WindowFunctionConverter(BaseConverter):
    name = 'window_function'

    _AGGREGATE_BY_SOURCE = {
        Dialect.ORACLE: 'LISTAGG',
        Dialect.MYSQL: 'GROUP_CONCAT',
        Dialect.POSTGRESQL: 'STRING_AGG',
    }

    def convert(self, sql: str, context: ConversionContext) -> str:
        if not self.applies():
            return sql
        if self.source is Dialect.ORACLE:
            sql = self._keep(sql, context)
        sql = self._string_aggregates(sql, context)
        if self.source is Dialect.ORACLE:
            sql = self._ratio_to_report(sql, context)
        sql = self._percentile(sql, context)
        if self.target is Dialect.MYSQL:
            sql = self._ignore_nulls(sql, context)
        return sql

    # ------------------------------------------------------------------
    # KEEP (DENSE_RANK FIRST | LAST ORDER BY ...)
    # ------------------------------------------------------------------

    def _keep(self, sql: str, context: ConversionContext) -> str:
        masked = mask_literals(sql)
        edits = []
        skipped = []
        for keep in _KEEP.finditer(masked):
            close = keep.start() - 1
            while close >= 0 and masked[close].isspace():
                close -= 1
            open_index = find_matching_open_bracket(masked, close) if close >= 0 else NOT_FOUND
            keep_end = find_matching_bracket(masked, keep.end() - 1)
            name = _NAME_BEFORE.search(masked, 0, open_index) if open_index != NOT_FOUND else None
            if name is None or keep_end == NOT_FOUND:
                continue
            body = _KEEP_BODY.match(mask_literals(sql[keep.end():keep_end - 1]))
            if name.group(1).upper() not in _KEEP_AGGREGATES or not body:
                skipped.append(sql[name.start():keep_end])
                continue

            position = body.group(1).upper()
            order_by = sql[keep.end() + body.start(2):keep.end() + body.end(2)]
            window = f"ORDER BY {order_by}"
            end = keep_end
            over = _bracket_after(_OVER, masked, keep_end)
            if over:
                partition = sql[over[0] + 1:over[1] - 1].strip()
                if _ORDER_BY.search(mask_literals(partition)):
                    skipped.append(sql[name.start():over[1]])
                    continue
                if partition:
                    window = f"{partition} {window}"
                end = over[1]
            function = 'FIRST_VALUE' if position == 'FIRST' else 'LAST_VALUE'
            if position == 'LAST':
                window = f"{window} {_FULL_FRAME}"
            argument = sql[open_index + 1:close]
            edits.append((name.start(), end, f"{function}({argument}) OVER ({window})"))

        for fragment in skipped:
            context.warn(
                WarningKind.MANUAL_REVIEW_NEEDED,
                f"KEEP clause left unchanged: {fragment}",
                Severity.WARNING,
                "Rank the rows with ROW_NUMBER() in a subquery and pick the first one.",
            )
        if not edits:
            return sql
        self.record(context, "KEEP (DENSE_RANK) -> FIRST_VALUE / LAST_VALUE", len(edits))
        context.warn(
            WarningKind.PARTIAL_SUPPORT,
            "KEEP (DENSE_RANK FIRST|LAST) was approximated with FIRST_VALUE / LAST_VALUE.",
            Severity.WARNING,
            "The result differs when the ORDER BY has ties, and a grouped query now needs DISTINCT or a subquery.",
        )
        return apply_edits(sql, edits)

    # ------------------------------------------------------------------
    # LISTAGG / GROUP_CONCAT / STRING_AGG
    # ------------------------------------------------------------------

    def _string_aggregates(self, sql: str, context: ConversionContext) -> str:
        function = self._AGGREGATE_BY_SOURCE[self.source]
        masked = mask_literals(sql)
        edits = []
        skipped = []
        unordered = 0
        for call in find_function_calls(sql, function_call_pattern(function), masked):
            end = call.end
            within = None
            if self.source is Dialect.ORACLE:
                within = _bracket_after(_WITHIN_GROUP, masked, call.end)
                if within:
                    end = within[1]
            if _OVER.match(masked, end):
                skipped.append(f"{function} used as an analytic function")
                continue

            aggregate, problem = self._parse_aggregate(sql, call.args_text, within)
            if aggregate is None:
                skipped.append(problem)
                continue
            unordered += aggregate.order_by is None
            edits.append((call.start, end, aggregate.render(self.target)))

        for problem in skipped:
            context.warn(
                WarningKind.MANUAL_REVIEW_NEEDED,
                f"{function} left unchanged: {problem}.",
                Severity.WARNING,
            )
        if not edits:
            return sql
        target_name = self._AGGREGATE_BY_SOURCE[self.target]
        self.record(context, f"{function} -> {target_name}", len(edits))
        if self.target is Dialect.POSTGRESQL:
            context.warn(
                WarningKind.DATA_TYPE_MISMATCH,
                "STRING_AGG only accepts text; non-text expressions need a cast.",
                Severity.INFO,
                "Write STRING_AGG(CAST(x AS TEXT), ...) for numeric or date columns.",
            )
        elif self.target is Dialect.MYSQL:
            context.warn(
                WarningKind.PARTIAL_SUPPORT,
                "GROUP_CONCAT output is truncated at group_concat_max_len (1024 bytes by default).",
                Severity.INFO,
                "Raise group_concat_max_len for long lists.",
            )
        elif unordered:
            context.warn(
                WarningKind.PARTIAL_SUPPORT,
                "LISTAGG was given WITHIN GROUP (ORDER BY NULL); the list order is undefined.",
                Severity.INFO,
                "Put the wanted ORDER BY inside WITHIN GROUP (...).",
            )
        return apply_edits(sql, edits)

    def _parse_aggregate(self, sql: str, args_text: str,
                         within: Optional[Tuple[int, int]]) -> Tuple[Optional[_Aggregate], Optional[str]]:
        if self.source is Dialect.ORACLE:
            if _ON_OVERFLOW.search(mask_literals(args_text)):
                return None, "ON OVERFLOW has no equivalent"
            args = split_function_arguments(args_text)
            if not args or len(args) > 2:
                return None, f"{len(args)} arguments"
            order_by = None
            if within:
                body = sql[within[0] + 1:within[1] - 1]
                match = _ORDER_BY_BODY.match(mask_literals(body))
                if not match:
                    return None, "WITHIN GROUP without ORDER BY"
                order_by = body[match.start(1):match.end(1)]
            separator = args[1] if len(args) == 2 else "''"
            return _Aggregate(args[0], separator, order_by), None

        if self.source is Dialect.MYSQL:
            body, separator = _split_trailing(args_text, _SEPARATOR)
            body, order_by = _split_trailing(body, _ORDER_BY)
            expressions = split_function_arguments(body)
            if len(expressions) != 1:
                return None, "more than one expression"
            return _Aggregate(expressions[0], separator or "','", order_by), None

        args = split_function_arguments(args_text)
        if len(args) != 2:
            return None, f"{len(args)} arguments"
        separator, order_by = _split_trailing(args[1], _ORDER_BY)
        return _Aggregate(args[0], separator, order_by), None

    # ------------------------------------------------------------------
    # RATIO_TO_REPORT, PERCENTILE_*, IGNORE NULLS
    # ------------------------------------------------------------------

    def _ratio_to_report(self, sql: str, context: ConversionContext) -> str:
        masked = mask_literals(sql)
        edits = []
        for call in find_function_calls(sql, function_call_pattern('RATIO_TO_REPORT'), masked):
            over = _bracket_after(_OVER, masked, call.end)
            args = split_function_arguments(call.args_text)
            if not over or len(args) != 1:
                continue
            value = args[0] if _SIMPLE_OPERAND.match(args[0]) else f"({args[0]})"
            window = sql[over[0] + 1:over[1] - 1]
            edits.append((call.start, over[1], f"{value} / SUM({args[0]}) OVER ({window})"))
        if not edits:
            return sql
        self.record(context, "RATIO_TO_REPORT -> x / SUM(x) OVER (...)", len(edits))
        context.warn(
            WarningKind.SYNTAX_DIFFERENCE,
            "RATIO_TO_REPORT was rewritten as a division by SUM() OVER (...).",
            Severity.INFO,
            "Integer columns divide as integers in PostgreSQL; multiply by 1.0 first.",
        )
        return apply_edits(sql, edits)

    def _percentile(self, sql: str, context: ConversionContext) -> str:
        masked = mask_literals(sql)
        edits = []
        analytic = []
        for call in find_function_calls(sql, _PERCENTILE, masked):
            within = _bracket_after(_WITHIN_GROUP, masked, call.end)
            if not within:
                continue
            name = _PERCENTILE.match(masked, call.start).group(1).upper()
            end = within[1]
            over = _bracket_after(_OVER, masked, end)
            if over:
                end = over[1]
            if self.target is Dialect.MYSQL:
                edits.append((call.start, end, f"NULL /* {name} - not supported in MySQL */"))
            elif over and self.target is Dialect.POSTGRESQL:
                analytic.append(name)

        for name in analytic:
            context.warn(
                WarningKind.UNSUPPORTED_FUNCTION,
                f"PostgreSQL has no analytic {name} ... OVER (...).",
                Severity.WARNING,
                "Compute the percentile per partition in a grouped subquery and join it back.",
            )
        if not edits:
            return sql
        self.record(context, "PERCENTILE_* marked unsupported", len(edits))
        context.warn(
            WarningKind.UNSUPPORTED_FUNCTION,
            "MySQL has no PERCENTILE_CONT / PERCENTILE_DISC; the call was replaced by NULL.",
            Severity.ERROR,
            "Compute the percentile with ROW_NUMBER() and COUNT() in a subquery.",
        )
        return apply_edits(sql, edits)

    def _ignore_nulls(self, sql: str, context: ConversionContext) -> str:
        sql, count = sub_code(_IGNORE_NULLS, '', sql)
        if count:
            self.record(context, "IGNORE NULLS removed", count)
            context.warn(
                WarningKind.PARTIAL_SUPPORT,
                "MySQL window functions have no IGNORE NULLS; the option was removed.",
                Severity.WARNING,
                "Filter NULLs in a subquery or use a correlated subquery.",
            )
        return sql
