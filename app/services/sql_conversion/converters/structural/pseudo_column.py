"""
Oracle pseudo-columns ROWID and ROWNUM.

ROWNUM predicates that only cap the row count become a LIMIT on the query
level they belong to:

    SELECT * FROM t WHERE ROWNUM <= 10              ->  SELECT * FROM t LIMIT 10
    SELECT * FROM t WHERE a = 1 AND ROWNUM < 6      ->  SELECT * FROM t WHERE a = 1 LIMIT 5
    SELECT * FROM (SELECT ... WHERE ROWNUM = 1) x   ->  SELECT * FROM (SELECT ... LIMIT 1) x

ROWNUM anywhere else becomes ROW_NUMBER() OVER (), and comparisons that are
not a simple cap are left for manual review.
Caps LIMIT cannot express, such as one branch of a UNION or a WHERE with a
top-level OR, are kept and flagged for review. LIMIT goes before FOR UPDATE.
"""
import re
from typing import Dict, List, Optional, Tuple

from ..base_converter import BaseConverter
from ...models import ConversionContext, Dialect, Severity, WarningKind
from ...utils.parser_utils import (
    NOT_FOUND, apply_edits, enclosing_open_bracket, find_matching_bracket, mask_literals, paren_depth_at,
    search_top_level,
)
from ...utils.regex_utils import finditer_code, sub_code

_ROWID = re.compile(r'(?:\b[\w$#]+\.)?\bROWID\b(?!\s*\()', re.IGNORECASE)
_ROWNUM = re.compile(r'\bROWNUM\b', re.IGNORECASE)
_ROWNUM_CAP = re.compile(r'\bROWNUM\s*(<=|<|=)\s*(\d+)\b', re.IGNORECASE)
_ROWNUM_COMPARISON = re.compile(
    r'\bROWNUM\s*(?:[<>=!]|\bBETWEEN\b|\bIN\b)|(?:[<>=]|\bIN\s*\()\s*ROWNUM\b', re.IGNORECASE,
)
_BEFORE_WHERE = re.compile(r'\bWHERE\s*$', re.IGNORECASE)
_BEFORE_AND = re.compile(r'\s*\bAND\s*$', re.IGNORECASE)
_AFTER_AND = re.compile(r'\s*\bAND\b\s*', re.IGNORECASE)
_CLAUSE_END = re.compile(r'\s*(?:$|\)|;|\b(?:ORDER|GROUP|HAVING|UNION|INTERSECT|MINUS|EXCEPT|FOR|CONNECT|START)\b)',
                         re.IGNORECASE)
_ORDER_BY = re.compile(r'\bORDER\s+BY\b', re.IGNORECASE)
_LIMIT = re.compile(r'\bLIMIT\b', re.IGNORECASE)
_WHERE = re.compile(r'\bWHERE\b', re.IGNORECASE)
_WHERE_END = re.compile(r'\b(?:ORDER|GROUP|HAVING|UNION|INTERSECT|MINUS|EXCEPT|FOR|CONNECT|START|FETCH)\b',
                        re.IGNORECASE)
_OR = re.compile(r'\bOR\b', re.IGNORECASE)
_SET_OPERATOR = re.compile(r'\b(?:UNION|INTERSECT|MINUS|EXCEPT)\b', re.IGNORECASE)
_ROW_LOCK = re.compile(r'\bFOR\s+(?:UPDATE|SHARE)\b', re.IGNORECASE)
_QUANTIFIED_SUBQUERY = re.compile(r'\b(?:IN|ANY|ALL|SOME)\s*$', re.IGNORECASE)

ROWID_MARKER_MYSQL = 'NULL /* ROWID - not supported in MySQL */'


class PseudoColumnConverter(BaseConverter):
    name = 'pseudo_column'

    def applies(self) -> bool:
        return self.source is Dialect.ORACLE and self.target is not Dialect.ORACLE

    def convert(self, sql: str, context: ConversionContext) -> str:
        if not self.applies():
            return sql
        sql = self._convert_rowid(sql, context)
        sql = self._convert_rownum_caps(sql, context)
        sql = self._convert_remaining_rownum(sql, context)
        return sql

    # ------------------------------------------------------------------
    # ROWID
    # ------------------------------------------------------------------

    def _convert_rowid(self, sql: str, context: ConversionContext) -> str:
        if self.target is Dialect.POSTGRESQL:
            def _ctid(match):
                text = match.group(0)
                qualifier = text[:text.rfind('.') + 1] if '.' in text else ''
                return f"{qualifier}ctid"
            sql, count = sub_code(_ROWID, _ctid, sql)
            if count:
                self.record(context, "ROWID -> ctid", count)
                context.warn(
                    WarningKind.PARTIAL_SUPPORT,
                    "Oracle ROWID was converted to PostgreSQL ctid.",
                    Severity.WARNING,
                    "ctid changes after VACUUM FULL or an UPDATE; prefer the primary key.",
                )
            return sql

        sql, count = sub_code(_ROWID, ROWID_MARKER_MYSQL, sql)
        if count:
            self.record(context, "ROWID marked unsupported", count)
            context.warn(
                WarningKind.UNSUPPORTED_FUNCTION,
                "MySQL has no ROWID pseudo-column.",
                Severity.ERROR,
                "Use the primary key or an AUTO_INCREMENT column instead.",
            )
        return sql

    # ------------------------------------------------------------------
    # ROWNUM <= n  ->  LIMIT n
    # ------------------------------------------------------------------

    def _convert_rownum_caps(self, sql: str, context: ConversionContext) -> str:
        masked = mask_literals(sql)
        edits: List[Tuple[int, int, str]] = []
        limits_by_level: Dict[int, int] = {}
        converted = []

        for match in finditer_code(_ROWNUM_CAP, sql, masked):
            operator, value = match.group(1), int(match.group(2))
            limit = self._limit_for(operator, value)
            if limit is None:
                # ROWNUM = n with n > 1 is reported with the other comparisons
                continue

            removal = self._removal_span(masked, match.start(), match.end())
            if removal is None:
                continue

            level = enclosing_open_bracket(masked, match.start())
            bounds = _block_bounds(masked, level)
            if bounds is None:
                continue
            block_start, block_end = bounds
            block = masked[block_start:block_end]

            reason = self._unsafe_cap(masked, block, match.start() - block_start, level)
            if reason:
                context.warn(
                    WarningKind.MANUAL_REVIEW_NEEDED,
                    f"ROWNUM cap left unchanged: {reason}.",
                    Severity.WARNING,
                    "Rewrite it with ROW_NUMBER() OVER (...) in a derived table, or add LIMIT where it applies.",
                )
                continue
            if level in limits_by_level:
                context.warn(
                    WarningKind.MANUAL_REVIEW_NEEDED,
                    "More than one ROWNUM cap in the same query block; only the first was converted.",
                    Severity.WARNING,
                )
                continue
            if _LIMIT.search(block):
                continue
            insert_at = block_start + _limit_offset(block)

            limits_by_level[level] = limit
            edits.append((removal[0], removal[1], ''))
            edits.append((insert_at, insert_at, f" LIMIT {limit}"))
            converted.append(limit)

            tail = masked[match.end():insert_at]
            if _ORDER_BY.search(tail) and not _has_nested_only(tail):
                context.warn(
                    WarningKind.PARTIAL_SUPPORT,
                    "Oracle applies ROWNUM before ORDER BY; LIMIT applies after it.",
                    Severity.WARNING,
                    "Move the ORDER BY into a subquery if the original row selection must be kept.",
                )

        if not edits:
            return sql
        for limit in converted:
            self.record(context, f"ROWNUM cap -> LIMIT {limit}")
        return apply_edits(sql, edits)

    @staticmethod
    def _limit_for(operator: str, value: int) -> Optional[int]:
        if operator == '<=':
            return value
        if operator == '<':
            return max(value - 1, 0)
        return 1 if value == 1 else None

    @staticmethod
    def _removal_span(masked: str, start: int, end: int) -> Optional[Tuple[int, int]]:
        """Span to delete for a ROWNUM predicate, or None when it is not a plain conjunct."""
        before = masked[:start]
        followed_by_and = _AFTER_AND.match(masked, end)
        at_clause_end = _CLAUSE_END.match(masked, end)

        and_before = _BEFORE_AND.search(before)
        if and_before and (followed_by_and or at_clause_end):
            # ... AND ROWNUM <= n
            return and_before.start(), end

        where_before = _BEFORE_WHERE.search(before)
        if where_before:
            if followed_by_and:
                # WHERE ROWNUM <= n AND rest  ->  WHERE rest
                return start, followed_by_and.end()
            if at_clause_end:
                # WHERE ROWNUM <= n  ->  (nothing)
                ws = where_before.start()
                while ws > 0 and masked[ws - 1].isspace():
                    ws -= 1
                return ws, end
        return None

    def _unsafe_cap(self, masked: str, block: str, offset: int, level: int) -> Optional[str]:
        """Why a cap at *offset* of *block* cannot become LIMIT, or None when it can."""
        if search_top_level(_SET_OPERATOR, block):
            # LIMIT would cap the whole set operation, not this branch
            return "the query block is a set operation"
        if _where_has_or(block, offset):
            return "the WHERE clause has a top-level OR"
        if (self.target is Dialect.MYSQL and level != NOT_FOUND
                and _QUANTIFIED_SUBQUERY.search(masked, 0, level)):
            return "MySQL does not accept LIMIT in an IN/ANY/ALL/SOME subquery"
        return None

    # ------------------------------------------------------------------
    # Other ROWNUM references
    # ------------------------------------------------------------------

    def _convert_remaining_rownum(self, sql: str, context: ConversionContext) -> str:
        masked = mask_literals(sql)
        if not _ROWNUM.search(masked):
            return sql

        comparisons = [m.span() for m in _ROWNUM_COMPARISON.finditer(masked)]
        if comparisons:
            context.warn(
                WarningKind.MANUAL_REVIEW_NEEDED,
                "ROWNUM comparison that is not a simple row cap was left unchanged.",
                Severity.WARNING,
                "Use ROW_NUMBER() OVER (ORDER BY ...) in a subquery and filter on it.",
            )

        edits = []
        for match in _ROWNUM.finditer(masked):
            if any(s <= match.start() < e for s, e in comparisons):
                continue
            edits.append((match.start(), match.end(), 'ROW_NUMBER() OVER ()'))
        if not edits:
            return sql

        self.record(context, "ROWNUM -> ROW_NUMBER() OVER ()", len(edits))
        context.warn(
            WarningKind.SYNTAX_DIFFERENCE,
            "ROWNUM was converted to ROW_NUMBER() OVER (); the numbering order is unspecified.",
            Severity.WARNING,
            "Add ORDER BY inside OVER () to get a deterministic numbering.",
        )
        return apply_edits(sql, edits)


def _block_bounds(masked: str, level: int) -> Optional[Tuple[int, int]]:
    """Inner span of the query block opened at *level*, the whole text at top level."""
    if level == NOT_FOUND:
        return 0, len(masked)
    close = find_matching_bracket(masked, level)
    if close == NOT_FOUND:
        return None
    return level + 1, close - 1


def _limit_offset(block: str) -> int:
    """Where ``LIMIT n`` goes in *block*: before a row-locking clause, else at its end."""
    lock = search_top_level(_ROW_LOCK, block)
    end = lock.start() if lock else len(block)
    while end > 0 and (block[end - 1].isspace() or block[end - 1] == ';'):
        end -= 1
    return end


def _where_has_or(block: str, offset: int) -> bool:
    """True when the WHERE clause around *offset* has an OR at its own bracket level."""
    wheres = [m for m in _WHERE.finditer(block, 0, offset) if paren_depth_at(block, m.start()) == 0]
    if not wheres:
        return False
    body_end = search_top_level(_WHERE_END, block, offset)
    body = block[:body_end.start()] if body_end else block
    return search_top_level(_OR, body, wheres[-1].end()) is not None


def _has_nested_only(tail: str) -> bool:
    """True when every ORDER BY in *tail* sits inside a bracket of its own."""
    depth = 0
    for i, ch in enumerate(tail):
        if ch == '(':
            depth += 1
        elif ch == ')':
            depth -= 1
        elif depth <= 0 and _ORDER_BY.match(tail, i):
            return False
    return True
