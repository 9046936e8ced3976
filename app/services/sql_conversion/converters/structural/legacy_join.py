"""
Oracle ``(+)`` outer joins -> ANSI JOIN.

    SELECT * FROM a, b WHERE a.id = b.id(+) AND a.x = 1
    SELECT * FROM a LEFT JOIN b ON a.id = b.id WHERE a.x = 1

Each query block (the statement and every subquery) is rewritten on its own.
Predicates marked with ``(+)`` move into the ON clause of the table they
mark; the other predicates stay in WHERE. A block whose ``(+)`` predicates do
not have a simple ``alias.col = alias.col(+)`` or ``alias.col(+) = literal``
shape is left exactly as written, with a warning.
"""
import re
from typing import Dict, List, NamedTuple, Optional, Tuple

from ..base_converter import BaseConverter
from ...models import ConversionContext, Dialect, Severity, WarningKind
from ...utils.parser_utils import (
    NOT_FOUND, apply_edits, find_matching_bracket, mask_literals, search_top_level,
    split_conjuncts, split_function_arguments,
)
from ...utils.regex_utils import SourceMatch

_OUTER_MARK = re.compile(r'\(\s*\+\s*\)')
_OUTER_MARK_WITH_SPACE = re.compile(r'\s*\(\s*\+\s*\)')
_FROM = re.compile(r'\bFROM\b', re.IGNORECASE)
_WHERE = re.compile(r'\bWHERE\b', re.IGNORECASE)
_WHERE_END = re.compile(
    r'\b(?:GROUP\s+BY|ORDER\s+BY|HAVING|UNION|INTERSECT|MINUS|EXCEPT|CONNECT\s+BY|START\s+WITH|'
    r'FETCH|OFFSET|LIMIT|FOR\s+UPDATE|WINDOW|MODEL)\b',
    re.IGNORECASE,
)
_JOIN = re.compile(r'\bJOIN\b', re.IGNORECASE)
_SUBQUERY = re.compile(r'\s*(?:SELECT|WITH)\b', re.IGNORECASE)
_FROM_ITEM = re.compile(r'^\s*(.+?)(?:\s+(?:AS\s+)?([A-Za-z_][\w$#]*))?\s*$', re.IGNORECASE | re.DOTALL)

_OPERAND = r"((?:[\w$#]+\.)?[\w$#]+|'[^']*'|:\w+|\?)\s*(\(\s*\+\s*\))?"
_PREDICATE = re.compile(rf'^\s*{_OPERAND}\s*(=|<>|!=|<=|>=|<|>)\s*{_OPERAND}\s*$')


class _Table(NamedTuple):
    text: str
    key: str


class _Operand(NamedTuple):
    text: str
    alias: Optional[str]
    marked: bool

    @property
    def is_literal(self) -> bool:
        return self.alias is None


class _OuterJoin:
    def __init__(self):
        self.preserved: List[str] = []
        self.conditions: List[str] = []


class _UnsupportedJoin(Exception):
    """The block cannot be rewritten safely."""


def _parse_operand(text: str, marked: bool) -> _Operand:
    if text[0] in "':?" or text[0].isdigit():
        return _Operand(text, None, marked)
    if '.' not in text:
        raise _UnsupportedJoin(f"column {text} has no table alias")
    return _Operand(text, text.rsplit('.', 1)[0].lower(), marked)


def _strip_marks(condition: str) -> str:
    masked = mask_literals(condition)
    edits = [(m.start(), m.end(), '') for m in _OUTER_MARK_WITH_SPACE.finditer(masked)]
    return apply_edits(condition, edits).strip()


def _unwrap(condition: str) -> str:
    """Drop brackets around a whole conjunct: ``(a.x = b.x(+))``."""
    masked = mask_literals(condition)
    stripped = masked.strip()
    offset = len(masked) - len(masked.lstrip())
    if stripped.startswith('(') and find_matching_bracket(masked, offset) == offset + len(stripped):
        return _unwrap(condition[offset + 1:offset + len(stripped) - 1])
    return condition.strip()


def _parse_tables(from_text: str) -> List[_Table]:
    tables = []
    for item in split_function_arguments(from_text):
        masked = mask_literals(item)
        match = _FROM_ITEM.match(masked)
        if not item or not match:
            raise _UnsupportedJoin(f"cannot read FROM item {item!r}")
        name = item[match.start(1):match.end(1)].strip()
        alias = match.group(2) and item[match.start(2):match.end(2)]
        if alias is None:
            if name.startswith('('):
                raise _UnsupportedJoin("subquery in FROM without an alias")
            alias = name.rsplit('.', 1)[-1]
        tables.append(_Table(item.strip(), alias.strip('"').lower()))
    return tables


class LegacyJoinConverter(BaseConverter):
    name = 'legacy_join'

    def applies(self) -> bool:
        return self.source is Dialect.ORACLE and self.target is not Dialect.ORACLE

    def convert(self, sql: str, context: ConversionContext) -> str:
        if not self.applies() or not _OUTER_MARK.search(mask_literals(sql)):
            return sql
        sql, joins = self._rewrite_block(sql, context)
        if joins:
            self.record(context, "(+) outer join -> ANSI JOIN", joins)
        return sql

    # ------------------------------------------------------------------
    # Query blocks
    # ------------------------------------------------------------------

    def _rewrite_nested(self, text: str, context: ConversionContext) -> Tuple[str, int]:
        """Rewrite the subqueries found in the bracketed groups of *text*."""
        masked = mask_literals(text)
        edits = []
        joins = 0
        i = 0
        while i < len(masked):
            if masked[i] != '(':
                i += 1
                continue
            end = find_matching_bracket(masked, i)
            if end == NOT_FOUND:
                break
            inner = text[i + 1:end - 1]
            if _OUTER_MARK.search(masked[i + 1:end - 1]) and not _OUTER_MARK.fullmatch(masked[i:end]):
                if _SUBQUERY.match(masked[i + 1:end - 1]):
                    new_inner, count = self._rewrite_block(inner, context)
                else:
                    new_inner, count = self._rewrite_nested(inner, context)
                if new_inner != inner:
                    edits.append((i + 1, end - 1, new_inner))
                joins += count
            i = end
        return apply_edits(text, edits), joins

    def _rewrite_block(self, text: str, context: ConversionContext) -> Tuple[str, int]:
        text, joins = self._rewrite_nested(text, context)
        own = _blank_subqueries(mask_literals(text))
        if not _OUTER_MARK.search(own):
            return text, joins
        try:
            new_text, count, cross_joined = self._rewrite_level(text, own)
        except _UnsupportedJoin as e:
            self.logger.debug(f"(+) join left unchanged: {e}")
            context.warn(
                WarningKind.MANUAL_REVIEW_NEEDED,
                f"Oracle (+) outer join was left unchanged: {e}.",
                Severity.WARNING,
                "Rewrite the FROM clause with LEFT JOIN ... ON by hand.",
            )
            return text, joins

        context.warn(
            WarningKind.SYNTAX_DIFFERENCE,
            "Oracle (+) join syntax was converted to ANSI JOIN.",
            Severity.INFO,
            "Review the generated JOIN order and ON conditions.",
        )
        if cross_joined:
            context.warn(
                WarningKind.MANUAL_REVIEW_NEEDED,
                f"Table(s) {', '.join(cross_joined)} take no part in an outer join and were kept as cross joins.",
                Severity.WARNING,
                "Check that the remaining WHERE predicates still join these tables.",
            )
        return new_text, joins + count

    def _rewrite_level(self, text: str, own: str) -> Tuple[str, int, List[str]]:
        from_kw = search_top_level(_FROM, own, 0)
        if from_kw is None:
            raise _UnsupportedJoin("no FROM clause")
        where_kw = search_top_level(_WHERE, own, from_kw.end())
        if where_kw is None:
            raise _UnsupportedJoin("no WHERE clause")
        if _OUTER_MARK.search(own, 0, where_kw.start()):
            raise _UnsupportedJoin("(+) outside the WHERE clause")
        if _JOIN.search(own, from_kw.end(), where_kw.start()):
            raise _UnsupportedJoin("(+) mixed with ANSI JOIN")

        end_kw = search_top_level(_WHERE_END, own, where_kw.end())
        where_end = end_kw.start() if end_kw else len(own)
        if _OUTER_MARK.search(own, where_end):
            raise _UnsupportedJoin("(+) outside the WHERE clause")
        if end_kw is None:
            while where_end > where_kw.end() and (own[where_end - 1].isspace() or own[where_end - 1] == ';'):
                where_end -= 1

        tables = _parse_tables(text[from_kw.end():where_kw.start()])
        by_key = {table.key: table for table in tables}
        if len(by_key) != len(tables):
            raise _UnsupportedJoin("duplicate table alias in FROM")

        outer_joins, remaining = self._classify(text[where_kw.end():where_end], by_key)
        from_clause, cross_joined = self._build_from(tables, outer_joins)

        where_body = text[where_kw.end():where_end]
        trailing_ws = where_body[len(where_body.rstrip()):]
        before_where = text[from_kw.end():where_kw.start()]
        where_ws = before_where[len(before_where.rstrip()):] or ' '

        pieces = [text[:from_kw.end()], ' ', from_clause]
        if remaining:
            pieces += [where_ws, text[where_kw.start():where_kw.end()], ' ', ' AND '.join(remaining)]
        pieces += [trailing_ws, text[where_end:]]
        return ''.join(pieces), len(outer_joins), cross_joined

    # ------------------------------------------------------------------
    # Predicates and FROM rebuilding
    # ------------------------------------------------------------------

    @staticmethod
    def _classify(predicate: str, by_key: Dict[str, _Table]) -> Tuple[Dict[str, _OuterJoin], List[str]]:
        outer_joins: Dict[str, _OuterJoin] = {}
        filters: List[Tuple[str, str]] = []
        remaining = []

        for conjunct in split_conjuncts(predicate):
            masked = mask_literals(conjunct)
            if not _OUTER_MARK.search(masked):
                remaining.append(conjunct)
                continue
            condition = _unwrap(conjunct)
            raw = _PREDICATE.match(mask_literals(condition))
            if not raw:
                raise _UnsupportedJoin(f"unsupported predicate {conjunct!r}")
            match = SourceMatch(raw, condition)
            left = _parse_operand(match.group(1), bool(match.group(2)))
            right = _parse_operand(match.group(4), bool(match.group(5)))
            if left.marked == right.marked:
                raise _UnsupportedJoin(f"(+) on both or neither side of {conjunct!r}")
            optional, other = (left, right) if left.marked else (right, left)
            if optional.is_literal:
                raise _UnsupportedJoin(f"(+) on a literal in {conjunct!r}")
            for operand in (optional, other):
                if operand.alias is not None and operand.alias not in by_key:
                    raise _UnsupportedJoin(f"unknown table alias {operand.alias}")

            if other.is_literal:
                filters.append((optional.alias, _strip_marks(condition)))
                continue
            if other.alias == optional.alias:
                raise _UnsupportedJoin(f"self comparison {conjunct!r}")
            join = outer_joins.setdefault(optional.alias, _OuterJoin())
            if other.alias not in join.preserved:
                join.preserved.append(other.alias)
            join.conditions.append(_strip_marks(condition))

        for alias, condition in filters:
            if alias not in outer_joins:
                raise _UnsupportedJoin(f"(+) filter on {alias} without a join condition")
            outer_joins[alias].conditions.append(condition)
        for optional, join in outer_joins.items():
            for preserved in join.preserved:
                if optional in outer_joins.get(preserved, _OuterJoin()).preserved:
                    raise _UnsupportedJoin(f"{optional} and {preserved} are outer joined to each other")
        return outer_joins, remaining

    @staticmethod
    def _build_from(tables: List[_Table], outer_joins: Dict[str, _OuterJoin]) -> Tuple[str, List[str]]:
        by_key = {table.key: table for table in tables}
        referenced = set(outer_joins)
        for join in outer_joins.values():
            referenced.update(join.preserved)

        placed = [tables[0].key]
        parts = [tables[0].text]
        cross_joined = []
        pending = list(outer_joins)
        while pending:
            progressed = False
            for optional in list(pending):
                join = outer_joins[optional]
                on = ' AND '.join(join.conditions)
                if optional not in placed and all(p in placed for p in join.preserved):
                    parts.append(f"LEFT JOIN {by_key[optional].text} ON {on}")
                    placed.append(optional)
                elif optional in placed and len(join.preserved) == 1 and join.preserved[0] not in placed:
                    parts.append(f"RIGHT JOIN {by_key[join.preserved[0]].text} ON {on}")
                    placed.append(join.preserved[0])
                else:
                    continue
                pending.remove(optional)
                progressed = True
            if progressed:
                continue
            candidates = [t.key for t in tables if t.key in referenced and t.key not in placed]
            if not candidates:
                raise _UnsupportedJoin("outer join order cannot be expressed with ANSI JOIN")
            parts.append(f"CROSS JOIN {by_key[candidates[0]].text}")
            placed.append(candidates[0])
            cross_joined.append(candidates[0])

        from_clause = ' '.join(parts)
        leftovers = [t for t in tables if t.key not in placed]
        if leftovers:
            from_clause += ''.join(f", {t.text}" for t in leftovers)
            cross_joined.extend(t.key for t in leftovers)
        return from_clause, cross_joined


def _blank_subqueries(masked: str) -> str:
    """Blank the inside of bracketed subqueries so only this block's code is visible."""
    chars = list(masked)
    i = 0
    while i < len(masked):
        if masked[i] != '(':
            i += 1
            continue
        end = find_matching_bracket(masked, i)
        if end == NOT_FOUND:
            break
        if _SUBQUERY.match(masked, i + 1):
            for j in range(i + 1, end - 1):
                if chars[j] != '\n':
                    chars[j] = ' '
            i = end
        else:
            i += 1
    return ''.join(chars)
