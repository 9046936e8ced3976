"""
Common table expressions.

Oracle runs a CTE that refers to itself as recursive without any keyword;
MySQL and PostgreSQL need ``WITH RECURSIVE``. Oracle rejects the keyword.
Oracle ``SEARCH ... SET`` and ``CYCLE ... SET`` clauses exist in PostgreSQL 14
(CYCLE also needs a USING column there) and not at all in MySQL.
"""
import re
from typing import List, NamedTuple, Optional

from ..base_converter import BaseConverter
from ...models import ConversionContext, Dialect, Severity, WarningKind
from ...utils.parser_utils import NOT_FOUND, apply_edits, find_matching_bracket, mask_literals, search_top_level
from ...utils.regex_utils import word_pattern

_WITH = re.compile(r'\bWITH\s+(RECURSIVE\s+)?(?=(?:[\w$#]+|"[^"]*")\s*(?:\([^()]*\)\s*)?AS\s*\()', re.IGNORECASE)
_CTE_HEAD = re.compile(r'\s*([\w$#]+|"[^"]*")\s*(\([^()]*\))?\s*AS\s*\(', re.IGNORECASE)
_SEARCH = re.compile(r'\s*(SEARCH\s+(?:DEPTH|BREADTH)\s+FIRST\s+BY\s+[^()]+?\s+SET\s+[\w$#]+)', re.IGNORECASE)
_CYCLE = re.compile(
    r"\s*(CYCLE\s+[^()]+?\s+SET\s+[\w$#]+(?:\s+TO\s+'[^']*'\s+DEFAULT\s+'[^']*')?)(\s+USING\s+[\w$#]+)?",
    re.IGNORECASE,
)
_COMMA = re.compile(r'\s*,')
_UNION_ALL = re.compile(r'\bUNION\s+ALL\b', re.IGNORECASE)

CYCLE_PATH_COLUMN = 'cycle_path'


class _Cte(NamedTuple):
    name: str
    columns: Optional[str]
    recursive: bool


class _WithClause(NamedTuple):
    keyword_end: int            # index after WITH
    recursive_span: Optional[tuple]
    ctes: List[_Cte]
    searches: List[tuple]       # (start, end) of SEARCH clauses
    cycles: List[tuple]         # (start, end, has_using)


def _parse_with(sql: str, masked: str, match: re.Match) -> _WithClause:
    recursive_span = match.span(1) if match.group(1) else None
    ctes, searches, cycles = [], [], []
    pos = match.end()
    while True:
        head = _CTE_HEAD.match(masked, pos)
        if not head:
            break
        body_end = find_matching_bracket(masked, head.end() - 1)
        if body_end == NOT_FOUND:
            break
        name = sql[head.start(1):head.end(1)]
        body = masked[head.end():body_end - 1]
        recursive = bool(search_top_level(_UNION_ALL, body)) and bool(word_pattern(name.strip('"')).search(body))
        columns = sql[head.start(2):head.end(2)] if head.group(2) else None
        ctes.append(_Cte(name, columns, recursive))
        pos = body_end

        search = _SEARCH.match(masked, pos)
        if search:
            searches.append(search.span(1))
            pos = search.end()
        cycle = _CYCLE.match(masked, pos)
        if cycle:
            cycles.append((cycle.start(1), cycle.end(1), bool(cycle.group(2))))
            pos = cycle.end()
        comma = _COMMA.match(masked, pos)
        if not comma:
            break
        pos = comma.end()
    return _WithClause(match.start() + 4, recursive_span, ctes, searches, cycles)


class CteConverter(BaseConverter):
    name = 'cte'

    def convert(self, sql: str, context: ConversionContext) -> str:
        if not self.applies():
            return sql
        masked = mask_literals(sql)
        clauses = [_parse_with(sql, masked, match) for match in _WITH.finditer(masked)]
        clauses = [clause for clause in clauses if clause.ctes]
        if not clauses:
            return sql

        edits = []
        for clause in clauses:
            edits.extend(self._recursive_keyword(clause, context))
            if self.source is Dialect.ORACLE and self.target is not Dialect.ORACLE:
                edits.extend(self._search_and_cycle(sql, clause, context))
        if not edits:
            return sql
        return apply_edits(sql, edits)

    def _recursive_keyword(self, clause: _WithClause, context: ConversionContext) -> List[tuple]:
        recursive = [cte for cte in clause.ctes if cte.recursive]
        if self.target is Dialect.ORACLE:
            if clause.recursive_span is None:
                return []
            self.record(context, "WITH RECURSIVE -> WITH")
            context.warn(
                WarningKind.SYNTAX_DIFFERENCE,
                "The RECURSIVE keyword was removed; Oracle detects recursive CTEs itself (11g Release 2 or later).",
                Severity.INFO,
            )
            for cte in recursive:
                if cte.columns is None:
                    context.warn(
                        WarningKind.MANUAL_REVIEW_NEEDED,
                        f"Oracle requires a column list on the recursive CTE {cte.name}.",
                        Severity.WARNING,
                        f"Write {cte.name} (col1, col2, ...) AS (...).",
                    )
            start, end = clause.recursive_span
            return [(start, end, '')]

        if self.source is Dialect.ORACLE and recursive and clause.recursive_span is None:
            self.record(context, "recursive WITH -> WITH RECURSIVE")
            context.warn(
                WarningKind.SYNTAX_DIFFERENCE,
                f"WITH RECURSIVE was added for the self-referencing CTE {recursive[0].name}.",
                Severity.INFO,
            )
            return [(clause.keyword_end, clause.keyword_end, ' RECURSIVE')]
        return []

    def _search_and_cycle(self, sql: str, clause: _WithClause, context: ConversionContext) -> List[tuple]:
        edits = []
        if self.target is Dialect.MYSQL:
            spans = clause.searches + [(start, end) for start, end, _ in clause.cycles]
            for start, end in spans:
                edits.append((start, end, f"/* {sql[start:end]} - not supported in MySQL */"))
            if spans:
                self.record(context, "SEARCH / CYCLE clause commented out", len(spans))
                context.warn(
                    WarningKind.UNSUPPORTED_FUNCTION,
                    "MySQL recursive CTEs have no SEARCH or CYCLE clause; it was commented out.",
                    Severity.WARNING,
                    "Order the result with ORDER BY and stop cycles with a path column and a WHERE filter.",
                )
            return edits

        if clause.searches or clause.cycles:
            context.warn(
                WarningKind.SYNTAX_DIFFERENCE,
                "SEARCH / CYCLE clauses need PostgreSQL 14 or later.",
                Severity.INFO,
            )
        for start, end, has_using in clause.cycles:
            if not has_using:
                edits.append((end, end, f" USING {CYCLE_PATH_COLUMN}"))
        if any(not has_using for _, _, has_using in clause.cycles):
            self.record(context, f"CYCLE ... USING {CYCLE_PATH_COLUMN} added")
        return edits
