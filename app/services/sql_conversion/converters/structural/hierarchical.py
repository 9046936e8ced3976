"""
Oracle hierarchical queries -> WITH RECURSIVE.

    SELECT employee_id, name, LEVEL
    FROM employees
    START WITH manager_id IS NULL
    CONNECT BY PRIOR employee_id = manager_id

becomes

    WITH RECURSIVE hierarchy_cte AS (
        SELECT employees.*, 1 AS level
        FROM employees
        WHERE manager_id IS NULL
        UNION ALL
        SELECT employees.*, h.level + 1
        FROM employees
        JOIN hierarchy_cte h ON employees.manager_id = h.employee_id
    )
    SELECT employee_id, name, level
    FROM hierarchy_cte

The CTE carries every column of the table, so the outer SELECT, WHERE and
ORDER BY can be kept as written; only the hierarchical operators in them are
replaced by CTE columns. A WHERE clause runs after the hierarchy is built in
Oracle, which is where it lands here too.

Anything outside that shape (joins, GROUP BY, hierarchical subqueries,
expressions over PRIOR) keeps its text and gets a guide comment plus a
manual-review warning. A join condition is never guessed.
"""
import re
from typing import Dict, List, NamedTuple, Optional, Tuple

from ..base_converter import BaseConverter
from ...models import ConversionContext, Dialect, Severity, WarningKind
from ...utils.parser_utils import (
    NOT_FOUND, apply_edits, find_matching_bracket, mask_literals, paren_depth_at, split_conjuncts,
    split_function_arguments,
)
from ...utils.regex_utils import finditer_code, function_call_pattern

CTE_NAME = 'hierarchy_cte'
GUIDE_MARKER = 'MANUAL CONVERSION REQUIRED: hierarchical query'

_GUIDE = (
    f"/* {GUIDE_MARKER}\n"
    "   WITH RECURSIVE cte AS (\n"
    "       SELECT t.*, 1 AS level FROM <table> t WHERE <START WITH condition>\n"
    "       UNION ALL\n"
    "       SELECT t.*, c.level + 1 FROM <table> t JOIN cte c ON t.<child column> = c.<PRIOR column>\n"
    "   )\n"
    "   SELECT ... FROM cte */\n"
)

_CONNECT_BY = re.compile(r'\bCONNECT\s+BY\b', re.IGNORECASE)
_CLAUSE = re.compile(
    r'\b(SELECT|FROM|WHERE|START\s+WITH|CONNECT\s+BY|ORDER\s+SIBLINGS\s+BY|ORDER\s+BY|GROUP\s+BY|HAVING|'
    r'UNION|INTERSECT|MINUS|EXCEPT|MODEL|PIVOT|UNPIVOT|FOR\s+UPDATE)\b',
    re.IGNORECASE,
)
_TABLE_REF = re.compile(r'^\s*((?:[\w$#]+\.)?[\w$#]+)(?:\s+(?:AS\s+)?([\w$#]+))?\s*$', re.IGNORECASE)
_NOCYCLE = re.compile(r'^\s*NOCYCLE\b', re.IGNORECASE)
_PRIOR_LEFT = re.compile(r'^\s*PRIOR\s+((?:[\w$#]+\.)?[\w$#]+)\s*=\s*((?:[\w$#]+\.)?[\w$#]+)\s*$', re.IGNORECASE)
_PRIOR_RIGHT = re.compile(r'^\s*((?:[\w$#]+\.)?[\w$#]+)\s*=\s*PRIOR\s+((?:[\w$#]+\.)?[\w$#]+)\s*$', re.IGNORECASE)
_PRIOR = re.compile(r'\bPRIOR\b', re.IGNORECASE)
_LEVEL = re.compile(r'\bLEVEL\b', re.IGNORECASE)
_WORD = re.compile(r'[A-Za-z_][\w$#]*(?:\.[\w$#]+)?')
_CONNECT_BY_ROOT = re.compile(r'\bCONNECT_BY_ROOT\s+((?:[\w$#]+\.)?([\w$#]+))', re.IGNORECASE)
_CONNECT_BY_ISLEAF = re.compile(r'\bCONNECT_BY_ISLEAF\b', re.IGNORECASE)
_SIMPLE_COLUMN = re.compile(r'^(?:[\w$#]+\.)?([\w$#]+)$')
_SEPARATOR = re.compile(r"^'[^']*'$")

# Words allowed in a non-PRIOR CONNECT BY condition besides LEVEL
_CONDITION_WORDS = frozenset({'AND', 'OR', 'NOT', 'BETWEEN', 'IN', 'IS', 'NULL', 'LEVEL'})


class _Clauses(NamedTuple):
    select_list: str
    table: str
    alias: Optional[str]
    where: Optional[str]
    start_with: Optional[str]
    connect_by: str
    order_by: Optional[str]
    siblings: bool


class _HierarchyNotSupported(Exception):
    """Raised inside the builder when the query falls outside the supported shape."""


def _column_name(ref: str) -> str:
    return ref.rsplit('.', 1)[-1]


class HierarchicalQueryConverter(BaseConverter):
    name = 'hierarchical'

    def applies(self) -> bool:
        return self.source is Dialect.ORACLE and self.target in (Dialect.MYSQL, Dialect.POSTGRESQL)

    def convert(self, sql: str, context: ConversionContext) -> str:
        if not self.applies():
            return sql
        masked = mask_literals(sql)
        if not _CONNECT_BY.search(masked):
            return sql

        body = sql.rstrip()
        terminator = ''
        if body.endswith(';'):
            body, terminator = body[:-1], ';'

        clauses = self._split_clauses(body, mask_literals(body))
        if clauses is not None:
            try:
                converted, features = self._build(clauses, context)
            except _HierarchyNotSupported as e:
                self.logger.debug(f"CONNECT BY not converted: {e}")
            else:
                self.record(context, "CONNECT BY -> WITH RECURSIVE")
                feature_note = f" ({', '.join(features)})" if features else ''
                context.warn(
                    WarningKind.SYNTAX_DIFFERENCE,
                    f"Oracle CONNECT BY was rewritten as a recursive CTE{feature_note}.",
                    Severity.WARNING,
                    "Review the join condition and the column list of the generated CTE.",
                )
                return converted + terminator
        return self._add_guide(sql, context)

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def _split_clauses(self, sql: str, masked: str) -> Optional[_Clauses]:
        found: List[Tuple[str, int, int]] = []
        for match in _CLAUSE.finditer(masked):
            if paren_depth_at(masked, match.start()) != 0:
                continue
            found.append((re.sub(r'\s+', ' ', match.group(1).upper()), match.start(), match.end()))

        keywords = [k for k, _, _ in found]
        if not keywords or keywords[0] != 'SELECT' or masked[:found[0][1]].strip():
            return None
        if len(set(keywords)) != len(keywords):
            return None
        allowed = {'SELECT', 'FROM', 'WHERE', 'START WITH', 'CONNECT BY', 'ORDER BY', 'ORDER SIBLINGS BY'}
        if not set(keywords) <= allowed or 'FROM' not in keywords or 'CONNECT BY' not in keywords:
            return None

        bodies: Dict[str, str] = {}
        for i, (keyword, _, end) in enumerate(found):
            stop = found[i + 1][1] if i + 1 < len(found) else len(sql)
            bodies[keyword] = sql[end:stop].strip()

        # ORDER BY must come last; WHERE must come before START WITH / CONNECT BY
        order = keywords
        if any(k in order for k in ('ORDER BY', 'ORDER SIBLINGS BY')) and not order[-1].startswith('ORDER'):
            return None
        if 'WHERE' in order and order.index('WHERE') > order.index('CONNECT BY'):
            return None

        table_ref = _TABLE_REF.match(mask_literals(bodies['FROM']))
        if not table_ref or table_ref.group(2) and table_ref.group(2).upper() in ('JOIN', 'WHERE'):
            return None
        table = bodies['FROM'][table_ref.start(1):table_ref.end(1)]
        alias = bodies['FROM'][table_ref.start(2):table_ref.end(2)] if table_ref.group(2) else None

        order_key = 'ORDER SIBLINGS BY' if 'ORDER SIBLINGS BY' in bodies else 'ORDER BY'
        return _Clauses(
            select_list=bodies['SELECT'],
            table=table,
            alias=alias,
            where=bodies.get('WHERE'),
            start_with=bodies.get('START WITH'),
            connect_by=bodies['CONNECT BY'],
            order_by=bodies.get(order_key),
            siblings=order_key == 'ORDER SIBLINGS BY',
        )

    def _parse_connect_by(self, connect_by: str, alias: str) -> Tuple[List[Tuple[str, str]], List[str], bool]:
        """Return ([(child column, parent column)], extra recursive conditions, nocycle)."""
        nocycle = bool(_NOCYCLE.match(connect_by))
        if nocycle:
            connect_by = _NOCYCLE.sub('', connect_by, count=1)

        relations = []
        extra = []
        for conjunct in split_conjuncts(connect_by):
            masked = mask_literals(conjunct)
            left = _PRIOR_LEFT.match(masked)
            right = _PRIOR_RIGHT.match(masked)
            if left:
                relations.append((_column_name(conjunct[left.start(2):left.end(2)]),
                                  _column_name(conjunct[left.start(1):left.end(1)])))
            elif right:
                relations.append((_column_name(conjunct[right.start(1):right.end(1)]),
                                  _column_name(conjunct[right.start(2):right.end(2)])))
            elif _PRIOR.search(masked):
                raise _HierarchyNotSupported(f"unsupported PRIOR condition: {conjunct}")
            else:
                extra.append(self._recursive_condition(conjunct, alias))
        if not relations:
            raise _HierarchyNotSupported("no PRIOR relation in CONNECT BY")
        return relations, extra, nocycle

    @staticmethod
    def _recursive_condition(conjunct: str, alias: str) -> str:
        """A non-PRIOR CONNECT BY condition, evaluated on the child row being added."""
        masked = mask_literals(conjunct)
        for word in _WORD.finditer(masked):
            token = word.group(0)
            if token.upper() in _CONDITION_WORDS:
                continue
            if '.' in token and token.split('.')[0].lower() == alias.lower():
                continue
            raise _HierarchyNotSupported(f"unqualified column in CONNECT BY condition: {conjunct}")
        edits = [(m.start(), m.end(), '(h.level + 1)') for m in _LEVEL.finditer(masked)]
        return apply_edits(conjunct, edits)

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def _build(self, clauses: _Clauses, context: ConversionContext) -> Tuple[str, List[str]]:
        short_name = _column_name(clauses.table)
        alias = clauses.alias or short_name
        relations, extra_conditions, nocycle = self._parse_connect_by(clauses.connect_by, alias)

        outer_parts = [clauses.select_list, clauses.where or '', clauses.order_by or '']
        for part in outer_parts:
            if _PRIOR.search(mask_literals(part)):
                raise _HierarchyNotSupported("PRIOR outside CONNECT BY")

        features = []
        base_columns = [f"{alias}.*"]
        recursive_columns = [f"{alias}.*"]

        uses_level = bool(extra_conditions) or any(_LEVEL.search(mask_literals(p)) for p in outer_parts)
        if uses_level:
            base_columns.append('1 AS level')
            recursive_columns.append('h.level + 1')
            features.append('LEVEL')

        outer_edits: List[List[Tuple[int, int, str]]] = [[] for _ in outer_parts]
        path_columns = self._collect_paths(outer_parts, outer_edits, alias)
        for name, column, separator in path_columns:
            base_columns.append(f"{self._path_base(separator, alias, column)} AS {name}")
            recursive_columns.append(self._path_step(name, separator, alias, column))
        if path_columns:
            features.append('SYS_CONNECT_BY_PATH')

        roots = self._collect_roots(outer_parts, outer_edits)
        for name, column in roots:
            base_columns.append(f"{alias}.{column} AS {name}")
            recursive_columns.append(f"h.{name}")
        if roots:
            features.append('CONNECT_BY_ROOT')

        outer_alias = alias if self._needs_outer_alias(clauses, alias) else None
        leaf_expr = self._leaf_expression(clauses.table, relations, outer_alias or CTE_NAME)
        for index, part in enumerate(outer_parts):
            for match in _CONNECT_BY_ISLEAF.finditer(mask_literals(part)):
                outer_edits[index].append((match.start(), match.end(), leaf_expr))
                if 'CONNECT_BY_ISLEAF' not in features:
                    features.append('CONNECT_BY_ISLEAF')
            if uses_level:
                outer_edits[index].extend(
                    (m.start(), m.end(), 'level') for m in _LEVEL.finditer(mask_literals(part))
                    if m.group(0) != 'level'
                )

        select_list, where, order_by = (
            apply_edits(part, edits) for part, edits in zip(outer_parts, outer_edits)
        )

        table_clause = clauses.table if alias == clauses.table else f"{clauses.table} {alias}"
        join_on = ' AND '.join(f"{alias}.{child} = h.{parent}" for child, parent in relations)
        join_on = ' AND '.join([join_on] + extra_conditions)

        lines = [
            f"WITH RECURSIVE {CTE_NAME} AS (",
            f"    SELECT {', '.join(base_columns)}",
            f"    FROM {table_clause}",
        ]
        if clauses.start_with:
            lines.append(f"    WHERE {clauses.start_with}")
        lines += [
            "    UNION ALL",
            f"    SELECT {', '.join(recursive_columns)}",
            f"    FROM {table_clause}",
            f"    JOIN {CTE_NAME} h ON {join_on}",
            ")",
            f"SELECT {select_list}",
            f"FROM {CTE_NAME}" + (f" {outer_alias}" if outer_alias else ''),
        ]
        if where:
            lines.append(f"WHERE {where}")
        if order_by:
            lines.append(f"ORDER BY {order_by}")

        if nocycle:
            context.warn(
                WarningKind.PARTIAL_SUPPORT,
                "CONNECT BY NOCYCLE: the recursive CTE has no cycle detection.",
                Severity.WARNING,
                "Add a path column and stop recursion when the key is already on the path.",
            )
        if clauses.siblings:
            context.warn(
                WarningKind.PARTIAL_SUPPORT,
                "ORDER SIBLINGS BY was converted to a plain ORDER BY; hierarchy order is not preserved.",
                Severity.WARNING,
                "Order by a path column to keep children under their parents.",
            )
        if not clauses.start_with:
            context.warn(
                WarningKind.SYNTAX_DIFFERENCE,
                "CONNECT BY without START WITH treats every row as a root.",
                Severity.INFO,
            )
        return '\n'.join(lines), features

    @staticmethod
    def _needs_outer_alias(clauses: _Clauses, alias: str) -> bool:
        if clauses.alias:
            return True
        qualified = re.compile(rf'\b{re.escape(alias)}\s*\.', re.IGNORECASE)
        return any(qualified.search(mask_literals(p or ''))
                   for p in (clauses.select_list, clauses.where, clauses.order_by))

    def _collect_paths(self, parts: List[str], edits: List[list], alias: str) -> List[Tuple[str, str, str]]:
        pattern = function_call_pattern('SYS_CONNECT_BY_PATH')
        found: List[Tuple[str, str, str]] = []
        names: Dict[Tuple[str, str], str] = {}
        for index, part in enumerate(parts):
            masked = mask_literals(part)
            for match in pattern.finditer(masked):
                close = self._call_end(part, match.end() - 1)
                args = split_function_arguments(part[match.end():close - 1])
                if len(args) != 2 or not _SIMPLE_COLUMN.match(args[0]) or not _SEPARATOR.match(args[1]):
                    raise _HierarchyNotSupported(f"unsupported SYS_CONNECT_BY_PATH arguments: {args}")
                key = (_column_name(args[0]).lower(), args[1])
                if key not in names:
                    names[key] = 'path' if not found else f"path_{len(found) + 1}"
                    found.append((names[key], _column_name(args[0]), args[1]))
                edits[index].append((match.start(), close, names[key]))
        return found

    @staticmethod
    def _call_end(text: str, open_index: int) -> int:
        end = find_matching_bracket(text, open_index)
        if end == NOT_FOUND:
            raise _HierarchyNotSupported("unbalanced SYS_CONNECT_BY_PATH call")
        return end

    def _path_base(self, separator: str, alias: str, column: str) -> str:
        if self.target is Dialect.MYSQL:
            return f"CAST(CONCAT({separator}, {alias}.{column}) AS CHAR(4000))"
        return f"CAST({separator} || {alias}.{column} AS VARCHAR(4000))"

    def _path_step(self, name: str, separator: str, alias: str, column: str) -> str:
        if self.target is Dialect.MYSQL:
            return f"CONCAT(h.{name}, {separator}, {alias}.{column})"
        return f"CAST(h.{name} || {separator} || {alias}.{column} AS VARCHAR(4000))"

    @staticmethod
    def _collect_roots(parts: List[str], edits: List[list]) -> List[Tuple[str, str]]:
        roots: List[Tuple[str, str]] = []
        for index, part in enumerate(parts):
            for match in finditer_code(_CONNECT_BY_ROOT, part):
                column = match.group(2)
                name = f"root_{column}"
                if (name, column) not in roots:
                    roots.append((name, column))
                edits[index].append((match.start(), match.end(), name))
        return roots

    @staticmethod
    def _leaf_expression(table: str, relations: List[Tuple[str, str]], outer_ref: str) -> str:
        condition = ' AND '.join(f"c.{child} = {outer_ref}.{parent}" for child, parent in relations)
        return f"CASE WHEN NOT EXISTS (SELECT 1 FROM {table} c WHERE {condition}) THEN 1 ELSE 0 END"

    # ------------------------------------------------------------------
    # Fallback
    # ------------------------------------------------------------------

    def _add_guide(self, sql: str, context: ConversionContext) -> str:
        context.warn(
            WarningKind.MANUAL_REVIEW_NEEDED,
            "CONNECT BY query is too complex to convert automatically.",
            Severity.WARNING,
            "Turn START WITH into the base case and CONNECT BY into the recursive join of a WITH RECURSIVE CTE.",
        )
        if GUIDE_MARKER in sql:
            return sql
        self.record(context, "CONNECT BY conversion guide added")
        return _GUIDE + sql
