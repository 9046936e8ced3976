"""
String concatenation: the ``||`` operator <-> the CONCAT() function.

MySQL (outside PIPES_AS_CONCAT mode) reads ``||`` as logical OR, so chains
toward MySQL become ``CONCAT(a, b, c)``. In the other direction a CONCAT with
two or more arguments becomes an operator chain.
Operands take in the arithmetic evaluated before the operator, so Oracle
``x + y || z`` becomes ``CONCAT(x + y, z)``.
"""
from typing import List, Tuple

from ..base_converter import BaseConverter
from ...models import ConversionContext, Dialect, Severity, WarningKind
from ...utils.parser_utils import (
    NOT_FOUND, apply_edits, extract_operand_after, extract_operand_before,
    find_matching_bracket, mask_literals, rewrite_function_calls,
)
from ...utils.regex_utils import function_call_pattern


def _top_level_tokens(masked: str) -> Tuple[List[int], List[Tuple[int, int]]]:
    """Depth-0 ``||`` positions and depth-0 parenthesised groups (open, end)."""
    operators = []
    groups = []
    i = 0
    n = len(masked)
    while i < n:
        ch = masked[i]
        if ch == '(':
            end = find_matching_bracket(masked, i)
            if end == NOT_FOUND:
                break
            groups.append((i, end))
            i = end
            continue
        if masked.startswith('||', i):
            operators.append(i)
            i += 2
            continue
        i += 1
    return operators, groups


def _extend_left(text: str, masked: str, start: int) -> int:
    """Widen an operand leftward over arithmetic that is evaluated before the ``||``."""
    while True:
        j = start - 1
        while j >= 0 and masked[j].isspace():
            j -= 1
        if j < 0 or masked[j] not in '+-*/':
            return start
        operand, operand_start = extract_operand_before(text, j, masked)
        if not operand:
            return start
        start = operand_start


def _extend_right(text: str, masked: str, end: int, operators: str) -> int:
    n = len(masked)
    while True:
        k = end
        while k < n and masked[k].isspace():
            k += 1
        if k >= n or masked[k] not in operators:
            return end
        operand, operand_end = extract_operand_after(text, k + 1, masked)
        if not operand:
            return end
        end = operand_end


class StringConcatConverter(BaseConverter):
    name = 'string_concat'

    def applies(self) -> bool:
        if self.source is self.target:
            return False
        return self.target is Dialect.MYSQL or self.source is Dialect.MYSQL

    def convert(self, sql: str, context: ConversionContext) -> str:
        if not self.applies():
            return sql
        if self.target is Dialect.MYSQL:
            return self._operator_to_function(sql, context)
        return self._function_to_operator(sql, context)

    # ------------------------------------------------------------------
    # a || b  ->  CONCAT(a, b)
    # ------------------------------------------------------------------

    def _operator_to_function(self, sql: str, context: ConversionContext) -> str:
        if '||' not in mask_literals(sql):
            return sql
        failures = []
        new_sql, count = self._rewrite_chains(sql, failures)
        for operator_index in failures:
            context.warn(
                WarningKind.MANUAL_REVIEW_NEEDED,
                f"Could not determine the operands of '||' near position {operator_index}; left unchanged.",
                Severity.WARNING,
                "Rewrite the expression with CONCAT() by hand.",
            )
        if count:
            self.record(context, "|| -> CONCAT()", count)
            context.warn(
                WarningKind.SYNTAX_DIFFERENCE,
                "MySQL CONCAT() returns NULL when any argument is NULL.",
                Severity.INFO,
                "Wrap nullable arguments in IFNULL(x, '') to keep the original behaviour.",
            )
        return new_sql

    def _rewrite_chains(self, text: str, failures: List[int], offset: int = 0) -> Tuple[str, int]:
        masked = mask_literals(text)
        operators, groups = _top_level_tokens(masked)
        edits = []
        count = 0

        # Oracle evaluates || left to right with + and -; PostgreSQL ranks it below them
        tighter_on_right = '*/' if self.source is Dialect.ORACLE else '+-*/'

        # Each chain: list of (operand_start, operand_end)
        chains = []
        for op in operators:
            left, left_start = extract_operand_before(text, op, masked)
            right, right_end = extract_operand_after(text, op + 2, masked)
            if not left or not right:
                failures.append(offset + op)
                continue
            left_span = (_extend_left(text, masked, left_start), left_start + len(left))
            right_span = (right_end - len(right), _extend_right(text, masked, right_end, tighter_on_right))
            if chains and chains[-1][-1] == left_span:
                chains[-1].append(right_span)
            elif chains and left_span[0] < chains[-1][-1][1]:
                # a || b + c || d: the earlier chain is part of the left term
                previous = chains.pop()
                chains.append([(previous[0][0], left_span[1]), right_span])
            else:
                chains.append([left_span, right_span])

        covered = []
        for chain in chains:
            operands = []
            for start, end in chain:
                operand, nested = self._rewrite_chains(text[start:end], failures, offset + start)
                count += nested
                operands.append(operand)
            edits.append((chain[0][0], chain[-1][1], f"CONCAT({', '.join(operands)})"))
            covered.append((chain[0][0], chain[-1][1]))
            count += 1

        # Parenthesised groups outside any chain may still hold chains of their own
        for open_index, end in groups:
            if any(s <= open_index and end <= e for s, e in covered):
                continue
            inner = text[open_index + 1:end - 1]
            if '||' not in masked[open_index + 1:end - 1]:
                continue
            new_inner, nested = self._rewrite_chains(inner, failures, offset + open_index + 1)
            if nested:
                edits.append((open_index + 1, end - 1, new_inner))
                count += nested

        return apply_edits(text, edits), count

    # ------------------------------------------------------------------
    # CONCAT(a, b)  ->  a || b
    # ------------------------------------------------------------------

    def _function_to_operator(self, sql: str, context: ConversionContext) -> str:
        def rebuild(args):
            if len(args) < 2:
                return None
            return ' || '.join(self._as_operand(arg) for arg in args)

        new_sql, count = rewrite_function_calls(sql, function_call_pattern('CONCAT'), rebuild)
        if count:
            self.record(context, "CONCAT() -> ||", count)
            if self.target is Dialect.ORACLE:
                context.warn(
                    WarningKind.SYNTAX_DIFFERENCE,
                    "Oracle '||' treats NULL as an empty string where MySQL CONCAT() returns NULL.",
                    Severity.INFO,
                )
        return new_sql

    @staticmethod
    def _as_operand(arg: str) -> str:
        """Parenthesise an argument that is not a single operand."""
        operand, end = extract_operand_after(arg, 0)
        if operand and end == len(arg):
            return arg
        return f"({arg})"
