"""
DECODE / NVL2 / IF -> CASE.

    DECODE(e, s1, r1, s2, r2, d)  ->  CASE e WHEN s1 THEN r1 WHEN s2 THEN r2 ELSE d END
    NVL2(e, a, b)                 ->  CASE WHEN e IS NOT NULL THEN a ELSE b END
    IF(c, t, f)                   ->  CASE WHEN c THEN t ELSE f END

A NULL search value in DECODE compares with IS NULL, which forces the
searched form (``CASE WHEN e = s1 ...``) for the whole expression.
"""
import re
from typing import Callable, Dict, List, Optional, Tuple

from ..base_converter import BaseConverter
from ...models import ConversionContext, Dialect, Severity, WarningKind
from ...utils.parser_utils import rewrite_function_calls
from ...utils.regex_utils import function_call_pattern

_SIMPLE_OPERAND = re.compile(r'^[\w.$#"`]+$')


def decode_to_case(args: List[str]) -> Optional[str]:
    if len(args) < 3:
        return None
    expr = args[0]
    pairs = args[1:]
    default = pairs.pop() if len(pairs) % 2 else None
    branches = list(zip(pairs[0::2], pairs[1::2]))

    if any(search.upper() == 'NULL' for search, _ in branches):
        subject = expr if _SIMPLE_OPERAND.match(expr) else f"({expr})"
        whens = [
            f"WHEN {subject} IS NULL THEN {result}" if search.upper() == 'NULL'
            else f"WHEN {subject} = {search} THEN {result}"
            for search, result in branches
        ]
        head = 'CASE'
    else:
        whens = [f"WHEN {search} THEN {result}" for search, result in branches]
        head = f"CASE {expr}"

    parts = [head] + whens
    if default is not None:
        parts.append(f"ELSE {default}")
    parts.append('END')
    return ' '.join(parts)


def nvl2_to_case(args: List[str]) -> Optional[str]:
    if len(args) != 3:
        return None
    return f"CASE WHEN {args[0]} IS NOT NULL THEN {args[1]} ELSE {args[2]} END"


def if_to_case(args: List[str]) -> Optional[str]:
    if len(args) != 3:
        return None
    return f"CASE WHEN {args[0]} THEN {args[1]} ELSE {args[2]} END"


_BUILDERS: Dict[str, Callable[[List[str]], Optional[str]]] = {
    'DECODE': decode_to_case,
    'NVL2': nvl2_to_case,
    'IF': if_to_case,
}

_EXPECTED_ARGS = {
    'DECODE': 'at least 3 arguments',
    'NVL2': 'exactly 3 arguments',
    'IF': 'exactly 3 arguments',
}

_SOURCE_FUNCTIONS = {
    Dialect.ORACLE: ('DECODE', 'NVL2'),
    Dialect.MYSQL: ('IF',),
    Dialect.POSTGRESQL: (),
}


class CaseWhenConverter(BaseConverter):
    name = 'case_when'

    def supports(self, function_name: str) -> bool:
        return function_name.upper() in _BUILDERS

    def rewrite_calls(self, sql: str, function_name: str, context: ConversionContext,
                      pattern: Optional[re.Pattern] = None) -> Tuple[str, int]:
        """Rewrite every call of one function; malformed calls are kept with a warning."""
        name = function_name.upper()
        builder = _BUILDERS[name]
        pattern = pattern or function_call_pattern(name)
        malformed = []

        def rebuild(args):
            replacement = builder(args)
            if replacement is None:
                malformed.append(len(args))
            return replacement

        new_sql, count = rewrite_function_calls(sql, pattern, rebuild)
        if malformed:
            context.warn(
                WarningKind.MANUAL_REVIEW_NEEDED,
                f"{name} call(s) with {', '.join(str(n) for n in malformed)} argument(s) left unchanged; "
                f"expected {_EXPECTED_ARGS[name]}.",
                Severity.WARNING,
                "Rewrite the expression as a CASE expression by hand.",
            )
        if count:
            self.record(context, f"{name} -> CASE", count)
        return new_sql, count

    def convert(self, sql: str, context: ConversionContext) -> str:
        if not self.applies():
            return sql
        for name in _SOURCE_FUNCTIONS[self.source]:
            sql, _ = self.rewrite_calls(sql, name, context)
        return sql
