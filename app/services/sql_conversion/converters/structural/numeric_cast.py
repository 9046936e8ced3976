from ..base_converter import BaseConverter
from ...models import ConversionContext, Dialect, Severity, WarningKind
from ...utils.parser_utils import rewrite_function_calls
from ...utils.regex_utils import function_call_pattern

_NUMERIC_TYPES = {
    Dialect.MYSQL: 'DECIMAL',
    Dialect.POSTGRESQL: 'NUMERIC',
}


class NumericCastConverter(BaseConverter):
    """TO_NUMBER(x) -> CAST(x AS DECIMAL | NUMERIC)."""
    name = 'numeric_cast'

    def applies(self) -> bool:
        return self.source is Dialect.ORACLE and self.target in _NUMERIC_TYPES

    def convert(self, sql: str, context: ConversionContext) -> str:
        if not self.applies():
            return sql
        type_name = _NUMERIC_TYPES[self.target]
        with_format = []

        def rebuild(args):
            if len(args) == 1:
                return f"CAST({args[0]} AS {type_name})"
            # PostgreSQL has to_number(text, format); MySQL has no equivalent
            if self.target is Dialect.MYSQL:
                with_format.append(len(args))
            return None

        sql, count = rewrite_function_calls(sql, function_call_pattern('TO_NUMBER'), rebuild)
        if with_format:
            context.warn(
                WarningKind.MANUAL_REVIEW_NEEDED,
                "TO_NUMBER with a format model has no MySQL equivalent; left unchanged.",
                Severity.WARNING,
                "Strip the formatting characters (REPLACE) and CAST the result.",
            )
        if count:
            self.record(context, f"TO_NUMBER() -> CAST(... AS {type_name})", count)
            if self.target is Dialect.MYSQL:
                context.warn(
                    WarningKind.DATA_TYPE_MISMATCH,
                    "MySQL DECIMAL without precision is DECIMAL(10,0) and drops the fraction.",
                    Severity.INFO,
                    "Give an explicit precision, e.g. DECIMAL(38,10), where fractions matter.",
                )
        return sql
