"""
Function Dispatcher - applies the registry rules of one dialect pair, then the
structural rewriters, in a fixed order.

WHAT THIS FILE DOES:
====================
1. Identity short-circuit (source == target).
2. Registry rules, dispatched on ParameterTransform:
     NONE / RENAME        rename the call head only
     SWAP_FIRST_TWO       swap arguments 0 and 1, keep the rest
     TO_CASE_WHEN         CaseWhenConverter
     DATE_FORMAT_CONVERT  rename and translate the format literal
3. Parameterless functions (SYSDATE, NOW(), ...).
4. Pseudo-columns, string concatenation, numeric casts, date arithmetic,
   pagination and hierarchical queries, in that order.

Every step is idempotent: running the dispatcher again on its own output does
not change the text.
"""
from typing import List, Optional

from .base_converter import BaseConverter
from .structural.case_when import CaseWhenConverter
from .structural.date_arithmetic import DateArithmeticConverter
from .structural.hierarchical import HierarchicalQueryConverter
from .structural.numeric_cast import NumericCastConverter
from .structural.pagination import PaginationConverter
from .structural.pseudo_column import PseudoColumnConverter
from .structural.string_concat import StringConcatConverter
from ..exceptions import RuleConfigurationError
from ..models import ConversionContext, Dialect, Severity, WarningKind
from ..rules.registry import FunctionMappingRule, ParameterTransform, RuleRegistry, load_rule_registry
from ..utils.date_format import (
    has_date_tokens, is_numeric_format, is_quoted_literal, literal_body, translate_format_literal,
)
from ..utils.dialect_utils import pair_name
from ..utils.parser_utils import apply_edits, find_function_calls, mask_literals, rewrite_function_calls, \
    split_function_arguments
from ..utils.regex_utils import sub_code

STRUCTURAL_STEPS = (
    PseudoColumnConverter,
    StringConcatConverter,
    NumericCastConverter,
    DateArithmeticConverter,
    PaginationConverter,
    HierarchicalQueryConverter,
)


class FunctionDispatcher(BaseConverter):
    name = 'function_dispatcher'

    def __init__(self, source: Dialect, target: Dialect, registry: Optional[RuleRegistry] = None):
        super().__init__(source, target)
        self.registry = registry if registry is not None else load_rule_registry()
        self.rules = self.registry.get_rules(self.source, self.target)
        self.parameterless = self.registry.get_parameterless(self.source, self.target)
        self.date_tokens = self.registry.get_date_format_tokens(self.source, self.target)
        self.case_when = CaseWhenConverter(self.source, self.target)
        self.steps: List[BaseConverter] = [step(self.source, self.target) for step in STRUCTURAL_STEPS]

        for rule in self.rules:
            if rule.parameter_transform is ParameterTransform.TO_CASE_WHEN and not self.case_when.supports(
                    rule.source_function):
                raise RuleConfigurationError(
                    f"{rule.source_function} cannot be rewritten as CASE", pair_name(self.source, self.target),
                )

    def convert(self, sql: str, context: ConversionContext) -> str:
        """
        Convert one statement or fragment.

        *context* is owned by the caller, so DDL converters and the statement
        router can merge the warnings into their own outcome.
        """
        if not self.applies() or not sql:
            return sql
        sql = self._apply_registry_rules(sql, context)
        sql = self._apply_parameterless(sql, context)
        for step in self.steps:
            sql = step.convert(sql, context)
        return sql

    # ------------------------------------------------------------------
    # Registry rules
    # ------------------------------------------------------------------

    def _apply_registry_rules(self, sql: str, context: ConversionContext) -> str:
        masked = mask_literals(sql)
        for rule in self.rules:
            if not rule.pattern.search(masked):
                continue
            transform = rule.parameter_transform
            if transform in (ParameterTransform.NONE, ParameterTransform.RENAME):
                new_sql, count = self._rename(sql, rule, context)
            elif transform is ParameterTransform.SWAP_FIRST_TWO:
                new_sql, count = self._swap_first_two(sql, rule, context)
            elif transform is ParameterTransform.TO_CASE_WHEN:
                new_sql, count = self.case_when.rewrite_calls(sql, rule.source_function, context, rule.pattern)
            else:
                new_sql, count = self._date_format_convert(sql, rule, context)

            if count and rule.warning:
                # once per rule, however many calls it rewrote
                context.warnings.append(rule.warning)
            if new_sql != sql:
                sql = new_sql
                masked = mask_literals(sql)
        return sql

    def _rename(self, sql: str, rule: FunctionMappingRule, context: ConversionContext):
        if rule.target_function.upper() == rule.source_function:
            return sql, 0
        edits = []
        too_long = 0
        for call in find_function_calls(sql, rule.pattern):
            if rule.max_args and len(split_function_arguments(call.args_text)) > rule.max_args:
                too_long += 1
                continue
            edits.append((call.start, call.open_index, rule.target_function))
        if too_long:
            self._warn_too_many_args(rule, context, too_long)
        if not edits:
            return sql, 0
        self.record(context, f"{rule.source_function}() -> {rule.target_function}()", len(edits))
        return apply_edits(sql, edits), len(edits)

    def _swap_first_two(self, sql: str, rule: FunctionMappingRule, context: ConversionContext):
        too_long = []

        def rebuild(args):
            if len(args) < 2:
                return None
            if rule.max_args and len(args) > rule.max_args:
                too_long.append(len(args))
                return None
            swapped = [args[1], args[0]] + args[2:]
            return f"{rule.target_function}({', '.join(swapped)})"

        sql, count = rewrite_function_calls(sql, rule.pattern, rebuild)
        if too_long:
            self._warn_too_many_args(rule, context, len(too_long))
        if count:
            self.record(context, f"{rule.source_function}(a, b) -> {rule.target_function}(b, a)", count)
        return sql, count

    def _warn_too_many_args(self, rule: FunctionMappingRule, context: ConversionContext, calls: int) -> None:
        context.warn(
            WarningKind.PARTIAL_SUPPORT,
            f"{calls} {rule.source_function} call(s) with more than {rule.max_args} arguments left unchanged; "
            f"{self.target.label} {rule.target_function} does not take them.",
            Severity.WARNING,
            "Emulate the extra arguments with SUBSTRING and an offset.",
        )

    # ------------------------------------------------------------------
    # Date format functions
    # ------------------------------------------------------------------

    def _date_format_convert(self, sql: str, rule: FunctionMappingRule, context: ConversionContext):
        same_name = rule.target_function.upper() == rule.source_function
        problems: List[str] = []
        dropped: List[str] = []

        def rebuild(args):
            if not args:
                return None
            if len(args) == 1:
                return self._single_argument(rule, args[0], problems)

            value, fmt = args[0], args[1]
            if not is_quoted_literal(fmt):
                if not same_name:
                    problems.append(f"{rule.source_function} with a non-literal format {fmt} was left unchanged.")
                return None
            if self.source is not Dialect.MYSQL and is_numeric_format(literal_body(fmt)):
                if not same_name:
                    problems.append(f"{rule.source_function} with the number format {fmt} was left unchanged.")
                return None
            if len(args) > 2:
                dropped.extend(args[2:])

            new_fmt = translate_format_literal(fmt, self.source, self.target, self.date_tokens)
            if same_name and new_fmt == fmt and len(args) == 2:
                return None
            if not has_date_tokens(literal_body(fmt), self.source, self.date_tokens):
                self.logger.debug(f"{rule.source_function} format {fmt} holds no date tokens")
            return f"{rule.target_function}({value}, {new_fmt})"

        sql, count = rewrite_function_calls(sql, rule.pattern, rebuild)
        for message in problems:
            context.warn(WarningKind.MANUAL_REVIEW_NEEDED, message, Severity.WARNING,
                         f"Rewrite the call with {self.target.label} {rule.target_function} by hand.")
        if dropped:
            context.warn(
                WarningKind.PARTIAL_SUPPORT,
                f"{rule.source_function} NLS argument(s) {', '.join(dropped)} were dropped.",
                Severity.WARNING,
                "Set the session language instead.",
            )
        if count:
            self.record(context, f"{rule.source_function}() -> {rule.target_function}() with format translation",
                         count)
        return sql, count

    def _single_argument(self, rule: FunctionMappingRule, value: str, problems: List[str]) -> Optional[str]:
        target = rule.target_function.upper()
        if target == rule.source_function:
            return None
        if target == 'DATE_FORMAT':
            return f"CAST({value} AS CHAR)"
        if rule.source_function == 'TO_TIMESTAMP' and target == 'STR_TO_DATE':
            # PostgreSQL to_timestamp(double) is epoch seconds
            return f"FROM_UNIXTIME({value})"
        problems.append(f"{rule.source_function}({value}) relies on the session date format and was left unchanged.")
        return None

    # ------------------------------------------------------------------
    # Parameterless functions
    # ------------------------------------------------------------------

    def _apply_parameterless(self, sql: str, context: ConversionContext) -> str:
        for rule in self.parameterless:
            sql, count = sub_code(rule.pattern, lambda match, target=rule.target: target, sql)
            if count:
                self.record(context, f"{rule.source} -> {rule.target}", count)
        return sql
