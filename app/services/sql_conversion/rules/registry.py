"""
Rule Registry - per dialect pair catalogue of function rules.

WHAT THIS FILE DOES:
====================
- Defines FunctionMappingRule and ParameterTransform.
- Builds an immutable RuleRegistry from the JSON tables under
  app/config/conversion/<source>_<target>/function_rules/function_mappings.json.
- Precompiles every matcher at construction time, so lookups never mutate
  shared state and the registry can be read from any number of threads.

The registry is an explicit value handed to the dispatcher rather than a
module-level singleton; ``load_rule_registry()`` memoises the default one.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from app.utils.logger import setup_logger
from ..exceptions import RuleConfigurationError, UnsupportedDialectError
from ..models import ConversionWarning, Dialect, Severity, WarningKind
from ..utils.config_loader import list_configured_pairs, load_json_from_conversion_config
from ..utils.dialect_utils import pair_name
from ..utils.regex_utils import re_flags

RULES_SUBDIRECTORY = 'function_rules'
RULES_FILENAME = 'function_mappings.json'


class ParameterTransform(str, Enum):
    NONE = 'NONE'
    RENAME = 'RENAME'
    SWAP_FIRST_TWO = 'SWAP_FIRST_TWO'
    TO_CASE_WHEN = 'TO_CASE_WHEN'
    DATE_FORMAT_CONVERT = 'DATE_FORMAT_CONVERT'


@dataclass(frozen=True)
class FunctionMappingRule:
    source_function: str
    target_function: str
    parameter_transform: ParameterTransform = ParameterTransform.RENAME
    warning_kind: Optional[WarningKind] = None
    warning_message: Optional[str] = None
    suggestion: Optional[str] = None
    warning_severity: Severity = Severity.INFO
    max_args: Optional[int] = None
    pattern: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'source_function', self.source_function.upper())
        object.__setattr__(
            self, 'pattern',
            re.compile(rf'\b{re.escape(self.source_function)}\s*\(', re.IGNORECASE),
        )

    @property
    def warning(self) -> Optional[ConversionWarning]:
        if not self.warning_message:
            return None
        return ConversionWarning(
            kind=self.warning_kind or WarningKind.SYNTAX_DIFFERENCE,
            message=self.warning_message,
            severity=self.warning_severity,
            suggestion=self.suggestion,
        )

    def to_dict(self) -> dict:
        return {
            'source_function': self.source_function,
            'target_function': self.target_function,
            'parameter_transform': self.parameter_transform.value,
            'warning': self.warning.to_dict() if self.warning else None,
        }


@dataclass(frozen=True)
class ParameterlessRule:
    """Substitution for a function called without arguments (SYSDATE, NOW())."""
    source: str
    target: str
    pattern: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        name = self.source.rstrip('()').strip()
        if self.source.endswith('()'):
            regex = rf'\b{re.escape(name)}\s*\(\s*\)'
        else:
            regex = rf'\b{re.escape(name)}\b(?!\s*\()'
        object.__setattr__(self, 'pattern', re.compile(regex, re.IGNORECASE))


@dataclass(frozen=True)
class SyntaxFix:
    """A config-driven, code-only regex substitution."""
    name: str
    pattern: re.Pattern
    replacement: str
    warning: Optional[ConversionWarning] = None


@dataclass(frozen=True)
class PairRules:
    functions: Tuple[FunctionMappingRule, ...] = ()
    parameterless: Tuple[ParameterlessRule, ...] = ()
    date_format_tokens: Mapping[str, str] = field(default_factory=dict)
    syntax_fixes: Tuple[SyntaxFix, ...] = ()
    by_name: Mapping[str, FunctionMappingRule] = field(default_factory=dict)


_EMPTY = PairRules()


class RuleRegistry:
    """Immutable catalogue of rules keyed by (source, target) dialect pair."""

    def __init__(self, pairs: Mapping[Tuple[Dialect, Dialect], PairRules]):
        self._pairs: Dict[Tuple[Dialect, Dialect], PairRules] = dict(pairs)

    @classmethod
    def from_tables(cls, tables: Mapping[Tuple[Dialect, Dialect], dict]) -> 'RuleRegistry':
        """Build a registry from raw table dicts (the JSON file shape)."""
        return cls({pair: _build_pair_rules(pair, table) for pair, table in tables.items()})

    def get_rules(self, source: Dialect, target: Dialect) -> Tuple[FunctionMappingRule, ...]:
        return self._pairs.get((source, target), _EMPTY).functions

    def get_rule(self, source: Dialect, target: Dialect, function_name: str) -> Optional[FunctionMappingRule]:
        return self._pairs.get((source, target), _EMPTY).by_name.get(function_name.upper())

    def get_parameterless(self, source: Dialect, target: Dialect) -> Tuple[ParameterlessRule, ...]:
        return self._pairs.get((source, target), _EMPTY).parameterless

    def get_date_format_tokens(self, source: Dialect, target: Dialect) -> Mapping[str, str]:
        return self._pairs.get((source, target), _EMPTY).date_format_tokens

    def get_syntax_fixes(self, source: Dialect, target: Dialect) -> Tuple[SyntaxFix, ...]:
        return self._pairs.get((source, target), _EMPTY).syntax_fixes

    def pairs(self) -> List[Tuple[Dialect, Dialect]]:
        return sorted(self._pairs, key=lambda p: (p[0].value, p[1].value))


# ---------------------------------------------------------------------------
# Table parsing
# ---------------------------------------------------------------------------

def _parse_warning(raw: Optional[dict], pair: str) -> Tuple[Optional[WarningKind], Optional[str], Optional[str], Severity]:
    if not raw:
        return None, None, None, Severity.INFO
    try:
        kind = WarningKind(raw.get('kind', WarningKind.SYNTAX_DIFFERENCE.value))
        severity = Severity(raw.get('severity', Severity.INFO.value))
    except ValueError as e:
        raise RuleConfigurationError(f"invalid warning definition {raw!r}: {e}", pair) from e
    return kind, raw.get('message'), raw.get('suggestion'), severity


def _build_function_rules(entries: Iterable[dict], pair: str) -> Tuple[FunctionMappingRule, ...]:
    rules = []
    seen = set()
    for entry in entries:
        try:
            source = entry['source'].upper()
            target = entry['target']
            transform = ParameterTransform(entry.get('transform', ParameterTransform.RENAME.value))
        except (KeyError, AttributeError, ValueError) as e:
            raise RuleConfigurationError(f"invalid function rule {entry!r}: {e}", pair) from e
        if source in seen:
            raise RuleConfigurationError(f"duplicate rule for function {source}", pair)
        seen.add(source)
        kind, message, suggestion, severity = _parse_warning(entry.get('warning'), pair)
        rules.append(FunctionMappingRule(
            source_function=source,
            target_function=target,
            parameter_transform=transform,
            warning_kind=kind,
            warning_message=message,
            suggestion=suggestion,
            warning_severity=severity,
            max_args=entry.get('max_args'),
        ))
    return tuple(rules)


def _build_syntax_fixes(entries: Iterable[dict], pair: str) -> Tuple[SyntaxFix, ...]:
    fixes = []
    for entry in entries:
        try:
            pattern = re.compile(entry['regex'], re_flags(entry.get('flags', '')))
        except (KeyError, re.error) as e:
            raise RuleConfigurationError(f"invalid syntax fix {entry.get('name', entry)!r}: {e}", pair) from e
        kind, message, suggestion, severity = _parse_warning(entry.get('warning'), pair)
        warning = ConversionWarning(kind, message, severity, suggestion) if message else None
        fixes.append(SyntaxFix(entry.get('name', entry['regex']), pattern, entry.get('replacement', ''), warning))
    return tuple(fixes)


def _build_pair_rules(pair: Tuple[Dialect, Dialect], table: dict) -> PairRules:
    name = pair_name(*pair)
    functions = _build_function_rules(table.get('function_mappings', []), name)
    parameterless = tuple(
        ParameterlessRule(entry['source'], entry['target'])
        for entry in table.get('parameterless_functions', [])
    )
    return PairRules(
        functions=functions,
        parameterless=parameterless,
        date_format_tokens=dict(table.get('date_format_tokens', {})),
        syntax_fixes=_build_syntax_fixes(table.get('syntax_fixes', []), name),
        by_name={rule.source_function: rule for rule in functions},
    )


@lru_cache(maxsize=1)
def load_rule_registry() -> RuleRegistry:
    """Load the default registry from the JSON rule tables (memoised)."""
    logger = setup_logger('RuleRegistry')
    tables = {}
    for source_name, target_name in list_configured_pairs():
        try:
            pair = (Dialect.from_name(source_name), Dialect.from_name(target_name))
        except UnsupportedDialectError:
            logger.warning(f"Ignoring rule directory for unknown pair {source_name}_{target_name}")
            continue
        table = load_json_from_conversion_config(logger, source_name, target_name, RULES_SUBDIRECTORY, RULES_FILENAME)
        if not table:
            logger.warning(f"No function rules loaded for {source_name} -> {target_name}")
            continue
        tables[pair] = table

    registry = RuleRegistry.from_tables(tables)
    logger.info(f"Rule registry loaded for {len(tables)} dialect pair(s)")
    return registry
