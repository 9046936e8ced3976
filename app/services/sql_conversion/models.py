"""
Value types shared by every converter.

WHAT THIS FILE DOES:
====================
- Defines the closed set of dialects the engine converts between.
- Defines the warning taxonomy (kind + severity) and the immutable warning record.
- Defines ConversionOutcome, the frozen result returned once per conversion call.
- Defines ConversionContext, the per-call collector converters append to while
  a statement is being rewritten. A context is never shared between calls.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .exceptions import UnsupportedDialectError


class Dialect(str, Enum):
    ORACLE = 'oracle'
    MYSQL = 'mysql'
    POSTGRESQL = 'postgresql'

    @classmethod
    def from_name(cls, name) -> 'Dialect':
        """Resolve a dialect from its name or a common alias (case-insensitive)."""
        if isinstance(name, Dialect):
            return name
        key = str(name or '').strip().lower()
        key = _DIALECT_ALIASES.get(key, key)
        for dialect in cls:
            if dialect.value == key:
                return dialect
        raise UnsupportedDialectError(str(name))

    @property
    def label(self) -> str:
        return {'oracle': 'Oracle', 'mysql': 'MySQL', 'postgresql': 'PostgreSQL'}[self.value]


_DIALECT_ALIASES = {
    'postgres': 'postgresql',
    'pg': 'postgresql',
    'pgsql': 'postgresql',
    'ora': 'oracle',
    'mariadb': 'mysql',
}


class WarningKind(str, Enum):
    UNSUPPORTED_FUNCTION = 'UNSUPPORTED_FUNCTION'
    PARTIAL_SUPPORT = 'PARTIAL_SUPPORT'
    SYNTAX_DIFFERENCE = 'SYNTAX_DIFFERENCE'
    MANUAL_REVIEW_NEEDED = 'MANUAL_REVIEW_NEEDED'
    DATA_TYPE_MISMATCH = 'DATA_TYPE_MISMATCH'
    PERFORMANCE_WARNING = 'PERFORMANCE_WARNING'


class Severity(str, Enum):
    INFO = 'INFO'
    WARNING = 'WARNING'
    ERROR = 'ERROR'


@dataclass(frozen=True)
class ConversionWarning:
    kind: WarningKind
    message: str
    severity: Severity = Severity.WARNING
    suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            'kind': self.kind.value,
            'message': self.message,
            'severity': self.severity.value,
            'suggestion': self.suggestion,
        }


@dataclass(frozen=True)
class ConversionOutcome:
    converted_sql: str
    warnings: tuple = ()
    applied_rules: tuple = ()
    quality_score: Optional[float] = None

    @property
    def has_errors(self) -> bool:
        return any(w.severity is Severity.ERROR for w in self.warnings)

    def to_dict(self) -> dict:
        result = {
            'converted_sql': self.converted_sql,
            'warnings': [w.to_dict() for w in self.warnings],
            'applied_rules': list(self.applied_rules),
        }
        if self.quality_score is not None:
            result['quality_score'] = self.quality_score
        return result


@dataclass
class ConversionContext:
    """Collects warnings and applied rules while one statement is converted."""
    source: Dialect
    target: Dialect
    warnings: List[ConversionWarning] = field(default_factory=list)
    applied_rules: List[str] = field(default_factory=list)

    def warn(self, kind: WarningKind, message: str, severity: Severity = Severity.WARNING,
             suggestion: Optional[str] = None) -> None:
        self.warnings.append(ConversionWarning(kind, message, severity, suggestion))

    def applied(self, description: str) -> None:
        self.applied_rules.append(description)
