"""
Post-conversion checks on an (original, converted) statement pair.

WHAT THIS FILE DOES:
====================
- Checks the converted text for unbalanced brackets and unterminated quotes.
- Looks for source-dialect syntax that survived the conversion and for
  "not supported" marker comments left by the rewriters.
- Flags clauses (WHERE, GROUP BY, ...) present in the original but lost in
  the converted text.
- Reports performance smells and target-incompatible syntax.
- Parses both sides with sqlglot and combines everything into a quality
  score in [0, 1] with a recommendation.

The validator never raises: any internal failure becomes a finding.
"""
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from app.config import config
from app.utils.logger import setup_logger
from .models import ConversionWarning, Dialect, Severity, WarningKind
from .utils.dialect_utils import get_sqlglot_dialect
from .utils.parser_utils import (
    NOT_FOUND, find_matching_bracket, is_plsql_block, literal_regions, mask_literals, safe_parse_one,
    split_conjuncts, split_function_arguments, split_statements,
)

logger = setup_logger(__name__)

PLSQL_PARSE_CONFIDENCE = 0.8

_SEVERITY_FACTORS = {Severity.ERROR: 0.5, Severity.WARNING: 0.9, Severity.INFO: 0.95}

# (pattern on masked text, what survived)
_ORACLE_RESIDUALS = [
    (re.compile(r'\bCONNECT\s+BY\b', re.I), 'CONNECT BY'),
    (re.compile(r'\bSTART\s+WITH\b', re.I), 'START WITH'),
    (re.compile(r'\.\s*NEXTVAL\b', re.I), '.NEXTVAL'),
    (re.compile(r'\.\s*CURRVAL\b', re.I), '.CURRVAL'),
    (re.compile(r'\bROWNUM\b', re.I), 'ROWNUM'),
    (re.compile(r'\(\s*\+\s*\)'), '(+)'),
    (re.compile(r'\bNVL\s*\(', re.I), 'NVL('),
    (re.compile(r'\bNVL2\s*\(', re.I), 'NVL2('),
    (re.compile(r'\bDECODE\s*\(', re.I), 'DECODE('),
]
_MYSQL_RESIDUALS = [
    (re.compile(r'\bLIMIT\b', re.I), 'LIMIT'),
    (re.compile(r'\bIFNULL\s*\(', re.I), 'IFNULL('),
]
_NOT_SUPPORTED_COMMENT = re.compile(r'not\s+supported', re.I)

_CLAUSES = [
    ('WHERE', re.compile(r'\bWHERE\b', re.I)),
    ('GROUP BY', re.compile(r'\bGROUP\s+BY\b', re.I)),
    ('HAVING', re.compile(r'\bHAVING\b', re.I)),
    ('ORDER BY', re.compile(r'\bORDER\s+BY\b', re.I)),
    ('DISTINCT', re.compile(r'\bDISTINCT\b', re.I)),
]
# WHERE predicates a conversion moves into JOIN ... ON or LIMIT
_OUTER_JOIN_MARK = re.compile(r'\(\s*\+\s*\)')
_ROWNUM_CAP = re.compile(r'ROWNUM\s*(?:<=|<|=)\s*\d+', re.I)
_WHERE_BODY_END = re.compile(
    r'\b(?:GROUP|ORDER|HAVING|UNION|INTERSECT|MINUS|EXCEPT|CONNECT|START|FOR|FETCH|LIMIT)\b', re.I,
)
_ABSORBING_SYNTAX = re.compile(r'\bJOIN\b|\bLIMIT\b|\bFETCH\s+FIRST\b', re.I)

_IN_LIST = re.compile(r'\bIN\s*\(', re.I)
_SUBQUERY_HEAD = re.compile(r'\s*(?:SELECT|WITH)\b', re.I)
_LIKE_STRING = re.compile(r"\bLIKE\s+'", re.I)
_SELECT_STAR = re.compile(r'\bSELECT\s+(?:DISTINCT\s+|ALL\s+)?\*', re.I)
_SUBQUERY_OPEN = re.compile(r'\(\s*(?:SELECT|WITH)\b', re.I)

_RETURNING = re.compile(r'\bRETURNING\b', re.I)
_LIMIT = re.compile(r'\bLIMIT\b', re.I)


@dataclass(frozen=True)
class ParseConfidence:
    parsed: bool
    confidence: float
    error: Optional[str] = None
    skipped: bool = False

    def to_dict(self) -> dict:
        return {'parsed': self.parsed, 'confidence': self.confidence, 'error': self.error, 'skipped': self.skipped}


@dataclass
class ValidationReport:
    warnings: List[ConversionWarning] = field(default_factory=list)
    quality_score: float = 1.0
    parse: Dict[str, ParseConfidence] = field(default_factory=dict)
    recommendation: str = ''

    @property
    def error_count(self) -> int:
        return sum(1 for w in self.warnings if w.severity is Severity.ERROR)

    def to_dict(self) -> dict:
        return {
            'warnings': [w.to_dict() for w in self.warnings],
            'quality_score': self.quality_score,
            'parse': {side: confidence.to_dict() for side, confidence in self.parse.items()},
            'recommendation': self.recommendation,
        }


def _performance_settings() -> dict:
    return config.get('conversion', {}).get('performance', {}) or {}


def _where_bodies(masked: str) -> List[str]:
    """Predicate text of every WHERE clause, up to the next clause at its own bracket level."""
    bodies = []
    for match in dict(_CLAUSES)['WHERE'].finditer(masked):
        depth = 0
        end = len(masked)
        for i in range(match.end(), len(masked)):
            ch = masked[i]
            if ch == '(':
                depth += 1
            elif ch == ')':
                depth -= 1
            if depth < 0 or (depth == 0 and (ch == ';' or _WHERE_BODY_END.match(masked, i))):
                end = i
                break
        bodies.append(masked[match.end():end])
    return bodies


def _where_absorbed(original_masked: str) -> bool:
    """True when every WHERE predicate is an outer-join condition or a ROWNUM cap."""
    conjuncts = [c for body in _where_bodies(original_masked) for c in split_conjuncts(body)]
    return bool(conjuncts) and all(
        _OUTER_JOIN_MARK.search(c) or _ROWNUM_CAP.fullmatch(c) for c in conjuncts
    )


class SqlConversionValidator:
    """Scores a converted statement against its original."""

    def __init__(self, in_list_threshold: Optional[int] = None, max_subquery_depth: Optional[int] = None):
        settings = _performance_settings()
        self.in_list_threshold = in_list_threshold or int(settings.get('in_list_threshold', 100))
        self.max_subquery_depth = max_subquery_depth or int(settings.get('max_subquery_depth', 3))

    def validate(self, original: str, converted: str, source, target) -> ValidationReport:
        """
        Validates one conversion.

        Args:
            original: SQL as given to the converter.
            converted: SQL the converter produced.
            source: Source dialect (enum or name).
            target: Target dialect (enum or name).

        Returns:
            ValidationReport with findings, parse confidence per side, score and recommendation.
        """
        report = ValidationReport()
        try:
            source, target = Dialect.from_name(source), Dialect.from_name(target)
            original, converted = original or '', converted or ''
            report.parse = {
                'original': self.parse_confidence(original, source),
                'converted': self.parse_confidence(converted, target),
            }
            report.warnings = self._run_checks(original, converted, source, target)
        except Exception as e:
            logger.error(f"Validation failed unexpectedly: {e}", exc_info=True)
            report.warnings.append(ConversionWarning(
                WarningKind.MANUAL_REVIEW_NEEDED,
                f"Validation could not complete: {e}",
                Severity.ERROR,
            ))
        report.quality_score = self._score(report)
        report.recommendation = self._recommendation(report)
        return report

    def parse_confidence(self, sql: str, dialect) -> ParseConfidence:
        """1.0 when sqlglot parses every statement, 0.0 when one fails; PL/SQL blocks are not parsed."""
        if is_plsql_block(sql):
            return ParseConfidence(parsed=True, confidence=PLSQL_PARSE_CONFIDENCE, skipped=True)
        statements = split_statements(sql)
        if not statements:
            return ParseConfidence(parsed=False, confidence=0.0, error="Empty statement")
        sqlglot_dialect = get_sqlglot_dialect(dialect)
        for statement in statements:
            _, error = safe_parse_one(statement, sqlglot_dialect)
            if error:
                return ParseConfidence(parsed=False, confidence=0.0, error=error)
        return ParseConfidence(parsed=True, confidence=1.0)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _run_checks(self, original: str, converted: str, source: Dialect, target: Dialect) -> List[ConversionWarning]:
        masked = mask_literals(converted)
        findings: List[ConversionWarning] = []
        findings.extend(self._bracket_balance(masked))
        findings.extend(self._quote_balance(converted))
        residual = self._residual_syntax(converted, masked, source, target)
        findings.extend(residual)
        findings.extend(self._clause_loss(original, masked))
        findings.extend(self._performance(converted, masked))
        seen = {w.message for w in residual}
        findings.extend(w for w in self._target_compatibility(converted, masked, target) if w.message not in seen)
        return findings

    @staticmethod
    def _bracket_balance(masked: str) -> List[ConversionWarning]:
        depth = 0
        for ch in masked:
            if ch == '(':
                depth += 1
            elif ch == ')':
                depth -= 1
                if depth < 0:
                    break
        if depth == 0:
            return []
        detail = f"{depth} unclosed" if depth > 0 else "unexpected ')'"
        return [ConversionWarning(
            WarningKind.SYNTAX_DIFFERENCE,
            f"Brackets are not balanced in the converted SQL ({detail}).",
            Severity.ERROR,
            "Check the parentheses of the converted statement.",
        )]

    @staticmethod
    def _quote_balance(converted: str) -> List[ConversionWarning]:
        for region in literal_regions(converted):
            if region.kind in ('string', 'identifier', 'backtick') and not region.closed:
                return [ConversionWarning(
                    WarningKind.SYNTAX_DIFFERENCE,
                    f"Unterminated {region.kind} literal in the converted SQL.",
                    Severity.ERROR,
                    "Check the quotes of the converted statement.",
                )]
        return []

    @staticmethod
    def _residual_syntax(converted: str, masked: str, source: Dialect, target: Dialect) -> List[ConversionWarning]:
        patterns = []
        if source is Dialect.ORACLE and target is not Dialect.ORACLE:
            patterns = _ORACLE_RESIDUALS
        elif source is Dialect.MYSQL and target is Dialect.ORACLE:
            patterns = _MYSQL_RESIDUALS

        findings = [
            ConversionWarning(
                WarningKind.PARTIAL_SUPPORT,
                f"{label} is still present after conversion to {target.label}.",
                Severity.WARNING,
                "Convert the remaining construct by hand.",
            )
            for pattern, label in patterns if pattern.search(masked)
        ]
        for region in literal_regions(converted):
            if region.kind not in ('line_comment', 'block_comment'):
                continue
            comment = converted[region.start:region.end]
            if _NOT_SUPPORTED_COMMENT.search(comment):
                findings.append(ConversionWarning(
                    WarningKind.PARTIAL_SUPPORT,
                    f"Unsupported construct marked in the output: {' '.join(comment.split())}",
                    Severity.WARNING,
                    "Replace the marked expression by hand.",
                ))
        return findings

    @staticmethod
    def _clause_loss(original: str, converted_masked: str) -> List[ConversionWarning]:
        original_masked = mask_literals(original)
        findings = []
        for clause, pattern in _CLAUSES:
            if not pattern.search(original_masked) or pattern.search(converted_masked):
                continue
            if clause == 'WHERE' and _where_absorbed(original_masked) and _ABSORBING_SYNTAX.search(converted_masked):
                continue
            findings.append(ConversionWarning(
                WarningKind.MANUAL_REVIEW_NEEDED,
                f"The {clause} clause of the original is missing from the converted SQL.",
                Severity.ERROR,
                f"Restore the {clause} clause.",
            ))
        return findings

    def _performance(self, converted: str, masked: str) -> List[ConversionWarning]:
        findings = []

        def note(message: str, suggestion: str):
            findings.append(ConversionWarning(WarningKind.PERFORMANCE_WARNING, message, Severity.INFO, suggestion))

        for match in _IN_LIST.finditer(masked):
            open_index = match.end() - 1
            end = find_matching_bracket(masked, open_index)
            if end == NOT_FOUND or _SUBQUERY_HEAD.match(masked, open_index + 1):
                continue
            items = len(split_function_arguments(masked[open_index + 1:end - 1]))
            if items > self.in_list_threshold:
                note(f"IN list with {items} items.", "Load the values into a table and join it.")

        for match in _LIKE_STRING.finditer(masked):
            if converted.startswith('%', match.end()):
                note("LIKE pattern starts with a wildcard; an index on the column cannot be used.",
                     "Consider full-text search or a reversed-value index.")
                break

        if _SELECT_STAR.search(masked):
            note("SELECT * used.", "List the needed columns explicitly.")

        depth = self.subquery_depth(masked)
        if depth > self.max_subquery_depth:
            note(f"Subqueries are nested {depth} levels deep.", "Refactor into CTEs or joins.")
        return findings

    @staticmethod
    def subquery_depth(masked: str) -> int:
        """Deepest nesting of ``(SELECT ...)`` / ``(WITH ...)`` groups."""
        spans = []
        for match in _SUBQUERY_OPEN.finditer(masked):
            end = find_matching_bracket(masked, match.start())
            if end != NOT_FOUND:
                spans.append((match.start(), end))
        deepest = 0
        for start, end in spans:
            depth = sum(1 for s, e in spans if s <= start and end <= e)
            deepest = max(deepest, depth)
        return deepest

    @staticmethod
    def _target_compatibility(converted: str, masked: str, target: Dialect) -> List[ConversionWarning]:
        findings = []

        def flag(label: str, suggestion: str):
            findings.append(ConversionWarning(
                WarningKind.PARTIAL_SUPPORT,
                f"{label} is still present after conversion to {target.label}.",
                Severity.WARNING,
                suggestion,
            ))

        if target is Dialect.MYSQL and _RETURNING.search(masked):
            flag('RETURNING', "Fetch the affected rows with a separate SELECT.")
        if target is not Dialect.MYSQL and any(r.kind == 'backtick' for r in literal_regions(converted)):
            flag('Backtick quoting', 'Quote identifiers with double quotes.')
        if target is Dialect.ORACLE and _LIMIT.search(masked):
            flag('LIMIT', 'Use FETCH FIRST n ROWS ONLY.')
        return findings

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    @staticmethod
    def _score(report: ValidationReport) -> float:
        score = 1.0
        original, converted = report.parse.get('original'), report.parse.get('converted')
        if original is not None and not original.parsed:
            score *= 0.5
        if converted is not None and not converted.parsed:
            score *= 0.3
        for warning in report.warnings:
            score *= _SEVERITY_FACTORS[warning.severity]
        return round(min(max(score, 0.0), 1.0), 4)

    @staticmethod
    def _recommendation(report: ValidationReport) -> str:
        score = report.quality_score
        if score >= 0.9:
            text = "Conversion looks good and is ready to use."
        elif score >= 0.7:
            text = "Conversion is usable; check the warnings before deploying."
        elif score >= 0.5:
            text = "Conversion needs attention; a manual review is recommended."
        else:
            text = "Conversion has serious problems; convert the statement manually."
        errors = report.error_count
        if errors:
            text += f" ({errors} error{'s' if errors > 1 else ''} found)"
        return text
