"""
Collects the findings of a file-mode run that a person has to look at and
writes them next to the converted files as JSON and CSV.
"""
import logging
import os
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional

from app.utils.file_utils import write_csv, write_json
from ..models import ConversionWarning, Severity, WarningKind

# Used when a warning carries no suggestion of its own
DEFAULT_SUGGESTED_ACTIONS = {
    WarningKind.UNSUPPORTED_FUNCTION: 'Rewrite the construct by hand for the target database',
    WarningKind.PARTIAL_SUPPORT: 'Compare results on representative data, edge cases may differ',
    WarningKind.SYNTAX_DIFFERENCE: 'Check the rewritten clause reads as intended',
    WarningKind.MANUAL_REVIEW_NEEDED: 'Review and convert the statement manually',
    WarningKind.DATA_TYPE_MISMATCH: 'Add explicit casts where the target is stricter about types',
    WarningKind.PERFORMANCE_WARNING: 'Check the execution plan on the target database',
}

CSV_HEADERS = ['file_path', 'statement_number', 'statement_kind', 'issue_type', 'severity', 'message',
               'suggested_action']


class ManualReviewLogger:
    """Review items of one output folder; INFO findings are dropped by default."""

    def __init__(self, output_dir: str, logger=None, min_severity: Severity = Severity.WARNING):
        self.output_dir = str(output_dir)
        self.logger = logger
        self.min_severity = min_severity
        self.review_items: List[dict] = []
        self.log_file_path = None
        self.csv_file_path = None

    def log_manual_review_item(self,
                               file_path: str,
                               statement_number: int,
                               issue_type: str,
                               message: str,
                               severity: str = 'WARNING',
                               suggested_action: Optional[str] = None,
                               statement_kind: Optional[str] = None,
                               statement_preview: Optional[str] = None):
        self.review_items.append({
            'timestamp': datetime.now().isoformat(),
            'file_path': file_path,
            'statement_number': statement_number,
            'statement_kind': statement_kind or 'UNKNOWN',
            'issue_type': issue_type,
            'severity': severity,
            'message': message,
            'suggested_action': suggested_action,
            'statement_preview': statement_preview,
            'status': 'PENDING',
        })

        if self.logger:
            level = logging.ERROR if severity == Severity.ERROR.value else logging.WARNING
            self.logger.log(level, f"Review {file_path}#{statement_number} [{issue_type}] {message}")

    def log_warnings(self, file_path: str, statement_number: int, warnings, statement_kind: Optional[str] = None,
                     statement: Optional[str] = None) -> int:
        """Record every warning at or above ``min_severity``; returns how many were kept."""
        preview = _preview(statement) if statement else None
        kept = 0
        for warning in warnings:
            if not self._is_reviewable(warning):
                continue
            self.log_manual_review_item(
                file_path=file_path,
                statement_number=statement_number,
                issue_type=warning.kind.value,
                message=warning.message,
                severity=warning.severity.value,
                suggested_action=warning.suggestion or DEFAULT_SUGGESTED_ACTIONS.get(warning.kind),
                statement_kind=statement_kind,
                statement_preview=preview,
            )
            kept += 1
        return kept

    def _is_reviewable(self, warning: ConversionWarning) -> bool:
        order = [Severity.INFO, Severity.WARNING, Severity.ERROR]
        return order.index(warning.severity) >= order.index(self.min_severity)

    def write_manual_review_log(self) -> Optional[str]:
        """Write the JSON log and CSV sheet; returns the JSON path, or None when there is nothing to review."""
        if not self.review_items:
            return None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_file_path = os.path.join(self.output_dir, f"manual_review_required_{timestamp}.json")
        self.csv_file_path = os.path.join(self.output_dir, f"manual_review_required_{timestamp}.csv")

        summary_data = {
            'conversion_timestamp': timestamp,
            'total_items_requiring_review': len(self.review_items),
            'summary_by_type': self._count_by('issue_type'),
            'summary_by_severity': self._count_by('severity'),
            'summary_by_file': self._count_by('file_path'),
            'review_items': self.review_items,
            'how_to_use': {
                'workflow': 'Open each file_path at statement_number, apply or reject the suggested_action, '
                            'then set status to DONE.',
                'severity': {
                    Severity.ERROR.value: 'statement fails or returns different rows on the target',
                    Severity.WARNING.value: 'statement runs but semantics may differ',
                    Severity.INFO.value: 'dialect difference worth knowing about',
                },
            },
        }

        try:
            write_json(self.log_file_path, summary_data)
            write_csv(self.csv_file_path, CSV_HEADERS,
                      [tuple(item[h] for h in CSV_HEADERS) for item in self.review_items])
        except OSError as e:
            if self.logger:
                self.logger.error(f"Could not write the manual review log to {self.output_dir}: {e}")
            return None

        if self.logger:
            self.logger.info(f"{len(self.review_items)} item(s) need manual review, see {self.log_file_path}")
        return self.log_file_path

    def create_summary_report(self) -> str:
        """Plain-text digest of the review items for the run log."""
        if not self.review_items:
            return "Nothing needs manual review."

        def section(title: str, counts: Dict[str, int]) -> List[str]:
            return [title] + [f"    {name:<40} {count}" for name, count in counts.items()] + [""]

        rule = "-" * 72
        lines = [rule, f"Manual review: {len(self.review_items)} item(s)", rule]
        lines += section("Severity", self._count_by('severity'))
        lines += section("Issue type", self._count_by('issue_type'))
        lines += section("File", self._count_by('file_path'))

        errors = [item for item in self.review_items if item['severity'] == Severity.ERROR.value]
        if errors:
            lines.append("Errors")
            lines += [f"    {item['file_path']}#{item['statement_number']}: {item['message']}" for item in errors]
            lines.append("")

        if self.log_file_path:
            lines.append(f"Details: {self.log_file_path}")
        lines.append(rule)
        return "\n".join(lines)

    def _count_by(self, field: str) -> Dict[str, int]:
        return dict(Counter(item[field] for item in self.review_items).most_common())


def _preview(statement: str, limit: int = 120) -> str:
    flat = ' '.join(statement.split())
    return flat if len(flat) <= limit else flat[:limit - 3] + '...'
