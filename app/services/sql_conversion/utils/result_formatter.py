"""
Shapes file-mode results: the per-run summary dictionary that the API
returns and the orchestrator writes to ``conversion_summary.json``.
"""
from collections import Counter
from typing import Dict, List, Optional


def summarize_applied_rules(results: List[dict]) -> Dict[str, int]:
    """Applied-rule labels over all file results with their counts, most frequent first."""
    fired = Counter()
    for file_result in results:
        fired.update(file_result.get('applied_rules', []))
    return dict(fired.most_common())


def overall_status(results: List[dict]) -> str:
    """'success' when no file failed, 'error' when none converted, otherwise 'partial_success'."""
    statuses = {r.get('status') for r in results}
    if statuses <= {'success', 'skipped'}:
        return 'success'
    return 'partial_success' if 'success' in statuses else 'error'


def create_result_dictionary(status: str, message: str, stats: dict, results: list,
                             output_dir: Optional[str] = None, source_file: Optional[str] = None,
                             **extra) -> dict:
    """
    Summary of a file-mode run.

    Args:
        status: 'success', 'partial_success' or 'error'
        message: One-line description of the run
        stats: Counters from ``create_processing_stats()``; per-status file
            counts are added here
        results: One dict per input file
        output_dir: Folder holding the converted files
        source_file: Set when a single file was converted
        **extra: Further top-level entries; ``None`` values are left out

    Returns:
        The summary dictionary, JSON-serialisable
    """
    by_status = Counter(r.get('status') for r in results)
    summary = {
        "status": status,
        "message": message,
        "stats": {**stats, "files_successful": by_status['success'], "files_failed": by_status['error']},
        "conversion_summary": summarize_applied_rules(results),
        "results": results,
    }

    optional = {"output_directory": str(output_dir) if output_dir else None, "source_file": source_file, **extra}
    summary.update({key: value for key, value in optional.items() if value is not None})
    return summary
