"""
File helpers for file-mode conversion runs: SQL discovery, tolerant reads
and the JSON/CSV writers behind the summary and manual review reports.
"""
import csv
import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

PathLike = Union[str, Path]

# Folders a previous run may have left inside the input tree
SKIPPED_DIRS = frozenset({'converted', 'logs', '__pycache__', '.git'})


def find_sql_files(input_path: str, exclude_dirs: Optional[Iterable[str]] = None) -> List[str]:
    """
    Collect the ``.sql`` files below *input_path*.

    Args:
        input_path: A folder (searched recursively) or a single ``.sql`` file
        exclude_dirs: Folder names to prune; defaults to ``SKIPPED_DIRS``

    Returns:
        Sorted file paths; empty when nothing matches
    """
    skipped = SKIPPED_DIRS if exclude_dirs is None else frozenset(exclude_dirs)
    start = os.path.normpath(input_path)

    if os.path.isfile(start):
        return [start] if start.lower().endswith('.sql') else []

    found = []
    for folder, subfolders, names in os.walk(start):
        subfolders[:] = [d for d in subfolders if d not in skipped]
        found.extend(os.path.join(folder, n) for n in names if n.lower().endswith('.sql'))
    return sorted(found)


def create_processing_stats() -> Dict[str, int]:
    counters = ('total_files', 'files_converted', 'files_failed', 'total_statements',
                'statements_changed', 'warnings', 'errors')
    return dict.fromkeys(counters, 0)


def read_file_content(file_path: PathLike) -> Optional[str]:
    """Text of *file_path* with BOM and CR line endings removed, or None when blank or unreadable."""
    try:
        text = Path(file_path).read_text(encoding='utf-8-sig')
    except (OSError, UnicodeDecodeError):
        return None
    if not text.strip():
        return None
    return text.replace('\r\n', '\n').replace('\r', '\n')


def _prepare(file_path: PathLike) -> Path:
    target = Path(file_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    return target


def write_file_content(file_path: PathLike, content: str) -> None:
    _prepare(file_path).write_text(content, encoding='utf-8')


def write_json(file_path: PathLike, payload: Any) -> None:
    with _prepare(file_path).open('w', encoding='utf-8') as handle:
        json.dump(payload, handle, indent=2, ensure_ascii=False)


def write_csv(file_path: PathLike, headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> None:
    """Header row first, then *rows* as-is."""
    with _prepare(file_path).open('w', newline='', encoding='utf-8') as handle:
        writer = csv.writer(handle)
        writer.writerow(headers)
        writer.writerows(rows)
