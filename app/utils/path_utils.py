from datetime import datetime
from pathlib import Path
from typing import Optional

from app.config import config

__all__ = ["workspace_path", "run_timestamp", "create_run_directory"]


def workspace_path(*segments) -> Path:
    """Join *segments* under the configured workspace root.

    ``None`` or blank segments raise ``ValueError`` rather than silently
    collapsing into the parent folder.
    """
    root = Path(config["base_dirs"]["workspace"])
    blank = [s for s in segments if s is None or not str(s).strip()]
    if blank:
        raise ValueError(f"workspace_path() got blank segment(s): {blank}")
    return root.joinpath(*segments)


def run_timestamp() -> str:
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def create_run_directory(prefix: Optional[str] = None, *, parent: Optional[str] = None,
                         stamp: Optional[str] = None) -> Path:
    """Create ``workspace/<parent>/<prefix>_<stamp>`` and return it.

    *parent* defaults to ``conversion.output_subdir`` (``converted``); file-mode
    runs pass the dialect pair as *prefix*, e.g. ``oracle_mysql_20240101_120000``.
    """
    parent = parent or config.get("conversion", {}).get("output_subdir", "converted")
    stamp = stamp or run_timestamp()
    folder = workspace_path(parent, f"{prefix}_{stamp}" if prefix else stamp)
    folder.mkdir(parents=True, exist_ok=True)
    return folder
