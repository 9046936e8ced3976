"""
Reads the per-pair JSON rule tables under ``app/config/conversion``.

Layout: ``<app>/config/conversion/<source>_<target>/<subdirectory>/<file>.json``
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from app import config as app_global_config


def conversion_config_root() -> Optional[Path]:
    app_dir = app_global_config.get('base_dirs', {}).get('app')
    return Path(app_dir) / 'config' / 'conversion' if app_dir else None


def list_configured_pairs() -> List[Tuple[str, str]]:
    """(source, target) names of every ``<source>_<target>`` rule folder, sorted."""
    root = conversion_config_root()
    if root is None or not root.is_dir():
        return []
    folders = sorted(p.name for p in root.iterdir() if p.is_dir())
    return [tuple(name.split('_')) for name in folders if name.count('_') == 1]


def load_json_from_conversion_config(
    logger: Any,
    source_type: str,
    target_type: str,
    rules_subdirectory: str,
    config_filename: str
) -> Dict:
    """
    One rule table of a dialect pair as a dict.

    A pair without the file gets ``{}`` (logged at INFO). Unreadable or
    malformed JSON is logged as an error and also gives ``{}``; the registry
    decides what an empty table means.
    """
    log = logger or logging.getLogger(__name__)

    root = conversion_config_root()
    if root is None:
        log.error("base_dirs.app is not configured; rule tables cannot be located.")
        return {}
    if not source_type or not target_type:
        log.error(f"Cannot locate {config_filename}: source '{source_type}' / target '{target_type}' missing.")
        return {}

    table_path = root / f'{source_type.lower()}_{target_type.lower()}' / rules_subdirectory / config_filename
    if not table_path.is_file():
        log.info(f"No {config_filename} for {source_type} -> {target_type} ({table_path})")
        return {}

    try:
        data = json.loads(table_path.read_text(encoding='utf-8'))
    except (OSError, json.JSONDecodeError) as e:
        log.error(f"Rule table {table_path} could not be loaded: {e}", exc_info=True)
        return {}

    if not isinstance(data, dict):
        log.error(f"Rule table {table_path} must hold a JSON object, got {type(data).__name__}.")
        return {}
    log.debug(f"Loaded rule table {table_path}")
    return data
