"""Loads ``app/settings.yaml`` once at import and exposes it as ``config``.

Relative ``base_dirs`` entries are resolved against the project root, and
``SQLSWITCH_LOG_LEVEL`` overrides the console log level.
"""
import logging
import os
from pathlib import Path

import yaml

LOG_LEVEL_ENV = 'SQLSWITCH_LOG_LEVEL'

APP_DIR = Path(__file__).resolve().parent.parent
PROJECT_ROOT = APP_DIR.parent
SETTINGS_FILE = APP_DIR / 'settings.yaml'


def _absolute_dirs(base_dirs: dict) -> dict:
    resolved = {}
    for key, value in base_dirs.items():
        if isinstance(value, str) and not os.path.isabs(value):
            value = str((PROJECT_ROOT / value).resolve())
        resolved[key] = value
    return resolved


def load_config(settings_file: Path = SETTINGS_FILE) -> dict:
    """Read *settings_file* and fill in the keys the services rely on."""
    if not settings_file.exists():
        raise FileNotFoundError(f"settings.yaml not found at {settings_file}")

    try:
        with open(settings_file, encoding='utf-8') as f:
            settings = yaml.safe_load(f) or {}
    except yaml.YAMLError as ye:
        raise ValueError(f"settings.yaml could not be parsed: {ye}") from ye

    if not isinstance(settings, dict):
        logging.warning(f"{settings_file} does not hold a mapping; using defaults.")
        settings = {}

    env_level = os.getenv(LOG_LEVEL_ENV)
    if env_level:
        settings.setdefault('logging', {}).setdefault('level', {})['console'] = env_level.upper()

    settings['base_dirs'] = _absolute_dirs(settings.get('base_dirs') or {})
    # rule tables are looked up under the app directory
    settings['base_dirs'].setdefault('app', str(APP_DIR))
    settings.setdefault('conversion', {})
    return settings


try:
    config = load_config()
except (OSError, ValueError) as e:
    logging.critical(f"Could not load application settings: {e}", exc_info=True)
    raise SystemExit(f"Application cannot start due to configuration load failure: {e}")
