import logging
import logging.handlers
import os
from pathlib import Path
from typing import Union

from app import config

__all__ = ["setup_logger", "attach_run_log", "detach_run_log"]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
CONSOLE_FORMAT = "%(name)s - %(levelname)s - %(message)s"
RUN_LOG_NAME = "conversion.log"

# Server and reloader chatter stays on the console only
_QUIET_IN_FILE = ("uvicorn", "watchfiles")


def _level(name: str, default: int) -> int:
    return getattr(logging, str(name).upper(), default)


def _not_server_record(record: logging.LogRecord) -> bool:
    return not record.name.startswith(_QUIET_IN_FILE)


def _has_handler(owner: logging.Logger, handler_type: type, filename: str = "") -> bool:
    for handler in owner.handlers:
        if type(handler) is not handler_type:
            continue
        if not filename or getattr(handler, "baseFilename", "") == filename:
            return True
    return False


def _install_root_handlers() -> None:
    """Console plus rotating ``app.log``; safe to call any number of times."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    settings = config.get("logging", {})
    levels = settings.get("level", {})
    rotation = settings.get("rotation", {})

    if not _has_handler(root, logging.StreamHandler):
        console = logging.StreamHandler()
        console.setLevel(_level(levels.get("console", "INFO"), logging.INFO))
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        root.addHandler(console)

    logs_dir = config.get("base_dirs", {}).get("logs", "logs")
    os.makedirs(logs_dir, exist_ok=True)
    app_log = os.path.join(logs_dir, "app.log")

    if not _has_handler(root, logging.handlers.RotatingFileHandler, app_log):
        rotating = logging.handlers.RotatingFileHandler(
            app_log,
            mode="a",
            maxBytes=rotation.get("max_bytes", 10 * 1024 * 1024),
            backupCount=rotation.get("backup_count", 5),
            encoding=rotation.get("encoding", "utf-8"),
        )
        rotating.setLevel(_level(levels.get("file", "DEBUG"), logging.DEBUG))
        rotating.setFormatter(logging.Formatter(LOG_FORMAT))
        rotating.addFilter(_not_server_record)
        root.addHandler(rotating)


def setup_logger(name: str) -> logging.Logger:
    """Named DEBUG-level logger; the shared root handlers are installed on first use."""
    _install_root_handlers()
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    return logger


def attach_run_log(logger: logging.Logger, run_dir: Union[str, Path]) -> logging.FileHandler:
    """Mirror *logger* into ``conversion.log`` inside a file-mode output folder.

    The caller owns the returned handler and releases it with
    :func:`detach_run_log` when the run is over.
    """
    run_log = str(Path(run_dir) / RUN_LOG_NAME)
    Path(run_dir).mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(run_log, mode="w", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.info("Run log: %s", run_log)
    return handler


def detach_run_log(logger: logging.Logger, handler: logging.FileHandler) -> None:
    logger.removeHandler(handler)
    handler.close()
