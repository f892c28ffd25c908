"""
Runtime logging helpers.

Every module takes a module-level `log = get_logger("<area>.<module>")`.
Loggers write to the console and, unless disabled, to one file per run
under CLIPT_LOG_DIR.

Environment:
- CLIPT_LOG_DIR     : log directory (default: logs)
- CLIPT_LOG_LEVEL   : console threshold (default: INFO)
- CLIPT_LOG_TO_FILE : "0" / "false" disables the per-run file
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_LOGGERS: Dict[str, logging.Logger] = {}
_FILE_HANDLERS: Dict[str, logging.FileHandler] = {}
_RUN_STAMP = datetime.now().strftime("%Y%m%d-%H%M%S")


def _console_level() -> int:
    raw = os.getenv("CLIPT_LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else logging.INFO


def _file_logging_enabled() -> bool:
    return os.getenv("CLIPT_LOG_TO_FILE", "1").strip().lower() not in {"0", "false", "no"}


def _file_handler(runtime: str, formatter: logging.Formatter) -> Optional[logging.FileHandler]:
    """One shared file per runtime per process run."""
    if not _file_logging_enabled():
        return None

    if runtime not in _FILE_HANDLERS:
        log_dir = Path(os.getenv("CLIPT_LOG_DIR", "logs"))
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(
            log_dir / f"{runtime}-{_RUN_STAMP}.log", encoding="utf-8"
        )
        handler.setFormatter(formatter)
        _FILE_HANDLERS[runtime] = handler

    return _FILE_HANDLERS[runtime]


def get_logger(
    name: str,
    *,
    runtime: str = "clipt",
) -> logging.Logger:
    """
    Create or retrieve a named logger.

    Parameters:
    - name: logger namespace (e.g. provider.health, core.app)
    - runtime: log file prefix (clipt | cli)
    """
    cache_key = f"{runtime}:{name}"
    if cache_key in _LOGGERS:
        return _LOGGERS[cache_key]

    logger = logging.getLogger(cache_key)
    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setLevel(_console_level())
    console.setFormatter(formatter)
    logger.addHandler(console)

    file_handler = _file_handler(runtime, formatter)
    if file_handler is not None:
        logger.addHandler(file_handler)

    logger.propagate = False
    _LOGGERS[cache_key] = logger

    return logger
