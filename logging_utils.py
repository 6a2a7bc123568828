"""Root logger setup shared by the web UI and the CLI entry point."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_DIR_ENV = "QR_PLACEMENT_LOG_DIR"
LOG_FILE_NAME = "qr_placement.log"
MAX_LOG_BYTES = 1_000_000
BACKUP_COUNT = 3

FILE_HANDLER_NAME = "qr_placement_file"
CONSOLE_HANDLER_NAME = "qr_placement_console"

# Per-request chatter from the dev server and the API client.
NOISY_LOGGERS = ("werkzeug", "httpx", "httpcore")

_FORMATTER = logging.Formatter(
    fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def default_log_path() -> Path:
    log_dir = Path(os.environ.get(LOG_DIR_ENV) or Path.home() / ".qr_placement" / "logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / LOG_FILE_NAME


def _named_handler(root: logging.Logger, name: str) -> logging.Handler | None:
    for handler in root.handlers:
        if handler.get_name() == name:
            return handler
    return None


def configure_logging(*, debug: bool = False, log_path: str | None = None) -> None:
    """Attach the rotating file handler, plus a console handler in debug.

    Calling it again only adjusts levels; handlers are never duplicated.
    """

    level = logging.DEBUG if debug else logging.INFO
    root = logging.getLogger()
    root.setLevel(level)

    file_handler = _named_handler(root, FILE_HANDLER_NAME)
    if file_handler is None:
        file_handler = RotatingFileHandler(
            log_path or default_log_path(),
            maxBytes=MAX_LOG_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.set_name(FILE_HANDLER_NAME)
        file_handler.setFormatter(_FORMATTER)
        root.addHandler(file_handler)
    file_handler.setLevel(level)

    if debug and _named_handler(root, CONSOLE_HANDLER_NAME) is None:
        console = logging.StreamHandler()
        console.set_name(CONSOLE_HANDLER_NAME)
        console.setLevel(level)
        console.setFormatter(_FORMATTER)
        root.addHandler(console)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if debug else logging.WARNING)
