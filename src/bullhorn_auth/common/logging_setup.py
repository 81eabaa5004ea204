"""
Handler and formatter setup for the bullhorn_auth CLI.

The console gets short human-readable lines. The optional log file gets one
JSON object per line, with URL fields passed through sanitize_url so a
BhRestToken never lands on disk.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from bullhorn_auth.common.security import sanitize_url

DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 5
DEFAULT_CONSOLE_LEVEL = logging.INFO
DEFAULT_FILE_LEVEL = logging.DEBUG

# Third-party loggers capped at WARNING
NOISY_LOGGERS = ("aiohttp", "asyncio", "urllib3")

PLAIN_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(filename)s:%(lineno)d] %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for jq and log shippers."""

    # Record attributes copied into the entry when present
    EXTRA_FIELDS = (
        "cluster",
        "client_name",
        "api_url",
        "api_endpoint",
        "api_method",
        "http_status",
        "duration_ms",
        "error_category",
        "error_message",
        "step",
        "event",
        "session_expires",
        "refresh_margin_hours",
        "every_minutes",
        "next_run",
        "url",
    )

    URL_FIELDS = frozenset({"api_url", "url"})

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: Dict[str, Any] = {
            "ts": stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.levelno == logging.DEBUG or record.levelno >= logging.ERROR:
            entry["file"] = f"{record.filename}:{record.lineno}"

        for name in self.EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is None:
                continue
            if name in self.URL_FIELDS and isinstance(value, str):
                value = sanitize_url(value)
            entry[name] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """`<time> - <LEVEL> - [cluster] - <message>: <error_message>`"""

    def format(self, record: logging.LogRecord) -> str:
        fields = [self.formatTime(record, "%Y-%m-%d %H:%M:%S"), record.levelname]
        cluster = getattr(record, "cluster", None)
        if cluster:
            fields.append(f"[{cluster}]")
        fields.append(record.getMessage())

        line = " - ".join(fields)
        error_message = getattr(record, "error_message", None)
        return f"{line}: {error_message}" if error_message else line


def get_log_file_path(log_dir: Path, name: str) -> Path:
    """{log_dir}/{YYYY-MM-DD}/{name}_{YYYYMMDD}.log"""
    today = datetime.now()
    return Path(log_dir) / f"{today:%Y-%m-%d}" / f"{name}_{today:%Y%m%d}.log"


def _file_handler(
    path: Path, json_format: bool, level: int, max_bytes: int, backup_count: int
) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(PLAIN_FILE_FORMAT))
    return handler


def setup_logging(
    name: str = "bullhorn_auth",
    log_dir: Optional[Path] = None,
    json_format: bool = True,
    console_level: int = DEFAULT_CONSOLE_LEVEL,
    file_level: int = DEFAULT_FILE_LEVEL,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    suppress_noisy: bool = True,
) -> logging.Logger:
    """
    Install the console handler, plus a rotating file handler when log_dir is set.

    Existing root handlers are removed, so calling this twice does not
    duplicate output.

    Args:
        name: Returned logger's name, also the log file prefix
        log_dir: Root of the dated log folders; None disables file logging
        json_format: JSON lines in the file instead of plain text
        console_level: Threshold for stdout
        file_level: Threshold for the file
        max_bytes: Rotation size
        backup_count: Rotated files kept
        suppress_noisy: Cap aiohttp/asyncio/urllib3 at WARNING

    Returns:
        The logger called name
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(ConsoleFormatter())
    root.addHandler(console)

    log_file = None
    if log_dir is not None:
        log_file = get_log_file_path(log_dir, name)
        root.addHandler(_file_handler(log_file, json_format, file_level, max_bytes, backup_count))

    if suppress_noisy:
        for noisy in NOISY_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug("Logging initialized: file=%s, json=%s", log_file, json_format)
    return logger
