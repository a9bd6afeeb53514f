"""
Run logging and the separate LLM interaction log.

Every log call passes structured fields through `extra`; the console shows
only the message while the JSONL file keeps the fields, so a skipped event
can be traced back by its identity key or title after the run.
"""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
from pathlib import Path
import re
from typing import Any

from rich.logging import RichHandler

from .config import LoggingConfig

LOGGER_NAME = "milestone_feed"

# Per-request logs of the HTTP stack; shown only at DEBUG.
NOISY_LOGGERS = ("httpx", "httpcore")

LLM_TEXT_MAX_CHARS = 20000

_URL_RE = re.compile(r"https?://\S+")

_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys() | {"message", "asctime"}
)


class JsonlFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message and extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update({k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS})
        return json.dumps(payload, ensure_ascii=True, default=str)


def setup_logging(cfg: LoggingConfig, logs_dir: Path | None) -> logging.Logger:
    """Configure the package logger; the file handler needs `logs_dir`."""
    level = logging.getLevelName(cfg.level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logger = _fresh_logger(LOGGER_NAME, level)
    if cfg.console:
        console = RichHandler(rich_tracebacks=True, show_time=False, show_level=True)
        console.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(console)
    if cfg.file and logs_dir is not None:
        formatter = JsonlFormatter() if cfg.format == "jsonl" else logging.Formatter(
            "%(asctime)s %(levelname)s %(message)s"
        )
        logger.addHandler(_file_handler(logs_dir / cfg.filename, formatter))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)
    return logger


def setup_llm_logger(cfg: LoggingConfig, logs_dir: Path | None) -> logging.Logger | None:
    """JSONL log of raw completions, or None when disabled."""
    if not cfg.llm_log_enabled or logs_dir is None:
        return None
    logger = _fresh_logger(f"{LOGGER_NAME}.llm", logging.INFO)
    logger.addHandler(_file_handler(logs_dir / cfg.llm_log_file, JsonlFormatter()))
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_NAME}.{name}" if name else LOGGER_NAME)


def log_event(logger: logging.Logger | None, message: str, **fields: Any) -> None:
    if logger is not None:
        logger.info(message, extra=fields)


def warn_event(logger: logging.Logger | None, message: str, **fields: Any) -> None:
    if logger is not None:
        logger.warning(message, extra=fields)


def redact_text(text: str, mode: str) -> str:
    """Apply an LLM log redaction mode: "none", "redact_content" or "redact_urls"."""
    if mode == "redact_content":
        return ""
    if mode == "redact_urls":
        return _URL_RE.sub("[REDACTED_URL]", text)
    return text


def truncate_text(text: str, max_chars: int = LLM_TEXT_MAX_CHARS) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "...(truncated)"


def _fresh_logger(name: str, level: int) -> logging.Logger:
    # re-running setup in one process must not stack handlers
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)
    logger.propagate = False
    return logger


def _file_handler(path: Path, formatter: logging.Formatter) -> logging.FileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(formatter)
    return handler
