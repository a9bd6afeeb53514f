"""Tests for the run log and the LLM interaction log."""

from __future__ import annotations

import json
import logging

from milestone_feed.config import LoggingConfig
from milestone_feed.logging_utils import (
    get_logger,
    log_event,
    redact_text,
    setup_llm_logger,
    setup_logging,
    truncate_text,
    warn_event,
)


def _flush(logger):
    for handler in logger.handlers:
        handler.flush()


def test_jsonl_run_log_keeps_structured_fields(tmp_path):
    logger = setup_logging(LoggingConfig(console=False), tmp_path)

    warn_event(get_logger("runner"), "Skipping invalid event", event="event_invalid", event_label="Qwen3")
    _flush(logger)

    record = json.loads((tmp_path / "run.jsonl").read_text(encoding="utf-8").splitlines()[-1])
    assert record["level"] == "WARNING"
    assert record["logger"] == "milestone_feed.runner"
    assert record["message"] == "Skipping invalid event"
    assert record["event"] == "event_invalid"
    assert record["event_label"] == "Qwen3"


def test_repeated_setup_does_not_stack_handlers(tmp_path):
    setup_logging(LoggingConfig(console=False), tmp_path)
    logger = setup_logging(LoggingConfig(console=False), tmp_path)
    assert len(logger.handlers) == 1


def test_unknown_level_falls_back_to_info_and_quiets_http_stack(tmp_path):
    logger = setup_logging(LoggingConfig(console=False, file=False, level="chatty"), tmp_path)
    assert logger.level == logging.INFO
    assert logging.getLogger("httpx").level == logging.WARNING

    setup_logging(LoggingConfig(console=False, file=False, level="debug"), tmp_path)
    assert logging.getLogger("httpx").level == logging.DEBUG


def test_llm_logger_disabled_or_without_directory():
    assert setup_llm_logger(LoggingConfig(llm_log_enabled=False), None) is None
    assert setup_llm_logger(LoggingConfig(), None) is None


def test_llm_logger_writes_jsonl(tmp_path):
    logger = setup_llm_logger(LoggingConfig(), tmp_path)
    log_event(logger, "LLM response", purpose="nomination", status="ok")
    _flush(logger)

    record = json.loads((tmp_path / "llm.jsonl").read_text(encoding="utf-8"))
    assert record["purpose"] == "nomination"
    assert record["status"] == "ok"


def test_event_helpers_ignore_missing_logger():
    log_event(None, "nothing")
    warn_event(None, "nothing")


def test_redact_and_truncate():
    text = "see https://example.com/post for details"
    assert redact_text(text, "none") == text
    assert redact_text(text, "redact_urls") == "see [REDACTED_URL] for details"
    assert redact_text(text, "redact_content") == ""
    assert truncate_text("abcdef", 3) == "abc...(truncated)"
    assert truncate_text("abc", 3) == "abc"
