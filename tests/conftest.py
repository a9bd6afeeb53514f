"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from milestone_feed.config import AppConfig


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    cfg = AppConfig()
    cfg.store.data_dir = str(tmp_path / "data")
    cfg.store.logs_dir = str(tmp_path / "logs")
    cfg.store.review_dir = str(tmp_path / "review")
    cfg.logging.console = False
    cfg.corroboration.delay_seconds = 0
    return cfg
