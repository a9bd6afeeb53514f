"""Builders for events and stores, and a scripted LLM provider."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from milestone_feed.config import LoggingConfig, ProviderConfig
from milestone_feed.core.types import Event, TimelineStore
from milestone_feed.errors import ProviderError
from milestone_feed.llm.providers.base import CompletionProvider
from milestone_feed.store import derive_file_name, render_store


def event_dict(
    date: str = "2025-01-20",
    title: str = "DeepSeek-R1 released (reasoning model, open weights)",
    organization: str = "DeepSeek",
    model_family: str = "DeepSeek-R1",
    level: str = "high",
    **overrides: Any,
) -> dict[str, Any]:
    data = {
        "date": date,
        "date_precision": "day" if len(date) == 10 else "month",
        "title": title,
        "organization": organization,
        "model_family": model_family,
        "modalities": ["text"],
        "release_type": "open-weights",
        "description": f"{organization} released {model_family}.",
        "why_it_mattered": "It moved the field.",
        "network_impact": {"level": level, "markers": ["open-weights", "reasoning"]},
        "sources": [{"label": f"{organization} - announcement", "url": "https://example.com/post"}],
    }
    data.update(overrides)
    return data


def make_event(**kwargs: Any) -> Event:
    return Event.model_validate(event_dict(**kwargs))


def store_dict(months: dict[str, list[dict[str, Any]]] | None = None, **overrides: Any) -> dict[str, Any]:
    months = months if months is not None else {"2025-01": [event_dict()]}
    data = {
        "as_of": "2025-01-31",
        "timezone": "UTC",
        "range_start": "2025-01-01",
        "range_end_inclusive": "2025-01-31",
        "scope_note": "Model releases and major upgrades.",
        "impact_legend": {
            "watershed": "Changed the industry narrative",
            "high": "Widely adopted or benchmark-leading",
            "medium": "Notable within its niche",
            "low": "Incremental",
        },
        "context_before_2025": [
            event_dict(
                date="2024-05-13",
                title="GPT-4o released (omni model)",
                organization="OpenAI",
                model_family="GPT-4o",
                level="watershed",
            )
        ],
        "months": [{"month": month, "events": events} for month, events in months.items()],
    }
    data.update(overrides)
    return data


def make_store(**kwargs: Any) -> TimelineStore:
    return TimelineStore.model_validate(store_dict(**kwargs))


def write_store_file(directory: Path, store: TimelineStore | None = None) -> Path:
    store = store or make_store()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / derive_file_name(store)
    path.write_text(render_store(store), encoding="utf-8")
    return path


class ScriptedProvider(CompletionProvider):
    """Provider returning queued responses; an Exception instance is raised instead."""

    name = "scripted"

    def __init__(self, responses: list[Any]):
        super().__init__(ProviderConfig(model="test-model", model_env=""), api_key="test-key", log_cfg=LoggingConfig())
        self.responses = list(responses)
        self.calls: list[tuple[str, str]] = []

    def _request(self, system_prompt, user_prompt, temperature, max_tokens):
        self.calls.append((system_prompt, user_prompt))
        if not self.responses:
            raise ProviderError("no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if not isinstance(response, str):
            return json.dumps(response)
        return response


class RecordingRunner:
    """Command runner for `Publisher` that records git / gh invocations.

    `outputs` maps the first three arguments of a command to its stdout.
    Bodies passed via --body-file are captured before the file is removed.
    """

    def __init__(self, outputs: dict[tuple[str, ...], str] | None = None):
        self.commands: list[list[str]] = []
        self.bodies: list[str] = []
        self.outputs = outputs or {}

    def __call__(self, args):
        args = list(args)
        self.commands.append(args)
        if "--body-file" in args:
            self.bodies.append(Path(args[args.index("--body-file") + 1]).read_text(encoding="utf-8"))
        return self.outputs.get(tuple(args[:3]), "")

