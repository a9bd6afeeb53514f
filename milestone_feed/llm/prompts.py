"""Prompt loading and rendering helpers for extraction and nomination."""

from __future__ import annotations

from functools import lru_cache
import json
from pathlib import Path
from typing import Sequence

from ..core.types import MODALITIES, Event, NewsletterItem


_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

EXAMPLE_EVENT = {
    "date": "2025-01-20",
    "date_precision": "day",
    "title": "DeepSeek-R1 released (reasoning model, open weights)",
    "organization": "DeepSeek",
    "model_family": "DeepSeek-R1",
    "modalities": ["text"],
    "release_type": "open-weights",
    "description": (
        "DeepSeek released R1 as a reasoning-focused model and also published distilled "
        "smaller models, emphasizing permissive use and community re-use."
    ),
    "why_it_mattered": (
        "It was quickly framed as a 'DeepSeek moment': a strong open-weights reasoning release "
        "that pushed global conversation about cost/performance and open ecosystems."
    ),
    "network_impact": {
        "level": "watershed",
        "markers": ["open-weights", "reasoning", "community-forks", "narrative-shift"],
    },
    "sources": [
        {
            "label": "DeepSeek - DeepSeek-R1 release",
            "url": "https://api-docs.deepseek.com/news/news250120",
        }
    ],
}


@lru_cache(maxsize=None)
def _load_template(name: str) -> str:
    path = _TEMPLATE_DIR / f"{name}.md"
    return path.read_text(encoding="utf-8").strip()


def _render_template(name: str, **values: str) -> str:
    template = _load_template(name)
    return template.format(**values)


def build_extraction_system_prompt(
    known_organizations: Sequence[str],
    known_families: Sequence[str],
    impact_legend: dict[str, str],
) -> str:
    return _render_template(
        "extraction_system",
        known_organizations=", ".join(known_organizations) or "(none yet)",
        known_families=", ".join(known_families) or "(none yet)",
        modalities=", ".join(f'"{m}"' for m in MODALITIES),
        impact_legend=json.dumps(impact_legend, indent=2, ensure_ascii=False),
        example_event=json.dumps(EXAMPLE_EVENT, indent=2, ensure_ascii=False),
    )


def build_extraction_user_prompt(items: Sequence[NewsletterItem], max_chars: int) -> str:
    """Render the user message for one newsletter item or a batch of short ones.

    A single item keeps the plain "date + content" shape; batched items are
    each tagged with their date, title and link so the model can date events
    per item.
    """
    if len(items) == 1:
        item = items[0]
        return f"Newsletter date: {item.pub_date}\n\nNewsletter content:\n{item.content[:max_chars]}"

    budget = max(max_chars // len(items), 1)
    blocks = []
    for idx, item in enumerate(items, start=1):
        blocks.append(
            f"### Item {idx}\n"
            f"Date: {item.pub_date}\n"
            f"Title: {item.title}\n"
            f"Link: {item.link}\n\n"
            f"{item.content[:budget]}"
        )
    return (
        f"The following {len(items)} newsletter items are batched together. "
        "Use each item's own date for the events it reports.\n\n" + "\n\n".join(blocks)
    )


def build_nomination_system_prompt() -> str:
    return _render_template("nomination_system")


def build_nomination_user_prompt(events: Sequence[Event]) -> str:
    listing = "\n".join(
        f"[{idx}] {event.date} | {event.organization} | {event.title}\n    {event.description}"
        for idx, event in enumerate(events)
    )
    return f"Evaluate these {len(events)} events:\n\n{listing}"
