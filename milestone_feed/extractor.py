"""
LLM-based event extraction from newsletter items.

One completion per newsletter item (or per batch of short items). The
response is parsed tolerantly and each element is validated on its own, so
a single malformed event never discards its siblings.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Sequence

from pydantic import ValidationError as PydanticValidationError
from rapidfuzz import fuzz, process, utils

from .config import ExtractConfig, FeedConfig
from .core.normalize import normalize_versions
from .core.types import Event, ExtractionResult, NewsletterItem, TimelineStore
from .errors import EventValidationError, ExtractionParseError, ProviderError
from .llm.json_response import parse_json_list
from .llm.prompts import build_extraction_system_prompt, build_extraction_user_prompt
from .llm.providers.base import CompletionProvider
from .logging_utils import get_logger, log_event, warn_event
from .store import all_events
from .tracing import start_span


def known_names(store: TimelineStore) -> tuple[list[str], list[str]]:
    """Sorted unique organizations and model families already in the store."""
    events = all_events(store)
    organizations = sorted({event.organization for event in events})
    families = sorted({event.model_family for event in events})
    return organizations, families


_DIGITS_RE = re.compile(r"\d+")


def version_digits(name: str) -> tuple[str, ...]:
    """Digit runs of a name after version normalization ("Gemini 2.5" -> ("25",))."""
    return tuple(_DIGITS_RE.findall(normalize_versions(name.lower())))


def canonicalize_name(name: str, known: Sequence[str], threshold: int) -> str:
    """Snap `name` to a known spelling when they are near-identical.

    Comparison ignores case and punctuation ("GPT 4" matches "GPT-4").
    Only names carrying the same version digits are candidates, so
    "Gemini 2.5 Flash" never snaps to "Gemini 2.0 Flash".
    A threshold of 0 disables snapping.
    """
    if threshold <= 0 or not known:
        return name
    digits = version_digits(name)
    candidates = [candidate for candidate in known if version_digits(candidate) == digits]
    if not candidates:
        return name
    match = process.extractOne(
        name,
        candidates,
        scorer=fuzz.WRatio,
        processor=utils.default_process,
        score_cutoff=threshold,
    )
    if match is None:
        return name
    return match[0]


def parse_event(raw: Any, label: str) -> Event:
    """Validate one raw event.

    Raises:
        EventValidationError: If the element does not match the event schema
    """
    try:
        return Event.model_validate(raw)
    except PydanticValidationError as exc:
        raise EventValidationError(f"{label}: {exc}") from exc


def validate_events(raw_events: list[Any], logger: logging.Logger | None = None) -> tuple[list[Event], int]:
    """Validate each element independently.

    Returns the valid events and the number of skipped elements.
    """
    events: list[Event] = []
    skipped = 0
    for idx, raw in enumerate(raw_events):
        label = raw.get("title") if isinstance(raw, dict) and raw.get("title") else f"#{idx}"
        try:
            events.append(parse_event(raw, str(label)))
        except EventValidationError as exc:
            skipped += 1
            warn_event(
                logger,
                "Skipping invalid event",
                event="event_invalid",
                event_label=str(label),
                error=str(exc),
            )
    return events, skipped


class EventExtractor:
    """Turns newsletter text into validated candidate events."""

    def __init__(
        self,
        provider: CompletionProvider,
        cfg: ExtractConfig | None = None,
        feed_cfg: FeedConfig | None = None,
        logger: logging.Logger | None = None,
    ):
        self.provider = provider
        self.cfg = cfg or ExtractConfig()
        self.feed_cfg = feed_cfg or FeedConfig()
        self.logger = logger or get_logger("extract")

    def extract(self, text: str, published: str, store: TimelineStore, title: str = "") -> ExtractionResult:
        """Extract events from a single piece of newsletter text."""
        item = NewsletterItem(title=title, link="", pub_date=published, content=text)
        return self.extract_batch([item], store)

    def extract_batch(self, items: Sequence[NewsletterItem], store: TimelineStore) -> ExtractionResult:
        """Extract events from one item or a batch of short items in one call.

        Provider and parse failures are absorbed: the result carries zero
        events and a non-"ok" status.
        """
        titles = [item.title for item in items]
        if not items:
            return ExtractionResult(items=titles)

        organizations, families = known_names(store)
        system_prompt = build_extraction_system_prompt(organizations, families, store.impact_legend)
        user_prompt = build_extraction_user_prompt(items, self.feed_cfg.max_chars)

        with start_span(
            "extract_events",
            kind="chain",
            input_value=titles,
            attributes={"items.count": len(items)},
        ):
            try:
                raw_response = self.provider.complete(
                    system_prompt,
                    user_prompt,
                    temperature=self.cfg.temperature,
                    max_tokens=self.cfg.max_output_tokens,
                    purpose="extract",
                )
            except ProviderError as exc:
                warn_event(self.logger, "Extraction call failed", event="extract_provider_error", error=str(exc))
                return ExtractionResult(status="provider_error", items=titles)

            try:
                raw_events = _parse_events(raw_response)
            except ExtractionParseError as exc:
                warn_event(
                    self.logger,
                    "Extraction response unusable",
                    event="extract_parse_error",
                    error=str(exc),
                )
                return ExtractionResult(raw_response=raw_response, status="parse_error", items=titles)

        events, skipped = validate_events(raw_events, self.logger)
        events = [self._canonicalize(event, organizations, families) for event in events]
        log_event(
            self.logger,
            "Extracted events",
            event="extract_done",
            items=len(items),
            extracted=len(events),
            skipped=skipped,
        )
        return ExtractionResult(
            events=events,
            skipped_count=skipped,
            raw_response=raw_response,
            items=titles,
        )

    def _canonicalize(self, event: Event, organizations: list[str], families: list[str]) -> Event:
        threshold = self.cfg.name_match_threshold
        organization = canonicalize_name(event.organization, organizations, threshold)
        family = canonicalize_name(event.model_family, families, threshold)
        if organization == event.organization and family == event.model_family:
            return event
        return event.model_copy(update={"organization": organization, "model_family": family})


def _parse_events(raw_response: str) -> list[Any]:
    try:
        return parse_json_list(raw_response, envelope_key="events")
    except (json.JSONDecodeError, ValueError) as exc:
        raise ExtractionParseError(str(exc)) from exc
