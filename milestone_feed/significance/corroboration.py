"""
Stage 2: corroborate nominated candidates with external signals.

Sources for one candidate are queried concurrently; candidates are checked
one after another with a fixed pause in between to respect third-party
rate limits. A candidate is promoted when any source passes its threshold.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import Any, Sequence

import httpx

from ..config import CorroborationConfig
from ..core.normalize import search_keyword
from ..logging_utils import get_logger, log_event
from ..tracing import set_span_output, start_span
from .nomination import Candidate
from .signals import HackerNewsSignal, SignalReading, SignalSource, WikipediaSignal, event_window

SKIP_REASON = "skip-validation"


@dataclass
class CorroborationDecision:
    """Final promotion decision for one candidate."""

    key: str
    date: str
    title: str
    keyword: str
    promoted: bool
    reason: str
    readings: list[SignalReading] = field(default_factory=list)
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "date": self.date,
            "title": self.title,
            "keyword": self.keyword,
            "skipped": self.skipped,
            "readings": [reading.to_dict() for reading in self.readings],
            "promoted": self.promoted,
            "reason": self.reason,
        }


def is_promoted(readings: Sequence[SignalReading]) -> bool:
    """OR across sources: any value at or above its threshold promotes."""
    return any(reading.value >= reading.threshold for reading in readings)


def describe(readings: Sequence[SignalReading]) -> str:
    """Human-readable reason naming the comparisons that decided the outcome."""
    passed = [r for r in readings if r.value >= r.threshold]
    if passed:
        return "PASS " + "+".join(f"{r.source} {r.value:g}>={r.threshold:g}" for r in passed)
    if not readings:
        return "FAIL: no signal sources configured"
    return "FAIL: " + ", ".join(f"{r.source} {r.value:g}<{r.threshold:g}" for r in readings)


def build_sources(cfg: CorroborationConfig) -> list[SignalSource]:
    sources: list[SignalSource] = []
    if cfg.hackernews_enabled:
        sources.append(HackerNewsSignal(cfg.hackernews_threshold))
    if cfg.wikipedia_enabled:
        sources.append(WikipediaSignal(cfg.wikipedia_threshold, baseline_article=cfg.wikipedia_baseline_article))
    return sources


def skipped_decision(candidate: Candidate) -> CorroborationDecision:
    """Decision for a candidate promoted without external checks."""
    return CorroborationDecision(
        key=candidate.key,
        date=candidate.event.date,
        title=candidate.event.title,
        keyword="",
        promoted=True,
        reason=SKIP_REASON,
        skipped=True,
    )


class Corroborator:
    """Checks candidates against the configured signal sources."""

    def __init__(
        self,
        cfg: CorroborationConfig | None = None,
        sources: Sequence[SignalSource] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ):
        self.cfg = cfg or CorroborationConfig()
        self.sources = list(sources) if sources is not None else build_sources(self.cfg)
        self.transport = transport
        self.logger = logger or get_logger("corroborate")

    def run(self, candidates: Sequence[Candidate]) -> list[CorroborationDecision]:
        """Synchronous entry point: one event loop for the whole evaluation."""
        return asyncio.run(self.check_all(candidates))

    async def check_all(self, candidates: Sequence[Candidate]) -> list[CorroborationDecision]:
        decisions: list[CorroborationDecision] = []
        async with self._client() as client:
            for idx, candidate in enumerate(candidates):
                decisions.append(await self.check(candidate, client))
                if idx < len(candidates) - 1 and self.cfg.delay_seconds > 0:
                    await asyncio.sleep(self.cfg.delay_seconds)
        return decisions

    async def check(self, candidate: Candidate, client: httpx.AsyncClient) -> CorroborationDecision:
        event = candidate.event
        keyword = search_keyword(event.title)
        start, end = event_window(event.date, self.cfg.window_days_before, self.cfg.window_days_after)

        with start_span(
            "corroborate",
            kind="tool",
            input_value=keyword,
            attributes={"event.key": candidate.key, "event.date": event.date},
        ) as span:
            readings = list(
                await asyncio.gather(*(source.read(client, keyword, start, end) for source in self.sources))
            )
            promoted = is_promoted(readings)
            decision = CorroborationDecision(
                key=candidate.key,
                date=event.date,
                title=event.title,
                keyword=keyword,
                promoted=promoted,
                reason=describe(readings),
                readings=readings,
            )
            set_span_output(span, decision.reason)

        log_event(
            self.logger,
            "Candidate corroborated",
            event="corroborate_candidate",
            key=candidate.key,
            keyword=keyword,
            promoted=promoted,
            reason=decision.reason,
        )
        return decision

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.cfg.timeout_seconds,
            headers={"User-Agent": self.cfg.user_agent},
            follow_redirects=True,
            transport=self.transport,
        )
