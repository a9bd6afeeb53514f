"""
Stage 1: LLM nomination of significance candidates.

Events are judged in chronological batches so the model compares each
release with its neighbors. A nomination is only a candidate for "high";
the final label is decided by corroboration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
from typing import Any, Sequence

from ..config import NominationConfig
from ..core.dedup import identity_key
from ..core.types import Event
from ..errors import NominationParseError, ProviderError
from ..llm.json_response import parse_json_list
from ..llm.prompts import build_nomination_system_prompt, build_nomination_user_prompt
from ..llm.providers.base import CompletionProvider
from ..logging_utils import get_logger, log_event, warn_event


@dataclass
class Candidate:
    """An event nominated for "high" significance, not yet confirmed."""

    event: Event
    key: str
    batch: int


@dataclass
class BatchNomination:
    """Outcome of nominating one batch.

    Attributes:
        index: 1-based batch number
        date_range: "first to last" event date of the batch
        size: Number of events in the batch
        candidates: Events the model labelled "high"
        retries: Failed attempts before the accepted response (or all of them)
        fallback: True when every attempt failed and the batch defaulted to low
        errors: Messages of the failed attempts
    """

    index: int
    date_range: str
    size: int
    candidates: list[Candidate] = field(default_factory=list)
    retries: int = 0
    fallback: bool = False
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch": self.index,
            "date_range": self.date_range,
            "size": self.size,
            "retries": self.retries,
            "fallback": self.fallback,
            "errors": self.errors,
            "nominated": [
                {"key": c.key, "date": c.event.date, "title": c.event.title} for c in self.candidates
            ],
        }


def parse_nomination(raw_response: str, size: int) -> list[bool]:
    """Turn a nomination response into one "is high" flag per batch index.

    Entries with an out-of-range or non-integer index are ignored; events
    the model did not mention stay low.

    Raises:
        NominationParseError: If the response holds no JSON array of labels
    """
    try:
        entries = parse_json_list(raw_response)
    except (json.JSONDecodeError, ValueError) as exc:
        raise NominationParseError(str(exc)) from exc

    flags = [False] * size
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        index = entry.get("index")
        if isinstance(index, bool) or not isinstance(index, int):
            continue
        if 0 <= index < size:
            flags[index] = str(entry.get("significance", "")).strip().lower() == "high"
    return flags


class Nominator:
    """Runs Stage 1 over a chronological event list."""

    def __init__(
        self,
        provider: CompletionProvider,
        cfg: NominationConfig | None = None,
        logger: logging.Logger | None = None,
    ):
        self.provider = provider
        self.cfg = cfg or NominationConfig()
        self.logger = logger or get_logger("nominate")
        self._system_prompt = build_nomination_system_prompt()

    def nominate(self, events: Sequence[Event]) -> list[BatchNomination]:
        ordered = sorted(events, key=lambda e: e.date)
        size = max(self.cfg.batch_size, 1)
        batches = [ordered[i : i + size] for i in range(0, len(ordered), size)]
        return [self.nominate_batch(idx, batch) for idx, batch in enumerate(batches, start=1)]

    def nominate_batch(self, index: int, events: Sequence[Event]) -> BatchNomination:
        """Nominate one batch, retrying malformed or failed responses.

        After `max_retries` retries the whole batch conservatively stays low.
        """
        result = BatchNomination(
            index=index,
            date_range=f"{events[0].date} to {events[-1].date}" if events else "",
            size=len(events),
        )
        user_prompt = build_nomination_user_prompt(events)

        for attempt in range(self.cfg.max_retries + 1):
            try:
                raw = self.provider.complete(
                    self._system_prompt,
                    user_prompt,
                    temperature=self.cfg.temperature,
                    max_tokens=self.cfg.max_output_tokens,
                    purpose="nominate",
                )
                flags = parse_nomination(raw, len(events))
            except (ProviderError, NominationParseError) as exc:
                result.retries += 1
                result.errors.append(f"{type(exc).__name__}: {exc}")
                warn_event(
                    self.logger,
                    "Nomination attempt failed",
                    event="nominate_retry",
                    batch=index,
                    attempt=attempt + 1,
                    error=str(exc),
                )
                continue

            result.candidates = [
                Candidate(event=event, key=identity_key(event), batch=index)
                for event, high in zip(events, flags)
                if high
            ]
            log_event(
                self.logger,
                "Batch nominated",
                event="nominate_batch",
                batch=index,
                size=len(events),
                nominated=len(result.candidates),
                retries=result.retries,
            )
            return result

        result.fallback = True
        warn_event(
            self.logger,
            "Nomination failed for every attempt, batch stays low",
            event="nominate_fallback",
            batch=index,
            size=len(events),
        )
        return result


def collect_candidates(nominations: Sequence[BatchNomination]) -> list[Candidate]:
    return [candidate for nomination in nominations for candidate in nomination.candidates]
