"""
Event deduplication using identity keys and fuzzy title overlap.

Two mechanisms are provided:
1. Exact identity: a normalized (date, organization, model family) key used
   to drop candidates that already exist in the timeline.
2. Fuzzy overlap: a key-term overlap ratio between titles used to collapse
   the same release reported by several newsletter items, where the
   attributed organization or naming may differ.
"""

from __future__ import annotations

from typing import Iterable

from .normalize import FILLER_WORDS, title_terms
from .types import IMPACT_LEVELS, Event

KEY_DELIMITER = "\x1f"

STRONG_OVERLAP = 0.8
WEAK_OVERLAP = 0.5


def identity_key(event: Event) -> str:
    """Return the identity key of an event.

    Case and surrounding whitespace of each field are ignored.
    """
    return KEY_DELIMITER.join(
        part.strip().lower() for part in (event.date, event.organization, event.model_family)
    )


def deduplicate_against_existing(candidates: list[Event], existing: Iterable[Event]) -> list[Event]:
    """Return candidates whose identity key is absent from `existing`.

    A key repeated within `candidates` keeps only its first occurrence.
    The relative order of surviving candidates is preserved.
    """
    seen = {identity_key(event) for event in existing}
    kept: list[Event] = []
    for event in candidates:
        key = identity_key(event)
        if key in seen:
            continue
        seen.add(key)
        kept.append(event)
    return kept


def title_overlap_score(a: str, b: str, filler_words: frozenset[str] = FILLER_WORDS) -> float:
    """Overlap of two titles' key terms relative to the smaller term set.

    Returns a ratio in [0, 1]; 0.0 when either title has no key terms.
    """
    terms_a = title_terms(a, filler_words)
    terms_b = title_terms(b, filler_words)
    if not terms_a or not terms_b:
        return 0.0
    return len(terms_a & terms_b) / min(len(terms_a), len(terms_b))


def organizations_related(a: str, b: str) -> bool:
    left = a.strip().lower()
    right = b.strip().lower()
    if not left or not right:
        return False
    return left in right or right in left


def is_likely_duplicate(
    a: Event,
    b: Event,
    strong: float = STRONG_OVERLAP,
    weak: float = WEAK_OVERLAP,
) -> bool:
    """Decide whether two events describe the same release.

    A strong title overlap is enough on its own since outlets mis-attribute
    organizations; a weaker overlap also needs related organizations.
    """
    score = title_overlap_score(a.title, b.title)
    if score >= strong:
        return True
    return score >= weak and organizations_related(a.organization, b.organization)


def significance_rank(event: Event) -> tuple[int, int]:
    """Sort key where larger means more significant."""
    return (
        1 if event.significance == "high" else 0,
        IMPACT_LEVELS.index(event.network_impact.level),
    )


def _prefer(current: Event, challenger: Event) -> Event:
    current_rank = significance_rank(current)
    challenger_rank = significance_rank(challenger)
    if challenger_rank != current_rank:
        return challenger if challenger_rank > current_rank else current
    # same significance: earliest report of the milestone wins
    if challenger.date < current.date:
        return challenger
    return current


def merge_duplicates(
    events: list[Event],
    strong: float = STRONG_OVERLAP,
    weak: float = WEAK_OVERLAP,
) -> list[Event]:
    """Greedily collapse likely duplicates.

    Each event is compared with the already-kept entries in order and merged
    into the first one it duplicates; otherwise it starts a new entry. The
    result depends on input order when an event could match several entries.
    """
    merged: list[Event] = []
    for event in events:
        for idx, kept in enumerate(merged):
            if is_likely_duplicate(kept, event, strong, weak):
                merged[idx] = _prefer(kept, event)
                break
        else:
            merged.append(event)
    return merged
