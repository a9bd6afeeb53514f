"""
Core domain models and deduplication logic.

This package contains the event schema and the pure dedup / normalization
functions that are independent of any specific pipeline stage.
"""

from .types import Event, ExtractionResult, NewsletterItem, TimelineStore
from .dedup import (
    deduplicate_against_existing,
    identity_key,
    is_likely_duplicate,
    merge_duplicates,
    title_overlap_score,
)
from .normalize import search_keyword, title_terms

__all__ = [
    "Event",
    "ExtractionResult",
    "NewsletterItem",
    "TimelineStore",
    "identity_key",
    "deduplicate_against_existing",
    "title_overlap_score",
    "is_likely_duplicate",
    "merge_duplicates",
    "search_keyword",
    "title_terms",
]
