"""
Milestone Feed - AI model release timeline curator.

This package reads AI newsletters (RSS/Atom), extracts model-release
events with an LLM, deduplicates them against the canonical timeline data
file and re-scores their significance with LLM nomination plus Hacker News
and Wikipedia corroboration.

Main entry point is the CLI via `milestone-feed run` command.

Example:
    $ milestone-feed run --data-dir data/ --mode issue
"""

__all__ = ["__version__", "Event", "TimelineStore", "identity_key", "load_store", "locate_current_file"]
__version__ = "0.1.0"

from .core.dedup import identity_key
from .core.types import Event, TimelineStore
from .store import load_store, locate_current_file
