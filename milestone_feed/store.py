"""
Timeline data file store.

The canonical dataset lives in a single JSON file whose name embeds the
covered date range, e.g. ``ai_model_timeline_2025-01_to_2026-02-24_en.json``.
Consumers locate the current file by scanning the data directory for the
lexicographically latest matching name.

Every transformation here takes a store and returns a new one; inputs are
never mutated. Writing is a whole-file rewrite through a temporary file.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
import json
import os
from pathlib import Path
import tempfile
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError as PydanticValidationError

from .core.dedup import identity_key
from .core.types import Event, MonthBucket, TimelineStore
from .errors import StoreNotFoundError, StoreValidationError

FILE_PREFIX = "ai_model_timeline_"
FILE_SUFFIX = "_en.json"


@dataclass
class StoreWrite:
    """Result of persisting a store.

    Attributes:
        path: The file that now holds the store
        previous_path: The file the store was loaded from
        renamed: True when the derived file name differs from the previous one
    """

    path: Path
    previous_path: Path
    renamed: bool


def locate_current_file(directory: Path) -> Path:
    """Return the latest timeline data file in `directory`.

    Dates embedded in the file names sort correctly as strings.

    Raises:
        StoreNotFoundError: If the directory is missing or holds no data file
    """
    if not directory.is_dir():
        raise StoreNotFoundError(f"Data directory not found: {directory}")
    files = sorted(
        path.name
        for path in directory.iterdir()
        if path.is_file() and path.name.startswith(FILE_PREFIX) and path.name.endswith(FILE_SUFFIX)
    )
    if not files:
        raise StoreNotFoundError(f"No timeline data file found in {directory}")
    return directory / files[-1]


def load_store(path: Path) -> TimelineStore:
    """Read and fully validate a timeline data file.

    Raises:
        StoreValidationError: On unreadable JSON or any schema violation
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise StoreValidationError(path, f"invalid JSON: {exc}") from exc
    try:
        return TimelineStore.model_validate(raw)
    except PydanticValidationError as exc:
        raise StoreValidationError(path, str(exc)) from exc


def all_events(store: TimelineStore) -> list[Event]:
    """Context-before events followed by every month bucket in order."""
    return [*store.context_before, *month_events(store)]


def month_events(store: TimelineStore) -> list[Event]:
    return [event for bucket in store.months for event in bucket.events]


def insert_events(
    store: TimelineStore,
    new_events: Iterable[Event],
    today: date | None = None,
) -> TimelineStore:
    """Insert events into their month buckets and refresh metadata.

    Buckets are created in sorted position when missing, each touched bucket
    is re-sorted by date (stable, so equal dates keep insertion order),
    `as_of` becomes today and `range_end_inclusive` only ever grows.
    An event whose identity key is already stored is skipped.
    """
    result = store.model_copy(deep=True)
    buckets = {bucket.month: bucket for bucket in result.months}
    keys = {identity_key(event) for event in all_events(result)}

    for event in new_events:
        key = identity_key(event)
        if key in keys:
            continue
        keys.add(key)
        month = event.month_key
        bucket = buckets.get(month)
        if bucket is None:
            bucket = MonthBucket(month=month, events=[])
            buckets[month] = bucket
            result.months.append(bucket)
            result.months.sort(key=lambda b: b.month)
        bucket.events.append(event.model_copy(deep=True))
        bucket.events.sort(key=lambda e: e.date)

    latest = max((_as_day(e.date) for e in all_events(result)), default=result.range_end_inclusive)
    result.as_of = (today or local_today(result.timezone)).isoformat()
    if latest > result.range_end_inclusive:
        result.range_end_inclusive = latest
    return result


def apply_significance(store: TimelineStore, promoted_keys: set[str]) -> TimelineStore:
    """Return a copy where month events are labelled high or low.

    The context-before baseline is left untouched.
    """
    result = store.model_copy(deep=True)
    for bucket in result.months:
        for event in bucket.events:
            event.significance = "high" if identity_key(event) in promoted_keys else "low"
    return result


def derive_file_name(store: TimelineStore) -> str:
    """File name for a store, a pure function of its covered range."""
    return f"{FILE_PREFIX}{store.range_start[:7]}_to_{store.range_end_inclusive}{FILE_SUFFIX}"


def render_store(store: TimelineStore) -> str:
    return json.dumps(store.to_json_dict(), ensure_ascii=False, indent=2) + "\n"


def write_store(store: TimelineStore, directory: Path) -> Path:
    """Atomically write `store` under its derived file name."""
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / derive_file_name(store)
    fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", suffix=FILE_SUFFIX, dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(render_store(store))
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return target


def persist_store(store: TimelineStore, current_path: Path, keep_previous: bool = False) -> StoreWrite:
    """Write `store` next to `current_path`, renaming when its range changed.

    The previous file is removed after a rename unless `keep_previous` is
    set (git performs the rename in the publish flow).
    """
    new_path = write_store(store, current_path.parent)
    renamed = new_path.name != current_path.name
    if renamed and not keep_previous:
        current_path.unlink(missing_ok=True)
    return StoreWrite(path=new_path, previous_path=current_path, renamed=renamed)


def _as_day(value: str) -> str:
    # month-precision dates count from the first day of their month
    return value if len(value) == 10 else f"{value[:7]}-01"


def local_today(timezone_name: str) -> date:
    try:
        return datetime.now(ZoneInfo(timezone_name)).date()
    except (ZoneInfoNotFoundError, ValueError):
        return date.today()
