"""
Core data types for the milestone pipeline.

Persisted shapes are pydantic models so the canonical data file and every
LLM-extracted event are validated against one schema:
- Event: a single AI milestone (model release or major upgrade)
- TimelineStore: the whole data file (metadata + month buckets)

Run-internal records are plain dataclasses:
- NewsletterItem: one fetched RSS/Atom item
- ExtractionResult: outcome of one extraction call
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator, model_validator

NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]
EventDate = Annotated[str, StringConstraints(pattern=r"^\d{4}(-\d{2}){1,2}$")]
DayDate = Annotated[str, StringConstraints(pattern=r"^\d{4}-\d{2}-\d{2}$")]
MonthKey = Annotated[str, StringConstraints(pattern=r"^\d{4}-\d{2}$")]

DatePrecision = Literal["day", "month", "year"]
ImpactLevel = Literal["watershed", "high", "medium", "low"]
Significance = Literal["high", "low"]
Modality = Literal["text", "image", "audio", "video", "pdf", "code"]

IMPACT_LEVELS: tuple[str, ...] = ("low", "medium", "high", "watershed")
MODALITIES: tuple[str, ...] = ("text", "image", "audio", "video", "pdf", "code")


class SourceLink(BaseModel):
    """A labelled reference URL for an event."""

    model_config = ConfigDict(extra="ignore")

    label: NonEmptyStr
    url: str

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"not an absolute http(s) URL: {value!r}")
        return value


class NetworkImpact(BaseModel):
    model_config = ConfigDict(extra="ignore")

    level: ImpactLevel
    markers: list[NonEmptyStr] = Field(min_length=1)


class Event(BaseModel):
    """A single AI milestone as stored in the timeline data file.

    `significance` is only written by the significance evaluator; events
    coming out of extraction leave it unset and it is omitted on dump.
    """

    model_config = ConfigDict(extra="ignore")

    date: EventDate
    date_precision: DatePrecision
    title: NonEmptyStr
    organization: NonEmptyStr
    model_family: NonEmptyStr
    modalities: list[Modality] = Field(min_length=1)
    release_type: NonEmptyStr
    description: NonEmptyStr
    why_it_mattered: NonEmptyStr
    network_impact: NetworkImpact
    sources: list[SourceLink] = Field(min_length=1)
    significance: Significance | None = None

    @property
    def month_key(self) -> str:
        return self.date[:7]

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class MonthBucket(BaseModel):
    model_config = ConfigDict(extra="ignore")

    month: MonthKey
    events: list[Event] = Field(default_factory=list)


class TimelineStore(BaseModel):
    """The canonical timeline dataset.

    `context_before` holds pre-range history and is serialized under its
    historical key `context_before_2025`. It is never targeted by insertion.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    as_of: DayDate
    timezone: NonEmptyStr
    range_start: DayDate
    range_end_inclusive: DayDate
    scope_note: NonEmptyStr
    impact_legend: dict[NonEmptyStr, NonEmptyStr]
    context_before: list[Event] = Field(default_factory=list, alias="context_before_2025")
    months: list[MonthBucket]

    @model_validator(mode="after")
    def _unique_months(self) -> "TimelineStore":
        keys = [bucket.month for bucket in self.months]
        duplicates = sorted({key for key in keys if keys.count(key) > 1})
        if duplicates:
            raise ValueError(f"duplicate month buckets: {', '.join(duplicates)}")
        return self

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass
class NewsletterItem:
    """One newsletter issue from the feed.

    Attributes:
        title: Item headline
        link: Item URL
        pub_date: Publish date as YYYY-MM-DD (raw string when unparseable)
        content: Item body as plain text (HTML already stripped)
        guid: Stable identifier from the feed, falls back to the link
    """

    title: str
    link: str
    pub_date: str
    content: str
    guid: str = ""


@dataclass
class ExtractionResult:
    """Outcome of one extraction call.

    Attributes:
        events: Events that passed schema validation
        skipped_count: Elements dropped because they failed validation
        raw_response: The LLM text, kept for debugging
        status: "ok", "parse_error" or "provider_error"
        items: Titles of the newsletter items covered by the call
    """

    events: list[Event] = field(default_factory=list)
    skipped_count: int = 0
    raw_response: str = ""
    status: str = "ok"
    items: list[str] = field(default_factory=list)
