"""
External corroboration signal sources.

Each source measures public attention for a keyword in a time window around
an event date and compares the measurement with its own threshold:

- HackerNewsSignal: community engagement, points of the top matching story
  (Algolia HN search API).
- WikipediaSignal: public interest, peak daily pageviews of the best
  matching article (MediaWiki opensearch + Wikimedia pageviews REST API).

A source never raises. Any failure becomes a zero reading that records the
error, so one outage cannot block an evaluation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from urllib.parse import quote

import httpx

from ..errors import ExternalSignalError

HN_SEARCH_URL = "https://hn.algolia.com/api/v1/search"
WIKIPEDIA_API_URL = "https://en.wikipedia.org/w/api.php"
PAGEVIEWS_URL = "https://wikimedia.org/api/rest_v1/metrics/pageviews/per-article/en.wikipedia/all-access/user"


@dataclass
class SignalReading:
    """One source's measurement for one candidate.

    Attributes:
        source: Source name ("hackernews", "wikipedia")
        value: Measured value (0 on failure)
        threshold: Value needed to pass
        passed: value >= threshold
        error: Failure message when the query degraded to zero
        detail: Source-specific extras (hit counts, article title, ...)
    """

    source: str
    value: float
    threshold: float
    passed: bool
    error: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def measured(cls, source: str, value: float, threshold: float, **detail: Any) -> "SignalReading":
        return cls(source=source, value=value, threshold=threshold, passed=value >= threshold, detail=detail)

    @classmethod
    def zero(cls, source: str, threshold: float, error: str) -> "SignalReading":
        return cls(source=source, value=0, threshold=threshold, passed=0 >= threshold, error=error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "value": self.value,
            "threshold": self.threshold,
            "passed": self.passed,
            "error": self.error,
            "detail": self.detail,
        }


def event_window(event_date: str, days_before: int, days_after: int) -> tuple[date, date]:
    """Inclusive window around an event; month-precision dates use the 1st."""
    day = date.fromisoformat(event_date if len(event_date) == 10 else f"{event_date[:7]}-01")
    return day - timedelta(days=days_before), day + timedelta(days=days_after)


class SignalSource(ABC):
    """A corroboration source with its own threshold."""

    name = "signal"

    def __init__(self, threshold: float):
        self.threshold = threshold

    async def read(self, client: httpx.AsyncClient, keyword: str, start: date, end: date) -> SignalReading:
        """Measure `keyword` in [start, end], degrading to zero on any failure."""
        try:
            value, detail = await self.measure(client, keyword, start, end)
        except (httpx.HTTPError, ExternalSignalError, ValueError, KeyError, TypeError, IndexError) as exc:
            return SignalReading.zero(self.name, self.threshold, f"{type(exc).__name__}: {exc}")
        return SignalReading.measured(self.name, value, self.threshold, **detail)

    @abstractmethod
    async def measure(
        self,
        client: httpx.AsyncClient,
        keyword: str,
        start: date,
        end: date,
    ) -> tuple[float, dict[str, Any]]:
        """Return the measured value and detail fields; may raise."""
        raise NotImplementedError


class HackerNewsSignal(SignalSource):
    """Points of the top Hacker News story matching the keyword."""

    name = "hackernews"

    def __init__(self, threshold: float, base_url: str = HN_SEARCH_URL, hits_per_page: int = 5):
        super().__init__(threshold)
        self.base_url = base_url
        self.hits_per_page = hits_per_page

    async def measure(self, client, keyword, start, end):
        params = {
            "query": keyword,
            "tags": "story",
            "numericFilters": f"created_at_i>{_unix(start)},created_at_i<{_unix(end + timedelta(days=1))}",
            "hitsPerPage": str(self.hits_per_page),
        }
        resp = await client.get(self.base_url, params=params)
        resp.raise_for_status()
        data = _json_object(resp)
        hits = data.get("hits") or []
        top = hits[0] if hits else {}
        if not isinstance(top, dict):
            raise ExternalSignalError(f"unexpected Hacker News hit: {top!r}")
        return float(top.get("points") or 0), {
            "top_comments": top.get("num_comments") or 0,
            "top_title": top.get("title"),
            "total_stories": data.get("nbHits", 0),
        }


class WikipediaSignal(SignalSource):
    """Peak daily pageviews of the Wikipedia article matching the keyword.

    With a `baseline_article`, the value is an index: 100 * peak / baseline
    peak over the same window, so thresholds stay comparable across years.
    """

    name = "wikipedia"

    def __init__(
        self,
        threshold: float,
        baseline_article: str | None = None,
        api_url: str = WIKIPEDIA_API_URL,
        pageviews_url: str = PAGEVIEWS_URL,
    ):
        super().__init__(threshold)
        self.baseline_article = baseline_article
        self.api_url = api_url
        self.pageviews_url = pageviews_url

    async def measure(self, client, keyword, start, end):
        article = await self.find_article(client, keyword)
        peak, avg = await self.pageviews(client, article, start, end)
        detail: dict[str, Any] = {"article": article, "peak_views": peak, "avg_views": avg}
        if not self.baseline_article:
            return float(peak), detail

        baseline_peak, _ = await self.pageviews(client, self.baseline_article, start, end)
        if baseline_peak <= 0:
            raise ExternalSignalError(f"baseline article '{self.baseline_article}' has no views in window")
        detail["baseline_article"] = self.baseline_article
        detail["baseline_peak_views"] = baseline_peak
        return round(100 * peak / baseline_peak, 2), detail

    async def find_article(self, client: httpx.AsyncClient, keyword: str) -> str:
        params = {"action": "opensearch", "search": keyword, "limit": "1", "format": "json"}
        resp = await client.get(self.api_url, params=params)
        resp.raise_for_status()
        data = resp.json()
        titles = data[1] if isinstance(data, list) and len(data) > 1 else []
        if not titles:
            raise ExternalSignalError(f"no Wikipedia article for '{keyword}'")
        return str(titles[0])

    async def pageviews(self, client: httpx.AsyncClient, article: str, start: date, end: date) -> tuple[int, int]:
        """Peak and average daily views of `article` in [start, end]."""
        encoded = quote(article.replace(" ", "_"), safe="")
        url = f"{self.pageviews_url}/{encoded}/daily/{start:%Y%m%d}/{end:%Y%m%d}"
        resp = await client.get(url)
        resp.raise_for_status()
        views = [int(item["views"]) for item in _json_object(resp).get("items") or []]
        if not views:
            return 0, 0
        return max(views), round(sum(views) / len(views))


def _json_object(resp: httpx.Response) -> dict[str, Any]:
    data = resp.json()
    if not isinstance(data, dict):
        raise ExternalSignalError(f"expected a JSON object from {resp.url}, got {type(data).__name__}")
    return data


def _unix(day: date) -> int:
    return int(datetime.combine(day, time.min, tzinfo=timezone.utc).timestamp())
