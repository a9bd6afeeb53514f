"""
Newsletter feed ingestion.

Fetches an RSS 2.0 or Atom feed over HTTP, parses it with feedparser and
turns each entry into a `NewsletterItem` whose body is plain text. Link
targets are kept inline as "text (url)" so the extractor can cite sources.
"""

from __future__ import annotations

from datetime import date
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Any, Iterable, Sequence

from bs4 import BeautifulSoup
import feedparser
import httpx

from .config import FeedConfig
from .core.types import NewsletterItem
from .errors import FeedError
from .logging_utils import get_logger, log_event, warn_event

_FEED_SUFFIXES = (".xml", ".rss", ".atom")


def strip_html(html: str) -> str:
    """Convert HTML to plain text, keeping anchor targets inline."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        label = anchor.get_text(" ", strip=True)
        if href.startswith(("http://", "https://")) and href != label:
            anchor.replace_with(f"{label} ({href})" if label else href)
    text = soup.get_text(separator="\n")
    return "\n".join(line.strip() for line in text.splitlines() if line.strip())


def normalize_date(entry: Any) -> str:
    """Publish date of a feed entry as YYYY-MM-DD, or the raw string."""
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            return date(parsed.tm_year, parsed.tm_mon, parsed.tm_mday).isoformat()
    raw = entry.get("published") or entry.get("updated") or ""
    try:
        return parsedate_to_datetime(raw).date().isoformat()
    except (TypeError, ValueError):
        return raw


def parse_feed(payload: bytes | str) -> list[NewsletterItem]:
    """Parse RSS/Atom content into newsletter items.

    Raises:
        FeedError: If the payload is not a recognizable feed
    """
    parsed = feedparser.parse(payload)
    if parsed.bozo and not parsed.entries:
        raise FeedError(f"Unrecognized feed format: {parsed.get('bozo_exception')}")

    items: list[NewsletterItem] = []
    for entry in parsed.entries:
        link = entry.get("link", "").strip()
        body = ""
        if entry.get("content"):
            body = entry["content"][0].get("value", "")
        if not body:
            body = entry.get("summary", entry.get("description", ""))
        items.append(
            NewsletterItem(
                title=entry.get("title", "").strip(),
                link=link,
                pub_date=normalize_date(entry),
                content=strip_html(body or ""),
                guid=entry.get("id", link),
            )
        )
    return items


def fetch_items(url: str, cfg: FeedConfig) -> list[NewsletterItem]:
    """Download and parse the feed at `url`.

    Raises:
        FeedError: On transport failure, non-success status or unparseable content
    """
    logger = get_logger("feed")
    headers = {"User-Agent": cfg.user_agent, "Accept": "application/rss+xml, application/atom+xml, */*"}
    try:
        with httpx.Client(timeout=cfg.timeout_seconds, follow_redirects=True, trust_env=True) as client:
            resp = client.get(url, headers=headers)
            resp.raise_for_status()
    except httpx.HTTPError as exc:
        raise FeedError(f"RSS fetch failed for {url}: {type(exc).__name__}: {exc}") from exc

    items = parse_feed(resp.content)
    log_event(logger, "Fetched feed", event="feed_fetched", url=url, items=len(items))
    return items


def read_local_file(path: Path) -> list[NewsletterItem]:
    """Read newsletter items from a saved feed or a single text/HTML file.

    Feed files (.xml/.rss/.atom) yield one item per entry. Anything else is a
    single item dated by the file's modification time.
    """
    if not path.is_file():
        raise FeedError(f"Input file not found: {path}")
    if path.suffix.lower() in _FEED_SUFFIXES:
        return parse_feed(path.read_bytes())

    raw = path.read_text(encoding="utf-8")
    text = strip_html(raw) if path.suffix.lower() in (".html", ".htm") else raw.strip()
    published = date.fromtimestamp(path.stat().st_mtime).isoformat()
    return [NewsletterItem(title=path.stem, link="", pub_date=published, content=text, guid=str(path))]


def filter_new_items(items: Iterable[NewsletterItem], after: str) -> list[NewsletterItem]:
    """Keep items published strictly after the `after` day (YYYY-MM-DD).

    Items whose date could not be normalized are kept and logged, since
    dropping them silently would lose newsletters.
    """
    logger = get_logger("feed")
    kept: list[NewsletterItem] = []
    for item in items:
        if not _is_iso_day(item.pub_date):
            warn_event(
                logger,
                "Unparseable item date, keeping item",
                event="feed_bad_date",
                title=item.title,
                pub_date=item.pub_date,
            )
            kept.append(item)
        elif item.pub_date > after:
            kept.append(item)
    return kept


def group_items(
    items: Sequence[NewsletterItem],
    short_item_chars: int,
    max_batch_items: int,
) -> list[list[NewsletterItem]]:
    """Group items into extraction batches.

    Long items are extracted alone. Consecutive short items share a prompt,
    up to `max_batch_items` per batch. Relative order is preserved.
    """
    groups: list[list[NewsletterItem]] = []
    pending: list[NewsletterItem] = []
    for item in items:
        if len(item.content) >= short_item_chars or max_batch_items <= 1:
            if pending:
                groups.append(pending)
                pending = []
            groups.append([item])
            continue
        pending.append(item)
        if len(pending) >= max_batch_items:
            groups.append(pending)
            pending = []
    if pending:
        groups.append(pending)
    return groups


def _is_iso_day(value: str) -> bool:
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return len(value) == 10
