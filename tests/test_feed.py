"""Tests for feed parsing, HTML stripping, cursor filtering and batching."""

from __future__ import annotations

import os

import httpx
import pytest

from milestone_feed.config import FeedConfig
from milestone_feed.core.types import NewsletterItem
from milestone_feed.errors import FeedError
from milestone_feed.feed import (
    fetch_items,
    filter_new_items,
    group_items,
    parse_feed,
    read_local_file,
    strip_html,
)

RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>AI News</title>
    <link>https://news.example.com</link>
    <description>Daily AI news</description>
    <item>
      <title>Issue 42</title>
      <link>https://news.example.com/42</link>
      <guid>issue-42</guid>
      <pubDate>Thu, 30 Jan 2025 14:00:00 GMT</pubDate>
      <description><![CDATA[<p>Mistral released <a href="https://mistral.ai/news/small-3">Small 3</a>.</p><script>x()</script>]]></description>
    </item>
    <item>
      <title>Issue 41</title>
      <link>https://news.example.com/41</link>
      <pubDate>Wed, 29 Jan 2025 14:00:00 GMT</pubDate>
      <description>Plain text body</description>
    </item>
  </channel>
</rss>
"""

ATOM = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>AI Atom</title>
  <id>urn:feed</id>
  <updated>2025-02-01T00:00:00Z</updated>
  <entry>
    <title>Atom issue</title>
    <link href="https://news.example.com/atom-1"/>
    <id>urn:atom-1</id>
    <updated>2025-02-01T08:00:00Z</updated>
    <content type="html">&lt;p&gt;Gemini 2.0 GA&lt;/p&gt;</content>
  </entry>
</feed>
"""


def _item(title, pub_date="2025-01-30", content="short"):
    return NewsletterItem(title=title, link="", pub_date=pub_date, content=content)


def test_strip_html_keeps_link_targets_and_drops_scripts():
    text = strip_html('<p>See <a href="https://x.ai/grok">Grok 3</a></p><style>p{}</style><script>1</script>')
    assert text == "See\nGrok 3 (https://x.ai/grok)"


def test_strip_html_leaves_relative_links_as_text():
    assert strip_html('<a href="/local">here</a>') == "here"


def test_parse_rss_items():
    items = parse_feed(RSS)
    assert [i.title for i in items] == ["Issue 42", "Issue 41"]
    first = items[0]
    assert first.pub_date == "2025-01-30"
    assert first.link == "https://news.example.com/42"
    assert first.guid == "issue-42"
    assert "Small 3 (https://mistral.ai/news/small-3)" in first.content
    assert "x()" not in first.content
    assert items[1].guid == "https://news.example.com/41"


def test_parse_atom_entries():
    items = parse_feed(ATOM)
    assert len(items) == 1
    assert items[0].pub_date == "2025-02-01"
    assert items[0].content == "Gemini 2.0 GA"


def test_parse_garbage_raises():
    with pytest.raises(FeedError):
        parse_feed("this is not a feed <<<")


def test_fetch_items_maps_status_errors(monkeypatch):
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    original = httpx.Client

    def client_factory(*args, **kwargs):
        kwargs["transport"] = transport
        return original(*args, **kwargs)

    monkeypatch.setattr(httpx, "Client", client_factory)
    with pytest.raises(FeedError, match="RSS fetch failed"):
        fetch_items("https://news.example.com/rss", FeedConfig())


def test_fetch_items_parses_payload(monkeypatch):
    seen = {}

    def handler(request):
        seen["ua"] = request.headers["User-Agent"]
        return httpx.Response(200, content=RSS.encode("utf-8"))

    transport = httpx.MockTransport(handler)
    original = httpx.Client

    def client_factory(*args, **kwargs):
        kwargs["transport"] = transport
        return original(*args, **kwargs)

    monkeypatch.setattr(httpx, "Client", client_factory)
    items = fetch_items("https://news.example.com/rss", FeedConfig(user_agent="ua-test"))
    assert len(items) == 2
    assert seen["ua"] == "ua-test"


def test_read_local_feed_file(tmp_path):
    path = tmp_path / "saved.xml"
    path.write_text(RSS, encoding="utf-8")
    assert len(read_local_file(path)) == 2


def test_read_local_html_file_is_one_item_dated_by_mtime(tmp_path):
    path = tmp_path / "issue.html"
    path.write_text("<h1>Issue</h1><p>Qwen2.5-Max released</p>", encoding="utf-8")
    os.utime(path, (1738195200, 1738195200))  # 2025-01-30T00:00:00Z

    items = read_local_file(path)

    assert len(items) == 1
    assert items[0].title == "issue"
    assert items[0].content == "Issue\nQwen2.5-Max released"
    assert items[0].pub_date in ("2025-01-29", "2025-01-30")


def test_read_missing_file_raises(tmp_path):
    with pytest.raises(FeedError):
        read_local_file(tmp_path / "nope.txt")


def test_filter_new_items_is_strictly_after_cursor():
    items = [_item("old", "2025-01-30"), _item("same", "2025-01-31"), _item("new", "2025-02-01")]
    assert [i.title for i in filter_new_items(items, "2025-01-31")] == ["new"]


def test_filter_keeps_items_with_unparseable_dates():
    items = [_item("odd", "sometime last week")]
    assert filter_new_items(items, "2025-01-31") == items


def test_group_items_batches_consecutive_short_items():
    long = _item("long", content="x" * 50)
    items = [_item("a"), _item("b"), long, _item("c"), _item("d"), _item("e")]

    groups = group_items(items, short_item_chars=20, max_batch_items=2)

    assert [[i.title for i in g] for g in groups] == [["a", "b"], ["long"], ["c", "d"], ["e"]]


def test_group_items_single_item_batches():
    items = [_item("a"), _item("b")]
    assert group_items(items, short_item_chars=20, max_batch_items=1) == [[items[0]], [items[1]]]
