"""Tests for the promotion rule and the corroboration loop."""

from __future__ import annotations

import httpx
import pytest

from helpers import make_event

from milestone_feed.config import CorroborationConfig
from milestone_feed.core.dedup import identity_key
from milestone_feed.significance.corroboration import (
    SKIP_REASON,
    Corroborator,
    build_sources,
    describe,
    is_promoted,
    skipped_decision,
)
from milestone_feed.significance.nomination import Candidate
from milestone_feed.significance.signals import HackerNewsSignal, SignalReading, SignalSource, WikipediaSignal


def _readings(hn: float, wiki: float):
    return [SignalReading.measured("hackernews", hn, 200), SignalReading.measured("wikipedia", wiki, 5000)]


def _candidate(**kwargs):
    event = make_event(**kwargs)
    return Candidate(event=event, key=identity_key(event), batch=1)


class FixedSource(SignalSource):
    def __init__(self, name, threshold, values):
        super().__init__(threshold)
        self.name = name
        self.values = dict(values)
        self.keywords = []

    async def measure(self, client, keyword, start, end):
        self.keywords.append((keyword, start, end))
        value = self.values.get(keyword)
        if value is None:
            raise httpx.ReadTimeout("slow")
        return value, {}


@pytest.mark.parametrize(
    "hn, wiki, expected",
    [(250, 0, True), (10, 8000, True), (200, 5000, True), (199, 4999, False), (0, 0, False)],
)
def test_any_source_passing_promotes(hn, wiki, expected):
    assert is_promoted(_readings(hn, wiki)) is expected


def test_raising_a_value_never_demotes():
    base = _readings(250, 10)
    assert is_promoted(base)
    assert is_promoted(_readings(250, 9000))
    assert is_promoted(_readings(900, 10))


def test_describe_names_passing_sources():
    assert describe(_readings(250, 8000)) == "PASS hackernews 250>=200+wikipedia 8000>=5000"
    assert describe(_readings(250, 10)) == "PASS hackernews 250>=200"


def test_describe_failure_lists_every_comparison():
    assert describe(_readings(10, 0)) == "FAIL: hackernews 10<200, wikipedia 0<5000"
    assert describe([]) == "FAIL: no signal sources configured"


def test_build_sources_follows_config():
    sources = build_sources(CorroborationConfig(wikipedia_enabled=False))
    assert [type(s) for s in sources] == [HackerNewsSignal]
    sources = build_sources(CorroborationConfig(wikipedia_baseline_article="ChatGPT"))
    assert isinstance(sources[1], WikipediaSignal)
    assert sources[1].baseline_article == "ChatGPT"


def test_skipped_decision_promotes_without_readings():
    decision = skipped_decision(_candidate())
    assert decision.promoted
    assert decision.skipped
    assert decision.reason == SKIP_REASON
    assert decision.readings == []


def test_corroborator_checks_each_candidate():
    hn = FixedSource("hackernews", 200, {"GPT-4o": 450, "Mistral Small 3": 12})
    wiki = FixedSource("wikipedia", 5000, {"GPT-4o": 100, "Mistral Small 3": 300})
    corroborator = Corroborator(CorroborationConfig(delay_seconds=0), sources=[hn, wiki])
    candidates = [
        _candidate(date="2024-05-13", title="OpenAI launches GPT-4o with native voice", model_family="GPT-4o"),
        _candidate(date="2025-01-30", title="Mistral Small 3 released", model_family="Mistral Small"),
    ]

    decisions = corroborator.run(candidates)

    assert [d.promoted for d in decisions] == [True, False]
    assert decisions[0].keyword == "GPT-4o"
    assert decisions[0].reason == "PASS hackernews 450>=200"
    assert decisions[1].reason == "FAIL: hackernews 12<200, wikipedia 300<5000"
    keyword, start, end = hn.keywords[0]
    assert (start.isoformat(), end.isoformat()) == ("2024-05-06", "2024-05-27")


def test_source_failure_counts_as_zero_without_blocking_others():
    hn = FixedSource("hackernews", 200, {})
    wiki = FixedSource("wikipedia", 5000, {"DeepSeek-R1": 64000})
    decisions = Corroborator(CorroborationConfig(delay_seconds=0), sources=[hn, wiki]).run([_candidate()])

    decision = decisions[0]
    assert decision.promoted
    assert decision.readings[0].value == 0
    assert "ReadTimeout" in decision.readings[0].error
    assert decision.to_dict()["readings"][1]["value"] == 64000


def test_corroborator_uses_http_transport():
    def handler(request):
        assert request.headers["User-Agent"] == "test-agent"
        return httpx.Response(200, json={"hits": [{"points": 500}], "nbHits": 1})

    cfg = CorroborationConfig(wikipedia_enabled=False, delay_seconds=0, user_agent="test-agent")
    decisions = Corroborator(cfg, transport=httpx.MockTransport(handler)).run([_candidate()])

    assert decisions[0].promoted
    assert decisions[0].readings[0].source == "hackernews"
