"""End-to-end tests for run, approve and evaluate with scripted collaborators."""

from __future__ import annotations

from datetime import date
import io
import json
from pathlib import Path

import pytest
from rich.console import Console

from helpers import RecordingRunner, ScriptedProvider, event_dict, make_event, write_store_file

from milestone_feed.config import CorroborationConfig
from milestone_feed.core.types import NewsletterItem
from milestone_feed.errors import ConfigurationError, StoreNotFoundError, StoreValidationError
from milestone_feed.publish import Publisher
from milestone_feed.review import parse_review_document, render_review_document
from milestone_feed.runner import approve, evaluate, run_pipeline
from milestone_feed.significance.corroboration import Corroborator
from milestone_feed.significance.signals import SignalSource
from milestone_feed.store import load_store, locate_current_file

MISTRAL = dict(
    date="2025-02-01",
    title="Mistral Small 3 released",
    organization="Mistral",
    model_family="Mistral Small",
)


def _console():
    return Console(file=io.StringIO(), width=120)


def _item(title, pub_date, content="Newsletter body"):
    return NewsletterItem(title=title, link=f"https://news.example.com/{title}", pub_date=pub_date, content=content)


def _feed(*items):
    calls = []

    def loader(url):
        calls.append(url)
        return list(items)

    loader.calls = calls
    return loader


@pytest.fixture
def data_dir(app_config):
    path = Path(app_config.store.data_dir)
    write_store_file(path)
    app_config.feed.url = "https://news.example.com/rss"
    return path


def _run(cfg, provider, loader, **kwargs):
    kwargs.setdefault("today", date(2025, 2, 2))
    return run_pipeline(
        cfg,
        provider=provider,
        feed_loader=loader,
        console=_console(),
        show_progress=False,
        **kwargs,
    )


def test_auto_run_inserts_new_events_and_renames_file(app_config, data_dir):
    original = locate_current_file(data_dir)
    provider = ScriptedProvider([{"events": [event_dict(**MISTRAL), event_dict(organization="deepseek")]}])
    loader = _feed(_item("old", "2025-01-15"), _item("new", "2025-02-01"))

    summary = _run(app_config, provider, loader)

    assert loader.calls == ["https://news.example.com/rss"]
    assert summary.items_fetched == 1
    assert summary.extraction_calls == 1
    assert summary.duplicates_existing == 1
    assert [e.title for e in summary.new_events] == ["Mistral Small 3 released"]
    assert summary.renamed
    assert not original.exists()
    store = load_store(locate_current_file(data_dir))
    assert store.as_of == "2025-02-02"
    assert store.range_end_inclusive == "2025-02-01"
    assert [b.month for b in store.months] == ["2025-01", "2025-02"]


def test_dry_run_writes_nothing(app_config, data_dir):
    original = locate_current_file(data_dir)
    before = original.read_text(encoding="utf-8")
    provider = ScriptedProvider([{"events": [event_dict(**MISTRAL)]}])

    summary = _run(app_config, provider, _feed(_item("new", "2025-02-01")), dry_run=True)

    assert summary.message.startswith("Dry run: 1")
    assert summary.data_file is None
    assert [p.name for p in data_dir.iterdir()] == [original.name]
    assert original.read_text(encoding="utf-8") == before


def test_full_run_ignores_cursor_and_limit_caps_items(app_config, data_dir):
    provider = ScriptedProvider([{"events": []}])
    loader = _feed(_item("a", "2024-12-01"), _item("b", "2024-12-02"), _item("c", "2024-12-03"))
    app_config.feed.max_batch_items = 5

    summary = _run(app_config, provider, loader, full=True, limit=2)

    assert summary.items_fetched == 3
    assert summary.items_processed == 2
    assert len(provider.calls) == 1
    assert "### Item 2" in provider.calls[0][1]
    assert summary.message == "All extracted events already exist"


def test_no_new_items_makes_no_llm_call(app_config, data_dir):
    provider = ScriptedProvider([])
    summary = _run(app_config, provider, _feed(_item("old", "2025-01-31")))
    assert summary.items_fetched == 0
    assert provider.calls == []
    assert "No new newsletter items" in summary.message


def test_failed_extraction_call_does_not_abort_the_run(app_config, data_dir):
    app_config.feed.short_item_chars = 1
    provider = ScriptedProvider(["this is not json", {"events": [event_dict(**MISTRAL)]}])
    loader = _feed(_item("first", "2025-02-01"), _item("second", "2025-02-01"))

    summary = _run(app_config, provider, loader)

    assert summary.extraction_calls == 2
    assert summary.failed_calls == 1
    assert len(summary.new_events) == 1


def test_near_duplicates_across_items_are_merged(app_config, data_dir):
    app_config.feed.short_item_chars = 1
    provider = ScriptedProvider(
        [
            {"events": [event_dict(**MISTRAL, level="medium")]},
            {"events": [event_dict(**{**MISTRAL, "title": "Mistral Small 3 launched", "organization": "Mistral AI"}, level="high")]},
        ]
    )
    loader = _feed(_item("first", "2025-02-01"), _item("second", "2025-02-02"))

    summary = _run(app_config, provider, loader)

    assert summary.merged_away == 1
    assert [e.network_impact.level for e in summary.new_events] == ["high"]


def test_issue_mode_writes_review_document_when_not_publishing(app_config, data_dir):
    original = locate_current_file(data_dir)
    provider = ScriptedProvider([{"events": [event_dict(**MISTRAL)]}])

    summary = _run(app_config, provider, _feed(_item("new", "2025-02-01")), mode="issue")

    assert summary.review_path == Path(app_config.store.review_dir) / "candidates-2025-02-02.md"
    events, skipped = parse_review_document(summary.review_path.read_text(encoding="utf-8"))
    assert [e.title for e in events] == ["Mistral Small 3 released"]
    assert skipped == 0
    # the store is untouched until approval
    assert locate_current_file(data_dir) == original


def test_issue_mode_creates_issue_when_publishing(app_config, data_dir, tmp_path):
    app_config.publish.enabled = True
    runner = RecordingRunner({("gh", "issue", "create"): "https://github.com/o/r/issues/21"})
    publisher = Publisher(app_config.publish, tmp_path, runner=runner)
    provider = ScriptedProvider([{"events": [event_dict(**MISTRAL)]}])

    summary = _run(app_config, provider, _feed(_item("new", "2025-02-01")), mode="issue", publisher=publisher)

    assert summary.issue_url.endswith("/21")
    assert runner.commands[0][:3] == ["gh", "issue", "create"]
    assert "EVENTS_JSON_START" in runner.bodies[0]


def test_auto_publish_opens_pull_request(app_config, data_dir, tmp_path):
    app_config.publish.enabled = True
    runner = RecordingRunner({("gh", "pr", "create"): "https://github.com/o/r/pull/9"})
    publisher = Publisher(app_config.publish, tmp_path, runner=runner)
    provider = ScriptedProvider([{"events": [event_dict(**MISTRAL)]}])
    original = locate_current_file(data_dir)

    summary = _run(app_config, provider, _feed(_item("new", "2025-02-01")), publisher=publisher)

    assert summary.pr_url == "https://github.com/o/r/pull/9"
    assert runner.commands[0] == ["git", "checkout", "-b", "ai-timeline/run-2025-02-02"]
    assert runner.commands[1][:2] == ["git", "rm"]
    # git performs the removal
    assert original.exists()


def test_missing_feed_url_is_fatal(app_config, data_dir, monkeypatch):
    app_config.feed.url = None
    monkeypatch.delenv("RSS_FEED_URL", raising=False)
    with pytest.raises(ConfigurationError):
        _run(app_config, ScriptedProvider([]), None)


def test_missing_store_is_fatal(app_config):
    app_config.feed.url = "https://news.example.com/rss"
    with pytest.raises(StoreNotFoundError):
        _run(app_config, ScriptedProvider([]), _feed())


def test_invalid_store_is_fatal(app_config, data_dir):
    locate_current_file(data_dir).write_text('{"as_of": "yesterday"}', encoding="utf-8")
    with pytest.raises(StoreValidationError):
        _run(app_config, ScriptedProvider([]), _feed())


def test_local_file_input_skips_feed_and_cursor(app_config, data_dir, monkeypatch):
    app_config.feed.url = None
    monkeypatch.delenv("RSS_FEED_URL", raising=False)
    path = data_dir.parent / "issue.txt"
    path.write_text("Mistral shipped Small 3.", encoding="utf-8")
    provider = ScriptedProvider([{"events": [event_dict(**MISTRAL)]}])

    summary = _run(app_config, provider, None, input_file=path, dry_run=True)

    assert summary.items_processed == 1
    assert "Mistral shipped Small 3." in provider.calls[0][1]


def test_approve_document_inserts_events(app_config, data_dir):
    document = render_review_document([load_store(locate_current_file(data_dir)).months[0].events[0]], "2025-02-02")
    text = document.body.replace('"DeepSeek-R1"', '"DeepSeek-V3"')

    summary = approve(app_config, document_text=text, console=_console(), today=date(2025, 2, 3))

    assert len(summary.new_events) == 1
    store = load_store(locate_current_file(data_dir))
    assert [e.model_family for e in store.months[0].events] == ["DeepSeek-R1", "DeepSeek-V3"]
    assert store.as_of == "2025-02-03"


def test_approve_with_only_known_events_changes_nothing(app_config, data_dir, tmp_path):
    app_config.publish.enabled = True
    store = load_store(locate_current_file(data_dir))
    body = render_review_document(store.months[0].events, "2025-02-02").body
    runner = RecordingRunner({("gh", "issue", "view"): body})
    publisher = Publisher(app_config.publish, tmp_path, runner=runner)

    summary = approve(app_config, issue_number=5, publisher=publisher, console=_console())

    assert summary.message == "All events already exist in the timeline. No changes made."
    assert runner.commands[-1][:4] == ["gh", "issue", "comment", "5"]
    assert runner.bodies == [summary.message]


def test_approve_issue_opens_pr_and_comments(app_config, data_dir, tmp_path):
    app_config.publish.enabled = True
    body = render_review_document([make_event(**MISTRAL)], "2025-02-02").body
    runner = RecordingRunner(
        {("gh", "issue", "view"): body, ("gh", "pr", "create"): "https://github.com/o/r/pull/4"}
    )
    publisher = Publisher(app_config.publish, tmp_path, runner=runner)

    summary = approve(app_config, issue_number=5, publisher=publisher, console=_console(), today=date(2025, 2, 3))

    assert summary.pr_url == "https://github.com/o/r/pull/4"
    assert ["git", "checkout", "-b", "ai-timeline/issue-5"] in runner.commands
    assert "Closes #5" in runner.bodies[-2]
    assert runner.bodies[-1] == "PR created: https://github.com/o/r/pull/4"


def test_approve_without_valid_events(app_config, data_dir):
    body = render_review_document([], "2025-02-02").body
    summary = approve(app_config, document_text=body, console=_console())
    assert summary.message == "No valid events found in the JSON block. No changes made."


class ConstantSource(SignalSource):
    name = "hackernews"

    def __init__(self, value):
        super().__init__(200)
        self.value = value

    async def measure(self, client, keyword, start, end):
        return self.value, {}


def test_evaluate_labels_and_writes_audit(app_config, data_dir):
    provider = ScriptedProvider([[{"index": 0, "significance": "high"}]])
    corroborator = Corroborator(CorroborationConfig(delay_seconds=0), sources=[ConstantSource(500)])

    result = evaluate(app_config, provider=provider, corroborator=corroborator, console=_console())

    store = load_store(locate_current_file(data_dir))
    assert store.months[0].events[0].significance == "high"
    assert result.audit_path.parent == Path(app_config.store.logs_dir)
    audit = json.loads(result.audit_path.read_text(encoding="utf-8"))
    assert audit["result"]["high_count"] == 1


def test_evaluate_dry_run_only_writes_audit(app_config, data_dir):
    before = locate_current_file(data_dir).read_text(encoding="utf-8")
    provider = ScriptedProvider([[{"index": 0, "significance": "high"}]])

    result = evaluate(app_config, dry_run=True, skip_validation=True, provider=provider, console=_console())

    assert result.audit_path.exists()
    assert result.audit.config["skip_validation"] is True
    assert locate_current_file(data_dir).read_text(encoding="utf-8") == before


def test_run_with_evaluation_labels_inserted_events(app_config, data_dir):
    provider = ScriptedProvider(
        [
            {"events": [event_dict(**MISTRAL)]},
            [{"index": 1, "significance": "high"}],
        ]
    )

    summary = _run(
        app_config,
        provider,
        _feed(_item("new", "2025-02-01")),
        evaluate_after=True,
        skip_validation=True,
    )

    store = load_store(summary.data_file)
    labels = {e.model_family: e.significance for b in store.months for e in b.events}
    assert labels == {"DeepSeek-R1": "low", "Mistral Small": "high"}
    assert summary.evaluation.audit_path.exists()