"""Tests for the two-stage evaluator and its audit log."""

from __future__ import annotations

import json

from helpers import ScriptedProvider, event_dict, make_store

from milestone_feed.config import CorroborationConfig, NominationConfig
from milestone_feed.core.dedup import identity_key
from milestone_feed.significance import (
    Corroborator,
    Nominator,
    SignificanceEvaluator,
    promotion_from_audit,
    write_audit_log,
)
from milestone_feed.significance.audit import audit_file_name
from milestone_feed.significance.signals import SignalSource


class KeywordSource(SignalSource):
    name = "hackernews"

    def __init__(self, threshold, values):
        super().__init__(threshold)
        self.values = values

    async def measure(self, client, keyword, start, end):
        return self.values.get(keyword, 0), {}


def _store():
    return make_store(
        months={
            "2025-01": [
                event_dict(date="2025-01-30", title="Mistral Small 3 released", organization="Mistral", model_family="Mistral Small", significance="high"),
                event_dict(),
            ],
            "2025-02": [
                event_dict(date="2025-02-27", title="GPT-4.5 released", organization="OpenAI", model_family="GPT-4.5"),
            ],
        }
    )


def _evaluator(responses, values=None, skip=False, batch_size=40):
    nominator = Nominator(ScriptedProvider(responses), NominationConfig(batch_size=batch_size))
    corroborator = None
    if not skip:
        corroborator = Corroborator(
            CorroborationConfig(delay_seconds=0), sources=[KeywordSource(200, values or {})]
        )
    return SignificanceEvaluator(nominator, corroborator, model="test-model", skip_validation=skip)


def test_only_corroborated_nominations_become_high():
    # chronological order: DeepSeek-R1, Mistral Small 3, GPT-4.5
    evaluator = _evaluator(
        [[{"index": 0, "significance": "high"}, {"index": 2, "significance": "high"}]],
        values={"DeepSeek-R1": 900, "GPT-4.5": 40},
    )

    result = evaluator.evaluate(_store())

    labels = {e.model_family: e.significance for b in result.store.months for e in b.events}
    assert labels == {"DeepSeek-R1": "high", "Mistral Small": "low", "GPT-4.5": "low"}
    assert result.store.context_before[0].significance is None
    assert result.audit.result["high_count"] == 1
    assert result.audit.result["total_count"] == 3
    assert result.audit.result["high_ratio"] == "33.3%"


def test_previous_labels_are_reset():
    evaluator = _evaluator([[]])
    result = evaluator.evaluate(_store())
    assert all(e.significance == "low" for b in result.store.months for e in b.events)
    assert result.promoted_keys == set()


def test_skip_validation_promotes_every_nomination():
    evaluator = _evaluator([[{"index": 2, "significance": "high"}]], skip=True)

    result = evaluator.evaluate(_store())

    gpt = result.store.months[1].events[0]
    assert gpt.significance == "high"
    entry = result.audit.corroboration[0]
    assert entry["skipped"] and entry["reason"] == "skip-validation"
    assert result.audit.config["skip_validation"] is True


def test_nomination_fallback_keeps_batch_low():
    evaluator = _evaluator(["garbage"] * 4 + [[{"index": 0, "significance": "high"}]], batch_size=2, values={"GPT-4.5": 500})

    result = evaluator.evaluate(_store())

    nominations = result.audit.nomination
    assert nominations[0]["fallback"] is True
    assert nominations[1]["fallback"] is False
    assert result.promoted_keys == {identity_key(result.store.months[1].events[0])}


def test_audit_log_recomputes_each_promotion(tmp_path):
    evaluator = _evaluator(
        [[{"index": 0, "significance": "high"}, {"index": 1, "significance": "high"}]],
        values={"DeepSeek-R1": 900, "Mistral Small 3": 20},
    )
    result = evaluator.evaluate(_store())

    path = write_audit_log(result.audit, tmp_path)
    data = json.loads(path.read_text(encoding="utf-8"))

    assert path.name.startswith("eval-") and ":" not in path.name
    assert data["model"] == "test-model"
    assert data["nomination"]["total_nominated"] == 2
    assert data["input"]["total_events"] == 3
    for entry in data["corroboration"]:
        assert promotion_from_audit(entry) == entry["promoted"]
        assert (entry["key"] in data["result"]["promoted_keys"]) == entry["promoted"]


def test_audit_file_name_is_filesystem_safe():
    assert audit_file_name("2025-02-01T10:20:30.123+00:00") == "eval-2025-02-01T10-20-30-123-00-00.json"
