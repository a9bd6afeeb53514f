"""
Two-stage significance evaluation of the whole timeline.

Every month event is reset to "low"; Stage 1 nominates candidates, Stage 2
corroborates them, and only corroborated candidates come back as "high".
The context-before baseline is not evaluated.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from pathlib import Path

from ..config import CorroborationConfig, NominationConfig
from ..core.types import TimelineStore
from ..logging_utils import get_logger, log_event
from ..store import apply_significance, month_events
from .audit import AuditLog
from .corroboration import CorroborationDecision, Corroborator, skipped_decision
from .nomination import BatchNomination, Nominator, collect_candidates


@dataclass
class EvaluationResult:
    """Evaluated store plus the decision trail.

    Attributes:
        store: Copy of the input store with significance labels applied
        audit: Audit record of the run
        promoted_keys: Identity keys labelled "high"
        audit_path: Where the audit log was written, once it is
    """

    store: TimelineStore
    audit: AuditLog
    promoted_keys: set[str]
    audit_path: Path | None = None


class SignificanceEvaluator:
    def __init__(
        self,
        nominator: Nominator,
        corroborator: Corroborator | None,
        model: str,
        skip_validation: bool = False,
        dry_run: bool = False,
        logger: logging.Logger | None = None,
    ):
        self.nominator = nominator
        self.corroborator = corroborator
        self.model = model
        self.skip_validation = skip_validation or corroborator is None
        self.dry_run = dry_run
        self.logger = logger or get_logger("evaluate")

    @property
    def nomination_cfg(self) -> NominationConfig:
        return self.nominator.cfg

    @property
    def corroboration_cfg(self) -> CorroborationConfig:
        if self.corroborator is None:
            return CorroborationConfig(enabled=False)
        return self.corroborator.cfg

    def evaluate(self, store: TimelineStore) -> EvaluationResult:
        timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        events = sorted(month_events(store), key=lambda e: e.date)

        nominations = self.nominator.nominate(events)
        candidates = collect_candidates(nominations)
        log_event(
            self.logger,
            "Nomination finished",
            event="nominate_done",
            events=len(events),
            batches=len(nominations),
            candidates=len(candidates),
        )

        if self.skip_validation:
            decisions = [skipped_decision(candidate) for candidate in candidates]
        else:
            decisions = self.corroborator.run(candidates)

        promoted = {decision.key for decision in decisions if decision.promoted}
        result_store = apply_significance(store, promoted)
        audit = self._build_audit(timestamp, store, len(events), nominations, decisions, result_store)
        log_event(
            self.logger,
            "Evaluation finished",
            event="evaluate_done",
            candidates=len(candidates),
            promoted=len(promoted),
            total=len(events),
        )
        return EvaluationResult(store=result_store, audit=audit, promoted_keys=promoted)

    def _build_audit(
        self,
        timestamp: str,
        store: TimelineStore,
        total: int,
        nominations: list[BatchNomination],
        decisions: list[CorroborationDecision],
        result_store: TimelineStore,
    ) -> AuditLog:
        corroboration = self.corroboration_cfg
        high = [e for e in month_events(result_store) if e.significance == "high"]
        return AuditLog(
            timestamp=timestamp,
            model=self.model,
            config={
                "batch_size": self.nomination_cfg.batch_size,
                "max_retries": self.nomination_cfg.max_retries,
                "hackernews_enabled": corroboration.hackernews_enabled,
                "hackernews_threshold": corroboration.hackernews_threshold,
                "wikipedia_enabled": corroboration.wikipedia_enabled,
                "wikipedia_threshold": corroboration.wikipedia_threshold,
                "wikipedia_baseline_article": corroboration.wikipedia_baseline_article,
                "window_days": [corroboration.window_days_before, corroboration.window_days_after],
                "skip_validation": self.skip_validation,
                "dry_run": self.dry_run,
            },
            input={
                "total_events": total,
                "date_range": f"{store.range_start} to {store.range_end_inclusive}",
            },
            nomination=[nomination.to_dict() for nomination in nominations],
            corroboration=[decision.to_dict() for decision in decisions],
            result={
                "high_count": len(high),
                "total_count": total,
                "high_ratio": f"{(100 * len(high) / total) if total else 0:.1f}%",
                "promoted_keys": sorted({d.key for d in decisions if d.promoted}),
                "high_events": [
                    {"date": e.date, "title": e.title, "organization": e.organization} for e in high
                ],
            },
        )
