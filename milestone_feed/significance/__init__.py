"""Two-stage significance evaluation: LLM nomination, then external corroboration."""

from .audit import AuditLog, promotion_from_audit, write_audit_log
from .corroboration import CorroborationDecision, Corroborator
from .evaluator import EvaluationResult, SignificanceEvaluator
from .nomination import BatchNomination, Candidate, Nominator
from .signals import HackerNewsSignal, SignalReading, WikipediaSignal

__all__ = [
    "AuditLog",
    "BatchNomination",
    "Candidate",
    "CorroborationDecision",
    "Corroborator",
    "EvaluationResult",
    "HackerNewsSignal",
    "Nominator",
    "SignalReading",
    "SignificanceEvaluator",
    "WikipediaSignal",
    "promotion_from_audit",
    "write_audit_log",
]
