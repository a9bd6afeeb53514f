"""Evaluation audit log.

Every evaluation writes one JSON record with the configuration, the
nomination outcome per batch, every corroboration reading and the final
promoted set. The promotion of any candidate can be recomputed from its
record alone with `promotion_from_audit`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from pathlib import Path
import re
from typing import Any


@dataclass
class AuditLog:
    timestamp: str
    model: str
    config: dict[str, Any]
    input: dict[str, Any]
    nomination: list[dict[str, Any]] = field(default_factory=list)
    corroboration: list[dict[str, Any]] = field(default_factory=list)
    result: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "model": self.model,
            "config": self.config,
            "input": self.input,
            "nomination": {
                "batches": self.nomination,
                "total_nominated": sum(len(batch["nominated"]) for batch in self.nomination),
            },
            "corroboration": self.corroboration,
            "result": self.result,
        }


def audit_file_name(timestamp: str) -> str:
    return f"eval-{re.sub(r'[:.+]', '-', timestamp)}.json"


def write_audit_log(audit: AuditLog, logs_dir: Path) -> Path:
    logs_dir.mkdir(parents=True, exist_ok=True)
    path = logs_dir / audit_file_name(audit.timestamp)
    path.write_text(json.dumps(audit.to_dict(), ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    return path


def promotion_from_audit(entry: dict[str, Any]) -> bool:
    """Recompute a candidate's promotion from its audit entry.

    Uses only the recorded values and thresholds, not the stored verdicts.
    """
    if entry.get("skipped"):
        return True
    return any(float(r["value"]) >= float(r["threshold"]) for r in entry.get("readings", []))
