"""
Candidate review document.

Candidates awaiting human approval are published as a markdown document: a
summary table, per-event details and a machine-readable JSON array between
two HTML comment markers. Reviewers may edit anything, including the JSON;
on approval only the text between the markers is trusted.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import re
from typing import Sequence

from .core.types import Event, NewsletterItem
from .errors import ReviewDocumentError
from .extractor import validate_events
from .logging_utils import get_logger

JSON_START_MARKER = "<!-- EVENTS_JSON_START -->"
JSON_END_MARKER = "<!-- EVENTS_JSON_END -->"

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


@dataclass
class ReviewDocument:
    title: str
    body: str


def review_title(run_date: str) -> str:
    return f"AI Timeline: New events from {run_date}"


def render_review_document(
    events: Sequence[Event],
    run_date: str,
    sources: Sequence[NewsletterItem] = (),
) -> ReviewDocument:
    """Render candidates into a reviewable markdown document."""
    rows = "\n".join(
        f"| {idx} | {e.date} | {_cell(e.title)} | {_cell(e.organization)} | "
        f"{e.network_impact.level} | {_cell(e.release_type)} |"
        for idx, e in enumerate(events, start=1)
    )
    details = "\n\n---\n\n".join(_render_details(idx, e) for idx, e in enumerate(events, start=1))
    source_lines = "\n".join(_render_source(item) for item in sources) or "- (local input)"
    events_json = json.dumps([e.to_json_dict() for e in events], ensure_ascii=False, indent=2)

    body = f"""## AI Timeline Candidates - {run_date}

### Sources

{source_lines}

### Extracted Events ({len(events)} found)

| # | Date | Title | Organization | Impact | Release Type |
|---|------|-------|--------------|--------|--------------|
{rows}

### Event Details

{details}

---

### Review Instructions

1. Review each event above for accuracy
2. Edit the JSON below to correct any errors, remove unwanted events, or adjust impact levels
3. Add the `approved` label when ready to create a PR

<details>
<summary>Machine-readable JSON (edit if needed)</summary>

{JSON_START_MARKER}
```json
{events_json}
```
{JSON_END_MARKER}

</details>
"""
    return ReviewDocument(title=review_title(run_date), body=body)


def parse_review_document(text: str, logger: logging.Logger | None = None) -> tuple[list[Event], int]:
    """Extract approved events from a (possibly edited) review document.

    Returns the valid events and the number of skipped invalid elements.

    Raises:
        ReviewDocumentError: If the markers are missing or the block is not a JSON array
    """
    start = text.find(JSON_START_MARKER)
    end = text.find(JSON_END_MARKER, start + len(JSON_START_MARKER)) if start != -1 else -1
    if start == -1 or end == -1:
        raise ReviewDocumentError(
            "Could not find EVENTS_JSON markers in the document. Was it created by the pipeline?"
        )

    block = text[start + len(JSON_START_MARKER) : end]
    fenced = _FENCE_RE.search(block)
    payload = fenced.group(1).strip() if fenced else block.strip()
    try:
        raw = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ReviewDocumentError(f"Failed to parse events JSON: {exc}") from exc
    if not isinstance(raw, list):
        raise ReviewDocumentError(f"Events JSON must be an array, got {type(raw).__name__}")

    return validate_events(raw, logger or get_logger("review"))


def _render_details(idx: int, event: Event) -> str:
    sources = "\n".join(f"- [{s.label}]({s.url})" for s in event.sources)
    return f"""#### {idx}. {event.title}
- **Organization**: {event.organization}
- **Model Family**: {event.model_family}
- **Date**: {event.date}
- **Modalities**: {', '.join(event.modalities)}
- **Release Type**: {event.release_type}
- **Impact**: {event.network_impact.level}
- **Markers**: {', '.join(event.network_impact.markers)}
- **Description**: {event.description}
- **Why it mattered**: {event.why_it_mattered}
- **Sources**:
{sources}"""


def _cell(value: str) -> str:
    return value.replace("|", "\\|")


def _render_source(item: NewsletterItem) -> str:
    if item.link:
        return f"- [{item.title or item.link}]({item.link}) ({item.pub_date})"
    return f"- {item.title} ({item.pub_date})"
