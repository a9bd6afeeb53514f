"""Exception taxonomy for the milestone pipeline.

Errors that concern a single event, newsletter item, batch or signal query
are absorbed where they happen and only counted/logged. Errors about the
canonical store or the runtime configuration are fatal and propagate to the
CLI, which exits non-zero.
"""

from __future__ import annotations

from pathlib import Path


class MilestoneFeedError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(MilestoneFeedError):
    """Data failed schema validation."""


class StoreValidationError(ValidationError):
    """The persisted timeline file is not a valid store. Fatal."""

    def __init__(self, path: Path | str, detail: str):
        self.path = Path(path)
        self.detail = detail
        super().__init__(f"Invalid data file {self.path}: {detail}")


class EventValidationError(ValidationError):
    """A single candidate event failed validation. Local to that event."""


class ExtractionParseError(MilestoneFeedError):
    """LLM extraction response is not JSON or lacks the events envelope."""


class NominationParseError(MilestoneFeedError):
    """Nomination response for a batch could not be parsed."""


class ExternalSignalError(MilestoneFeedError):
    """A corroboration source query failed."""


class StoreNotFoundError(MilestoneFeedError):
    """No timeline data file matches the naming convention. Fatal."""


class ConfigurationError(MilestoneFeedError):
    """A required credential or setting is missing. Fatal."""


class ProviderError(MilestoneFeedError):
    """The LLM completion call failed (transport, status or empty body)."""


class ReviewDocumentError(MilestoneFeedError):
    """The candidate review document cannot be parsed."""


class PublishError(MilestoneFeedError):
    """A git / gh side effect failed."""


class FeedError(MilestoneFeedError):
    """The newsletter feed could not be fetched or parsed. Fatal."""
