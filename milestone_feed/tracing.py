"""
Langfuse tracing for LLM calls and signal checks.

Spans are no-ops unless tracing is enabled in config and the Langfuse SDK
is installed, so the pipeline never depends on the tracing backend.
"""

from __future__ import annotations

from contextlib import contextmanager
import json
import os
from typing import Any, Iterator

from .config import LangfuseConfig
from .logging_utils import truncate_text

_TRACER = None
_CFG: LangfuseConfig | None = None


def setup_langfuse(cfg: LangfuseConfig) -> None:
    """Initialize Langfuse tracing if enabled."""
    global _TRACER, _CFG  # noqa: PLW0603
    _CFG = cfg
    _TRACER = None
    if not cfg.enabled:
        return
    try:
        from langfuse import Langfuse  # type: ignore
    except ImportError:
        return

    _TRACER = Langfuse(
        public_key=cfg.public_key or os.getenv("LANGFUSE_PUBLIC_KEY"),
        secret_key=cfg.secret_key or os.getenv("LANGFUSE_SECRET_KEY"),
        host=cfg.host or os.getenv("LANGFUSE_HOST"),
        environment=cfg.environment or os.getenv("LANGFUSE_ENVIRONMENT"),
        release=cfg.release or os.getenv("LANGFUSE_RELEASE"),
    )


@contextmanager
def start_span(
    name: str,
    kind: str,
    input_value: Any | None = None,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Any | None]:
    """Start a Langfuse span if tracing is enabled, else yield None."""
    tracer = _TRACER
    if tracer is None:
        yield None
        return

    metadata = {k: v if isinstance(v, (str, int, float, bool)) else str(v)
                for k, v in (attributes or {}).items() if v is not None}
    metadata.setdefault("span.kind", kind)
    try:
        cm = tracer.start_as_current_span(
            name=name,
            input=_normalize(input_value),
            metadata=metadata,
        )
        span = cm.__enter__()
    except Exception:  # noqa: BLE001
        yield None
        return

    try:
        yield span
    finally:
        try:
            cm.__exit__(None, None, None)
        except Exception:  # noqa: BLE001
            pass


def set_span_output(span: Any | None, output_value: Any) -> None:
    if span is None:
        return
    payload = _normalize(output_value)
    if payload is not None:
        _safe_update(span, output=payload)


def record_span_error(span: Any | None, exc: Exception) -> None:
    if span is None:
        return
    _safe_update(span, level="ERROR", status_message=str(exc))


def flush() -> None:
    """Flush pending traces before the process exits."""
    tracer = _TRACER
    if tracer is None:
        return
    try:
        tracer.flush()
    except Exception:  # noqa: BLE001
        return


def _normalize(value: Any) -> str | None:
    if value is None:
        return None
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, default=str)
    limit = _CFG.max_text_chars if _CFG is not None else 20000
    return truncate_text(text, limit)


def _safe_update(span: Any, **kwargs: Any) -> None:
    try:
        span.update(**kwargs)
    except Exception:  # noqa: BLE001
        return


def get_tracer() -> Any | None:
    return _TRACER
