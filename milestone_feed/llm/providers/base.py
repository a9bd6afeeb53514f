"""Abstract interface for LLM completion providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from typing import Any

import httpx

from ...config import LoggingConfig, ProviderConfig, resolve_model
from ...errors import ProviderError
from ...logging_utils import log_event, redact_text, truncate_text
from ...tracing import record_span_error, set_span_output, start_span


class CompletionProvider(ABC):
    """A request/response text completion backend.

    Subclasses implement `_request`, which performs one HTTP call and returns
    the response text. `complete` adds tracing, LLM logging and error
    normalization so every failure surfaces as `ProviderError`.
    """

    name = "base"

    def __init__(
        self,
        cfg: ProviderConfig,
        api_key: str,
        log_cfg: LoggingConfig | None = None,
        llm_logger: logging.Logger | None = None,
    ):
        self.cfg = cfg
        self.api_key = api_key
        self.model = resolve_model(cfg)
        self.log_cfg = log_cfg or LoggingConfig()
        self.llm_logger = llm_logger

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        purpose: str = "completion",
    ) -> str:
        """Return the completion text for a system + user prompt pair.

        Raises:
            ProviderError: On transport errors, non-success status or empty content
        """
        with start_span(
            f"{self.name}.{purpose}",
            kind="llm",
            input_value=user_prompt,
            attributes={"llm.model": self.model, "llm.provider": self.name},
        ) as span:
            try:
                content = self._request(system_prompt, user_prompt, temperature, max_tokens)
            except httpx.HTTPError as exc:
                record_span_error(span, exc)
                self._log_llm_response(purpose, "provider_error", str(exc), user_prompt)
                raise ProviderError(f"{self.name} request failed: {type(exc).__name__}: {exc}") from exc
            except ValueError as exc:
                # non-JSON body
                record_span_error(span, exc)
                self._log_llm_response(purpose, "provider_error", str(exc), user_prompt)
                raise ProviderError(f"{self.name} returned an unreadable body: {exc}") from exc

            if not content.strip():
                self._log_llm_response(purpose, "empty", content, user_prompt)
                raise ProviderError(f"{self.name} returned empty content")

            set_span_output(span, content)
            self._log_llm_response(purpose, "ok", content, user_prompt)
            return content

    @abstractmethod
    def _request(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        """Perform one completion request and return the raw text."""
        raise NotImplementedError

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.cfg.timeout_seconds, trust_env=self.cfg.trust_env)

    def _log_llm_response(self, purpose: str, status: str, content: str, prompt: str) -> None:
        if self.llm_logger is None:
            return
        redaction = self.log_cfg.llm_log_redaction
        payload: dict[str, Any] = {
            "event": f"llm_{purpose}",
            "status": status,
            "provider": self.name,
            "model": self.model,
            "raw_response": truncate_text(redact_text(content, redaction)),
        }
        if self.log_cfg.llm_log_detail == "prompt_response":
            payload["raw_prompt"] = truncate_text(redact_text(prompt, redaction))
        log_event(self.llm_logger, "LLM response", **payload)
