"""OpenAI-compatible chat completions provider (OpenRouter by default)."""

from __future__ import annotations

from typing import Any

from .base import CompletionProvider


class OpenAICompatibleProvider(CompletionProvider):
    """POST /chat/completions with a system and a user message."""

    name = "openai_compatible"

    def _request(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        url = f"{self.cfg.base_url.rstrip('/')}/chat/completions"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        if self.cfg.site_url:
            headers["HTTP-Referer"] = self.cfg.site_url
        if self.cfg.site_name:
            headers["X-Title"] = self.cfg.site_name

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        with self._client() as client:
            resp = client.post(url, headers=headers, json=payload)
            resp.raise_for_status()
            return _extract_text(resp.json())


def _extract_text(data: dict[str, Any]) -> str:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return ""
    return content if isinstance(content, str) else ""
