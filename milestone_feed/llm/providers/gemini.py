"""Google Gemini generateContent provider."""

from __future__ import annotations

from typing import Any

from .base import CompletionProvider


class GeminiProvider(CompletionProvider):
    """Gemini-backed completions; the system prompt maps to systemInstruction."""

    name = "gemini"

    def _request(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        url = f"{self.cfg.base_url.rstrip('/')}/v1beta/models/{self.model}:generateContent"
        payload = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
                "responseMimeType": "application/json",
            },
        }
        with self._client() as client:
            resp = client.post(url, params={"key": self.api_key}, json=payload)
            resp.raise_for_status()
            return _extract_text(resp.json())


def _extract_text(data: dict[str, Any]) -> str:
    """Join the text parts of the first candidate, skipping thought parts."""
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        return ""

    if not isinstance(parts, list):
        return ""

    non_thought_chunks: list[str] = []
    all_chunks: list[str] = []
    for part in parts:
        if not isinstance(part, dict):
            continue
        text = part.get("text")
        if not text:
            continue
        chunk = str(text)
        all_chunks.append(chunk)
        if not part.get("thought"):
            non_thought_chunks.append(chunk)

    if non_thought_chunks:
        return "".join(non_thought_chunks)
    return "".join(all_chunks)
