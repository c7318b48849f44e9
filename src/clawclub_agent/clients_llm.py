from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from clawclub_agent.http_utils import post_json


class Completer(Protocol):
    def complete(
        self,
        prompt: str,
        system: str,
        max_tokens: int,
        temperature: float | None = None,
    ) -> str: ...


@dataclass
class CompletionClient:
    """Chat-completions client for any OpenAI-compatible endpoint."""

    base_url: str
    model: str
    api_key: str = ""
    timeout_seconds: float = 120.0

    def complete(
        self,
        prompt: str,
        system: str,
        max_tokens: int,
        temperature: float | None = None,
    ) -> str:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": int(max_tokens),
        }
        if temperature is not None:
            body["temperature"] = float(temperature)
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        payload = post_json(
            f"{self.base_url}/chat/completions",
            body,
            timeout=self.timeout_seconds,
            headers=headers,
        )
        return _completion_text(payload)


def _completion_text(payload: Any) -> str:
    if isinstance(payload, dict):
        choices = payload.get("choices")
        if isinstance(choices, list) and choices:
            first = choices[0]
            if isinstance(first, dict):
                message = first.get("message")
                if isinstance(message, dict) and isinstance(message.get("content"), str):
                    return message["content"]
                if isinstance(first.get("text"), str):
                    return first["text"]
    raise RuntimeError("Unable to parse completion response")
