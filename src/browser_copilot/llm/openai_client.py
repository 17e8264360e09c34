"""Generator client for OpenAI-compatible chat completion endpoints."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import LLMConfig
from ..errors import CapabilityFailure
from .base import GeneratorClient, GeneratorContext

LOGGER = logging.getLogger(__name__)

_RESERVED_PARAMETERS = {"temperature", "max_tokens"}


class OpenAIChatGenerator(GeneratorClient):
    """Call an OpenAI-compatible chat completion API and return the raw text."""

    def __init__(self, config: LLMConfig, *, transport: httpx.BaseTransport | None = None) -> None:
        if not config.model:
            raise ValueError("LLM model must be specified for OpenAIChatGenerator")
        self._config = config
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        self._client = httpx.Client(
            base_url=config.base_url or "https://api.openai.com/v1",
            timeout=config.timeout_seconds,
            headers=headers,
            transport=transport,
        )
        self._temperature = config.parameters.get("temperature", 0.7)
        self._max_tokens = config.parameters.get("max_tokens", 500)

    def complete(self, prompt: str, context: GeneratorContext) -> str:
        payload: dict[str, Any] = {
            "model": self._config.model,
            "messages": self._build_messages(prompt, context),
            "temperature": self._temperature,
            "max_tokens": context.max_tokens or self._max_tokens,
        }
        payload.update(
            {k: v for k, v in self._config.parameters.items() if k not in _RESERVED_PARAMETERS}
        )
        try:
            response = self._client.post("/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as exc:
            raise CapabilityFailure(f"Generator request timed out: {exc}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise CapabilityFailure(f"Generator request failed: {exc}") from exc
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise CapabilityFailure(f"Unexpected response format: {data}") from exc
        LOGGER.debug("Generator returned %d characters", len(content or ""))
        return content or ""

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _build_messages(prompt: str, context: GeneratorContext) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if context.system_prompt:
            messages.append({"role": "system", "content": context.system_prompt})
        if context.image_base64:
            messages.append(
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/png;base64,{context.image_base64}"},
                        },
                    ],
                }
            )
        else:
            messages.append({"role": "user", "content": prompt})
        return messages
