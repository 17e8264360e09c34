"""Mock generators for testing and offline use."""

from __future__ import annotations

from collections import deque
from typing import Deque, Iterable

from ..errors import CapabilityFailure
from .base import GeneratorClient, GeneratorContext


class ScriptedGenerator(GeneratorClient):
    """Return responses from a predefined sequence."""

    def __init__(self, responses: Iterable[str]) -> None:
        self._responses: Deque[str] = deque(responses)
        self.prompts: list[str] = []

    def complete(self, prompt: str, context: GeneratorContext) -> str:
        self.prompts.append(prompt)
        if not self._responses:
            raise CapabilityFailure("ScriptedGenerator ran out of responses")
        return self._responses.popleft()
