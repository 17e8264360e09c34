"""Base classes for text generator integrations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class GeneratorContext:
    """Extra information sent along with a prompt."""

    system_prompt: Optional[str] = None
    image_base64: Optional[str] = None
    max_tokens: Optional[int] = None


class GeneratorClient(ABC):
    """Abstract interface for text generators.

    Implementations return raw text and raise
    :class:`~browser_copilot.errors.CapabilityFailure` on transport faults.
    """

    @abstractmethod
    def complete(self, prompt: str, context: GeneratorContext) -> str:
        """Return the raw completion for ``prompt``."""

    def close(self) -> None:
        """Release any resources held by the client."""
