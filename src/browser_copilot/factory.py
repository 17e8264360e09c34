"""Factories for constructing components from configuration."""

from __future__ import annotations

from .browser.playwright_session import PlaywrightBrowser
from .config import AppConfig, BrowserConfig, LLMConfig
from .events import EventSink
from .llm.base import GeneratorClient
from .llm.mock import ScriptedGenerator
from .llm.openai_client import OpenAIChatGenerator
from .session.orchestrator import Session


def build_generator(config: LLMConfig) -> GeneratorClient:
    provider = config.provider.lower()
    if provider in {"openai", "azure", "openai-compatible"}:
        return OpenAIChatGenerator(config)
    if provider == "mock":
        return ScriptedGenerator(str(item) for item in config.parameters.get("responses", []))
    raise ValueError(f"Unsupported LLM provider: {config.provider}")


def build_browser(config: BrowserConfig) -> PlaywrightBrowser:
    return PlaywrightBrowser(config)


def build_session(config: AppConfig, session_id: str, sink: EventSink) -> Session:
    """Assemble a session; the browser is not launched until it is initialized."""

    return Session(
        session_id,
        browser=build_browser(config.browser),
        generator=build_generator(config.llm),
        sink=sink,
        home_url=config.browser.home_url,
    )
