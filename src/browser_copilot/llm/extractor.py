"""Turn free-form generator output into :class:`ActionCommand` objects.

The generator is asked for a fenced JSON command but does not always comply,
so extraction tries progressively looser strategies and stops at the first
one that yields a command:

1. a fenced JSON object (```` ```json {...} ``` ````),
2. the whole response parsed as JSON,
3. keyword heuristics for navigation, clicks and text input.

``None`` means nothing could be derived. Callers decide how to recover.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Iterator, Literal, Optional

from pydantic import ValidationError

from ..models import ActionCommand, ActionType

LOGGER = logging.getLogger(__name__)

# Each fence is matched on its own so a malformed block cannot swallow the next one.
_FENCED_BLOCK = re.compile(r"```(?:json)?[ \t]*([\s\S]*?)```", re.IGNORECASE)

# Latin keywords are bounded by non-letters only, so "URLを" still matches.
_NAVIGATE_WORDS = re.compile(
    r"(?<![A-Za-z])(?:navigat(?:e|es|ed|ing)|url|go(?:es)? to|visit(?:s|ing)?|open(?:s|ing)?)"
    r"(?![A-Za-z])|移動",
    re.IGNORECASE,
)
_URL = re.compile(
    r"https?://[^\s\"'<>()\[\]「」、。]+?"
    r"(?=[\s\"'<>()\[\]「」、。]|[.,;:!?](?:\s|$)|[にをへでと]|$)"
)
_DOMAIN = r"((?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z]{2,})(?![a-z0-9\-])"
# A bare domain only counts right after a navigation verb or before 「に移動」.
_BARE_DOMAIN = re.compile(
    r"(?<![A-Za-z])(?:navigat(?:e|es|ing)|go(?:es|ing)?|head(?:s|ing)?|visit(?:s|ing)?|open(?:s|ing)?)"
    r"\s+(?:to\s+)?"
    + _DOMAIN
    + r"|(?<![A-Za-z0-9@/.\-])"
    + _DOMAIN
    + r"\s*(?:に|へ)移動",
    re.IGNORECASE,
)
_FILE_SUFFIXES = frozenset(
    "cfg csv html ini js json log md pdf png py toml ts txt xml yaml yml zip".split()
)

_CLICK_WORDS = re.compile(
    r"(?<![A-Za-z])(?:click(?:s|ed|ing)?|press(?:es|ed|ing)?|tap(?:s|ped|ping)?)(?![A-Za-z])"
    r"|クリック|押",
    re.IGNORECASE,
)
_CLICK_TARGETS = (
    re.compile(r"「([^」]+)」(?:ボタン|リンク)"),
    re.compile(r"「([^」]+)」を?(?:クリック|押)"),
    re.compile(
        r"(?:click|press|tap)\w*(?:\s+(?:on|the|a|an))*\s+[\"“'‘]([^\"”'’]+)[\"”'’]",
        re.IGNORECASE,
    ),
)

_TYPE_WORDS = re.compile(
    r"(?<![A-Za-z])(?:typ(?:e|es|ed|ing)|enter(?:s|ed|ing)?|input)(?![A-Za-z])|入力|タイプ",
    re.IGNORECASE,
)
_TYPE_TEXTS = (
    re.compile(r"「([^」]+)」と(?:入力|タイプ)"),
    re.compile(
        r"(?:typ|enter|input)\w*(?:\s+(?:in|the|text|a|an))*\s+[\"“'‘]([^\"”'’]+)[\"”'’]",
        re.IGNORECASE,
    ),
)
_PRESS_ENTER = re.compile(r"press(?:ing)?\s+(?:the\s+)?enter|エンター|Enter\s*キー", re.IGNORECASE)

DEFAULT_INPUT_SELECTOR = "input"


def extract_command(text: str) -> Optional[ActionCommand]:
    """Return the command described by ``text`` or ``None``."""

    if not text or not text.strip():
        return None
    for strategy in (_from_fenced_json, _from_whole_json, _from_heuristics):
        command = strategy(text)
        if command is not None:
            LOGGER.debug("Extracted %s command via %s", command.action, strategy.__name__)
            return command
    LOGGER.debug("No command could be extracted from generator text")
    return None


def extract_json_value(text: str, kind: Literal["object", "array"] = "object") -> Any:
    """Return the first fenced JSON value of ``kind``, else the whole text as JSON.

    Raises :class:`ValueError` when neither parses to the requested kind.
    """

    expected = dict if kind == "object" else list
    for value in _fenced_values(text, "{" if kind == "object" else "["):
        if isinstance(value, expected):
            return value
    try:
        value = json.loads(text.strip())
    except json.JSONDecodeError as exc:
        raise ValueError(f"No JSON {kind} found in generator response") from exc
    if not isinstance(value, expected):
        raise ValueError(f"Generator response is not a JSON {kind}")
    return value


def _fenced_values(text: str, opener: str) -> Iterator[Any]:
    """Yield the parsed JSON of every fenced block whose body starts with ``opener``."""

    for match in _FENCED_BLOCK.finditer(text):
        body = match.group(1).strip()
        if not body.startswith(opener):
            continue
        try:
            yield json.loads(body)
        except json.JSONDecodeError:
            LOGGER.debug("Skipping fenced block that is not valid JSON")


def _from_fenced_json(text: str) -> Optional[ActionCommand]:
    for data in _fenced_values(text, "{"):
        command = _to_command(data)
        if command is not None:
            return command
    return None


def _from_whole_json(text: str) -> Optional[ActionCommand]:
    try:
        data = json.loads(text.strip())
    except json.JSONDecodeError:
        return None
    return _to_command(data)


def _to_command(data: Any) -> Optional[ActionCommand]:
    if not isinstance(data, dict) or not isinstance(data.get("action"), str):
        return None
    if data.get("params") is None:
        data = {**data, "params": {}}
    try:
        return ActionCommand.model_validate(data)
    except ValidationError:
        return None


def _from_heuristics(text: str) -> Optional[ActionCommand]:
    heuristics: tuple[Callable[[str], Optional[ActionCommand]], ...] = (
        _infer_navigation,
        _infer_click,
        _infer_input,
    )
    for heuristic in heuristics:
        command = heuristic(text)
        if command is not None:
            return command
    return None


def _infer_navigation(text: str) -> Optional[ActionCommand]:
    if not _NAVIGATE_WORDS.search(text):
        return None
    match = _URL.search(text)
    if match:
        url = match.group(0)
    else:
        domain = _bare_domain(text)
        if domain is None:
            return None
        url = f"https://{domain}"
    return ActionCommand(
        action=ActionType.NAVIGATE.value,
        params={"url": url},
        reasoning=f"inferred: navigation to {url} found in response text",
    )


def _bare_domain(text: str) -> Optional[str]:
    for match in _BARE_DOMAIN.finditer(text):
        domain = match.group(1) or match.group(2)
        if domain.rsplit(".", 1)[-1].lower() not in _FILE_SUFFIXES:
            return domain
    return None


def _infer_click(text: str) -> Optional[ActionCommand]:
    if not _CLICK_WORDS.search(text):
        return None
    target = _first_group(_CLICK_TARGETS, text)
    if target is None:
        return None
    return ActionCommand(
        action=ActionType.CLICK.value,
        params={"selector": f"text={target}"},
        reasoning=f"inferred: click target '{target}' found in response text",
    )


def _infer_input(text: str) -> Optional[ActionCommand]:
    if not _TYPE_WORDS.search(text):
        return None
    value = _first_group(_TYPE_TEXTS, text)
    if value is None:
        return None
    params: dict[str, Any] = {"selector": DEFAULT_INPUT_SELECTOR, "text": value}
    if _PRESS_ENTER.search(text):
        params["pressEnter"] = True
    return ActionCommand(
        action=ActionType.TYPE.value,
        params=params,
        reasoning=f"inferred: text '{value}' to type found in response text",
    )


def _first_group(patterns: tuple[re.Pattern[str], ...], text: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None
