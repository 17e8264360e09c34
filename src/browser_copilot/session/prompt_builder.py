"""Prompt construction utilities."""

from __future__ import annotations

import json
from textwrap import dedent
from typing import Optional

from ..models import ActionCommand, ActionType, BrowserState, ExecutionResult


class PromptBuilder:
    """Build prompts for the generator from the current browser state."""

    def system_prompt(self) -> str:
        header = dedent(
            """
            You are an assistant operating a web browser on behalf of a user.
            Decide the single next browser action that moves the user's instruction forward.

            Reply with exactly one command inside a ```json fenced block:
            ```json
            {"action": "<action>", "params": {...}, "reasoning": "<why this action>"}
            ```

            Allowed actions with example params:
            """
        ).strip()
        return f"{header}\n{self._actions_schema()}"

    def instruction(self, prompt: str, state: Optional[BrowserState]) -> str:
        return (
            f"Current browser state:\n{self._state_section(state)}\n\n"
            f"User instruction: {prompt}\n\n"
            "Decide the next browser action to perform."
        )

    def feedback(self, result: ExecutionResult, original_prompt: str) -> str:
        state = result.state or BrowserState()
        lines = [
            f"Original user instruction: {original_prompt}",
            "",
            "Result of the browser action:",
            f"URL: {state.url or 'none'}",
            f"Title: {state.title or 'none'}",
            f"Succeeded: {'yes' if result.success else 'no'}",
        ]
        if result.error:
            lines.append(f"Error: {result.error}")
        lines.extend(
            [
                "",
                "Evaluate this result, summarise progress towards the instruction "
                "and suggest the next step.",
            ]
        )
        return "\n".join(lines)

    def revision(self, command: ActionCommand, feedback: str) -> str:
        original = json.dumps(command.to_payload(), indent=2, ensure_ascii=False)
        return (
            "Revise the following browser command according to the user's feedback.\n\n"
            f"Original command:\n```json\n{original}\n```\n\n"
            f"User feedback:\n{feedback}\n\n"
            "Return the revised command as a single ```json fenced object."
        )

    def suggestions(self, state: BrowserState) -> str:
        return dedent(
            f"""
            Analyse the page currently displayed and propose three actions that could be taken next.
            URL: {state.url or 'unknown'}
            Title: {state.title or 'unknown'}

            Return a ```json fenced array where each item has the keys
            "action", "params", "description" and "reasoning".
            """
        ).strip()

    def explanation(self, state: BrowserState) -> str:
        return dedent(
            f"""
            Briefly describe the state of the page currently displayed.
            URL: {state.url or 'unknown'}
            Title: {state.title or 'unknown'}

            Cover the purpose of the page, its main content, the available controls
            (links, buttons, forms) and what the user is likely to do next.
            """
        ).strip()

    def analysis(self, state: BrowserState) -> str:
        return dedent(
            f"""
            Analyse this web page from the attached screenshot.
            URL: {state.url or 'unknown'}
            Title: {state.title or 'unknown'}

            Identify the main sections, clickable elements with their location,
            input fields with their purpose and the overall function of the page.
            Return the result as a JSON object.
            """
        ).strip()

    @staticmethod
    def _state_section(state: Optional[BrowserState]) -> str:
        state = state or BrowserState()
        return "\n".join(
            [
                f"URL: {state.url or 'none'}",
                f"Title: {state.title or 'none'}",
                f"Screenshot: {'available' if state.screenshot else 'unavailable'}",
                f"Page content: {'available' if state.content else 'unavailable'}",
            ]
        )

    @staticmethod
    def _actions_schema() -> str:
        examples = [
            ActionCommand(action=ActionType.NAVIGATE.value, params={"url": "https://www.google.com"}),
            ActionCommand(action=ActionType.CLICK.value, params={"selector": "button.submit"}),
            ActionCommand(action=ActionType.CLICK.value, params={"x": 640, "y": 400}),
            ActionCommand(
                action=ActionType.TYPE.value,
                params={"selector": "input#search", "text": "search terms", "pressEnter": True},
            ),
            ActionCommand(action=ActionType.WAIT.value, params={"time": 2000}),
            ActionCommand(action=ActionType.EXTRACT.value, params={"selector": "div.content"}),
            ActionCommand(
                action=ActionType.SCROLL.value,
                params={"direction": "down", "amount": 500},
            ),
        ]
        return "\n".join(example.model_dump_json(exclude_none=True) for example in examples)
