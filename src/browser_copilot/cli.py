"""Command line interface for browser-copilot."""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Annotated, Any, List, Optional

import typer

from .config import load_config
from .events import ConsoleEventSink
from .factory import build_session
from .session.orchestrator import Session

app = typer.Typer(help="Browser Copilot entry point")

_DECISIONS = {"a": "approve", "approve": "approve", "r": "reject", "reject": "reject", "m": "modify", "modify": "modify"}


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure logging before executing any command."""

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@app.command()
def version() -> None:
    """Print the package version."""

    try:
        typer.echo(get_version("browser-copilot"))
    except PackageNotFoundError:  # pragma: no cover - when running from source tree
        typer.echo("0.0.0")


@app.command()
def serve(
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to YAML configuration."),
    ] = None,
    env_file: Annotated[
        Optional[Path],
        typer.Option("--env-file", help="Path to an .env file with default configuration values."),
    ] = None,
    host: Annotated[
        Optional[str],
        typer.Option("--host", help="Binding address for the WebSocket server."),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", help="Port for the WebSocket server."),
    ] = None,
) -> None:
    """Serve sessions over WebSocket at /ws."""

    import uvicorn

    from .server import create_app

    overrides: dict[str, Any] = {}
    if host is not None or port is not None:
        overrides["server"] = {}
        if host is not None:
            overrides["server"]["host"] = host
        if port is not None:
            overrides["server"]["port"] = port
    config = load_config(config_path, env_file=env_file, **overrides)
    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port)


@app.command()
def run(
    instructions: Annotated[
        List[str],
        typer.Argument(help="Instructions to execute, in order."),
    ],
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to YAML configuration."),
    ] = None,
    env_file: Annotated[
        Optional[Path],
        typer.Option("--env-file", help="Path to an .env file with default configuration values."),
    ] = None,
    approve: Annotated[
        bool,
        typer.Option("--approve/--no-approve", help="Ask before executing each proposed command."),
    ] = False,
    llm_provider: Annotated[
        Optional[str],
        typer.Option("--llm-provider", help="Text generator provider to use."),
    ] = None,
    model: Annotated[
        Optional[str],
        typer.Option("--model", help="Generator model identifier."),
    ] = None,
    api_key: Annotated[
        Optional[str],
        typer.Option("--api-key", help="API key for the generator provider."),
    ] = None,
    headless: Annotated[
        Optional[bool],
        typer.Option("--headless/--headed", help="Run the browser in headless mode (or headed)."),
    ] = None,
) -> None:
    """Run instructions in a local session, printing events to the terminal."""

    llm = {
        key: value
        for key, value in (("provider", llm_provider), ("model", model), ("api_key", api_key))
        if value
    }
    overrides: dict[str, Any] = {"llm": llm} if llm else {}
    if headless is not None:
        overrides["browser"] = {"headless": headless}

    config = load_config(config_path, env_file=env_file, **overrides)
    session = build_session(config, "cli", ConsoleEventSink())
    try:
        if not session.initialize():
            raise typer.Exit(code=1)
        failures = sum(0 if _run_one(session, text, approve) else 1 for text in instructions)
    finally:
        session.close()
    if failures:
        raise typer.Exit(code=1)
    typer.echo("All instructions completed.")


def _run_one(session: Session, instruction: str, approve: bool) -> bool:
    outcome = session.run_instruction(instruction, require_approval=approve)
    if outcome.error is not None:
        return False
    if outcome.proposal is None:
        return bool(outcome.result and outcome.result.success)

    decision = None
    while decision is None:
        answer = typer.prompt("Approve, reject or modify? [a/r/m]", default="a")
        decision = _DECISIONS.get(answer.strip().lower())
    data: dict[str, Any] = {"proposal_id": outcome.proposal.id}
    if decision == "modify":
        data["feedback"] = typer.prompt("Feedback for the generator")
    result = session.user_action(decision, data)
    return bool(result.get("success"))
