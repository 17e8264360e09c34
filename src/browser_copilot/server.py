"""FastAPI WebSocket transport: one connection drives one session."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Any, AsyncIterator, Callable, Dict, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from .config import AppConfig
from .errors import CopilotError, InvalidCommand
from .events import EventSink
from .factory import build_session
from .models import SessionEvent
from .session.orchestrator import Session
from .session.registry import SessionRegistry

LOGGER = logging.getLogger(__name__)


class QueueEventSink(EventSink):
    """Hand events from worker threads over to the connection's event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: "asyncio.Queue[Optional[SessionEvent]]") -> None:
        self._loop = loop
        self._queue = queue

    def emit(self, event: SessionEvent) -> None:
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        except RuntimeError:
            LOGGER.debug("Dropping %s event; event loop is closed", event.type)


def create_app(
    config: AppConfig | None = None,
    *,
    registry: SessionRegistry | None = None,
) -> FastAPI:
    """Build the transport application around a session registry."""

    config = config or AppConfig()
    registry = registry or SessionRegistry(partial(build_session, config))

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        registry.close_all()

    app = FastAPI(title="Browser Copilot", lifespan=lifespan)
    app.state.registry = registry

    @app.get("/health")
    def get_health() -> Dict[str, Any]:
        return {"status": "ok", "sessions": len(registry)}

    @app.websocket("/ws")
    async def session_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        loop = asyncio.get_running_loop()
        outbox: asyncio.Queue[Optional[SessionEvent]] = asyncio.Queue()
        sink = QueueEventSink(loop, outbox)
        session = registry.create(sink)
        # Playwright's sync API is thread-bound, so each session keeps one worker.
        worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"session-{session.id[:8]}")
        pending: list[Future[Any]] = []
        sender = asyncio.create_task(_pump(websocket, outbox))
        try:
            while True:
                try:
                    raw = await websocket.receive_text()
                except WebSocketDisconnect:
                    break
                try:
                    event, data = _parse_frame(raw)
                    if event == "disconnect":
                        break
                    handler = _route(session, event, data)
                except InvalidCommand as exc:
                    sink.emit(SessionEvent(type="error", data={"message": str(exc), "code": exc.code}))
                    continue
                if handler is None:
                    sink.emit(
                        SessionEvent(
                            type="error",
                            data={"message": f"Unknown event: {event}", "code": InvalidCommand.code},
                        )
                    )
                    continue
                pending = [future for future in pending if not future.done()]
                pending.append(worker.submit(_guarded, session, sink, event, handler))
        finally:
            for future in pending:
                future.cancel()
            await asyncio.wrap_future(worker.submit(registry.destroy, session.id))
            worker.shutdown(wait=False)
            await outbox.put(None)
            await sender
            if websocket.client_state == WebSocketState.CONNECTED:
                await websocket.close()

    return app


def _parse_frame(raw: str) -> tuple[str, Dict[str, Any]]:
    try:
        message = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidCommand(f"Malformed message: {exc}") from exc
    if not isinstance(message, dict) or not isinstance(message.get("event"), str):
        raise InvalidCommand("Messages must be objects with an 'event' field")
    data = message.get("data") or {}
    if not isinstance(data, dict):
        raise InvalidCommand("The 'data' field must be an object")
    return message["event"], data


def _route(session: Session, event: str, data: Dict[str, Any]) -> Optional[Callable[[], Any]]:
    if event == "initialize-session":
        return session.initialize
    if event == "run-instruction":
        require_approval = data.get("requireApproval", data.get("require_approval", False))
        if not isinstance(require_approval, bool):
            raise InvalidCommand("'requireApproval' must be a boolean")
        return partial(
            session.run_instruction,
            str(data.get("prompt") or ""),
            require_approval=require_approval,
        )
    if event == "user-action":
        action_type = data.get("type", data.get("actionType"))
        return partial(session.user_action, str(action_type or ""), data.get("data"))
    if event == "get-history":
        return session.get_history
    if event == "get-state":
        return session.get_state
    return None


def _guarded(session: Session, sink: EventSink, event: str, handler: Callable[[], Any]) -> None:
    if session.closed:
        return
    try:
        handler()
    except Exception as exc:
        LOGGER.exception("Unhandled error while handling %s for session %s", event, session.id)
        sink.emit(SessionEvent(type="error", data={"message": str(exc), "code": CopilotError.code}))


async def _pump(websocket: WebSocket, outbox: "asyncio.Queue[Optional[SessionEvent]]") -> None:
    while True:
        event = await outbox.get()
        if event is None:
            return
        frame = event.model_dump(mode="json")
        try:
            await websocket.send_json(
                {"event": frame["type"], "data": frame["data"], "timestamp": frame["timestamp"]}
            )
        except (WebSocketDisconnect, RuntimeError, OSError):
            LOGGER.debug("Connection closed while sending %s", event.type)
            return
