from __future__ import annotations

# --- smart_notebook/routers/notebook_ws.py ---
# WebSocket endpoint that keeps a server-side mirror of a student's notebook
# canvas and runs the annotation engine against it.
#
#   Route:  /ws/notebook/{session_id}
#
# The browser sends its own shape edits as JSON messages and receives the
# engine's create/delete actions back.  Every message is a JSON object with a
# "type" field:
#
#   client -> server
#     upsert_shapes  {"shapes": [Shape, ...]}
#     delete_shapes  {"ids": [...]}
#     select         {"ids": [...]}
#     camera         {"x", "y", "zoom"}
#     analyze        {}
#     solution       {}
#     chat           {"text", "history": [ChatMessage, ...]}
#     set_exercise   {"statement"}
#
#   server -> client
#     shape_created, shapes_deleted, annotation_detail, notice,
#     chat_reply, analysis_result, error
#
# One session (canvas + lifecycle manager) exists per session id while at
# least one socket is connected; the periodic analysis timer runs for the
# same span.

import asyncio
import contextlib
import json
import logging
from typing import Any, Dict, List, Optional, Set

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import TypeAdapter, ValidationError

from smart_notebook.config import Settings, get_settings
from smart_notebook.core_models import ChatMessage, SelectionDetail
from smart_notebook.dependencies import get_llm_client
from smart_notebook.exceptions import ToolInputError
from smart_notebook.services.annotation_client import TutorBackend
from smart_notebook.services.canvas import InMemoryCanvas, Shape
from smart_notebook.services.lifecycle import AnnotationLifecycleManager
from smart_notebook.services.selection import SelectionBridge
from smart_notebook.services.solution_renderer import AI_SOLUTION_KEY
from smart_notebook.services.spatial_index import AI_ANNOTATION_KEY

log = logging.getLogger(__name__)

router = APIRouter(prefix="/ws")  # Final path = /ws/notebook/{session_id}

_ENGINE_KEYS = (AI_ANNOTATION_KEY, AI_SOLUTION_KEY)
_shape_list = TypeAdapter(List[Shape])
_history_list = TypeAdapter(List[ChatMessage])

# ---------------------- In-memory session registry ---------------------- #


class NotebookSession:
    """Canvas mirror, lifecycle manager and the sockets attached to them."""

    def __init__(self, session_id: str, backend: TutorBackend, settings: Settings) -> None:
        self.session_id = session_id
        self.canvas = InMemoryCanvas()
        self.connections: Set[WebSocket] = set()
        self.outbox: asyncio.Queue[Dict[str, Any]] = asyncio.Queue()
        self.manager = AnnotationLifecycleManager(
            self.canvas,
            backend,
            settings=settings,
            on_notice=lambda message: self.post({"type": "notice", "message": message}),
        )
        self.selection = SelectionBridge(self.canvas, self._on_detail)
        self._unsubscribe_changes = self.canvas.on_change(self._on_change)
        self._pump_task: Optional[asyncio.Task] = None
        self._jobs: Set[asyncio.Task] = set()

    # -- lifecycle -- #

    def open(self) -> None:
        self.manager.attach()
        self.selection.attach()
        self.manager.start()
        if self._pump_task is None:
            self._pump_task = asyncio.create_task(self._pump())
            self._pump_task.add_done_callback(_log_task_failure)

    async def close(self) -> None:
        self.manager.detach()
        self.selection.detach()
        self._unsubscribe_changes()
        await self.manager.stop()
        tasks = [*self._jobs]
        if self._pump_task is not None:
            tasks.append(self._pump_task)
            self._pump_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def spawn(self, coro) -> None:
        """Run *coro* in the background so the receive loop stays responsive."""
        task = asyncio.create_task(coro)
        self._jobs.add(task)
        task.add_done_callback(self._jobs.discard)
        task.add_done_callback(_log_task_failure)

    # -- outbound -- #

    def post(self, message: Dict[str, Any]) -> None:
        self.outbox.put_nowait(message)

    def _on_change(self, event: str, payload: Dict[str, Any]) -> None:
        self.post({"type": event, **payload})

    def _on_detail(self, detail: Optional[SelectionDetail]) -> None:
        self.post({"type": "annotation_detail", "detail": detail.model_dump() if detail else None})

    async def _pump(self) -> None:
        while True:
            message = await self.outbox.get()
            try:
                payload = json.dumps(message)
            except (TypeError, ValueError) as exc:
                log.error("[notebook_ws] Dropping unserialisable %s message in %s: %s",
                          message.get("type"), self.session_id, exc)
                continue
            try:
                await _broadcast(payload, self.connections)
            except Exception as exc:  # pragma: no cover
                log.error("[notebook_ws] Broadcast failed in %s: %s", self.session_id, exc, exc_info=True)


# session_id -> NotebookSession
_sessions: Dict[str, NotebookSession] = {}


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        log.error("[notebook_ws] Background task %s failed: %s", task.get_name(), exc, exc_info=exc)


def _get_or_create_session(session_id: str, backend: TutorBackend, settings: Settings) -> NotebookSession:
    session = _sessions.get(session_id)
    if session is None:
        session = NotebookSession(session_id, backend, settings)
        _sessions[session_id] = session
        log.info("[notebook_ws] Created session %s", session_id)
    return session


async def _broadcast(payload: str, peers: Set[WebSocket]) -> None:
    """Send the JSON text *payload* to every websocket in *peers*, pruning dead ones."""
    dead: Set[WebSocket] = set()
    for peer in list(peers):
        try:
            await peer.send_text(payload)
        except (WebSocketDisconnect, RuntimeError):
            dead.add(peer)
        except Exception as exc:
            log.error("[notebook_ws] Unexpected send error: %s", exc, exc_info=True)
            dead.add(peer)
    peers.difference_update(dead)


# ---------------------------- Message handling ---------------------------- #


def _sanitize_user_shape(session: NotebookSession, shape: Shape) -> Shape:
    """Strip engine tags from shapes the engine did not create.

    A client may echo engine shapes back (e.g. after the student moved a
    marker), which keeps their tags; it may not tag its own strokes.
    """
    existing = session.canvas.get_shape(shape.id)
    engine_owned = existing is not None and any(existing.meta.get(k) for k in _ENGINE_KEYS)
    if engine_owned or not any(k in shape.meta for k in _ENGINE_KEYS):
        return shape
    log.warning("[notebook_ws] Dropping engine tags from client shape %s", shape.id)
    meta = {k: v for k, v in shape.meta.items() if k not in _ENGINE_KEYS}
    return shape.model_copy(update={"meta": meta})


async def _run_analysis(session: NotebookSession) -> None:
    result = await session.manager.trigger(source="manual")
    session.post({"type": "analysis_result", "result": result.model_dump()})


async def _run_solution(session: NotebookSession) -> None:
    result = await session.manager.show_solution()
    session.post({"type": "analysis_result", "result": result.model_dump()})


async def _run_chat(session: NotebookSession, question: str, history: List[ChatMessage]) -> None:
    reply = await session.manager.ask(question, history)
    session.post({"type": "chat_reply", "content": reply})


def _handle_message(session: NotebookSession, message: Any) -> None:
    if not isinstance(message, dict):
        raise ToolInputError("Message must be a JSON object")
    kind = message.get("type")
    canvas = session.canvas

    if kind == "upsert_shapes":
        for shape in _shape_list.validate_python(message.get("shapes") or []):
            canvas.upsert_user_shape(_sanitize_user_shape(session, shape))
    elif kind == "delete_shapes":
        canvas.remove_user_shapes([str(i) for i in message.get("ids") or []])
    elif kind == "select":
        canvas.select([str(i) for i in message.get("ids") or []])
    elif kind == "camera":
        canvas.camera_x = float(message.get("x", canvas.camera_x))
        canvas.camera_y = float(message.get("y", canvas.camera_y))
        canvas.zoom = float(message.get("zoom", canvas.zoom))
    elif kind == "analyze":
        session.spawn(_run_analysis(session))
    elif kind == "solution":
        session.spawn(_run_solution(session))
    elif kind == "chat":
        text = message.get("text")
        if not isinstance(text, str) or not text.strip():
            raise ToolInputError("Chat message needs non-empty 'text'")
        history = _history_list.validate_python(message.get("history") or [])
        session.spawn(_run_chat(session, text, history))
    elif kind == "set_exercise":
        session.manager.exercise_statement = str(message.get("statement") or "")
    else:
        raise ToolInputError(f"Unknown message type: {kind!r}")


# ----------------------------- Endpoint ------------------------------ #


@router.websocket("/notebook/{session_id}")
async def notebook_stream(
    ws: WebSocket,
    session_id: str,
    backend: TutorBackend = Depends(get_llm_client),
    settings: Settings = Depends(get_settings),
):
    """Canvas mirror and annotation channel for one notebook page."""
    await ws.accept()

    session = _get_or_create_session(session_id, backend, settings)
    session.connections.add(ws)
    if len(session.connections) == 1:
        session.open()

    try:
        while True:
            try:
                message = await ws.receive_json()
            except WebSocketDisconnect:
                break
            except ValueError as exc:
                await ws.send_json({"type": "error", "detail": f"Invalid JSON: {exc}"})
                continue

            try:
                _handle_message(session, message)
            except (ToolInputError, ValidationError, TypeError, ValueError) as exc:
                log.warning("[notebook_ws] Rejected message in %s: %s", session_id, exc)
                await ws.send_json({"type": "error", "detail": str(exc)})
    finally:
        session.connections.discard(ws)
        if not session.connections:
            _sessions.pop(session_id, None)
            await session.close()
            log.info("[notebook_ws] Closed session %s", session_id)
