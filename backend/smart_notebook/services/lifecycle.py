"""smart_notebook/services/lifecycle.py

Orchestrates analysis passes over one canvas.

A pass walks ``IDLE -> CAPTURING -> AWAITING -> RENDERING -> IDLE``:

1. the request mode is decided from the time since the last user edit
   (``idle`` after 60 s without edits, ``active`` otherwise);
2. the student's shapes are bounded (zero padding) and rasterised;
3. the backend is asked for annotations (with a client-side timeout);
4. every previously rendered AI annotation is deleted and the fresh batch is
   drawn, even when the batch is empty.

Passes never overlap: a trigger that arrives while one is in flight is
ignored.  Every failure is absorbed here and reported as a ``PassResult``;
transport failures also produce a user-facing notice.  The manager is the
only component that writes annotation shapes to the canvas.
"""
from __future__ import annotations

import asyncio
import contextlib
import time
from enum import Enum
from typing import Callable, List, Literal, Optional, Sequence

import structlog
from pydantic import BaseModel

from smart_notebook.config import Settings, get_settings
from smart_notebook.core_models import AnalysisMode, Annotation, ChatMessage
from smart_notebook.exceptions import AnnotationTransportError, CaptureError
from smart_notebook.metrics import ANALYSIS_PASSES
from smart_notebook.services.annotation_client import TutorBackend
from smart_notebook.services.bounds import ANALYSIS_PADDING, compute_bounds
from smart_notebook.services.canvas import CanvasSurface
from smart_notebook.services.capture import capture_region
from smart_notebook.services.renderer import AnnotationRenderer
from smart_notebook.services.solution_renderer import AI_SOLUTION_KEY, SolutionRenderer
from smart_notebook.services.spatial_index import AI_ANNOTATION_KEY
from smart_notebook.utils.latex import format_math_text

log = structlog.get_logger(__name__)

TRANSPORT_NOTICE = "Could not reach the AI tutor. Your work is safe, try again in a moment."
CHAT_FALLBACK = "Sorry, I could not reach the tutor right now. Please try again."

PassOutcome = Literal["completed", "no_content", "capture_failed", "transport_failed", "failed", "busy", "ignored"]


class AnalysisState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    AWAITING = "awaiting"
    RENDERING = "rendering"


class PassResult(BaseModel):
    outcome: PassOutcome
    mode: Optional[AnalysisMode] = None
    received: int = 0
    rendered: int = 0
    suppressed: int = 0
    cleared: int = 0


class ActivityClock:
    """Timestamp of the last user-originated edit, in seconds of *clock*."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._last_edit = clock()

    @property
    def last_edit(self) -> float:
        return self._last_edit

    def record_edit(self) -> None:
        self._last_edit = self._clock()

    def elapsed_since_edit(self) -> float:
        return self._clock() - self._last_edit


def select_mode(elapsed_s: float, idle_threshold_s: float = 60.0) -> AnalysisMode:
    return "idle" if elapsed_s > idle_threshold_s else "active"


class AnnotationLifecycleManager:
    def __init__(
        self,
        canvas: CanvasSurface,
        backend: TutorBackend,
        *,
        exercise_statement: str = "",
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], float]] = None,
        on_notice: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.canvas = canvas
        self.backend = backend
        self.exercise_statement = exercise_statement
        self.settings = settings or get_settings()
        self.activity = ActivityClock(clock or time.monotonic)
        self.on_notice = on_notice
        self.renderer = AnnotationRenderer(
            canvas,
            dedup_radius=self.settings.dedup_radius,
            fallback_extent=self.settings.fallback_extent,
            explanation_filter=format_math_text if self.settings.fix_math_markup else None,
        )
        self.solutions = SolutionRenderer(canvas)
        self._state = AnalysisState.IDLE
        self._lock = asyncio.Lock()
        self._timer_task: Optional[asyncio.Task] = None
        self._unsubscribe_edits: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------ #
    # Wiring
    # ------------------------------------------------------------------ #

    def attach(self) -> None:
        """Start tracking user edits on the canvas."""
        if self._unsubscribe_edits is None:
            self._unsubscribe_edits = self.canvas.on_user_edit(self.activity.record_edit)

    def detach(self) -> None:
        if self._unsubscribe_edits is not None:
            self._unsubscribe_edits()
            self._unsubscribe_edits = None

    def start(self) -> None:
        """Launch the periodic analysis timer on the running loop."""
        if self._timer_task is None or self._timer_task.done():
            self._timer_task = asyncio.create_task(self._tick_loop())
            log.info("timer_started", interval_s=self.settings.analysis_interval_s,
                     manual_only=self.settings.manual_trigger_only)

    async def stop(self) -> None:
        task, self._timer_task = self._timer_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.analysis_interval_s)
            await self.tick()

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> AnalysisState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    def _set_state(self, state: AnalysisState) -> None:
        if state is not self._state:
            log.debug("state_changed", previous=self._state.value, current=state.value)
            self._state = state

    def compute_mode(self) -> AnalysisMode:
        return select_mode(self.activity.elapsed_since_edit(), self.settings.idle_threshold_s)

    def user_shape_ids(self) -> List[str]:
        """Shapes drawn by the student (everything the engine did not create)."""
        ids = []
        for shape_id in self.canvas.list_current_shape_ids():
            shape = self.canvas.get_shape(shape_id)
            if shape is None:
                continue
            if shape.meta.get(AI_ANNOTATION_KEY) or shape.meta.get(AI_SOLUTION_KEY):
                continue
            ids.append(shape_id)
        return ids

    def annotation_shape_ids(self) -> List[str]:
        ids = []
        for shape_id in self.canvas.list_current_shape_ids():
            shape = self.canvas.get_shape(shape_id)
            if shape is not None and shape.meta.get(AI_ANNOTATION_KEY):
                ids.append(shape_id)
        return ids

    def clear_annotations(self) -> int:
        """Delete every rendered AI annotation shape at once."""
        ids = self.annotation_shape_ids()
        if ids:
            self.canvas.delete_shapes(ids)
        return len(ids)

    # ------------------------------------------------------------------ #
    # Triggers
    # ------------------------------------------------------------------ #

    async def tick(self) -> PassResult:
        """Timer entry point; ignored entirely in manual-trigger-only mode."""
        if self.settings.manual_trigger_only:
            return PassResult(outcome="ignored")
        return await self.trigger(source="timer")

    async def trigger(self, *, source: str = "manual") -> PassResult:
        """Run one analysis pass unless another one is in flight."""
        if self._lock.locked():
            log.info("pass_skipped_busy", source=source, state=self._state.value)
            return self._record(PassResult(outcome="busy"))
        async with self._lock:
            try:
                result = await self._run_pass(source)
            except Exception as exc:
                log.error("pass_failed", source=source, error=str(exc), exc_info=True)
                result = PassResult(outcome="failed")
            finally:
                self._set_state(AnalysisState.IDLE)
        return self._record(result)

    async def _run_pass(self, source: str) -> PassResult:
        mode = self.compute_mode()
        log.info("pass_started", source=source, mode=mode)

        self._set_state(AnalysisState.CAPTURING)
        shape_ids = self.user_shape_ids()
        bounds = compute_bounds(self.canvas, shape_ids, padding=ANALYSIS_PADDING)
        if bounds is None:
            log.debug("pass_no_content", mode=mode)
            return PassResult(outcome="no_content", mode=mode)
        try:
            image = await capture_region(self.canvas, shape_ids, bounds)
        except CaptureError as exc:
            log.warning("capture_failed", detail=exc.detail, shapes=len(shape_ids))
            return PassResult(outcome="capture_failed", mode=mode)

        self._set_state(AnalysisState.AWAITING)
        try:
            annotations: List[Annotation] = await asyncio.wait_for(
                self.backend.analyze(image.data_url, mode, self.exercise_statement),
                timeout=self.settings.request_timeout_s,
            )
        except (AnnotationTransportError, asyncio.TimeoutError) as exc:
            log.warning("backend_failed", mode=mode, error=str(exc) or type(exc).__name__)
            self._notify(TRANSPORT_NOTICE)
            return PassResult(outcome="transport_failed", mode=mode)

        self._set_state(AnalysisState.RENDERING)
        cleared = self.clear_annotations()
        batch = self.renderer.render_all(annotations, bounds)

        # A delivered idle hint counts as activity so it is not repeated every tick.
        if mode == "idle" and annotations:
            self.activity.record_edit()

        log.info("pass_completed", mode=mode, received=len(annotations),
                 rendered=len(batch.rendered), suppressed=batch.suppressed, cleared=cleared)
        return PassResult(
            outcome="completed",
            mode=mode,
            received=len(annotations),
            rendered=len(batch.rendered),
            suppressed=batch.suppressed,
            cleared=cleared,
        )

    # ------------------------------------------------------------------ #
    # Chat and solution
    # ------------------------------------------------------------------ #

    async def ask(self, question: str, history: Sequence[ChatMessage] = ()) -> str:
        """Answer a free-form question with the current canvas as context."""
        messages = [*history, ChatMessage(role="user", text=question)]
        image_url = await self._snapshot_data_url()
        try:
            return await asyncio.wait_for(
                self.backend.chat(messages, image_url, self.exercise_statement),
                timeout=self.settings.request_timeout_s,
            )
        except (AnnotationTransportError, asyncio.TimeoutError) as exc:
            log.warning("chat_failed", error=str(exc) or type(exc).__name__)
            return CHAT_FALLBACK

    async def show_solution(self) -> PassResult:
        """Fetch a full solution and write it below the student's work."""
        if self._lock.locked():
            log.info("solution_skipped_busy", state=self._state.value)
            return PassResult(outcome="busy")
        async with self._lock:
            try:
                self._set_state(AnalysisState.CAPTURING)
                image_url = await self._snapshot_data_url()
                self._set_state(AnalysisState.AWAITING)
                try:
                    steps = await asyncio.wait_for(
                        self.backend.generate_solution(self.exercise_statement, image_url),
                        timeout=self.settings.request_timeout_s,
                    )
                except (AnnotationTransportError, asyncio.TimeoutError) as exc:
                    log.warning("solution_failed", error=str(exc) or type(exc).__name__)
                    self._notify(TRANSPORT_NOTICE)
                    return PassResult(outcome="transport_failed")
                self._set_state(AnalysisState.RENDERING)
                bounds = compute_bounds(self.canvas, self.user_shape_ids())
                created = self.solutions.render(steps, bounds)
                return PassResult(outcome="completed", received=len(steps), rendered=len(created))
            finally:
                self._set_state(AnalysisState.IDLE)

    async def _snapshot_data_url(self) -> Optional[str]:
        shape_ids = self.user_shape_ids()
        bounds = compute_bounds(self.canvas, shape_ids, padding=self.settings.snapshot_padding)
        if bounds is None:
            return None
        try:
            image = await capture_region(self.canvas, shape_ids, bounds)
        except CaptureError as exc:
            log.warning("snapshot_failed", detail=exc.detail)
            return None
        return image.data_url

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _notify(self, message: str) -> None:
        if self.on_notice is not None:
            self.on_notice(message)

    @staticmethod
    def _record(result: PassResult) -> PassResult:
        ANALYSIS_PASSES.labels(mode=result.mode or "none", outcome=result.outcome).inc()
        return result
