import asyncio
from typing import List, Optional

import pytest

from smart_notebook.config import Settings
from smart_notebook.core_models import Annotation, ChatMessage, SolutionStep, parse_annotations
from smart_notebook.exceptions import AnnotationTransportError
from smart_notebook.services.canvas import InMemoryCanvas, Shape


class FakeClock:
    """Manually advanced replacement for ``time.monotonic``."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend:
    """In-process tutoring backend recording every call it receives."""

    def __init__(self, annotations: Optional[list] = None) -> None:
        self.annotations: List[Annotation] = parse_annotations(annotations or [])
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()
        self.analyze_calls: list = []
        self.chat_calls: list = []
        self.solution_calls: list = []
        self.chat_reply = "Try factoring first."
        self.steps: List[SolutionStep] = []

    def respond_with(self, raw_annotations: list) -> None:
        self.annotations = parse_annotations(raw_annotations)

    async def analyze(self, image_data_url: str, mode: str, exercise_statement: str) -> List[Annotation]:
        self.analyze_calls.append({"image": image_data_url, "mode": mode, "exercise": exercise_statement})
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.annotations)

    async def chat(self, messages: List[ChatMessage], image_data_url, exercise_statement: str) -> str:
        self.chat_calls.append({"messages": list(messages), "image": image_data_url})
        if self.error is not None:
            raise self.error
        return self.chat_reply

    async def generate_solution(self, exercise_statement: str, image_data_url) -> List[SolutionStep]:
        self.solution_calls.append({"exercise": exercise_statement, "image": image_data_url})
        if self.error is not None:
            raise self.error
        return list(self.steps)


def add_stroke(canvas: InMemoryCanvas, shape_id: str, x: float, y: float, w: float, h: float) -> Shape:
    """Add a student stroke covering the box ``(x, y, w, h)``."""
    shape = Shape(id=shape_id, kind="stroke", x=x, y=y, points=[(0.0, 0.0), (w / 2, h), (w, 0.0)])
    canvas.upsert_user_shape(shape)
    return shape


def ai_shape_ids(canvas: InMemoryCanvas) -> List[str]:
    return [sid for sid in canvas.list_current_shape_ids() if canvas.get_shape(sid).meta.get("ai_annotation")]


@pytest.fixture
def canvas():
    return InMemoryCanvas()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def settings():
    return Settings(
        openai_api_key="sk-test",
        analysis_interval_s=10.0,
        idle_threshold_s=60.0,
        request_timeout_s=5.0,
        manual_trigger_only=False,
    )


@pytest.fixture
def transport_error():
    return AnnotationTransportError("API error: 502", status_code=502)


@pytest.fixture
def stroke():
    return add_stroke


@pytest.fixture
def ai_shapes():
    return ai_shape_ids
