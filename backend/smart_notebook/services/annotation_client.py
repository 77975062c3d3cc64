"""smart_notebook/services/annotation_client.py

HTTP client for the tutoring backend (``/api/analyze``, ``/api/chat`` and
``/api/generate-solution``).

``TutorBackend`` is the contract the lifecycle manager depends on.  Two
implementations exist: :class:`AnnotationClient` here (talks to a remote
backend over HTTP) and :class:`smart_notebook.core.llm.LLMClient` (calls the
model directly, used by server-side notebook sessions).  Both raise
:class:`AnnotationTransportError` on any transport or parse failure; the
caller decides how to degrade.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx
from pydantic import ValidationError

from smart_notebook.config import Settings
from smart_notebook.core_models import AnalysisMode, Annotation, ChatMessage, SolutionStep, parse_annotations
from smart_notebook.exceptions import AnnotationTransportError
from smart_notebook.metrics import BACKEND_LATENCY

log = logging.getLogger(__name__)


class TutorBackend(Protocol):
    async def analyze(self, image_data_url: str, mode: AnalysisMode, exercise_statement: str) -> List[Annotation]: ...

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        image_data_url: Optional[str],
        exercise_statement: str,
    ) -> str: ...

    async def generate_solution(self, exercise_statement: str, image_data_url: Optional[str]) -> List[SolutionStep]: ...


class AnnotationClient:
    """Talks to the backend API.  Pass *client* to reuse a connection pool."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "AnnotationClient":
        return cls(settings.api_url, timeout=settings.request_timeout_s, client=client)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def analyze(self, image_data_url: str, mode: AnalysisMode, exercise_statement: str) -> List[Annotation]:
        data = await self._post(
            "analyze",
            "/api/analyze",
            {"imageDataUrl": image_data_url, "mode": mode, "exerciseStatement": exercise_statement},
        )
        annotations = parse_annotations(data.get("annotations") or [])
        log.info("[annotation_client] Received %d annotation(s) (mode=%s)", len(annotations), mode)
        return annotations

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        image_data_url: Optional[str],
        exercise_statement: str,
    ) -> str:
        data = await self._post(
            "chat",
            "/api/chat",
            {
                "messages": [m.model_dump() for m in messages],
                "imageDataUrl": image_data_url,
                "exerciseStatement": exercise_statement,
            },
        )
        content = data.get("content")
        if not isinstance(content, str) or not content:
            raise AnnotationTransportError("Chat response has no content")
        return content

    async def generate_solution(self, exercise_statement: str, image_data_url: Optional[str]) -> List[SolutionStep]:
        data = await self._post(
            "generate_solution",
            "/api/generate-solution",
            {"exerciseStatement": exercise_statement, "imageDataUrl": image_data_url},
        )
        steps: List[SolutionStep] = []
        for raw in data.get("steps") or []:
            try:
                steps.append(SolutionStep.model_validate(raw))
            except ValidationError as exc:
                log.warning("[annotation_client] Dropping malformed solution step: %s", exc.errors()[:1])
        return steps

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #

    async def _post(self, operation: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        with BACKEND_LATENCY.labels(operation=operation).time():
            try:
                if self._client is not None:
                    response = await self._client.post(url, json=payload, timeout=self.timeout)
                else:
                    async with httpx.AsyncClient() as client:
                        response = await client.post(url, json=payload, timeout=self.timeout)
            except httpx.TimeoutException as exc:
                log.warning("[annotation_client] %s timed out after %.1fs", path, self.timeout)
                raise AnnotationTransportError(f"Request to {path} timed out") from exc
            except httpx.HTTPError as exc:
                log.warning("[annotation_client] %s failed: %s", path, exc)
                raise AnnotationTransportError(f"Request to {path} failed: {exc}") from exc

        if not response.is_success:
            log.warning("[annotation_client] %s returned %s: %s", path, response.status_code, response.text[:200])
            raise AnnotationTransportError(f"API error: {response.status_code}", status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            log.warning("[annotation_client] %s returned malformed JSON", path)
            raise AnnotationTransportError(f"Malformed JSON from {path}") from exc
        if not isinstance(data, dict):
            raise AnnotationTransportError(f"Unexpected payload from {path}: {type(data).__name__}")
        return data
