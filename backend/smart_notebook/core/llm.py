"""
LLM abstraction for the Smart Notebook – thin wrapper around OpenAI chat completions
with strict JSON-schema outputs.
"""
import json
import os
from typing import Any, Dict, List, Optional, Sequence

import openai
import structlog
from openai import AsyncOpenAI
from pydantic import ValidationError

from smart_notebook import prompts
from smart_notebook.core_models import AnalysisMode, Annotation, ChatMessage, SolutionStep, parse_annotations
from smart_notebook.exceptions import AnnotationTransportError
from smart_notebook.metrics import BACKEND_LATENCY
from smart_notebook.utils.llm_utils import retry_on_json_error

log = structlog.get_logger(__name__)

_ANNOTATION_TYPES = ["warning", "info", "success", "suggestion", "reference"]

ANALYSIS_RESPONSE_FORMAT: Dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "math_analysis",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "annotations": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "type": {"type": "string", "enum": _ANNOTATION_TYPES},
                            "text": {"type": "string"},
                            "explanation": {"type": "string"},
                            "x": {"type": "number"},
                            "y": {"type": "number"},
                            "width": {"type": "number"},
                            "height": {"type": "number"},
                        },
                        "required": ["type", "text", "explanation", "x", "y", "width", "height"],
                        "additionalProperties": False,
                    },
                }
            },
            "required": ["annotations"],
            "additionalProperties": False,
        },
    },
}

SOLUTION_RESPONSE_FORMAT: Dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "math_solution",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "steps": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "explanation": {"type": "string"},
                            "latex": {"type": "string"},
                        },
                        "required": ["explanation", "latex"],
                        "additionalProperties": False,
                    },
                }
            },
            "required": ["steps"],
            "additionalProperties": False,
        },
    },
}


def _image_part(image_data_url: str) -> Dict[str, Any]:
    return {"type": "image_url", "image_url": {"url": image_data_url, "detail": "high"}}


class LLMClient:
    """Implements the tutoring backend calls directly against OpenAI."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model_name: Optional[str] = None,
        temperature: float = 0.2,
        retry_delay_s: float = 0.5,
    ):
        self.client = client
        self.model_name = model_name or os.getenv("OPENAI_MODEL_NAME", "gpt-4o-mini")
        self.temperature = temperature
        self.retry_delay_s = retry_delay_s

    async def _complete(self, messages: List[Dict[str, Any]], **openai_kwargs: Any) -> Optional[str]:
        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                **openai_kwargs,
            )
        except openai.OpenAIError as exc:
            log.warning("openai_call_failed", model=self.model_name, error=str(exc))
            raise AnnotationTransportError(f"OpenAI call failed: {exc}") from exc
        return response.choices[0].message.content

    # ------------------------------------------------------------------ #
    # Analysis
    # ------------------------------------------------------------------ #

    async def analyze(self, image_data_url: str, mode: AnalysisMode, exercise_statement: str) -> List[Annotation]:
        instructions = prompts.ACTIVE_MODE_INSTRUCTIONS if mode == "active" else prompts.IDLE_MODE_INSTRUCTIONS
        messages = [
            {"role": "system", "content": prompts.analysis_system_prompt(exercise_statement)},
            {"role": "user", "content": [{"type": "text", "text": instructions}, _image_part(image_data_url)]},
        ]
        with BACKEND_LATENCY.labels(operation="llm_analyze").time():
            annotations = await self._with_retries(self._analyze_once, messages)
        log.info("analysis_completed", mode=mode, annotations=len(annotations))
        return annotations

    async def _analyze_once(self, messages: List[Dict[str, Any]], temperature: float) -> List[Annotation]:
        content = await self._complete(messages, response_format=ANALYSIS_RESPONSE_FORMAT, temperature=temperature)
        if not content:
            return []
        payload = json.loads(content)
        if not isinstance(payload, dict):
            return []
        return parse_annotations(payload.get("annotations", []))

    # ------------------------------------------------------------------ #
    # Chat
    # ------------------------------------------------------------------ #

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        image_data_url: Optional[str],
        exercise_statement: str,
    ) -> str:
        if not messages:
            raise AnnotationTransportError("Chat needs at least one message")
        api_messages: List[Dict[str, Any]] = [
            {"role": "system", "content": prompts.chat_system_prompt(exercise_statement)},
            *({"role": m.role, "content": m.text} for m in messages[:-1]),
        ]
        user_content: List[Dict[str, Any]] = [{"type": "text", "text": messages[-1].text}]
        if image_data_url:
            user_content.append(_image_part(image_data_url))
        api_messages.append({"role": "user", "content": user_content})

        with BACKEND_LATENCY.labels(operation="llm_chat").time():
            content = await self._complete(api_messages)
        if not content:
            raise AnnotationTransportError("Model returned an empty chat reply")
        return content

    # ------------------------------------------------------------------ #
    # Solution
    # ------------------------------------------------------------------ #

    async def generate_solution(self, exercise_statement: str, image_data_url: Optional[str]) -> List[SolutionStep]:
        user_content: List[Dict[str, Any]] = [{"type": "text", "text": "Solve this problem step-by-step."}]
        if image_data_url:
            user_content.append(_image_part(image_data_url))
        messages = [
            {"role": "system", "content": prompts.solution_system_prompt(exercise_statement)},
            {"role": "user", "content": user_content},
        ]
        with BACKEND_LATENCY.labels(operation="llm_solution").time():
            return await self._with_retries(self._solution_once, messages)

    async def _solution_once(self, messages: List[Dict[str, Any]], temperature: float) -> List[SolutionStep]:
        content = await self._complete(messages, response_format=SOLUTION_RESPONSE_FORMAT, temperature=temperature)
        if not content:
            return []
        payload = json.loads(content)
        if not isinstance(payload, dict):
            return []
        return [SolutionStep.model_validate(step) for step in payload.get("steps", [])]

    # ------------------------------------------------------------------ #

    async def _with_retries(self, func, messages: List[Dict[str, Any]]):
        try:
            return await retry_on_json_error(func, messages, temperature=self.temperature, delay_s=self.retry_delay_s)
        except (json.JSONDecodeError, ValidationError) as exc:
            raise AnnotationTransportError(f"Model output could not be parsed: {exc}") from exc
