import json
from types import SimpleNamespace

import openai
import pytest

from smart_notebook.core.llm import ANALYSIS_RESPONSE_FORMAT, LLMClient
from smart_notebook.core_models import ChatMessage, WarningAnnotation
from smart_notebook.exceptions import AnnotationTransportError

IMAGE = "data:image/png;base64,AAAA"


class _FakeCompletions:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])


def _client(*replies):
    completions = _FakeCompletions(replies)
    fake_openai = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return LLMClient(fake_openai, model_name="gpt-test", retry_delay_s=0), completions


@pytest.mark.asyncio
async def test_analyze_uses_strict_schema_and_parses():
    payload = {"annotations": [{"type": "warning", "text": "Sign", "explanation": "Check",
                                "x": 0.1, "y": 0.1, "width": 0.2, "height": 0.2}]}
    llm, completions = _client(json.dumps(payload))

    annotations = await llm.analyze(IMAGE, "active", "Solve 2x = 4")

    assert isinstance(annotations[0], WarningAnnotation)
    call = completions.calls[0]
    assert call["model"] == "gpt-test"
    assert call["response_format"] == ANALYSIS_RESPONSE_FORMAT
    assert "Solve 2x = 4" in call["messages"][0]["content"]
    assert call["messages"][1]["content"][1]["image_url"]["url"] == IMAGE


@pytest.mark.asyncio
async def test_idle_mode_uses_hint_instructions():
    llm, completions = _client(json.dumps({"annotations": []}))

    await llm.analyze(IMAGE, "idle", "")

    assert "stuck" in completions.calls[0]["messages"][1]["content"][0]["text"]


@pytest.mark.asyncio
async def test_empty_model_content_yields_no_annotations():
    llm, _ = _client(None)
    assert await llm.analyze(IMAGE, "active", "") == []


@pytest.mark.asyncio
async def test_malformed_json_is_retried_with_higher_temperature():
    llm, completions = _client("{not json", json.dumps({"annotations": []}))

    assert await llm.analyze(IMAGE, "active", "") == []
    assert completions.calls[1]["temperature"] > completions.calls[0]["temperature"]


@pytest.mark.asyncio
async def test_persistent_malformed_json_becomes_transport_error():
    llm, _ = _client("{", "{", "{")
    with pytest.raises(AnnotationTransportError):
        await llm.analyze(IMAGE, "active", "")


@pytest.mark.asyncio
async def test_openai_failure_becomes_transport_error():
    llm, _ = _client(openai.OpenAIError("quota exceeded"))
    with pytest.raises(AnnotationTransportError, match="quota exceeded"):
        await llm.analyze(IMAGE, "active", "")


@pytest.mark.asyncio
async def test_chat_sends_history_and_image_on_last_message():
    llm, completions = _client("Divide by 2.")
    history = [ChatMessage(role="user", text="Hi"), ChatMessage(role="assistant", text="Hello!"),
               ChatMessage(role="user", text="Next step?")]

    reply = await llm.chat(history, IMAGE, "2x = 4")

    messages = completions.calls[0]["messages"]
    assert reply == "Divide by 2."
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[-1]["content"][0]["text"] == "Next step?"
    assert messages[-1]["content"][1]["image_url"]["url"] == IMAGE


@pytest.mark.asyncio
async def test_chat_requires_messages():
    llm, _ = _client()
    with pytest.raises(AnnotationTransportError):
        await llm.chat([], None, "")


@pytest.mark.asyncio
async def test_generate_solution_parses_steps():
    llm, completions = _client(json.dumps({"steps": [{"explanation": "Divide", "latex": "x = 2"}]}))

    steps = await llm.generate_solution("2x = 4", None)

    assert steps[0].latex == "x = 2"
    assert len(completions.calls[0]["messages"][1]["content"]) == 1
