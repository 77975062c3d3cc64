import json

import pytest
from pydantic import BaseModel

from smart_notebook.utils.llm_utils import retry_on_json_error


class _Payload(BaseModel):
    value: int


def _flaky(failures, exc_factory):
    calls = []

    async def func(*args, temperature=0.2):
        calls.append(temperature)
        if len(calls) <= failures:
            raise exc_factory()
        return "ok"

    return func, calls


@pytest.mark.asyncio
async def test_returns_first_success_without_retry():
    func, calls = _flaky(0, lambda: json.JSONDecodeError("bad", "{", 0))
    assert await retry_on_json_error(func, temperature=0.2, delay_s=0) == "ok"
    assert calls == [0.2]


@pytest.mark.asyncio
async def test_retries_json_errors_with_rising_temperature():
    func, calls = _flaky(2, lambda: json.JSONDecodeError("bad", "{", 0))

    assert await retry_on_json_error(func, temperature=0.2, delay_s=0) == "ok"
    assert calls == pytest.approx([0.2, 0.3, 0.4])


@pytest.mark.asyncio
async def test_retries_validation_errors_and_reraises_last():
    def make():
        try:
            _Payload.model_validate({"value": "nope"})
        except Exception as exc:
            return exc

    func, calls = _flaky(5, make)

    with pytest.raises(Exception) as excinfo:
        await retry_on_json_error(func, retries=2, temperature=0.2, delay_s=0)
    assert type(excinfo.value).__name__ == "ValidationError"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_other_errors_propagate_immediately():
    func, calls = _flaky(1, lambda: RuntimeError("down"))

    with pytest.raises(RuntimeError):
        await retry_on_json_error(func, temperature=0.2, delay_s=0)
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_temperature_is_capped():
    func, calls = _flaky(2, lambda: json.JSONDecodeError("bad", "{", 0))
    await retry_on_json_error(func, temperature=1.95, temp_increment=0.1, delay_s=0)
    assert calls[-1] == 2.0


@pytest.mark.asyncio
async def test_retries_must_be_positive():
    func, _ = _flaky(0, lambda: ValueError())
    with pytest.raises(ValueError):
        await retry_on_json_error(func, retries=0)
