import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

log = logging.getLogger(__name__)


async def retry_on_json_error(
    async_func: Callable[..., Awaitable[Any]],
    *args: Any,
    retries: int = 3,
    temp_increment: float = 0.1,
    delay_s: float = 0.5,
    **kwargs: Any,
) -> Any:
    """
    Call *async_func* again when the model output does not parse.

    Only ``json.JSONDecodeError`` and ``pydantic.ValidationError`` are retried;
    any other exception propagates immediately.  When ``temperature`` is among
    *kwargs* it is raised by *temp_increment* before every retry so the model
    does not repeat the same malformed answer.

    Raises:
        The last parse error once all *retries* are used up.
    """
    if retries < 1:
        raise ValueError("retries must be at least 1")
    last_exception: Exception | None = None
    for attempt in range(1, retries + 1):
        try:
            return await async_func(*args, **kwargs)
        except (json.JSONDecodeError, ValidationError) as e:
            last_exception = e
            log.warning("Attempt %d of %d produced unparseable output (%s)", attempt, retries, type(e).__name__)
            if attempt == retries:
                break
            if isinstance(kwargs.get("temperature"), (int, float)):
                kwargs["temperature"] = min(2.0, kwargs["temperature"] + temp_increment)
                log.info("Raised temperature to %.2f", kwargs["temperature"])
            if delay_s:
                await asyncio.sleep(delay_s)

    log.error("All %d attempts failed, re-raising %s", retries, type(last_exception).__name__)
    raise last_exception
