# smart_notebook/dependencies.py
from typing import Optional

from fastapi import Depends, HTTPException, status
from openai import AsyncOpenAI

from smart_notebook.config import Settings, get_settings
from smart_notebook.core.llm import LLMClient

# A single AsyncOpenAI client shared by every request, created on first use so
# the app can start (and serve /metrics) without an API key.
_openai_client: Optional[AsyncOpenAI] = None


def get_openai(settings: Settings = Depends(get_settings)) -> AsyncOpenAI:
    """FastAPI dependency returning the shared AsyncOpenAI client."""
    global _openai_client
    if not settings.openai_api_key:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="API key not configured",
        )
    if _openai_client is None:
        _openai_client = AsyncOpenAI(api_key=settings.openai_api_key)
    return _openai_client


def get_llm_client(
    client: AsyncOpenAI = Depends(get_openai),
    settings: Settings = Depends(get_settings),
) -> LLMClient:
    return LLMClient(client, model_name=settings.openai_model_name)


async def close_openai() -> None:
    """Close the shared client if it was ever created."""
    global _openai_client
    if _openai_client is not None:
        await _openai_client.close()
        _openai_client = None
