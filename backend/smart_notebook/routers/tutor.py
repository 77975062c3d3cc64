"""
Tutoring endpoints called by the notebook frontend.

    POST /api/analyze            -> {"annotations": [...]}
    POST /api/chat               -> {"content": "..."}
    POST /api/generate-solution  -> {"steps": [{"explanation", "latex"}]}

Model and transport failures are logged and turned into a 500 with a
structured ``ErrorResponse``; the browser-side client treats any non-2xx
answer as "no result" and carries on.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from smart_notebook.api_models import (
    AnalyzeRequest,
    AnalyzeResponse,
    ChatRequest,
    ChatResponse,
    SolutionRequest,
    SolutionResponse,
)
from smart_notebook.core.llm import LLMClient
from smart_notebook.dependencies import get_llm_client
from smart_notebook.exceptions import AnnotationTransportError

log = logging.getLogger(__name__)

router = APIRouter(tags=["Tutor"])


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze_canvas(request: AnalyzeRequest, llm: LLMClient = Depends(get_llm_client)):
    """Return annotations for the captured canvas region."""
    try:
        annotations = await llm.analyze(request.image_data_url, request.mode, request.exercise_statement)
    except AnnotationTransportError as exc:
        log.error("[tutor] Analysis failed: %s", exc.detail)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to analyze canvas")
    return AnalyzeResponse(annotations=annotations)


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, llm: LLMClient = Depends(get_llm_client)):
    try:
        content = await llm.chat(request.messages, request.image_data_url, request.exercise_statement)
    except AnnotationTransportError as exc:
        log.error("[tutor] Chat failed: %s", exc.detail)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to process chat")
    return ChatResponse(content=content)


@router.post("/generate-solution", response_model=SolutionResponse)
async def generate_solution(request: SolutionRequest, llm: LLMClient = Depends(get_llm_client)):
    try:
        steps = await llm.generate_solution(request.exercise_statement, request.image_data_url)
    except AnnotationTransportError as exc:
        log.error("[tutor] Solution generation failed: %s", exc.detail)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to generate solution")
    return SolutionResponse(steps=steps)
