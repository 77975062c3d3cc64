from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from smart_notebook.core_models import AnalysisMode, Annotation, ChatMessage, SolutionStep


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# --- /api/analyze ---
class AnalyzeRequest(_CamelModel):
    image_data_url: str = Field(..., alias="imageDataUrl", min_length=1, description="PNG data URL of the captured region.")
    mode: AnalysisMode = Field(default="active", description="'idle' when the student has paused, 'active' otherwise.")
    exercise_statement: str = Field(default="", alias="exerciseStatement")


class AnalyzeResponse(BaseModel):
    annotations: List[Annotation] = Field(default_factory=list)


# --- /api/chat ---
class ChatRequest(_CamelModel):
    messages: List[ChatMessage] = Field(..., min_length=1)
    image_data_url: Optional[str] = Field(default=None, alias="imageDataUrl")
    exercise_statement: str = Field(default="", alias="exerciseStatement")


class ChatResponse(BaseModel):
    content: str


# --- /api/generate-solution ---
class SolutionRequest(_CamelModel):
    exercise_statement: str = Field(default="", alias="exerciseStatement")
    image_data_url: Optional[str] = Field(default=None, alias="imageDataUrl")


class SolutionResponse(BaseModel):
    steps: List[SolutionStep] = Field(default_factory=list)
