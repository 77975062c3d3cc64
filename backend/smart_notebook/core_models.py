"""Domain models shared by the annotation engine, the HTTP client and the API.

The annotation schema is the one wire contract the engine cares about: field
names, the five ``type`` values, the [0, 1] range of the box and the minimum
box size must match what the backend returns.
"""
import logging
import math
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

log = logging.getLogger(__name__)

# Smallest normalised width/height a box may have once clamped.
MIN_BOX_SIZE = 0.02

AnnotationType = Literal["warning", "info", "success", "suggestion", "reference"]
AnalysisMode = Literal["active", "idle"]


def clamp_unit(value: Any) -> float:
    """Coerce *value* to a float inside [0, 1]; garbage becomes 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return min(1.0, max(0.0, number))


# --------------------------------------------------------------------------- #
# Annotations (closed tagged union over ``type``)
# --------------------------------------------------------------------------- #

class _AnnotationBase(BaseModel):
    id: Optional[str] = None
    text: str = Field(description="Very short keyword shown next to the marker.")
    explanation: str = Field(description="Detailed explanation, may contain LaTeX.")


class _RegionAnnotation(_AnnotationBase):
    """Annotation tied to a normalised box of the captured image."""
    x: float = Field(description="Left edge, 0-1 relative to the captured bounds.")
    y: float = Field(description="Top edge, 0-1 relative to the captured bounds.")
    width: float
    height: float

    @field_validator("x", "y", mode="before")
    @classmethod
    def _clamp_position(cls, value: Any) -> float:
        return clamp_unit(value)

    @field_validator("width", "height", mode="before")
    @classmethod
    def _clamp_size(cls, value: Any) -> float:
        return max(MIN_BOX_SIZE, clamp_unit(value))


class WarningAnnotation(_RegionAnnotation):
    type: Literal["warning"] = "warning"


class InfoAnnotation(_RegionAnnotation):
    type: Literal["info"] = "info"


class SuggestionAnnotation(_RegionAnnotation):
    type: Literal["suggestion"] = "suggestion"


class ReferenceAnnotation(_RegionAnnotation):
    """Points back at an already corrected region; rendered as a label only."""
    type: Literal["reference"] = "reference"


class SuccessAnnotation(_AnnotationBase):
    """Whole-exercise verdict; box fields sent by the model are ignored."""
    model_config = ConfigDict(extra="ignore")

    type: Literal["success"] = "success"


RegionAnnotation = Union[WarningAnnotation, InfoAnnotation, SuggestionAnnotation, ReferenceAnnotation]

Annotation = Annotated[
    Union[WarningAnnotation, InfoAnnotation, SuggestionAnnotation, ReferenceAnnotation, SuccessAnnotation],
    Field(discriminator="type"),
]

_ANNOTATION_ADAPTER: TypeAdapter = TypeAdapter(Annotation)


def parse_annotation(item: Any) -> Annotation:
    """Validate a single raw annotation dict (raises ``ValidationError``)."""
    return _ANNOTATION_ADAPTER.validate_python(item)


def parse_annotations(items: Any) -> List[Annotation]:
    """Validate a raw list, dropping malformed items instead of failing the batch."""
    if not isinstance(items, list):
        log.warning("[annotations] Expected a list of annotations, got %s", type(items).__name__)
        return []
    parsed: List[Annotation] = []
    for index, item in enumerate(items):
        try:
            parsed.append(parse_annotation(item))
        except ValidationError as exc:
            log.warning("[annotations] Dropping malformed annotation #%d: %s", index, exc.errors()[:1])
    return parsed


# --------------------------------------------------------------------------- #
# Geometry
# --------------------------------------------------------------------------- #

class CapturedBounds(BaseModel):
    """Page-space rectangle enclosing the shapes captured for one pass."""
    model_config = ConfigDict(frozen=True)

    min_x: float
    min_y: float
    width: float = Field(ge=0)
    height: float = Field(ge=0)

    @property
    def max_x(self) -> float:
        return self.min_x + self.width

    @property
    def max_y(self) -> float:
        return self.min_y + self.height


class MappedRegion(BaseModel):
    """Absolute page-space box of an annotation."""
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)


# --------------------------------------------------------------------------- #
# Chat / solution / selection payloads
# --------------------------------------------------------------------------- #

class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    text: str


class SolutionStep(BaseModel):
    explanation: str
    latex: str = ""


class SelectionDetail(BaseModel):
    """What the presentation layer needs to show an annotation bubble."""
    x: float = Field(description="Viewport x of the selected marker.")
    y: float = Field(description="Viewport y of the selected marker.")
    text: str
    explanation: str
    type: AnnotationType
