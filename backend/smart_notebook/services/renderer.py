"""smart_notebook/services/renderer.py

Turns annotations into shapes on the canvas.

Per annotation type:

• ``warning`` / ``suggestion`` / ``info`` – an ellipse marker enclosing the
  flagged box (plus 20 % of its larger side as margin), a text label to the
  right of the marker and an arrow from the marker to the label.
• ``reference`` – the label only, beside the referenced box.
• ``success`` – one badge centred above the content; no region.

Every shape created here is tagged ``ai_annotation`` and carries the
annotation id, type, keyword and explanation in its metadata so a click on
any part of the composite can be resolved back to the explanation.
"""
from __future__ import annotations

import logging
import uuid
from typing import Callable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from smart_notebook.core_models import (
    Annotation,
    AnnotationType,
    CapturedBounds,
    MappedRegion,
    ReferenceAnnotation,
    RegionAnnotation,
    SuccessAnnotation,
)
from smart_notebook.metrics import ANNOTATIONS_RENDERED, PLACEMENTS_SUPPRESSED
from smart_notebook.services.canvas import CanvasSurface, ShapeStyle
from smart_notebook.services.coordinate_mapper import FALLBACK_EXTENT, map_annotation
from smart_notebook.services.layout_allocator import LabelAllocator
from smart_notebook.services.spatial_index import (
    AI_ANNOTATION_KEY,
    ANCHOR_X_KEY,
    ANCHOR_Y_KEY,
    DEDUP_RADIUS,
    MarkerIndex,
)
from smart_notebook.utils.latex import inline_math_to_plain_text

logger = logging.getLogger(__name__)

_PALETTE: dict[str, str] = {
    "warning": "#E74C3C",     # Red-400
    "suggestion": "#F39C12",  # Amber
    "info": "#1976D2",        # Blue-600
    "reference": "#9E9E9E",   # Grey-500
    "success": "#2ECC71",     # Green-400
}

# Deterministic ids for annotations the model did not name
ANNOTATION_NAMESPACE = uuid.UUID("5b0c7f4e-2d1a-4c8e-9f3b-6a7d8e9f0a1b")

MARKER_PADDING_RATIO = 0.2
LABEL_GAP = 24.0
LABEL_HEIGHT = 32.0
BADGE_WIDTH = 180.0
BADGE_HEIGHT = 40.0
BADGE_OFFSET = 60.0


def color_for(annotation_type: AnnotationType) -> str:
    """Hex colour used for every shape of an annotation of *annotation_type*."""
    return _PALETTE[annotation_type]


def estimate_label_width(text: str) -> float:
    return max(120.0, len(text) * 14.0)


def annotation_id_for(annotation: Annotation) -> str:
    if annotation.id:
        return annotation.id
    if isinstance(annotation, SuccessAnnotation):
        name = f"{annotation.type}-{annotation.text}"
    else:
        name = f"{annotation.type}-{annotation.text}-{annotation.x:.4f}-{annotation.y:.4f}"
    return str(uuid.uuid5(ANNOTATION_NAMESPACE, name))


def marker_box(region: MappedRegion) -> MappedRegion:
    """Grow *region* so the outline encloses rather than clips the content."""
    pad = MARKER_PADDING_RATIO * max(region.width, region.height)
    return MappedRegion(
        x=region.x - pad,
        y=region.y - pad,
        width=region.width + pad * 2,
        height=region.height + pad * 2,
    )


class RenderedAnnotation(BaseModel):
    annotation_id: str
    type: AnnotationType
    shape_ids: List[str] = Field(default_factory=list)
    anchor: Optional[Tuple[float, float]] = None


class RenderBatchResult(BaseModel):
    rendered: List[RenderedAnnotation] = Field(default_factory=list)
    suppressed: int = 0

    @property
    def shape_ids(self) -> List[str]:
        return [sid for item in self.rendered for sid in item.shape_ids]


class AnnotationRenderer:
    """Creates the marker / connector / label composites for a batch."""

    def __init__(
        self,
        canvas: CanvasSurface,
        *,
        dedup_radius: float = DEDUP_RADIUS,
        fallback_extent: float = FALLBACK_EXTENT,
        explanation_filter: Optional[Callable[[str], str]] = None,
    ) -> None:
        self.canvas = canvas
        self.dedup_radius = dedup_radius
        self.fallback_extent = fallback_extent
        self.explanation_filter = explanation_filter

    # ------------------------------------------------------------------ #
    # Batch entry point
    # ------------------------------------------------------------------ #

    def render_all(self, annotations: Sequence[Annotation], bounds: CapturedBounds) -> RenderBatchResult:
        """Map, deduplicate and render *annotations* captured with *bounds*."""
        index = MarkerIndex.from_canvas(self.canvas, radius=self.dedup_radius)
        labels = LabelAllocator()
        result = RenderBatchResult()
        badge_placed = False

        for annotation in annotations:
            if isinstance(annotation, SuccessAnnotation):
                if badge_placed:
                    logger.debug("[renderer] Extra success annotation ignored")
                    continue
                result.rendered.append(self.render_badge(annotation, bounds))
                badge_placed = True
                continue

            region = map_annotation(annotation, bounds, fallback_extent=self.fallback_extent)
            cx, cy = region.center
            if index.is_duplicate(cx, cy):
                logger.debug("[renderer] Skipping annotation near (%.0f, %.0f): zone memory", cx, cy)
                PLACEMENTS_SUPPRESSED.inc()
                result.suppressed += 1
                continue

            rendered = self.render_region(annotation, region, labels)
            index.add_marker(rendered.annotation_id, cx, cy)
            result.rendered.append(rendered)

        logger.info(
            "[renderer] Rendered %d annotation(s), suppressed %d",
            len(result.rendered),
            result.suppressed,
        )
        return result

    # ------------------------------------------------------------------ #
    # Single annotations
    # ------------------------------------------------------------------ #

    def render_region(
        self,
        annotation: RegionAnnotation,
        region: MappedRegion,
        labels: Optional[LabelAllocator] = None,
    ) -> RenderedAnnotation:
        """Render one already mapped, non-duplicate region annotation."""
        labels = labels or LabelAllocator()
        annotation_id = annotation_id_for(annotation)
        color = color_for(annotation.type)
        cx, cy = region.center
        anchor = {ANCHOR_X_KEY: cx, ANCHOR_Y_KEY: cy}
        label_text = inline_math_to_plain_text(annotation.text) or annotation.text
        label_w = estimate_label_width(label_text)
        shape_ids: List[str] = []

        if isinstance(annotation, ReferenceAnnotation):
            lx, ly = labels.reserve(region.x + region.width + LABEL_GAP, cy - LABEL_HEIGHT / 2, label_w, LABEL_HEIGHT)
            shape_ids.append(self._create(
                "text", (lx, ly), (label_w, LABEL_HEIGHT), ShapeStyle(color=color, size="s"),
                self._metadata(annotation, annotation_id, "label", extra=anchor), text=label_text,
            ))
        else:
            box = marker_box(region)
            shape_ids.append(self._create(
                "ellipse", (box.x, box.y), (box.width, box.height),
                ShapeStyle(color=color, dash="draw", fill="none", size="m"),
                self._metadata(annotation, annotation_id, "marker", extra=anchor),
            ))
            lx, ly = labels.reserve(box.x + box.width + LABEL_GAP, cy - LABEL_HEIGHT / 2, label_w, LABEL_HEIGHT)
            start = (box.x + box.width, cy)
            end = (lx, ly + LABEL_HEIGHT / 2)
            shape_ids.append(self._create(
                "arrow", start, (end[0] - start[0], end[1] - start[1]),
                ShapeStyle(color=color, dash="solid", size="s"),
                self._metadata(annotation, annotation_id, "connector", extra=anchor),
            ))
            shape_ids.append(self._create(
                "text", (lx, ly), (label_w, LABEL_HEIGHT), ShapeStyle(color=color, size="s"),
                self._metadata(annotation, annotation_id, "label", extra=anchor), text=label_text,
            ))

        ANNOTATIONS_RENDERED.labels(annotation_type=annotation.type).inc()
        return RenderedAnnotation(annotation_id=annotation_id, type=annotation.type, shape_ids=shape_ids, anchor=(cx, cy))

    def render_badge(self, annotation: SuccessAnnotation, bounds: CapturedBounds) -> RenderedAnnotation:
        """Render the fixed success badge above the content area."""
        annotation_id = annotation_id_for(annotation)
        x = bounds.min_x + bounds.width / 2 - BADGE_WIDTH / 2
        y = bounds.min_y - BADGE_OFFSET
        shape_id = self._create(
            "rect", (x, y), (BADGE_WIDTH, BADGE_HEIGHT),
            ShapeStyle(color=color_for("success"), dash="solid", fill="semi", size="m"),
            self._metadata(annotation, annotation_id, "badge"),
            text=inline_math_to_plain_text(annotation.text) or annotation.text,
        )
        ANNOTATIONS_RENDERED.labels(annotation_type="success").inc()
        return RenderedAnnotation(annotation_id=annotation_id, type="success", shape_ids=[shape_id])

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _metadata(self, annotation: Annotation, annotation_id: str, role: str, extra: Optional[dict] = None) -> dict:
        explanation = annotation.explanation
        if self.explanation_filter is not None:
            explanation = self.explanation_filter(explanation)
        meta = {
            AI_ANNOTATION_KEY: True,
            "annotation_id": annotation_id,
            "annotation_type": annotation.type,
            "role": role,
            "text": annotation.text,
            "explanation": explanation,
        }
        if extra:
            meta.update(extra)
        return meta

    def _create(self, kind, position, size, style, metadata, text=None) -> str:
        return self.canvas.create_shape(kind, position, size, style, metadata, text=text)
