"""Resolves canvas selections back to annotation explanations."""
import logging
from typing import Callable, List, Optional, Sequence, get_args

from smart_notebook.core_models import AnnotationType, SelectionDetail
from smart_notebook.services.canvas import CanvasSurface
from smart_notebook.services.spatial_index import ANCHOR_X_KEY, ANCHOR_Y_KEY

log = logging.getLogger(__name__)

_KNOWN_TYPES = set(get_args(AnnotationType))

DetailListener = Callable[[Optional[SelectionDetail]], None]


class SelectionBridge:
    """Surfaces ``{x, y, text, explanation, type}`` when an AI shape is selected.

    Any other selection (nothing, several shapes, a student's own stroke)
    yields ``None`` so the presentation layer can dismiss its bubble.
    """

    def __init__(self, canvas: CanvasSurface, on_detail: DetailListener) -> None:
        self.canvas = canvas
        self.on_detail = on_detail
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.canvas.on_selection_changed(self.handle_selection)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def handle_selection(self, shape_ids: List[str]) -> None:
        self.on_detail(self.resolve(shape_ids))

    def resolve(self, shape_ids: Sequence[str]) -> Optional[SelectionDetail]:
        if len(shape_ids) != 1:
            return None
        shape = self.canvas.get_shape(shape_ids[0])
        if shape is None:
            return None
        explanation = shape.meta.get("explanation")
        if not isinstance(explanation, str) or not explanation:
            return None

        if ANCHOR_X_KEY in shape.meta and ANCHOR_Y_KEY in shape.meta:
            page_point = (float(shape.meta[ANCHOR_X_KEY]), float(shape.meta[ANCHOR_Y_KEY]))
        else:
            minx, miny, maxx, maxy = shape.page_bounds()
            page_point = ((minx + maxx) / 2, (miny + maxy) / 2)
        screen_x, screen_y = self.canvas.page_to_viewport(page_point)

        annotation_type = shape.meta.get("annotation_type")
        if annotation_type not in _KNOWN_TYPES:
            annotation_type = "info"
        log.debug("[selection] Resolved %s to annotation %s", shape.id, shape.meta.get("annotation_id"))
        return SelectionDetail(
            x=screen_x,
            y=screen_y,
            text=str(shape.meta.get("text") or "Annotation"),
            explanation=explanation,
            type=annotation_type,
        )
