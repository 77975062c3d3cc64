"""smart_notebook/services/spatial_index.py

Zone memory for AI annotation markers.

Before a new marker is placed we look for any live marker whose anchor lies
within a fixed radius of the candidate's centre; if one exists the new marker
is suppressed.

The index is a plain list walk rather than an rtree bbox query followed by a
distance filter.  A page holds a handful of markers and the index is rebuilt
from the canvas on every render batch, so building an R-tree would cost more
than scanning the anchors, and the distance check is needed either way.
"""
import logging
import math
from typing import List, Optional, Tuple

from smart_notebook.services.canvas import CanvasSurface

log = logging.getLogger(__name__)

# Roughly one marker footprint, in page units.
DEDUP_RADIUS = 150.0

# Shape metadata keys written by the renderer
AI_ANNOTATION_KEY = "ai_annotation"
ANCHOR_X_KEY = "anchor_x"
ANCHOR_Y_KEY = "anchor_y"

Point = Tuple[float, float]


class MarkerIndex:
    """Anchor points of the AI markers currently on the page."""

    def __init__(self, radius: float = DEDUP_RADIUS) -> None:
        self.radius = radius
        self._anchors: List[Tuple[str, Point]] = []

    @classmethod
    def from_canvas(cls, canvas: CanvasSurface, radius: float = DEDUP_RADIUS) -> "MarkerIndex":
        """Build an index from every AI-tagged shape that stores an anchor."""
        index = cls(radius=radius)
        for shape_id in canvas.list_current_shape_ids():
            shape = canvas.get_shape(shape_id)
            if shape is None or not shape.meta.get(AI_ANNOTATION_KEY):
                continue
            ax = shape.meta.get(ANCHOR_X_KEY)
            ay = shape.meta.get(ANCHOR_Y_KEY)
            if ax is None or ay is None:
                continue
            index.add_marker(shape_id, float(ax), float(ay))
        log.debug("[spatial_index] Indexed %d live marker(s)", len(index))
        return index

    def __len__(self) -> int:
        return len(self._anchors)

    def add_marker(self, marker_id: str, x: float, y: float) -> None:
        """Insert or move *marker_id* to anchor ``(x, y)``."""
        self.remove_marker(marker_id)
        self._anchors.append((marker_id, (x, y)))

    def remove_marker(self, marker_id: str) -> None:
        self._anchors = [(mid, pt) for (mid, pt) in self._anchors if mid != marker_id]

    def query_nearby(self, x: float, y: float, radius: Optional[float] = None) -> List[str]:
        """Return ids of markers whose anchor is strictly closer than *radius*."""
        limit = self.radius if radius is None else radius
        return [mid for mid, (ax, ay) in self._anchors if math.hypot(ax - x, ay - y) < limit]

    def is_duplicate(self, x: float, y: float) -> bool:
        return bool(self.query_nearby(x, y))
