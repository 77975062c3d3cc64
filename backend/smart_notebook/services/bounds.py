"""smart_notebook/services/bounds.py

Computes the page-space rectangle enclosing a set of canvas shapes.  The
result is the reference frame for one analysis pass: the captured image shows
exactly this rectangle and the model's normalised boxes are relative to it.
"""
import logging
import math
from typing import Iterable, Optional

from smart_notebook.core_models import CapturedBounds
from smart_notebook.services.canvas import CanvasSurface

log = logging.getLogger(__name__)

# Analysis captures must map 1:1 onto model coordinates.
ANALYSIS_PADDING = 0.0
# Chat/solution snapshots only need some surrounding context.
SNAPSHOT_PADDING = 20.0


def compute_bounds(
    canvas: CanvasSurface,
    shape_ids: Optional[Iterable[str]] = None,
    padding: float = ANALYSIS_PADDING,
) -> Optional[CapturedBounds]:
    """Return the union of the page bounds of *shape_ids*.

    Defaults to every shape on the canvas.  Returns ``None`` when there is no
    content to bound (empty selection, or no shape reported a bounding box).
    """
    ids = list(shape_ids) if shape_ids is not None else canvas.list_current_shape_ids()
    if not ids:
        return None

    min_x = min_y = math.inf
    max_x = max_y = -math.inf
    for shape_id in ids:
        bbox = canvas.get_shape_page_bounds(shape_id)
        if bbox is None:
            log.debug("[bounds] Shape %s has no page bounds, skipping", shape_id)
            continue
        sx0, sy0, sx1, sy1 = bbox
        min_x = min(min_x, sx0)
        min_y = min(min_y, sy0)
        max_x = max(max_x, sx1)
        max_y = max(max_y, sy1)

    if not math.isfinite(min_x) or not math.isfinite(max_x):
        return None

    return CapturedBounds(
        min_x=min_x - padding,
        min_y=min_y - padding,
        width=(max_x - min_x) + padding * 2,
        height=(max_y - min_y) + padding * 2,
    )
