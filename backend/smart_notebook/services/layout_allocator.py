"""smart_notebook/services/layout_allocator.py

Allocator for annotation labels.

Labels are placed to the right of their marker.  When two markers sit at a
similar height their labels would land on top of each other, so every label
box reserved in the current pass is remembered and a new label that would
intersect one of them is pushed down below it.  Only the vertical position
moves; the label stays beside its marker.

One allocator lives for exactly one render batch; nothing is persisted.
"""
import logging
from typing import List, Tuple

log = logging.getLogger(__name__)

_LABEL_SPACING = 8.0   # px between stacked labels

# (left, top, right, bottom)
Box = Tuple[float, float, float, float]


class LabelAllocator:
    """Keeps track of the label boxes placed so far in a batch."""

    def __init__(self, spacing: float = _LABEL_SPACING) -> None:
        self.spacing = spacing
        self._boxes: List[Box] = []

    def reserve(self, x: float, y: float, width: float, height: float) -> Tuple[float, float]:
        """Return the top-left where a ``width`` x ``height`` label should go.

        The label keeps its requested *x*; *y* is moved down until the box
        clears every label already reserved whose horizontal extent it shares.
        """
        top = y
        moved = True
        while moved:
            moved = False
            for left, occupied_top, right, occupied_bottom in self._boxes:
                if x < right and x + width > left and top < occupied_bottom and top + height > occupied_top:
                    top = occupied_bottom + self.spacing
                    moved = True
        self._boxes.append((x, top, x + width, top + height))
        if top != y:
            log.debug("[layout_allocator] Stacked label at x=%.1f from y=%.1f to y=%.1f", x, y, top)
        return x, top
