"""Writes a step-by-step solution onto the canvas, below the student's work."""
import logging
from typing import List, Optional, Sequence

from smart_notebook.core_models import CapturedBounds, SolutionStep
from smart_notebook.services.canvas import CanvasSurface, ShapeStyle
from smart_notebook.utils.latex import inline_math_to_plain_text, latex_fragment_to_plain_text, normalize_latex_for_image

log = logging.getLogger(__name__)

AI_SOLUTION_KEY = "ai_solution"

SOLUTION_GAP = 80.0    # between the content and the first step
LINE_HEIGHT = 28.0
STEP_SPACING = 16.0
LATEX_INDENT = 24.0
_EXPLANATION_COLOR = "#000000"
_LATEX_COLOR = "#1976D2"


class SolutionRenderer:
    def __init__(self, canvas: CanvasSurface) -> None:
        self.canvas = canvas

    def solution_shape_ids(self) -> List[str]:
        ids = []
        for shape_id in self.canvas.list_current_shape_ids():
            shape = self.canvas.get_shape(shape_id)
            if shape is not None and shape.meta.get(AI_SOLUTION_KEY):
                ids.append(shape_id)
        return ids

    def clear(self) -> int:
        ids = self.solution_shape_ids()
        if ids:
            self.canvas.delete_shapes(ids)
        return len(ids)

    def render(self, steps: Sequence[SolutionStep], bounds: Optional[CapturedBounds]) -> List[str]:
        """Replace any previous solution with *steps*.

        Steps start :data:`SOLUTION_GAP` below *bounds* (or at the page origin
        when the canvas is empty), one explanation line and one formula line
        per step.
        """
        self.clear()
        x = bounds.min_x if bounds else 0.0
        y = bounds.max_y + SOLUTION_GAP if bounds else 0.0
        created: List[str] = []

        for number, step in enumerate(steps, start=1):
            text = f"{number}. {inline_math_to_plain_text(step.explanation)}"
            created.append(self.canvas.create_shape(
                "text", (x, y), (max(120.0, len(text) * 9.0), LINE_HEIGHT),
                ShapeStyle(color=_EXPLANATION_COLOR, size="s"),
                {AI_SOLUTION_KEY: True, "step": number, "step_explanation": step.explanation},
                text=text,
            ))
            y += LINE_HEIGHT
            if step.latex:
                formula = latex_fragment_to_plain_text(normalize_latex_for_image(step.latex))
                created.append(self.canvas.create_shape(
                    "text", (x + LATEX_INDENT, y), (max(120.0, len(formula) * 11.0), LINE_HEIGHT),
                    ShapeStyle(color=_LATEX_COLOR, size="m"),
                    {AI_SOLUTION_KEY: True, "step": number, "latex": step.latex},
                    text=formula,
                ))
                y += LINE_HEIGHT
            y += STEP_SPACING

        log.info("[solution_renderer] Rendered %d step(s) as %d shape(s)", len(steps), len(created))
        return created
