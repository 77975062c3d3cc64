"""smart_notebook/services/canvas.py

The drawing surface the annotation engine talks to.

The engine only needs a handful of operations from the canvas (list shapes,
read their page bounds, create/delete shapes, rasterise a region and get
notified about user edits and selection changes).  ``CanvasSurface`` spells
that contract out; ``InMemoryCanvas`` is the server-side implementation used
by notebook sessions (mirrored from the browser over the websocket) and by
the test-suite.  Rasterisation is done with Pillow.
"""
from __future__ import annotations

import asyncio
import io
import logging
import math
import uuid
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional, Protocol, Sequence, Tuple

from PIL import Image, ImageColor, ImageDraw, ImageFont
from pydantic import BaseModel, Field

from smart_notebook.core_models import CapturedBounds

log = logging.getLogger(__name__)

# (minx, miny, maxx, maxy) in page coordinates
BoundingBox = Tuple[float, float, float, float]
Point = Tuple[float, float]

ShapeKind = Literal["stroke", "rect", "ellipse", "text", "arrow"]

UserEditListener = Callable[[], None]
SelectionListener = Callable[[List[str]], None]
ChangeListener = Callable[[str, Dict[str, Any]], None]

_STROKE_WIDTH = {"s": 2, "m": 3, "l": 5}

# Named colours of the browser drawing palette; anything else goes through Pillow.
_PALETTE_COLORS = {
    "black": "#1d1d1d",
    "grey": "#9fa8b2",
    "light-violet": "#e085f4",
    "violet": "#ae3ec9",
    "blue": "#4465e9",
    "light-blue": "#4ba1f1",
    "yellow": "#f1ac4b",
    "orange": "#e16919",
    "green": "#099268",
    "light-green": "#4cb05e",
    "light-red": "#f87777",
    "red": "#e03131",
    "white": "#ffffff",
}
_FALLBACK_RGB = (0, 0, 0)


def resolve_color(color: str) -> Tuple[int, int, int]:
    """Map a palette name or CSS colour to RGB; unknown values draw black."""
    value = _PALETTE_COLORS.get(color, color)
    try:
        rgb = ImageColor.getrgb(value)
    except (ValueError, AttributeError):
        log.debug("[canvas] Unknown colour %r, drawing in black", color)
        return _FALLBACK_RGB
    return rgb[:3]


class ShapeStyle(BaseModel):
    color: str = "#000000"
    dash: Literal["solid", "dashed", "draw"] = "draw"
    fill: Literal["none", "semi", "solid"] = "none"
    size: Literal["s", "m", "l"] = "m"


class Shape(BaseModel):
    """A visual primitive on the page.

    For ``arrow`` shapes ``width``/``height`` hold the offset from the start
    point to the tip and may be negative.  ``points`` (strokes only) are
    relative to ``(x, y)``.
    """
    id: str
    kind: ShapeKind
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0
    text: Optional[str] = None
    points: List[Point] = Field(default_factory=list)
    style: ShapeStyle = Field(default_factory=ShapeStyle)
    meta: Dict[str, Any] = Field(default_factory=dict)

    def page_bounds(self) -> BoundingBox:
        if self.kind == "stroke" and self.points:
            xs = [self.x + px for px, _ in self.points]
            ys = [self.y + py for _, py in self.points]
            return (min(xs), min(ys), max(xs), max(ys))
        x2 = self.x + self.width
        y2 = self.y + self.height
        return (min(self.x, x2), min(self.y, y2), max(self.x, x2), max(self.y, y2))


class CanvasSurface(Protocol):
    """Operations the annotation engine requires from a drawing surface."""

    def list_current_shape_ids(self) -> List[str]: ...

    def get_shape(self, shape_id: str) -> Optional[Shape]: ...

    def get_shape_page_bounds(self, shape_id: str) -> Optional[BoundingBox]: ...

    def create_shape(
        self,
        kind: ShapeKind,
        position: Point,
        size: Tuple[float, float],
        style: ShapeStyle,
        metadata: Dict[str, Any],
        *,
        text: Optional[str] = None,
    ) -> str: ...

    def delete_shapes(self, shape_ids: Iterable[str]) -> None: ...

    async def rasterize_region(
        self,
        shape_ids: Sequence[str],
        bounds: CapturedBounds,
        *,
        image_format: str = "png",
        scale: float = 1.0,
        background: bool = True,
    ) -> Optional[bytes]: ...

    def page_to_viewport(self, point: Point) -> Point: ...

    def on_user_edit(self, callback: UserEditListener) -> Callable[[], None]: ...

    def on_selection_changed(self, callback: SelectionListener) -> Callable[[], None]: ...


def new_shape_id() -> str:
    return f"shape:{uuid.uuid4().hex[:16]}"


class InMemoryCanvas:
    """Dictionary-backed canvas.

    User-originated mutations go through :meth:`upsert_user_shape` /
    :meth:`remove_user_shapes` and notify edit listeners; engine writes go
    through :meth:`create_shape` / :meth:`delete_shapes` and only notify
    change listeners (used to forward actions to the browser).
    """

    def __init__(self, *, camera_x: float = 0.0, camera_y: float = 0.0, zoom: float = 1.0) -> None:
        self._shapes: Dict[str, Shape] = {}
        self._selected: List[str] = []
        self.camera_x = camera_x
        self.camera_y = camera_y
        self.zoom = zoom
        self._edit_listeners: List[UserEditListener] = []
        self._selection_listeners: List[SelectionListener] = []
        self._change_listeners: List[ChangeListener] = []

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def list_current_shape_ids(self) -> List[str]:
        return list(self._shapes.keys())

    def get_shape(self, shape_id: str) -> Optional[Shape]:
        return self._shapes.get(shape_id)

    def get_shape_page_bounds(self, shape_id: str) -> Optional[BoundingBox]:
        shape = self._shapes.get(shape_id)
        return shape.page_bounds() if shape else None

    @property
    def selected_ids(self) -> List[str]:
        return list(self._selected)

    def page_to_viewport(self, point: Point) -> Point:
        x, y = point
        return ((x + self.camera_x) * self.zoom, (y + self.camera_y) * self.zoom)

    # ------------------------------------------------------------------ #
    # Engine writes
    # ------------------------------------------------------------------ #

    def create_shape(
        self,
        kind: ShapeKind,
        position: Point,
        size: Tuple[float, float],
        style: ShapeStyle,
        metadata: Dict[str, Any],
        *,
        text: Optional[str] = None,
    ) -> str:
        shape = Shape(
            id=new_shape_id(),
            kind=kind,
            x=position[0],
            y=position[1],
            width=size[0],
            height=size[1],
            text=text,
            style=style,
            meta=dict(metadata),
        )
        self._shapes[shape.id] = shape
        self._emit_change("shape_created", {"shape": shape.model_dump()})
        return shape.id

    def delete_shapes(self, shape_ids: Iterable[str]) -> None:
        removed = [sid for sid in shape_ids if self._shapes.pop(sid, None) is not None]
        if not removed:
            return
        self._selected = [sid for sid in self._selected if sid not in removed]
        self._emit_change("shapes_deleted", {"ids": removed})

    # ------------------------------------------------------------------ #
    # User-originated mutations
    # ------------------------------------------------------------------ #

    def upsert_user_shape(self, shape: Shape) -> None:
        self._shapes[shape.id] = shape
        self._notify_edit()

    def remove_user_shapes(self, shape_ids: Iterable[str]) -> None:
        removed = [sid for sid in shape_ids if self._shapes.pop(sid, None) is not None]
        if removed:
            self._selected = [sid for sid in self._selected if sid not in removed]
            self._notify_edit()

    def select(self, shape_ids: Sequence[str]) -> None:
        self._selected = [sid for sid in shape_ids if sid in self._shapes]
        for listener in list(self._selection_listeners):
            listener(list(self._selected))

    # ------------------------------------------------------------------ #
    # Subscriptions
    # ------------------------------------------------------------------ #

    def on_user_edit(self, callback: UserEditListener) -> Callable[[], None]:
        self._edit_listeners.append(callback)
        return lambda: self._discard(self._edit_listeners, callback)

    def on_selection_changed(self, callback: SelectionListener) -> Callable[[], None]:
        self._selection_listeners.append(callback)
        return lambda: self._discard(self._selection_listeners, callback)

    def on_change(self, callback: ChangeListener) -> Callable[[], None]:
        self._change_listeners.append(callback)
        return lambda: self._discard(self._change_listeners, callback)

    @staticmethod
    def _discard(listeners: list, callback: Callable) -> None:
        if callback in listeners:
            listeners.remove(callback)

    def _notify_edit(self) -> None:
        for listener in list(self._edit_listeners):
            listener()

    def _emit_change(self, event: str, payload: Dict[str, Any]) -> None:
        for listener in list(self._change_listeners):
            try:
                listener(event, payload)
            except Exception as exc:  # pragma: no cover
                log.error("[canvas] Change listener failed for %s: %s", event, exc, exc_info=True)

    # ------------------------------------------------------------------ #
    # Rasterisation
    # ------------------------------------------------------------------ #

    async def rasterize_region(
        self,
        shape_ids: Sequence[str],
        bounds: CapturedBounds,
        *,
        image_format: str = "png",
        scale: float = 1.0,
        background: bool = True,
    ) -> Optional[bytes]:
        """Render *shape_ids* clipped to *bounds*; ``None`` if Pillow fails."""
        shapes = [self._shapes[sid] for sid in shape_ids if sid in self._shapes]
        try:
            return await asyncio.to_thread(_render_region, shapes, bounds, image_format, scale, background)
        except (OSError, ValueError, KeyError) as exc:
            log.warning("[canvas] Rasterisation failed: %s", exc)
            return None


def _render_region(
    shapes: List[Shape],
    bounds: CapturedBounds,
    image_format: str,
    scale: float,
    background: bool,
) -> bytes:
    width_px = max(1, math.ceil(bounds.width * scale))
    height_px = max(1, math.ceil(bounds.height * scale))
    if background:
        image = Image.new("RGB", (width_px, height_px), "white")
    else:
        image = Image.new("RGBA", (width_px, height_px), (0, 0, 0, 0))
    draw = ImageDraw.Draw(image)
    font = ImageFont.load_default()

    def to_px(px: float, py: float) -> Point:
        return ((px - bounds.min_x) * scale, (py - bounds.min_y) * scale)

    for shape in shapes:
        line_width = max(1, round(_STROKE_WIDTH[shape.style.size] * scale))
        color = resolve_color(shape.style.color)
        if shape.kind == "stroke":
            pts = [to_px(shape.x + px, shape.y + py) for px, py in shape.points]
            if len(pts) == 1:
                cx, cy = pts[0]
                draw.ellipse((cx - line_width, cy - line_width, cx + line_width, cy + line_width), fill=color)
            elif pts:
                draw.line(pts, fill=color, width=line_width, joint="curve")
            continue
        minx, miny, maxx, maxy = shape.page_bounds()
        x0, y0 = to_px(minx, miny)
        x1, y1 = to_px(maxx, maxy)
        fill = color if shape.style.fill == "solid" else None
        if shape.kind == "rect":
            draw.rectangle((x0, y0, x1, y1), outline=color, fill=fill, width=line_width)
        elif shape.kind == "ellipse":
            draw.ellipse((x0, y0, x1, y1), outline=color, fill=fill, width=line_width)
        elif shape.kind == "arrow":
            start = to_px(shape.x, shape.y)
            end = to_px(shape.x + shape.width, shape.y + shape.height)
            draw.line([start, end], fill=color, width=line_width)
            continue
        if shape.text:
            text_color = "white" if fill else color
            draw.text((x0 + 4, y0 + 4), shape.text, fill=text_color, font=font)

    buffer = io.BytesIO()
    image.save(buffer, format=image_format.upper())
    return buffer.getvalue()
