"""smart_notebook/services/capture.py

Single awaitable capture step: bounds in, encoded image (or a typed failure)
out.  The image is always rendered on an opaque background because vision
models need real pixels, not a transparent canvas.
"""
import base64
import logging
from typing import Optional, Sequence

from pydantic import BaseModel

from smart_notebook.core_models import CapturedBounds
from smart_notebook.exceptions import CaptureError
from smart_notebook.services.canvas import CanvasSurface

log = logging.getLogger(__name__)

_MIME_TYPES = {"png": "image/png", "jpeg": "image/jpeg", "webp": "image/webp"}


class CapturedImage(BaseModel):
    data: bytes
    image_format: str = "png"
    bounds: CapturedBounds

    @property
    def data_url(self) -> str:
        mime = _MIME_TYPES.get(self.image_format, f"image/{self.image_format}")
        return f"data:{mime};base64,{base64.b64encode(self.data).decode('ascii')}"


async def capture_region(
    canvas: CanvasSurface,
    shape_ids: Sequence[str],
    bounds: CapturedBounds,
    *,
    image_format: str = "png",
    scale: float = 1.0,
) -> CapturedImage:
    """Rasterise exactly *bounds*; raises :class:`CaptureError` when nothing was produced."""
    data: Optional[bytes] = await canvas.rasterize_region(
        list(shape_ids),
        bounds,
        image_format=image_format,
        scale=scale,
        background=True,
    )
    if not data:
        raise CaptureError()
    log.debug("[capture] Captured %d shape(s) into %d bytes", len(shape_ids), len(data))
    return CapturedImage(data=data, image_format=image_format, bounds=bounds)
