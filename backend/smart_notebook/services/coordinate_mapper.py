"""Maps normalised annotation boxes back onto the canvas page."""
import math

from smart_notebook.core_models import CapturedBounds, MappedRegion, RegionAnnotation

# Extent used in place of a zero or non-finite capture width/height.
FALLBACK_EXTENT = 500.0


def _extent(value: float, fallback: float) -> float:
    if not math.isfinite(value) or value <= 0:
        return fallback
    return value


def map_annotation(
    annotation: RegionAnnotation,
    bounds: CapturedBounds,
    fallback_extent: float = FALLBACK_EXTENT,
) -> MappedRegion:
    """Convert *annotation*'s 0-1 box into absolute page coordinates.

    *bounds* must be the instance the annotated image was captured with.
    """
    width = _extent(bounds.width, fallback_extent)
    height = _extent(bounds.height, fallback_extent)
    return MappedRegion(
        x=bounds.min_x + annotation.x * width,
        y=bounds.min_y + annotation.y * height,
        width=annotation.width * width,
        height=annotation.height * height,
    )
