import math

import pytest

from smart_notebook.core_models import CapturedBounds, parse_annotation
from smart_notebook.services.coordinate_mapper import FALLBACK_EXTENT, map_annotation


def _warning(x, y, width, height):
    return parse_annotation({
        "type": "warning", "text": "Sign", "explanation": "Sign error",
        "x": x, "y": y, "width": width, "height": height,
    })


def test_normalised_box_maps_onto_capture_bounds():
    bounds = CapturedBounds(min_x=100, min_y=100, width=300, height=120)

    region = map_annotation(_warning(0.5, 0.5, 0.1, 0.1), bounds)

    assert region.x == pytest.approx(250)
    assert region.y == pytest.approx(160)
    assert region.width == pytest.approx(30)
    assert region.height == pytest.approx(12)
    assert region.center == pytest.approx((265, 166))


@pytest.mark.parametrize("ax,ay", [(0, 0), (1, 1), (0.25, 0.75)])
def test_mapping_is_affine_per_axis(ax, ay):
    bounds = CapturedBounds(min_x=-50, min_y=20, width=400, height=200)

    region = map_annotation(_warning(ax, ay, 0.5, 0.5), bounds)

    assert region.x == pytest.approx(bounds.min_x + ax * bounds.width)
    assert region.y == pytest.approx(bounds.min_y + ay * bounds.height)


def test_zero_extent_uses_fallback():
    bounds = CapturedBounds(min_x=10, min_y=20, width=0, height=0)

    region = map_annotation(_warning(0.5, 0.5, 0.1, 0.1), bounds)

    assert region.x == pytest.approx(10 + 0.5 * FALLBACK_EXTENT)
    assert region.y == pytest.approx(20 + 0.5 * FALLBACK_EXTENT)
    assert region.width == pytest.approx(0.1 * FALLBACK_EXTENT)
    assert math.isfinite(region.height)


def test_custom_fallback_extent():
    bounds = CapturedBounds(min_x=0, min_y=0, width=200, height=0)

    region = map_annotation(_warning(0.5, 0.5, 0.5, 0.5), bounds, fallback_extent=100)

    assert region.x == pytest.approx(100)   # real width kept
    assert region.y == pytest.approx(50)    # fallback height


def test_centre_box_on_square_bounds():
    bounds = CapturedBounds(min_x=100, min_y=100, width=200, height=200)

    region = map_annotation(_warning(0.5, 0.5, 0.1, 0.1), bounds)

    assert (region.x, region.y) == pytest.approx((200, 200))
    assert (region.width, region.height) == pytest.approx((20, 20))


def test_tiny_box_is_floored_before_mapping():
    bounds = CapturedBounds(min_x=0, min_y=0, width=1000, height=1000)

    region = map_annotation(_warning(1.4, -0.3, 0.001, 0.001), bounds)

    assert (region.x, region.y) == pytest.approx((1000, 0))
    assert region.width == pytest.approx(20)
