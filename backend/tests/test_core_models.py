import pytest
from pydantic import ValidationError

from smart_notebook.core_models import (
    MIN_BOX_SIZE,
    CapturedBounds,
    ReferenceAnnotation,
    SuccessAnnotation,
    WarningAnnotation,
    clamp_unit,
    parse_annotation,
    parse_annotations,
)


@pytest.mark.parametrize("raw,expected", [
    (0.5, 0.5), (-0.3, 0.0), (1.7, 1.0), ("0.25", 0.25), ("abc", 0.0), (None, 0.0), (float("nan"), 0.0),
])
def test_clamp_unit(raw, expected):
    assert clamp_unit(raw) == expected


def test_box_is_clamped_into_unit_square():
    annotation = parse_annotation({
        "type": "warning", "text": "Sign", "explanation": "...",
        "x": -0.2, "y": 1.4, "width": 0.0, "height": 3,
    })

    assert isinstance(annotation, WarningAnnotation)
    assert (annotation.x, annotation.y) == (0.0, 1.0)
    assert annotation.width == MIN_BOX_SIZE
    assert annotation.height == 1.0


def test_success_ignores_box_fields():
    annotation = parse_annotation({
        "type": "success", "text": "Great", "explanation": "Correct.",
        "x": 0.3, "y": 0.3, "width": 0.1, "height": 0.1,
    })

    assert isinstance(annotation, SuccessAnnotation)
    assert not hasattr(annotation, "x")


def test_discriminator_selects_variant():
    annotation = parse_annotation({"type": "reference", "text": "Fixed", "explanation": "Earlier error.",
                                   "x": 0.1, "y": 0.1, "width": 0.2, "height": 0.2})
    assert isinstance(annotation, ReferenceAnnotation)


@pytest.mark.parametrize("item", [
    {"type": "critical", "text": "x", "explanation": "y", "x": 0, "y": 0, "width": 0.1, "height": 0.1},
    {"type": "warning", "explanation": "missing text", "x": 0, "y": 0, "width": 0.1, "height": 0.1},
    {"type": "info", "text": "no box", "explanation": "..."},
    {"text": "no type", "explanation": "..."},
])
def test_invalid_items_raise(item):
    with pytest.raises(ValidationError):
        parse_annotation(item)


def test_parse_annotations_drops_only_malformed_items():
    raw = [
        {"type": "warning", "text": "A", "explanation": "a", "x": 0.1, "y": 0.1, "width": 0.1, "height": 0.1},
        "garbage",
        {"type": "info", "text": "no box", "explanation": "..."},
        {"type": "success", "text": "B", "explanation": "b"},
    ]

    assert [a.text for a in parse_annotations(raw)] == ["A", "B"]


@pytest.mark.parametrize("raw", [None, {}, "annotations", 3])
def test_parse_annotations_requires_a_list(raw):
    assert parse_annotations(raw) == []


def test_captured_bounds_is_frozen_and_non_negative():
    bounds = CapturedBounds(min_x=-10, min_y=5, width=20, height=0)
    assert (bounds.max_x, bounds.max_y) == (10, 5)
    with pytest.raises(ValidationError):
        bounds.min_x = 0
    with pytest.raises(ValidationError):
        CapturedBounds(min_x=0, min_y=0, width=-1, height=1)
