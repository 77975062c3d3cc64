import pytest

from smart_notebook.services.bounds import compute_bounds
from smart_notebook.services.canvas import InMemoryCanvas, Shape, ShapeStyle, new_shape_id


def test_stroke_bounds_use_relative_points():
    shape = Shape(id="s", kind="stroke", x=10, y=20, points=[(0, 0), (30, -5), (15, 40)])
    assert shape.page_bounds() == (10, 15, 40, 60)


def test_arrow_bounds_normalise_negative_offsets():
    shape = Shape(id="a", kind="arrow", x=100, y=100, width=-50, height=20)
    assert shape.page_bounds() == (50, 100, 100, 120)


def test_new_shape_ids_are_unique_and_prefixed():
    ids = {new_shape_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(i.startswith("shape:") for i in ids)


def test_engine_writes_emit_changes_but_not_edits():
    canvas = InMemoryCanvas()
    edits, changes = [], []
    canvas.on_user_edit(lambda: edits.append(1))
    canvas.on_change(lambda event, payload: changes.append((event, payload)))

    sid = canvas.create_shape("ellipse", (0, 0), (10, 10), ShapeStyle(), {"ai_annotation": True})
    canvas.delete_shapes([sid, "shape:unknown"])

    assert edits == []
    assert [event for event, _ in changes] == ["shape_created", "shapes_deleted"]
    assert changes[0][1]["shape"]["id"] == sid
    assert changes[1][1] == {"ids": [sid]}


def test_user_mutations_notify_edit_listeners(stroke):
    canvas = InMemoryCanvas()
    edits = []
    unsubscribe = canvas.on_user_edit(lambda: edits.append(1))

    stroke(canvas, "s1", 0, 0, 10, 10)
    canvas.remove_user_shapes(["s1"])
    canvas.remove_user_shapes(["s1"])       # nothing removed, no edit
    unsubscribe()
    stroke(canvas, "s2", 0, 0, 10, 10)

    assert len(edits) == 2


def test_select_filters_unknown_ids_and_notifies(stroke):
    canvas = InMemoryCanvas()
    seen = []
    canvas.on_selection_changed(seen.append)
    stroke(canvas, "s1", 0, 0, 10, 10)

    canvas.select(["s1", "ghost"])

    assert seen == [["s1"]]
    assert canvas.selected_ids == ["s1"]


def test_deleting_selected_shape_updates_selection(stroke):
    canvas = InMemoryCanvas()
    stroke(canvas, "s1", 0, 0, 10, 10)
    canvas.select(["s1"])
    canvas.remove_user_shapes(["s1"])
    assert canvas.selected_ids == []


def test_page_to_viewport_applies_camera_and_zoom():
    canvas = InMemoryCanvas(camera_x=10, camera_y=-20, zoom=0.5)
    assert canvas.page_to_viewport((30, 40)) == (20, 10)


@pytest.mark.asyncio
async def test_rasterize_transparent_background(stroke):
    canvas = InMemoryCanvas()
    stroke(canvas, "s1", 0, 0, 40, 40)

    data = await canvas.rasterize_region(["s1"], compute_bounds(canvas), background=False)

    assert data.startswith(b"\x89PNG")
