from smart_notebook.services.canvas import ShapeStyle
from smart_notebook.services.spatial_index import DEDUP_RADIUS, MarkerIndex


def test_marker_within_radius_is_duplicate():
    index = MarkerIndex()
    index.add_marker("m1", 200, 200)

    assert index.is_duplicate(260, 260)         # ~85 away
    assert index.query_nearby(260, 260) == ["m1"]


def test_marker_at_exact_radius_is_not_duplicate():
    index = MarkerIndex(radius=150)
    index.add_marker("m1", 0, 0)

    assert not index.is_duplicate(150, 0)
    assert index.is_duplicate(149.9, 0)


def test_far_marker_is_not_duplicate():
    index = MarkerIndex()
    index.add_marker("m1", 0, 0)

    assert not index.is_duplicate(400, 0)


def test_add_marker_moves_existing_entry():
    index = MarkerIndex()
    index.add_marker("m1", 0, 0)
    index.add_marker("m1", 1000, 1000)

    assert len(index) == 1
    assert not index.is_duplicate(0, 0)


def test_remove_marker():
    index = MarkerIndex()
    index.add_marker("m1", 0, 0)
    index.add_marker("m2", 500, 0)
    index.remove_marker("m1")

    assert index.query_nearby(0, 0) == []
    assert len(index) == 1


def test_from_canvas_only_indexes_anchored_ai_shapes(canvas, stroke):
    stroke(canvas, "student", 0, 0, 10, 10)
    canvas.create_shape("ellipse", (0, 0), (20, 20), ShapeStyle(),
                        {"ai_annotation": True, "anchor_x": 10.0, "anchor_y": 10.0})
    canvas.create_shape("arrow", (20, 10), (50, 0), ShapeStyle(), {"ai_annotation": True})

    index = MarkerIndex.from_canvas(canvas)

    assert len(index) == 1
    assert index.is_duplicate(30, 30)



def test_nearby_candidate_suppressed_distant_one_placed():
    index = MarkerIndex()
    index.add_marker("existing", 300, 300)

    assert index.is_duplicate(340, 320)
    assert not index.is_duplicate(600, 600)


def test_default_radius():
    assert MarkerIndex().radius == DEDUP_RADIUS == 150.0
