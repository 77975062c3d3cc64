from smart_notebook.core_models import CapturedBounds, SolutionStep
from smart_notebook.services.solution_renderer import AI_SOLUTION_KEY, SOLUTION_GAP, SolutionRenderer

STEPS = [
    SolutionStep(explanation="Move $3$ to the right", latex="2x = 7 - 3"),
    SolutionStep(explanation="Divide by two", latex="x = \\frac{4}{2}"),
]


def test_steps_stack_below_content(canvas):
    renderer = SolutionRenderer(canvas)
    bounds = CapturedBounds(min_x=40, min_y=10, width=300, height=90)

    created = renderer.render(STEPS, bounds)

    shapes = [canvas.get_shape(sid) for sid in created]
    assert len(shapes) == 4
    assert shapes[0].x == 40
    assert shapes[0].y == 100 + SOLUTION_GAP
    assert [s.y for s in shapes] == sorted(s.y for s in shapes)
    assert all(s.meta[AI_SOLUTION_KEY] for s in shapes)
    assert shapes[0].text == "1. Move 3 to the right"
    assert shapes[3].text == "x = (4)/(2)"
    assert shapes[3].meta["latex"] == "x = \\frac{4}{2}"


def test_rerender_replaces_previous_solution(canvas):
    renderer = SolutionRenderer(canvas)
    first = renderer.render(STEPS, None)

    second = renderer.render(STEPS[:1], None)

    assert all(canvas.get_shape(sid) is None for sid in first)
    assert renderer.solution_shape_ids() == second


def test_empty_canvas_starts_at_origin(canvas):
    created = SolutionRenderer(canvas).render(STEPS[:1], None)
    assert (canvas.get_shape(created[0]).x, canvas.get_shape(created[0]).y) == (0, 0)


def test_clear_removes_only_solution_shapes(canvas, stroke):
    stroke(canvas, "s1", 0, 0, 10, 10)
    renderer = SolutionRenderer(canvas)
    renderer.render(STEPS, None)

    assert renderer.clear() == 4
    assert canvas.list_current_shape_ids() == ["s1"]
