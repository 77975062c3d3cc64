from smart_notebook.utils.latex import (
    format_math_text,
    inline_math_to_plain_text,
    latex_fragment_to_plain_text,
    restore_latex_escapes,
)


def test_restore_escapes_from_json_damage():
    # "\frac" and "\times" sent unescaped inside JSON arrive as control characters.
    assert restore_latex_escapes("\x0crac{1}{2} \times 3") == "\\frac{1}{2} \\times 3"
    assert restore_latex_escapes(None) == ""


def test_format_wraps_bare_commands():
    assert format_math_text("Compute \\sqrt{16} first") == "Compute $\\sqrt{16}$ first"
    assert format_math_text("the angle \\theta") == "the angle $\\theta$"


def test_format_leaves_delimited_text_alone():
    text = "Here $x^{2}$ and \\frac{1}{2}"
    assert format_math_text(text) == text


def test_format_empty():
    assert format_math_text("") == ""


def test_fragment_to_plain_text():
    assert latex_fragment_to_plain_text("\\frac{a}{b} \\cdot \\pi") == "(a)/(b) · π"
    assert latex_fragment_to_plain_text("\\sqrt{x} \\geq 0") == "√(x) ≥ 0"
    assert latex_fragment_to_plain_text("\\text{area} = r^{2}") == "area = r^2"


def test_inline_math_to_plain_text_handles_all_delimiters():
    assert inline_math_to_plain_text("Since $x \\neq 0$, divide") == "Since x ≠ 0 , divide"
    assert inline_math_to_plain_text("\\(a \\times b\\)") == "a × b"
    assert inline_math_to_plain_text("$$\\alpha$$") == "α"
    assert inline_math_to_plain_text("plain") == "plain"
