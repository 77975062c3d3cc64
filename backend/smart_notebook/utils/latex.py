"""Cosmetic clean-up of math markup returned by the model.

Models regularly emit LaTeX with single backslashes inside JSON strings, so
``"\\frac"`` arrives as a form feed followed by ``rac``.  These helpers undo
that damage, add ``$`` delimiters around bare commands, and turn delimited
math into plain text for places that cannot render KaTeX (canvas labels).

Nothing here is part of the placement contract: explanations are opaque
strings and every function is safe to skip.
"""
import re
from typing import Optional

_ESCAPE_MAP = {
    "\b": "b",
    "\f": "f",
    "\r": "r",
    "\t": "t",
}

_FRACTION_RE = re.compile(r"\\frac\s*\{[^}]+\}\s*\{[^}]+\}")
_SQRT_RE = re.compile(r"\\sqrt\s*\{[^}]+\}")
_POWER_RE = re.compile(r"[a-zA-Z0-9]\s*\^\s*\{[^}]+\}")
_SUBSCRIPT_RE = re.compile(r"[a-zA-Z0-9]\s*_\s*\{[^}]+\}")
_BIG_OP_RE = re.compile(
    r"\\(?:int|sum|prod|lim|log|ln|sin|cos|tan|sec|csc|cot|arcsin|arccos|arctan)\b"
)
_GREEK_RE = re.compile(
    r"\\(?:alpha|beta|gamma|delta|epsilon|theta|lambda|mu|pi|sigma|omega"
    r"|Alpha|Beta|Gamma|Delta|Theta|Lambda|Pi|Sigma|Omega)\b"
)

_DELIMITED_PATTERNS = (
    re.compile(r"(\${1,2})([\s\S]*?)(\1)"),
    re.compile(r"(\\\()([\s\S]*?)(\\\))"),
    re.compile(r"(\\\[)([\s\S]*?)(\\\])"),
)

LATEX_TO_CHAR_MAP = {
    "\\pi": "π",
    "\\theta": "θ",
    "\\alpha": "α",
    "\\beta": "β",
    "\\gamma": "γ",
    "\\delta": "δ",
    "\\lambda": "λ",
    "\\mu": "μ",
    "\\sigma": "σ",
    "\\omega": "ω",
    "\\cdot": "·",
    "\\times": "×",
    "\\div": "÷",
    "\\pm": "±",
    "\\rightarrow": "→",
    "\\to": "→",
    "\\geq": "≥",
    "\\leq": "≤",
    "\\neq": "≠",
    "\\infty": "∞",
}


def restore_latex_escapes(text: Optional[str]) -> str:
    """Turn control characters produced by ``\\b``, ``\\f``, ``\\r``, ``\\t`` back into LaTeX."""
    if not text:
        return ""
    return "".join("\\" + _ESCAPE_MAP[ch] if ch in _ESCAPE_MAP else ch for ch in text)


def _wrap_if_needed(match: re.Match) -> str:
    source = match.string
    start, end = match.span()
    before = source[start - 1] if start > 0 else ""
    after = source[end] if end < len(source) else ""
    if before == "$" and after == "$":
        return match.group(0)
    return f"${match.group(0).strip()}$"


def format_math_text(text: Optional[str]) -> str:
    """Restore escapes and wrap bare LaTeX commands in ``$`` delimiters.

    Text that already contains a ``$`` is assumed to be delimited correctly
    and is returned untouched apart from the escape restoration.
    """
    if not text:
        return ""
    normalized = restore_latex_escapes(text)
    if "$" in normalized:
        return normalized
    for pattern in (_FRACTION_RE, _SQRT_RE, _POWER_RE, _SUBSCRIPT_RE, _BIG_OP_RE, _GREEK_RE):
        normalized = pattern.sub(_wrap_if_needed, normalized)
    return normalized


def latex_fragment_to_plain_text(fragment: str) -> str:
    text = re.sub(r"\\text\{([^}]*)\}", r"\1", fragment)
    text = re.sub(r"\\left|\\right", "", text)
    text = text.replace("\\,", " ").replace("\\\\", " ")
    text = re.sub(r"\\frac\{([^}]*)\}\{([^}]*)\}", r"(\1)/(\2)", text)
    text = re.sub(r"\\sqrt\{([^}]*)\}", r"√(\1)", text)
    text = re.sub(r"\\([a-zA-Z]+)", lambda m: LATEX_TO_CHAR_MAP.get(f"\\{m.group(1)}", m.group(1)), text)
    text = re.sub(r"[{}]", "", text)
    return re.sub(r"\s+", " ", text).strip()


def inline_math_to_plain_text(text: Optional[str]) -> str:
    """Replace every delimited math segment with a readable plain-text rendition."""
    if not text:
        return ""
    result = restore_latex_escapes(text)
    for pattern in _DELIMITED_PATTERNS:
        result = pattern.sub(lambda m: f" {latex_fragment_to_plain_text(m.group(2))} ", result)
    return re.sub(r"\s+", " ", result).strip()


def normalize_latex_for_image(text: str) -> str:
    return restore_latex_escapes(text)
