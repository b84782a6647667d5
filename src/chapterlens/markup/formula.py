"""Formula typesetting for math nodes with per-node failure containment."""

from __future__ import annotations

import html
from typing import Protocol

import structlog
from latex2mathml import converter

from chapterlens.markup.nodes import BlockMath, InlineMath

logger = structlog.get_logger()

MATH_ERROR_TEMPLATE = '<code class="math-error">{source}</code>'


class MathEngine(Protocol):
    """Anything that typesets a TeX expression into display markup."""

    def render(self, source: str, *, display: bool) -> str:
        ...


class MathMLEngine:
    """Typesets TeX to MathML with latex2mathml.

    latex2mathml has no tolerant mode, so every conversion failure is
    raised to the caller.
    """

    def render(self, source: str, *, display: bool) -> str:
        return converter.convert(source, display="block" if display else "inline")


def substitute_math(
    source: str,
    display: bool,
    engine: MathEngine,
) -> InlineMath | BlockMath:
    """Typeset one math node, falling back to its escaped source on failure."""
    node_type = BlockMath if display else InlineMath
    try:
        markup = engine.render(source, display=display)
    except Exception as e:
        logger.warning(
            "math_render_failed",
            display=display,
            error=f"{type(e).__name__}: {e}",
            source_preview=source[:50],
        )
        return node_type(
            source=source,
            markup=MATH_ERROR_TEMPLATE.format(source=html.escape(source)),
            failed=True,
        )
    return node_type(source=source, markup=markup)
