# typetrainer/width.py
"""
Estimate how many characters fit on one display line.

The host supplies a `measure(text) -> pixels` callable for the live font and
container; we count how many probe glyphs fit, keep a safety margin for
proportional glyphs and never go below a readable minimum.
"""
from __future__ import annotations

import logging
from typing import Callable

log = logging.getLogger(__name__)

DEFAULT_TARGET_WIDTH = 60
MIN_TARGET_WIDTH = 20
SAFETY_BUFFER = 12
PROBE_GLYPH = "m"
MAX_PROBE = 1000


def estimate_target_width(
    container_width: float,
    measure: Callable[[str], float],
    *,
    glyph: str = PROBE_GLYPH,
    buffer: int = SAFETY_BUFFER,
    minimum: int = MIN_TARGET_WIDTH,
    default: int = DEFAULT_TARGET_WIDTH,
) -> int:
    if not container_width or container_width <= 0:
        log.warning("Container width is %r; using default target width %d", container_width, default)
        return default

    fits = 0
    while measure(glyph * (fits + 1)) <= container_width:
        fits += 1
        if fits >= MAX_PROBE:
            log.warning("Width probe stopped at %d glyphs", MAX_PROBE)
            break

    target = max(1, fits - buffer)
    target = max(minimum, target)
    log.debug("Container %spx fits %d x %r; target width %d", container_width, fits, glyph, target)
    return target


def monospace_measure(glyph_width: float) -> Callable[[str], float]:
    """Measure for a fixed-pitch font where every glyph is `glyph_width` px."""
    if glyph_width <= 0:
        raise ValueError("glyph_width must be positive")
    return lambda text: len(text) * glyph_width


def width_for_pixels(container_width: float, glyph_width: float, **kwargs) -> int:
    """Shortcut used by the HTTP layer, which only knows pixel sizes."""
    return estimate_target_width(container_width, monospace_measure(glyph_width), **kwargs)
