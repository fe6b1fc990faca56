# typetrainer/reflow.py
"""
Text reflow: turn a stored text into fixed-width display lines.

The output is a pure function of (text, width). Saved progress is a flat index
into these lines, so the same text reflowed at the same width must always give
the same lines back.
"""
from __future__ import annotations

import logging

from .errors import ReflowError

log = logging.getLogger(__name__)


def _wrap_paragraph(paragraph: str, width: int) -> list[str]:
    out: list[str] = []
    current = ""
    for word in paragraph.split():
        if len(word) > width:
            # flush what we have, then hard-split the long word
            if current:
                out.append(current)
                current = ""
            out.extend(word[i:i + width] for i in range(0, len(word), width))
            continue

        if not current:
            current = word
        elif len(current) + 1 + len(word) <= width:
            current += " " + word
        else:
            out.append(current)
            current = word

    if current:
        out.append(current)
    return out


def split_into_lines(text: str, target_width: int) -> list[str]:
    """
    Split `text` into display lines no wider than `target_width`.

    - explicit newlines start new paragraphs
    - a paragraph that fits is kept verbatim (trimmed)
    - longer paragraphs are greedily packed word by word
    - single words wider than the target are hard-split into chunks
    - blank paragraphs become empty lines, except before any content
    """
    if target_width < 1:
        raise ReflowError(f"target width must be positive, got {target_width!r}")

    text = text or ""
    lines: list[str] = []
    for paragraph in text.split("\n"):
        trimmed = paragraph.strip()
        if not trimmed:
            if lines:
                lines.append("")
            continue
        if len(trimmed) <= target_width:
            lines.append(trimmed)
        else:
            lines.extend(_wrap_paragraph(trimmed, target_width))

    if text and not lines:
        lines.append("")

    log.debug("Reflowed %d chars into %d lines at width %d", len(text), len(lines), target_width)
    return lines


def total_display_length(lines: list[str]) -> int:
    """Length of the lines joined with one separator between each pair."""
    if not lines:
        return 0
    return sum(len(line) for line in lines) + len(lines) - 1


def block_text(lines: list[str], start: int, count: int) -> str:
    """Lines [start, start+count) joined with newline placeholder slots."""
    return "\n".join(lines[start:start + count])
