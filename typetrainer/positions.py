# typetrainer/positions.py
"""Map between the persisted flat index and a (line, offset) position."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Position:
    line_index: int
    offset: int


def to_position(flat_index: int, lines: list[str]) -> Position:
    """
    Resolve a flat index against display lines.

    Each line owns its characters plus the separator after it, so an index on
    a cumulative line boundary is offset 0 of the next line and the separator
    slot itself is "end of this line". Past the end clamps to the end of the
    last line.
    """
    if not lines:
        return Position(0, 0)
    flat_index = max(0, int(flat_index))

    start = 0
    for i, line in enumerate(lines[:-1]):
        span_end = start + len(line) + 1
        if flat_index < span_end:
            return Position(i, flat_index - start)
        start = span_end

    last = len(lines) - 1
    return Position(last, min(flat_index - start, len(lines[last])))


def start_of_line(line_index: int, lines: list[str]) -> int:
    """Flat index of the first character of `lines[line_index]`."""
    line_index = max(0, min(int(line_index), len(lines)))
    return sum(len(line) + 1 for line in lines[:line_index])


def clamp_index(flat_index, total_length: int) -> int:
    try:
        value = int(flat_index)
    except (TypeError, ValueError):
        return 0
    return max(0, min(value, total_length))
