# typetrainer/validation.py
"""Payload checks for the practice endpoints. Raise before touching state."""
from __future__ import annotations

import math

from .errors import InputValidationError


def _int(value, field: str) -> int:
    if value is None or isinstance(value, bool):
        raise InputValidationError(f"{field} is required", field)
    try:
        # "12" and 12.0 are fine, "12abc" and 12.5 are not
        as_float = float(value)
    except (TypeError, ValueError):
        raise InputValidationError(f"{field} must be a number", field)
    if not math.isfinite(as_float) or as_float != int(as_float):
        raise InputValidationError(f"{field} must be a whole number", field)
    return int(as_float)


def _float(value, field: str) -> float:
    if value is None or isinstance(value, bool):
        raise InputValidationError(f"{field} is required", field)
    try:
        out = float(value)
    except (TypeError, ValueError):
        raise InputValidationError(f"{field} must be a number", field)
    if not math.isfinite(out):
        raise InputValidationError(f"{field} must be a number", field)
    return out


def parse_text_id(data: dict) -> int:
    text_id = _int(data.get("text_id"), "text_id")
    if text_id <= 0:
        raise InputValidationError("text_id must be positive", "text_id")
    return text_id


def parse_progress(data: dict) -> tuple[int, int]:
    text_id = parse_text_id(data)
    index = _int(data.get("progress_index"), "progress_index")
    if index < 0:
        raise InputValidationError("progress_index must not be negative", "progress_index")
    return text_id, index


def parse_line_stats(data: dict) -> tuple[float, float]:
    seconds = _float(data.get("line_time_seconds"), "line_time_seconds")
    acc = _float(data.get("line_accuracy"), "line_accuracy")
    if seconds < 0:
        raise InputValidationError("line_time_seconds must not be negative", "line_time_seconds")
    if acc < 0 or acc > 100:
        raise InputValidationError("line_accuracy must be between 0 and 100", "line_accuracy")
    return seconds, acc


def parse_amount(data: dict, maximum: int) -> int:
    amount = _int(data.get("amount"), "amount")
    if amount < 0:
        raise InputValidationError("amount must not be negative", "amount")
    if amount > maximum:
        raise InputValidationError(f"amount must be at most {maximum}", "amount")
    return amount


def parse_layout(args, *, default_width: int, minimum: int, max_lines: int, default_lines: int) -> tuple[int, int]:
    width = args.get("width")
    lines = args.get("lines_per_block")
    width = default_width if width in (None, "") else _int(width, "width")
    lines = default_lines if lines in (None, "") else _int(lines, "lines_per_block")
    if width < minimum:
        width = minimum
    if lines < 1 or lines > max_lines:
        raise InputValidationError(f"lines_per_block must be between 1 and {max_lines}", "lines_per_block")
    return width, lines
