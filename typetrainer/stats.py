# typetrainer/stats.py
"""
Typing statistics. All results are whole numbers rounded half-up, the same
way the browser displays them, so stored and displayed values agree.
"""
from __future__ import annotations

import math


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def wpm(correct_chars: int, elapsed_seconds: float) -> int:
    """Words per minute, a word being five correct characters."""
    if not elapsed_seconds or not correct_chars:
        return 0
    words = correct_chars / 5
    minutes = elapsed_seconds / 60
    return round_half_up(words / minutes)


def accuracy(total_entries: int, total_errors: int) -> int:
    if total_entries == 0:
        return 100
    correct = max(0, total_entries - total_errors)
    return round_half_up(correct / total_entries * 100)


def completion_percent(current_index: int, total_length: int, source_text: str) -> int:
    if total_length == 0:
        # nothing to type: whitespace-only text counts as done
        return 100 if not (source_text or "").strip() else 0
    current = min(current_index, total_length)
    return min(round_half_up(current / total_length * 100), 100)
