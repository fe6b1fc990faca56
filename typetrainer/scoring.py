# typetrainer/scoring.py
"""
Keystroke scoring.

Every input event re-scores the whole buffer against the expected text, so the
marks always reflect the current buffer. Error *counting* is incremental: only
characters that were not in the previous buffer can add new errors, so a
backspace followed by a re-render never double counts.

Expected text may span several display lines of a block; the newline between
two lines is a placeholder slot. It still consumes one typed character but is
never counted as an error nor toward the correct length.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .stats import accuracy

PLACEHOLDER = "\n"


class Mark(str, Enum):
    PENDING = "pending"
    CORRECT = "correct"
    INCORRECT = "incorrect"


@dataclass(frozen=True)
class ScoreResult:
    marks: tuple[Mark, ...]
    extra: int
    correct_length: int
    matches: bool
    last_char_correct: bool
    new_errors: int
    error_positions: frozenset[int]

    @property
    def overflow(self) -> bool:
        return self.extra > 0

    @property
    def line_errors(self) -> int:
        return len(self.error_positions)

    def to_dict(self) -> dict:
        return {
            "marks": [m.value for m in self.marks],
            "extra": self.extra,
            "correct_length": self.correct_length,
            "matches": self.matches,
            "last_char_correct": self.last_char_correct,
            "overflow": self.overflow,
            "new_errors": self.new_errors,
            "line_errors": self.line_errors,
        }


def _common_prefix(a: str, b: str) -> int:
    n = min(len(a), len(b))
    i = 0
    while i < n and a[i] == b[i]:
        i += 1
    return i


def _is_wrong(buffer: str, expected: str, i: int) -> bool:
    if i >= len(expected):
        return True
    if expected[i] == PLACEHOLDER:
        return False
    return buffer[i] != expected[i]


def score(buffer: str, previous: str, expected: str, error_positions=frozenset()) -> ScoreResult:
    buffer = buffer or ""
    previous = previous or ""

    marks: list[Mark] = []
    correct_length = 0
    unbroken = True
    wrong = set(error_positions)

    for i, want in enumerate(expected):
        if i >= len(buffer):
            marks.append(Mark.PENDING)
            unbroken = False
            continue
        ok = buffer[i] == want
        marks.append(Mark.CORRECT if ok else Mark.INCORRECT)
        if ok and unbroken:
            if want != PLACEHOLDER:
                correct_length += 1
        else:
            unbroken = False
        if not ok and want != PLACEHOLDER:
            wrong.add(i)

    extra = max(0, len(buffer) - len(expected))
    wrong.update(range(len(expected), len(buffer)))

    new_errors = 0
    if len(buffer) > len(previous):
        for i in range(_common_prefix(previous, buffer), len(buffer)):
            if _is_wrong(buffer, expected, i):
                new_errors += 1

    last_char_correct = False
    if buffer:
        last = len(buffer) - 1
        last_char_correct = last < len(expected) and buffer[last] == expected[last]

    return ScoreResult(
        marks=tuple(marks),
        extra=extra,
        correct_length=correct_length,
        matches=buffer == expected,
        last_char_correct=last_char_correct,
        new_errors=new_errors,
        error_positions=frozenset(wrong),
    )


@dataclass
class LineScorer:
    """Per-line scoring state: previous buffer, ever-wrong positions, keystrokes."""

    expected: str
    previous: str = ""
    error_positions: set[int] = field(default_factory=set)
    keystrokes: int = 0

    def feed(self, buffer: str) -> ScoreResult:
        self.keystrokes += 1
        result = score(buffer, self.previous, self.expected, self.error_positions)
        self.error_positions = set(result.error_positions)
        self.previous = buffer or ""
        return result

    def reset(self, expected: str | None = None, prefill: str = "") -> None:
        if expected is not None:
            self.expected = expected
        self.previous = prefill
        self.error_positions = set()
        self.keystrokes = 0

    @property
    def accuracy(self) -> int:
        return accuracy(self.keystrokes, len(self.error_positions))
