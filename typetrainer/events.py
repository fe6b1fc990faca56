# typetrainer/events.py
"""
Events in and out of a practice session.

Input events are what a host (browser adapter, HTTP registry, test) feeds into
PracticeSession.handle(). Output events are what a step produced and are also
returned to the host so it can render or forward them.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Optional, Union


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Keystroke:
    """The whole current input buffer after a key event (insert or delete)."""
    buffer: str


@dataclass(frozen=True)
class Commit:
    pass


@dataclass(frozen=True)
class Skip:
    pass


@dataclass(frozen=True)
class Resize:
    target_width: Optional[int] = None
    lines_per_block: Optional[int] = None


@dataclass(frozen=True)
class TimerTick:
    pass


@dataclass(frozen=True)
class Reset:
    from_saved: bool = False


@dataclass(frozen=True)
class Save:
    pass


InputEvent = Union[Keystroke, Commit, Skip, Resize, TimerTick, Reset, Save]


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LineCompleted:
    line_index: int
    line_text: str
    line_time_seconds: float
    line_accuracy: int
    line_errors: int

    kind = "line_completed"

    def to_dict(self) -> dict:
        return {"type": self.kind, **asdict(self)}


@dataclass(frozen=True)
class BlockAdvanced:
    block_start: int
    skipped: bool = False

    kind = "block_advanced"

    def to_dict(self) -> dict:
        return {"type": self.kind, **asdict(self)}


@dataclass(frozen=True)
class PenaltyApplied:
    amount: int
    called: bool

    kind = "penalty"

    def to_dict(self) -> dict:
        return {"type": self.kind, **asdict(self)}


@dataclass(frozen=True)
class ProgressSaved:
    flat_index: int

    kind = "progress_saved"

    def to_dict(self) -> dict:
        return {"type": self.kind, **asdict(self)}


@dataclass(frozen=True)
class TextCompleted:
    text_id: int

    kind = "text_completed"

    def to_dict(self) -> dict:
        return {"type": self.kind, **asdict(self)}


@dataclass(frozen=True)
class Notice:
    """Non-blocking message for the user (failed save, refused action)."""
    message: str
    level: str = "warning"

    kind = "notice"

    def to_dict(self) -> dict:
        return {"type": self.kind, **asdict(self)}


OutputEvent = Union[LineCompleted, BlockAdvanced, PenaltyApplied, ProgressSaved, TextCompleted, Notice]


def event_from_dict(data: dict) -> InputEvent:
    """Build an input event from a JSON body ({"type": "keystroke", "buffer": "..."})."""
    from .errors import InputValidationError

    kind = str((data or {}).get("type") or "").strip().lower()
    if kind == "keystroke":
        buf = data.get("buffer")
        if not isinstance(buf, str):
            raise InputValidationError("buffer must be a string", "buffer")
        return Keystroke(buf)
    if kind == "commit":
        return Commit()
    if kind == "skip":
        return Skip()
    if kind == "resize":
        return Resize(
            target_width=_opt_int(data.get("width"), "width"),
            lines_per_block=_opt_int(data.get("lines_per_block"), "lines_per_block"),
        )
    if kind == "tick":
        return TimerTick()
    if kind == "reset":
        from_saved = data.get("from_saved", False)
        if from_saved is None:
            from_saved = False
        if not isinstance(from_saved, bool):
            raise InputValidationError("from_saved must be true or false", "from_saved")
        return Reset(from_saved=from_saved)
    if kind == "save":
        return Save()
    raise InputValidationError(f"unknown event type {kind!r}", "type")


def _opt_int(value, field):
    from .errors import InputValidationError

    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InputValidationError(f"{field} must be an integer", field)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InputValidationError(f"{field} must be an integer", field)
