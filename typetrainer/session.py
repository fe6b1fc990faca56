# typetrainer/session.py
"""
The practice session state machine.

One PracticeSession owns one SessionState for one (user, text). The host feeds
it input events through handle() and gets a StepResult back with the new state
and whatever output events the step produced. Persistence goes through a
PersistenceGateway via a dispatcher; results of those calls come back as
callbacks that may add events to a later step.

Phases:

    IDLE -> TYPING -> LINE_COMPLETE -> TYPING ...
                   -> BLOCK_COMPLETE -> TYPING ...
    any  -> FINISHED   (block start reached the end of the text)

Skip is a transition from any unfinished phase straight to the next block.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from . import stats
from .dispatch import InlineDispatcher
from .errors import InputValidationError
from .events import (
    BlockAdvanced,
    Commit,
    Keystroke,
    LineCompleted,
    Notice,
    PenaltyApplied,
    ProgressSaved,
    Reset,
    Resize,
    Save,
    Skip,
    TextCompleted,
    TimerTick,
)
from .gateway import ALREADY_ZERO, LoadedText, PersistenceGateway
from .positions import clamp_index, start_of_line, to_position
from .reflow import split_into_lines, total_display_length
from .scoring import LineScorer, ScoreResult
from .timer import PracticeTimer
from .width import DEFAULT_TARGET_WIDTH, MIN_TARGET_WIDTH

log = logging.getLogger(__name__)


class Phase(str, Enum):
    IDLE = "idle"
    TYPING = "typing"
    LINE_COMPLETE = "line_complete"
    BLOCK_COMPLETE = "block_complete"
    FINISHED = "finished"


@dataclass
class SessionState:
    user_id: int
    text_id: int
    source_text: str
    target_width: int
    lines_per_block: int
    lines: list[str] = field(default_factory=list)
    total_length: int = 0

    phase: Phase = Phase.IDLE
    block_start: int = 0
    current_line: int = 0
    buffer: str = ""
    flat_index: int = 0
    saved_index: int = 0

    # whole-session counters; reset() clears them
    committed_chars: int = 0
    current_correct: int = 0
    total_entries: int = 0
    total_errors: int = 0
    errors_since_penalty: int = 0
    elapsed_seconds: int = 0

    line_started_at: Optional[float] = None
    coins: int = 0
    saving: bool = False
    penalty_in_flight: bool = False

    @property
    def block_end(self) -> int:
        return min(self.block_start + self.lines_per_block, len(self.lines))

    @property
    def block_lines(self) -> list[str]:
        return self.lines[self.block_start:self.block_end]

    @property
    def expected_line(self) -> str:
        if 0 <= self.current_line < len(self.lines):
            return self.lines[self.current_line]
        return ""

    @property
    def finished(self) -> bool:
        return self.phase == Phase.FINISHED

    @property
    def total_correct_chars(self) -> int:
        return self.committed_chars + self.current_correct

    @property
    def wpm(self) -> int:
        return stats.wpm(self.total_correct_chars, self.elapsed_seconds)

    @property
    def accuracy(self) -> int:
        return stats.accuracy(self.total_entries, self.total_errors)

    @property
    def completion(self) -> int:
        return stats.completion_percent(self.flat_index, self.total_length, self.source_text)

    def to_dict(self) -> dict:
        offset = self.flat_index - start_of_line(self.current_line, self.lines) if self.lines else 0
        return {
            "text_id": self.text_id,
            "phase": self.phase.value,
            "target_width": self.target_width,
            "lines_per_block": self.lines_per_block,
            "line_count": len(self.lines),
            "block_start": self.block_start,
            "block_lines": self.block_lines,
            "current_line": self.current_line,
            "offset": max(0, offset),
            "buffer": self.buffer,
            "flat_index": self.flat_index,
            "saved_index": self.saved_index,
            "total_length": self.total_length,
            "elapsed_seconds": self.elapsed_seconds,
            "wpm": self.wpm,
            "accuracy": self.accuracy,
            "completion": self.completion,
            "errors": self.total_errors,
            "errors_since_penalty": self.errors_since_penalty,
            "coins": self.coins,
            "saving": self.saving,
        }


@dataclass
class StepResult:
    state: SessionState
    events: list = field(default_factory=list)
    score: Optional[ScoreResult] = None

    def to_dict(self) -> dict:
        out = {
            "state": self.state.to_dict(),
            "events": [e.to_dict() for e in self.events],
        }
        if self.score is not None:
            out["score"] = self.score.to_dict()
        return out


def _log_notice(message: str) -> None:
    log.warning("%s", message)


class PracticeSession:
    def __init__(
        self,
        gateway: PersistenceGateway,
        user_id: int,
        text_id: int,
        loaded: LoadedText,
        *,
        target_width: int = DEFAULT_TARGET_WIDTH,
        lines_per_block: int = 1,
        min_width: int = MIN_TARGET_WIDTH,
        max_lines_per_block: int = 10,
        reward_amount: int = 1,
        penalty_amount: int = 1,
        penalty_threshold: int = 10,
        dispatcher=None,
        clock: Callable[[], float] = time.monotonic,
        notify: Callable[[str], None] = _log_notice,
    ):
        self.gateway = gateway
        self.dispatcher = dispatcher or InlineDispatcher()
        self.timer = PracticeTimer(clock)
        self.notify = notify
        self.min_width = min_width
        self.max_lines_per_block = max_lines_per_block
        self.reward_amount = reward_amount
        self.penalty_amount = penalty_amount
        self.penalty_threshold = penalty_threshold
        self._outbox: list = []
        # saves may overlap on close(); only the newest answer moves saved_index
        self._saves_pending = 0
        self._save_seq = 0
        self._applied_save_seq = 0

        self.state = SessionState(
            user_id=user_id,
            text_id=text_id,
            source_text=loaded.content or "",
            target_width=self._clean_width(target_width),
            lines_per_block=self._clean_lines_per_block(lines_per_block),
            saved_index=max(0, int(loaded.progress_index or 0)),
            coins=max(0, int(loaded.coins or 0)),
        )
        self.scorer = LineScorer(expected="")
        self._layout()
        self._resume(self.state.saved_index)
        log.info(
            "Session started user=%s text=%s width=%d lines=%d resume=%d phase=%s",
            user_id, text_id, self.state.target_width, len(self.state.lines),
            self.state.flat_index, self.state.phase.value,
        )

    @classmethod
    def start(cls, gateway: PersistenceGateway, user_id: int, text_id: int, **kwargs) -> "PracticeSession":
        """Load the text and saved progress, then open a session on it."""
        loaded = gateway.load_text(text_id, user_id)
        return cls(gateway, user_id, text_id, loaded, **kwargs)

    # ------------------------------------------------------------------
    # setup helpers
    # ------------------------------------------------------------------

    def _clean_width(self, width) -> int:
        if width is None:
            return DEFAULT_TARGET_WIDTH
        return max(self.min_width, int(width))

    def _clean_lines_per_block(self, count) -> int:
        if count is None:
            return 1
        count = int(count)
        if count < 1 or count > self.max_lines_per_block:
            raise InputValidationError(
                f"lines_per_block must be between 1 and {self.max_lines_per_block}", "lines_per_block"
            )
        return count

    def _layout(self) -> None:
        s = self.state
        s.lines = split_into_lines(s.source_text, s.target_width) if s.source_text else []
        s.total_length = total_display_length(s.lines)

    def _resume(self, index: int) -> None:
        s = self.state
        if s.total_length == 0:
            # nothing typeable
            s.phase = Phase.FINISHED
            s.flat_index = 0
            s.block_start = s.current_line = len(s.lines)
            return
        if index > 0 and index >= s.total_length:
            # saved past the end (text done, or edited shorter)
            s.phase = Phase.FINISHED
            s.flat_index = s.total_length
            s.block_start = s.current_line = len(s.lines)
            s.buffer = ""
            return
        self._position_at(clamp_index(index, s.total_length), new_block=True)
        s.phase = Phase.IDLE

    def _position_at(self, flat: int, *, new_block: bool) -> None:
        """Put the cursor on `flat`; the already-passed part of its line becomes the buffer."""
        s = self.state
        pos = to_position(flat, s.lines)
        s.current_line = pos.line_index
        if new_block or not (s.block_start <= pos.line_index < s.block_end):
            s.block_start = pos.line_index
        prefill = s.lines[pos.line_index][:pos.offset]
        s.buffer = prefill
        s.current_correct = len(prefill)
        s.flat_index = start_of_line(pos.line_index, s.lines) + pos.offset
        self.scorer.reset(expected=s.lines[pos.line_index], prefill=prefill)

    # ------------------------------------------------------------------
    # dispatch
    # ------------------------------------------------------------------

    def handle(self, event) -> StepResult:
        if isinstance(event, Keystroke):
            return self.on_keystroke(event.buffer)
        if isinstance(event, Commit):
            return self.on_commit()
        if isinstance(event, Skip):
            return self.on_skip()
        if isinstance(event, Resize):
            return self.on_resize(event.target_width, event.lines_per_block)
        if isinstance(event, TimerTick):
            return self.on_tick()
        if isinstance(event, Reset):
            return self.reset(from_saved=event.from_saved)
        if isinstance(event, Save):
            return self.save()
        raise InputValidationError(f"unsupported event {type(event).__name__}", "type")

    def _step(self, score: Optional[ScoreResult] = None) -> StepResult:
        events, self._outbox = self._outbox, []
        return StepResult(state=self.state, events=events, score=score)

    def _emit(self, event) -> None:
        self._outbox.append(event)

    def _warn(self, message: str) -> None:
        self.notify(message)
        self._emit(Notice(message))

    # ------------------------------------------------------------------
    # handlers
    # ------------------------------------------------------------------

    def on_keystroke(self, buffer: str) -> StepResult:
        s = self.state
        if s.finished:
            s.buffer = ""
            return self._step()

        self.timer.start()
        if s.line_started_at is None:
            s.line_started_at = self.timer.now()
        s.phase = Phase.TYPING

        result = self.scorer.feed(buffer or "")
        s.buffer = buffer or ""
        s.total_entries += 1
        s.total_errors += result.new_errors
        s.errors_since_penalty += result.new_errors
        s.current_correct = result.correct_length
        s.flat_index = start_of_line(s.current_line, s.lines) + result.correct_length

        self._maybe_penalize()
        return self._step(result)

    def on_commit(self) -> StepResult:
        s = self.state
        if s.finished:
            return self._step()
        expected = s.expected_line
        if s.buffer != expected:
            return self._step()

        now = self.timer.now()
        line_time = round(now - s.line_started_at, 2) if s.line_started_at is not None else 0.0
        line_accuracy = self.scorer.accuracy
        line_errors = len(self.scorer.error_positions)
        self._emit(LineCompleted(
            line_index=s.current_line,
            line_text=expected,
            line_time_seconds=line_time,
            line_accuracy=line_accuracy,
            line_errors=line_errors,
        ))

        # only lines actually typed here count toward stats and coins
        if expected and self.scorer.keystrokes > 0:
            self.dispatcher.submit(
                self.gateway.record_line_completion, s.user_id, line_time, line_accuracy,
                on_done=self._on_line_recorded,
            )
            if self.reward_amount > 0:
                amount = self.reward_amount
                self.dispatcher.submit(
                    self.gateway.increment_reward, s.user_id, amount,
                    on_done=lambda ok, err: self._on_reward(amount, ok, err),
                )

        s.committed_chars += len(expected)
        s.current_correct = 0
        s.buffer = ""
        s.line_started_at = None

        if s.current_line + 1 >= s.block_end:
            s.block_start = s.block_end
            s.current_line = s.block_start
            if s.block_start >= len(s.lines):
                self._finish(record_completion=True)
                return self._step()
            s.phase = Phase.BLOCK_COMPLETE
            self._emit(BlockAdvanced(block_start=s.block_start))
        else:
            s.current_line += 1
            s.phase = Phase.LINE_COMPLETE

        s.flat_index = start_of_line(s.current_line, s.lines)
        self.scorer.reset(expected=s.expected_line)
        return self._step()

    def on_skip(self) -> StepResult:
        s = self.state
        if s.finished:
            return self._step()

        s.block_start = s.block_end
        s.current_line = s.block_start
        s.buffer = ""
        s.current_correct = 0
        s.line_started_at = None

        if s.block_start >= len(s.lines):
            self._finish(record_completion=False)
            return self._step()

        s.flat_index = start_of_line(s.block_start, s.lines)
        self.scorer.reset(expected=s.expected_line)
        s.phase = Phase.TYPING
        self._emit(BlockAdvanced(block_start=s.block_start, skipped=True))
        self._submit_save(s.flat_index)
        return self._step()

    def on_resize(self, target_width=None, lines_per_block=None) -> StepResult:
        s = self.state
        width = self._clean_width(target_width) if target_width is not None else s.target_width
        per_block = (
            self._clean_lines_per_block(lines_per_block) if lines_per_block is not None else s.lines_per_block
        )
        if width == s.target_width and per_block == s.lines_per_block:
            return self._step()

        keep = s.flat_index
        s.target_width = width
        s.lines_per_block = per_block
        self._layout()

        if s.finished:
            s.flat_index = s.total_length
            s.block_start = s.current_line = len(s.lines)
            return self._step()

        self._position_at(clamp_index(keep, s.total_length), new_block=True)
        log.debug("Resized to width=%d lines=%d; flat %d -> %d", width, per_block, keep, s.flat_index)
        return self._step()

    def on_tick(self) -> StepResult:
        self.dispatcher.drain()
        self.state.elapsed_seconds = self.timer.update()
        return self._step()

    def reset(self, from_saved: bool = False) -> StepResult:
        s = self.state
        self.timer.reset()
        s.elapsed_seconds = 0
        s.committed_chars = 0
        s.current_correct = 0
        s.total_entries = 0
        s.total_errors = 0
        s.errors_since_penalty = 0
        s.line_started_at = None
        s.buffer = ""
        s.phase = Phase.IDLE
        self._resume(s.saved_index if from_saved else 0)
        return self._step()

    def save(self) -> StepResult:
        if self.state.saving:
            self._warn("A save is already in progress.")
            return self._step()
        self._submit_save(self.state.flat_index)
        return self._step()

    def close(self) -> StepResult:
        """Navigate-away: save where we are, stop the clock, wait for pending calls."""
        s = self.state
        if not s.finished and s.flat_index != s.saved_index:
            self._submit_save(s.flat_index)
        self.timer.stop()
        s.elapsed_seconds = self.timer.elapsed_seconds
        self.dispatcher.shutdown(wait=True)
        log.info("Session closed user=%s text=%s at %d", s.user_id, s.text_id, s.flat_index)
        return self._step()

    def snapshot(self) -> dict:
        return self.state.to_dict()

    # ------------------------------------------------------------------
    # side effects
    # ------------------------------------------------------------------

    def _finish(self, *, record_completion: bool) -> None:
        s = self.state
        self.timer.stop()
        s.elapsed_seconds = self.timer.elapsed_seconds
        s.phase = Phase.FINISHED
        s.flat_index = s.total_length
        s.buffer = ""
        s.current_correct = 0
        log.info("Session finished user=%s text=%s", s.user_id, s.text_id)

        self._submit_save(s.total_length)
        if record_completion:
            self._emit(TextCompleted(text_id=s.text_id))
            self.dispatcher.submit(
                self.gateway.record_text_completion, s.user_id, s.text_id,
                on_done=self._on_text_recorded,
            )

    def _submit_save(self, flat: int) -> None:
        s = self.state
        self._save_seq += 1
        seq = self._save_seq
        self._saves_pending += 1
        s.saving = True
        self.dispatcher.submit(
            self.gateway.save_progress, s.user_id, s.text_id, flat,
            on_done=lambda ok, err: self._on_saved(flat, ok, err, seq),
        )

    def _maybe_penalize(self) -> None:
        s = self.state
        if s.penalty_in_flight or s.errors_since_penalty < self.penalty_threshold:
            return
        if s.coins <= 0:
            s.errors_since_penalty = 0
            self._emit(PenaltyApplied(amount=0, called=False))
            return

        pending = s.errors_since_penalty
        s.errors_since_penalty = 0
        s.penalty_in_flight = True
        amount = self.penalty_amount
        self.dispatcher.submit(
            self.gateway.decrement_reward, s.user_id, amount,
            on_done=lambda res, err: self._on_penalty(amount, pending, res, err),
        )

    # ------------------------------------------------------------------
    # callbacks (always on the owning thread)
    # ------------------------------------------------------------------

    def _on_saved(self, flat, ok, err, seq) -> None:
        s = self.state
        self._saves_pending -= 1
        s.saving = self._saves_pending > 0
        if err is None and ok:
            if seq > self._applied_save_seq:
                self._applied_save_seq = seq
                s.saved_index = flat
            self._emit(ProgressSaved(flat_index=flat))
        else:
            self._warn("Could not save your progress.")

    def _on_line_recorded(self, ok, err) -> None:
        if err is not None or not ok:
            self._warn("Could not record line statistics.")

    def _on_reward(self, amount, ok, err) -> None:
        if err is None and ok:
            self.state.coins += amount
        else:
            self._warn("Could not award coins for this line.")

    def _on_text_recorded(self, ok, err) -> None:
        if err is not None or not ok:
            self._warn("Could not record text completion.")

    def _on_penalty(self, amount, pending, result, err) -> None:
        s = self.state
        s.penalty_in_flight = False
        if err is None and result == ALREADY_ZERO:
            s.coins = 0
            self._emit(PenaltyApplied(amount=0, called=True))
        elif err is None and result:
            s.coins = max(0, s.coins - amount)
            self._emit(PenaltyApplied(amount=amount, called=True))
        else:
            # put the errors back so the threshold is hit again
            s.errors_since_penalty += pending
            self._warn("Could not apply the error penalty.")
