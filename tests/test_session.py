import pytest

from typetrainer.errors import InputValidationError, TextNotFound
from typetrainer.events import (
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
    event_from_dict,
)
from typetrainer.gateway import ALREADY_ZERO
from typetrainer.session import Phase, PracticeSession

USER, TEXT = 7, 3


def open_session(gateway, clock, **kw):
    kw.setdefault("target_width", 10)
    kw.setdefault("min_width", 1)
    return PracticeSession.start(gateway, USER, TEXT, clock=clock, **kw)


def type_out(session, text):
    step = None
    for i in range(1, len(text) + 1):
        step = session.on_keystroke(text[:i])
    return step


def of_type(step, cls):
    return [e for e in step.events if isinstance(e, cls)]


# ---------------------------------------------------------------------------
# start / resume
# ---------------------------------------------------------------------------

def test_fresh_session(gateway, clock):
    s = open_session(gateway, clock)
    assert s.state.lines == ["The quick", "brown fox"]
    assert s.state.total_length == 19
    assert s.state.phase == Phase.IDLE
    assert s.state.flat_index == 0
    assert gateway.calls_to("load_text") == [(TEXT, USER)]


def test_missing_text_propagates(gateway, clock):
    gateway.answers["load_text"] = TextNotFound(TEXT, USER)
    with pytest.raises(TextNotFound):
        open_session(gateway, clock)


def test_resume_on_line_boundary(make_gateway, clock):
    s = open_session(make_gateway(progress_index=10), clock)
    assert s.state.current_line == 1
    assert s.state.block_start == 1
    assert s.state.buffer == ""
    assert s.state.flat_index == 10


def test_resume_mid_line_prefills_buffer(make_gateway, clock):
    s = open_session(make_gateway(progress_index=12), clock)
    assert s.state.current_line == 1
    assert s.state.buffer == "br"
    assert s.state.flat_index == 12


@pytest.mark.parametrize("saved", [19, 100])
def test_resume_past_the_end_is_finished(make_gateway, clock, saved):
    gw = make_gateway(progress_index=saved)
    s = open_session(gw, clock)
    assert s.state.phase == Phase.FINISHED
    assert s.state.flat_index == 19
    assert s.state.completion == 100
    assert gw.calls_to("save_progress") == []
    assert gw.calls_to("record_text_completion") == []


def test_empty_text_is_finished(make_gateway, clock):
    s = open_session(make_gateway(content=""), clock)
    assert s.state.phase == Phase.FINISHED
    assert s.state.completion == 100


def test_lines_per_block_is_validated(gateway, clock):
    with pytest.raises(InputValidationError):
        open_session(gateway, clock, lines_per_block=0)


def test_width_is_floored(gateway, clock):
    s = PracticeSession.start(gateway, USER, TEXT, clock=clock, target_width=3, min_width=20)
    assert s.state.target_width == 20
    assert s.state.lines == ["The quick brown fox"]


# ---------------------------------------------------------------------------
# typing and committing
# ---------------------------------------------------------------------------

def test_keystrokes_advance_flat_index(gateway, clock):
    s = open_session(gateway, clock)
    step = type_out(s, "The q")
    assert s.state.phase == Phase.TYPING
    assert s.state.flat_index == 5
    assert step.score.correct_length == 5
    assert s.timer.running


def test_mistake_holds_flat_index(gateway, clock):
    s = open_session(gateway, clock)
    type_out(s, "Tha q")
    assert s.state.flat_index == 2
    assert s.state.total_errors == 1


def test_commit_line(gateway, clock):
    s = open_session(gateway, clock)
    s.on_keystroke("T")
    clock.advance(4.5)
    type_out(s, "The quick")
    step = s.on_commit()

    (done,) = of_type(step, LineCompleted)
    assert done.line_index == 0
    assert done.line_text == "The quick"
    assert done.line_errors == 0
    assert done.line_accuracy == 100
    assert done.line_time_seconds == 4.5

    assert s.state.current_line == 1
    assert s.state.phase == Phase.BLOCK_COMPLETE
    assert not s.state.finished
    assert s.state.buffer == ""
    assert s.state.flat_index == 10
    assert of_type(step, BlockAdvanced) == [BlockAdvanced(block_start=1)]

    assert gateway.calls_to("record_line_completion") == [(USER, 4.5, 100)]
    assert gateway.calls_to("increment_reward") == [(USER, 1)]
    assert s.state.coins == 1


def test_commit_needs_exact_line(gateway, clock):
    s = open_session(gateway, clock)
    type_out(s, "The quic")
    step = s.on_commit()
    assert step.events == []
    assert s.state.current_line == 0
    assert gateway.calls_to("record_line_completion") == []


def test_full_buffer_does_not_auto_advance(gateway, clock):
    s = open_session(gateway, clock)
    type_out(s, "The quick")
    assert s.state.current_line == 0
    assert s.state.phase == Phase.TYPING


def test_line_accuracy_counts_corrected_mistakes(gateway, clock):
    s = open_session(gateway, clock)
    for buf in ("T", "Tx", "T", "Th", "The", "The ", "The q", "The qu", "The qui", "The quic", "The quick"):
        s.on_keystroke(buf)
    (done,) = of_type(s.on_commit(), LineCompleted)
    assert done.line_errors == 1
    # 11 entries, 1 ever-wrong position
    assert done.line_accuracy == 91


def test_lines_within_a_block(gateway, clock):
    s = open_session(gateway, clock, lines_per_block=2)
    type_out(s, "The quick")
    step = s.on_commit()
    assert s.state.phase == Phase.LINE_COMPLETE
    assert s.state.block_start == 0
    assert s.state.current_line == 1
    assert of_type(step, BlockAdvanced) == []

    type_out(s, "brown fox")
    step = s.on_commit()
    assert s.state.phase == Phase.FINISHED
    assert s.state.flat_index == 19
    assert not s.timer.running
    assert of_type(step, TextCompleted) == [TextCompleted(text_id=TEXT)]
    assert of_type(step, ProgressSaved) == [ProgressSaved(flat_index=19)]
    assert gateway.calls_to("save_progress") == [(USER, TEXT, 19)]
    assert gateway.calls_to("record_text_completion") == [(USER, TEXT)]


def test_input_after_finish_is_ignored(make_gateway, clock):
    s = open_session(make_gateway(progress_index=19), clock)
    step = s.on_keystroke("x")
    assert step.score is None
    assert s.state.buffer == ""
    assert s.on_commit().events == []


def test_empty_line_commits_with_empty_buffer(make_gateway, clock):
    gw = make_gateway(content="one\n\ntwo")
    s = open_session(gw, clock)
    type_out(s, "one")
    s.on_commit()
    assert s.state.expected_line == ""
    (done,) = of_type(s.on_commit(), LineCompleted)
    assert done.line_text == ""
    assert done.line_accuracy == 100
    assert s.state.current_line == 2
    # only the typed line counts
    assert gw.calls_to("record_line_completion") == [(USER, 0.0, 100)]
    assert gw.calls_to("increment_reward") == [(USER, 1)]


def test_commit_of_prefilled_line_pays_nothing(make_gateway, clock):
    gw = make_gateway(progress_index=9)
    s = open_session(gw, clock)
    assert s.state.buffer == "The quick"
    assert of_type(s.on_commit(), LineCompleted)
    assert s.state.current_line == 1
    assert s.state.flat_index == 10
    assert gw.calls_to("record_line_completion") == []
    assert gw.calls_to("increment_reward") == []
    assert s.state.coins == 0


def test_failed_side_effects_do_not_block(gateway, clock):
    notes = []
    gateway.answers["record_line_completion"] = False
    gateway.answers["increment_reward"] = RuntimeError("down")
    s = open_session(gateway, clock, notify=notes.append)
    type_out(s, "The quick")
    step = s.on_commit()
    assert s.state.current_line == 1
    assert s.state.coins == 0
    assert len(of_type(step, Notice)) == 2
    assert len(notes) == 2


# ---------------------------------------------------------------------------
# penalty
# ---------------------------------------------------------------------------

A20 = "a" * 20


def test_penalty_after_ten_new_errors(make_gateway, clock):
    gw = make_gateway(content=A20, coins=5)
    s = open_session(gw, clock, target_width=60)
    type_out(s, "b" * 9)
    assert gw.calls_to("decrement_reward") == []
    step = s.on_keystroke("b" * 10)
    assert gw.calls_to("decrement_reward") == [(USER, 1)]
    assert s.state.errors_since_penalty == 0
    assert s.state.coins == 4
    assert of_type(step, PenaltyApplied) == [PenaltyApplied(amount=1, called=True)]


def test_backspacing_does_not_feed_the_penalty(make_gateway, clock):
    gw = make_gateway(content=A20, coins=5)
    s = open_session(gw, clock, target_width=60)
    for _ in range(10):
        s.on_keystroke("b")
        s.on_keystroke("")
    # each wrong "b" is new after the buffer was cleared
    assert gw.calls_to("decrement_reward") == [(USER, 1)]
    s.on_keystroke("b")
    s.on_keystroke("bb")
    s.on_keystroke("b")
    assert s.state.errors_since_penalty == 2


def test_penalty_at_zero_balance_skips_the_call(make_gateway, clock):
    gw = make_gateway(content=A20, coins=0)
    s = open_session(gw, clock, target_width=60)
    step = type_out(s, "b" * 10)
    assert gw.calls_to("decrement_reward") == []
    assert s.state.errors_since_penalty == 0
    assert of_type(step, PenaltyApplied) == [PenaltyApplied(amount=0, called=False)]


def test_failed_penalty_rolls_the_counter_back(make_gateway, clock):
    gw = make_gateway(content=A20, coins=5)
    gw.answers["decrement_reward"] = False
    s = open_session(gw, clock, target_width=60, notify=lambda msg: None)
    type_out(s, "b" * 10)
    assert s.state.errors_since_penalty == 10
    assert s.state.coins == 5

    gw.answers["decrement_reward"] = True
    s.on_keystroke("b" * 11)
    assert len(gw.calls_to("decrement_reward")) == 2
    assert s.state.errors_since_penalty == 0
    assert s.state.coins == 4


def test_server_side_zero_balance(make_gateway, clock):
    gw = make_gateway(content=A20, coins=3)
    gw.answers["decrement_reward"] = ALREADY_ZERO
    s = open_session(gw, clock, target_width=60)
    step = type_out(s, "b" * 10)
    assert s.state.coins == 0
    assert s.state.errors_since_penalty == 0
    assert of_type(step, Notice) == []


# ---------------------------------------------------------------------------
# skip / resize / reset / save
# ---------------------------------------------------------------------------

def test_skip_moves_to_next_block_and_saves(gateway, clock):
    s = open_session(gateway, clock)
    type_out(s, "The")
    step = s.on_skip()
    assert s.state.block_start == 1
    assert s.state.current_line == 1
    assert s.state.phase == Phase.TYPING
    assert s.state.flat_index == 10
    assert s.state.buffer == ""
    assert of_type(step, LineCompleted) == []
    assert of_type(step, BlockAdvanced) == [BlockAdvanced(block_start=1, skipped=True)]
    assert gateway.calls_to("save_progress") == [(USER, TEXT, 10)]
    assert gateway.calls_to("record_line_completion") == []


def test_skip_past_the_end_finishes_without_completion(gateway, clock):
    s = open_session(gateway, clock)
    s.on_skip()
    s.on_skip()
    assert s.state.phase == Phase.FINISHED
    assert s.state.flat_index == 19
    assert gateway.calls_to("save_progress")[-1] == (USER, TEXT, 19)
    assert gateway.calls_to("record_text_completion") == []


def test_resize_keeps_flat_index(make_gateway, clock):
    s = open_session(make_gateway(content="abcd efgh ijkl mnopq"), clock, target_width=20)
    assert s.state.total_length == 20
    type_out(s, "abcd ")
    assert s.state.flat_index == 5

    s.on_resize(target_width=10)
    assert s.state.lines == ["abcd efgh", "ijkl mnopq"]
    assert s.state.flat_index == 5
    assert (s.state.current_line, s.state.buffer) == (0, "abcd ")

    s.on_resize(target_width=4)
    assert s.state.lines == ["abcd", "efgh", "ijkl", "mnop", "q"]
    assert s.state.flat_index == 5
    assert (s.state.current_line, s.state.buffer) == (1, "")


def test_resize_then_keep_typing(make_gateway, clock):
    s = open_session(make_gateway(content="abcd efgh ijkl mnopq"), clock, target_width=20)
    type_out(s, "abcd e")
    s.on_resize(target_width=4)
    assert s.state.buffer == "e"
    s.on_keystroke("ef")
    assert s.state.flat_index == 7


def test_resize_lines_per_block(gateway, clock):
    s = open_session(gateway, clock)
    s.on_resize(lines_per_block=2)
    assert s.state.block_lines == ["The quick", "brown fox"]
    with pytest.raises(InputValidationError):
        s.on_resize(lines_per_block=99)


def test_reset_clears_stats(gateway, clock):
    s = open_session(gateway, clock)
    type_out(s, "Thx")
    clock.advance(3)
    s.on_tick()
    s.reset()
    assert s.state.flat_index == 0
    assert s.state.total_errors == 0
    assert s.state.elapsed_seconds == 0
    assert s.state.phase == Phase.IDLE
    assert not s.timer.running


def test_reset_to_saved_progress(make_gateway, clock):
    s = open_session(make_gateway(progress_index=12), clock)
    type_out(s, "brown")
    s.reset(from_saved=True)
    assert s.state.flat_index == 12
    assert s.state.buffer == "br"


def test_save_is_refused_while_in_flight(gateway, clock, manual_dispatcher):
    s = open_session(gateway, clock, dispatcher=manual_dispatcher, notify=lambda msg: None)
    type_out(s, "The q")
    assert s.save().events == []
    assert s.state.saving

    step = s.save()
    assert of_type(step, Notice)
    assert manual_dispatcher.in_flight == 1

    step = s.on_tick()
    assert of_type(step, ProgressSaved) == [ProgressSaved(flat_index=5)]
    assert not s.state.saving
    assert s.state.saved_index == 5
    assert gateway.calls_to("save_progress") == [(USER, TEXT, 5)]


def test_failed_save_keeps_local_state(gateway, clock):
    notes = []
    gateway.answers["save_progress"] = False
    s = open_session(gateway, clock, notify=notes.append)
    type_out(s, "The q")
    step = s.save()
    assert of_type(step, Notice)
    assert notes
    assert s.state.flat_index == 5
    assert s.state.saved_index == 0
    assert not s.state.saving


def test_close_saves_where_we_are(gateway, clock):
    s = open_session(gateway, clock)
    type_out(s, "The q")
    s.close()
    assert gateway.calls_to("save_progress") == [(USER, TEXT, 5)]


def test_close_saves_again_behind_a_pending_save(gateway, clock, manual_dispatcher):
    s = open_session(gateway, clock, dispatcher=manual_dispatcher)
    s.on_skip()
    assert s.state.saving
    type_out(s, "brown")
    assert s.state.flat_index == 15

    s.close()
    saved = [args[2] for args in gateway.calls_to("save_progress")]
    assert saved == [10, 15]
    assert s.state.saved_index == 15
    assert not s.state.saving


def test_older_save_answer_does_not_rewind_saved_index(gateway, clock, manual_dispatcher):
    s = open_session(gateway, clock, dispatcher=manual_dispatcher)
    s.on_skip()
    type_out(s, "brown")
    s._submit_save(15)
    # answer the newer save first
    manual_dispatcher.queue.reverse()
    manual_dispatcher.drain()
    assert s.state.saved_index == 15


# ---------------------------------------------------------------------------
# timer and stats
# ---------------------------------------------------------------------------

def test_tick_updates_elapsed_and_wpm(gateway, clock):
    s = open_session(gateway, clock)
    type_out(s, "The quick")
    clock.advance(6.9)
    s.on_tick()
    assert s.state.elapsed_seconds == 6
    # 9 chars = 1.8 words in 0.1 minutes
    assert s.state.wpm == 18
    assert s.state.completion == 47


def test_timer_restart_keeps_start(gateway, clock):
    s = open_session(gateway, clock)
    s.on_keystroke("T")
    clock.advance(5)
    s.timer.stop()
    s.timer.start()
    clock.advance(5)
    s.on_tick()
    assert s.state.elapsed_seconds == 10


def test_handle_routes_events(gateway, clock):
    s = open_session(gateway, clock)
    s.handle(Keystroke("The quick"))
    s.handle(Commit())
    assert s.state.current_line == 1
    s.handle(Resize(target_width=60))
    assert s.state.lines == ["The quick brown fox"]
    assert s.state.flat_index == 10
    s.handle(TimerTick())
    s.handle(Save())
    s.handle(Skip())
    assert s.state.finished
    s.handle(Reset())
    assert s.state.flat_index == 0


def test_handle_rejects_unknown_events(gateway, clock):
    s = open_session(gateway, clock)
    with pytest.raises(InputValidationError):
        s.handle(object())


def test_step_serializes(gateway, clock):
    s = open_session(gateway, clock)
    out = s.on_keystroke("Tx").to_dict()
    assert out["state"]["phase"] == "typing"
    assert out["state"]["block_lines"] == ["The quick"]
    assert out["score"]["marks"] == ["correct", "incorrect"] + ["pending"] * 7
    assert out["events"] == []


# ---------------------------------------------------------------------------
# JSON events
# ---------------------------------------------------------------------------

def test_events_from_json():
    assert event_from_dict({"type": "keystroke", "buffer": "Th"}) == Keystroke("Th")
    assert event_from_dict({"type": "resize", "width": "40"}) == Resize(target_width=40)
    assert event_from_dict({"type": "reset"}) == Reset(from_saved=False)
    assert event_from_dict({"type": "reset", "from_saved": True}) == Reset(from_saved=True)
    assert event_from_dict({"type": "reset", "from_saved": None}) == Reset(from_saved=False)


@pytest.mark.parametrize("value", ["false", "true", 1, 0, []])
def test_reset_flag_must_be_a_json_boolean(value):
    with pytest.raises(InputValidationError) as exc:
        event_from_dict({"type": "reset", "from_saved": value})
    assert exc.value.field == "from_saved"
