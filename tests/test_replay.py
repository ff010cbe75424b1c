import threading

import pytest

from calculator import Calculator
from keypad import Operator
from replay import (
    CHECK, REPLAY, ReplayController, ReplayFrame, navigation_frame,
    navigation_positions, replay_frames,
)
from tape import compound_step, number_step

STEPS = [number_step(10.0, 1), compound_step(Operator.ADD, "5×3", 15.0, 2)]


def test_replay_frames_end_with_total():
    frames = list(replay_frames(STEPS))
    assert [f.display_value for f in frames] == ["10", "+(5×3)=15", "=25"]
    assert [f.current_step for f in frames] == [1, 2, 3]
    assert [f.article_count for f in frames] == [1, 2, 2]
    assert frames[-1].total_steps == 3
    assert all(f.source == REPLAY for f in frames)


def test_replay_frames_carry_run_id():
    assert {f.run_id for f in replay_frames(STEPS, 7)} == {7}
    assert navigation_frame(STEPS, 0).run_id is None


def test_navigation_positions():
    assert navigation_positions([]) == 0
    assert navigation_positions(STEPS) == 3


def test_navigation_frame_on_result():
    frame = navigation_frame(STEPS, 2)
    assert frame.display_value == "=25"
    assert frame.source == CHECK


def test_run_emits_frames_with_delay_between():
    frames, sleeps, completed = [], [], []
    controller = ReplayController(
        on_step=frames.append,
        on_complete=completed.append,
        delay=1.5,
        sleep=sleeps.append,
    )

    assert controller.run(STEPS) is True
    assert [f.display_value for f in frames] == ["10", "+(5×3)=15", "=25"]
    # between the three frames, then once before completion
    assert sleeps == [1.5, 1.5, 1.5]
    assert completed == [1]


def test_cancel_stops_run_between_ticks():
    frames, completed = [], []
    controller = ReplayController(on_step=frames.append, on_complete=completed.append, delay=0)

    def sleep(_delay):
        controller.cancel()

    controller._sleep = sleep
    assert controller.run(STEPS) is False
    assert len(frames) == 1
    assert completed == []


def test_start_runs_on_background_thread():
    done = threading.Event()
    controller = ReplayController(on_complete=lambda run_id: done.set(), delay=0)
    run_id = controller.start(STEPS)
    assert run_id == 1
    assert done.wait(2)
    controller.join(2)
    assert not controller.is_running


# ── Engine integration ─────────────────────────────────────────────────────────

def test_auto_replays_tape(press):
    frames, completed = [], []
    calc = Calculator(
        on_step=frames.append,
        on_complete=lambda: completed.append(True),
        replay_delay=0,
        replay_mode="inline",
    )
    press(calc, "10 + 5 × 3 =")

    result = calc.process_input("AUTO")
    assert [f.display_value for f in frames] == ["10", "+(5×3)=15", "=25"]
    assert completed == [True]
    assert result['is_replaying'] is False
    assert result['display'] == "25"


def test_auto_on_empty_tape_does_nothing(calc):
    result = calc.process_input("AUTO")
    assert result['is_replaying'] is False


def test_threaded_auto_completes(press):
    done = threading.Event()
    calc = Calculator(on_complete=done.set, replay_delay=0)
    press(calc, "2 + 3 =")

    assert calc.process_input("AUTO")['is_replaying'] is True
    assert done.wait(2)
    calc.replay.join(2)
    assert calc.snapshot()['is_replaying'] is False


def test_input_during_replay_cancels_it(press):
    completed = []
    calc = Calculator(on_complete=lambda: completed.append(True), replay_delay=30)
    press(calc, "2 + 3 =")

    calc.process_input("AUTO")
    result = calc.process_input("C")
    calc.replay.join(2)

    assert result['is_replaying'] is False
    assert not calc.replay.is_running
    assert completed == []


def test_frame_from_superseded_run_is_ignored(press):
    frames = []
    calc = Calculator(on_step=frames.append, replay_delay=30)
    press(calc, "2 + 3 =")
    calc.process_input("AUTO")
    calc.process_input("AUTO")
    assert calc.replay.run_id == 2

    calc._replay_step(ReplayFrame("stale", 0, 1, 1, 1, REPLAY, 1))
    assert "stale" not in [f.display_value for f in frames]
    assert calc.state.tape_view != "stale"

    calc.process_input("C")
    calc.replay.join(2)


@pytest.mark.parametrize("reader", ["statistics", "calculation_context", "validate_state"])
def test_readers_wait_for_state_lock(reader):
    calc = Calculator(replay_delay=0)
    held, release = threading.Event(), threading.Event()

    def hold_lock():
        with calc._lock:
            held.set()
            release.wait(2)

    holder = threading.Thread(target=hold_lock)
    holder.start()
    assert held.wait(2)

    results = []
    thread = threading.Thread(target=lambda: results.append(getattr(calc, reader)()))
    thread.start()
    thread.join(0.1)
    assert thread.is_alive()
    assert results == []

    release.set()
    thread.join(2)
    holder.join(2)
    assert len(results) == 1


def test_readers_usable_from_replay_listener(press):
    seen = []

    def on_step(frame):
        seen.append((
            calc.statistics()["count"],
            calc.validate_state()[0],
            calc.calculation_context()["has_active_calculation"],
        ))

    calc = Calculator(on_step=on_step, replay_delay=0, replay_mode="inline")
    press(calc, "2 + 3 =")
    calc.process_input("AUTO")
    assert seen == [(1, True, True)] * 3


def test_check_navigation_walks_and_wraps(calc, press):
    press(calc, "10 + 5 × 3 =")
    views = [calc.process_input("CHECK→")['tape_view'] for _ in range(4)]
    assert views == ["10", "+(5×3)=15", "=25", "10"]
    assert calc.state.replay_cursor == 0
    assert calc.state.display == "25"


def test_check_backward_starts_at_result(calc, press):
    press(calc, "10 + 5 × 3 =")
    result = calc.process_input("CHECK←")
    assert result['tape_view'] == "=25"
    assert result['replay_cursor'] == 2
    assert calc.process_input("CHECK←")['tape_view'] == "+(5×3)=15"


def test_check_navigation_notifies_listener(press):
    frames = []
    calc = Calculator(on_step=frames.append, replay_delay=0)
    press(calc, "4 + 4 =")
    calc.process_input("CHECK→")
    assert frames[0].source == CHECK
    assert frames[0].display_value == "4"


def test_other_input_clears_tape_view(calc, press):
    press(calc, "4 + 4 = CHECK→")
    assert calc.process_input("+")['tape_view'] is None


def test_check_on_empty_tape(calc):
    assert calc.process_input("CHECK→")['replay_cursor'] is None
