"""
Replay Controller for ShopCalc
Plays the recorded tape back one step at a time and builds the frames shown
by CHECK navigation
"""
import logging
import threading
from collections import namedtuple

import config
from math_operations import format_number
from tape import evaluate_steps

logger = logging.getLogger("shopcalc.replay")

ReplayFrame = namedtuple(
    "ReplayFrame",
    ["display_value", "step_index", "total_steps", "current_step", "article_count", "source", "run_id"],
    defaults=(None,),
)

REPLAY = "replay"
CHECK = "check"


def replay_frames(steps, run_id=None):
    """Frames for an AUTO replay: every step, then the evaluated total"""
    total = len(steps)
    for index, step in enumerate(steps):
        yield ReplayFrame(step.display_value, index, total, index + 1, index + 1, REPLAY, run_id)
    yield ReplayFrame(f"={format_number(evaluate_steps(steps))}", total, total + 1, total + 1, total, REPLAY, run_id)


def navigation_positions(steps):
    """Number of CHECK positions: one per step plus the result"""
    return len(steps) + 1 if steps else 0


def navigation_frame(steps, cursor):
    """Frame shown when the CHECK cursor sits on position cursor"""
    positions = navigation_positions(steps)
    if cursor == len(steps):
        display_value = f"={format_number(evaluate_steps(steps))}"
        article_count = len(steps)
    else:
        display_value = steps[cursor].display_value
        article_count = cursor + 1
    return ReplayFrame(display_value, cursor, positions, cursor + 1, article_count, CHECK)


class ReplayController:
    """Emits replay frames with a fixed delay between them.

    on_step receives each ReplayFrame; on_complete receives the run id once
    the final frame has been shown and the closing delay has elapsed. A run
    can be interrupted between ticks with cancel().
    """

    def __init__(self, on_step=None, on_complete=None, delay=None, sleep=None):
        self.on_step = on_step
        self.on_complete = on_complete
        self.delay = config.REPLAY_STEP_DELAY if delay is None else delay
        self._sleep = sleep
        self._cancel = threading.Event()
        self._thread = None
        self.run_id = 0

    @property
    def is_running(self):
        return self._thread is not None and self._thread.is_alive()

    def _tick(self, cancelled):
        """Wait one delay; True if the run was cancelled meanwhile"""
        if self._sleep is not None:
            self._sleep(self.delay)
            return cancelled.is_set()
        return cancelled.wait(self.delay)

    def _next_run(self):
        self._cancel.set()
        self._cancel = threading.Event()
        self.run_id += 1
        return self.run_id, self._cancel

    def run(self, steps, run_id=None, cancelled=None):
        """Play the tape on the calling thread. Returns False if cancelled."""
        if run_id is None:
            run_id, cancelled = self._next_run()
        steps = list(steps)
        logger.debug("Replay %s started with %d steps", run_id, len(steps))

        for i, frame in enumerate(replay_frames(steps, run_id)):
            if i and self._tick(cancelled):
                logger.info("Replay %s cancelled at frame %d", run_id, i)
                return False
            if self.on_step:
                self.on_step(frame)

        if self._tick(cancelled):
            logger.info("Replay %s cancelled before completion", run_id)
            return False

        logger.debug("Replay %s complete", run_id)
        if self.on_complete:
            self.on_complete(run_id)
        return True

    def start(self, steps):
        """Play the tape on a background thread and return the run id"""
        run_id, cancelled = self._next_run()
        self._thread = threading.Thread(
            target=self.run,
            args=(list(steps), run_id, cancelled),
            name=f"shopcalc-replay-{run_id}",
            daemon=True,
        )
        self._thread.start()
        return run_id

    def cancel(self):
        self._cancel.set()

    def join(self, timeout=None):
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
