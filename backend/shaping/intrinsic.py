"""
Intrinsic (inactivity) feedback.

When no feedback arrives for intrinsic_timeframe seconds, the timer sends
an IntrinsicNeutral event through the dispatcher so buffered states are
consumed with a zero reward instead of piling up. The dispatcher restarts
the timer on every event, so a fired expiry also resets the countdown.

The countdown is touched from the scheduler thread on expiry and from
Feedback API callers on every other path. Every arm bumps a generation
number under the timer lock; an expiry whose generation is stale is
ignored, so at most one countdown is live at a time.
"""

import logging
import threading
from functools import partial
from typing import Optional

from .dispatcher import IntrinsicNeutral
from .scheduling import ScheduledTask

logger = logging.getLogger(__name__)


class IntrinsicTimer:
    """Restartable one-shot countdown on a Scheduler."""

    def __init__(self, scheduler, dispatcher, timeframe: float = 10.0, enabled: bool = False):
        self.scheduler = scheduler
        self.dispatcher = dispatcher
        self.timeframe = timeframe
        self.enabled = enabled
        self.paused = False

        self._lock = threading.RLock()
        self._task: Optional[ScheduledTask] = None
        self._generation = 0
        self._remaining: Optional[float] = None

        self.expirations = 0
        self.fired = 0

    @property
    def armed(self) -> bool:
        task = self._task
        return task is not None and task.active

    @property
    def deadline(self) -> Optional[float]:
        task = self._task
        return task.deadline if task is not None and task.active else None

    def arm(self, timeout: Optional[float] = None):
        """Schedule expiry timeout seconds from now (default: the timeframe)."""
        with self._lock:
            self.cancel()
            if not self.enabled or self.paused:
                return
            delay = self.timeframe if timeout is None else timeout
            self._task = self.scheduler.call_later(
                delay, partial(self._expire, self._generation), name="intrinsic-timer"
            )

    def restart(self):
        """Start a full countdown again; called on every feedback event."""
        with self._lock:
            if self.paused:
                # resume() will arm a full timeframe
                self._remaining = None
                return
            if self.enabled:
                self.arm()

    def cancel(self):
        with self._lock:
            self._generation += 1
            if self._task is not None:
                self._task.cancel()
                self._task = None

    def pause(self):
        """Freeze the countdown, keeping the time left."""
        with self._lock:
            if self.paused:
                return
            if self.armed:
                self._remaining = max(0.0, self._task.deadline - self.scheduler.now())
            self.cancel()
            self.paused = True

    def resume(self):
        with self._lock:
            if not self.paused:
                return
            self.paused = False
            remaining, self._remaining = self._remaining, None
            if self.enabled:
                self.arm(remaining)

    def set_enabled(self, enabled: bool):
        with self._lock:
            if enabled == self.enabled:
                return
            self.enabled = enabled
            if enabled:
                self.arm()
            else:
                self.cancel()
                self._remaining = None
        logger.info(f"Intrinsic feedback {'enabled' if enabled else 'disabled'}")

    def set_timeframe(self, timeframe: float):
        with self._lock:
            if timeframe == self.timeframe:
                return
            self.timeframe = timeframe
            if self.armed:
                self.arm()

    def _expire(self, generation: int):
        with self._lock:
            if generation != self._generation:
                logger.debug("Ignoring expiry of a superseded countdown")
                return
            self._task = None
            self.expirations += 1
            fire = self.dispatcher.pending_count() > 0
            if fire:
                self.fired += 1

        # Dispatch outside the timer lock: the dispatcher calls restart() under its own lock
        if fire:
            logger.debug(f"No feedback for {self.timeframe}s, sending neutral feedback")
            self.dispatcher.dispatch(IntrinsicNeutral())

        with self._lock:
            # The dispatcher re-arms on a successful event; cover the empty and rejected cases
            if generation == self._generation:
                self.arm()

    def get_stats(self) -> dict:
        return {
            "enabled": self.enabled,
            "paused": self.paused,
            "timeframe": self.timeframe,
            "armed": self.armed,
            "expirations": self.expirations,
            "fired": self.fired,
        }
