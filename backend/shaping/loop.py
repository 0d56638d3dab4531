"""
Fixed-cadence perceive-act loop.

Each tick: read the arena's perception vector, capture it as a
PerceptionState, ask the Learner for a (cached) action, record the pair
for later credit, and move the agent. The loop never waits on training.
"""

import logging
from typing import Optional

from .experience import PerceptionState
from .scheduling import ScheduledTask

logger = logging.getLogger(__name__)


class ControlLoop:
    def __init__(self, scheduler, arena, learner, dispatcher, hz: float = 60.0):
        self.scheduler = scheduler
        self.arena = arena
        self.learner = learner
        self.dispatcher = dispatcher
        self.hz = hz

        self.running = False
        self.paused = False
        self._task: Optional[ScheduledTask] = None
        self.ticks = 0
        self.last_action: Optional[list[float]] = None

    @property
    def period(self) -> float:
        return 1.0 / self.hz

    def start(self):
        if self.running:
            return
        self.running = True
        if not self.paused:
            self._schedule()
        logger.info(f"Control loop started at {self.hz} Hz")

    def stop(self):
        self._cancel()
        if self.running:
            self.running = False
            logger.info(f"Control loop stopped after {self.ticks} ticks")

    def pause(self):
        self.paused = True
        self._cancel()

    def resume(self):
        if not self.paused:
            return
        self.paused = False
        if self.running:
            self._schedule()

    def set_rate(self, hz: float):
        if hz == self.hz:
            return
        self.hz = hz
        if self.running and not self.paused:
            self._cancel()
            self._schedule()

    def _schedule(self):
        self._task = self.scheduler.call_every(self.period, self.tick, name="control-loop")

    def _cancel(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def tick(self, dt: Optional[float] = None):
        """Run one perceive-act step of dt seconds (default: one period)."""
        dt = self.period if dt is None else dt
        features = self.arena.perceive()
        state = PerceptionState.capture(features, self.scheduler.now())
        action = self.learner.predict(state.features)
        self.dispatcher.record(state, action)
        self.arena.step(action, dt)
        self.last_action = action
        self.ticks += 1
