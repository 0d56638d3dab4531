"""
Auto-Evaluator: unattended feedback from a scenario predicate.

Every `interval` seconds the predicate is called with the current agent
state and the environment. Any event it returns is dispatched exactly like
a manual one.
"""

import logging
from typing import Any, Callable, Optional

from .scheduling import ScheduledTask

logger = logging.getLogger(__name__)

# (agent_state, environment) -> FeedbackEvent | None
Predicate = Callable[[Any, Any], Optional[Any]]


class AutoEvaluator:
    """Periodic predicate evaluation on a Scheduler."""

    def __init__(
        self,
        scheduler,
        dispatch: Callable[[Any], Any],
        get_agent_state: Callable[[], Any],
        environment: Any = None,
        interval: float = 0.2,
        predicate: Optional[Predicate] = None,
    ):
        self.scheduler = scheduler
        self.dispatch = dispatch
        self.get_agent_state = get_agent_state
        self.environment = environment
        self.interval = interval
        self.predicate = predicate

        self.running = False
        self.paused = False
        self._task: Optional[ScheduledTask] = None

        self.evaluations = 0
        self.events_produced = 0
        self.failures = 0

    def set_predicate(self, predicate: Optional[Predicate]):
        """Swap the predicate; clearing it stops a running evaluator."""
        self.predicate = predicate
        if predicate is None and self.running:
            self.stop()

    def set_interval(self, interval: float):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.interval = interval
        if self.running:
            self.stop()
            self.start()

    def start(self):
        if self.predicate is None or self.running:
            return
        self.running = True
        if not self.paused:
            self._schedule()
        logger.info(f"Auto-evaluator started (every {self.interval}s)")

    def stop(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self.running:
            self.running = False
            logger.info("Auto-evaluator stopped")

    def pause(self):
        self.paused = True
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def resume(self):
        if not self.paused:
            return
        self.paused = False
        if self.running:
            self._schedule()

    def _schedule(self):
        self._task = self.scheduler.call_every(self.interval, self._evaluate, name="auto-evaluator")

    def _evaluate(self):
        if not self.running or self.paused or self.predicate is None:
            return
        agent_state = self.get_agent_state()
        if agent_state is None:
            return

        self.evaluations += 1
        try:
            event = self.predicate(agent_state, self.environment)
        except Exception as e:
            self.failures += 1
            logger.error(f"Auto-evaluation predicate failed: {e}", exc_info=True)
            return

        if event is not None:
            self.events_produced += 1
            logger.debug(f"Auto event: {event}")
            self.dispatch(event)

    def get_stats(self) -> dict:
        return {
            "running": self.running,
            "paused": self.paused,
            "interval": self.interval,
            "evaluations": self.evaluations,
            "events_produced": self.events_produced,
            "failures": self.failures,
        }
