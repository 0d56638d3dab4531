"""
Clocks and cancellable scheduled tasks.

The control loop, the intrinsic timer and the auto-evaluator are all
scheduled on one Scheduler so that they share a single logical thread and
can be paused together.

- ThreadScheduler runs tasks on a daemon thread against time.monotonic().
- ManualScheduler runs tasks only when advance() is called, against a
  ManualClock. Used by tests and by headless simulations that want
  deterministic timing.
"""

import heapq
import itertools
import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class MonotonicClock:
    """Wall clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self._now = start

    def now(self) -> float:
        return self._now

    def set(self, value: float):
        if value < self._now:
            raise ValueError(f"Clock cannot move backwards ({value} < {self._now})")
        self._now = value

    def advance(self, seconds: float):
        self.set(self._now + seconds)


class ScheduledTask:
    """
    Handle for a delayed or periodic callback.

    Cancelling only flips a flag; the scheduler skips cancelled tasks when
    they come due.
    """

    def __init__(self, callback: Callable[[], None], deadline: float,
                 interval: Optional[float] = None, name: str = ""):
        self.callback = callback
        self.deadline = deadline
        self.interval = interval
        self.name = name or getattr(callback, "__name__", "task")
        self.cancelled = False
        self.runs = 0

    @property
    def periodic(self) -> bool:
        return self.interval is not None

    @property
    def active(self) -> bool:
        return not self.cancelled and (self.periodic or self.runs == 0)

    def cancel(self):
        self.cancelled = True

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"<ScheduledTask {self.name} deadline={self.deadline:.3f} {state}>"


class Scheduler:
    """Base scheduler: task bookkeeping shared by both implementations."""

    def __init__(self, clock=None):
        self.clock = clock or MonotonicClock()
        self._queue: list[tuple[float, int, ScheduledTask]] = []
        self._counter = itertools.count()
        self._lock = threading.RLock()

    def now(self) -> float:
        return self.clock.now()

    def call_later(self, delay: float, callback: Callable[[], None], name: str = "") -> ScheduledTask:
        """Run callback once, delay seconds from now."""
        task = ScheduledTask(callback, self.now() + max(0.0, delay), name=name)
        self._push(task)
        return task

    def call_every(self, interval: float, callback: Callable[[], None], name: str = "") -> ScheduledTask:
        """Run callback every interval seconds, first run one interval from now."""
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        task = ScheduledTask(callback, self.now() + interval, interval=interval, name=name)
        self._push(task)
        return task

    def pending(self) -> int:
        with self._lock:
            return sum(1 for _, _, task in self._queue if not task.cancelled)

    def _push(self, task: ScheduledTask):
        with self._lock:
            heapq.heappush(self._queue, (task.deadline, next(self._counter), task))
        self._wake()

    def _wake(self):
        """Hook for implementations that sleep until the next deadline."""

    def _pop_due(self, now: float) -> Optional[ScheduledTask]:
        """Pop the earliest live task whose deadline is <= now."""
        with self._lock:
            while self._queue:
                deadline, _, task = self._queue[0]
                if task.cancelled:
                    heapq.heappop(self._queue)
                    continue
                if deadline > now:
                    return None
                heapq.heappop(self._queue)
                return task
        return None

    def _next_deadline(self) -> Optional[float]:
        with self._lock:
            while self._queue and self._queue[0][2].cancelled:
                heapq.heappop(self._queue)
            return self._queue[0][0] if self._queue else None

    def _run(self, task: ScheduledTask):
        """Execute one task, rescheduling periodic ones."""
        task.runs += 1
        try:
            task.callback()
        except Exception as e:
            logger.error(f"Scheduled task {task.name} failed: {e}", exc_info=True)
        if task.periodic and not task.cancelled:
            task.deadline += task.interval
            with self._lock:
                heapq.heappush(self._queue, (task.deadline, next(self._counter), task))

    def clear(self):
        """Cancel everything."""
        with self._lock:
            for _, _, task in self._queue:
                task.cancel()
            self._queue.clear()


class ManualScheduler(Scheduler):
    """Scheduler driven explicitly through advance()."""

    def __init__(self, clock: Optional[ManualClock] = None):
        super().__init__(clock or ManualClock())

    def advance(self, seconds: float) -> int:
        """
        Move the clock forward, running every task that comes due.

        Tasks run in deadline order with the clock set to each task's own
        deadline, so callbacks that reschedule relative to now() behave as
        they would in real time.

        Returns:
            Number of task executions.
        """
        target = self.clock.now() + seconds
        executed = 0
        while True:
            deadline = self._next_deadline()
            if deadline is None or deadline > target:
                break
            task = self._pop_due(deadline)
            if task is None:
                continue
            if deadline > self.clock.now():
                self.clock.set(deadline)
            self._run(task)
            executed += 1
        self.clock.set(target)
        return executed

    def run_pending(self) -> int:
        """Run tasks already due without moving the clock."""
        return self.advance(0.0)


class ThreadScheduler(Scheduler):
    """Scheduler running tasks on a background daemon thread."""

    def __init__(self, clock=None, name: str = "shaping-scheduler"):
        super().__init__(clock)
        self.name = name
        self.running = False
        self._thread: Optional[threading.Thread] = None
        self._condition = threading.Condition()
        self._stop_event = threading.Event()

    def start(self):
        if self.running:
            logger.warning("Scheduler already running")
            return
        self.running = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name=self.name)
        self._thread.start()
        logger.info(f"Scheduler {self.name} started")

    def stop(self, timeout: float = 5.0):
        if not self.running:
            return
        self._stop_event.set()
        self.running = False
        self._wake()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Scheduler thread did not stop cleanly")
        logger.info(f"Scheduler {self.name} stopped")

    def _wake(self):
        with self._condition:
            self._condition.notify_all()

    def _loop(self):
        while not self._stop_event.is_set():
            task = self._pop_due(self.now())
            if task is not None:
                self._run(task)
                continue
            # Deadline is read under the condition so a concurrent _push cannot
            # notify between the read and the wait.
            with self._condition:
                if self._stop_event.is_set():
                    break
                deadline = self._next_deadline()
                timeout = 0.5 if deadline is None else min(max(0.0, deadline - self.now()), 0.5)
                self._condition.wait(timeout=timeout)
