"""
Experience storage for the shaping trainer.

ExperienceWindow holds perception states that have not been credited yet.
ActionMemory is the rate-limited variant that records (state, action)
pairs continuously and lets them age out after a retention horizon.

Both are thread-safe: the control loop appends while timers may drain
from the scheduler thread.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PerceptionState:
    """Feature vector captured on one control tick."""
    features: tuple
    timestamp: float

    @classmethod
    def capture(cls, features: Sequence[float], timestamp: float) -> "PerceptionState":
        return cls(features=tuple(float(x) for x in features), timestamp=float(timestamp))

    def __len__(self) -> int:
        return len(self.features)


@dataclass(frozen=True)
class ActionRecord:
    """Action emitted for a PerceptionState, stamped with the same time."""
    state: PerceptionState
    action: tuple

    @property
    def timestamp(self) -> float:
        return self.state.timestamp


@dataclass(frozen=True)
class WindowEntry:
    """A buffered state and, if known, the action taken in it."""
    state: PerceptionState
    action: Optional[tuple] = None

    @property
    def timestamp(self) -> float:
        return self.state.timestamp


@dataclass(frozen=True)
class TrainingExample:
    """
    (state, action, reward) triple handed to the Learner.

    action is None when the window did not record one; the Learner then
    uses its own current output for the state.
    """
    state: tuple
    action: Optional[tuple]
    reward: float


class ExperienceWindow:
    """Bounded, time-ordered buffer of not-yet-credited states."""

    def __init__(self, max_size: int = 100):
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self._entries: deque[WindowEntry] = deque(maxlen=max_size)
        self._lock = threading.Lock()
        self.total_appended = 0
        self.total_evicted = 0

    @property
    def max_size(self) -> int:
        return self._entries.maxlen

    def resize(self, max_size: int):
        """Change capacity, keeping the newest entries."""
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        with self._lock:
            if max_size == self._entries.maxlen:
                return
            dropped = max(0, len(self._entries) - max_size)
            self._entries = deque(self._entries, maxlen=max_size)
            self.total_evicted += dropped

    def append(self, state: PerceptionState, action: Optional[Sequence[float]] = None):
        """Add a state, evicting the oldest entry when full."""
        entry = WindowEntry(state=state, action=tuple(action) if action is not None else None)
        with self._lock:
            if len(self._entries) == self._entries.maxlen:
                self.total_evicted += 1
            self._entries.append(entry)
            self.total_appended += 1

    def snapshot(self, n: Optional[int] = None) -> list[WindowEntry]:
        """Newest n entries (oldest first), without mutating the buffer."""
        with self._lock:
            return self._take(n)

    def drain(self, n: Optional[int] = None, discard_rest: bool = False) -> list[WindowEntry]:
        """
        Remove and return the newest n entries (oldest first).

        Args:
            n: Number of entries to take (None = all)
            discard_rest: Also drop the older entries that were not taken.
                Feedback events drain this way so the next event only sees
                states captured after it.
        """
        with self._lock:
            taken = self._take(n)
            if discard_rest:
                self._entries.clear()
            else:
                for _ in range(len(taken)):
                    self._entries.pop()
            return taken

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def _take(self, n: Optional[int]) -> list[WindowEntry]:
        if n is None or n >= len(self._entries):
            return list(self._entries)
        if n <= 0:
            return []
        return list(self._entries)[-n:]

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> dict:
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "total_appended": self.total_appended,
            "total_evicted": self.total_evicted,
        }


class ActionMemory:
    """
    Rate-limited record of recent (state, action) pairs.

    At most max_per_second records are accepted in any trailing one-second
    span; extra calls are dropped silently. Records older than retention
    seconds are pruned whenever the memory is touched.
    """

    def __init__(self, clock, max_per_second: int = 5, retention: float = 3.0):
        self.clock = clock
        self.max_per_second = max_per_second
        self.retention = retention
        self._records: deque[ActionRecord] = deque()
        self._accept_times: deque[float] = deque()
        self._lock = threading.Lock()
        self.rejected = 0

    def record_action(self, state: PerceptionState, action: Sequence[float]) -> bool:
        """
        Record an action for a state.

        Returns:
            True if accepted, False if rate-limited.
        """
        now = self.clock.now()
        with self._lock:
            self._prune(now)
            while self._accept_times and now - self._accept_times[0] >= 1.0:
                self._accept_times.popleft()
            if len(self._accept_times) >= self.max_per_second:
                self.rejected += 1
                return False
            self._accept_times.append(now)
            self._records.append(ActionRecord(state=state, action=tuple(float(a) for a in action)))
            return True

    def snapshot(self) -> list[ActionRecord]:
        with self._lock:
            self._prune(self.clock.now())
            return list(self._records)

    def drain(self) -> list[ActionRecord]:
        """Remove and return every retained record (oldest first)."""
        with self._lock:
            self._prune(self.clock.now())
            records = list(self._records)
            self._records.clear()
            return records

    def clear(self) -> int:
        with self._lock:
            count = len(self._records)
            self._records.clear()
            self._accept_times.clear()
            return count

    def configure(self, max_per_second: int, retention: float):
        with self._lock:
            self.max_per_second = max_per_second
            self.retention = retention

    def _prune(self, now: float):
        horizon = now - self.retention
        while self._records and self._records[0].timestamp < horizon:
            self._records.popleft()

    def __len__(self) -> int:
        with self._lock:
            self._prune(self.clock.now())
            return len(self._records)

    def get_stats(self) -> dict:
        return {
            "size": len(self),
            "max_per_second": self.max_per_second,
            "retention": self.retention,
            "rejected": self.rejected,
        }
