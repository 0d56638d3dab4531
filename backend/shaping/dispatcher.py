"""
Feedback dispatch: turns feedback events into training examples.

Every event goes through the same synchronous path:

    1. restart the intrinsic timer (any feedback counts as activity)
    2. take the entries the event kind is allowed to credit
    3. shape one reward per credited entry
    4. drain what was taken, so no entry is ever credited twice
    5. hand the batch to Learner.train_async() without waiting

Two credit policies decide where the entries come from:

    WINDOW  states appended every control tick to the ExperienceWindow;
            an event drains the window
    DECAY   (state, action) records kept in the rate-limited ActionMemory;
            an event credits every retained record, scaled by how long ago
            it was taken
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, ClassVar, Optional, Sequence, Union

from .config import ShapingConfig
from .experience import ActionMemory, ExperienceWindow, PerceptionState, TrainingExample
from .rewards import ShapingMode, decayed_rewards, shape

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------
# Events
# ----------------------------------------------------------------

REWARD = "reward"
PUNISHMENT = "punishment"
INTRINSIC = "intrinsic"


@dataclass(frozen=True)
class ManualReward:
    intensity: float = 1.0
    kind: ClassVar[str] = REWARD
    source: ClassVar[str] = "manual"


@dataclass(frozen=True)
class ManualPunishment:
    intensity: float = 1.0
    kind: ClassVar[str] = PUNISHMENT
    source: ClassVar[str] = "manual"


@dataclass(frozen=True)
class IntrinsicNeutral:
    intensity: ClassVar[float] = 0.0
    kind: ClassVar[str] = INTRINSIC
    source: ClassVar[str] = "intrinsic"


@dataclass(frozen=True)
class AutoEvent:
    """Event produced by a scenario predicate."""
    kind: str
    intensity: float = 1.0
    reason: str = ""
    source: ClassVar[str] = "auto"

    def __post_init__(self):
        if self.kind not in (REWARD, PUNISHMENT):
            raise ValueError(f"AutoEvent kind must be '{REWARD}' or '{PUNISHMENT}', got {self.kind!r}")


FeedbackEvent = Union[ManualReward, ManualPunishment, IntrinsicNeutral, AutoEvent]


class CreditPolicy(str, Enum):
    WINDOW = "window"
    DECAY = "decay"


class DispatchState(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"


@dataclass(frozen=True)
class CreditPlan:
    """How one event is credited: shaping mode, reward bounds and entry budget."""
    mode: ShapingMode
    min_value: float
    max_value: float
    buffer_size: int
    # Single uniform credit and decay base
    full_value: float


class FeedbackDispatcher:
    """Synchronous feedback-event handler feeding the Learner."""

    def __init__(
        self,
        config: ShapingConfig,
        window: ExperienceWindow,
        learner,
        memory: Optional[ActionMemory] = None,
        clock=None,
        on_dispatch: Optional[Callable[[FeedbackEvent, list[TrainingExample]], None]] = None,
    ):
        self.config = config
        self.window = window
        self.learner = learner
        self.clock = clock or learner.clock
        self.memory = memory or ActionMemory(
            self.clock,
            max_per_second=config.action_rate_limit,
            retention=config.action_retention,
        )
        self.on_dispatch = on_dispatch
        self.timer = None  # IntrinsicTimer, attached by the session

        self.state = DispatchState.IDLE
        self.paused = False
        self._lock = threading.RLock()

        # Stats
        self.events = {REWARD: 0, PUNISHMENT: 0, INTRINSIC: 0}
        self.rejected = 0
        self.examples_produced = 0
        self.last_event: Optional[FeedbackEvent] = None

    @property
    def credit_policy(self) -> CreditPolicy:
        return CreditPolicy(self.config.credit_policy)

    def attach_timer(self, timer):
        self.timer = timer

    def update_config(self, config: ShapingConfig):
        with self._lock:
            self.config = config
            self.memory.configure(config.action_rate_limit, config.action_retention)

    # ----------------------------------------------------------------
    # Recording
    # ----------------------------------------------------------------

    def record(self, state: PerceptionState, action: Optional[Sequence[float]] = None) -> bool:
        """Store a control-tick observation in the source of the active credit policy."""
        if self.credit_policy is CreditPolicy.DECAY:
            if action is None:
                return False
            return self.memory.record_action(state, action)
        self.window.append(state, action)
        return True

    def pending_count(self) -> int:
        """Entries the next event could credit."""
        if self.credit_policy is CreditPolicy.DECAY:
            return len(self.memory)
        return len(self.window)

    def clear(self):
        self.window.clear()
        self.memory.clear()

    # ----------------------------------------------------------------
    # Dispatch
    # ----------------------------------------------------------------

    def plan(self, event: FeedbackEvent) -> CreditPlan:
        """Shaping mode, bounds and entry budget for an event."""
        config = self.config
        if event.kind == REWARD:
            mode = ShapingMode.GRADIENT if config.gradient_reward else ShapingMode.UNIFORM
            return CreditPlan(mode, config.reward_min * event.intensity,
                              config.reward_max * event.intensity, config.reward_buffer_size,
                              full_value=config.reward_max * event.intensity)
        if event.kind == PUNISHMENT:
            # Mirrored range: the oldest entry gets the strongest punishment
            mode = ShapingMode.GRADIENT if config.gradient_punishment else ShapingMode.UNIFORM
            return CreditPlan(mode, -config.gradient_punishment_max * event.intensity,
                              -config.gradient_punishment_min * event.intensity,
                              config.punishment_buffer_size,
                              full_value=-config.gradient_punishment_max * event.intensity)
        return CreditPlan(ShapingMode.NEUTRAL, 0.0, 0.0, config.intrinsic_buffer_size, full_value=0.0)

    def dispatch(self, event: FeedbackEvent) -> list[TrainingExample]:
        """
        Credit buffered entries for an event and start training on them.

        Returns:
            The examples produced; empty if the event was rejected or there
            was nothing to credit.
        """
        with self._lock:
            if self.state is DispatchState.DISPATCHING:
                logger.warning(f"Rejected {event.kind} event: dispatch already in progress")
                self.rejected += 1
                return []
            if self.paused:
                logger.debug(f"Rejected {event.kind} event: session paused")
                self.rejected += 1
                return []
            if event.kind == PUNISHMENT and not self.config.manual_punishment_enabled:
                logger.debug("Rejected punishment event: punishment disabled")
                self.rejected += 1
                return []

            self.state = DispatchState.DISPATCHING
            try:
                if self.timer is not None:
                    self.timer.restart()

                if self.credit_policy is CreditPolicy.DECAY:
                    examples = self._credit_memory(event)
                else:
                    examples = self._credit_window(event)

                self.events[event.kind] += 1
                self.last_event = event
                if examples:
                    self.examples_produced += len(examples)
                    self.learner.train_async(examples)
                    logger.info(
                        f"Dispatched {event.source} {event.kind}: {len(examples)} examples, "
                        f"rewards {examples[0].reward:.3f}..{examples[-1].reward:.3f}"
                    )
            finally:
                self.state = DispatchState.IDLE

        if self.on_dispatch:
            self.on_dispatch(event, examples)
        return examples

    def _credit_window(self, event: FeedbackEvent) -> list[TrainingExample]:
        plan = self.plan(event)
        take = 1 if plan.mode is ShapingMode.UNIFORM else plan.buffer_size
        entries = self.window.drain(take, discard_rest=True)
        max_value = plan.full_value if plan.mode is ShapingMode.UNIFORM else plan.max_value
        rewards = shape(entries, plan.mode, plan.min_value, max_value, self.config.gradient_exponent)
        credited = entries[-len(rewards):] if rewards else []
        return [
            TrainingExample(state=entry.state.features, action=entry.action, reward=reward)
            for entry, reward in zip(credited, rewards)
        ]

    def _credit_memory(self, event: FeedbackEvent) -> list[TrainingExample]:
        plan = self.plan(event)
        records = self.memory.drain()[-plan.buffer_size:]
        if not records:
            return []
        if plan.mode is ShapingMode.NEUTRAL:
            rewards = [0.0] * len(records)
        else:
            now = self.clock.now()
            ages = [now - record.timestamp for record in records]
            rewards = decayed_rewards(ages, plan.full_value, self.config.decay_half_life)
        return [
            TrainingExample(state=record.state.features, action=record.action, reward=reward)
            for record, reward in zip(records, rewards)
        ]

    def get_stats(self) -> dict:
        return {
            "state": self.state.value,
            "credit_policy": self.credit_policy.value,
            "paused": self.paused,
            "events": dict(self.events),
            "rejected": self.rejected,
            "examples_produced": self.examples_produced,
            "pending": self.pending_count(),
            "last_event": type(self.last_event).__name__ if self.last_event else None,
        }
