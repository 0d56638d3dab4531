"""
Shaping session coordinator.

Wires the trainer together around one scheduler:

    ControlLoop ----> FeedbackDispatcher.record() ----> ExperienceWindow / ActionMemory
    IntrinsicTimer -+
    AutoEvaluator --+-> FeedbackDispatcher.dispatch() -> Learner.train_async()
    Feedback API ---+

and exposes the Feedback API used by UIs and the CLI.
"""

import logging
from typing import Optional, Union

from .arena import Arena
from .auto_evaluator import AutoEvaluator
from .config import ShapingConfig, get_config, option_name
from .dispatcher import FeedbackDispatcher, ManualPunishment, ManualReward
from .experience import ExperienceWindow, TrainingExample
from .intrinsic import IntrinsicTimer
from .learner import Learner
from .loop import ControlLoop
from .scenarios import Scenario, get_scenario
from .scheduling import ManualScheduler, ThreadScheduler

logger = logging.getLogger(__name__)


class ShapingSession:
    """
    One agent, one policy, one stream of feedback.

    The control loop, intrinsic timer and auto-evaluator share the
    session's scheduler, so pause() and resume() stop and restart them
    together without touching buffered states.
    """

    def __init__(
        self,
        config: Optional[ShapingConfig] = None,
        scheduler=None,
        executor=None,
        arena: Optional[Arena] = None,
        seed: Optional[int] = None,
    ):
        """
        Args:
            config: Trainer configuration (defaults to get_config("default"))
            scheduler: ThreadScheduler for live use, ManualScheduler for
                deterministic stepping via tick()
            executor: Executor for background training (defaults to a
                private single-worker thread pool)
            arena: Environment supplying perception and motion
            seed: Seed for model initialisation and exploration noise
        """
        self.config = config or get_config()
        self.scheduler = scheduler or ThreadScheduler()
        self.clock = self.scheduler.clock
        self.arena = arena or Arena()

        self.window = ExperienceWindow(self.config.max_buffer_size)
        self.learner = Learner(self.config, clock=self.clock, executor=executor, seed=seed)
        self.dispatcher = FeedbackDispatcher(self.config, self.window, self.learner, clock=self.clock)
        self.timer = IntrinsicTimer(
            self.scheduler,
            self.dispatcher,
            timeframe=self.config.intrinsic_timeframe,
            enabled=self.config.intrinsic_punishment,
        )
        self.dispatcher.attach_timer(self.timer)
        self.loop = ControlLoop(self.scheduler, self.arena, self.learner, self.dispatcher, self.config.control_hz)
        self.evaluator = AutoEvaluator(
            self.scheduler,
            self.dispatcher.dispatch,
            get_agent_state=lambda: self.arena.agent.state(),
            environment=self.arena,
            interval=self.config.auto_eval_interval,
        )

        self.scenario: Optional[Scenario] = None
        self.running = False
        self.paused = False

        logger.info(
            f"ShapingSession initialized: {self.config.network_architecture}, "
            f"credit={self.config.credit_policy}"
        )

    # ----------------------------------------------------------------
    # Lifecycle
    # ----------------------------------------------------------------

    def start(self):
        if self.running:
            logger.warning("Session already running")
            return
        self.running = True
        self.loop.start()
        self.timer.arm()
        self.evaluator.start()
        if isinstance(self.scheduler, ThreadScheduler):
            self.scheduler.start()
        logger.info("Session started")

    def stop(self):
        if not self.running:
            return
        self.evaluator.stop()
        self.timer.cancel()
        self.loop.stop()
        if isinstance(self.scheduler, ThreadScheduler):
            self.scheduler.stop()
        self.running = False
        logger.info("Session stopped")

    def close(self):
        """Stop and release the training executor."""
        self.stop()
        self.learner.close()

    def pause(self):
        """Freeze the loop, timer and evaluator; feedback is rejected until resume()."""
        if self.paused:
            return
        self.paused = True
        self.dispatcher.paused = True
        self.loop.pause()
        self.timer.pause()
        self.evaluator.pause()
        logger.info(f"Session paused with {self.dispatcher.pending_count()} buffered states")

    def resume(self):
        if not self.paused:
            return
        self.paused = False
        self.dispatcher.paused = False
        self.loop.resume()
        self.timer.resume()
        self.evaluator.resume()
        logger.info("Session resumed")

    def tick(self, dt: float) -> int:
        """Advance a ManualScheduler by dt seconds, running whatever comes due."""
        if not isinstance(self.scheduler, ManualScheduler):
            raise RuntimeError("tick() requires a ManualScheduler")
        return self.scheduler.advance(dt)

    # ----------------------------------------------------------------
    # Feedback API
    # ----------------------------------------------------------------

    def give_manual_reward(self, intensity: float = 1.0) -> list[TrainingExample]:
        return self.dispatcher.dispatch(ManualReward(intensity))

    def give_manual_punishment(self, intensity: float = 1.0) -> list[TrainingExample]:
        return self.dispatcher.dispatch(ManualPunishment(intensity))

    def reset(self):
        """Drop buffered states, rebuild the model and restart the inactivity countdown."""
        cleared = self.dispatcher.pending_count()
        self.dispatcher.clear()
        self.learner.reset()
        self.timer.restart()
        logger.info(f"Session reset ({cleared} buffered states dropped)")

    # ----------------------------------------------------------------
    # Configuration
    # ----------------------------------------------------------------

    def update_config(self, values: Optional[dict] = None, **options) -> ShapingConfig:
        """
        Change options on the live session.

        Accepts a dict (snake_case or camelCase keys) and/or keyword
        options. Invalid values are clamped or ignored. While a scenario is
        active, the options it locks keep the scenario's values.
        """
        updates = {**(values or {}), **options}
        if self.scenario is not None:
            updates = self._unlocked(updates)
        new = ShapingConfig.from_dict(updates, base=self.config)
        self._apply_config(new)
        return new

    def _unlocked(self, updates: dict) -> dict:
        locked = set(self.scenario.locked_settings)
        allowed = {}
        for key, value in updates.items():
            if option_name(key) in locked:
                logger.warning(f"Ignoring {key}: locked by scenario {self.scenario.name}")
                continue
            allowed[key] = value
        return allowed

    def _apply_config(self, new: ShapingConfig):
        old = self.config
        self.config = new

        self.window.resize(new.max_buffer_size)
        self.learner.update_config(new)
        self.dispatcher.update_config(new)
        if new.credit_policy != old.credit_policy:
            dropped = self.dispatcher.pending_count()
            self.dispatcher.clear()
            logger.info(f"Credit policy {old.credit_policy} -> {new.credit_policy}, dropped {dropped} entries")

        self.timer.set_timeframe(new.intrinsic_timeframe)
        if self.running:
            self.timer.set_enabled(new.intrinsic_punishment)
        else:
            self.timer.enabled = new.intrinsic_punishment
        self.loop.set_rate(new.control_hz)
        if new.auto_eval_interval != self.evaluator.interval:
            self.evaluator.set_interval(new.auto_eval_interval)

    def set_scenario(self, scenario: Union[str, Scenario, None]):
        """Apply a demo scenario's config and start evaluating its predicate."""
        if scenario is None:
            self.evaluator.set_predicate(None)
            self.scenario = None
            logger.info("Scenario cleared")
            return

        if isinstance(scenario, str):
            scenario = get_scenario(scenario)
        self.scenario = scenario
        self._apply_config(ShapingConfig.from_dict(scenario.config, base=self.config))
        self.evaluator.stop()
        self.evaluator.set_predicate(scenario.predicate())
        if self.running:
            self.evaluator.start()
        logger.info(f"Scenario set: {scenario.name}")

    # ----------------------------------------------------------------
    # Status
    # ----------------------------------------------------------------

    def get_status(self) -> dict:
        agent = self.arena.agent
        return {
            "running": self.running,
            "paused": self.paused,
            "scenario": self.scenario.name if self.scenario else None,
            "config": self.config.to_dict(),
            "agent": {
                "x": round(agent.x, 2),
                "y": round(agent.y, 2),
                "heading": round(agent.heading, 3),
                "velocity": round(agent.velocity, 3),
            },
            "loop": {"ticks": self.loop.ticks, "hz": self.loop.hz},
            # Latest policy output, None once it is older than prediction_cache_ms
            "cached_action": self.learner.cached_prediction(),
            "window": self.window.get_stats(),
            "memory": self.dispatcher.memory.get_stats(),
            "dispatcher": self.dispatcher.get_stats(),
            "intrinsic": self.timer.get_stats(),
            "auto_evaluator": self.evaluator.get_stats(),
            "learner": self.learner.get_stats(),
        }
