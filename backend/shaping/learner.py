"""
Learner: owns the live policy and trains a shadow copy in the background.

predict() runs on the control thread against the active model and never
takes the training lock; the active reference is replaced in one
assignment when a shadow finishes training. train_async() only queues
examples and, if no cycle is running, submits one to a single-worker
executor.

    control thread                      trainer thread
    --------------                      --------------
    predict(x) -> active                clone active -> shadow
    train_async(batch) -> pending       fit(shadow, pending)
                                        lock: active = shadow
"""

import logging
import threading
from collections import deque
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Iterable, Optional, Sequence

import numpy as np
import torch

from .config import DEFAULT_CONFIG, ShapingConfig
from .experience import TrainingExample
from .models import PolicyModel, Topology, build_policy
from .scheduling import MonotonicClock

logger = logging.getLogger(__name__)


class Learner:
    """
    Active/shadow policy pair with a cached prediction path.

    Exactly one training cycle is in flight at a time (the _training flag).
    Examples that arrive during a cycle wait in the pending queue and are
    picked up by the same cycle before it finishes. Bumping _generation
    cancels whatever cycle is running; it notices before every optimizer
    step and before the swap.
    """

    def __init__(
        self,
        config: ShapingConfig = DEFAULT_CONFIG,
        clock=None,
        executor: Optional[Executor] = None,
        seed: Optional[int] = None,
    ):
        self.config = config
        self.clock = clock or MonotonicClock()

        if seed is not None:
            torch.manual_seed(seed)
        self._rng = np.random.default_rng(seed)

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="shaping-trainer")

        self._lock = threading.Lock()
        self._pending: deque[TrainingExample] = deque()
        self._training = False
        self._generation = 0
        self._idle = threading.Event()
        self._idle.set()
        self._closed = False

        self.active: PolicyModel = self._build(self.topology)
        self.shadow: Optional[PolicyModel] = None

        # (timestamp, output)
        self._cache: Optional[tuple[float, list[float]]] = None
        self._exploration_step = 0

        # Stats
        self.predictions = 0
        self.cache_hits = 0
        self.prediction_failures = 0
        self.examples_received = 0
        self.examples_trained = 0
        self.completed_cycles = 0
        self.failed_cycles = 0
        self.cancelled_cycles = 0
        self.topology_switches = 0
        self.last_loss: Optional[float] = None

    @property
    def topology(self) -> Topology:
        return Topology(self.config.network_architecture)

    @property
    def is_training(self) -> bool:
        return self._training

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _build(self, topology: Topology) -> PolicyModel:
        return build_policy(
            topology,
            input_dim=self.config.state_dim,
            output_dim=self.config.action_dim,
            lr=self.config.learning_rate,
            weight_decay=self.config.weight_decay,
            sequence_length=self.config.sequence_length,
        )

    # ----------------------------------------------------------------
    # Inference
    # ----------------------------------------------------------------

    def predict(self, features: Sequence[float]) -> list[float]:
        """
        Action for a perception vector.

        Returns the cached output while it is younger than
        prediction_cache_ms. Never raises: on failure the zero action is
        returned.
        """
        now = self.clock.now()
        cached = self._cache
        if cached is not None and (now - cached[0]) * 1000.0 < self.config.prediction_cache_ms:
            self.cache_hits += 1
            return list(cached[1])

        model = self.active
        try:
            output = model.predict(features)
        except Exception as e:
            self.prediction_failures += 1
            logger.error(f"Prediction failed on {model.topology.value}: {e}", exc_info=True)
            return [0.0] * self.config.action_dim

        output = self._explore(output)
        self.predictions += 1
        self._cache = (now, output)
        return list(output)

    def cached_prediction(self) -> Optional[list[float]]:
        """The cached output if still fresh, else None."""
        cached = self._cache
        if cached is None:
            return None
        if (self.clock.now() - cached[0]) * 1000.0 >= self.config.prediction_cache_ms:
            return None
        return list(cached[1])

    def _explore(self, output: list[float]) -> list[float]:
        self._exploration_step += 1
        rate = self.config.exploration_rate * self.config.exploration_decay ** self._exploration_step
        if rate <= 0 or self._rng.random() >= rate:
            return output
        noise = self._rng.uniform(-0.4, 0.4, size=len(output))
        return [float(np.clip(v + n, -1.0, 1.0)) for v, n in zip(output, noise)]

    @property
    def exploration_rate(self) -> float:
        return self.config.exploration_rate * self.config.exploration_decay ** self._exploration_step

    # ----------------------------------------------------------------
    # Training
    # ----------------------------------------------------------------

    def train_async(self, examples: Iterable[TrainingExample]) -> bool:
        """
        Queue examples for background training.

        Returns:
            True if a new cycle was submitted, False if the examples were
            queued behind a running cycle (or there was nothing to do).
        """
        examples = list(examples)
        if not examples:
            return False

        with self._lock:
            if self._closed:
                logger.warning("Learner closed, dropping training examples")
                return False
            self._pending.extend(examples)
            self.examples_received += len(examples)
            if self._training:
                logger.debug(f"Training in progress, queued {len(examples)} examples")
                return False
            self._training = True
            self._idle.clear()
            generation = self._generation

        try:
            self._executor.submit(self._run_cycle, generation)
        except RuntimeError as e:
            logger.error(f"Could not submit training cycle: {e}")
            with self._lock:
                if generation == self._generation:
                    self._training = False
                    self._idle.set()
            return False
        return True

    def _run_cycle(self, generation: int):
        """Train shadows until the pending queue is empty or the cycle is cancelled."""
        while True:
            with self._lock:
                if generation != self._generation:
                    return
                if not self._pending:
                    self._training = False
                    self._idle.set()
                    return
                batch = list(self._pending)
                self._pending.clear()
                source = self.active

            try:
                shadow = source.clone()
            except Exception as e:
                logger.error(f"Could not clone active model: {e}", exc_info=True)
                self.failed_cycles += 1
                continue

            with self._lock:
                if generation != self._generation:
                    shadow.dispose()
                    return
                self.shadow = shadow

            try:
                loss = self._train_shadow(shadow, batch, generation)
            except Exception as e:
                logger.error(f"Training cycle failed on {len(batch)} examples: {e}", exc_info=True)
                self.failed_cycles += 1
                self._discard_shadow(shadow)
                continue

            if loss is None:
                logger.info("Training cycle cancelled")
                self.cancelled_cycles += 1
                self._discard_shadow(shadow)
                return

            self._promote(shadow, batch, loss, generation)

    def _train_shadow(self, shadow: PolicyModel, batch: list[TrainingExample], generation: int) -> Optional[float]:
        states = np.asarray([ex.state for ex in batch], dtype=np.float32)
        rewards = np.asarray([ex.reward for ex in batch], dtype=np.float32)

        # Action taken: recorded where available, else the model's own output
        current = shadow.predict_batch(states)
        actions = np.array(current, copy=True)
        for i, ex in enumerate(batch):
            if ex.action is not None and len(ex.action) == self.config.action_dim:
                actions[i] = ex.action

        targets = self.build_targets(actions, rewards)
        weights = np.maximum(np.abs(rewards), self.config.neutral_weight)

        return shadow.fit(
            states,
            targets,
            weights,
            epochs=self.config.training_epochs,
            batch_size=self.config.training_batch_size,
            should_abort=lambda: generation != self._generation,
        )

    def build_targets(self, actions: np.ndarray, rewards: np.ndarray) -> np.ndarray:
        """
        Regression targets from the sign of each reward.

        reward > 0: the action taken, lightly jittered
        reward < 0: an alternative pointing away from the action taken
        reward = 0: a mild random exploratory action
        """
        actions = np.asarray(actions, dtype=np.float32)
        targets = np.empty_like(actions)
        for i, reward in enumerate(rewards):
            action = actions[i]
            if reward > 0:
                target = action + self._rng.uniform(-0.05, 0.05, size=action.shape)
            elif reward < 0:
                target = -0.5 * action + self._rng.uniform(-0.25, 0.25, size=action.shape)
            else:
                target = self._rng.uniform(-0.4, 0.4, size=action.shape)
            targets[i] = np.clip(target, -1.0, 1.0)
        return targets

    def _promote(self, shadow: PolicyModel, batch: list[TrainingExample], loss: float, generation: int):
        with self._lock:
            if generation != self._generation:
                self.shadow = None
                shadow.dispose()
                return
            shadow.adopt_history(self.active)
            old = self.active
            self.active = shadow
            self.shadow = None
            self._cache = None
            self.completed_cycles += 1
            self.examples_trained += len(batch)
            self.last_loss = loss
        old.dispose()
        logger.info(f"Promoted trained model: examples={len(batch)}, loss={loss:.4f}")

    def _discard_shadow(self, shadow: PolicyModel):
        with self._lock:
            if self.shadow is shadow:
                self.shadow = None
        shadow.dispose()

    def wait_for_training(self, timeout: Optional[float] = None) -> bool:
        """Block until no cycle is in flight. Returns False on timeout."""
        return self._idle.wait(timeout)

    # ----------------------------------------------------------------
    # Model lifecycle
    # ----------------------------------------------------------------

    def _replace_models(self, topology: Topology) -> PolicyModel:
        """Cancel training and install a fresh model. Caller holds the lock."""
        self._generation += 1
        if self._training:
            self.cancelled_cycles += 1
        self._pending.clear()
        self._training = False
        self._idle.set()
        old = self.active
        self.active = self._build(topology)
        self.shadow = None
        self._cache = None
        return old

    def switch_topology(self, topology, config: Optional[ShapingConfig] = None):
        """
        Rebuild the active model with a new topology.

        Pending examples and the recurrent input history are dropped, and
        any in-flight cycle is cancelled so its shadow can never be swapped
        in with the wrong shape.
        """
        topology = Topology(topology)
        with self._lock:
            base = config or self.config
            self.config = base.with_updates(network_architecture=topology.value)
            old = self._replace_models(topology)
            self.topology_switches += 1
        old.dispose()
        logger.info(f"Switched topology: {old.topology.value} -> {topology.value}")

    def reset(self):
        """Fresh model of the current topology; drops queued examples and exploration progress."""
        with self._lock:
            old = self._replace_models(self.topology)
            self._exploration_step = 0
        old.dispose()
        logger.info(f"Learner reset ({self.topology.value})")

    def update_config(self, config: ShapingConfig):
        """Apply a new configuration, switching topology if its shape changed."""
        if self.config.topology_changed(config):
            self.switch_topology(config.network_architecture, config=config)
            return
        with self._lock:
            changed_optim = (
                config.learning_rate != self.config.learning_rate
                or config.weight_decay != self.config.weight_decay
            )
            self.config = config
            if changed_optim:
                for group in self.active.optimizer.param_groups:
                    group["lr"] = config.learning_rate
                    group["weight_decay"] = config.weight_decay

    def close(self, wait: bool = True):
        """Cancel training and shut down the executor if this learner created it."""
        with self._lock:
            self._closed = True
            self._generation += 1
            self._pending.clear()
            self._training = False
            self._idle.set()
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    def get_stats(self) -> dict:
        return {
            "topology": self.topology.value,
            "model": self.active.describe(),
            "training": self._training,
            "pending": len(self._pending),
            "predictions": self.predictions,
            "cache_hits": self.cache_hits,
            "prediction_failures": self.prediction_failures,
            "examples_received": self.examples_received,
            "examples_trained": self.examples_trained,
            "completed_cycles": self.completed_cycles,
            "failed_cycles": self.failed_cycles,
            "cancelled_cycles": self.cancelled_cycles,
            "topology_switches": self.topology_switches,
            "exploration_rate": round(self.exploration_rate, 4),
            "last_loss": self.last_loss,
        }
