"""
Tests for the learner: prediction cache, background training, model swap

Test IDs: LR-B01 through LR-B10
"""

import numpy as np
import pytest
from shaping.config import ShapingConfig
from shaping.experience import TrainingExample
from shaping.learner import Learner
from shaping.models import Topology

PROBE = [0.5, 0.5, 0.2, 0.8, 0.6, 0.25, 0.5]


def skewed_examples(count=64, seed=0):
    """Strongly rewarded examples all pushing toward the same action."""
    rng = np.random.default_rng(seed)
    return [
        TrainingExample(state=tuple(rng.random(7)), action=(0.9, 0.9, 0.9), reward=1.0)
        for _ in range(count)
    ]


class TestPrediction:
    """LR-B01 to LR-B03: Cached, never-failing prediction."""

    def test_predict_returns_action_dim(self, learner):
        output = learner.predict(PROBE)
        assert len(output) == 3
        assert all(-1.0 <= v <= 1.0 for v in output)

    def test_cache_reused_within_ttl(self, clock, executor):
        """LR-B01"""
        learner = Learner(ShapingConfig(prediction_cache_ms=50.0, exploration_rate=0.0),
                          clock=clock, executor=executor)
        first = learner.predict(PROBE)
        clock.advance(0.02)
        assert learner.predict([0.0] * 7) == first
        assert learner.cache_hits == 1
        assert learner.cached_prediction() == first
        clock.advance(0.05)
        assert learner.cached_prediction() is None

    def test_failed_prediction_returns_zeros(self, learner):
        """LR-B02"""
        assert learner.predict([1.0, 2.0]) == [0.0, 0.0, 0.0]
        assert learner.prediction_failures == 1

    def test_exploration_decays(self, clock, executor):
        """LR-B03"""
        learner = Learner(ShapingConfig(exploration_rate=0.3, exploration_decay=0.5, prediction_cache_ms=0.0),
                          clock=clock, executor=executor, seed=1)
        start = learner.exploration_rate
        for _ in range(5):
            output = learner.predict(PROBE)
            assert all(-1.0 <= v <= 1.0 for v in output)
        assert learner.exploration_rate < start
        learner.reset()
        assert learner.exploration_rate == pytest.approx(0.3)


class TestBackgroundTraining:
    """LR-B04 to LR-B07: Single in-flight cycle, shadow swap."""

    def test_train_async_does_not_block(self, learner, executor):
        """LR-B04: Examples are queued; nothing trains until the worker runs."""
        assert learner.train_async(skewed_examples(8))
        assert learner.is_training
        assert len(executor.queue) == 1
        assert learner.completed_cycles == 0

    def test_second_batch_joins_running_cycle(self, learner, executor):
        assert learner.train_async(skewed_examples(8))
        assert not learner.train_async(skewed_examples(8, seed=1))
        assert len(executor.queue) == 1
        assert learner.pending == 16
        executor.run_pending()
        assert learner.completed_cycles == 1
        assert learner.examples_trained == 16
        assert not learner.is_training
        assert learner.wait_for_training(timeout=0)

    def test_predict_during_training_then_updated(self, learner, executor):
        """LR-B05: Prediction stays valid in flight and changes after the swap."""
        before = learner.predict(PROBE)
        original_model = learner.active

        learner.train_async(skewed_examples(64))
        during = learner.predict(PROBE)
        assert during == before
        assert learner.active is original_model

        executor.run_pending()
        after = learner.predict(PROBE)
        assert learner.active is not original_model
        assert original_model.disposed
        assert np.abs(np.array(after) - np.array(before)).max() > 1e-4

    def test_failed_cycle_keeps_active_model(self, learner, executor):
        """LR-B06: A failing pass never touches the live policy."""
        original_model = learner.active
        before = learner.predict(PROBE)
        bad = [TrainingExample(state=(0.1, 0.2), action=None, reward=1.0)]
        learner.train_async(bad)
        executor.run_pending()
        assert learner.failed_cycles == 1
        assert learner.active is original_model
        assert learner.predict(PROBE) == before
        assert not learner.is_training
        assert learner.shadow is None

    def test_empty_batch_is_ignored(self, learner, executor):
        assert not learner.train_async([])
        assert executor.queue == []

    def test_targets_follow_reward_sign(self, learner):
        """LR-B07"""
        actions = np.array([[0.8, 0.8, 0.8], [0.8, 0.8, 0.8]], dtype=np.float32)
        targets = learner.build_targets(actions, np.array([1.0, -1.0]))
        assert np.all(targets[0] > 0.7)
        assert np.all(targets[1] < 0.0)
        assert np.all(np.abs(targets) <= 1.0)


class TestTopologyAndReset:
    """LR-B08 to LR-B10"""

    @pytest.mark.parametrize("topology", list(Topology))
    def test_switch_then_predict(self, learner, topology):
        """LR-B08: No exception, output of action_dim."""
        learner.switch_topology(topology)
        assert learner.topology is topology
        assert learner.active.topology is topology
        assert len(learner.predict(PROBE)) == 3

    def test_switch_cancels_in_flight_cycle(self, learner, executor):
        """LR-B09: A cancelled cycle can never swap in the old topology."""
        learner.train_async(skewed_examples(16))
        learner.switch_topology("recurrent-lstm")
        assert learner.pending == 0
        assert not learner.is_training
        executor.run_pending()
        assert learner.active.topology is Topology.RECURRENT_SEQUENCE
        assert learner.completed_cycles == 0

    def test_switch_via_config_change_updates_width(self, learner):
        learner.update_config(learner.config.with_updates(state_dim=4, action_dim=2))
        assert learner.active.input_dim == 4
        assert len(learner.predict([0.1] * 4)) == 2

    def test_recurrent_history_carried_across_swap(self, clock, executor):
        learner = Learner(ShapingConfig(network_architecture="recurrent-lstm", prediction_cache_ms=0.0,
                                        exploration_rate=0.0), clock=clock, executor=executor, seed=2)
        for _ in range(3):
            learner.predict(PROBE)
        learner.train_async(skewed_examples(8))
        executor.run_pending()
        assert len(learner.active.history) == 3

    def test_reset_rebuilds_model(self, learner, executor):
        """LR-B10"""
        original_model = learner.active
        learner.train_async(skewed_examples(8))
        learner.reset()
        assert learner.active is not original_model
        assert learner.active.topology is original_model.topology
        assert learner.pending == 0
        executor.run_pending()
        assert learner.completed_cycles == 0
        assert learner.get_stats()["cancelled_cycles"] == 1
