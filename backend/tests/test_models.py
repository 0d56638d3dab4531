"""
Tests for policy model topologies

Test IDs: PM-B01 through PM-B06
"""

import numpy as np
import pytest
import torch
from shaping.models import RecurrentSequencePolicy, Topology, build_policy

ALL_TOPOLOGIES = list(Topology)


@pytest.fixture(autouse=True)
def seed():
    torch.manual_seed(0)


class TestShapes:
    """PM-B01/B02: Input/output widths."""

    @pytest.mark.parametrize("topology", ALL_TOPOLOGIES)
    def test_predict_width_and_range(self, topology):
        """PM-B01: action_dim outputs in [-1, 1]."""
        model = build_policy(topology, input_dim=7, output_dim=3)
        output = model.predict([0.5] * 7)
        assert len(output) == 3
        assert all(-1.0 <= v <= 1.0 for v in output)

    @pytest.mark.parametrize("topology", ALL_TOPOLOGIES)
    def test_predict_batch(self, topology):
        model = build_policy(topology, input_dim=7, output_dim=3)
        outputs = model.predict_batch(np.random.rand(5, 7))
        assert outputs.shape == (5, 3)

    def test_wrong_width_rejected(self):
        """PM-B02"""
        model = build_policy("simple-mlp", input_dim=7, output_dim=3)
        with pytest.raises(ValueError):
            model.predict([0.0] * 4)

    def test_unknown_topology(self):
        with pytest.raises(ValueError):
            build_policy("transformer", input_dim=7, output_dim=3)


class TestTraining:
    """PM-B03/B04: Weighted fit and clone isolation."""

    @pytest.mark.parametrize("topology", ALL_TOPOLOGIES)
    def test_fit_moves_toward_targets(self, topology):
        """PM-B03"""
        model = build_policy(topology, input_dim=7, output_dim=3, lr=1e-2)
        inputs = np.random.rand(16, 7).astype(np.float32)
        targets = np.full((16, 3), 0.9, dtype=np.float32)
        weights = np.ones(16, dtype=np.float32)
        before = np.abs(model.predict_batch(inputs) - targets).mean()
        model.fit(inputs, targets, weights, epochs=20, batch_size=8)
        after = np.abs(model.predict_batch(inputs) - targets).mean()
        assert after < before

    def test_fit_abort(self):
        model = build_policy("simple-mlp", input_dim=7, output_dim=3)
        result = model.fit(np.zeros((8, 7)), np.zeros((8, 3)), np.ones(8), should_abort=lambda: True)
        assert result is None
        assert model.training_steps == 0

    def test_clone_is_independent(self):
        """PM-B04: Training a clone leaves the original untouched."""
        model = build_policy("residual-mlp", input_dim=7, output_dim=3, lr=1e-2)
        probe = [0.3] * 7
        original = model.predict(probe)
        shadow = model.clone()
        shadow.fit(np.random.rand(8, 7), np.ones((8, 3)), np.ones(8), epochs=10)
        assert model.predict(probe) == original
        assert shadow.predict(probe) != original

    def test_clone_weights(self):
        a = build_policy("simple-mlp", input_dim=7, output_dim=3)
        b = build_policy("simple-mlp", input_dim=7, output_dim=3)
        b.clone_weights(a)
        assert a.predict([0.1] * 7) == b.predict([0.1] * 7)

    def test_clone_weights_topology_mismatch(self):
        a = build_policy("simple-mlp", input_dim=7, output_dim=3)
        b = build_policy("residual-mlp", input_dim=7, output_dim=3)
        with pytest.raises(ValueError):
            b.clone_weights(a)

    def test_disposed_model_cannot_train(self):
        model = build_policy("simple-mlp", input_dim=7, output_dim=3)
        model.dispose()
        with pytest.raises(RuntimeError):
            model.fit(np.zeros((1, 7)), np.zeros((1, 3)), np.ones(1))


class TestRecurrentHistory:
    """PM-B05/B06: Rolling input history."""

    def test_history_is_bounded(self):
        """PM-B05"""
        model = build_policy("recurrent-lstm", input_dim=7, output_dim=3, sequence_length=4)
        assert isinstance(model, RecurrentSequencePolicy)
        for i in range(10):
            model.predict([i / 10] * 7)
        assert len(model.history) == 4
        model.reset_history()
        assert len(model.history) == 0

    def test_history_changes_output(self):
        model = build_policy("recurrent-lstm", input_dim=7, output_dim=3)
        first = model.predict([0.5] * 7)
        model.predict([0.9] * 7)
        later = model.predict([0.5] * 7)
        assert first != later

    def test_predict_batch_leaves_history(self):
        model = build_policy("recurrent-lstm", input_dim=7, output_dim=3)
        model.predict([0.5] * 7)
        model.predict_batch(np.random.rand(3, 7))
        assert len(model.history) == 1

    def test_adopt_history(self):
        """PM-B06"""
        a = build_policy("recurrent-lstm", input_dim=7, output_dim=3)
        b = build_policy("recurrent-lstm", input_dim=7, output_dim=3)
        a.predict([0.1] * 7)
        a.predict([0.2] * 7)
        b.adopt_history(a)
        assert list(b.history) == list(a.history)
        a.reset_history()
        assert len(b.history) == 2
