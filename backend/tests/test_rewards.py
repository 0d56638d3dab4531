"""
Tests for reward shaping

Test IDs: RS-B01 through RS-B06
"""

import pytest
from shaping.rewards import ShapingMode, decay_weight, decayed_rewards, gradient_rewards, shape


class TestGradientRewards:
    """RS-B01/B02: Recency-weighted gradient."""

    @pytest.mark.parametrize("count", [1, 2, 3, 10, 100])
    def test_one_reward_per_entry_newest_is_max(self, count):
        """RS-B01: n rewards, non-decreasing, newest == max."""
        rewards = gradient_rewards(count, 0.0, 1.0)
        assert len(rewards) == count
        assert rewards[-1] == 1.0
        assert all(a <= b for a, b in zip(rewards, rewards[1:]))

    def test_single_entry_is_max(self):
        assert gradient_rewards(1, 0.2, 0.9) == [0.9]

    def test_oldest_is_min(self):
        rewards = gradient_rewards(5, 0.25, 1.0)
        assert rewards[0] == pytest.approx(0.25)

    def test_recency_curve_front_loads(self):
        """RS-B02: exponent < 1 puts the midpoint well above linear."""
        rewards = gradient_rewards(3, 0.0, 1.0, exponent=0.3)
        assert rewards[1] == pytest.approx(0.5 ** 0.3)
        assert rewards[1] > 0.5

    def test_mirrored_punishment_range(self):
        rewards = gradient_rewards(4, -1.0, -0.0)
        assert rewards[0] == pytest.approx(-1.0)
        assert rewards[-1] == 0.0
        assert all(a <= b for a, b in zip(rewards, rewards[1:]))


class TestShape:
    """RS-B03/B04: Modes and empty input."""

    @pytest.mark.parametrize("mode", list(ShapingMode))
    def test_empty_entries(self, mode):
        """RS-B03: Empty input gives empty output."""
        assert shape([], mode, 0.0, 1.0) == []

    def test_uniform_credits_newest_only(self):
        assert shape(["a", "b", "c"], ShapingMode.UNIFORM, 0.0, 0.8) == [0.8]

    def test_neutral_is_zeros(self):
        """RS-B04: Neutral feedback consumes entries with zero reward."""
        assert shape([1, 2, 3], ShapingMode.NEUTRAL, 0.0, 1.0) == [0.0, 0.0, 0.0]

    def test_gradient_matches_entry_count(self):
        assert len(shape(list(range(7)), "gradient", 0.0, 1.0)) == 7


class TestDecay:
    """RS-B05/B06: Time-decay credit."""

    def test_weight_is_one_at_age_zero(self):
        assert decay_weight(0.0, 1.0) == 1.0

    def test_half_life(self):
        assert decay_weight(2.0, 2.0) == pytest.approx(0.5)

    def test_monotone_non_increasing(self):
        """RS-B05"""
        weights = [decay_weight(age, 0.7) for age in (0.0, 0.1, 0.5, 1.0, 3.0, 10.0)]
        assert all(a >= b for a, b in zip(weights, weights[1:]))

    def test_invalid_half_life(self):
        with pytest.raises(ValueError):
            decay_weight(1.0, 0.0)

    def test_decayed_rewards_scale_base(self):
        """RS-B06"""
        rewards = decayed_rewards([0.0, 1.0], -1.0, 1.0)
        assert rewards == [pytest.approx(-1.0), pytest.approx(-0.5)]
