"""
Tests for the arena, object-interest pretraining and the CLI

Test IDs: AR-B01 through AR-B05
"""

import math

import numpy as np
import pytest
from shaping.arena import Arena, Shape, distance_to_shape, is_inside
from shaping.cli import build_parser, main
from shaping.pretrain import object_interest_examples, pretrain


class TestGeometry:
    """AR-B01"""

    def test_square_distance(self):
        square = Shape("square", 100.0, 100.0, 20.0)
        assert distance_to_shape(100.0, 100.0, square) == 0.0
        assert distance_to_shape(120.0, 100.0, square) == pytest.approx(10.0)
        assert distance_to_shape(113.0, 114.0, square) == pytest.approx(math.hypot(3.0, 4.0))

    def test_circle_inside(self):
        circle = Shape("circle", 0.0, 0.0, 80.0)
        assert is_inside(30.0, 0.0, circle)
        assert not is_inside(50.0, 0.0, circle)


class TestAgent:
    """AR-B02/B03: Perception and motion."""

    def test_perception_is_seven_unit_features(self):
        """AR-B02"""
        arena = Arena()
        features = arena.perceive()
        assert len(features) == 7
        assert all(0.0 <= f <= 1.0 for f in features)

    def test_full_forward_moves_along_heading(self):
        """AR-B03"""
        arena = Arena()
        arena.agent.reset(400.0, 300.0, 0.0)
        arena.step([0.0, -1.0, 1.0], dt=1 / 60)
        assert arena.agent.x == pytest.approx(402.0)
        assert arena.agent.y == pytest.approx(300.0)
        assert arena.agent.velocity == pytest.approx(2.0)

    def test_constrained_to_canvas(self):
        arena = Arena()
        arena.agent.reset(795.0, 300.0, 0.0)
        arena.step([0.0, -1.0, 1.0], dt=1.0)
        assert arena.agent.x == arena.width - arena.agent.size


class TestPretrain:
    """AR-B04"""

    def test_examples_steer_toward_nearest_shape(self):
        arena = Arena()
        examples = object_interest_examples(arena, count=50, rng=np.random.default_rng(0))
        assert len(examples) == 50
        for ex in examples:
            assert len(ex.state) == 7
            assert ex.reward == 1.0
            assert all(-1.0 <= a <= 1.0 for a in ex.action)

    def test_pretrain_runs_a_cycle(self, learner, executor):
        learner.wait_for_training = lambda timeout=None: executor.run_pending() >= 0
        assert pretrain(learner, Arena(), count=32, seed=0) == 32
        assert learner.completed_cycles == 1


class TestCli:
    """AR-B05"""

    def test_parser_defaults(self):
        args = build_parser().parse_args([])
        assert args.scenario == "circle"
        assert not args.realtime

    def test_headless_run(self, capsys):
        code = main(["--scenario", "avoidance", "--duration", "2", "--step", "0.5", "--seed", "1", "--json"])
        assert code == 0
        out = capsys.readouterr().out
        assert '"scenario": "avoidance"' in out
