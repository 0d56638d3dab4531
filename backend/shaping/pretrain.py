"""
Object-interest pretraining.

Generates synthetic examples in which the agent turns toward and drives
at the nearest shape, so a fresh policy starts out curious instead of
circling in place.
"""

import logging
import math
from typing import Optional

import numpy as np

from .arena import Arena
from .experience import TrainingExample

logger = logging.getLogger(__name__)

EDGE_MARGIN = 50.0


def object_interest_examples(arena: Arena, count: int = 500,
                             rng: Optional[np.random.Generator] = None) -> list[TrainingExample]:
    """Rewarded (state, action) pairs that steer toward the nearest shape."""
    rng = rng or np.random.default_rng()
    examples = []
    for _ in range(count):
        x = EDGE_MARGIN + rng.random() * (arena.width - 2 * EDGE_MARGIN)
        y = EDGE_MARGIN + rng.random() * (arena.height - 2 * EDGE_MARGIN)
        heading = rng.random() * 2 * math.pi
        velocity = rng.random() * arena.agent.max_speed

        nearest = min(arena.shapes, key=lambda s: math.hypot(s.x - x, s.y - y))
        bearing = math.atan2(nearest.y - y, nearest.x - x)
        # Signed turn in (-pi, pi]
        turn = (bearing - heading + math.pi) % (2 * math.pi) - math.pi

        rotation_direction = 1.0 if turn > 0 else -1.0
        rotation_speed = min(abs(turn) / (math.pi / 2), 1.0)
        forward_speed = 0.8 if abs(turn) < math.pi / 4 else 0.3

        # Motion outputs are [0, 1]; the policy emits [-1, 1]
        action = (rotation_direction, rotation_speed * 2 - 1, forward_speed * 2 - 1)
        state = arena.features_at(x, y, heading, velocity)
        examples.append(TrainingExample(state=tuple(state), action=action, reward=1.0))
    return examples


def pretrain(learner, arena: Arena, count: int = 500, seed: Optional[int] = None,
             timeout: Optional[float] = None) -> int:
    """
    Train the learner on object-interest examples and wait for the swap.

    Returns:
        Number of examples generated.
    """
    examples = object_interest_examples(arena, count, np.random.default_rng(seed))
    logger.info(f"Pretraining on {len(examples)} object-interest examples")
    learner.train_async(examples)
    if not learner.wait_for_training(timeout):
        logger.warning("Pretraining did not finish before the timeout")
    return len(examples)
