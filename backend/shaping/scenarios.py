"""
Demo scenarios for unattended training.

A scenario is a set of config overrides plus a labelling predicate the
AutoEvaluator calls with (agent_state, arena).
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

from .arena import Arena, AgentState, distance_to_shape, is_inside
from .dispatcher import PUNISHMENT, REWARD, AutoEvent

COLLISION_THRESHOLD = 5.0
EXPLORATION_CELL = 50.0


@dataclass(frozen=True)
class Scenario:
    name: str
    description: str
    config: dict
    make_predicate: Callable[[], Callable[[AgentState, Arena], Optional[AutoEvent]]]
    locked_settings: tuple = field(default_factory=tuple)

    def predicate(self) -> Callable[[AgentState, Arena], Optional[AutoEvent]]:
        """A fresh predicate (stateful scenarios start over)."""
        return self.make_predicate()


def _circle_reward(reason: str):
    def make():
        def predicate(agent: AgentState, arena: Arena) -> Optional[AutoEvent]:
            circle = arena.shape("circle")
            if circle is not None and is_inside(agent.x, agent.y, circle):
                return AutoEvent(REWARD, 1.0, reason)
            return None
        return predicate
    return make


def _avoidance():
    def predicate(agent: AgentState, arena: Arena) -> Optional[AutoEvent]:
        for kind in ("square", "triangle"):
            shape = arena.shape(kind)
            if shape is not None and distance_to_shape(agent.x, agent.y, shape) < COLLISION_THRESHOLD:
                return AutoEvent(PUNISHMENT, 1.0, f"Too close to the {kind}")
        circle = arena.shape("circle")
        if circle is not None and is_inside(agent.x, agent.y, circle):
            return AutoEvent(REWARD, 1.0, "Inside the target circle")
        return None
    return predicate


def _exploration():
    visited = set()

    def predicate(agent: AgentState, arena: Arena) -> Optional[AutoEvent]:
        cell = (int(agent.x // EXPLORATION_CELL), int(agent.y // EXPLORATION_CELL))
        if cell in visited:
            return None
        visited.add(cell)
        return AutoEvent(REWARD, 0.5, f"Explored new cell {cell[0]},{cell[1]}")
    return predicate


SCENARIOS = {
    "circle": Scenario(
        name="circle",
        description="Rewards the agent while it is inside the circle",
        config={
            "intrinsic_punishment": True,
            "intrinsic_timeframe": 8.0,
            "gradient_reward": False,
            "manual_punishment_enabled": False,
            "reward_min": 0.0,
            "reward_max": 1.0,
        },
        make_predicate=_circle_reward("Inside the target circle"),
        locked_settings=("manual_punishment_enabled",),
    ),
    "circle-gradient": Scenario(
        name="circle-gradient",
        description="Circle reward spread over the approach path",
        config={
            "intrinsic_punishment": True,
            "intrinsic_timeframe": 10.0,
            "gradient_reward": True,
            "manual_punishment_enabled": False,
            "reward_min": 0.0,
            "reward_max": 1.0,
        },
        make_predicate=_circle_reward("Inside the target circle (gradient)"),
        locked_settings=("manual_punishment_enabled", "gradient_reward"),
    ),
    "avoidance": Scenario(
        name="avoidance",
        description="Rewards the circle, punishes touching the square or triangle",
        config={
            "intrinsic_punishment": True,
            "intrinsic_timeframe": 8.0,
            "gradient_reward": True,
            "manual_punishment_enabled": True,
            "gradient_punishment": True,
            "reward_min": 0.0,
            "reward_max": 1.0,
            "gradient_punishment_min": 0.0,
            "gradient_punishment_max": 1.0,
        },
        make_predicate=_avoidance,
        locked_settings=("manual_punishment_enabled", "gradient_reward"),
    ),
    "exploration": Scenario(
        name="exploration",
        description="Rewards visiting grid cells the agent has not seen yet",
        config={
            "intrinsic_punishment": True,
            "intrinsic_timeframe": 10.0,
            "gradient_reward": True,
            "manual_punishment_enabled": False,
            "reward_min": 0.2,
            "reward_max": 1.0,
        },
        make_predicate=_exploration,
        locked_settings=("manual_punishment_enabled",),
    ),
}


def get_scenario(name: str) -> Scenario:
    if name not in SCENARIOS:
        raise ValueError(f"Unknown scenario: {name}. Available: {list(SCENARIOS)}")
    return SCENARIOS[name]
