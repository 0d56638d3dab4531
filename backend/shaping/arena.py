"""
Headless 2D arena: one point agent and three static shapes.

Supplies the 7-feature perception vector the policy reads and translates
the policy's 3 tanh outputs back into motion:

    features  pos_x, pos_y, dist_circle, dist_square, dist_triangle,
              heading, velocity                      (all in [0, 1])
    action    rotation_direction [-1, 1]
              rotation_speed     [-1, 1] -> [0, 1]
              forward_speed      [-1, 1] -> [0, 1]
"""

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

CANVAS_WIDTH = 800
CANVAS_HEIGHT = 600

# Distances are divided by this before clamping to [0, 1]
DISTANCE_SCALE = 100.0

# Motion is tuned for 60 frames per second
FRAME_RATE = 60.0


@dataclass(frozen=True)
class Shape:
    kind: str  # circle | square | triangle
    x: float
    y: float
    size: float


SHAPES = (
    Shape("circle", 200.0, 200.0, 80.0),
    Shape("square", 600.0, 150.0, 70.0),
    Shape("triangle", 400.0, 450.0, 75.0),
)


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def normalize_angle(angle: float) -> float:
    """Wrap an angle into [0, 2*pi)."""
    return angle % (2 * math.pi)


def distance_to_shape(x: float, y: float, shape: Shape) -> float:
    """Distance from a point to a shape's outline (0 inside)."""
    half = shape.size / 2
    if shape.kind == "square":
        dx = max(0.0, abs(x - shape.x) - half)
        dy = max(0.0, abs(y - shape.y) - half)
        return math.hypot(dx, dy)
    # Circles and triangles are both treated as discs
    return max(0.0, math.hypot(x - shape.x, y - shape.y) - half)


def is_inside(x: float, y: float, shape: Shape) -> bool:
    return distance_to_shape(x, y, shape) == 0.0


@dataclass
class AgentState:
    """Kinematic state of the agent, as seen by scenario predicates."""
    x: float
    y: float
    heading: float = 0.0
    velocity: float = 0.0


@dataclass
class Agent:
    x: float = 100.0
    y: float = 100.0
    heading: float = 0.0
    velocity: float = 0.0
    max_speed: float = 2.0
    max_rotation_speed: float = 0.1
    size: float = 10.0

    def state(self) -> AgentState:
        return AgentState(self.x, self.y, self.heading, self.velocity)

    def apply_action(self, action: Sequence[float], frames: float):
        """Move for `frames` 60 Hz frames under a raw policy output."""
        rotation_direction = clamp(action[0], -1.0, 1.0)
        rotation_speed = (clamp(action[1], -1.0, 1.0) + 1) / 2
        forward_speed = (clamp(action[2], -1.0, 1.0) + 1) / 2

        self.heading = normalize_angle(
            self.heading + rotation_direction * rotation_speed * self.max_rotation_speed * frames
        )
        self.velocity = forward_speed * self.max_speed
        self.x += math.cos(self.heading) * self.velocity * frames
        self.y += math.sin(self.heading) * self.velocity * frames

    def constrain(self, width: float, height: float):
        self.x = clamp(self.x, self.size, width - self.size)
        self.y = clamp(self.y, self.size, height - self.size)

    def reset(self, x: Optional[float] = None, y: Optional[float] = None, heading: Optional[float] = None):
        if x is not None:
            self.x = x
        if y is not None:
            self.y = y
        if heading is not None:
            self.heading = heading
        self.velocity = 0.0


@dataclass
class Arena:
    """The environment handed to scenario predicates."""
    width: float = CANVAS_WIDTH
    height: float = CANVAS_HEIGHT
    shapes: tuple = SHAPES
    agent: Agent = field(default_factory=Agent)
    steps: int = 0

    def shape(self, kind: str) -> Optional[Shape]:
        for shape in self.shapes:
            if shape.kind == kind:
                return shape
        return None

    def features_at(self, x: float, y: float, heading: float, velocity: float) -> list[float]:
        """Perception vector for an arbitrary agent pose."""
        def dist(kind: str) -> float:
            shape = self.shape(kind)
            if shape is None:
                return 1.0
            return clamp(distance_to_shape(x, y, shape) / DISTANCE_SCALE, 0.0, 1.0)

        return [
            clamp(x / self.width, 0.0, 1.0),
            clamp(y / self.height, 0.0, 1.0),
            dist("circle"),
            dist("square"),
            dist("triangle"),
            clamp(heading / (2 * math.pi), 0.0, 1.0),
            clamp(velocity / self.agent.max_speed, 0.0, 1.0),
        ]

    def perceive(self) -> list[float]:
        a = self.agent
        return self.features_at(a.x, a.y, a.heading, a.velocity)

    def step(self, action: Sequence[float], dt: float):
        """Advance the agent by dt seconds."""
        self.agent.apply_action(action, dt * FRAME_RATE)
        self.agent.constrain(self.width, self.height)
        self.steps += 1

    def reset(self):
        self.agent.reset(100.0, 100.0, 0.0)
        self.steps = 0
