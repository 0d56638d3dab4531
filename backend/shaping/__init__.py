"""
Shaping Lab: online behavioural shaping for a continuously acting agent.

Sparse human (or scripted) feedback retroactively labels recent states,
which train the control policy in the background while the agent keeps
acting.

Components:
- experience: ExperienceWindow and rate-limited ActionMemory
- rewards: uniform / gradient / neutral reward shaping, time-decay credit
- dispatcher: feedback events -> training examples
- intrinsic: inactivity timer synthesising neutral feedback
- auto_evaluator: periodic scenario predicates
- learner: cached prediction, shadow training, atomic model swap
- models: simple-mlp, residual-mlp and recurrent-lstm policies
- session: ShapingSession coordinator and Feedback API
"""

__version__ = "0.1.0"

from .config import DEFAULT_CONFIG, ShapingConfig, get_config
from .dispatcher import (
    AutoEvent,
    CreditPolicy,
    FeedbackDispatcher,
    IntrinsicNeutral,
    ManualPunishment,
    ManualReward,
)
from .experience import ActionMemory, ExperienceWindow, PerceptionState, TrainingExample
from .learner import Learner
from .models import PolicyModel, Topology, build_policy
from .rewards import ShapingMode, shape
from .scheduling import ManualClock, ManualScheduler, ThreadScheduler
from .session import ShapingSession

__all__ = [
    "DEFAULT_CONFIG",
    "ShapingConfig",
    "get_config",
    "AutoEvent",
    "CreditPolicy",
    "FeedbackDispatcher",
    "IntrinsicNeutral",
    "ManualPunishment",
    "ManualReward",
    "ActionMemory",
    "ExperienceWindow",
    "PerceptionState",
    "TrainingExample",
    "Learner",
    "PolicyModel",
    "Topology",
    "build_policy",
    "ShapingMode",
    "shape",
    "ManualClock",
    "ManualScheduler",
    "ThreadScheduler",
    "ShapingSession",
]
