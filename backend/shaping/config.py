"""
Configuration for the Shaping Lab trainer.

All recognised options live on ShapingConfig. Values can come from three
places, applied in order:
    1. DEFAULT_CONFIG (the dataclass defaults)
    2. SHAPING_* environment variables (see _ENV_OVERRIDES)
    3. A preset from get_config(name), or an explicit dict via from_dict()

Invalid values are never fatal: they are clamped into range or ignored
(keeping the previous value), and a warning is logged.
"""

import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Topology names (see models.Topology)
ARCHITECTURES = ("simple-mlp", "residual-mlp", "recurrent-lstm")

# Credit-assignment policies (see dispatcher.CreditPolicy)
CREDIT_POLICIES = ("window", "decay")

# Options whose change invalidates the active model
TOPOLOGY_OPTIONS = ("network_architecture", "state_dim", "action_dim", "sequence_length")

DEFAULT_GRADIENT_EXPONENT = 0.3


@dataclass(frozen=True)
class ShapingConfig:
    """Value object holding every recognised trainer option."""

    # Intrinsic (timeout) feedback
    intrinsic_punishment: bool = False
    intrinsic_timeframe: float = 10.0  # seconds
    intrinsic_buffer_size: int = 100

    # Manual reward
    gradient_reward: bool = False
    reward_min: float = 0.0
    reward_max: float = 1.0
    reward_buffer_size: int = 100

    # Manual punishment
    manual_punishment_enabled: bool = False
    gradient_punishment: bool = False
    gradient_punishment_min: float = 0.0
    gradient_punishment_max: float = 1.0
    punishment_buffer_size: int = 100

    # Reward shaping
    gradient_exponent: float = DEFAULT_GRADIENT_EXPONENT
    credit_policy: str = "window"
    action_rate_limit: int = 5        # accepted action records per second
    action_retention: float = 3.0     # seconds an action record stays creditable
    decay_half_life: float = 1.0      # seconds

    # Model
    network_architecture: str = "simple-mlp"
    state_dim: int = 7
    action_dim: int = 3
    sequence_length: int = 10

    # Learner
    learning_rate: float = 1e-3
    weight_decay: float = 1e-3
    training_epochs: int = 1
    training_batch_size: int = 8
    neutral_weight: float = 0.1
    prediction_cache_ms: float = 50.0
    exploration_rate: float = 0.3
    exploration_decay: float = 0.9995

    # Cadences
    control_hz: float = 60.0
    auto_eval_interval: float = 0.2  # seconds

    @property
    def max_buffer_size(self) -> int:
        """Window capacity: the largest of the per-kind buffer sizes."""
        return max(self.reward_buffer_size, self.punishment_buffer_size, self.intrinsic_buffer_size)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, values: dict, base: Optional["ShapingConfig"] = None) -> "ShapingConfig":
        """
        Build a config from a dict of option values.

        Accepts the snake_case field names as well as the camelCase names
        used by UI callers (e.g. "rewardBufferSize"). Unknown keys are
        ignored with a warning.
        """
        base = base or DEFAULT_CONFIG
        known = {f.name for f in fields(cls)}
        updates = {}
        for key, value in values.items():
            name = option_name(key)
            if name not in known:
                logger.warning(f"Ignoring unknown config option: {key}")
                continue
            updates[name] = value
        return validate(replace(base, **updates), previous=base)

    def with_updates(self, **updates) -> "ShapingConfig":
        """Return a validated copy with the given options changed."""
        return ShapingConfig.from_dict(updates, base=self)

    def topology_changed(self, other: "ShapingConfig") -> bool:
        """True if switching from self to other requires a new model."""
        return any(getattr(self, name) != getattr(other, name) for name in TOPOLOGY_OPTIONS)


# camelCase option names -> field names
_CAMEL_ALIASES = {
    "intrinsicPunishment": "intrinsic_punishment",
    "intrinsicTimeframe": "intrinsic_timeframe",
    "intrinsicBufferSize": "intrinsic_buffer_size",
    "gradientReward": "gradient_reward",
    "rewardMin": "reward_min",
    "rewardMax": "reward_max",
    "rewardBufferSize": "reward_buffer_size",
    "manualPunishmentEnabled": "manual_punishment_enabled",
    "gradientPunishment": "gradient_punishment",
    "gradientPunishmentMin": "gradient_punishment_min",
    "gradientPunishmentMax": "gradient_punishment_max",
    "punishmentBufferSize": "punishment_buffer_size",
    "networkArchitecture": "network_architecture",
    "creditPolicy": "credit_policy",
}


def option_name(key: str) -> str:
    """Field name for a snake_case or camelCase option key."""
    return _CAMEL_ALIASES.get(key, key)


def _coerce(value: Any, kind: type, fallback: Any, name: str) -> Any:
    """Convert value to kind, falling back to the previous value on failure."""
    if kind is bool:
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    try:
        return kind(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid value for {name}: {value!r}, keeping {fallback!r}")
        return fallback


def validate(config: ShapingConfig, previous: Optional[ShapingConfig] = None) -> ShapingConfig:
    """
    Clamp or discard invalid option values.

    Args:
        config: Candidate configuration
        previous: Configuration to fall back to for ignored values

    Returns:
        A configuration where every option is usable.
    """
    previous = previous or DEFAULT_CONFIG
    values = {}

    for f in fields(ShapingConfig):
        kind = type(getattr(DEFAULT_CONFIG, f.name))
        values[f.name] = _coerce(getattr(config, f.name), kind, getattr(previous, f.name), f.name)

    for name in ("intrinsic_buffer_size", "reward_buffer_size", "punishment_buffer_size",
                 "state_dim", "action_dim", "sequence_length", "action_rate_limit",
                 "training_epochs", "training_batch_size"):
        if values[name] < 1:
            logger.warning(f"{name}={values[name]} is below 1, clamping to 1")
            values[name] = 1

    for name in ("intrinsic_timeframe", "decay_half_life", "action_retention",
                 "control_hz", "auto_eval_interval", "learning_rate"):
        if values[name] <= 0:
            logger.warning(f"{name} must be positive, keeping {getattr(previous, name)}")
            values[name] = getattr(previous, name)

    if values["reward_min"] > values["reward_max"]:
        logger.warning("reward_min > reward_max, clamping reward_min")
        values["reward_min"] = values["reward_max"]
    if values["gradient_punishment_min"] > values["gradient_punishment_max"]:
        logger.warning("gradient_punishment_min > gradient_punishment_max, clamping min")
        values["gradient_punishment_min"] = values["gradient_punishment_max"]

    if not 0.0 < values["gradient_exponent"] < 1.0:
        logger.warning(f"gradient_exponent={values['gradient_exponent']} outside (0, 1), using default")
        values["gradient_exponent"] = DEFAULT_GRADIENT_EXPONENT

    if values["network_architecture"] not in ARCHITECTURES:
        logger.warning(f"Unknown network_architecture {values['network_architecture']!r}, ignoring")
        values["network_architecture"] = previous.network_architecture
    if values["credit_policy"] not in CREDIT_POLICIES:
        logger.warning(f"Unknown credit_policy {values['credit_policy']!r}, ignoring")
        values["credit_policy"] = previous.credit_policy

    values["prediction_cache_ms"] = max(0.0, values["prediction_cache_ms"])
    values["exploration_rate"] = min(max(values["exploration_rate"], 0.0), 1.0)
    values["exploration_decay"] = min(max(values["exploration_decay"], 0.0), 1.0)
    values["neutral_weight"] = max(0.0, values["neutral_weight"])
    values["weight_decay"] = max(0.0, values["weight_decay"])

    return ShapingConfig(**values)


DEFAULT_CONFIG = ShapingConfig()

# Environment variable -> option
_ENV_OVERRIDES = {
    "SHAPING_NETWORK_ARCHITECTURE": "network_architecture",
    "SHAPING_CREDIT_POLICY": "credit_policy",
    "SHAPING_INTRINSIC_PUNISHMENT": "intrinsic_punishment",
    "SHAPING_INTRINSIC_TIMEFRAME": "intrinsic_timeframe",
    "SHAPING_LEARNING_RATE": "learning_rate",
    "SHAPING_TRAINING_EPOCHS": "training_epochs",
    "SHAPING_CONTROL_HZ": "control_hz",
    "SHAPING_EXPLORATION_RATE": "exploration_rate",
}


def config_from_env(base: Optional[ShapingConfig] = None) -> ShapingConfig:
    """Apply SHAPING_* environment overrides on top of base."""
    overrides = {}
    for env_name, option in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is not None:
            overrides[option] = value
    if not overrides:
        return base or DEFAULT_CONFIG
    return ShapingConfig.from_dict(overrides, base=base)


# Named presets
PRESETS = {
    "default": {},
    "gradient": {
        "gradient_reward": True,
        "gradient_punishment": True,
        "manual_punishment_enabled": True,
    },
    "unattended": {
        "intrinsic_punishment": True,
        "intrinsic_timeframe": 8.0,
        "gradient_reward": True,
    },
    "rate_limited": {
        "credit_policy": "decay",
        "intrinsic_punishment": True,
    },
}


def get_config(name: str = "default") -> ShapingConfig:
    """Return the named preset with environment overrides applied."""
    if name not in PRESETS:
        raise ValueError(f"Unknown config preset: {name}. Available: {list(PRESETS)}")
    return ShapingConfig.from_dict(PRESETS[name], base=config_from_env())
