# -*- coding: utf-8 -*-
"""
Global Configuration for the Persona Learner

Every knob of the online learning loop lives here. Values are validated once,
at construction, so an engine never starts with an inconsistent setup.
"""
import math
from dataclasses import dataclass, fields, asdict
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from persona_learner.errors import ConfigError


@dataclass
class LearnerConfig:
    # Learning rate
    learning_rate: float = 0.02
    min_learning_rate: float = 0.005
    max_learning_rate: float = 0.05
    gradient_scale: float = 50.0          # rate 0.02 -> 1.0 trait points per unit weight
    replay_rate_multiplier: float = 0.5

    # Regularization
    l2_lambda: float = 0.01
    l2_center: float = 50.0
    gradient_clip_max: float = 1.0
    momentum_beta: float = 0.9
    raised_momentum_beta: float = 0.95
    max_parameter_change_per_update: float = 5.0
    max_parameter_change_per_epoch: float = 15.0

    # Early stopping
    early_stopping_patience: int = 20
    early_stopping_min_delta: float = 0.01
    validation_window: int = 20

    # Experience replay
    replay_buffer_size: int = 500
    replay_sample_count: int = 3
    replay_interval: int = 25             # applied train updates between replays
    replay_seed: int = 0

    # Overfitting detector
    rate_window: int = 20
    gap_threshold: float = 0.2
    volatility_window: int = 20
    volatility_trait_threshold: float = 10.0
    volatility_aggregate_threshold: float = 100.0
    spike_window: int = 10
    spike_threshold: int = 6

    # Checkpoints
    checkpoint_interval: int = 50

    # Warm-up / split
    min_warmup_samples: int = 5
    validation_split_ratio: float = 0.2

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{f.name} must be a number, got {value!r}")
            if f.type is int and not isinstance(value, int):
                raise ConfigError(f"{f.name} must be an integer, got {value!r}")
            if not math.isfinite(value):
                raise ConfigError(f"{f.name} must be finite, got {value!r}")

        positive = [
            "learning_rate",
            "min_learning_rate",
            "max_learning_rate",
            "gradient_scale",
            "replay_rate_multiplier",
            "gradient_clip_max",
            "max_parameter_change_per_update",
            "max_parameter_change_per_epoch",
            "early_stopping_patience",
            "validation_window",
            "replay_buffer_size",
            "replay_sample_count",
            "replay_interval",
            "rate_window",
            "volatility_window",
            "volatility_trait_threshold",
            "volatility_aggregate_threshold",
            "spike_window",
            "spike_threshold",
            "checkpoint_interval",
        ]
        for name in positive:
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be > 0, got {getattr(self, name)!r}")

        non_negative = ["l2_lambda", "early_stopping_min_delta", "gap_threshold", "min_warmup_samples", "replay_seed"]
        for name in non_negative:
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be >= 0, got {getattr(self, name)!r}")

        if not self.min_learning_rate <= self.learning_rate <= self.max_learning_rate:
            raise ConfigError(
                f"learning_rate {self.learning_rate} outside "
                f"[{self.min_learning_rate}, {self.max_learning_rate}]"
            )
        if self.replay_rate_multiplier > 1.0:
            raise ConfigError("replay_rate_multiplier must be <= 1.0")
        if not 0.0 <= self.l2_center <= 100.0:
            raise ConfigError(f"l2_center must lie in [0, 100], got {self.l2_center}")
        for name in ("momentum_beta", "raised_momentum_beta"):
            if not 0.0 <= getattr(self, name) < 1.0:
                raise ConfigError(f"{name} must lie in [0, 1), got {getattr(self, name)}")
        if self.spike_threshold > self.spike_window:
            raise ConfigError(
                f"spike_threshold ({self.spike_threshold}) cannot exceed spike_window ({self.spike_window})"
            )
        if not 0.0 < self.validation_split_ratio < 1.0:
            raise ConfigError(
                f"validation_split_ratio must lie in (0, 1), got {self.validation_split_ratio}"
            )

    @property
    def validation_period(self) -> int:
        """Every n-th post-warm-up sample is routed to validation."""
        return max(2, int(round(1.0 / self.validation_split_ratio)))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearnerConfig":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(f"Config must be a mapping, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "LearnerConfig":
        """Load config from a YAML file. Missing file means defaults."""
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Could not parse {path}: {e}") from e
        return cls.from_dict(data)


DEFAULT_CONFIG = LearnerConfig()
