# persona_learner/__init__.py

"""
Persona Learner – online persona adaptation from thumbs up/down feedback.

Modules:
  - traits: PersonaParameters + ParameterStore
  - persona_profile: default persona and presets
  - feedback: FeedbackSample schema, ingestion, context extraction
  - learning: gradient rules, regularization, learning rate, experience replay
  - stability: validation/early stopping, overfitting detection, checkpoints
  - runtime: PersonaLearner engine + learning log
  - config: LearnerConfig
"""

# traits must load before persona_profile
from persona_learner.traits import PersonaParameters, ParameterStore, TRAIT_NAMES
from persona_learner.config import LearnerConfig, DEFAULT_CONFIG
from persona_learner.errors import (
    PersonaLearnerError,
    InputValidationError,
    UnknownPresetError,
    ConfigError,
    CheckpointLoadError,
    InvariantViolationError,
)
from persona_learner.runtime import PersonaLearner, EngineState, FeedbackOutcome, LearnerEvent

__all__ = [
    "PersonaParameters",
    "ParameterStore",
    "TRAIT_NAMES",
    "LearnerConfig",
    "DEFAULT_CONFIG",
    "PersonaLearnerError",
    "InputValidationError",
    "UnknownPresetError",
    "ConfigError",
    "CheckpointLoadError",
    "InvariantViolationError",
    "PersonaLearner",
    "EngineState",
    "FeedbackOutcome",
    "LearnerEvent",
]
