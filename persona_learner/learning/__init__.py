# persona_learner/learning/__init__.py

from .learning_rate import LearningRateController
from .gradient import GradientComputer, HeuristicTraitPolicy, TraitMappingPolicy
from .regularization import RegularizationPipeline, UpdateResult
from .replay import ExperienceReplayBuffer

__all__ = [
    "LearningRateController",
    "GradientComputer",
    "HeuristicTraitPolicy",
    "TraitMappingPolicy",
    "RegularizationPipeline",
    "UpdateResult",
    "ExperienceReplayBuffer",
]
