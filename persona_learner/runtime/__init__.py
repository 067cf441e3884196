# persona_learner/runtime/__init__.py

from .learning_log import LearningLog, LearningRecord
from .persona_learner_runtime import EngineState, FeedbackOutcome, LearnerEvent, PersonaLearner

__all__ = [
    "LearningLog",
    "LearningRecord",
    "EngineState",
    "FeedbackOutcome",
    "LearnerEvent",
    "PersonaLearner",
]
