# persona_learner/feedback/__init__.py

from .feedback_sample import FeedbackSample, FeedbackSign, new_sample
from .context_extractor import MessageContextExtractor
from .ingestor import FeedbackIngestor, parse_sign, validate_context_features

__all__ = [
    "FeedbackSample",
    "FeedbackSign",
    "new_sample",
    "MessageContextExtractor",
    "FeedbackIngestor",
    "parse_sign",
    "validate_context_features",
]
