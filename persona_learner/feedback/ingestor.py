# persona_learner/feedback/ingestor.py

import math
from typing import Any, Dict, Mapping, Optional, Union

from persona_learner.config import LearnerConfig
from persona_learner.errors import InputValidationError
from persona_learner.traits import TRAIT_NAMES
from .feedback_sample import FeedbackSample, FeedbackSign, new_sample

BOOL_FEATURES = ("had_code_snippets", "had_emojis", "had_humor", "had_examples", "was_structured")
NUMERIC_FEATURES = ("message_length", "intensity")


def parse_sign(sign: Union[str, FeedbackSign]) -> FeedbackSign:
    if isinstance(sign, FeedbackSign):
        return sign
    if isinstance(sign, str) and sign in (FeedbackSign.POSITIVE.value, FeedbackSign.NEGATIVE.value):
        return FeedbackSign(sign)
    raise InputValidationError(f"Feedback sign must be 'positive' or 'negative', got {sign!r}")


def validate_context_features(context: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if context is None:
        return {}
    if not isinstance(context, Mapping):
        raise InputValidationError(f"Context features must be a mapping, got {type(context).__name__}")

    clean: Dict[str, Any] = {}
    for key, value in context.items():
        if key in BOOL_FEATURES:
            if not isinstance(value, bool):
                raise InputValidationError(f"Context feature {key!r} must be a bool, got {value!r}")
            clean[key] = value
        elif key in NUMERIC_FEATURES or key in TRAIT_NAMES:
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise InputValidationError(f"Context feature {key!r} must be a finite number, got {value!r}")
            if key in NUMERIC_FEATURES and value < 0:
                raise InputValidationError(f"Context feature {key!r} must be >= 0, got {value!r}")
            clean[key] = value
        else:
            raise InputValidationError(f"Unknown context feature: {key!r}")
    return clean


class FeedbackIngestor:
    """
    Turns raw feedback into FeedbackSamples.

      - first `min_warmup_samples` arrivals are flagged warm-up
      - afterwards every `validation_period`-th arrival goes to validation

    The split is a pure function of the arrival number, so runs are
    reproducible.
    """

    def __init__(self, cfg: LearnerConfig) -> None:
        self.min_warmup_samples = cfg.min_warmup_samples
        self.validation_period = cfg.validation_period
        self.count = 0

    @property
    def in_warmup(self) -> bool:
        return self.count < self.min_warmup_samples

    def submit(
        self,
        sign: Union[str, FeedbackSign],
        context_features: Optional[Mapping[str, Any]] = None,
        message_id: Optional[str] = None,
    ) -> FeedbackSample:
        # validate everything before the counter moves
        parsed = parse_sign(sign)
        context = validate_context_features(context_features)

        index = self.count + 1
        is_warmup = index <= self.min_warmup_samples
        is_validation = not is_warmup and index % self.validation_period == 0

        self.count = index
        return new_sample(
            index=index,
            sign=parsed,
            context=context,
            message_id=message_id,
            is_validation=is_validation,
            is_warmup=is_warmup,
        )
