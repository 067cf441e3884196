# persona_learner/feedback/feedback_sample.py

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
import uuid
import time


class FeedbackSign(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"

    @property
    def direction(self) -> float:
        return 1.0 if self is FeedbackSign.POSITIVE else -1.0


@dataclass(frozen=True)
class FeedbackSample:
    sample_id: str
    message_id: Optional[str]
    index: int                  # 1-based arrival number
    timestamp: float
    sign: FeedbackSign
    context: Dict[str, Any] = field(default_factory=dict)
    is_validation: bool = False
    is_warmup: bool = False

    @property
    def is_positive(self) -> bool:
        return self.sign is FeedbackSign.POSITIVE

    @property
    def is_train(self) -> bool:
        return not self.is_validation


def new_sample(
    index: int,
    sign: FeedbackSign,
    context: Optional[Dict[str, Any]] = None,
    message_id: Optional[str] = None,
    is_validation: bool = False,
    is_warmup: bool = False,
) -> FeedbackSample:
    return FeedbackSample(
        sample_id=str(uuid.uuid4()),
        message_id=message_id,
        index=index,
        timestamp=time.time(),
        sign=sign,
        context=dict(context or {}),
        is_validation=is_validation,
        is_warmup=is_warmup,
    )
