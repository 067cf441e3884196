# persona_learner/stability/validation.py

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional

from persona_learner.feedback import FeedbackSample
from persona_learner.traits import PersonaParameters


@dataclass
class ValidationState:
    best_validation_score: Optional[float]
    best_persona_snapshot: Optional[PersonaParameters]
    early_stopping_counter: int


class ValidationTracker:
    """
    Early stopper over held-out feedback.

    score = fraction of positive samples in the trailing validation window.
    After each train update:
      - score > best + min_delta (or first score): new best, snapshot, counter = 0
      - otherwise counter += 1
    `evaluate` returns True once the counter reaches `patience`.
    """

    def __init__(self, window: int = 20, patience: int = 20, min_delta: float = 0.01) -> None:
        self.window: Deque[bool] = deque(maxlen=window)
        self.patience = patience
        self.min_delta = min_delta

        self.best_score: Optional[float] = None
        self.best_snapshot: Optional[PersonaParameters] = None
        self.counter = 0
        self.logger = logging.getLogger(__name__)

    def record(self, sample: FeedbackSample) -> None:
        self.window.append(sample.is_positive)

    def score(self) -> Optional[float]:
        if not self.window:
            return None
        return sum(self.window) / len(self.window)

    def evaluate(self, persona: PersonaParameters) -> bool:
        score = self.score()
        if score is None:
            return False

        if self.best_score is None or score > self.best_score + self.min_delta:
            self.logger.debug(f"Validation score improved: {self.best_score} -> {score:.4f}")
            self.best_score = score
            self.best_snapshot = persona.copy()
            self.counter = 0
        else:
            self.counter += 1

        return self.counter >= self.patience

    def reset_counter(self) -> None:
        self.counter = 0

    def reset(self) -> None:
        self.window.clear()
        self.best_score = None
        self.best_snapshot = None
        self.counter = 0

    @property
    def state(self) -> ValidationState:
        return ValidationState(
            best_validation_score=self.best_score,
            best_persona_snapshot=self.best_snapshot.copy() if self.best_snapshot is not None else None,
            early_stopping_counter=self.counter,
        )
