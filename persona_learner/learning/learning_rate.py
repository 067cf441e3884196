# persona_learner/learning/learning_rate.py

import logging
import math
from contextlib import contextmanager
from typing import Iterator

from persona_learner.errors import InputValidationError


class LearningRateController:
    """
    Bounded scalar shared by the gradient computer and experience replay.

    `scaled()` temporarily multiplies the effective rate (replay runs at
    rate/2) without touching the stored base rate.
    """

    def __init__(self, rate: float = 0.02, min_rate: float = 0.005, max_rate: float = 0.05) -> None:
        self.min_rate = min_rate
        self.max_rate = max_rate
        self._rate = self._clamp(rate)
        self._multiplier = 1.0
        self.logger = logging.getLogger(__name__)

    @property
    def base_rate(self) -> float:
        return self._rate

    def get(self) -> float:
        return self._rate * self._multiplier

    def set(self, rate: float) -> float:
        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or not math.isfinite(rate):
            raise InputValidationError(f"Learning rate must be a finite number, got {rate!r}")
        self._rate = self._clamp(rate)
        self.logger.info(f"Learning rate updated to {self._rate}")
        return self._rate

    @contextmanager
    def scaled(self, multiplier: float) -> Iterator[float]:
        previous = self._multiplier
        self._multiplier = previous * multiplier
        try:
            yield self.get()
        finally:
            self._multiplier = previous

    def _clamp(self, rate: float) -> float:
        return max(self.min_rate, min(self.max_rate, float(rate)))
