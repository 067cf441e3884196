# -*- coding: utf-8 -*-
"""
Overfitting Detector

Monitors the learning loop for instability.
"""
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

import torch

from persona_learner.config import LearnerConfig
from persona_learner.feedback import FeedbackSample

# Indicators
TRAIN_VALIDATION_GAP = "train-validation gap"
PARAMETER_VOLATILITY = "parameter volatility"
NEGATIVE_FEEDBACK_SPIKE = "negative feedback spike"

# Recommendations (advisory, applied only through apply_overfitting_prevention)
HALVE_LEARNING_RATE = "halve learning rate"
RAISE_MOMENTUM = "raise momentum beta to 0.95"
ROLLBACK = "rollback"
ROLLBACK_TO_BEST = "rollback to best validation snapshot"
ROLLBACK_TO_CHECKPOINT = "rollback to previous checkpoint"
PAUSE_LEARNING = "pause learning"

KNOWN_RECOMMENDATIONS = (
    HALVE_LEARNING_RATE,
    RAISE_MOMENTUM,
    ROLLBACK,
    ROLLBACK_TO_BEST,
    ROLLBACK_TO_CHECKPOINT,
    PAUSE_LEARNING,
)


@dataclass
class OverfittingReport:
    is_overfitting: bool
    indicators: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    metrics: Dict[str, Optional[float]] = field(default_factory=dict)


class OverfittingDetector:
    """
    Three independent signals, any one flags overfitting:
      - train positive rate exceeds validation positive rate by > gap_threshold
      - summed |delta| over the last N updates too large (per trait or total)
      - too many negatives among the last M feedback events
    """

    def __init__(self, cfg: LearnerConfig) -> None:
        self.gap_threshold = cfg.gap_threshold
        self.volatility_trait_threshold = cfg.volatility_trait_threshold
        self.volatility_aggregate_threshold = cfg.volatility_aggregate_threshold
        self.spike_threshold = cfg.spike_threshold

        self.train_outcomes: Deque[bool] = deque(maxlen=cfg.rate_window)
        self.validation_outcomes: Deque[bool] = deque(maxlen=cfg.rate_window)
        self.recent_feedback: Deque[bool] = deque(maxlen=cfg.spike_window)
        self.recent_updates: Deque[torch.Tensor] = deque(maxlen=cfg.volatility_window)

    def record_feedback(self, sample: FeedbackSample) -> None:
        self.recent_feedback.append(sample.is_positive)
        if sample.is_validation:
            self.validation_outcomes.append(sample.is_positive)
        else:
            self.train_outcomes.append(sample.is_positive)

    def record_update(self, applied: torch.Tensor) -> None:
        self.recent_updates.append(applied.detach().clone())

    def reset_updates(self) -> None:
        self.recent_updates.clear()

    def clear(self) -> None:
        self.train_outcomes.clear()
        self.validation_outcomes.clear()
        self.recent_feedback.clear()
        self.recent_updates.clear()

    @staticmethod
    def _rate(outcomes: Deque[bool]) -> Optional[float]:
        if not outcomes:
            return None
        return sum(outcomes) / len(outcomes)

    def detect(self) -> OverfittingReport:
        indicators: List[str] = []
        recommendations: List[str] = []

        def recommend(*items: str) -> None:
            for item in items:
                if item not in recommendations:
                    recommendations.append(item)

        # Train / validation gap
        train_rate = self._rate(self.train_outcomes)
        validation_rate = self._rate(self.validation_outcomes)
        gap = None
        if train_rate is not None and validation_rate is not None:
            gap = train_rate - validation_rate
            if gap > self.gap_threshold:
                indicators.append(TRAIN_VALIDATION_GAP)
                recommend(HALVE_LEARNING_RATE, ROLLBACK)

        # Parameter volatility
        max_trait_shift = 0.0
        total_shift = 0.0
        if self.recent_updates:
            per_trait = torch.stack(list(self.recent_updates)).abs().sum(dim=0)
            max_trait_shift = float(per_trait.max().item())
            total_shift = float(per_trait.sum().item())
            if (
                max_trait_shift > self.volatility_trait_threshold
                or total_shift > self.volatility_aggregate_threshold
            ):
                indicators.append(PARAMETER_VOLATILITY)
                recommend(RAISE_MOMENTUM)

        # Negative feedback spike
        negatives = sum(1 for positive in self.recent_feedback if not positive)
        if negatives >= self.spike_threshold:
            indicators.append(NEGATIVE_FEEDBACK_SPIKE)
            # pause last: rollback returns the engine to Active
            recommend(HALVE_LEARNING_RATE, ROLLBACK_TO_CHECKPOINT, PAUSE_LEARNING)

        return OverfittingReport(
            is_overfitting=bool(indicators),
            indicators=indicators,
            recommendations=recommendations,
            metrics={
                "train_positive_rate": train_rate,
                "validation_positive_rate": validation_rate,
                "train_validation_gap": gap,
                "max_trait_shift": max_trait_shift,
                "total_shift": total_shift,
                "recent_negatives": float(negatives),
            },
        )
