# persona_learner/learning/regularization.py

import logging
from dataclasses import dataclass
from typing import Dict

import torch

from persona_learner.config import LearnerConfig
from persona_learner.errors import InvariantViolationError
from persona_learner.traits import NUM_TRAITS, TRAIT_DTYPE, TRAIT_NAMES, ParameterStore


@dataclass
class UpdateResult:
    raw: torch.Tensor          # gradient as received
    regularized: torch.Tensor  # after L2 pull + clip
    momentum: torch.Tensor     # v_t
    applied: torch.Tensor      # what actually reached the store
    before: torch.Tensor
    after: torch.Tensor

    def adjustments(self, min_change: float = 1e-9) -> Dict[str, Dict[str, float]]:
        """{trait: {old_value, new_value, change}} for traits that moved."""
        out = {}
        for i, name in enumerate(TRAIT_NAMES):
            change = float(self.applied[i])
            if abs(change) > min_change:
                out[name] = {
                    "old_value": float(self.before[i]),
                    "new_value": float(self.after[i]),
                    "change": change,
                }
        return out


class RegularizationPipeline:
    """
    Raw gradient -> bounded persona change, per trait:

      1. L2 pull      g = raw - lambda * (x - center)
      2. clip         g in [-clip, clip]
      3. momentum     v = beta * v + (1 - beta) * g
      4. per-update   change = clamp(v, +-max_update)
      5. per-epoch    change scaled so the summed |shift| since the last
                      epoch boundary never passes max_epoch

    The result is written through ParameterStore.apply_delta.
    """

    def __init__(self, store: ParameterStore, cfg: LearnerConfig) -> None:
        self.store = store
        self.l2_lambda = cfg.l2_lambda
        self.center = cfg.l2_center
        self.clip_max = cfg.gradient_clip_max
        self.beta = cfg.momentum_beta
        self.max_update = cfg.max_parameter_change_per_update
        self.max_epoch = cfg.max_parameter_change_per_epoch

        self.momentum = torch.zeros(NUM_TRAITS, dtype=TRAIT_DTYPE)
        self.epoch_shift = torch.zeros(NUM_TRAITS, dtype=TRAIT_DTYPE)
        self.logger = logging.getLogger(__name__)

    def step(self, raw_gradient: torch.Tensor) -> UpdateResult:
        raw = raw_gradient.to(TRAIT_DTYPE)
        current = self.store.get_tensor()

        g = raw - self.l2_lambda * (current - self.center)
        g = torch.clamp(g, -self.clip_max, self.clip_max)

        momentum = self.beta * self.momentum + (1.0 - self.beta) * g
        if not torch.isfinite(momentum).all():
            raise InvariantViolationError("Momentum became non-finite; update refused")

        change = torch.clamp(momentum, -self.max_update, self.max_update)
        change = self._fit_epoch_budget(change)

        # apply_delta raises before writing if anything is off
        applied = self.store.apply_delta(change)

        self.momentum = momentum
        self.epoch_shift = self.epoch_shift + applied.abs()
        self.logger.debug(
            f"Applied update: max|change|={applied.abs().max().item():.4f} "
            f"max epoch shift={self.epoch_shift.max().item():.4f}"
        )
        return UpdateResult(
            raw=raw,
            regularized=g,
            momentum=momentum.clone(),
            applied=applied,
            before=current,
            after=self.store.get_tensor(),
        )

    def _fit_epoch_budget(self, change: torch.Tensor) -> torch.Tensor:
        remaining = torch.clamp(self.max_epoch - self.epoch_shift, min=0.0)
        magnitude = change.abs()
        over = magnitude > remaining
        if not over.any():
            return change
        scale = torch.where(over, remaining / torch.where(over, magnitude, torch.ones_like(magnitude)), torch.ones_like(magnitude))
        return change * scale

    def start_epoch(self) -> None:
        self.epoch_shift = torch.zeros(NUM_TRAITS, dtype=TRAIT_DTYPE)

    def reset_momentum(self) -> None:
        self.momentum = torch.zeros(NUM_TRAITS, dtype=TRAIT_DTYPE)

    def set_beta(self, beta: float) -> None:
        if not 0.0 <= beta < 1.0:
            raise ValueError(f"momentum beta must lie in [0, 1), got {beta}")
        self.beta = beta
        self.logger.info(f"Momentum beta set to {beta}")
