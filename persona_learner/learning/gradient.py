# persona_learner/learning/gradient.py

from typing import Any, Dict, Mapping, Optional, Protocol

import torch

from persona_learner.feedback import FeedbackSample
from persona_learner.traits import TRAIT_NAMES, deltas_to_tensor
from .learning_rate import LearningRateController


class TraitMappingPolicy(Protocol):
    def weights(self, context: Mapping[str, Any]) -> Dict[str, float]:
        """Context features -> {trait: signed weight} for a positive sample."""
        ...


class HeuristicTraitPolicy:
    """
    Default context -> trait mapping.

      message_length > 2000      verbosity  +1.5
      message_length > 1000      verbosity  +1.0
      message_length < 300       verbosity  -1.0
      had_emojis                 emoji_usage, enthusiasm +1
      had_humor                  humor +1
      had_code_snippets          code_snippets +1
      had_examples               example_usage +1
      was_structured             structured_output +1
      had_emojis or had_humor    friendliness +1, formality -0.5
      <trait name>: w            trait +w (explicit redirect)
      intensity: s               every weight * s

    Negative feedback flips every sign downstream.
    """

    def weights(self, context: Mapping[str, Any]) -> Dict[str, float]:
        w: Dict[str, float] = {}

        def add(trait: str, value: float) -> None:
            w[trait] = w.get(trait, 0.0) + value

        length = context.get("message_length")
        if length is not None:
            if length > 2000:
                add("verbosity", 1.5)
            elif length > 1000:
                add("verbosity", 1.0)
            elif length < 300:
                add("verbosity", -1.0)

        if context.get("had_emojis"):
            add("emoji_usage", 1.0)
            add("enthusiasm", 1.0)
        if context.get("had_humor"):
            add("humor", 1.0)
        if context.get("had_code_snippets"):
            add("code_snippets", 1.0)
        if context.get("had_examples"):
            add("example_usage", 1.0)
        if context.get("was_structured"):
            add("structured_output", 1.0)
        if context.get("had_emojis") or context.get("had_humor"):
            add("friendliness", 1.0)
            add("formality", -0.5)

        for name in TRAIT_NAMES:
            if name in context:
                add(name, float(context[name]))

        intensity = float(context.get("intensity", 1.0))
        return {trait: value * intensity for trait, value in w.items() if value != 0.0}


class GradientComputer:
    """
    One feedback sample -> raw, unclipped per-trait adjustment.

    magnitude = direction * weight * learning_rate * gradient_scale
    """

    def __init__(
        self,
        learning_rate: LearningRateController,
        gradient_scale: float = 50.0,
        policy: Optional[TraitMappingPolicy] = None,
    ) -> None:
        self.learning_rate = learning_rate
        self.gradient_scale = gradient_scale
        self.policy = policy if policy is not None else HeuristicTraitPolicy()

    def compute(self, sample: FeedbackSample) -> Dict[str, float]:
        step = sample.sign.direction * self.learning_rate.get() * self.gradient_scale
        return {trait: weight * step for trait, weight in self.policy.weights(sample.context).items()}

    def compute_tensor(self, sample: FeedbackSample) -> torch.Tensor:
        return deltas_to_tensor(self.compute(sample))
