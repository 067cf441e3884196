# persona_learner/traits/persona_parameters.py

import math
from dataclasses import dataclass, fields, astuple
from typing import Dict, Mapping, Tuple

import torch

TRAIT_MIN = 0.0
TRAIT_MAX = 100.0

# Persona vectors are kept in double precision so snapshots round-trip exactly.
TRAIT_DTYPE = torch.float64


@dataclass
class PersonaParameters:
    """
    PersonaParameters defines the conversational style axes, each in [0, 100].
    Canonical values live in persona_learner.persona_profile.
    """
    # Communication style
    formality: float
    verbosity: float
    humor: float
    enthusiasm: float
    empathy: float
    friendliness: float
    assertiveness: float
    patience: float

    # Tone & personality
    optimism: float
    playfulness: float
    creativity: float
    technicality: float
    directness: float

    # Response characteristics
    emoji_usage: float
    code_snippets: float
    structured_output: float
    markdown: float
    example_usage: float
    analogy: float
    questioning: float
    reasoning_depth: float
    context_awareness: float

    # Proactivity
    proactiveness: float
    interruptiveness: float
    suggestion_frequency: float

    # Interaction style
    confirmation: float
    error_tolerance: float
    learning_focus: float

    def to_tensor(self) -> torch.Tensor:
        return torch.tensor(astuple(self), dtype=TRAIT_DTYPE)

    def to_dict(self) -> Dict[str, float]:
        return {name: float(getattr(self, name)) for name in TRAIT_NAMES}

    def copy(self) -> "PersonaParameters":
        return PersonaParameters(**self.to_dict())

    @staticmethod
    def from_tensor(t: torch.Tensor) -> "PersonaParameters":
        if t.shape != (NUM_TRAITS,):
            raise ValueError(f"Expected tensor of shape [{NUM_TRAITS}], got {list(t.shape)}")
        return PersonaParameters(*[float(v) for v in t.tolist()])

    @staticmethod
    def from_dict(values: Mapping[str, float]) -> "PersonaParameters":
        """
        Strict constructor: every trait must be present, finite and in range.
        Used for anything read back from storage.
        """
        missing = [name for name in TRAIT_NAMES if name not in values]
        if missing:
            raise ValueError(f"Missing persona traits: {', '.join(missing)}")
        unknown = sorted(set(values) - set(TRAIT_NAMES))
        if unknown:
            raise ValueError(f"Unknown persona traits: {', '.join(unknown)}")

        clean = {}
        for name in TRAIT_NAMES:
            value = values[name]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"Trait {name} must be a number, got {value!r}")
            value = float(value)
            if not math.isfinite(value) or not TRAIT_MIN <= value <= TRAIT_MAX:
                raise ValueError(f"Trait {name}={value} outside [{TRAIT_MIN}, {TRAIT_MAX}]")
            clean[name] = value
        return PersonaParameters(**clean)


TRAIT_NAMES: Tuple[str, ...] = tuple(f.name for f in fields(PersonaParameters))
NUM_TRAITS = len(TRAIT_NAMES)
TRAIT_INDEX: Dict[str, int] = {name: i for i, name in enumerate(TRAIT_NAMES)}


def deltas_to_tensor(deltas: Mapping[str, float]) -> torch.Tensor:
    """Sparse {trait: delta} map -> dense [NUM_TRAITS] tensor."""
    t = torch.zeros(NUM_TRAITS, dtype=TRAIT_DTYPE)
    for name, delta in deltas.items():
        if name not in TRAIT_INDEX:
            raise ValueError(f"Unknown persona trait: {name}")
        t[TRAIT_INDEX[name]] += float(delta)
    return t


def tensor_to_deltas(t: torch.Tensor, skip_zero: bool = True) -> Dict[str, float]:
    out = {}
    for name, value in zip(TRAIT_NAMES, t.tolist()):
        if skip_zero and value == 0.0:
            continue
        out[name] = float(value)
    return out
