# persona_learner/traits/parameter_store.py

import logging
from typing import Mapping, Optional, Union

import torch

from persona_learner.errors import InvariantViolationError
from persona_learner.persona_profile import get_default_persona, get_preset
from .persona_parameters import (
    PersonaParameters,
    TRAIT_DTYPE,
    TRAIT_MAX,
    TRAIT_MIN,
    NUM_TRAITS,
    deltas_to_tensor,
)


class ParameterStore:
    """
    Single writable source of truth for the persona vector.

    Readers always receive copies. Every write is clamped to [0, 100] and
    checked before it replaces the live tensor.
    """

    def __init__(self, initial: Optional[PersonaParameters] = None) -> None:
        persona = initial if initial is not None else get_default_persona()
        self._values = self._checked(persona.to_tensor())
        self.logger = logging.getLogger(__name__)

    def get(self) -> PersonaParameters:
        return PersonaParameters.from_tensor(self._values)

    def get_tensor(self) -> torch.Tensor:
        return self._values.clone()

    def apply_delta(self, deltas: Union[Mapping[str, float], torch.Tensor]) -> torch.Tensor:
        """
        Add deltas, clamp to range, and return the change actually applied.
        """
        if isinstance(deltas, torch.Tensor):
            delta_t = deltas.to(TRAIT_DTYPE)
            if delta_t.shape != (NUM_TRAITS,):
                raise ValueError(f"Expected delta of shape [{NUM_TRAITS}], got {list(delta_t.shape)}")
        else:
            delta_t = deltas_to_tensor(deltas)

        if not torch.isfinite(delta_t).all():
            raise InvariantViolationError("Refusing non-finite persona delta")

        new_values = self._checked(torch.clamp(self._values + delta_t, TRAIT_MIN, TRAIT_MAX))
        applied = new_values - self._values
        self._values = new_values
        return applied

    def reset(self, defaults: Optional[PersonaParameters] = None) -> None:
        persona = defaults if defaults is not None else get_default_persona()
        self._values = self._checked(persona.to_tensor())
        self.logger.info("Persona reset to defaults")

    def restore(self, snapshot: PersonaParameters) -> None:
        self._values = self._checked(snapshot.to_tensor())

    def load_preset(self, name: str) -> None:
        # get_preset raises before anything is touched
        persona = get_preset(name)
        self._values = self._checked(persona.to_tensor())
        self.logger.info(f"Loaded persona preset {name!r}")

    @staticmethod
    def _checked(values: torch.Tensor) -> torch.Tensor:
        if values.shape != (NUM_TRAITS,):
            raise InvariantViolationError(f"Persona must have {NUM_TRAITS} traits, got {list(values.shape)}")
        if not torch.isfinite(values).all():
            raise InvariantViolationError("Persona contains non-finite values")
        if (values < TRAIT_MIN).any() or (values > TRAIT_MAX).any():
            raise InvariantViolationError("Persona trait outside [0, 100]")
        return values.clone()
