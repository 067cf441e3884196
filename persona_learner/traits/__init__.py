# persona_learner/traits/__init__.py

from .persona_parameters import (
    PersonaParameters,
    TRAIT_NAMES,
    TRAIT_INDEX,
    NUM_TRAITS,
    TRAIT_DTYPE,
    deltas_to_tensor,
    tensor_to_deltas,
)
from .parameter_store import ParameterStore

__all__ = [
    "PersonaParameters",
    "TRAIT_NAMES",
    "TRAIT_INDEX",
    "NUM_TRAITS",
    "TRAIT_DTYPE",
    "deltas_to_tensor",
    "tensor_to_deltas",
    "ParameterStore",
]
