# persona_learner/errors.py


class PersonaLearnerError(Exception):
    """Base class for every error raised by persona_learner."""


class InputValidationError(PersonaLearnerError, ValueError):
    """Malformed feedback submission. Nothing was mutated."""


class UnknownPresetError(PersonaLearnerError, KeyError):
    """Requested persona preset does not exist."""

    def __str__(self) -> str:
        # KeyError wraps its message in quotes
        return str(self.args[0]) if self.args else ""


class ConfigError(PersonaLearnerError, ValueError):
    """Invalid configuration. The engine must not start."""


class CheckpointLoadError(PersonaLearnerError):
    """A checkpoint is missing or could not be decoded."""


class InvariantViolationError(PersonaLearnerError):
    """
    An update would have written a corrupted value (NaN, out of range).
    The offending write is refused and the previous state is kept.
    """
