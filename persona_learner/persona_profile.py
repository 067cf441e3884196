#!/usr/bin/env python3
"""
Persona Profile
===============

Canonical persona values for the assistant.

Provides:
  - Default PersonaParameters (the starting style)
  - Named presets (Default, Professional, Casual Friend, Teacher)
  - Preset descriptions for listings

This module is the single source of truth for "who" the assistant is before
any feedback has been learned.
"""

from typing import Dict, List

from persona_learner.errors import UnknownPresetError
from persona_learner.traits.persona_parameters import PersonaParameters


# -----------------------------------------------------------------------------
# 1. Default Persona
# -----------------------------------------------------------------------------

_PERSONA_DEFAULT: Dict[str, float] = {
    "formality": 50.0,
    "verbosity": 50.0,
    "humor": 40.0,
    "enthusiasm": 60.0,
    "empathy": 70.0,
    "friendliness": 70.0,
    "assertiveness": 50.0,
    "patience": 80.0,
    "optimism": 60.0,
    "playfulness": 40.0,
    "creativity": 50.0,
    "technicality": 50.0,
    "directness": 60.0,
    "emoji_usage": 30.0,
    "code_snippets": 50.0,
    "structured_output": 50.0,
    "markdown": 50.0,
    "example_usage": 50.0,
    "analogy": 40.0,
    "questioning": 40.0,
    "reasoning_depth": 60.0,
    "context_awareness": 70.0,
    "proactiveness": 40.0,
    "interruptiveness": 20.0,
    "suggestion_frequency": 40.0,
    "confirmation": 40.0,
    "error_tolerance": 60.0,
    "learning_focus": 50.0,
}


def get_default_persona() -> PersonaParameters:
    """
    Returns a fresh copy of the canonical default persona.
    """
    return PersonaParameters(**_PERSONA_DEFAULT)


# -----------------------------------------------------------------------------
# 2. Presets
# -----------------------------------------------------------------------------

PRESET_OVERRIDES: Dict[str, Dict[str, float]] = {
    "Default": {},
    "Professional": {
        "formality": 80.0,
        "humor": 20.0,
        "verbosity": 40.0,
        "emoji_usage": 10.0,
        "enthusiasm": 40.0,
        "directness": 80.0,
        "technicality": 80.0,
    },
    "Casual Friend": {
        "formality": 20.0,
        "humor": 80.0,
        "verbosity": 60.0,
        "emoji_usage": 70.0,
        "enthusiasm": 80.0,
        "empathy": 90.0,
        "playfulness": 75.0,
    },
    "Teacher": {
        "formality": 60.0,
        "verbosity": 80.0,
        "patience": 100.0,
        "reasoning_depth": 80.0,
        "technicality": 60.0,
        "example_usage": 80.0,
        "learning_focus": 90.0,
    },
}

PRESET_DESCRIPTIONS: Dict[str, str] = {
    "Default": "Balanced, friendly assistant",
    "Professional": "Formal, technical, and concise",
    "Casual Friend": "Relaxed, funny, and supportive",
    "Teacher": "Patient, detailed explanations",
}


def list_presets() -> List[str]:
    return list(PRESET_OVERRIDES)


def get_preset(name: str) -> PersonaParameters:
    """
    Resolve a preset by its exact name.

    Raises UnknownPresetError for anything not in PRESET_OVERRIDES.
    """
    if name not in PRESET_OVERRIDES:
        raise UnknownPresetError(f"Unknown preset: {name!r}")
    values = dict(_PERSONA_DEFAULT)
    values.update(PRESET_OVERRIDES[name])
    return PersonaParameters(**values)
