# -*- coding: utf-8 -*-
"""
Regularization Pipeline Tests
=============================

Tests for:
- L2 decay toward the center (monotone, no overshoot)
- Stage order (L2 pull before clipping)
- Momentum blending
- Per-update and per-epoch change bounds
- Refusal of non-finite updates
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
import torch

from persona_learner import InvariantViolationError, LearnerConfig
from persona_learner.learning import RegularizationPipeline
from persona_learner.persona_profile import get_default_persona
from persona_learner.traits import NUM_TRAITS, TRAIT_DTYPE, TRAIT_INDEX, ParameterStore, PersonaParameters

HUMOR = TRAIT_INDEX["humor"]
FORMALITY = TRAIT_INDEX["formality"]


def make_pipeline(initial=None, **overrides):
    cfg = LearnerConfig(**overrides)
    store = ParameterStore(initial)
    return store, RegularizationPipeline(store, cfg)


def gradient(**traits):
    g = torch.zeros(NUM_TRAITS, dtype=TRAIT_DTYPE)
    for name, value in traits.items():
        g[TRAIT_INDEX[name]] = value
    return g


def persona_with(**traits):
    values = get_default_persona().to_dict()
    values.update(traits)
    return PersonaParameters(**values)


# ============================================================================
# DECAY
# ============================================================================

def test_l2_decay_is_monotone_toward_center():
    """With zero incoming gradient every trait approaches 50 without crossing it"""
    store, pipeline = make_pipeline(
        persona_with(humor=90.0, emoji_usage=5.0, patience=80.0),
        max_parameter_change_per_epoch=10000.0,
    )
    zero = torch.zeros(NUM_TRAITS, dtype=TRAIT_DTYPE)

    prev = store.get_tensor()
    start_side = torch.sign(prev - 50.0)
    for step in range(300):
        pipeline.step(zero)
        cur = store.get_tensor()
        assert ((cur - 50.0).abs() <= (prev - 50.0).abs() + 1e-12).all(), f"Distance grew at step {step}"
        assert (torch.sign(cur - 50.0) * start_side >= 0).all(), f"Overshoot at step {step}"
        prev = cur

    assert store.get().humor < 90.0
    assert store.get().emoji_usage > 5.0
    print("✓ L2 decay test passed!")


def test_l2_pull_applies_before_clipping():
    """raw=1.2 at value 90: (1.2 - 0.4) = 0.8, not clip(1.2) - 0.4 = 0.6"""
    store, pipeline = make_pipeline(persona_with(humor=90.0), momentum_beta=0.0)
    result = pipeline.step(gradient(humor=1.2))
    assert result.applied[HUMOR].item() == pytest.approx(0.8)
    assert store.get().humor == pytest.approx(90.8)


def test_gradient_is_clipped_after_penalty():
    store, pipeline = make_pipeline(persona_with(humor=50.0), momentum_beta=0.0)
    result = pipeline.step(gradient(humor=7.0, formality=-7.0))
    assert result.applied[HUMOR].item() == pytest.approx(1.0)
    assert result.applied[FORMALITY].item() == pytest.approx(-1.0)


# ============================================================================
# MOMENTUM
# ============================================================================

def test_momentum_blends_clipped_gradient():
    """beta=0.9: first change is 0.1 * g, second 0.9 * 0.1 + 0.1 * g"""
    store, pipeline = make_pipeline(persona_with(humor=50.0))
    first = pipeline.step(gradient(humor=1.0))
    assert first.applied[HUMOR].item() == pytest.approx(0.1)

    # value is now 50.1, so the pull is 0.001
    second = pipeline.step(gradient(humor=1.0))
    expected = 0.9 * 0.1 + 0.1 * (1.0 - 0.01 * 0.1)
    assert second.applied[HUMOR].item() == pytest.approx(expected)

    pipeline.reset_momentum()
    assert torch.count_nonzero(pipeline.momentum) == 0


def test_raised_beta_smooths_more():
    _, slow = make_pipeline(persona_with(humor=50.0))
    slow.set_beta(0.95)
    result = slow.step(gradient(humor=1.0))
    assert result.applied[HUMOR].item() == pytest.approx(0.05)

    with pytest.raises(ValueError):
        slow.set_beta(1.0)


# ============================================================================
# CHANGE BOUNDS
# ============================================================================

def test_per_update_bound():
    """No single update moves a trait by more than 5.0"""
    store, pipeline = make_pipeline(
        gradient_clip_max=100.0,
        momentum_beta=0.0,
        max_parameter_change_per_epoch=10000.0,
    )
    result = pipeline.step(gradient(humor=40.0, formality=-40.0))
    assert result.applied[HUMOR].item() == pytest.approx(5.0)
    assert result.applied[FORMALITY].item() == pytest.approx(-5.0)

    gen = torch.Generator()
    gen.manual_seed(3)
    for _ in range(50):
        raw = (torch.rand(NUM_TRAITS, generator=gen, dtype=TRAIT_DTYPE) - 0.5) * 200.0
        result = pipeline.step(raw)
        assert (result.applied.abs() <= 5.0 + 1e-12).all()


def test_per_epoch_bound():
    """Summed |shift| per trait stays within 15.0 until the next epoch"""
    store, pipeline = make_pipeline(
        persona_with(humor=40.0),
        gradient_clip_max=100.0,
        momentum_beta=0.0,
    )
    applied = [pipeline.step(gradient(humor=10.0)).applied[HUMOR].item() for _ in range(4)]
    assert applied[:3] == pytest.approx([5.0, 5.0, 5.0])
    assert applied[3] == pytest.approx(0.0)
    assert store.get().humor == pytest.approx(55.0)
    assert pipeline.epoch_shift[HUMOR].item() <= 15.0 + 1e-9

    pipeline.start_epoch()
    assert pipeline.step(gradient(humor=10.0)).applied[HUMOR].item() == pytest.approx(5.0)


def test_per_epoch_bound_counts_absolute_shift():
    store, pipeline = make_pipeline(
        persona_with(humor=40.0),
        gradient_clip_max=100.0,
        momentum_beta=0.0,
        max_parameter_change_per_epoch=12.0,
    )
    pipeline.step(gradient(humor=10.0))    # +5
    pipeline.step(gradient(humor=-10.0))   # -5
    third = pipeline.step(gradient(humor=10.0))
    assert third.applied[HUMOR].item() == pytest.approx(2.0), "Partial change scaled to the remaining budget"
    assert pipeline.step(gradient(humor=-10.0)).applied[HUMOR].item() == pytest.approx(0.0)


# ============================================================================
# INVARIANTS
# ============================================================================

def test_non_finite_update_is_refused():
    """A NaN gradient leaves persona and momentum untouched"""
    store, pipeline = make_pipeline()
    pipeline.step(gradient(humor=1.0))
    before = store.get()
    momentum_before = pipeline.momentum.clone()

    with pytest.raises(InvariantViolationError):
        pipeline.step(gradient(humor=float("nan")))

    assert store.get() == before
    assert torch.equal(pipeline.momentum, momentum_before)


def test_adjustments_report_old_and_new_values():
    store, pipeline = make_pipeline(persona_with(humor=50.0), momentum_beta=0.0)
    result = pipeline.step(gradient(humor=1.0))
    adj = result.adjustments()
    assert adj["humor"]["old_value"] == pytest.approx(50.0)
    assert adj["humor"]["new_value"] == pytest.approx(51.0)
    assert adj["humor"]["change"] == pytest.approx(1.0)
