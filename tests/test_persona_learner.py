# -*- coding: utf-8 -*-
"""
PersonaLearner Engine Tests
===========================

Tests for:
- Warm-up gating and state transitions
- Checkpoint cadence and rollback sources
- Early stopping, pause/resume and deferred samples
- Determinism under a fixed replay seed
- Input validation without side effects
- Presets, stats, trend and events
- Serialized concurrent submissions
"""

import sys
import threading
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
import torch

from persona_learner import InputValidationError, LearnerConfig, PersonaLearner
from persona_learner.persona_profile import get_default_persona, get_preset
from persona_learner.runtime import EngineState
from persona_learner.stability import FileBlobStore, InMemoryBlobStore
from persona_learner.stability.checkpoint import checkpoint_key
from persona_learner.stability.overfitting import HALVE_LEARNING_RATE, NEGATIVE_FEEDBACK_SPIKE, PAUSE_LEARNING
from persona_learner.traits import TRAIT_NAMES

HUMOR = {"had_humor": True}


def submit_many(learner, start, stop, sign="positive", context=HUMOR):
    outcomes = []
    for i in range(start, stop + 1):
        outcomes.append(learner.submit_feedback(f"msg-{i}", sign, context))
    return outcomes


# ============================================================================
# WARM-UP
# ============================================================================

def test_warmup_gating():
    """The first 5 samples never move the persona; the 6th does"""
    learner = PersonaLearner()
    assert learner.state is EngineState.WARM_UP
    default = get_default_persona()

    outcomes = submit_many(learner, 1, 5)
    assert all(not o.applied for o in outcomes)
    assert learner.get_persona() == default
    assert learner.state is EngineState.ACTIVE

    sixth = learner.submit_feedback("msg-6", "positive", HUMOR)
    assert sixth.applied
    # pull 1.1 clipped to 1.0, momentum keeps 10%
    assert sixth.persona.humor == pytest.approx(40.1)
    assert sixth.adjustments["humor"]["change"] == pytest.approx(0.1)
    print("✓ Warm-up gating test passed!")


def test_warmup_samples_are_never_replayed():
    """
    With no L2 pull and an empty context the 6th sample has a zero gradient,
    so anything that moves the persona here would have to come from replaying
    warm-up samples.
    """
    learner = PersonaLearner(LearnerConfig(l2_lambda=0.0, replay_interval=1))
    submit_many(learner, 1, 5)
    assert len(learner.replay_buffer) == 0

    learner.submit_feedback("msg-6", "positive", {})
    assert learner.train_updates == 1
    assert len(learner.replay_buffer) == 1
    assert learner.get_persona() == get_default_persona()


# ============================================================================
# CHECKPOINTS
# ============================================================================

def test_checkpoint_cadence():
    store = InMemoryBlobStore()
    learner = PersonaLearner(checkpoint_store=store)
    outcomes = submit_many(learner, 1, 150)

    written = [o.sample.index for o in outcomes if o.checkpoint is not None]
    assert written == [50, 100, 150]
    assert learner.checkpoints.list_checkpoints() == [50, 100, 150]
    assert outcomes[49].checkpoint.persona == outcomes[49].persona


def test_rollback_to_latest_checkpoint():
    store = InMemoryBlobStore()
    learner = PersonaLearner(LearnerConfig(early_stopping_patience=1000), checkpoint_store=store)
    outcomes = submit_many(learner, 1, 50)
    saved = outcomes[-1].checkpoint.persona
    submit_many(learner, 51, 60, sign="negative")
    assert learner.get_persona() != saved

    assert learner.rollback_to_latest() == "checkpoint"
    assert learner.get_persona() == saved
    assert learner.state is EngineState.ACTIVE
    assert torch.count_nonzero(learner.pipeline.momentum) == 0


def test_rollback_falls_back_when_checkpoint_is_corrupt():
    store = InMemoryBlobStore()
    learner = PersonaLearner(LearnerConfig(early_stopping_patience=1000), checkpoint_store=store)
    submit_many(learner, 1, 55)
    store.put(checkpoint_key(50), b"{ not json")

    best = learner.validation_state.best_persona_snapshot
    assert best is not None
    assert learner.rollback_to_latest() == "best"
    assert learner.get_persona() == best

    fresh = PersonaLearner(initial_persona=get_preset("Teacher"))
    assert fresh.rollback_to_latest() == "default"
    assert fresh.get_persona() == get_default_persona()
    assert fresh.state is EngineState.WARM_UP


def test_restore_latest_on_startup(tmp_path):
    first = PersonaLearner(checkpoint_store=FileBlobStore(tmp_path))
    outcomes = submit_many(first, 1, 50)

    second = PersonaLearner(checkpoint_store=FileBlobStore(tmp_path), restore_latest=True)
    assert second.get_persona() == outcomes[-1].checkpoint.persona
    assert second.feedback_count == 50
    assert second.state is EngineState.ACTIVE

    nothing = PersonaLearner(checkpoint_store=FileBlobStore(tmp_path / "empty"), restore_latest=True)
    assert nothing.get_persona() == get_default_persona()
    assert nothing.feedback_count == 0


# ============================================================================
# EARLY STOPPING
# ============================================================================

def test_early_stopping_pauses_and_rollback_restores_best():
    """
    Validation samples arrive at 10, 15, 20, ... The first evaluation (after
    sample 11) sets the best score; with nothing better after that, the 20th
    flat evaluation lands on sample 36 and pauses the engine.
    """
    learner = PersonaLearner()
    outcomes = submit_many(learner, 1, 35)
    after_eleven = outcomes[10].persona
    assert learner.state is EngineState.ACTIVE
    assert learner.validation_state.best_persona_snapshot == after_eleven

    outcome = learner.submit_feedback("msg-36", "positive", HUMOR)
    assert outcome.state is EngineState.PAUSED
    assert learner.validation_state.early_stopping_counter == 20

    assert learner.rollback_to_best() == "best"
    assert learner.get_persona() == after_eleven
    assert torch.count_nonzero(learner.pipeline.momentum) == 0
    assert learner.validation_state.early_stopping_counter == 0
    assert learner.state is EngineState.ACTIVE
    print("✓ Early stopping test passed!")


def test_rollback_to_best_without_snapshot_keeps_persona():
    learner = PersonaLearner()
    submit_many(learner, 1, 8)
    before = learner.get_persona()
    assert learner.rollback_to_best() == "none"
    assert learner.get_persona() == before


def test_paused_samples_are_deferred_then_drained():
    learner = PersonaLearner()
    submit_many(learner, 1, 5)
    learner.pause()
    assert learner.state is EngineState.PAUSED

    outcomes = submit_many(learner, 6, 9)
    assert all(o.deferred and not o.applied for o in outcomes)
    assert learner.get_persona() == get_default_persona()
    assert learner.deferred_count == 4

    assert learner.resume() == 4
    assert learner.state is EngineState.ACTIVE
    assert learner.deferred_count == 0
    assert learner.get_persona().humor > 40.0
    assert learner.train_updates == 4


# ============================================================================
# OVERFITTING SCENARIO
# ============================================================================

def run_scenario():
    """25 positive, then 15 negative ratings of humorous replies."""
    learner = PersonaLearner()
    submit_many(learner, 1, 25)
    submit_many(learner, 26, 40, sign="negative")
    return learner


def test_negative_burst_with_halved_rate():
    halved = run_scenario()
    baseline = run_scenario()
    assert halved.get_persona() == baseline.get_persona()
    assert halved.state is EngineState.PAUSED
    assert halved.deferred_count == 3

    report = halved.detect_overfitting()
    assert report.is_overfitting
    assert NEGATIVE_FEEDBACK_SPIKE in report.indicators
    assert HALVE_LEARNING_RATE in report.recommendations

    # recommendations stay advisory until applied
    assert halved.get_learning_rate() == 0.02
    halved.apply_overfitting_prevention([HALVE_LEARNING_RATE])
    assert halved.get_learning_rate() == pytest.approx(0.01)

    assert halved.resume() == 3
    assert baseline.resume() == 3

    before_h = halved.get_persona().humor
    before_b = baseline.get_persona().humor
    halved.submit_feedback("msg-41", "negative", HUMOR)
    baseline.submit_feedback("msg-41", "negative", HUMOR)
    delta_h = halved.get_persona().humor - before_h
    delta_b = baseline.get_persona().humor - before_b

    assert delta_h < 0 and delta_b < 0
    assert abs(delta_h) < abs(delta_b)
    print("✓ Overfitting scenario test passed!")


def test_spike_mitigation_pauses_learning():
    """Applying the full spike advice ends Paused, even though it rolls back first"""
    learner = PersonaLearner(LearnerConfig(early_stopping_patience=1000))
    submit_many(learner, 1, 20)
    submit_many(learner, 21, 30, sign="negative")
    assert learner.state is EngineState.ACTIVE

    report = learner.detect_overfitting()
    assert NEGATIVE_FEEDBACK_SPIKE in report.indicators
    assert report.recommendations[-1] == PAUSE_LEARNING

    learner.apply_overfitting_prevention(report.recommendations)
    assert learner.state is EngineState.PAUSED
    assert learner.get_learning_rate() == pytest.approx(0.01)

    outcome = learner.submit_feedback("msg-31", "negative", HUMOR)
    assert outcome.deferred
    assert learner.resume() == 1
    assert learner.state is EngineState.ACTIVE


def test_unknown_recommendation_changes_nothing():
    learner = PersonaLearner()
    with pytest.raises(InputValidationError):
        learner.apply_overfitting_prevention([HALVE_LEARNING_RATE, "turn it off and on"])
    assert learner.get_learning_rate() == 0.02


def test_raise_momentum_recommendation():
    learner = PersonaLearner()
    learner.apply_overfitting_prevention("Raise momentum beta to 0.95")
    assert learner.pipeline.beta == 0.95


# ============================================================================
# DETERMINISM / INVARIANTS
# ============================================================================

def test_same_seed_same_trajectory():
    cfg = LearnerConfig(early_stopping_patience=1000, replay_seed=7)
    signs = ["positive", "negative", "positive", "positive"] * 30
    contexts = [HUMOR, {"had_code_snippets": True}, {"message_length": 2500}, {"had_emojis": True}]

    def run():
        learner = PersonaLearner(cfg)
        for i, sign in enumerate(signs):
            learner.submit_feedback(f"msg-{i}", sign, contexts[i % len(contexts)])
        return learner.get_persona()

    assert run() == run()


def test_traits_stay_in_range_under_aggressive_settings():
    cfg = LearnerConfig(
        learning_rate=0.05,
        gradient_scale=5000.0,
        gradient_clip_max=100.0,
        momentum_beta=0.0,
        l2_lambda=0.0,
        max_parameter_change_per_update=50.0,
        max_parameter_change_per_epoch=1000.0,
        early_stopping_patience=1000,
    )
    learner = PersonaLearner(cfg)
    for i in range(120):
        sign = "positive" if (i // 20) % 2 == 0 else "negative"
        outcome = learner.submit_feedback(f"msg-{i}", sign, {"humor": 5.0, "formality": -5.0})
        values = outcome.persona.to_dict()
        assert all(0.0 <= values[name] <= 100.0 for name in TRAIT_NAMES)


# ============================================================================
# INPUT VALIDATION
# ============================================================================

def test_malformed_feedback_has_no_side_effects():
    learner = PersonaLearner()
    submit_many(learner, 1, 7)
    persona = learner.get_persona()

    for message_id, sign, ctx in [
        ("", "positive", None),
        (None, "positive", None),
        ("msg-x", "thumbs-up", None),
        ("msg-x", "positive", {"had_humor": "yes"}),
        ("msg-x", "positive", {"volume": 3}),
    ]:
        with pytest.raises(InputValidationError):
            learner.submit_feedback(message_id, sign, ctx)

    assert learner.feedback_count == 7
    assert learner.get_persona() == persona
    assert learner.get_learning_stats()["total_feedback"] == 7


def test_message_lookup_feeds_context():
    messages = {"m-1": "That was a joke \U0001F602", "m-2": "```python\nx = 1\n```"}
    learner = PersonaLearner(message_lookup=messages.get)

    outcome = learner.submit_feedback("m-1", "positive")
    assert outcome.sample.context["had_humor"]
    assert outcome.sample.context["had_emojis"]
    assert learner.submit_feedback("m-2", "negative").sample.context["had_code_snippets"]

    with pytest.raises(InputValidationError):
        learner.submit_feedback("m-404", "positive")
    assert learner.feedback_count == 2


def test_set_learning_rate_is_clamped():
    learner = PersonaLearner()
    assert learner.set_learning_rate(1.0) == 0.05
    assert learner.set_learning_rate(0.0) == 0.005
    with pytest.raises(InputValidationError):
        learner.set_learning_rate(float("inf"))


# ============================================================================
# PRESETS / STATS / EVENTS
# ============================================================================

def test_presets_and_reset():
    learner = PersonaLearner()
    assert learner.set_preset("Pirate") is False
    assert learner.get_persona() == get_default_persona()

    assert learner.set_preset("Casual Friend") is True
    assert learner.get_persona().humor == 80.0

    learner.reset_to_default()
    assert learner.get_persona() == get_default_persona()


def test_learning_stats_and_trend():
    learner = PersonaLearner()
    submit_many(learner, 1, 8)
    submit_many(learner, 9, 9, sign="negative")

    stats = learner.get_learning_stats()
    assert stats["total_feedback"] == 9
    assert stats["positive_feedback"] == 8
    assert stats["negative_feedback"] == 1
    assert stats["satisfaction_rate"] == pytest.approx(8 / 9)
    assert stats["last_feedback_time"] is not None
    top = {p["parameter"]: p["adjustment_count"] for p in stats["most_adjusted_parameters"]}
    assert top.get("humor") == 4, "Samples 6-9 are applied train updates"

    trend = learner.get_feedback_trend(days=7)
    assert len(trend) == 7
    assert sum(day["positive"] for day in trend) == 8
    assert sum(day["negative"] for day in trend) == 1

    assert learner.reset_learning_data() == 9
    assert learner.get_learning_stats()["total_feedback"] == 0
    assert learner.feedback_count == 9, "Clearing history does not rewind the engine"


def test_events_are_emitted():
    events = []
    learner = PersonaLearner(on_event=events.append)
    submit_many(learner, 1, 50)

    kinds = [e.kind for e in events]
    assert kinds[0] == "state_changed"
    assert events[0].detail["to"] == EngineState.ACTIVE.value
    assert events[0].feedback_count == 5
    assert "checkpoint" in kinds
    checkpoint_event = next(e for e in events if e.kind == "checkpoint")
    assert checkpoint_event.feedback_count == 50


def test_failing_listener_does_not_break_updates(caplog):
    def listener(event):
        raise RuntimeError(f"listener down ({event.kind})")

    learner = PersonaLearner(LearnerConfig(early_stopping_patience=1000), on_event=listener)
    outcomes = submit_many(learner, 1, 50)

    assert learner.state is EngineState.ACTIVE
    assert outcomes[-1].checkpoint is not None
    assert learner.checkpoints.list_checkpoints() == [50]
    assert learner.get_persona() == outcomes[-1].persona
    assert "on_event listener failed" in caplog.text


# ============================================================================
# CONCURRENCY
# ============================================================================

def test_concurrent_submissions_are_serialized():
    """Every event from every thread is counted once and applied or deferred"""
    n_threads, per_thread = 4, 30
    total = n_threads * per_thread
    learner = PersonaLearner()
    outcomes = []
    errors = []
    barrier = threading.Barrier(n_threads)

    def worker(t):
        barrier.wait()
        try:
            for i in range(per_thread):
                sign = "positive" if (t + i) % 3 else "negative"
                outcomes.append(learner.submit_feedback(f"t{t}-msg-{i}", sign, HUMOR))
        except Exception as e:  # surfaced below
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(t,)) for t in range(n_threads)]
    for th in threads:
        th.start()
    for th in threads:
        th.join()

    assert errors == []
    assert learner.feedback_count == total
    assert learner.get_learning_stats()["total_feedback"] == total
    assert sorted(o.sample.index for o in outcomes) == list(range(1, total + 1))

    validation = sum(1 for o in outcomes if o.sample.is_validation)
    warmup = sum(1 for o in outcomes if o.sample.is_warmup)
    assert validation == len(range(10, total + 1, 5))
    assert learner.train_updates + learner.deferred_count == total - validation - warmup

    values = learner.get_persona().to_dict()
    assert all(0.0 <= values[name] <= 100.0 for name in TRAIT_NAMES)
    print("✓ Concurrency test passed!")


def test_summary():
    learner = PersonaLearner()
    submit_many(learner, 1, 12)
    summary = learner.get_summary()
    assert summary["state"] == "active"
    assert summary["feedback_count"] == 12
    assert summary["train_updates"] == 6
    assert summary["validation_score"] == 1.0
    assert summary["replay_buffer_size"] == 6, "Warm-up and validation samples are not replayed"
