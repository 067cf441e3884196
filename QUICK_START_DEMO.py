#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Persona Learner - Quick Start Demo
==================================

Simulates a feedback session: warm-up, a run of thumbs up, a burst of thumbs
down, overfitting detection and an explicit mitigation.
"""
import argparse
import logging
import tempfile

from persona_learner import LearnerConfig, PersonaLearner
from persona_learner.persona_profile import PRESET_DESCRIPTIONS, list_presets
from persona_learner.stability import FileBlobStore

HUMOROUS_REPLY = {"had_humor": True, "had_emojis": True, "message_length": 450}


def print_traits(persona, names=("humor", "emoji_usage", "friendliness", "formality", "enthusiasm")):
    for name in names:
        print(f"     {name:<14} {getattr(persona, name):7.3f}")


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--checkpoint_dir", default=None)
    p.add_argument("--verbose", action="store_true")
    args = p.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    print("=" * 70)
    print("PERSONA LEARNER - QUICK START DEMO")
    print("=" * 70)
    print()

    checkpoint_dir = args.checkpoint_dir or tempfile.mkdtemp(prefix="persona_ckpt_")

    # 1. Initialize
    print("1. Initializing PersonaLearner...")
    cfg = LearnerConfig()
    learner = PersonaLearner(cfg, checkpoint_store=FileBlobStore(checkpoint_dir))
    print(f"   Learning rate: {learner.get_learning_rate()}")
    print(f"   Warm-up samples: {cfg.min_warmup_samples}")
    print(f"   Checkpoint dir: {checkpoint_dir}")
    print("   Presets:")
    for name in list_presets():
        print(f"     {name:<14} {PRESET_DESCRIPTIONS[name]}")
    print_traits(learner.get_persona())
    print()

    # 2. Warm-up + positive run
    print("2. Submitting 25 positive ratings for humorous replies...")
    for i in range(25):
        learner.submit_feedback(f"msg-{i}", "positive", HUMOROUS_REPLY)
    print(f"   State: {learner.state.value}")
    print_traits(learner.get_persona())
    print()

    # 3. Negative burst
    print("3. Submitting 15 negative ratings...")
    for i in range(25, 40):
        learner.submit_feedback(f"msg-{i}", "negative", HUMOROUS_REPLY)
    print(f"   State: {learner.state.value}")
    print_traits(learner.get_persona())
    print()

    # 4. Detection + mitigation
    print("4. Overfitting report:")
    report = learner.detect_overfitting()
    print(f"   Overfitting: {report.is_overfitting}")
    print(f"   Indicators: {report.indicators}")
    print(f"   Recommendations: {report.recommendations}")
    learner.apply_overfitting_prevention(report.recommendations)
    learner.resume()
    print(f"   Learning rate now: {learner.get_learning_rate()}")
    print(f"   State now: {learner.state.value}")
    print()

    # 5. Summary
    print("5. Finishing the epoch and summarizing...")
    for i in range(40, 50):
        learner.submit_feedback(f"msg-{i}", "positive", HUMOROUS_REPLY)
    summary = learner.get_summary()
    for key, value in summary.items():
        print(f"   {key}: {value}")
    stats = learner.get_learning_stats()
    print(f"   satisfaction_rate: {stats['satisfaction_rate']:.2f}")
    print()

    print("=" * 70)
    print("PERSONA LEARNER DEMO COMPLETE")
    print("=" * 70)


if __name__ == "__main__":
    main()
