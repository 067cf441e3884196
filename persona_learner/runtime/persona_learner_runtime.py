# persona_learner/runtime/persona_learner_runtime.py

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import torch

from persona_learner.config import DEFAULT_CONFIG, LearnerConfig
from persona_learner.errors import (
    CheckpointLoadError,
    InputValidationError,
    InvariantViolationError,
    UnknownPresetError,
)
from persona_learner.feedback import FeedbackIngestor, FeedbackSample, FeedbackSign, MessageContextExtractor
from persona_learner.learning import (
    ExperienceReplayBuffer,
    GradientComputer,
    LearningRateController,
    RegularizationPipeline,
    TraitMappingPolicy,
    UpdateResult,
)
from persona_learner.persona_profile import get_default_persona
from persona_learner.stability import (
    BlobStore,
    Checkpoint,
    CheckpointManager,
    OverfittingDetector,
    OverfittingReport,
    ValidationState,
    ValidationTracker,
)
from persona_learner.stability.overfitting import (
    HALVE_LEARNING_RATE,
    KNOWN_RECOMMENDATIONS,
    PAUSE_LEARNING,
    RAISE_MOMENTUM,
    ROLLBACK,
    ROLLBACK_TO_BEST,
    ROLLBACK_TO_CHECKPOINT,
)
from persona_learner.traits import ParameterStore, PersonaParameters, tensor_to_deltas
from .learning_log import LearningLog, LearningRecord


class EngineState(str, Enum):
    WARM_UP = "warm_up"
    ACTIVE = "active"
    PAUSED = "paused"
    ROLLING_BACK = "rolling_back"


@dataclass
class LearnerEvent:
    kind: str                   # state_changed | checkpoint | rollback | update_refused
    feedback_count: int
    detail: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FeedbackOutcome:
    sample: FeedbackSample
    applied: bool
    deferred: bool
    adjustments: Dict[str, Dict[str, float]]
    persona: PersonaParameters
    state: EngineState
    checkpoint: Optional[Checkpoint] = None


class PersonaLearner:
    """
    Online persona learning engine.

    One instance owns one persona. Every mutation runs under a single
    re-entrant lock, so feedback, replay, rollback and resets are applied one
    at a time in arrival order.

    Flow per feedback event:
      ingest -> (validation | train) -> gradient -> regularization -> store
             -> early stopping -> periodic replay -> checkpoint on schedule
    """

    def __init__(
        self,
        cfg: Optional[LearnerConfig] = None,
        checkpoint_store: Optional[BlobStore] = None,
        initial_persona: Optional[PersonaParameters] = None,
        policy: Optional[TraitMappingPolicy] = None,
        generator: Optional[torch.Generator] = None,
        message_lookup: Optional[Callable[[str], Optional[str]]] = None,
        on_event: Optional[Callable[[LearnerEvent], None]] = None,
        restore_latest: bool = False,
    ) -> None:
        self.cfg = cfg if cfg is not None else DEFAULT_CONFIG
        self.logger = logging.getLogger(__name__)

        self.default_persona = get_default_persona()
        self.store = ParameterStore(initial_persona if initial_persona is not None else self.default_persona)
        self.learning_rate = LearningRateController(
            self.cfg.learning_rate, self.cfg.min_learning_rate, self.cfg.max_learning_rate
        )
        self.ingestor = FeedbackIngestor(self.cfg)
        self.gradient = GradientComputer(self.learning_rate, self.cfg.gradient_scale, policy)
        self.pipeline = RegularizationPipeline(self.store, self.cfg)
        self.replay_buffer = ExperienceReplayBuffer(self.cfg.replay_buffer_size, self.cfg.replay_seed, generator)
        self.validation = ValidationTracker(
            self.cfg.validation_window, self.cfg.early_stopping_patience, self.cfg.early_stopping_min_delta
        )
        self.detector = OverfittingDetector(self.cfg)
        self.checkpoints = CheckpointManager(checkpoint_store, self.cfg.checkpoint_interval)
        self.learning_log = LearningLog()
        self.context_extractor = MessageContextExtractor()

        self.message_lookup = message_lookup
        self.on_event = on_event

        self._lock = threading.RLock()
        self._deferred: Deque[Tuple[FeedbackSample, LearningRecord]] = deque()
        self.train_updates = 0

        if restore_latest:
            self._restore_from_checkpoint()

        self._state = self._resting_state()
        self.logger.info(
            f"PersonaLearner initialized: state={self._state.value} "
            f"learning_rate={self.learning_rate.base_rate} feedback_count={self.ingestor.count}"
        )

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def feedback_count(self) -> int:
        return self.ingestor.count

    @property
    def deferred_count(self) -> int:
        return len(self._deferred)

    @property
    def validation_state(self) -> ValidationState:
        with self._lock:
            return self.validation.state

    def submit_feedback(
        self,
        message_id: str,
        sign: Union[str, FeedbackSign],
        context_features: Optional[Mapping[str, Any]] = None,
    ) -> FeedbackOutcome:
        if not isinstance(message_id, str) or not message_id.strip():
            raise InputValidationError(f"Message id must be a non-empty string, got {message_id!r}")

        if context_features is None and self.message_lookup is not None:
            content = self.message_lookup(message_id)
            if content is None:
                raise InputValidationError(f"Unknown message id: {message_id!r}")
            context_features = self.context_extractor.analyze(content)

        with self._lock:
            sample = self.ingestor.submit(sign, context_features, message_id=message_id)
            record = self.learning_log.append(
                LearningRecord(message_id=message_id, sign=sample.sign.value, timestamp=sample.timestamp)
            )
            self.detector.record_feedback(sample)

            result: Optional[UpdateResult] = None
            deferred = False
            if sample.is_validation:
                self.validation.record(sample)
            elif sample.is_warmup:
                # warm-up samples stay out of replay so they never reach the store
                if self._state is EngineState.WARM_UP and not self.ingestor.in_warmup:
                    self._set_state(EngineState.ACTIVE, "warm-up complete")
            else:
                self.replay_buffer.record(sample)
                if self._state is EngineState.ACTIVE:
                    result = self._apply_train(sample, record)
                else:
                    self._deferred.append((sample, record))
                    deferred = True
                    self.logger.debug(f"Sample {sample.index} deferred while {self._state.value}")

            checkpoint = self._maybe_checkpoint()

            return FeedbackOutcome(
                sample=sample,
                applied=result is not None,
                deferred=deferred,
                adjustments=result.adjustments() if result is not None else {},
                persona=self.store.get(),
                state=self._state,
                checkpoint=checkpoint,
            )

    def get_persona(self) -> PersonaParameters:
        with self._lock:
            return self.store.get()

    def get_learning_rate(self) -> float:
        return self.learning_rate.base_rate

    def set_learning_rate(self, rate: float) -> float:
        with self._lock:
            return self.learning_rate.set(rate)

    def detect_overfitting(self) -> OverfittingReport:
        with self._lock:
            return self.detector.detect()

    def apply_overfitting_prevention(self, recommendations: Union[str, Sequence[str]]) -> List[str]:
        """
        Apply advisory recommendations explicitly, in the given order.
        Everything is validated before the first action runs.
        """
        if isinstance(recommendations, str):
            recommendations = [recommendations]
        normalized = []
        for rec in recommendations:
            if not isinstance(rec, str):
                raise InputValidationError(f"Recommendation must be a string, got {rec!r}")
            rec = rec.strip().lower()
            if rec not in KNOWN_RECOMMENDATIONS:
                raise InputValidationError(f"Unknown recommendation: {rec!r}")
            normalized.append(rec)

        with self._lock:
            for rec in normalized:
                if rec == HALVE_LEARNING_RATE:
                    self.learning_rate.set(self.learning_rate.base_rate / 2.0)
                elif rec == RAISE_MOMENTUM:
                    self.pipeline.set_beta(self.cfg.raised_momentum_beta)
                elif rec in (ROLLBACK, ROLLBACK_TO_BEST):
                    self.rollback_to_best()
                elif rec == ROLLBACK_TO_CHECKPOINT:
                    self.rollback_to_latest()
                elif rec == PAUSE_LEARNING:
                    self.pause()
                self.logger.info(f"Applied overfitting prevention: {rec}")
        return normalized

    def pause(self) -> None:
        with self._lock:
            if self._state in (EngineState.ACTIVE, EngineState.WARM_UP):
                self._set_state(EngineState.PAUSED, "paused explicitly")

    def resume(self) -> int:
        """Leave Paused and apply deferred samples. Returns how many were applied."""
        with self._lock:
            if self._state is EngineState.PAUSED:
                self.validation.reset_counter()
                self._set_state(self._resting_state(), "resumed")
            return self._drain_deferred()

    def rollback_to_best(self) -> str:
        """Restore the best validation snapshot. Returns the source used."""
        with self._lock:
            previous = self._begin_rollback()
            try:
                snapshot = self.validation.best_snapshot
                if snapshot is None:
                    self.logger.warning("No best validation snapshot yet; keeping current persona")
                    source = "none"
                else:
                    self.store.restore(snapshot)
                    source = "best"
            finally:
                self._finish_rollback(previous)
            self._emit("rollback", {"source": source})
            self._drain_deferred()
            return source

    def rollback_to_latest(self) -> str:
        """
        Restore the newest durable checkpoint. If it cannot be loaded, fall
        back to the best validation snapshot, then to the default persona.
        """
        with self._lock:
            previous = self._begin_rollback()
            try:
                try:
                    checkpoint = self.checkpoints.load_latest()
                    self.store.restore(checkpoint.persona)
                    source = "checkpoint"
                except CheckpointLoadError as e:
                    self.logger.warning(f"Checkpoint rollback failed: {e}")
                    snapshot = self.validation.best_snapshot
                    if snapshot is not None:
                        self.store.restore(snapshot)
                        source = "best"
                    else:
                        self.store.reset(self.default_persona)
                        source = "default"
            finally:
                self._finish_rollback(previous)
            self._emit("rollback", {"source": source})
            self._drain_deferred()
            return source

    def run_replay(self) -> int:
        """Replay a few stored samples now. No-op unless Active."""
        with self._lock:
            if self._state is not EngineState.ACTIVE:
                return 0
            return self._replay()

    def reset_to_default(self) -> None:
        with self._lock:
            self.store.reset(self.default_persona)
            self._clear_dynamics()

    def set_preset(self, name: str) -> bool:
        with self._lock:
            try:
                self.store.load_preset(name)
            except UnknownPresetError as e:
                self.logger.warning(str(e))
                return False
            self._clear_dynamics()
            return True

    def get_learning_stats(self) -> Dict[str, Any]:
        with self._lock:
            return self.learning_log.stats()

    def get_feedback_trend(self, days: int = 30) -> List[Dict[str, Any]]:
        with self._lock:
            return self.learning_log.trend(days)

    def reset_learning_data(self) -> int:
        with self._lock:
            return self.learning_log.clear()

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "state": self._state.value,
                "feedback_count": self.ingestor.count,
                "train_updates": self.train_updates,
                "deferred": len(self._deferred),
                "learning_rate": self.learning_rate.base_rate,
                "momentum_beta": self.pipeline.beta,
                "validation_score": self.validation.score(),
                "best_validation_score": self.validation.best_score,
                "early_stopping_counter": self.validation.counter,
                "replay_buffer_size": len(self.replay_buffer),
                "checkpoints": self.checkpoints.list_checkpoints(),
            }

    # ------------------------------------------------------------------
    # Internals (lock held by caller)
    # ------------------------------------------------------------------

    def _apply_train(self, sample: FeedbackSample, record: LearningRecord) -> Optional[UpdateResult]:
        raw = self.gradient.compute_tensor(sample)
        try:
            result = self.pipeline.step(raw)
        except InvariantViolationError as e:
            self.logger.error(f"Update for sample {sample.index} refused, keeping last good persona: {e}")
            self._emit("update_refused", {"sample_index": sample.index, "reason": str(e)})
            return None

        self.detector.record_update(result.applied)
        record.applied_changes = tensor_to_deltas(result.applied)
        self.train_updates += 1

        if self.validation.evaluate(self.store.get()):
            self._set_state(EngineState.PAUSED, "early stopping patience exhausted")
        elif self.train_updates % self.cfg.replay_interval == 0:
            self._replay()
        return result

    def _replay(self) -> int:
        samples = self.replay_buffer.sample_for_replay(self.cfg.replay_sample_count)
        replayed = 0
        with self.learning_rate.scaled(self.cfg.replay_rate_multiplier):
            for sample in samples:
                try:
                    result = self.pipeline.step(self.gradient.compute_tensor(sample))
                except InvariantViolationError as e:
                    self.logger.error(f"Replay of sample {sample.index} refused: {e}")
                    continue
                self.detector.record_update(result.applied)
                replayed += 1
        self.logger.debug(f"Replayed {replayed} samples")
        return replayed

    def _drain_deferred(self) -> int:
        drained = 0
        while self._deferred and self._state is EngineState.ACTIVE:
            sample, record = self._deferred.popleft()
            self._apply_train(sample, record)
            drained += 1
        if drained:
            self.logger.info(f"Applied {drained} deferred samples")
        return drained

    def _maybe_checkpoint(self) -> Optional[Checkpoint]:
        checkpoint = self.checkpoints.maybe_checkpoint(self.ingestor.count, self.store.get())
        if checkpoint is not None:
            # checkpoints double as epoch boundaries for the per-epoch clamp
            self.pipeline.start_epoch()
            self._emit("checkpoint", {"feedback_count": checkpoint.feedback_count})
        return checkpoint

    def _begin_rollback(self) -> EngineState:
        previous = self._state
        self._set_state(EngineState.ROLLING_BACK, "rollback started")
        return previous

    def _finish_rollback(self, previous: EngineState) -> None:
        self._clear_dynamics()
        self._set_state(self._resting_state(), f"rollback finished (was {previous.value})")

    def _clear_dynamics(self) -> None:
        self.pipeline.reset_momentum()
        self.validation.reset_counter()
        self.detector.reset_updates()

    def _resting_state(self) -> EngineState:
        return EngineState.WARM_UP if self.ingestor.in_warmup else EngineState.ACTIVE

    def _restore_from_checkpoint(self) -> None:
        try:
            checkpoint = self.checkpoints.load_latest()
        except CheckpointLoadError as e:
            self.logger.warning(f"Could not restore from checkpoint, starting fresh: {e}")
            return
        self.store.restore(checkpoint.persona)
        self.ingestor.count = checkpoint.feedback_count
        self.logger.info(f"Restored persona from checkpoint at feedback count {checkpoint.feedback_count}")

    def _set_state(self, new_state: EngineState, reason: str) -> None:
        if new_state is self._state:
            return
        old_state = self._state
        self._state = new_state
        self.logger.info(f"State {old_state.value} -> {new_state.value} ({reason})")
        self._emit("state_changed", {"from": old_state.value, "to": new_state.value, "reason": reason})

    def _emit(self, kind: str, detail: Dict[str, Any]) -> None:
        if self.on_event is None:
            return
        try:
            self.on_event(LearnerEvent(kind=kind, feedback_count=self.ingestor.count, detail=detail))
        except Exception:
            # listener failures never abort an update that already happened
            self.logger.exception(f"on_event listener failed for {kind!r} event")
