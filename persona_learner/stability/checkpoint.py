# persona_learner/stability/checkpoint.py

import json
import logging
import os
import re
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from persona_learner.errors import CheckpointLoadError
from persona_learner.traits import PersonaParameters

CHECKPOINT_PREFIX = "persona_checkpoint_"
_KEY_RE = re.compile(r"^persona_checkpoint_(\d+)\.json$")


def checkpoint_key(feedback_count: int) -> str:
    return f"{CHECKPOINT_PREFIX}{feedback_count}.json"


class BlobStore(ABC):
    """
    Minimal key -> bytes store behind checkpoint persistence.

    Implementations must make `put` atomic: a reader sees either the old
    value or the complete new one.
    """

    @abstractmethod
    def put(self, key: str, data: bytes) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Raises KeyError if the key does not exist."""
        raise NotImplementedError

    @abstractmethod
    def keys(self, prefix: str = "") -> List[str]:
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError


class InMemoryBlobStore(BlobStore):
    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes) -> None:
        with self._lock:
            self._blobs[key] = bytes(data)

    def get(self, key: str) -> bytes:
        with self._lock:
            return self._blobs[key]

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._blobs if k.startswith(prefix))

    def delete(self, key: str) -> None:
        with self._lock:
            self._blobs.pop(key, None)


class FileBlobStore(BlobStore):
    """One file per key inside `root`, written via temp file + os.replace."""

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if "/" in key or "\\" in key or key in ("", ".", ".."):
            raise ValueError(f"Invalid blob key: {key!r}")
        return self.root / key

    def put(self, key: str, data: bytes) -> None:
        target = self._path(key)
        fd, tmp = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.root)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, target)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise KeyError(key) from None

    def keys(self, prefix: str = "") -> List[str]:
        return sorted(
            p.name for p in self.root.iterdir()
            if p.is_file() and not p.name.startswith(".") and p.name.startswith(prefix)
        )

    def delete(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()


@dataclass(frozen=True)
class Checkpoint:
    feedback_count: int
    persona: PersonaParameters
    timestamp: int              # milliseconds since epoch

    def to_json(self) -> bytes:
        payload = {
            "feedbackCount": self.feedback_count,
            "persona": self.persona.to_dict(),
            "timestamp": self.timestamp,
        }
        return json.dumps(payload, indent=2, sort_keys=True).encode("utf-8")

    @staticmethod
    def from_json(data: bytes) -> "Checkpoint":
        try:
            obj = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CheckpointLoadError(f"Checkpoint is not valid JSON: {e}") from e
        if not isinstance(obj, dict):
            raise CheckpointLoadError("Checkpoint must be a JSON object")

        count = obj.get("feedbackCount")
        timestamp = obj.get("timestamp")
        persona = obj.get("persona")
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise CheckpointLoadError(f"Invalid feedbackCount: {count!r}")
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise CheckpointLoadError(f"Invalid timestamp: {timestamp!r}")
        if not isinstance(persona, dict):
            raise CheckpointLoadError("Checkpoint persona must be an object")
        try:
            parameters = PersonaParameters.from_dict(persona)
        except ValueError as e:
            raise CheckpointLoadError(f"Invalid checkpoint persona: {e}") from e
        return Checkpoint(feedback_count=count, persona=parameters, timestamp=timestamp)


class CheckpointManager:
    """
    Writes a durable persona snapshot every `interval` feedback events and
    reads them back for rollback.
    """

    def __init__(self, store: Optional[BlobStore] = None, interval: int = 50) -> None:
        self.store = store if store is not None else InMemoryBlobStore()
        self.interval = interval
        self.logger = logging.getLogger(__name__)

    def maybe_checkpoint(self, feedback_count: int, persona: PersonaParameters) -> Optional[Checkpoint]:
        if feedback_count <= 0 or feedback_count % self.interval != 0:
            return None
        return self.write(feedback_count, persona)

    def write(self, feedback_count: int, persona: PersonaParameters) -> Checkpoint:
        checkpoint = Checkpoint(
            feedback_count=feedback_count,
            persona=persona.copy(),
            timestamp=int(time.time() * 1000),
        )
        self.store.put(checkpoint_key(feedback_count), checkpoint.to_json())
        self.logger.info(f"Checkpoint written at feedback count {feedback_count}")
        return checkpoint

    def list_checkpoints(self) -> List[int]:
        counts = []
        for key in self.store.keys(CHECKPOINT_PREFIX):
            m = _KEY_RE.match(key)
            if m:
                counts.append(int(m.group(1)))
        return sorted(counts)

    def load(self, feedback_count: int) -> Checkpoint:
        key = checkpoint_key(feedback_count)
        try:
            data = self.store.get(key)
        except KeyError:
            raise CheckpointLoadError(f"Checkpoint {key} not found") from None
        except OSError as e:
            raise CheckpointLoadError(f"Could not read checkpoint {key}: {e}") from e
        checkpoint = Checkpoint.from_json(data)
        if checkpoint.feedback_count != feedback_count:
            raise CheckpointLoadError(
                f"Checkpoint {key} records feedbackCount {checkpoint.feedback_count}"
            )
        return checkpoint

    def load_latest(self) -> Checkpoint:
        counts = self.list_checkpoints()
        if not counts:
            raise CheckpointLoadError("No checkpoints available")
        return self.load(counts[-1])
