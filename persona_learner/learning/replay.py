# persona_learner/learning/replay.py

from collections import deque
from typing import Deque, List, Optional

import torch

from persona_learner.feedback import FeedbackSample


class ExperienceReplayBuffer:
    """
    Bounded FIFO of past train samples.

    Sampling uses its own seeded torch.Generator, never global RNG state,
    so two buffers with the same seed and contents draw the same samples.
    """

    def __init__(self, max_size: int = 500, seed: int = 0, generator: Optional[torch.Generator] = None) -> None:
        self.max_size = max_size
        self.samples: Deque[FeedbackSample] = deque(maxlen=max_size)
        if generator is None:
            generator = torch.Generator()
            generator.manual_seed(seed)
        self.generator = generator

    def __len__(self) -> int:
        return len(self.samples)

    def record(self, sample: FeedbackSample) -> None:
        self.samples.append(sample)

    def sample_for_replay(self, k: int = 3) -> List[FeedbackSample]:
        n = len(self.samples)
        if n == 0 or k <= 0:
            return []
        idx = torch.randperm(n, generator=self.generator)[: min(k, n)]
        return [self.samples[i] for i in idx.tolist()]

    def clear(self) -> None:
        self.samples.clear()
