# persona_learner/runtime/learning_log.py

import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional


@dataclass
class LearningRecord:
    message_id: Optional[str]
    sign: str
    timestamp: float
    applied_changes: Dict[str, float] = field(default_factory=dict)


class LearningLog:
    """
    In-memory history of feedback and the persona changes it caused.
    Feeds satisfaction statistics and per-day trends.
    """

    def __init__(self) -> None:
        self.records: List[LearningRecord] = []

    def append(self, record: LearningRecord) -> LearningRecord:
        self.records.append(record)
        return record

    def stats(self, top_k: int = 5) -> Dict[str, Any]:
        total = len(self.records)
        positive = sum(1 for r in self.records if r.sign == "positive")
        negative = total - positive

        adjusted = Counter()
        for r in self.records:
            adjusted.update(name for name, change in r.applied_changes.items() if change != 0.0)

        return {
            "total_feedback": total,
            "positive_feedback": positive,
            "negative_feedback": negative,
            "satisfaction_rate": positive / total if total else 0.0,
            "last_feedback_time": max((r.timestamp for r in self.records), default=None),
            "most_adjusted_parameters": [
                {"parameter": name, "adjustment_count": count}
                for name, count in adjusted.most_common(top_k)
            ],
        }

    def trend(self, days: int = 30, now: Optional[float] = None) -> List[Dict[str, Any]]:
        """Per-day (UTC) positive/negative counts, oldest first, zero-filled."""
        if days <= 0:
            return []
        if now is None:
            now = time.time()
        today = datetime.fromtimestamp(now, tz=timezone.utc).date()
        first = today - timedelta(days=days - 1)

        buckets = {first + timedelta(days=i): [0, 0] for i in range(days)}
        for r in self.records:
            day = datetime.fromtimestamp(r.timestamp, tz=timezone.utc).date()
            if day in buckets:
                buckets[day][0 if r.sign == "positive" else 1] += 1

        return [
            {"date": day.isoformat(), "positive": pos, "negative": neg}
            for day, (pos, neg) in sorted(buckets.items())
        ]

    def clear(self) -> int:
        n = len(self.records)
        self.records.clear()
        return n
