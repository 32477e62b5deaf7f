"""Lightweight in-memory metrics collector."""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass
from typing import Dict


@dataclass
class MetricSnapshot:
    total_turns: int
    intents: Dict[str, int]
    steps: Dict[str, int]
    fallbacks: Dict[str, int]


class MetricsCollector:
    """Thread-safe counter storage for conversation metrics."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total_turns = 0
        self._intents: Counter[str] = Counter()
        self._steps: Counter[str] = Counter()
        self._fallbacks: Counter[str] = Counter()

    def record_turn(self, intent: str, next_step: str) -> None:
        with self._lock:
            self._total_turns += 1
            self._intents[intent] += 1
            self._steps[next_step] += 1

    def record_fallback(self, kind: str) -> None:
        with self._lock:
            self._fallbacks[kind] += 1

    def snapshot(self) -> MetricSnapshot:
        with self._lock:
            return MetricSnapshot(
                total_turns=self._total_turns,
                intents=dict(self._intents),
                steps=dict(self._steps),
                fallbacks=dict(self._fallbacks),
            )
