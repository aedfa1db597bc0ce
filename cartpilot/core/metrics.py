"""Lightweight in-memory metrics collector."""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass
from typing import Dict


@dataclass
class MetricSnapshot:
    total_turns: int
    function_calls: Dict[str, int]
    function_failures: Dict[str, int]
    stop_reasons: Dict[str, int]


class MetricsCollector:
    """Thread-safe counter storage for orchestration metrics."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total_turns = 0
        self._function_calls: Counter[str] = Counter()
        self._function_failures: Counter[str] = Counter()
        self._stop_reasons: Counter[str] = Counter()

    def record_turn(self, stop_reason: str) -> None:
        with self._lock:
            self._total_turns += 1
            self._stop_reasons[stop_reason] += 1

    def record_function_call(self, name: str, success: bool) -> None:
        with self._lock:
            self._function_calls[name] += 1
            if not success:
                self._function_failures[name] += 1

    def snapshot(self) -> MetricSnapshot:
        with self._lock:
            return MetricSnapshot(
                total_turns=self._total_turns,
                function_calls=dict(self._function_calls),
                function_failures=dict(self._function_failures),
                stop_reasons=dict(self._stop_reasons),
            )
