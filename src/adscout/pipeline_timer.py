# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Stage timing for detection runs.

``PipelineTimer`` tracks stage transitions inside one run; ``StageStats``
keeps a rolling window of durations per label across runs so the scanner can
report where time goes without unbounded memory.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass

DEFAULT_WINDOW = 100


@dataclass(slots=True)
class StageRecord:
    name: str
    start_ns: int
    end_ns: int = 0
    failed: bool = False

    @property
    def elapsed_ms(self) -> float:
        return round((self.end_ns - self.start_ns) / 1e6, 3)


class PipelineTimer:
    """Track stage transitions for one pipeline run."""

    __slots__ = ("_stages", "_current", "_start_ns")

    def __init__(self) -> None:
        self._stages: list[StageRecord] = []
        self._current: StageRecord | None = None
        self._start_ns: int = time.monotonic_ns()

    def stage(self, name: str) -> None:
        """End previous stage + start new stage."""
        now = time.monotonic_ns()
        if self._current is not None:
            self._current.end_ns = now
            self._stages.append(self._current)
        self._current = StageRecord(name=name, start_ns=now)

    def fail(self) -> None:
        """Mark the current stage as having raised."""
        if self._current is not None:
            self._current.failed = True

    def finalize(self) -> None:
        """End current stage. Call on success or error."""
        if self._current is not None:
            self._current.end_ns = time.monotonic_ns()
            self._stages.append(self._current)
            self._current = None

    @property
    def current_stage(self) -> str | None:
        return self._current.name if self._current else None

    @property
    def records(self) -> list[StageRecord]:
        return list(self._stages)

    def elapsed_per_stage(self) -> dict[str, float]:
        """Return {stage_name: elapsed_ms} for finished stages plus the current one."""
        result = {s.name: s.elapsed_ms for s in self._stages}
        if self._current is not None:
            result[self._current.name] = round((time.monotonic_ns() - self._current.start_ns) / 1e6, 3)
        return result

    def total_ms(self) -> float:
        return round((time.monotonic_ns() - self._start_ns) / 1e6, 3)

    def failed_stages(self) -> list[str]:
        return [s.name for s in self._stages if s.failed]


class StageStats:
    """Rolling per-label duration samples (last *window* values per label)."""

    def __init__(self, window: int = DEFAULT_WINDOW) -> None:
        self._window = window
        self._samples: dict[str, deque[float]] = {}

    def record(self, label: str, elapsed_ms: float) -> None:
        samples = self._samples.get(label)
        if samples is None:
            samples = self._samples[label] = deque(maxlen=self._window)
        samples.append(elapsed_ms)

    def absorb(self, timer: PipelineTimer, *, total_label: str = "pipeline-total") -> None:
        """Fold a finished run's stage timings into the rolling window."""
        for rec in timer.records:
            self.record(rec.name, rec.elapsed_ms)
        self.record(total_label, timer.total_ms())

    def average(self, label: str) -> float:
        samples = self._samples.get(label)
        if not samples:
            return 0.0
        return sum(samples) / len(samples)

    def snapshot(self) -> dict[str, dict[str, float]]:
        """{label: {avg, min, max, count}} for every label with samples."""
        return {
            label: {
                "avg": round(sum(s) / len(s), 3),
                "min": min(s),
                "max": max(s),
                "count": len(s),
            }
            for label, s in self._samples.items()
            if s
        }
