# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Detection pipeline orchestration.

Flow:
  run(document, focus)
    → throttle / re-entrancy check (too soon or already running → [])
    → fresh RunContext
    → stages in fixed order, each adding evidence and candidates
        (a raising stage is logged, its partial evidence kept, the run continues)
    → unique-by-node filter (first record wins; ``supersede`` replaces in place)
    → candidates
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from . import Candidate
from .dom import Document, Node
from .errors import StageExecutionError
from .pipeline_timer import PipelineTimer, StageStats

logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL_S = 0.1


@dataclass
class RunContext:
    """State shared by the stages of one pipeline run."""

    document: Document
    focus: list[tuple[Node, str]] = field(default_factory=list)
    evidence: list[str] = field(default_factory=list)
    candidates: list[Candidate] = field(default_factory=list)

    def add_evidence(self, *tokens: str) -> None:
        self.evidence.extend(tokens)

    def add_candidate(self, candidate: Candidate) -> None:
        self.candidates.append(candidate)

    def candidate_for(self, node: Node) -> Candidate | None:
        for c in self.candidates:
            if c.node is node:
                return c
        return None

    def supersede(self, candidate: Candidate) -> None:
        """Replace the first record for the same node, or append."""
        for i, c in enumerate(self.candidates):
            if c.node is candidate.node:
                self.candidates[i] = candidate
                return
        self.candidates.append(candidate)


class DetectionStage(Protocol):
    name: str

    def execute(self, ctx: RunContext) -> None: ...


class DetectionPipeline:
    """Runs detection stages in order, at most once per ``min_interval_s``."""

    def __init__(
        self,
        stages: Sequence[DetectionStage],
        *,
        min_interval_s: float = DEFAULT_MIN_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
        stats: StageStats | None = None,
    ) -> None:
        self._stages: list[DetectionStage] = list(stages)
        self._min_interval_s = min_interval_s
        self._clock = clock
        self._stats = stats if stats is not None else StageStats()
        self._last_run_time: float | None = None
        self._running = False

    @property
    def stages(self) -> list[DetectionStage]:
        return list(self._stages)

    def add_stage(self, stage: DetectionStage) -> None:
        self._stages.append(stage)

    def stats(self) -> dict[str, dict[str, float]]:
        return self._stats.snapshot()

    @property
    def last_run_time(self) -> float | None:
        return self._last_run_time

    def run(self, document: Document, focus: Iterable[tuple[Node, str]] = ()) -> list[Candidate]:
        if self._running:
            logger.debug("Pipeline run skipped: already running")
            return []
        now = self._clock()
        if self._last_run_time is not None and now - self._last_run_time < self._min_interval_s:
            return []

        self._running = True
        ctx = RunContext(document=document, focus=list(focus))
        timer = PipelineTimer()
        try:
            for stage in self._stages:
                timer.stage(stage.name)
                try:
                    stage.execute(ctx)
                except Exception as e:
                    timer.fail()
                    err = StageExecutionError(f"{stage.name}: {e}", stage=stage.name)
                    logger.warning("Detection stage failed: %s", err, exc_info=True)
            timer.finalize()
            self._stats.absorb(timer, total_label="detection-pipeline-total")
        finally:
            self._last_run_time = self._clock()
            self._running = False

        seen: set[int] = set()
        unique: list[Candidate] = []
        for candidate in ctx.candidates:
            if id(candidate.node) in seen:
                continue
            seen.add(id(candidate.node))
            unique.append(candidate)

        if unique:
            logger.debug(
                "Pipeline run: %d candidate(s), %d evidence token(s), %.1fms",
                len(unique),
                len(ctx.evidence),
                timer.total_ms(),
            )
        return unique
