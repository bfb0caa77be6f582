# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Scanning session: wires watcher, pipeline and reporting together.

One ``AdScanner`` per document.  It owns every collaborator explicitly
(registry, classifier, dedup cache, network observer) and runs on a single
scheduler, normally the running asyncio loop:

  ChangeWatcher ─(node, reason)─► focus set ─debounce─► DetectionPipeline
  PlayerWatcher ─(ad playing)──────────────┘                  │
  periodic timer ──────────────────────────────────────────────┤
                                                               ▼
  NetworkObserver ─(destination)──► ReportDispatcher ◄── candidates ─► ReportSink
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any

from .classifier import Classifier
from .config import ScannerConfig
from .dedup import Deduplicator
from .dom import Document, Node, NodeIndex
from .feeds import ChangeSource, VisibilitySource
from .logging_config import bind_scan_context, clear_scan_context
from .network import NetworkObserver
from .patterns import PatternRegistry
from .pipeline import DetectionPipeline
from .player import PlayerApi, PlayerProbe
from .reporting import LoggingSink, ReportDispatcher, ReportRecord, ReportSink
from .stages import create_default_pipeline
from .timers import Debouncer, RepeatingTimer, Scheduler
from .watcher import ChangeWatcher, PlayerWatcher

logger = logging.getLogger(__name__)


class AdScanner:
    def __init__(
        self,
        document: Document,
        sink: ReportSink | None = None,
        *,
        config: ScannerConfig | None = None,
        registry: PatternRegistry | None = None,
        changes: ChangeSource | None = None,
        visibility: VisibilitySource | None = None,
        scheduler: Scheduler | None = None,
        player_api: PlayerApi | None = None,
    ) -> None:
        self.document = document
        self.config = config or ScannerConfig()
        self.session_id = uuid.uuid4().hex[:12]
        self._scheduler = scheduler

        self.registry = registry or PatternRegistry.with_defaults(self.config)
        self.probe = PlayerProbe(document, player_api)
        self.node_index = NodeIndex(self._now)
        self.classifier = Classifier(
            self.config,
            clock=self._now,
            node_index=self.node_index,
            position_provider=self.probe.current_time,
        )
        self.dedup = Deduplicator()
        self.dispatcher = ReportDispatcher(
            sink if sink is not None else LoggingSink(),
            self.dedup,
            threshold=self.config.confidence_threshold,
            context_id=self.probe.video_id,
        )
        self.network = NetworkObserver(listener=self._on_network_destination)
        self.pipeline: DetectionPipeline = create_default_pipeline(
            self.registry,
            self.classifier,
            self.probe,
            self.network,
            config=self.config,
            clock=self._now,
        )
        self.watcher = ChangeWatcher(
            self.registry,
            document,
            self.add_focus,
            config=self.config,
            scheduler=scheduler,
            changes=changes,
            visibility=visibility,
        )
        self.player_watcher = PlayerWatcher(self.probe, self._on_player_state, scheduler, self.config.player_poll_s)

        self._focus: dict[int, tuple[Node, str]] = {}
        self._scan_debouncer: Debouncer | None = None
        self._periodic: RepeatingTimer | None = None
        self._running = False
        self.scans = 0

    def _now(self) -> float:
        if self._scheduler is not None:
            return self._scheduler.time()
        return time.monotonic()

    @property
    def running(self) -> bool:
        return self._running

    # -- lifecycle --

    def start(self) -> None:
        if self._running:
            return
        if self._scheduler is None:
            self._scheduler = asyncio.get_running_loop()
        self._running = True
        bind_scan_context(session=self.session_id, page=self.document.url or "-")
        logger.info("Scanner started (%d active patterns)", len(self.registry.get_active_patterns()))

        self._scan_debouncer = Debouncer(self._scheduler, self.config.debounce_s, self.run_scan)
        self._periodic = RepeatingTimer(self._scheduler, self.config.scan_interval_s, self.run_scan, name="pipeline")
        self.watcher.start()
        self.player_watcher.start()
        self._periodic.start()
        self.request_scan()

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self.watcher.stop()
        self.player_watcher.stop()
        if self._scan_debouncer is not None:
            self._scan_debouncer.cancel()
        if self._periodic is not None:
            self._periodic.cancel()
        self._focus.clear()
        logger.info("Scanner stopped (%d report(s), %d scan(s))", self.dispatcher.sent, self.scans)
        clear_scan_context()

    async def aclose(self) -> None:
        self.stop()
        await self.dispatcher.drain()

    async def __aenter__(self) -> AdScanner:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -- scanning --

    def request_scan(self) -> None:
        """Schedule a pipeline run after the debounce delay."""
        if self._running and self._scan_debouncer is not None:
            self._scan_debouncer()

    def run_scan(self) -> list[ReportRecord]:
        """Run the pipeline once now and report what it finds."""
        focus = list(self._focus.values())
        before = self.pipeline.last_run_time
        candidates = self.pipeline.run(self.document, focus)
        if self.pipeline.last_run_time == before:
            # Throttled: keep the focus nodes for the next run
            self.request_scan()
            return []
        self._focus.clear()
        self.scans += 1
        records = self.dispatcher.dispatch(candidates, self.document)
        self.classifier.sweep()
        self.node_index.sweep(max(self.config.classification_cache_s, self.config.scan_interval_s) * 2)
        return records

    def add_focus(self, node: Node, reason: str) -> None:
        """Queue *node* for the next pipeline run and schedule one."""
        self._focus.setdefault(id(node), (node, reason))
        self.request_scan()

    def _on_player_state(self, playing: bool, evidence: list[str]) -> None:
        if playing:
            logger.debug("Player ad state: %s", ", ".join(evidence))
            self.request_scan()

    # -- network --

    def on_request_issued(self, url: str) -> None:
        """Entry point for the host's request interception."""
        self.network.on_request_issued(url)

    def _on_network_destination(self, destination: str) -> None:
        self.dispatcher.report_network(destination)

    # -- diagnostics --

    def snapshot(self) -> dict[str, Any]:
        stats = self.registry.statistics()
        total = sum(len(entries) for entries in stats.values())
        active = sum(1 for entries in stats.values() for e in entries if e["active"])
        return {
            "session": self.session_id,
            "running": self._running,
            "degraded": self.watcher.degraded,
            "scans": self.scans,
            "reports": self.dispatcher.sent,
            "dedup_size": len(self.dedup),
            "patterns": {"total": total, "active": active},
            "classifier_cache": len(self.classifier),
            "network_destinations": len(self.network),
            "timings": self.pipeline.stats(),
        }
