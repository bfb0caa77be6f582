# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Change-driven candidate discovery.

``ChangeWatcher`` turns structural changes into ``(node, reason)`` callbacks:

1. Insertions and filtered attribute changes under the document root are
   queued and debounced; one pass handles the whole batch in delivery order.
2. Each changed element is tested against the registry's active patterns,
   then its descendants against every active pattern (reason ``<reason>-child``).
3. A periodic full rescan (throttled to one run per interval) catches anything
   the notifications missed, and drops detached nodes from visibility tracking.
4. In visible-only mode, matched elements that are not yet visible are parked
   on the visibility feed and delivered later as ``intersection-visible``.

When the host cannot provide change notifications the watcher runs on the
periodic rescan alone.  ``PlayerWatcher`` polls the video player probe.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from .config import ScannerConfig
from .dom import Document, Node, is_element
from .errors import SubscriptionUnavailableError
from .feeds import ChangeSource, VisibilitySource
from .patterns import PatternRegistry
from .player import PlayerProbe
from .timers import Debouncer, RepeatingTimer, Scheduler, Throttler

logger = logging.getLogger(__name__)

DetectedCallback = Callable[[Node, str], None]
PlayerCallback = Callable[[bool, list[str]], None]

REASON_ADDED = "mutation-added"
REASON_ATTRIBUTE = "mutation-attribute"
REASON_VISIBLE = "intersection-visible"
REASON_PERIODIC = "periodic-scan"


class ChangeWatcher:
    def __init__(
        self,
        registry: PatternRegistry,
        document: Document,
        on_detected: DetectedCallback,
        *,
        config: ScannerConfig | None = None,
        scheduler: Scheduler | None = None,
        changes: ChangeSource | None = None,
        visibility: VisibilitySource | None = None,
    ) -> None:
        self._registry = registry
        self._document = document
        self._on_detected = on_detected
        self._config = config or ScannerConfig()
        self._scheduler = scheduler
        self._changes = changes
        self._visibility = visibility

        self._running = False
        self._subscription: object | None = None
        self._batch: list[tuple[Node, str]] = []
        self._debouncer: Debouncer | None = None
        self._periodic: RepeatingTimer | None = None
        self._throttled_scan: Throttler | None = None
        self._visible: dict[int, Node] = {}
        self._deferred: dict[int, Node] = {}
        self._visibility_ok = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def degraded(self) -> bool:
        """True when running on the periodic rescan only."""
        return self._running and self._subscription is None

    # -- lifecycle --

    def start(self) -> None:
        if self._running:
            return
        if self._scheduler is None:
            self._scheduler = asyncio.get_running_loop()
        self._running = True
        self._visibility_ok = self._visibility is not None
        if self._config.visible_only and not self._visibility_ok:
            logger.warning("visible_only set without a visibility source; delivering all matches")

        self._debouncer = Debouncer(self._scheduler, self._config.debounce_s, self._flush)
        self._subscribe()

        self._throttled_scan = Throttler(self._scheduler, self._config.scan_interval_s, self.full_scan)
        self._periodic = RepeatingTimer(
            self._scheduler, self._config.scan_interval_s, self._throttled_scan, name="periodic-scan"
        )
        self._periodic.start()

        self.full_scan()

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False

        if self._subscription is not None and self._changes is not None:
            self._changes.unsubscribe(self._subscription)
        self._subscription = None

        if self._debouncer is not None:
            self._debouncer.cancel()
        self._batch.clear()

        if self._visibility is not None:
            for node in self._deferred.values():
                self._visibility.unobserve(node)
        self._deferred.clear()
        self._visible.clear()

        if self._periodic is not None:
            self._periodic.cancel()
        if self._throttled_scan is not None:
            self._throttled_scan.cancel()
        self._periodic = None
        self._throttled_scan = None

    def _subscribe(self) -> None:
        if self._changes is None:
            logger.info("No change source; running on periodic rescan only")
            return
        try:
            self._subscription = self._changes.subscribe(
                self._document.root,
                on_inserted=self._on_inserted,
                on_attribute_changed=self._on_attribute_changed,
                attribute_filter=self._config.attribute_filter,
            )
        except SubscriptionUnavailableError as e:
            self._subscription = None
            logger.warning("Change notifications unavailable, periodic rescan only: %s", e)

    # -- notifications --

    def _on_inserted(self, nodes: list[Node]) -> None:
        if not self._running:
            return
        self._batch.extend((n, REASON_ADDED) for n in nodes if is_element(n))
        if self._debouncer is not None:
            self._debouncer()

    def _on_attribute_changed(self, node: Node, name: str) -> None:
        if not self._running or not is_element(node):
            return
        self._batch.append((node, REASON_ATTRIBUTE))
        if self._debouncer is not None:
            self._debouncer()

    def _flush(self) -> None:
        batch, self._batch = self._batch, []
        if not self._running:
            return
        logger.debug("Processing %d change notification(s)", len(batch))
        for node, reason in batch:
            if self._document.is_attached(node):
                self.process_element(node, reason)

    # -- scanning --

    def process_element(self, element: Node, reason: str) -> None:
        match = self._registry.matches_any(element)
        if match.matched:
            if match.pattern:
                self._registry.record_success(match.pattern)
            self._deliver(element, reason)

        for pattern in self._registry.get_active_patterns():
            query = self._registry.select(self._document, pattern, element, include_self=False)
            for child in query.nodes:
                self._deliver(child, f"{reason}-child")

    def full_scan(self) -> None:
        if not self._running:
            return
        self._prune_detached()
        for pattern in self._registry.get_active_patterns():
            query = self._registry.select(self._document, pattern)
            for node in query.nodes:
                self._deliver(node, REASON_PERIODIC)

    # -- visibility --

    def _deliver(self, node: Node, reason: str) -> None:
        if self._config.visible_only and self._visibility_ok and id(node) not in self._visible:
            self._defer(node, reason)
            return
        try:
            self._on_detected(node, reason)
        except Exception:
            logger.exception("Detection callback failed for <%s> (%s)", node.tag, reason)

    def _defer(self, node: Node, reason: str) -> None:
        if id(node) in self._deferred:
            return
        try:
            self._visibility.observe(node, self._on_visibility)  # type: ignore[union-attr]
        except SubscriptionUnavailableError as e:
            logger.warning("Visibility notifications unavailable, delivering without visibility filter: %s", e)
            self._visibility_ok = False
            self._deliver(node, reason)
            return
        self._deferred[id(node)] = node

    def _prune_detached(self) -> None:
        for key, node in list(self._deferred.items()):
            if self._document.is_attached(node):
                continue
            del self._deferred[key]
            self._visible.pop(key, None)
            if self._visibility is not None:
                self._visibility.unobserve(node)

    def _on_visibility(self, node: Node, visible: bool) -> None:
        if not self._running:
            return
        if visible:
            self._visible[id(node)] = node
            self.process_element(node, REASON_VISIBLE)
        else:
            self._visible.pop(id(node), None)

    @property
    def visible_count(self) -> int:
        return len(self._visible)


class PlayerWatcher:
    """Polls the player every *interval* seconds.

    The callback gets ``(is_ad_playing, evidence)`` whenever the state flips,
    and on every poll while an ad is playing.
    """

    def __init__(
        self,
        probe: PlayerProbe,
        callback: PlayerCallback,
        scheduler: Scheduler | None = None,
        interval: float = 1.0,
    ) -> None:
        self._probe = probe
        self._callback = callback
        self._scheduler = scheduler
        self._interval = interval
        self._timer: RepeatingTimer | None = None
        self._last_state = False

    def start(self) -> None:
        self.stop()
        if self._scheduler is None:
            self._scheduler = asyncio.get_running_loop()
        self._timer = RepeatingTimer(self._scheduler, self._interval, self.check, name="player-poll")
        self._timer.start()

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @property
    def running(self) -> bool:
        return self._timer is not None

    def check(self) -> None:
        if self._probe.find_player() is None:
            return
        evidence = self._probe.ad_evidence(include_ui=True)
        playing = bool(evidence)
        if playing != self._last_state or playing:
            self._last_state = playing
            self._callback(playing, evidence)
