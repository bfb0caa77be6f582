# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Health-tracked pattern catalog with automatic fallback.

Patterns are grouped into named categories.  Every match attempt feeds back
into the entry's health: successes raise ``success_rate`` and heal failures,
failures decay it.  Entries that fail ``max_failures`` times in a row, or whose
rate drops under ``min_success_rate``, fall out of the active set, so the scan
falls back to the next-best patterns when site markup changes.

The registry is owned by one scanner and shared by its watcher and pipeline
stages.  Single-threaded: mutation is last-writer-wins in callback order.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field

from .config import ScannerConfig
from .dom import Document, Node, matches
from .errors import PatternSyntaxError

logger = logging.getLogger(__name__)

NEUTRAL_SUCCESS_RATE = 0.5
DEFAULT_PRIORITY = 10
_SUCCESS_FACTOR = 1.1
_FAILURE_FACTOR = 0.9


@dataclass(slots=True)
class PatternEntry:
    """One pattern with its health statistics."""

    pattern: str
    priority: int = DEFAULT_PRIORITY
    success_rate: float = 1.0
    failure_count: int = 0
    last_success_time: float | None = None

    def __post_init__(self) -> None:
        if self.priority < 1:
            raise ValueError(f"priority must be >= 1, got {self.priority}")
        self.success_rate = min(1.0, max(0.0, self.success_rate))
        self.failure_count = max(0, self.failure_count)

    @property
    def score(self) -> float:
        return self.success_rate * (1 / self.priority)


@dataclass(frozen=True, slots=True)
class MatchResult:
    """Outcome of testing one node against the active patterns."""

    matched: bool
    pattern: str | None = None
    category: str | None = None


@dataclass(frozen=True, slots=True)
class PatternQuery:
    """Outcome of running one pattern against a document or subtree."""

    pattern: str
    nodes: list[Node] = field(default_factory=list)
    ok: bool = True


class PatternRegistry:
    """Per-category catalog of patterns ranked by health."""

    def __init__(self, config: ScannerConfig | None = None, *, clock: Callable[[], float] = time.time) -> None:
        self._config = config or ScannerConfig()
        self._clock = clock
        self._categories: dict[str, list[PatternEntry]] = {}

    @classmethod
    def with_defaults(cls, config: ScannerConfig | None = None, **kwargs) -> PatternRegistry:
        from .catalog import DEFAULT_CATALOG

        registry = cls(config, **kwargs)
        for name, entries in DEFAULT_CATALOG.items():
            registry.add_category(name, [PatternEntry(p, priority=prio, success_rate=rate) for p, prio, rate in entries])
        return registry

    # -- health predicate --

    def is_active(self, entry: PatternEntry) -> bool:
        return entry.failure_count < self._config.max_failures and entry.success_rate >= self._config.min_success_rate

    # -- catalog management --

    def add_category(self, name: str, initial_patterns: Iterable[PatternEntry | str]) -> None:
        """Create or replace category *name*.

        Plain strings become entries ranked by position (priority 1, 2, ...).
        """
        entries: list[PatternEntry] = []
        for index, item in enumerate(initial_patterns):
            entry = item if isinstance(item, PatternEntry) else PatternEntry(item, priority=index + 1)
            if any(e.pattern == entry.pattern for e in entries):
                continue
            entries.append(entry)
        self._categories[name] = entries

    def add_pattern(self, category: str, pattern: str, priority: int = DEFAULT_PRIORITY) -> bool:
        """Insert *pattern* with a neutral prior.  No-op if already present.

        Returns True when a new entry was created.
        """
        entries = self._categories.setdefault(category, [])
        if any(e.pattern == pattern for e in entries):
            return False
        entries.append(PatternEntry(pattern, priority=priority, success_rate=NEUTRAL_SUCCESS_RATE))
        return True

    def update_from_external_config(self, category_map: Mapping[str, Iterable[str]]) -> int:
        """Ingest a remote catalog; existing entries keep their statistics.

        Returns the number of new entries.
        """
        added = 0
        for category, patterns in category_map.items():
            for index, pattern in enumerate(patterns):
                if self.add_pattern(category, pattern, priority=index + 1):
                    added += 1
        if added:
            logger.info("Pattern catalog update: %d new pattern(s)", added)
        return added

    @property
    def categories(self) -> list[str]:
        return list(self._categories)

    def entries(self, category: str) -> list[PatternEntry]:
        return list(self._categories.get(category, ()))

    def find(self, pattern: str) -> list[PatternEntry]:
        return [e for entries in self._categories.values() for e in entries if e.pattern == pattern]

    # -- ranked view --

    def get_active_patterns(self, category: str | None = None) -> list[str]:
        """Active patterns, best score first.  Recomputed on every call."""
        if category is None:
            pool = [e for entries in self._categories.values() for e in entries]
        else:
            pool = list(self._categories.get(category, ()))
        ranked = sorted((e for e in pool if self.is_active(e)), key=lambda e: e.score, reverse=True)
        return list(dict.fromkeys(e.pattern for e in ranked))

    # -- health feedback --

    def record_success(self, pattern: str) -> None:
        now = self._clock()
        for entry in self.find(pattern):
            entry.success_rate = min(1.0, entry.success_rate * _SUCCESS_FACTOR)
            entry.last_success_time = now
            entry.failure_count = max(0, entry.failure_count - 1)

    def record_failure(self, pattern: str) -> None:
        for entry in self.find(pattern):
            was_active = self.is_active(entry)
            entry.failure_count += 1
            entry.success_rate *= _FAILURE_FACTOR
            if was_active and not self.is_active(entry):
                logger.warning(
                    "Pattern deactivated: %s (failures=%d rate=%.3f)",
                    pattern,
                    entry.failure_count,
                    entry.success_rate,
                )

    # -- matching --

    def matches_any(self, node: Node) -> MatchResult:
        """First active pattern matching *node*; malformed patterns count as failures."""
        for category, entries in self._categories.items():
            for entry in list(entries):
                if not self.is_active(entry):
                    continue
                try:
                    hit = matches(node, entry.pattern)
                except PatternSyntaxError as e:
                    logger.debug("Pattern failed to evaluate: %s", e)
                    self.record_failure(entry.pattern)
                    continue
                if hit:
                    return MatchResult(matched=True, pattern=entry.pattern, category=category)
        return MatchResult(matched=False)

    def select(
        self,
        document: Document,
        pattern: str,
        scope: Node | None = None,
        *,
        include_self: bool = True,
    ) -> PatternQuery:
        """Run *pattern* and feed the outcome back into its health.

        One success is recorded per matched node; a malformed pattern records
        one failure and yields ``ok=False``.
        """
        try:
            nodes = document.query_all(pattern, scope, include_self=include_self)
        except PatternSyntaxError as e:
            logger.debug("Pattern query failed: %s", e)
            self.record_failure(pattern)
            return PatternQuery(pattern=pattern, ok=False)
        for _ in nodes:
            self.record_success(pattern)
        return PatternQuery(pattern=pattern, nodes=nodes)

    # -- diagnostics --

    def statistics(self) -> dict[str, list[dict]]:
        return {
            name: [
                {
                    "pattern": e.pattern,
                    "priority": e.priority,
                    "success_rate": round(e.success_rate, 4),
                    "failures": e.failure_count,
                    "active": self.is_active(e),
                }
                for e in entries
            ]
            for name, entries in self._categories.items()
        }
