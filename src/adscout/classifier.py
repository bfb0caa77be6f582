# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Per-node classification with a short-lived evidence cache.

The same element is usually seen by several stages and several runs within a
couple of seconds.  Instead of re-scoring from scratch each time, the
classifier keeps the last ``Candidate`` per node for ``classification_cache_ms``
and merges new evidence into it:

- unexpired entry, merged set strictly larger -> recompute, replace, window restarts
- unexpired entry, nothing new                -> cached candidate returned as-is
- no entry or expired                         -> fresh classification

Entries are keyed through a ``NodeIndex`` and evicted explicitly: on access when
expired, and by ``sweep()`` which also releases the node slots.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from . import AdType, Candidate
from .config import ScannerConfig
from .dom import Node, NodeIndex
from .scoring import classify_type, score_evidence

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _CacheEntry:
    candidate: Candidate
    expires_at: float


class Classifier:
    """Turns accumulated evidence into a scored, typed ``Candidate``."""

    def __init__(
        self,
        config: ScannerConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        node_index: NodeIndex | None = None,
        position_provider: Callable[[], float | None] | None = None,
    ) -> None:
        self._config = config or ScannerConfig()
        self._clock = clock
        self._index = node_index if node_index is not None else NodeIndex(clock)
        self._position_provider = position_provider
        self._cache: dict[int, _CacheEntry] = {}

    def confidence_threshold(self) -> float:
        """Minimum confidence for a candidate to be reported."""
        return self._config.confidence_threshold

    def classify(self, node: Node, new_evidence: Sequence[str], ad_type: AdType | None = None) -> Candidate:
        key = self._index.key(node)
        now = self._clock()
        entry = self._cache.get(key)

        if entry is not None and entry.expires_at <= now:
            del self._cache[key]
            entry = None

        if entry is not None:
            cached = entry.candidate
            merged = tuple(dict.fromkeys((*cached.evidence, *new_evidence)))
            if len(merged) <= len(cached.evidence):
                return cached
            candidate = self._build(node, merged, ad_type or self._pinned_type(cached))
        else:
            candidate = self._build(node, tuple(new_evidence), ad_type)

        self._cache[key] = _CacheEntry(candidate, now + self._config.classification_cache_s)
        return candidate

    def has_recent_classification(self, node: Node) -> bool:
        entry = self._cache.get(self._index.key(node))
        return entry is not None and entry.expires_at > self._clock()

    def sweep(self) -> int:
        """Drop expired entries and their node slots.  Returns the number evicted."""
        now = self._clock()
        expired = [key for key, entry in self._cache.items() if entry.expires_at <= now]
        for key in expired:
            entry = self._cache.pop(key)
            self._index.release(entry.candidate.node)
        if expired:
            logger.debug("Classifier evicted %d expired entr%s", len(expired), "y" if len(expired) == 1 else "ies")
        return len(expired)

    def clear(self) -> None:
        for entry in self._cache.values():
            self._index.release(entry.candidate.node)
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    # -- internals --

    def _build(self, node: Node, evidence: tuple[str, ...], ad_type: AdType | None) -> Candidate:
        if ad_type is None:
            position = self._position_provider() if self._position_provider is not None else None
            ad_type = classify_type(node, evidence, position)
        return Candidate(
            node=node,
            type=ad_type,
            confidence=score_evidence(evidence, self._config.scoring),
            evidence=evidence,
            timestamp=time.time(),
        )

    @staticmethod
    def _pinned_type(cached: Candidate) -> AdType | None:
        # Player text ads keep their type when later stages corroborate them
        return AdType.VIDEO_AD if cached.type is AdType.VIDEO_AD else None
