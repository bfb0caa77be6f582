# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Session-scoped report deduplication."""

from __future__ import annotations


class Deduplicator:
    """Remembers every ``(destination_url, source)`` pair reported this session."""

    def __init__(self) -> None:
        self._seen: set[tuple[str, str]] = set()

    def should_report(self, url: str, source: str) -> bool:
        """True the first time a pair is seen, False on every later call."""
        key = (url, source)
        if key in self._seen:
            return False
        self._seen.add(key)
        return True

    def reset(self) -> None:
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, key: object) -> bool:
        return key in self._seen
