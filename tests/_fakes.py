# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared fakes and builders for adscout tests.

Underscore prefix prevents pytest collection.
These are plain utility classes and functions (not fixtures; conftest.py is
reserved for fixtures).
"""

from __future__ import annotations

import heapq
import itertools
from collections.abc import Callable
from typing import Any

import lxml.html

from adscout.dom import Document


class FakeHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock implementing the ``Scheduler`` protocol.

    Callbacks run only inside ``advance``, in due-time order (ties in
    scheduling order).
    """

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self._queue: list[tuple[float, int, FakeHandle, Callable[..., Any], tuple]] = []
        self._seq = itertools.count()

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> FakeHandle:
        handle = FakeHandle()
        heapq.heappush(self._queue, (self.now + delay, next(self._seq), handle, callback, args))
        return handle

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while self._queue and self._queue[0][0] <= target + 1e-9:
            when, _, handle, callback, args = heapq.heappop(self._queue)
            self.now = max(self.now, when)
            if not handle.cancelled:
                callback(*args)
        self.now = target

    @property
    def pending(self) -> int:
        return sum(1 for entry in self._queue if not entry[2].cancelled)


class FakeClock:
    """Callable clock for components that take ``clock=``."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePlayerApi:
    def __init__(self, ad_state: int = -1, current_time: float = 0.0, video_id: str | None = None) -> None:
        self.ad_state = ad_state
        self.current_time = current_time
        self.video_id = video_id

    def get_ad_state(self) -> int:
        return self.ad_state

    def get_current_time(self) -> float:
        return self.current_time

    def get_video_id(self) -> str | None:
        return self.video_id


class BrokenPlayerApi:
    def get_ad_state(self) -> int:
        raise RuntimeError("player API not ready")

    def get_current_time(self) -> float:
        raise RuntimeError("player API not ready")

    def get_video_id(self) -> str | None:
        raise RuntimeError("player API not ready")


def make_document(body: str, url: str = "https://www.youtube.com/watch?v=abc123") -> Document:
    """Wrap *body* markup in a full HTML document."""
    return Document.from_html(f"<html><head><title>t</title></head><body>{body}</body></html>", url=url)


def fragment(markup: str):
    """Parse a single element (not yet attached to any document)."""
    return lxml.html.fragment_fromstring(markup)


def node(doc: Document, pattern: str):
    found = doc.query_one(pattern)
    assert found is not None, f"no element for {pattern!r}"
    return found


SKETCHY_AD = '<div id="promo" aria-label="sketchy-deals.xyz">sketchy-deals.xyz</div>'

PLAYER_AD_SHOWING = (
    '<div class="html5-video-player ad-showing">'
    '<video src="https://r1.googlevideo.com/videoplayback?id=1" data-current-time="2.5"></video>'
    '<div class="ytp-ad-player-overlay-layout">'
    '<span class="ytp-ad-text">brand-shop.com</span>'
    '<button class="ytp-ad-skip-button">Skip</button>'
    "</div>"
    "</div>"
)

PLAYER_IDLE = (
    '<div class="html5-video-player">'
    '<video src="https://r1.googlevideo.com/videoplayback?id=1" data-current-time="42"></video>'
    "</div>"
)
