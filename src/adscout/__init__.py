# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""adscout: multi-signal ad detection for live HTML document trees.

Scans an lxml document that a host keeps in sync with a rendered page and
reports elements that look like advertising or sponsored content:
- candidates: classified elements with a confidence score and the evidence behind it
- reports: one record per (destination URL, source) pair per scanning session
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class AdType(StrEnum):
    """Kinds of advertising the classifier can assign."""

    PREROLL = "preroll"
    MIDROLL = "midroll"
    BANNER = "banner"
    SPONSORED = "sponsored"
    OVERLAY = "overlay"
    DISPLAY_AD = "display-ad"
    VIDEO_AD = "video-ad"
    NETWORK_AD = "network-ad"


@dataclass(frozen=True, slots=True, eq=False)
class Candidate:
    """A classified element. Immutable; a later classification supersedes it."""

    node: Any  # lxml.html.HtmlElement (kept untyped so this module stays a leaf)
    type: AdType
    confidence: float  # 0.0–1.0
    evidence: tuple[str, ...]
    timestamp: float  # time.time() at classification

    def __str__(self) -> str:
        tag = getattr(self.node, "tag", "?")
        return f"<{tag}> {self.type.value} ({self.confidence:.2f}) [{', '.join(self.evidence)}]"
