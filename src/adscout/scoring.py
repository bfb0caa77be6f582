# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Evidence-weighted confidence scoring and ad-type inference.

Each evidence token resolves to a weight from ``EVIDENCE_WEIGHTS``: an exact
key wins, otherwise the longest key the token starts with, otherwise the
default weight.  The score blends the strongest signal with the
weight-squared average, so one strong signal dominates but corroboration
still counts, and adds a small capped boost per strong signal.
"""

from __future__ import annotations

from collections.abc import Sequence

from . import AdType
from .config import ScoringWeights
from .dom import Node, class_list, tag_name

CONFIDENCE_THRESHOLD = 0.6
DEFAULT_WEIGHT = 0.5

# Seconds of playback under which a playing ad counts as preroll
PREROLL_WINDOW_S = 5.0

EVIDENCE_WEIGHTS: dict[str, float] = {
    # Player state
    "player-class:ad-showing": 0.95,
    "player-class:ad-interrupting": 0.95,
    "api:getAdState=1": 0.98,
    # Player UI
    "element:ytp-ad-skip-button": 0.9,
    "element:ytp-ad-text": 0.85,
    "element:ytp-ad-preview-container": 0.85,
    "element:ytp-ad-player-overlay-layout": 0.9,
    "element:ytd-promoted-sparkles-web-renderer": 0.9,
    "element:promoted-content": 0.85,
    "element:ad-banner": 0.8,
    "element:ad-badge": 0.75,
    # Catalog patterns
    "selector:ytd-promoted-sparkles-web-renderer": 0.9,
    "selector:ytd-ad-slot-renderer": 0.85,
    "selector:ytd-display-ad-renderer": 0.85,
    "selector:ytd-promoted-video-renderer": 0.85,
    "selector:ytd-in-feed-ad-layout-renderer": 0.85,
    "selector:.html5-video-player.ad-": 0.95,
    "selector:.ytp-ad-": 0.85,
    "selector:.video-ads": 0.85,
    "selector:[data-ad-id]": 0.7,
    "selector:[data-google-query-id]": 0.65,
    'selector:[class*="-ad-"]': 0.5,
    'selector:[id*="ad-"]': 0.4,
    # Extracted content
    "content:external-url": 0.6,
    "content:aria-label-domain": 0.7,
    "content:data-url": 0.75,
    "content:video-ad-text": 0.85,
    "network:ad-service-url": 0.8,
}

# Evidence substrings meaning "an ad is playing in the player right now"
_AD_STATE_MARKERS = ("ad-showing", "ad-interrupting", "getAdState")


def resolve_weight(
    token: str,
    table: dict[str, float] | None = None,
    default: float = DEFAULT_WEIGHT,
) -> float:
    table = EVIDENCE_WEIGHTS if table is None else table
    weight = table.get(token)
    if weight is not None:
        return weight
    best_key = ""
    for key in table:
        if len(key) > len(best_key) and token.startswith(key):
            best_key = key
    return table[best_key] if best_key else default


def score_evidence(
    evidence: Sequence[str],
    weights: ScoringWeights | None = None,
    table: dict[str, float] | None = None,
) -> float:
    """Confidence in [0, 1] for an evidence list; 0 when empty."""
    if not evidence:
        return 0.0
    w = weights or ScoringWeights()

    max_weight = 0.0
    total_weight = 0.0
    weighted_sum = 0.0
    strong = 0
    for token in evidence:
        weight = resolve_weight(token, table, w.default_weight)
        max_weight = max(max_weight, weight)
        total_weight += weight
        weighted_sum += weight * weight
        if weight > w.strong_signal_weight:
            strong += 1

    avg_weight = weighted_sum / total_weight
    base = max_weight * w.max_blend + avg_weight * w.avg_blend
    boost = min(w.boost_cap, strong * w.boost_per_strong_signal)
    return max(0.0, min(1.0, base + boost))


def classify_type(node: Node, evidence: Sequence[str], playback_position: float | None = None) -> AdType:
    """Infer the ad type; first matching rule wins."""
    joined = " ".join(evidence)

    if any(marker in joined for marker in _AD_STATE_MARKERS):
        if playback_position is not None and playback_position < PREROLL_WINDOW_S:
            return AdType.PREROLL
        return AdType.MIDROLL

    node_text = f"{' '.join(class_list(node))} {tag_name(node)}"

    def mentions(word: str) -> bool:
        return word in node_text or word in joined

    if mentions("overlay"):
        return AdType.OVERLAY
    if mentions("banner"):
        return AdType.BANNER
    if mentions("promoted") or mentions("sparkles"):
        return AdType.SPONSORED
    if mentions("display"):
        return AdType.DISPLAY_AD
    if "network" in joined:
        return AdType.NETWORK_AD
    return AdType.DISPLAY_AD
