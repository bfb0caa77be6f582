# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Default pattern catalog and UI indicator table.

Catalog content is configuration data: the registry manages health and
ranking, this module only seeds it.  ``load_catalog_file`` reads the same
``{category: [pattern, ...]}`` shape from YAML for remote/updated catalogs.
"""

from __future__ import annotations

from pathlib import Path

# category -> [(pattern, priority, initial success_rate)]
DEFAULT_CATALOG: dict[str, list[tuple[str, int, float]]] = {
    "video-ads": [
        (".video-ads", 1, 1.0),
        (".ytp-ad-module", 2, 1.0),
        (".ytp-ad-player-overlay", 3, 1.0),
        (".ytp-ad-overlay-container", 4, 1.0),
        (".ytp-ad-text", 5, 1.0),
        (".ytp-ad-image-overlay", 6, 1.0),
        ("ytd-player-legacy-desktop-watch-ads-renderer", 7, 1.0),
    ],
    "display-ads": [
        ("ytd-promoted-sparkles-web-renderer", 1, 1.0),
        ("ytd-ad-slot-renderer", 2, 1.0),
        ("ytd-display-ad-renderer", 3, 1.0),
        ("ytd-banner-promo-renderer", 4, 1.0),
        ("ytd-statement-banner-renderer", 5, 1.0),
    ],
    "promoted-content": [
        ("ytd-promoted-video-renderer", 1, 1.0),
        ("ytd-compact-promoted-video-renderer", 2, 1.0),
        (".ytd-promoted-video-renderer", 3, 1.0),
    ],
    "in-feed-ads": [
        ("ytd-in-feed-ad-layout-renderer", 1, 1.0),
        ("ytd-ad-inline-playback-renderer", 2, 1.0),
    ],
    "overlays": [
        (".ytp-ad-avatar-lockup-card", 1, 1.0),
        ("ytd-player-ads-overlay", 2, 1.0),
        (".ytp-ad-player-overlay-layout", 3, 1.0),
    ],
    "generic-patterns": [
        ('[id*="ad-"]', 1, 0.8),
        ('[id*="ads-"]', 2, 0.8),
        ('[class*="-ad-"]', 3, 0.7),
        ('[class*="ad-container"]', 4, 0.7),
        ('[class*="ad_container"]', 5, 0.7),
        ("ad-slot-renderer", 6, 0.8),
    ],
    "data-attributes": [
        ("[data-ad-id]", 1, 0.9),
        ("[data-ad-slot]", 2, 0.9),
        ("[data-google-query-id]", 3, 0.8),
    ],
    "player-state": [
        (".html5-video-player.ad-showing", 1, 1.0),
        (".html5-video-player.ad-interrupting", 2, 1.0),
    ],
    "skip-buttons": [
        (".ytp-ad-skip-button", 1, 1.0),
        (".ytp-ad-skip-button-container", 2, 1.0),
        (".ytp-ad-preview-container", 3, 1.0),
    ],
}

PLAYER_PATTERN = ".html5-video-player"

# Elements inside the player whose text names the advertiser's domain
PLAYER_AD_TEXT_PATTERN = ".ytp-ad-text, .ytp-ad-visit-advertiser-button"

# UI indicator -> (patterns, evidence token).  Player-scoped indicators
# corroborate the player; the rest mark standalone ad containers.
UI_INDICATORS: dict[str, tuple[tuple[str, ...], str]] = {
    "skip-button": (
        (
            ".ytp-ad-skip-button",
            ".ytp-ad-skip-button-container",
            ".ytp-ad-skip-button-text",
            "button.ytp-ad-skip-button-modern",
            ".videoAdUiSkipButton",
        ),
        "element:ytp-ad-skip-button",
    ),
    "ad-badge": (
        (
            ".ytp-ad-badge",
            ".ytp-ad-simple-ad-badge",
            '[aria-label*="Ad"]',
            ".badge-style-type-ad",
        ),
        "element:ad-badge",
    ),
    "countdown-timer": (
        (
            ".ytp-ad-duration-remaining",
            ".ytp-ad-preview-text",
            ".ytp-ad-preview-container",
            ".videoAdUiPreviewContainer",
        ),
        "element:ytp-ad-preview-container",
    ),
    "ad-text": ((".ytp-ad-text",), "element:ytp-ad-text"),
    "ad-overlay": (
        (
            ".ytp-ad-player-overlay-layout",
            ".ytp-ad-player-overlay",
            ".ytp-ad-overlay-container",
            ".ytp-ad-image-overlay",
            ".videoAdUiOverlay",
        ),
        "element:ytp-ad-player-overlay-layout",
    ),
    "sponsored-card": (
        (
            "ytd-promoted-sparkles-web-renderer",
            "ytd-promoted-sparkles-text-search-renderer",
            "ytd-action-companion-ad-renderer",
        ),
        "element:ytd-promoted-sparkles-web-renderer",
    ),
    "promoted-content": (
        (
            "ytd-promoted-video-renderer",
            "ytd-compact-promoted-video-renderer",
            "ytd-in-feed-ad-layout-renderer",
            "ytd-ad-slot-renderer",
            "ytd-video-masthead-ad-v3-renderer",
        ),
        "element:promoted-content",
    ),
    "ad-banner": (
        (
            "ytd-display-ad-renderer",
            "ytd-banner-promo-renderer",
            "ytd-statement-banner-renderer",
            "ytd-primetime-promo-renderer",
            ".masthead-ad-control",
        ),
        "element:ad-banner",
    ),
}


def load_catalog_file(path: str | Path) -> dict[str, list[str]]:
    """Read a ``{category: [pattern, ...]}`` YAML catalog.

    Raises ValueError when the document has the wrong shape.
    """
    import yaml

    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if isinstance(data, dict) and "categories" in data:
        data = data["categories"] or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: catalog must be a mapping of category -> patterns")
    catalog: dict[str, list[str]] = {}
    for category, patterns in data.items():
        if not isinstance(patterns, list) or not all(isinstance(p, str) for p in patterns):
            raise ValueError(f"{path}: category {category!r} must be a list of strings")
        catalog[str(category)] = patterns
    return catalog
