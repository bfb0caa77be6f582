# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Video player probe.

Reads ad state from the optional host player API first and falls back to the
DOM: player classes (``ad-showing``, ``ad-interrupting``), the ad UI elements
inside the player, ``<video data-current-time>`` and the page URL.
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Protocol
from urllib.parse import parse_qs, urlsplit

from .catalog import PLAYER_PATTERN
from .dom import Document, Node, has_class

logger = logging.getLogger(__name__)

UNKNOWN_CONTEXT = "unknown"

# Player-scoped UI that only exists while an ad is on screen
_PLAYER_AD_UI: tuple[tuple[str, str], ...] = (
    (".ytp-ad-text", "element:ytp-ad-text"),
    (".ytp-ad-skip-button", "element:ytp-ad-skip-button"),
    (".ytp-ad-preview-container", "element:ytp-ad-preview-container"),
)
_OVERLAY_LAYOUT = (".ytp-ad-player-overlay-layout", "element:ytp-ad-player-overlay-layout")


class AdState(IntEnum):
    NONE = -1
    PLAYING = 1
    PAUSED = 2
    ENDED = 3


class PlayerState(IntEnum):
    UNSTARTED = -1
    ENDED = 0
    PLAYING = 1
    PAUSED = 2
    BUFFERING = 3
    CUED = 5


class PlayerApi(Protocol):
    """Host-provided player API (every method may raise)."""

    def get_ad_state(self) -> int: ...

    def get_current_time(self) -> float: ...

    def get_video_id(self) -> str | None: ...


class PlayerProbe:
    """Answers "is an ad playing, and where is playback?" for one document."""

    def __init__(self, document: Document, api: PlayerApi | None = None) -> None:
        self._document = document
        self._api = api
        self._player: Node | None = None

    def find_player(self) -> Node | None:
        if self._player is not None and self._document.is_attached(self._player):
            return self._player
        self._player = self._document.query_one(PLAYER_PATTERN)
        return self._player

    def _api_ad_state(self) -> int | None:
        if self._api is None:
            return None
        try:
            return int(self._api.get_ad_state())
        except Exception as e:
            logger.debug("Player API get_ad_state failed: %s", e)
            return None

    def ad_state(self) -> AdState:
        player = self.find_player()
        if player is None:
            return AdState.NONE
        state = self._api_ad_state()
        if state is not None:
            try:
                return AdState(state)
            except ValueError:
                return AdState.NONE
        if has_class(player, "ad-showing"):
            return AdState.PLAYING
        return AdState.NONE

    def is_ad_playing(self) -> bool:
        player = self.find_player()
        if player is None:
            return False
        if has_class(player, "ad-showing") or has_class(player, "ad-interrupting"):
            return True
        return self._api_ad_state() == AdState.PLAYING

    def current_time(self) -> float | None:
        """Playback position in seconds, or None when unknown."""
        if self._api is not None:
            try:
                return float(self._api.get_current_time())
            except Exception as e:
                logger.debug("Player API get_current_time failed: %s", e)
        player = self.find_player()
        return self._document.playback_position(player)

    def video_id(self) -> str:
        if self._api is not None:
            try:
                vid = self._api.get_video_id()
                if vid:
                    return vid
            except Exception as e:
                logger.debug("Player API get_video_id failed: %s", e)
        try:
            query = parse_qs(urlsplit(self._document.url).query)
        except ValueError:
            return UNKNOWN_CONTEXT
        return (query.get("v") or [UNKNOWN_CONTEXT])[0]

    def ad_evidence(self, *, include_ui: bool = False) -> list[str]:
        """Evidence tokens for the current ad state.

        With ``include_ui`` the ad UI elements inside the player (and the
        page-level overlay layout) are reported too.
        """
        player = self.find_player()
        if player is None:
            return []
        evidence: list[str] = []
        if has_class(player, "ad-showing"):
            evidence.append("player-class:ad-showing")
        if has_class(player, "ad-interrupting"):
            evidence.append("player-class:ad-interrupting")
        if include_ui:
            for pattern, token in _PLAYER_AD_UI:
                if self._document.query_one(pattern, player) is not None:
                    evidence.append(token)
            if self._document.query_one(_OVERLAY_LAYOUT[0]) is not None:
                evidence.append(_OVERLAY_LAYOUT[1])
        if self._api_ad_state() == AdState.PLAYING:
            evidence.append("api:getAdState=1")
        return evidence
