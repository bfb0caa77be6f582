# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Network observation collaborator.

The host wires its request interception (proxy, devtools protocol, service
worker) to ``NetworkObserver.on_request_issued``.  Ad-network redirects and
YouTube ``/pagead`` pings carry the advertiser's destination in their query
string; the observer extracts it, keeps it for the pipeline's network stage,
and forwards it to an optional listener for immediate reporting.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from .references import should_exclude_url
from .urls import extract_destination_url, is_ad_network_url, is_pagead_url

logger = logging.getLogger(__name__)


class NetworkObserver:
    def __init__(self, listener: Callable[[str], None] | None = None) -> None:
        self._listener = listener
        self._urls: dict[str, None] = {}
        self._fresh: dict[str, None] = {}

    def set_listener(self, listener: Callable[[str], None] | None) -> None:
        self._listener = listener

    def on_request_issued(self, url: str) -> str | None:
        """Inspect one outgoing request.  Returns the extracted destination, if any."""
        if not (is_ad_network_url(url) or is_pagead_url(url)):
            return None
        destination = extract_destination_url(url)
        if not destination or should_exclude_url(destination):
            return None
        if destination not in self._urls:
            self._urls[destination] = None
            logger.debug("Ad destination from request: %s", destination)
        self._fresh[destination] = None
        if self._listener is not None:
            try:
                self._listener(destination)
            except Exception:
                logger.exception("Network listener failed for %s", destination)
        return destination

    @property
    def observed_urls(self) -> list[str]:
        return list(self._urls)

    def take_fresh(self) -> list[str]:
        """Destinations seen since the previous call, each once."""
        fresh, self._fresh = list(self._fresh), {}
        return fresh

    def clear(self) -> None:
        self._urls.clear()
        self._fresh.clear()

    def __len__(self) -> int:
        return len(self._urls)
