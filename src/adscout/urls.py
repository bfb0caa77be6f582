# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""URL helpers for ad destinations.

Hostname checks are suffix-exact (``ads.doubleclick.net`` matches
``doubleclick.net``; ``evil-doubleclick.net.example`` does not).
"""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

AD_NETWORK_DOMAINS: tuple[str, ...] = (
    "googleadservices.com",
    "doubleclick.net",
    "googlesyndication.com",
)

# Query parameters that carry the real destination of an ad redirect, in priority order
DESTINATION_PARAMS: tuple[str, ...] = ("adurl", "url", "q")

_TRACKING_PARAM_RE = re.compile(r"^(utm_|fbclid|gclid|_ga|mc_)", re.IGNORECASE)
_MAX_REDIRECT_DEPTH = 5


def _hostname(url: str) -> str | None:
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None


def is_hostname_match(hostname: str, domain: str) -> bool:
    """True if *hostname* is *domain* or one of its subdomains."""
    hostname = hostname.lower()
    domain = domain.lower()
    return hostname == domain or hostname.endswith("." + domain)


def is_ad_network_url(url: str) -> bool:
    host = _hostname(url)
    if not host:
        return False
    return any(is_hostname_match(host, d) for d in AD_NETWORK_DOMAINS)


def is_pagead_url(url: str) -> bool:
    """YouTube ``/pagead`` endpoints (click and conversion pings)."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return bool(parts.hostname) and is_hostname_match(parts.hostname, "youtube.com") and "/pagead" in parts.path


def extract_destination_url(url: str) -> str | None:
    """Destination carried by an ad redirect, or None."""
    try:
        params = dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))
    except ValueError:
        return None
    for name in DESTINATION_PARAMS:
        value = params.get(name)
        if value:
            return value
    return None


def remove_tracking_params(url: str) -> str:
    """Drop ``utm_*``, ``fbclid``, ``gclid``, ``_ga`` and ``mc_*`` parameters.

    The URL is returned untouched when it has nothing to drop.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.query:
        return url
    params = parse_qsl(parts.query, keep_blank_values=True)
    kept = [(k, v) for k, v in params if not _TRACKING_PARAM_RE.match(k)]
    if len(kept) == len(params):
        return url
    return urlunsplit(parts._replace(query=urlencode(kept)))


def clean_url(url: str, _depth: int = 0) -> str | None:
    """Normalize a reported URL.

    Ad-network redirects resolve to their destination (recursively); a redirect
    without a destination yields None.  Bare hosts get an ``https://`` scheme.
    """
    url = url.strip()
    if not url:
        return None
    try:
        parts = urlsplit(url)
    except ValueError:
        parts = None
    if parts is None or not parts.scheme or not parts.netloc:
        return url if url.startswith("http") else f"https://{url}"

    if is_ad_network_url(url):
        destination = extract_destination_url(url)
        if destination and _depth < _MAX_REDIRECT_DEPTH:
            return clean_url(destination, _depth + 1)
        return None
    return remove_tracking_params(url)
