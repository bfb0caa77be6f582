# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Destination references: advertiser URLs pulled out of candidate elements.

An ad usually names its advertiser somewhere: an ``aria-label`` holding a bare
domain, a ``data-url`` attribute, a link, an image, or a visible text line like
``sketchy-deals.xyz``.  Each hit becomes an ``AdReference`` carrying the report
source tag and the evidence token it contributes.

Google/YouTube infrastructure hosts are never references.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from urllib.parse import urlsplit

from .catalog import PLAYER_AD_TEXT_PATTERN
from .dom import Document, Node, text_fragments
from .errors import MalformedReferenceError, PatternSyntaxError

logger = logging.getLogger(__name__)

VALID_TLDS: tuple[str, ...] = (
    ".com", ".net", ".org", ".io", ".co", ".au", ".uk", ".ca", ".de", ".fr",
    ".it", ".es", ".nl", ".be", ".ch", ".at", ".nz", ".jp", ".in", ".us",
    ".ai", ".app", ".dev", ".tech", ".online", ".store", ".shop", ".site",
    ".xyz", ".me", ".tv", ".cc", ".info", ".biz", ".pro", ".ly",
)  # fmt: skip

# UI words that end up in labels like "like.this" or "watch.later"
EXCLUDE_WORDS: tuple[str, ...] = (
    "play", "plays", "like", "likes", "share", "save", "subscribe",
    "channel", "youtube", "google", "video", "watch",
)  # fmt: skip

EXCLUDE_DOMAINS: tuple[str, ...] = (
    "youtube.com", "ytimg.com", "ggpht.com", "googleusercontent.com",
    "googlevideo.com", "gstatic.com", "google.com", "googleapis.com",
    "doubleclick.net", "googleadservices.com", "googlesyndication.com",
)  # fmt: skip

_DOMAIN_CHARS_RE = re.compile(r"^[A-Za-z0-9.-]+$")

# Text lines shorter than this are labels ("Ad", "Skip"), longer ones are prose
_MIN_TEXT_LEN = 5
_MAX_TEXT_LEN = 100

# Source tags
SOURCE_ARIA_LABEL = "aria-label"
SOURCE_DATA_ATTRIBUTE = "data-attribute"
SOURCE_LINK = "link-href"
SOURCE_IMAGE = "image-src"
SOURCE_TEXT = "text-node"
SOURCE_PLAYER_TEXT = "video-player-text"

_URL_ATTRIBUTES: tuple[tuple[str, str, str], ...] = (
    ("a[href]", "href", SOURCE_LINK),
    ("img[src]", "src", SOURCE_IMAGE),
)


@dataclass(frozen=True, slots=True)
class AdReference:
    url: str
    source: str
    evidence: str


def is_plausible_ad_reference(text: str) -> bool:
    """True if *text* reads like a bare advertiser domain."""
    lowered = text.lower()
    if "." not in text:
        return False
    if not any(lowered.endswith(tld) for tld in VALID_TLDS):
        return False
    if any(word in lowered for word in EXCLUDE_WORDS):
        return False
    if any(domain in lowered for domain in EXCLUDE_DOMAINS):
        return False
    return bool(_DOMAIN_CHARS_RE.match(text))


def reference_host(url: str) -> str:
    """Lower-cased host of an absolute URL.

    Raises MalformedReferenceError when *url* has no scheme or host.
    """
    if not url:
        raise MalformedReferenceError("empty reference", value=url)
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError as e:
        raise MalformedReferenceError(f"unparseable reference {url!r}: {e}", value=url) from e
    if not parts.scheme or not host:
        raise MalformedReferenceError(f"reference {url!r} has no host", value=url)
    return host.lower()


def should_exclude_url(url: str) -> bool:
    """True for malformed URLs and Google/YouTube infrastructure hosts."""
    try:
        host = reference_host(url)
    except MalformedReferenceError:
        return True
    return any(domain in host for domain in EXCLUDE_DOMAINS)


def _iter_references(node: Node, document: Document) -> Iterator[AdReference]:
    label = (node.get("aria-label") or "").strip()
    if label and is_plausible_ad_reference(label):
        yield AdReference(f"https://{label}", SOURCE_ARIA_LABEL, "content:aria-label-domain")

    data_url = (node.get("data-url") or node.get("data-ad-url") or "").strip()
    if data_url and not should_exclude_url(data_url):
        yield AdReference(data_url, SOURCE_DATA_ATTRIBUTE, "content:data-url")

    for pattern, attr, source in _URL_ATTRIBUTES:
        for el in document.query_all(pattern, node):
            try:
                url = document.resolve(el.get(attr, ""))
            except MalformedReferenceError as e:
                logger.debug("Skipping reference: %s", e)
                continue
            if url and not should_exclude_url(url):
                yield AdReference(url, source, "content:external-url")

    for text in text_fragments(node):
        if _MIN_TEXT_LEN < len(text) < _MAX_TEXT_LEN and is_plausible_ad_reference(text):
            yield AdReference(f"https://{text}", SOURCE_TEXT, "content:text-node-domain")


def extract_references(node: Node, document: Document) -> list[AdReference]:
    """References found on or under *node*, one per URL (first source wins)."""
    seen: dict[str, AdReference] = {}
    for ref in _iter_references(node, document):
        seen.setdefault(ref.url, ref)
    return list(seen.values())


def player_text_reference(element: Node) -> AdReference | None:
    """Reference for a player ad-text element whose whole text is a domain."""
    text = " ".join(text_fragments(element))
    if text and is_plausible_ad_reference(text):
        return AdReference(f"https://{text}", SOURCE_PLAYER_TEXT, "content:video-ad-text")
    return None


def extract_player_references(player: Node, document: Document) -> list[tuple[Node, AdReference]]:
    """Advertiser domains shown as text inside the video player's ad UI."""
    try:
        elements = document.query_all(PLAYER_AD_TEXT_PATTERN, player)
    except PatternSyntaxError:
        return []
    found: list[tuple[Node, AdReference]] = []
    for el in elements:
        ref = player_text_reference(el)
        if ref is not None:
            found.append((el, ref))
    return found
