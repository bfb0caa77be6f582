# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Document accessor over an lxml HTML tree.

Patterns are CSS selectors compiled to XPath with cssselect and cached.
Two compiled forms exist per pattern: a ``self::`` form to test one node and a
descendant form to query a subtree.  Malformed patterns raise
``PatternSyntaxError``, at compile time or on evaluation (an undeclared
namespace prefix, say); callers decide how to count the failure.

``NodeIndex`` is the side table that gives each observed node a stable integer
key, so caches can be keyed without relying on lxml proxy identity.
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Iterator
from dataclasses import dataclass
from urllib.parse import urljoin

import lxml.html
from cssselect import HTMLTranslator, SelectorError
from lxml import etree

from .errors import MalformedReferenceError, PatternSyntaxError

logger = logging.getLogger(__name__)

Node = lxml.html.HtmlElement

_TRANSLATOR = HTMLTranslator()

# Compiled-pattern forms
_SELF = "self::"
_SUBTREE = "descendant-or-self::"
_DESCENDANTS = "descendant::"


@functools.lru_cache(maxsize=1024)
def _compile(pattern: str, prefix: str) -> etree.XPath:
    try:
        expr = _TRANSLATOR.css_to_xpath(pattern, prefix=prefix)
        return etree.XPath(expr)
    except (SelectorError, etree.XPathSyntaxError) as e:
        raise PatternSyntaxError(f"invalid pattern {pattern!r}: {e}", pattern=pattern) from e


def compile_pattern(pattern: str) -> None:
    """Validate *pattern* eagerly.  Raises PatternSyntaxError."""
    _compile(pattern, _SUBTREE)


def _evaluate(xpath: etree.XPath, pattern: str, node: Node) -> list:
    try:
        return xpath(node)
    except etree.XPathError as e:
        raise PatternSyntaxError(f"pattern {pattern!r} failed to evaluate: {e}", pattern=pattern) from e


def matches(node: Node, pattern: str) -> bool:
    """True if *node* itself matches *pattern*.  Raises PatternSyntaxError."""
    return bool(_evaluate(_compile(pattern, _SELF), pattern, node))


# ---------------------------------------------------------------------------
# Element helpers
# ---------------------------------------------------------------------------


def is_element(node: object) -> bool:
    """True for real elements (not comments, PIs or entities)."""
    return isinstance(getattr(node, "tag", None), str)


def tag_name(node: Node) -> str:
    tag = node.tag if isinstance(node.tag, str) else ""
    return tag.lower()


def class_list(node: Node) -> list[str]:
    return (node.get("class") or "").split()


def has_class(node: Node, name: str) -> bool:
    return name in class_list(node)


def text_fragments(node: Node) -> Iterator[str]:
    """Yield the stripped, non-empty text nodes under *node* in document order."""
    for chunk in node.itertext():
        text = chunk.strip()
        if text:
            yield text


def contains(ancestor: Node, node: Node) -> bool:
    """True if *node* is *ancestor* or lies inside it."""
    current: Node | None = node
    while current is not None:
        if current is ancestor:
            return True
        current = current.getparent()
    return False


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class Document:
    """A scannable document: an lxml root plus the page URL it was loaded from."""

    def __init__(self, root: Node, *, url: str = "") -> None:
        self.root = root
        self.url = url

    @classmethod
    def from_html(cls, html: str | bytes, *, url: str = "") -> Document:
        root = lxml.html.document_fromstring(html)
        return cls(root, url=url)

    @property
    def body(self) -> Node:
        body = self.root.find("body")
        return body if body is not None else self.root

    def query_all(self, pattern: str, scope: Node | None = None, *, include_self: bool = True) -> list[Node]:
        """All elements under *scope* (default: the root) matching *pattern*.

        With ``include_self=False`` only descendants are returned, like a
        browser's ``querySelectorAll`` on an element.
        """
        xpath = _compile(pattern, _SUBTREE if include_self else _DESCENDANTS)
        base = self.root if scope is None else scope
        return [n for n in _evaluate(xpath, pattern, base) if is_element(n)]

    def query_one(self, pattern: str, scope: Node | None = None) -> Node | None:
        found = self.query_all(pattern, scope)
        return found[0] if found else None

    def matches(self, node: Node, pattern: str) -> bool:
        return matches(node, pattern)

    def resolve(self, href: str) -> str:
        """Absolute URL for *href* relative to the document URL.

        Raises MalformedReferenceError when *href* cannot be joined.
        """
        href = href.strip()
        if not self.url:
            return href
        try:
            return urljoin(self.url, href)
        except ValueError as e:
            raise MalformedReferenceError(f"cannot resolve {href!r}: {e}", value=href) from e

    def is_attached(self, node: Node) -> bool:
        return contains(self.root, node)

    def playback_position(self, scope: Node | None = None) -> float | None:
        """Current time of the first ``<video>`` under *scope*, if the host mirrors it.

        Hosts mirror ``HTMLMediaElement.currentTime`` into ``data-current-time``.
        """
        base = self.root if scope is None else scope
        for video in base.iter("video"):
            raw = video.get("data-current-time")
            if raw is None:
                continue
            try:
                return float(raw)
            except ValueError:
                logger.debug("Unparseable data-current-time: %r", raw)
                return None
        return None


# ---------------------------------------------------------------------------
# NodeIndex: stable integer keys for observed nodes
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _Slot:
    node: Node
    key: int
    last_seen: float


class NodeIndex:
    """Side table assigning each observed node a stable key.

    The index holds a strong reference per node, so ``id(node)`` cannot be
    recycled while the slot is alive.  Slots are released explicitly through
    ``release`` or ``sweep``.
    """

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._slots: dict[int, _Slot] = {}
        self._next_key = 1

    def key(self, node: Node) -> int:
        slot = self._slots.get(id(node))
        now = self._clock()
        if slot is None or slot.node is not node:
            slot = _Slot(node=node, key=self._next_key, last_seen=now)
            self._next_key += 1
            self._slots[id(node)] = slot
        else:
            slot.last_seen = now
        return slot.key

    def release(self, node: Node) -> None:
        slot = self._slots.get(id(node))
        if slot is not None and slot.node is node:
            del self._slots[id(node)]

    def sweep(self, max_idle: float) -> list[int]:
        """Drop slots not seen for *max_idle* seconds.  Returns released keys."""
        now = self._clock()
        stale = [ident for ident, slot in self._slots.items() if now - slot.last_seen > max_idle]
        keys = [self._slots.pop(ident).key for ident in stale]
        if keys:
            logger.debug("NodeIndex swept %d idle node(s)", len(keys))
        return keys

    def __len__(self) -> int:
        return len(self._slots)
