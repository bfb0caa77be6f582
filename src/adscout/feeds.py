# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Change and visibility notification sources.

The watcher only depends on the two protocols.  ``MutationFeed`` and
``VisibilityFeed`` are the in-process implementations: a host that keeps an
lxml tree in sync with a rendered page applies its updates through the feed,
which mutates the tree and notifies subscribers in delivery order.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

from .dom import Node, contains
from .errors import SubscriptionUnavailableError

logger = logging.getLogger(__name__)

InsertedCallback = Callable[[list[Node]], None]
AttributeCallback = Callable[[Node, str], None]
VisibilityCallback = Callable[[Node, bool], None]


class ChangeSource(Protocol):
    def subscribe(
        self,
        root: Node,
        *,
        on_inserted: InsertedCallback,
        on_attribute_changed: AttributeCallback,
        attribute_filter: Iterable[str],
    ) -> object: ...

    def unsubscribe(self, handle: object) -> None: ...


class VisibilitySource(Protocol):
    def observe(self, node: Node, callback: VisibilityCallback) -> None: ...

    def unobserve(self, node: Node) -> None: ...


# ---------------------------------------------------------------------------
# MutationFeed
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _Subscription:
    handle: int
    root: Node
    on_inserted: InsertedCallback
    on_attribute_changed: AttributeCallback
    attribute_filter: frozenset[str]


class MutationFeed:
    """Applies structural changes to an lxml tree and notifies subscribers.

    Only changes inside a subscriber's root are delivered; attribute changes
    are further limited to that subscriber's attribute filter.
    """

    def __init__(self, *, available: bool = True) -> None:
        self._available = available
        self._subs: dict[int, _Subscription] = {}
        self._handles = itertools.count(1)

    def subscribe(
        self,
        root: Node,
        *,
        on_inserted: InsertedCallback,
        on_attribute_changed: AttributeCallback,
        attribute_filter: Iterable[str],
    ) -> int:
        if not self._available:
            raise SubscriptionUnavailableError("change notifications are not available")
        handle = next(self._handles)
        self._subs[handle] = _Subscription(
            handle=handle,
            root=root,
            on_inserted=on_inserted,
            on_attribute_changed=on_attribute_changed,
            attribute_filter=frozenset(attribute_filter),
        )
        return handle

    def unsubscribe(self, handle: object) -> None:
        self._subs.pop(handle, None)  # type: ignore[arg-type]

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)

    # -- mutations --

    def append(self, parent: Node, *children: Node) -> None:
        """Append *children* to *parent* and report them as inserted."""
        for child in children:
            parent.append(child)
        self.notify_inserted(list(children))

    def set_attribute(self, node: Node, name: str, value: str | None) -> None:
        """Set (or remove, when *value* is None) an attribute and report it."""
        if value is None:
            node.attrib.pop(name, None)
        else:
            node.set(name, value)
        self.notify_attribute(node, name)

    def notify_inserted(self, nodes: list[Node]) -> None:
        for sub in list(self._subs.values()):
            inside = [n for n in nodes if contains(sub.root, n)]
            if inside:
                sub.on_inserted(inside)

    def notify_attribute(self, node: Node, name: str) -> None:
        for sub in list(self._subs.values()):
            if name in sub.attribute_filter and contains(sub.root, node):
                sub.on_attribute_changed(node, name)


# ---------------------------------------------------------------------------
# VisibilityFeed
# ---------------------------------------------------------------------------


class VisibilityFeed:
    """Per-node visibility notifications driven by the host's layout data."""

    def __init__(self, *, available: bool = True) -> None:
        self._available = available
        self._observers: dict[int, tuple[Node, VisibilityCallback]] = {}

    def observe(self, node: Node, callback: VisibilityCallback) -> None:
        if not self._available:
            raise SubscriptionUnavailableError("visibility notifications are not available")
        self._observers[id(node)] = (node, callback)

    def unobserve(self, node: Node) -> None:
        entry = self._observers.get(id(node))
        if entry is not None and entry[0] is node:
            del self._observers[id(node)]

    def is_observed(self, node: Node) -> bool:
        entry = self._observers.get(id(node))
        return entry is not None and entry[0] is node

    @property
    def observed_count(self) -> int:
        return len(self._observers)

    def set_visible(self, node: Node, visible: bool) -> None:
        entry = self._observers.get(id(node))
        if entry is None or entry[0] is not node:
            logger.debug("Visibility change for unobserved node <%s>", node.tag)
            return
        entry[1](node, visible)
