# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Report records and delivery to the logging collaborator.

``ReportDispatcher`` turns candidates into one ``ReportRecord`` per advertiser
reference, drops pairs already reported this session, and hands survivors to a
``ReportSink``.  Delivery is fire-and-forget: a sink may return an awaitable,
which is scheduled on the running loop; sink failures are logged and dropped.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import asdict, dataclass
from typing import Protocol

from . import AdType, Candidate
from .dedup import Deduplicator
from .dom import Document
from .player import UNKNOWN_CONTEXT
from .references import AdReference, extract_references, player_text_reference
from .urls import clean_url

logger = logging.getLogger(__name__)

SOURCE_REQUEST = "request-extracted"
NETWORK_CONFIDENCE = 0.8


@dataclass(frozen=True, slots=True)
class ReportRecord:
    destination_url: str
    ad_type: AdType
    source: str
    confidence: float
    evidence: tuple[str, ...]
    timestamp: float
    context_id: str = UNKNOWN_CONTEXT

    def to_dict(self) -> dict:
        data = asdict(self)
        data["ad_type"] = self.ad_type.value
        data["evidence"] = list(self.evidence)
        data["confidence"] = round(self.confidence, 4)
        return data


class ReportSink(Protocol):
    def report(self, record: ReportRecord) -> Awaitable[None] | None: ...


class CollectingSink:
    """Keeps records in memory (CLI output, tests)."""

    def __init__(self) -> None:
        self.records: list[ReportRecord] = []

    def report(self, record: ReportRecord) -> None:
        self.records.append(record)


class LoggingSink:
    """Writes each record as a log line."""

    def __init__(self, name: str = "adscout.reports") -> None:
        self._logger = logging.getLogger(name)

    def report(self, record: ReportRecord) -> None:
        self._logger.info(
            "Ad detected: %s type=%s source=%s confidence=%.2f context=%s",
            record.destination_url,
            record.ad_type.value,
            record.source,
            record.confidence,
            record.context_id,
        )


class ReportDispatcher:
    def __init__(
        self,
        sink: ReportSink,
        dedup: Deduplicator | None = None,
        *,
        threshold: float = 0.6,
        context_id: str | Callable[[], str] = UNKNOWN_CONTEXT,
    ) -> None:
        self._sink = sink
        self._dedup = dedup if dedup is not None else Deduplicator()
        self._threshold = threshold
        self._context_id = context_id
        self._pending: set[asyncio.Future] = set()
        self.sent = 0

    @property
    def dedup(self) -> Deduplicator:
        return self._dedup

    def _context(self) -> str:
        ctx = self._context_id
        return ctx() if callable(ctx) else ctx

    def dispatch(self, candidates: Iterable[Candidate], document: Document) -> list[ReportRecord]:
        """Report every new reference of every candidate at or above the threshold."""
        sent: list[ReportRecord] = []
        for candidate in candidates:
            if candidate.confidence < self._threshold:
                continue
            for ref in self._references(candidate, document):
                record = self._record(
                    ref.url,
                    candidate.type,
                    ref.source,
                    candidate.confidence,
                    tuple(dict.fromkeys((*candidate.evidence, ref.evidence))),
                )
                if record is not None:
                    sent.append(record)
        return sent

    def report_network(self, url: str) -> ReportRecord | None:
        return self._record(url, AdType.NETWORK_AD, SOURCE_REQUEST, NETWORK_CONFIDENCE, ("network:ad-service-url",))

    @staticmethod
    def _references(candidate: Candidate, document: Document) -> list[AdReference]:
        if candidate.type is AdType.VIDEO_AD:
            ref = player_text_reference(candidate.node)
            return [ref] if ref is not None else []
        return extract_references(candidate.node, document)

    def _record(
        self,
        url: str,
        ad_type: AdType,
        source: str,
        confidence: float,
        evidence: tuple[str, ...],
    ) -> ReportRecord | None:
        destination = clean_url(url)
        if destination is None:
            return None
        if not self._dedup.should_report(destination, source):
            return None
        record = ReportRecord(
            destination_url=destination,
            ad_type=ad_type,
            source=source,
            confidence=confidence,
            evidence=evidence,
            timestamp=time.time(),
            context_id=self._context(),
        )
        self._emit(record)
        return record

    def _emit(self, record: ReportRecord) -> None:
        try:
            result = self._sink.report(record)
        except Exception:
            logger.warning("Report sink failed for %s", record.destination_url, exc_info=True)
            return
        self.sent += 1
        if not inspect.isawaitable(result):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            logger.warning("Report for %s dropped, no running loop: %s", record.destination_url, e)
            if inspect.iscoroutine(result):
                result.close()
            return
        future = asyncio.ensure_future(result, loop=loop)
        self._pending.add(future)
        future.add_done_callback(self._on_done)

    def _on_done(self, future: asyncio.Future) -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning("Report sink failed: %s", exc)

    async def drain(self) -> None:
        """Wait for in-flight sink calls (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
