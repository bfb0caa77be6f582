# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for ReportDispatcher, report records and sinks."""

from __future__ import annotations

import asyncio
import logging

import pytest

from adscout import AdType, Candidate
from adscout.dedup import Deduplicator
from adscout.reporting import (
    NETWORK_CONFIDENCE,
    SOURCE_REQUEST,
    CollectingSink,
    LoggingSink,
    ReportDispatcher,
    ReportRecord,
)
from tests._fakes import PLAYER_AD_SHOWING, SKETCHY_AD, make_document, node


def _candidate(el, confidence=0.7, ad_type=AdType.DISPLAY_AD, evidence=("content:aria-label-domain",)):
    return Candidate(node=el, type=ad_type, confidence=confidence, evidence=evidence, timestamp=0.0)


class TestReportRecord:
    def test_to_dict(self):
        record = ReportRecord(
            destination_url="https://brand.com",
            ad_type=AdType.SPONSORED,
            source="link-href",
            confidence=0.876543,
            evidence=("a:1", "b:2"),
            timestamp=123.0,
            context_id="abc123",
        )
        assert record.to_dict() == {
            "destination_url": "https://brand.com",
            "ad_type": "sponsored",
            "source": "link-href",
            "confidence": 0.8765,
            "evidence": ["a:1", "b:2"],
            "timestamp": 123.0,
            "context_id": "abc123",
        }


class TestDispatch:
    def test_sketchy_deals_reported_once(self):
        doc = make_document(SKETCHY_AD)
        sink = CollectingSink()
        dispatcher = ReportDispatcher(sink, context_id="abc123")
        candidate = _candidate(node(doc, "#promo"))

        (record,) = dispatcher.dispatch([candidate], doc)
        assert record.destination_url == "https://sketchy-deals.xyz"
        assert record.source == "aria-label"
        assert record.ad_type is AdType.DISPLAY_AD
        assert record.confidence == 0.7
        assert record.evidence == ("content:aria-label-domain",)
        assert record.context_id == "abc123"

        assert dispatcher.dispatch([candidate], doc) == []
        assert sink.records == [record]
        assert dispatcher.sent == 1
        assert ("https://sketchy-deals.xyz", "aria-label") in dispatcher.dedup

    def test_unjoinable_link_does_not_block_other_candidates(self):
        doc = make_document('<div id="bad"><a href="http://[broken">Visit</a></div>' + SKETCHY_AD)
        sink = CollectingSink()
        dispatcher = ReportDispatcher(sink)
        sent = dispatcher.dispatch([_candidate(node(doc, "#bad")), _candidate(node(doc, "#promo"))], doc)
        assert [r.destination_url for r in sent] == ["https://sketchy-deals.xyz"]
        assert sink.records == sent

    def test_below_threshold_skipped(self):
        doc = make_document(SKETCHY_AD)
        sink = CollectingSink()
        ReportDispatcher(sink).dispatch([_candidate(node(doc, "#promo"), confidence=0.59)], doc)
        assert sink.records == []

    def test_link_destination_cleaned(self):
        doc = make_document('<div id="card"><a href="https://brand.com/p?utm_source=yt&id=3">Shop</a></div>')
        sink = CollectingSink()
        ReportDispatcher(sink).dispatch([_candidate(node(doc, "#card"), evidence=("x:1",))], doc)
        (record,) = sink.records
        assert record.destination_url == "https://brand.com/p?id=3"
        assert record.source == "link-href"
        assert record.evidence == ("x:1", "content:external-url")

    def test_video_ad_uses_player_text(self):
        doc = make_document(PLAYER_AD_SHOWING)
        sink = CollectingSink()
        candidate = _candidate(node(doc, ".ytp-ad-text"), ad_type=AdType.VIDEO_AD, evidence=("content:video-ad-text",))
        ReportDispatcher(sink).dispatch([candidate], doc)
        (record,) = sink.records
        assert record.destination_url == "https://brand-shop.com"
        assert record.source == "video-player-text"
        assert record.evidence == ("content:video-ad-text",)

    def test_context_callable(self):
        doc = make_document(SKETCHY_AD)
        ids = iter(["first", "second"])
        sink = CollectingSink()
        dispatcher = ReportDispatcher(sink, context_id=lambda: next(ids))
        dispatcher.dispatch([_candidate(node(doc, "#promo"))], doc)
        assert sink.records[0].context_id == "first"

    def test_shared_dedup(self):
        doc = make_document(SKETCHY_AD)
        dedup = Deduplicator()
        dedup.should_report("https://sketchy-deals.xyz", "aria-label")
        sink = CollectingSink()
        ReportDispatcher(sink, dedup).dispatch([_candidate(node(doc, "#promo"))], doc)
        assert sink.records == []


class TestNetworkReports:
    def test_report_network(self):
        sink = CollectingSink()
        dispatcher = ReportDispatcher(sink)
        record = dispatcher.report_network("https://brand.com/?gclid=1&p=2")
        assert record.destination_url == "https://brand.com/?p=2"
        assert record.source == SOURCE_REQUEST
        assert record.ad_type is AdType.NETWORK_AD
        assert record.confidence == NETWORK_CONFIDENCE
        assert dispatcher.report_network("https://brand.com/?gclid=2&p=2") is None

    def test_unusable_destination_dropped(self):
        dispatcher = ReportDispatcher(CollectingSink())
        assert dispatcher.report_network("https://ad.doubleclick.net/ddm/clk/1") is None


class TestSinks:
    def test_failing_sink_is_logged(self, caplog):
        class Broken:
            def report(self, record):
                raise ConnectionError("collector down")

        dispatcher = ReportDispatcher(Broken())
        with caplog.at_level(logging.WARNING, logger="adscout.reporting"):
            record = dispatcher.report_network("https://brand.com/")
        assert record is not None
        assert dispatcher.sent == 0
        assert "Report sink failed for https://brand.com/" in caplog.text

    def test_logging_sink(self, caplog):
        sink = LoggingSink()
        dispatcher = ReportDispatcher(sink, context_id="vid")
        with caplog.at_level(logging.INFO, logger="adscout.reports"):
            dispatcher.report_network("https://brand.com/")
        assert "Ad detected: https://brand.com/ type=network-ad source=request-extracted" in caplog.text

    def test_async_sink_without_loop_is_dropped(self, caplog):
        class AsyncSink:
            async def report(self, record):
                raise AssertionError("never awaited")

        dispatcher = ReportDispatcher(AsyncSink())
        with caplog.at_level(logging.WARNING, logger="adscout.reporting"):
            dispatcher.report_network("https://brand.com/")
        assert "no running loop" in caplog.text


class TestAsyncSinks:
    @pytest.mark.asyncio
    async def test_async_sink_delivered(self):
        delivered = []

        class AsyncSink:
            async def report(self, record):
                await asyncio.sleep(0)
                delivered.append(record.destination_url)

        dispatcher = ReportDispatcher(AsyncSink())
        dispatcher.report_network("https://brand.com/")
        await dispatcher.drain()
        assert delivered == ["https://brand.com/"]
        assert dispatcher.sent == 1

    @pytest.mark.asyncio
    async def test_async_sink_failure_logged(self, caplog):
        class AsyncSink:
            async def report(self, record):
                raise ConnectionError("collector down")

        dispatcher = ReportDispatcher(AsyncSink())
        with caplog.at_level(logging.WARNING, logger="adscout.reporting"):
            dispatcher.report_network("https://brand.com/")
            await dispatcher.drain()
            await asyncio.sleep(0)
        assert "Report sink failed: collector down" in caplog.text
