# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the AdScanner session."""

from __future__ import annotations

import asyncio

import pytest

from adscout import AdType
from adscout.config import ScannerConfig
from adscout.feeds import MutationFeed
from adscout.reporting import CollectingSink
from adscout.scanner import AdScanner
from tests._fakes import SKETCHY_AD, fragment, make_document, node

SLOT_AD = '<ytd-ad-slot-renderer id="slot" data-ad-id="1" aria-label="sketchy-deals.xyz"></ytd-ad-slot-renderer>'


def _scanner(body, scheduler, **kwargs):
    doc = make_document(body)
    sink = CollectingSink()
    scanner = AdScanner(doc, sink, scheduler=scheduler, changes=kwargs.pop("changes", MutationFeed()), **kwargs)
    return doc, sink, scanner


class TestScanning:
    def test_reports_once_per_session(self, scheduler):
        _, sink, scanner = _scanner(SLOT_AD, scheduler)
        scanner.start()
        scheduler.advance(0.1)
        (record,) = sink.records
        assert record.destination_url == "https://sketchy-deals.xyz"
        assert record.source == "aria-label"
        assert record.ad_type is AdType.DISPLAY_AD
        assert record.context_id == "abc123"

        scheduler.advance(5.0)
        assert len(sink.records) == 1
        assert scanner.scans > 1

    def test_inserted_ad_reported(self, scheduler):
        feed = MutationFeed()
        doc, sink, scanner = _scanner("", scheduler, changes=feed)
        scanner.start()
        scheduler.advance(0.1)
        assert sink.records == []

        feed.append(doc.body, fragment(SLOT_AD))
        scheduler.advance(0.1)  # watcher debounce
        scheduler.advance(0.1)  # scan debounce
        assert [r.destination_url for r in sink.records] == ["https://sketchy-deals.xyz"]

    def test_throttled_run_keeps_focus(self, scheduler):
        doc, sink, scanner = _scanner(SKETCHY_AD, scheduler)
        scanner.start()
        scanner.run_scan()
        scanner.add_focus(node(doc, "#promo"), "test")
        assert scanner.run_scan() == []
        assert sink.records == []

        scheduler.advance(0.1)
        (record,) = sink.records
        assert record.destination_url == "https://sketchy-deals.xyz"

    def test_request_scan_ignored_when_stopped(self, scheduler):
        _, _, scanner = _scanner(SLOT_AD, scheduler)
        scanner.request_scan()
        assert scheduler.pending == 0


class TestNetwork:
    def test_request_reported_immediately(self, scheduler):
        _, sink, scanner = _scanner("", scheduler)
        scanner.start()
        url = "https://www.googleadservices.com/pagead/aclk?adurl=https%3A%2F%2Fbrand.com%2F%3Futm_source%3Dyt"
        scanner.on_request_issued(url)
        scanner.on_request_issued(url)
        (record,) = sink.records
        assert record.destination_url == "https://brand.com/"
        assert record.source == "request-extracted"
        assert record.ad_type is AdType.NETWORK_AD

    def test_ordinary_request_ignored(self, scheduler):
        _, sink, scanner = _scanner("", scheduler)
        scanner.on_request_issued("https://cdn.example.com/app.js")
        assert sink.records == []
        assert len(scanner.network) == 0


class TestLifecycle:
    def test_stop_cancels_everything(self, scheduler):
        feed = MutationFeed()
        _, _, scanner = _scanner(SLOT_AD, scheduler, changes=feed)
        scanner.start()
        scanner.start()
        assert scanner.running
        scanner.stop()
        scanner.stop()
        assert not scanner.running
        assert scheduler.pending == 0
        assert feed.subscriber_count == 0

    def test_snapshot(self, scheduler):
        _, _, scanner = _scanner(SLOT_AD, scheduler)
        scanner.start()
        scheduler.advance(0.1)
        snap = scanner.snapshot()
        assert snap["running"] is True
        assert snap["degraded"] is False
        assert snap["scans"] == 1
        assert snap["reports"] == 1
        assert snap["dedup_size"] == 1
        assert snap["patterns"]["active"] == snap["patterns"]["total"]
        assert "detection-pipeline-total" in snap["timings"]

    def test_custom_config_threshold(self, scheduler):
        _, sink, scanner = _scanner(SKETCHY_AD, scheduler, config=ScannerConfig(confidence_threshold=0.75))
        scanner.start()
        scanner.add_focus(scanner.document.query_one("#promo"), "test")
        scheduler.advance(0.1)
        assert sink.records == []


class TestAsyncSession:
    @pytest.mark.asyncio
    async def test_context_manager_on_running_loop(self):
        doc = make_document(SLOT_AD)
        sink = CollectingSink()
        config = ScannerConfig(debounce_ms=10)
        async with AdScanner(doc, sink, config=config, changes=MutationFeed()) as scanner:
            assert scanner.running
            for _ in range(50):
                if sink.records:
                    break
                await asyncio.sleep(0.02)
        assert not scanner.running
        assert [r.destination_url for r in sink.records] == ["https://sketchy-deals.xyz"]
