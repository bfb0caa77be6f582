# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for ad URL helpers."""

from __future__ import annotations

from urllib.parse import quote

import pytest

from adscout.urls import (
    clean_url,
    extract_destination_url,
    is_ad_network_url,
    is_hostname_match,
    is_pagead_url,
    remove_tracking_params,
)


class TestHostnameMatch:
    def test_exact_and_subdomain(self):
        assert is_hostname_match("doubleclick.net", "doubleclick.net")
        assert is_hostname_match("AD.DoubleClick.net", "doubleclick.net")

    def test_lookalikes_rejected(self):
        assert not is_hostname_match("evil-doubleclick.net", "doubleclick.net")
        assert not is_hostname_match("doubleclick.net.attacker.com", "doubleclick.net")


class TestAdNetwork:
    @pytest.mark.parametrize(
        "url",
        [
            "https://www.googleadservices.com/pagead/aclk?adurl=https://brand.com",
            "https://ad.doubleclick.net/ddm/clk/1",
            "https://tpc.googlesyndication.com/simgad/1",
        ],
    )
    def test_ad_network_urls(self, url):
        assert is_ad_network_url(url)

    @pytest.mark.parametrize("url", ["https://brand.com", "not a url", "https://doubleclick.net.evil.io/x"])
    def test_other_urls(self, url):
        assert not is_ad_network_url(url)

    def test_pagead(self):
        assert is_pagead_url("https://www.youtube.com/pagead/paralleladview?ad=1")
        assert not is_pagead_url("https://www.youtube.com/watch?v=1")
        assert not is_pagead_url("https://youtube.com.evil.io/pagead/x")


class TestDestination:
    def test_param_priority(self):
        url = "https://www.googleadservices.com/pagead/aclk?q=https://c.com&url=https://b.com&adurl=https://a.com"
        assert extract_destination_url(url) == "https://a.com"

    def test_url_param(self):
        assert extract_destination_url("https://x.doubleclick.net/r?url=https%3A%2F%2Fb.com%2Fp") == "https://b.com/p"

    def test_none(self):
        assert extract_destination_url("https://ad.doubleclick.net/ddm/clk/1") is None


class TestTracking:
    def test_removes_tracking(self):
        cleaned = remove_tracking_params("https://brand.com/p?utm_source=yt&id=7&gclid=abc&fbclid=z&_ga=1&mc_cid=2")
        assert cleaned == "https://brand.com/p?id=7"

    def test_untouched_without_tracking(self):
        url = "https://brand.com/p?b=2&a=1"
        assert remove_tracking_params(url) == url

    def test_untouched_without_query(self):
        assert remove_tracking_params("https://sketchy-deals.xyz") == "https://sketchy-deals.xyz"


class TestCleanUrl:
    def test_plain_destination_unchanged(self):
        assert clean_url("https://sketchy-deals.xyz") == "https://sketchy-deals.xyz"

    def test_redirect_resolved_and_cleaned(self):
        url = "https://www.googleadservices.com/pagead/aclk?adurl=https%3A%2F%2Fbrand.com%2F%3Futm_source%3Dyt%26p%3D1"
        assert clean_url(url) == "https://brand.com/?p=1"

    def test_nested_redirects(self):
        inner = "https://ad.doubleclick.net/r?adurl=https%3A%2F%2Fbrand.com%2F"
        outer = "https://www.googleadservices.com/aclk?adurl=" + quote(inner, safe="")
        assert clean_url(outer) == "https://brand.com/"

    def test_redirect_without_destination_dropped(self):
        assert clean_url("https://ad.doubleclick.net/ddm/clk/1") is None

    def test_bare_host_gets_scheme(self):
        assert clean_url("brand.com") == "https://brand.com"

    def test_empty(self):
        assert clean_url("  ") is None
