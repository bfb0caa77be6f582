# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for evidence scoring and ad-type inference."""

from __future__ import annotations

import pytest

from adscout import AdType
from adscout.config import ScoringWeights
from adscout.scoring import classify_type, resolve_weight, score_evidence
from tests._fakes import fragment


class TestResolveWeight:
    def test_exact_key(self):
        assert resolve_weight("element:ytp-ad-skip-button") == 0.9

    def test_unknown_token_defaults(self):
        assert resolve_weight("heuristic:multiple-videos") == 0.5

    def test_longest_prefix_wins(self):
        table = {"selector:.a": 0.6, "selector:.a-b": 0.9}
        assert resolve_weight("selector:.a-b-c", table) == 0.9
        assert resolve_weight("selector:.a-x", table) == 0.6

    def test_player_state_pattern_resolves_by_prefix(self):
        assert resolve_weight("selector:.html5-video-player.ad-showing") == 0.95
        assert resolve_weight("selector:.ytp-ad-module") == 0.85

    def test_custom_default(self):
        assert resolve_weight("nothing", {}, 0.25) == 0.25


class TestScoreEvidence:
    def test_empty_is_zero(self):
        assert score_evidence([]) == 0.0

    def test_single_strong_signal(self):
        assert score_evidence(["element:ytp-ad-skip-button"]) == pytest.approx(0.93)

    def test_two_unweighted_signals(self):
        score = score_evidence(["foo:bar", "baz:qux"])
        assert score == pytest.approx(0.5)
        assert score < 0.6

    def test_aria_label_domain_alone(self):
        assert score_evidence(["content:aria-label-domain"]) == pytest.approx(0.7)

    def test_boost_capped(self):
        evidence = ["api:getAdState=1"] * 10
        # base 0.98, boost min(0.1, 0.3) -> clamped to 1
        assert score_evidence(evidence) == 1.0

    def test_weak_signal_dilutes_average(self):
        strong = score_evidence(["element:ytp-ad-skip-button"])
        mixed = score_evidence(["element:ytp-ad-skip-button", 'selector:[id*="ad-"]'])
        assert mixed < strong

    def test_weight_exactly_at_strong_limit_gets_no_boost(self):
        # element:ad-banner is 0.8, strictly-greater rule -> no boost
        assert score_evidence(["element:ad-banner"]) == pytest.approx(0.8)

    def test_custom_blend(self):
        weights = ScoringWeights(max_blend=1.0, avg_blend=0.0, boost_per_strong_signal=0.0)
        assert score_evidence(["element:ytp-ad-skip-button", "foo"], weights) == pytest.approx(0.9)

    def test_invalid_weights_rejected(self):
        with pytest.raises(ValueError):
            ScoringWeights(default_weight=0)
        with pytest.raises(ValueError):
            ScoringWeights(max_blend=-1)


class TestClassifyType:
    def test_ad_state_with_early_position_is_preroll(self):
        el = fragment('<div class="html5-video-player ad-showing"></div>')
        assert classify_type(el, ["player-class:ad-showing"], 2.0) is AdType.PREROLL

    def test_ad_state_with_late_position_is_midroll(self):
        el = fragment('<div class="html5-video-player ad-showing"></div>')
        assert classify_type(el, ["api:getAdState=1"], 120.0) is AdType.MIDROLL

    def test_ad_state_without_position_is_midroll(self):
        el = fragment('<div class="html5-video-player"></div>')
        assert classify_type(el, ["player-class:ad-interrupting"]) is AdType.MIDROLL

    def test_overlay_from_class(self):
        el = fragment('<div class="ytp-ad-overlay-container"></div>')
        assert classify_type(el, ["selector:.ytp-ad-overlay-container"]) is AdType.OVERLAY

    def test_banner_from_tag(self):
        el = fragment("<ytd-banner-promo-renderer></ytd-banner-promo-renderer>")
        assert classify_type(el, []) is AdType.BANNER

    def test_sponsored_from_evidence(self):
        el = fragment("<div></div>")
        assert classify_type(el, ["selector:ytd-promoted-sparkles-web-renderer"]) is AdType.SPONSORED

    def test_display_from_tag(self):
        el = fragment("<ytd-display-ad-renderer></ytd-display-ad-renderer>")
        assert classify_type(el, []) is AdType.DISPLAY_AD

    def test_network(self):
        el = fragment("<div></div>")
        assert classify_type(el, ["network:ad-service-url"]) is AdType.NETWORK_AD

    def test_default_display_ad(self):
        el = fragment('<div aria-label="sketchy-deals.xyz"></div>')
        assert classify_type(el, ["content:aria-label-domain"]) is AdType.DISPLAY_AD

    def test_first_rule_wins(self):
        el = fragment('<div class="ad-overlay banner"></div>')
        assert classify_type(el, []) is AdType.OVERLAY
