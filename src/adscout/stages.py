# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Default detection stages.

Run order (see ``create_default_pipeline``):

1. PlayerStateStage          player classes + player API ad state
2. PatternMatchStage         every active catalog pattern over the document
3. VisualAnalysisStage       ad UI indicators (skip button, badge, countdown, ...)
4. HeuristicValidationStage  page-level hints (extra videos, ad URL params, z-index)
5. NetworkEvidenceStage      destinations seen by the network observer
6. ContentExtractionStage    advertiser references on focus and candidate nodes

Stages feed evidence for a node through the shared ``Classifier`` so that a
later stage corroborates, rather than duplicates, an earlier record.
"""

from __future__ import annotations

import logging
import re

from . import AdType
from .catalog import UI_INDICATORS
from .classifier import Classifier
from .config import ScannerConfig
from .dom import Node, class_list, contains
from .errors import PatternSyntaxError
from .network import NetworkObserver
from .patterns import PatternRegistry
from .pipeline import DetectionPipeline, RunContext
from .player import PlayerProbe
from .references import extract_player_references, extract_references

logger = logging.getLogger(__name__)

# Indicators too generic to stand as a candidate on their own
_CORROBORATING_ONLY = frozenset({"ad-badge"})

_Z_INDEX_RE = re.compile(r"z-index\s*:\s*(-?\d+)", re.IGNORECASE)
_HIGH_Z_INDEX = 1000


def _offer(ctx: RunContext, classifier: Classifier, node: Node, evidence: list[str], **kwargs) -> None:
    """Classify *node* and keep the result if it replaces a record or clears the threshold."""
    candidate = classifier.classify(node, evidence, **kwargs)
    if ctx.candidate_for(node) is not None:
        ctx.supersede(candidate)
    elif candidate.confidence >= classifier.confidence_threshold():
        ctx.add_candidate(candidate)


def _enclosing_candidate(ctx: RunContext, node: Node) -> Node | None:
    for candidate in ctx.candidates:
        if contains(candidate.node, node):
            return candidate.node
    return None


class PlayerStateStage:
    name = "player-state"

    def __init__(self, probe: PlayerProbe, classifier: Classifier) -> None:
        self._probe = probe
        self._classifier = classifier

    def execute(self, ctx: RunContext) -> None:
        player = self._probe.find_player()
        if player is None:
            return
        evidence = self._probe.ad_evidence()
        if not evidence:
            return
        ctx.add_evidence(*evidence)
        _offer(ctx, self._classifier, player, evidence)


def element_evidence(node: Node) -> list[str]:
    """Attribute and class hints carried by a matched element."""
    evidence: list[str] = []
    if node.get("data-ad-id"):
        evidence.append("attribute:data-ad-id")
    if node.get("data-google-query-id"):
        evidence.append("attribute:data-google-query-id")
    classes = " ".join(class_list(node))
    if "ad-" in classes:
        evidence.append("class:contains-ad")
    if "sponsored" in classes:
        evidence.append("class:sponsored")
    if "promoted" in classes:
        evidence.append("class:promoted")
    return evidence


class PatternMatchStage:
    name = "pattern-match"

    def __init__(self, registry: PatternRegistry, classifier: Classifier) -> None:
        self._registry = registry
        self._classifier = classifier

    def execute(self, ctx: RunContext) -> None:
        for pattern in self._registry.get_active_patterns():
            query = self._registry.select(ctx.document, pattern)
            if not query.ok:
                continue
            token = f"selector:{pattern}"
            for node in query.nodes:
                ctx.add_evidence(token)
                _offer(ctx, self._classifier, node, [token, *element_evidence(node)])


class VisualAnalysisStage:
    """Ad UI indicators.

    Indicators inside the player corroborate the player itself; the rest are
    standalone containers, or corroborate an enclosing candidate.
    """

    name = "visual-analysis"

    def __init__(self, probe: PlayerProbe, classifier: Classifier) -> None:
        self._probe = probe
        self._classifier = classifier

    def execute(self, ctx: RunContext) -> None:
        player = self._probe.find_player()
        player_tokens: list[str] = []

        for indicator, (patterns, token) in UI_INDICATORS.items():
            for node in self._find(ctx, patterns):
                ctx.add_evidence(token)
                if player is not None and contains(player, node):
                    player_tokens.append(token)
                    continue
                owner = _enclosing_candidate(ctx, node)
                if owner is not None:
                    _offer(ctx, self._classifier, owner, [token])
                elif indicator not in _CORROBORATING_ONLY:
                    _offer(ctx, self._classifier, node, [token])

        if player is not None and player_tokens:
            _offer(ctx, self._classifier, player, list(dict.fromkeys(player_tokens)))

    @staticmethod
    def _find(ctx: RunContext, patterns: tuple[str, ...]) -> list[Node]:
        found: dict[int, Node] = {}
        for pattern in patterns:
            try:
                for node in ctx.document.query_all(pattern):
                    found.setdefault(id(node), node)
            except PatternSyntaxError as e:
                logger.debug("UI indicator pattern skipped: %s", e)
        return list(found.values())


class HeuristicValidationStage:
    name = "heuristic-validation"

    def __init__(self, classifier: Classifier) -> None:
        self._classifier = classifier

    def execute(self, ctx: RunContext) -> None:
        document = ctx.document
        videos = list(document.root.iter("video"))
        if len(videos) > 1:
            ctx.add_evidence("heuristic:multiple-videos")
        if videos:
            src = videos[0].get("src") or ""
            if "googlevideo.com/videoplayback" in src and ("source=youtube_ad" in src or "oad=" in src):
                ctx.add_evidence("heuristic:ad-video-source")

        if "&ad_" in document.url or "?ad_" in document.url:
            ctx.add_evidence("heuristic:ad-url-params")

        for node in document.query_all('[style*="z-index"]'):
            m = _Z_INDEX_RE.search(node.get("style", ""))
            if m is None or int(m.group(1)) <= _HIGH_Z_INDEX:
                continue
            if "ad" not in " ".join(class_list(node)):
                continue
            ctx.add_evidence("heuristic:high-z-index-ad")
            owner = _enclosing_candidate(ctx, node)
            if owner is not None:
                _offer(ctx, self._classifier, owner, ["heuristic:high-z-index-ad"])


class NetworkEvidenceStage:
    """Turns destinations requested since the previous run into evidence.

    While an ad is playing the tokens also corroborate the player record.
    """

    name = "network-evidence"

    def __init__(self, observer: NetworkObserver, probe: PlayerProbe, classifier: Classifier) -> None:
        self._observer = observer
        self._probe = probe
        self._classifier = classifier

    def execute(self, ctx: RunContext) -> None:
        urls = self._observer.take_fresh()
        if not urls:
            return
        ctx.add_evidence(*["network:ad-service-url"] * len(urls))
        player = self._probe.find_player()
        if player is not None and ctx.candidate_for(player) is not None:
            _offer(ctx, self._classifier, player, ["network:ad-service-url"])


class ContentExtractionStage:
    name = "content-extraction"

    def __init__(self, probe: PlayerProbe, classifier: Classifier) -> None:
        self._probe = probe
        self._classifier = classifier

    def execute(self, ctx: RunContext) -> None:
        targets: dict[int, Node] = {}
        for candidate in ctx.candidates:
            targets.setdefault(id(candidate.node), candidate.node)
        for node, _reason in ctx.focus:
            targets.setdefault(id(node), node)

        for node in targets.values():
            refs = extract_references(node, ctx.document)
            if not refs:
                continue
            tokens = [ref.evidence for ref in refs]
            ctx.add_evidence(*tokens)
            _offer(ctx, self._classifier, node, tokens)

        player = self._probe.find_player()
        if player is None:
            return
        for element, ref in extract_player_references(player, ctx.document):
            ctx.add_evidence(ref.evidence)
            _offer(ctx, self._classifier, element, [ref.evidence], ad_type=AdType.VIDEO_AD)


def create_default_pipeline(
    registry: PatternRegistry,
    classifier: Classifier,
    probe: PlayerProbe,
    network: NetworkObserver | None = None,
    *,
    config: ScannerConfig | None = None,
    **kwargs,
) -> DetectionPipeline:
    config = config or ScannerConfig()
    stages = [
        PlayerStateStage(probe, classifier),
        PatternMatchStage(registry, classifier),
        VisualAnalysisStage(probe, classifier),
        HeuristicValidationStage(classifier),
    ]
    if network is not None:
        stages.append(NetworkEvidenceStage(network, probe, classifier))
    stages.append(ContentExtractionStage(probe, classifier))
    return DetectionPipeline(stages, min_interval_s=config.pipeline_min_interval_s, **kwargs)
