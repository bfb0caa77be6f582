# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Scanner configuration.

Immutable dataclasses validated on construction.  Durations are stored in
milliseconds (the unit hosts think in) and exposed in seconds for the
scheduler.  ``ScannerConfig.from_env()`` applies ``ADSCOUT_*`` overrides.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field

# Attribute changes that can turn an element into (or out of) an ad candidate
DEFAULT_ATTRIBUTE_FILTER: tuple[str, ...] = ("aria-label", "href", "data-url", "data-ad-id", "src", "class")


@dataclass(frozen=True, slots=True)
class ScoringWeights:
    """Constants of the confidence blend.

    The 0.7/0.3 max/average blend and the strong-signal boost are empirical and
    still need calibration against labelled data; keep them here, not inline.
    """

    max_blend: float = 0.7
    avg_blend: float = 0.3
    strong_signal_weight: float = 0.8  # weight strictly above this counts as strong
    boost_per_strong_signal: float = 0.03
    boost_cap: float = 0.1
    default_weight: float = 0.5  # unmatched tokens

    def __post_init__(self) -> None:
        if self.max_blend < 0 or self.avg_blend < 0:
            raise ValueError(f"blend factors must be >= 0, got {self.max_blend}/{self.avg_blend}")
        if not 0 < self.default_weight <= 1:
            raise ValueError(f"default_weight must be in (0, 1], got {self.default_weight}")
        if self.boost_cap < 0 or self.boost_per_strong_signal < 0:
            raise ValueError("boost settings must be >= 0")


@dataclass(frozen=True, slots=True)
class ScannerConfig:
    """Immutable configuration shared by the registry, classifier, watcher and pipeline."""

    max_failures: int = 5
    min_success_rate: float = 0.3
    confidence_threshold: float = 0.6
    debounce_ms: int = 100
    scan_interval_ms: int = 2000
    classification_cache_ms: int = 2000
    visible_only: bool = False
    pipeline_min_interval_ms: int = 100
    player_poll_ms: int = 1000
    attribute_filter: tuple[str, ...] = DEFAULT_ATTRIBUTE_FILTER
    scoring: ScoringWeights = field(default_factory=ScoringWeights)

    def __post_init__(self) -> None:
        if self.max_failures <= 0:
            raise ValueError(f"max_failures must be > 0, got {self.max_failures}")
        if not 0 <= self.min_success_rate <= 1:
            raise ValueError(f"min_success_rate must be in [0, 1], got {self.min_success_rate}")
        if not 0 <= self.confidence_threshold <= 1:
            raise ValueError(f"confidence_threshold must be in [0, 1], got {self.confidence_threshold}")
        if self.debounce_ms < 0:
            raise ValueError(f"debounce_ms must be >= 0, got {self.debounce_ms}")
        if self.scan_interval_ms <= 0:
            raise ValueError(f"scan_interval_ms must be > 0, got {self.scan_interval_ms}")
        if self.classification_cache_ms < 0:
            raise ValueError(f"classification_cache_ms must be >= 0, got {self.classification_cache_ms}")
        if self.pipeline_min_interval_ms < 0:
            raise ValueError(f"pipeline_min_interval_ms must be >= 0, got {self.pipeline_min_interval_ms}")
        if self.player_poll_ms <= 0:
            raise ValueError(f"player_poll_ms must be > 0, got {self.player_poll_ms}")

    # -- seconds views for the scheduler --

    @property
    def debounce_s(self) -> float:
        return self.debounce_ms / 1000

    @property
    def scan_interval_s(self) -> float:
        return self.scan_interval_ms / 1000

    @property
    def classification_cache_s(self) -> float:
        return self.classification_cache_ms / 1000

    @property
    def pipeline_min_interval_s(self) -> float:
        return self.pipeline_min_interval_ms / 1000

    @property
    def player_poll_s(self) -> float:
        return self.player_poll_ms / 1000

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, **overrides: object) -> ScannerConfig:
        """Build a config from ``ADSCOUT_*`` variables; explicit overrides win."""
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for f in dataclasses.fields(cls):
            if f.name in ("attribute_filter", "scoring"):
                continue
            raw = env.get(f"ADSCOUT_{f.name.upper()}", "").strip()
            if not raw:
                continue
            if f.type in ("bool", bool):
                values[f.name] = raw.lower() in ("1", "true", "yes", "on")
            elif f.type in ("int", int):
                values[f.name] = int(raw)
            else:
                values[f.name] = float(raw)
        attrs = env.get("ADSCOUT_ATTRIBUTE_FILTER", "").strip()
        if attrs:
            values["attribute_filter"] = tuple(a.strip() for a in attrs.split(",") if a.strip())
        values.update(overrides)
        return cls(**values)
