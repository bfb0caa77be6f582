# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""adscout exception hierarchy.

All adscout-specific errors inherit from AdScoutError.  None of them is fatal:
each one is recovered inside the engine and only shows up as lower recall and
in the pattern health counters.
"""

from __future__ import annotations


class AdScoutError(Exception):
    """Base exception for all adscout errors."""


class PatternSyntaxError(AdScoutError):
    """A pattern string cannot be compiled into a document query."""

    def __init__(self, message: str, *, pattern: str = "") -> None:
        super().__init__(message)
        self.pattern = pattern


class MalformedReferenceError(AdScoutError):
    """A candidate URL or attribute value does not parse as a reference."""

    def __init__(self, message: str, *, value: str = "") -> None:
        super().__init__(message)
        self.value = value


class StageExecutionError(AdScoutError):
    """A detection stage failed part-way through a pipeline run."""

    def __init__(self, message: str, *, stage: str = "") -> None:
        super().__init__(message)
        self.stage = stage


class SubscriptionUnavailableError(AdScoutError):
    """The host cannot provide change or visibility notifications."""
