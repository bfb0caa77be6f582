# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import adscout  # noqa: F401
except ImportError:
    raise ImportError("adscout is not installed. Run: pip install -e '.[dev]'") from None

import logging

import pytest

from adscout.config import ScannerConfig
from adscout.patterns import PatternRegistry
from tests._fakes import FakeClock, FakeScheduler


@pytest.fixture
def config():
    return ScannerConfig()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def registry(config, clock):
    return PatternRegistry.with_defaults(config, clock=clock)


@pytest.fixture(autouse=True)
def _reset_logging():
    """Undo root-logger changes made by logging_config.configure()."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
