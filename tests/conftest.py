"""Shared test fixtures."""

from __future__ import annotations

import logging

import pytest

from vitalsguard.cli.logs import PACKAGE_LOGGER


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Undo CLI logging setup so caplog sees records in later tests."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
