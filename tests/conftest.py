"""Shared test fixtures."""

import pytest
from loguru import logger

from fanout_crawl.utils import RecordingObserver


@pytest.fixture
def recorder():
    """Observer that keeps every diagnostic for assertions."""
    return RecordingObserver()


@pytest.fixture
def log_messages():
    """Capture loguru output as plain strings."""
    messages = []
    sink_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(sink_id)
