"""
Shared pytest setup for unit tests.

Settings are injected, so nothing here touches AWS: an in-memory blob store and a
recording notifier stand in for S3 and SES.
"""

import pytest

from config import Settings
from tests.helpers import FakeBlobStore, RecordingNotifier


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="test",
        incoming_bucket="incoming",
        processed_bucket="processed",
        mapping_bucket="mapping",
        retry_max_retries=0,
    )


@pytest.fixture
def store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
