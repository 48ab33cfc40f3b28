from __future__ import annotations

from datetime import UTC, datetime

import pytest

from hubsight.config import HubsightSettings
from hubsight.core.clock import ManualClock
from hubsight.core.sink import RecordingSink


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(datetime(2025, 3, 1, 9, 0, tzinfo=UTC))


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def settings() -> HubsightSettings:
    return HubsightSettings()
