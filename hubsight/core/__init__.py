"""Core primitives shared by the validator, tracker and monitor."""

from hubsight.core.bounded_log import BoundedLog
from hubsight.core.clock import ManualClock, SystemClock
from hubsight.core.sink import LoggingSink, RecordingSink, safe_emit

__all__ = [
    "BoundedLog",
    "LoggingSink",
    "ManualClock",
    "RecordingSink",
    "SystemClock",
    "safe_emit",
]
