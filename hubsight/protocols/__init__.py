from hubsight.protocols.clock import Clock
from hubsight.protocols.scheduler import TaskScheduler
from hubsight.protocols.sink import TelemetrySink

__all__ = [
    "Clock",
    "TaskScheduler",
    "TelemetrySink",
]
