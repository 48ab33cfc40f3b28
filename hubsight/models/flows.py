"""Pydantic models for study-creation flows and participant journeys."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field


class FlowStatus(StrEnum):
    active = "active"
    completed = "completed"
    abandoned = "abandoned"


class CriticalPath(BaseModel):
    """Reference template used to interpret a raw step sequence."""

    name: str
    steps: list[str] = Field(min_length=1)
    expected_duration_ms: float = Field(gt=0)
    success_threshold: float = Field(gt=0.0, le=1.0)


class FlowStep(BaseModel):
    name: str
    timestamp: datetime
    duration_since_last_step_ms: float
    success: bool = True
    data: dict[str, Any] | None = None
    errors: list[str] = Field(default_factory=list)


class FlowInstance(BaseModel):
    flow_id: str
    kind: str
    owner_id: str
    template_id: str | None = None
    start_time: datetime
    end_time: datetime | None = None
    duration_ms: float | None = None
    steps: list[FlowStep] = Field(default_factory=list)
    blocks_count: int = 0
    completion_rate: float = 0.0
    # First failed step; set once and never cleared.
    drop_off_point: str | None = None
    status: FlowStatus = FlowStatus.active
    efficiency: Literal["high", "low"] | None = None


class DeviceInfo(BaseModel):
    user_agent: str = ""
    viewport_width: int = 0
    viewport_height: int = 0
    is_mobile: bool = False
    browser: str = "Unknown"
    os: str = "Unknown"


class JourneyStep(BaseModel):
    block_type: str
    block_index: int
    start_time: datetime
    end_time: datetime
    duration_ms: float
    interactions: int = 0
    success: bool = True
    data: dict[str, Any] | None = None


SignalKind = Literal["long_time_on_block", "zero_interactions"]


class JourneySignal(BaseModel):
    """Behavioural heuristic raised while recording a block."""

    kind: SignalKind
    block_index: int
    block_type: str
    value: float
    recorded_at: datetime


class JourneyInstance(BaseModel):
    journey_id: str
    participant_id: str
    study_id: str
    start_time: datetime
    end_time: datetime | None = None
    steps: list[JourneyStep] = Field(default_factory=list)
    blocks_completed: int = 0
    total_blocks: int = Field(ge=0)
    completed_block_indices: set[int] = Field(default_factory=set)
    # Keyed by block index; a re-recorded block overwrites its previous time.
    time_spent_per_block: dict[int, float] = Field(default_factory=dict)
    completion_rate: float = 0.0
    drop_off_point: str | None = None
    device: DeviceInfo = Field(default_factory=DeviceInfo)
    signals: list[JourneySignal] = Field(default_factory=list)
    status: FlowStatus = FlowStatus.active


class JourneyInsights(BaseModel):
    total_duration_ms: float = 0.0
    avg_time_per_block_ms: float = 0.0
    fastest_block_ms: float | None = None
    slowest_block_ms: float | None = None
    device_type: Literal["mobile", "desktop"] = "desktop"
    completion_rate: float = 0.0
    interaction_pattern: str = "minimal_engagement"


class FlowMetric(BaseModel):
    """Running aggregate for one flow kind or one study's journeys."""

    count: int = 0
    avg_duration_ms: float = 0.0
    success_rate: float = 0.0

    def observe(self, duration_ms: float | None, success: float) -> None:
        self.count += 1
        if duration_ms is not None:
            self.avg_duration_ms += (duration_ms - self.avg_duration_ms) / self.count
        self.success_rate += (success - self.success_rate) / self.count


class FlowPerformance(BaseModel):
    kind: str
    total_flows: int = 0
    completed_flows: int = 0
    avg_duration_ms: float = 0.0
    success_rate: float = 0.0
    common_drop_off_points: list[str] = Field(default_factory=list)


class CriticalPathPerformance(BaseModel):
    expected_duration_ms: float
    success_threshold: float
    total_flows: int = 0
    actual_success_rate: float = 0.0
    avg_duration_ms: float = 0.0


class DropOffAnalysis(BaseModel):
    total_flows: int = 0
    drop_off_count: int = 0
    drop_off_rate: float = 0.0
    common_drop_off_points: list[str] = Field(default_factory=list)


class DeviceBreakdown(BaseModel):
    mobile_count: int = 0
    desktop_count: int = 0
    mobile_completion_rate: float = 0.0
    desktop_completion_rate: float = 0.0


class StudyCreationInsights(BaseModel):
    avg_creation_time_ms: float = 0.0
    success_rate: float = 0.0


class ParticipantInsights(BaseModel):
    avg_block_time_ms: float = 0.0
    completion_rate: float = 0.0
    devices: DeviceBreakdown = Field(default_factory=DeviceBreakdown)


class FlowAnalytics(BaseModel):
    active_study_flows: int = 0
    active_participant_journeys: int = 0
    flow_metrics: dict[str, FlowMetric] = Field(default_factory=dict)
    drop_off_counts: dict[str, int] = Field(default_factory=dict)
    critical_path_performance: dict[str, CriticalPathPerformance] = Field(default_factory=dict)
    drop_off_analysis: DropOffAnalysis = Field(default_factory=DropOffAnalysis)
    study_creation: StudyCreationInsights = Field(default_factory=StudyCreationInsights)
    participants: ParticipantInsights = Field(default_factory=ParticipantInsights)


__all__ = [
    "CriticalPath",
    "CriticalPathPerformance",
    "DeviceBreakdown",
    "DeviceInfo",
    "DropOffAnalysis",
    "FlowAnalytics",
    "FlowInstance",
    "FlowMetric",
    "FlowPerformance",
    "FlowStatus",
    "FlowStep",
    "JourneyInsights",
    "JourneyInstance",
    "JourneySignal",
    "JourneyStep",
    "ParticipantInsights",
    "SignalKind",
    "StudyCreationInsights",
]
