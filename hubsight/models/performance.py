"""Pydantic models for performance metrics, thresholds and alerts."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from hubsight.models.common import EventModel, Severity


class MetricUnit(StrEnum):
    ms = "ms"
    bytes = "bytes"
    score = "score"
    count = "count"
    percent = "percent"


class AlertType(StrEnum):
    slow_response = "slow_response"
    memory_leak = "memory_leak"
    error_spike = "error_spike"
    degradation = "degradation"


class ThresholdFamily(StrEnum):
    api_response = "api_response"
    component_render = "component_render"
    study_builder_load = "study_builder_load"
    memory_usage = "memory_usage"
    error_rate = "error_rate"
    lcp = "lcp"
    fid = "fid"
    cls = "cls"


class Metric(BaseModel):
    name: str
    # NaN and negative values are accepted as-is; they never breach.
    value: float
    unit: MetricUnit
    timestamp: datetime
    context: dict[str, Any] | None = None


class PerformanceThresholds(BaseModel):
    """Breach bounds per family; field names match ``ThresholdFamily``."""

    api_response: float = 2000.0
    component_render: float = 100.0
    study_builder_load: float = 3000.0
    memory_usage: float = 100 * 1024 * 1024
    error_rate: float = 0.05
    lcp: float = 2500.0
    fid: float = 100.0
    cls: float = 0.1

    def for_family(self, family: ThresholdFamily) -> float:
        return float(getattr(self, family.value))


class Alert(BaseModel):
    type: AlertType
    severity: Severity
    message: str
    threshold: float
    actual_value: float
    timestamp: datetime
    suggestions: list[str] = Field(default_factory=list)
    metric_name: str | None = None


class APICall(EventModel):
    endpoint: str
    method: str = "GET"
    response_time: float
    status_code: int = 200
    payload_size: int = 0
    cached: bool = False
    retries: int = 0
    error: str | None = None
    timestamp: datetime | None = None


class ComponentRender(EventModel):
    component_name: str
    render_time: float
    mount_time: float = 0.0
    update_count: int = 0
    error_count: int = 0
    props: dict[str, Any] | None = None
    last_update: datetime | None = None


class StudyBuilderLoad(EventModel):
    study_id: str
    blocks_count: int = 0
    load_time: float
    save_time: float = 0.0
    validation_time: float = 0.0
    preview_time: float = 0.0
    operation_counts: dict[str, int] = Field(default_factory=dict)
    memory_usage: float = 0.0
    timestamp: datetime | None = None


class FamilyAggregate(BaseModel):
    count: int = 0
    mean: float = 0.0
    breaches: int = 0


class APISummary(BaseModel):
    total_requests: int = 0
    average_response_time_ms: float = 0.0
    error_rate: float = 0.0
    slow_requests: int = 0
    cache_hit_rate: float = 0.0


class ComponentSummary(BaseModel):
    total_components: int = 0
    average_render_time_ms: float = 0.0
    total_errors: int = 0
    slow_components: int = 0


class StudyBuilderSummary(BaseModel):
    total_loads: int = 0
    average_load_time_ms: float = 0.0
    average_memory_usage_mb: float = 0.0
    slow_loads: int = 0


class WebVitalsSummary(BaseModel):
    lcp: float | None = None
    fid: float | None = None
    cls: float | None = None
    thresholds: dict[str, float] = Field(default_factory=dict)


class PerformanceSummary(BaseModel):
    families: dict[str, FamilyAggregate] = Field(default_factory=dict)
    api: APISummary = Field(default_factory=APISummary)
    components: ComponentSummary = Field(default_factory=ComponentSummary)
    study_builder: StudyBuilderSummary = Field(default_factory=StudyBuilderSummary)
    web_vitals: WebVitalsSummary = Field(default_factory=WebVitalsSummary)
    active_alerts: list[Alert] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class SlowAPI(BaseModel):
    endpoint: str
    response_time_ms: float
    frequency: int


class SlowComponent(BaseModel):
    name: str
    render_time_ms: float
    update_count: int


class SlowStudyOperation(BaseModel):
    study_id: str
    blocks_count: int
    load_time_ms: float
    memory_usage_bytes: float


class SlowOperationsAnalysis(BaseModel):
    slow_apis: list[SlowAPI] = Field(default_factory=list)
    slow_components: list[SlowComponent] = Field(default_factory=list)
    slow_study_operations: list[SlowStudyOperation] = Field(default_factory=list)


__all__ = [
    "APICall",
    "APISummary",
    "Alert",
    "AlertType",
    "ComponentRender",
    "ComponentSummary",
    "FamilyAggregate",
    "Metric",
    "MetricUnit",
    "PerformanceSummary",
    "PerformanceThresholds",
    "SlowAPI",
    "SlowComponent",
    "SlowOperationsAnalysis",
    "SlowStudyOperation",
    "StudyBuilderLoad",
    "StudyBuilderSummary",
    "ThresholdFamily",
    "WebVitalsSummary",
]
