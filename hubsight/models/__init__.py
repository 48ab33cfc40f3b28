from __future__ import annotations

from hubsight.models.common import EventModel, Severity
from hubsight.models.flows import (
    CriticalPath,
    DeviceInfo,
    FlowAnalytics,
    FlowInstance,
    FlowPerformance,
    FlowStatus,
    FlowStep,
    JourneyInsights,
    JourneyInstance,
    JourneySignal,
    JourneyStep,
)
from hubsight.models.performance import (
    Alert,
    AlertType,
    APICall,
    ComponentRender,
    Metric,
    MetricUnit,
    PerformanceSummary,
    PerformanceThresholds,
    SlowOperationsAnalysis,
    StudyBuilderLoad,
    ThresholdFamily,
)
from hubsight.models.validation import (
    DataSnapshot,
    ExpectedPricing,
    PointsTransaction,
    PricingRecord,
    RoleAction,
    RuleCategory,
    StudyType,
    TransactionType,
    UserRole,
    ValidationHistoryEntry,
    ValidationOutcome,
    ValidationPayload,
    ValidationStats,
)

__all__ = [
    "APICall",
    "Alert",
    "AlertType",
    "ComponentRender",
    "CriticalPath",
    "DataSnapshot",
    "DeviceInfo",
    "EventModel",
    "ExpectedPricing",
    "FlowAnalytics",
    "FlowInstance",
    "FlowPerformance",
    "FlowStatus",
    "FlowStep",
    "JourneyInsights",
    "JourneyInstance",
    "JourneySignal",
    "JourneyStep",
    "Metric",
    "MetricUnit",
    "PerformanceSummary",
    "PerformanceThresholds",
    "PointsTransaction",
    "PricingRecord",
    "RoleAction",
    "RuleCategory",
    "Severity",
    "SlowOperationsAnalysis",
    "StudyBuilderLoad",
    "StudyType",
    "ThresholdFamily",
    "TransactionType",
    "UserRole",
    "ValidationHistoryEntry",
    "ValidationOutcome",
    "ValidationPayload",
    "ValidationStats",
]
