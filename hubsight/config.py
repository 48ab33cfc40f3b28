from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from hubsight.models.flows import CriticalPath
from hubsight.models.performance import PerformanceThresholds
from hubsight.models.validation import StudyType, UserRole


class ParticipantEarning(BaseModel):
    base_reward: float = Field(ge=0)
    per_block: float = Field(ge=0)
    max_reward: float = Field(ge=0)


class ResearcherSpending(BaseModel):
    base_cost: float = Field(ge=0)
    per_block: float = Field(ge=0)
    platform_fee: float = Field(ge=0, le=1)
    """Fee rate applied to the base cost."""


class PointsLimits(BaseModel):
    max_daily_earning: float = 1000
    max_daily_spending: float = 5000
    min_transaction_amount: float = 1


def _default_earning() -> dict[StudyType, ParticipantEarning]:
    return {
        StudyType.unmoderated: ParticipantEarning(base_reward=50, per_block=10, max_reward=200),
        StudyType.moderated: ParticipantEarning(base_reward=100, per_block=20, max_reward=500),
    }


def _default_spending() -> dict[StudyType, ResearcherSpending]:
    return {
        StudyType.unmoderated: ResearcherSpending(base_cost=80, per_block=15, platform_fee=0.15),
        StudyType.moderated: ResearcherSpending(base_cost=150, per_block=30, platform_fee=0.20),
    }


class PricingSchedule(BaseModel):
    participant_earning: dict[StudyType, ParticipantEarning] = Field(
        default_factory=_default_earning
    )
    researcher_spending: dict[StudyType, ResearcherSpending] = Field(
        default_factory=_default_spending
    )
    limits: PointsLimits = Field(default_factory=PointsLimits)
    tolerance: float = Field(default=0.01, ge=0)

    @model_validator(mode="after")
    def _validate_every_study_type_priced(self) -> PricingSchedule:
        for study_type in StudyType:
            if study_type not in self.participant_earning:
                raise ValueError(f"participant_earning is missing study type '{study_type}'")
            if study_type not in self.researcher_spending:
                raise ValueError(f"researcher_spending is missing study type '{study_type}'")
        return self


DEFAULT_ROLE_PERMISSIONS: dict[UserRole, list[str]] = {
    UserRole.researcher: [
        "create_study",
        "view_results",
        "manage_participants",
        "download_data",
        "view_analytics",
        "manage_templates",
        "view_billing",
        "cancel_study",
    ],
    UserRole.participant: [
        "join_study",
        "submit_responses",
        "view_earnings",
        "view_profile",
        "withdraw_earnings",
        "update_preferences",
    ],
    UserRole.admin: [
        "manage_users",
        "view_all_analytics",
        "moderate_content",
        "system_settings",
        "financial_reports",
        "user_support",
        "platform_configuration",
    ],
}

DEFAULT_CRITICAL_PATHS: tuple[CriticalPath, ...] = (
    CriticalPath(
        name="study_creation",
        steps=["template_selection", "study_setup", "block_configuration", "preview", "launch"],
        expected_duration_ms=300_000,
        success_threshold=0.8,
    ),
    CriticalPath(
        name="participant_onboarding",
        steps=["landing", "consent", "demographics", "instructions", "first_block"],
        expected_duration_ms=120_000,
        success_threshold=0.9,
    ),
    CriticalPath(
        name="study_completion",
        steps=["all_blocks", "thank_you", "rewards"],
        expected_duration_ms=900_000,
        success_threshold=0.7,
    ),
    CriticalPath(
        name="payment_processing",
        steps=["calculation", "validation", "transfer", "confirmation"],
        expected_duration_ms=30_000,
        success_threshold=0.95,
    ),
)


class ValidationConfig(BaseModel):
    history_capacity: int = Field(default=1000, ge=1)
    stats_window: int = Field(default=100, ge=1)
    critical_issue_limit: int = Field(default=10, ge=1)
    high_error_rate: float = Field(default=0.10, ge=0, le=1)
    """Error rate above which stats recommend reviewing the rules."""
    alert_error_rate: float = Field(default=0.05, ge=0, le=1)
    """Error rate above which the periodic analysis emits to the sink."""
    points_failure_limit: int = Field(default=5, ge=0)
    pricing: PricingSchedule = Field(default_factory=PricingSchedule)
    role_permissions: dict[UserRole, list[str]] = Field(
        default_factory=lambda: {
            role: list(actions) for role, actions in DEFAULT_ROLE_PERMISSIONS.items()
        }
    )


class FlowConfig(BaseModel):
    retention_hours: float = Field(default=24, gt=0)
    long_block_ms: float = Field(default=180_000, gt=0)
    passive_block_types: list[str] = Field(default_factory=lambda: ["context_screen"])
    mobile_viewport_width: int = Field(default=768, ge=0)
    default_success_threshold: float = Field(default=0.8, gt=0, le=1)
    journey_success_threshold: float = Field(default=0.7, gt=0, le=1)
    drop_off_top_n: int = Field(default=5, ge=1)
    critical_paths: list[CriticalPath] = Field(
        default_factory=lambda: [path.model_copy(deep=True) for path in DEFAULT_CRITICAL_PATHS]
    )

    @field_validator("critical_paths")
    @classmethod
    def _unique_path_names(cls, value: list[CriticalPath]) -> list[CriticalPath]:
        names = [path.name for path in value]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate critical path names: {', '.join(duplicates)}")
        return value


class PerformanceConfig(BaseModel):
    thresholds: PerformanceThresholds = Field(default_factory=PerformanceThresholds)
    metric_capacity: int = Field(default=100, ge=1)
    alert_capacity: int = Field(default=50, ge=1)
    api_capacity: int = Field(default=500, ge=1)
    study_builder_capacity: int = Field(default=100, ge=1)
    active_alert_window_minutes: float = Field(default=60, gt=0)
    slow_operations_limit: int = Field(default=10, ge=1)


class ScheduleConfig(BaseModel):
    analysis_interval_s: float = Field(default=300, gt=0)
    retention_sweep_interval_s: float = Field(default=3600, gt=0)
    detailed_interval_s: float = Field(default=30, gt=0)
    detailed_monitoring: bool = False


class TelemetryConfig(BaseModel):
    """OpenTelemetry tracing configuration."""

    enabled: bool = False
    endpoint: str | None = None
    env: str = "dev"


class ObservabilityConfig(BaseModel):
    log_level: str = "WARNING"
    json_logs: bool = False
    metrics_enabled: bool = True


class HubsightSettings(BaseSettings):
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    flows: FlowConfig = Field(default_factory=FlowConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = SettingsConfigDict(
        env_prefix="HUBSIGHT_",
        env_nested_delimiter="__",
        extra="ignore",
    )


def _coerce_env_value(value: str) -> object:
    parsed = yaml.safe_load(value)
    return value if parsed is None else parsed


def _set_nested(mapping: dict[str, object], path: list[str], value: object) -> None:
    current = mapping
    for key in path[:-1]:
        existing = current.get(key)
        if not isinstance(existing, dict):
            existing = {}
            current[key] = existing
        current = existing
    current[path[-1]] = value


def _apply_env_overrides(data: dict[str, object]) -> dict[str, object]:
    merged = dict(data)
    prefix = "HUBSIGHT_"
    for key, raw_value in os.environ.items():
        if not key.startswith(prefix):
            continue
        path = key[len(prefix) :].lower().split("__")
        _set_nested(merged, path, _coerce_env_value(raw_value))
    return merged


def load_config(path: str | Path = "config/hubsight.yaml") -> HubsightSettings:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"config file not found: {config_path}")

    loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(loaded, dict):
        raise ValueError("config file must contain a top-level mapping")

    raw = loaded.get("hubsight", loaded)
    if not isinstance(raw, dict):
        raise ValueError("hubsight config section must be a mapping")

    merged = _apply_env_overrides(raw)
    return HubsightSettings.model_validate(merged)


__all__ = [
    "DEFAULT_CRITICAL_PATHS",
    "DEFAULT_ROLE_PERMISSIONS",
    "FlowConfig",
    "HubsightSettings",
    "ObservabilityConfig",
    "ParticipantEarning",
    "PerformanceConfig",
    "PointsLimits",
    "PricingSchedule",
    "ResearcherSpending",
    "ScheduleConfig",
    "TelemetryConfig",
    "ValidationConfig",
    "load_config",
]
