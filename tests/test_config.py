"""Tests for configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from hubsight.config import (
    FlowConfig,
    HubsightSettings,
    PricingSchedule,
    ScheduleConfig,
    ValidationConfig,
    load_config,
)
from hubsight.models.validation import StudyType, UserRole


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "hubsight.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    def test_settings_defaults(self) -> None:
        settings = HubsightSettings()
        assert settings.flows.retention_hours == 24
        assert settings.schedule.analysis_interval_s == 300
        assert settings.performance.thresholds.api_response == 2000
        assert not settings.telemetry.enabled

    def test_default_pricing_covers_every_study_type(self) -> None:
        schedule = PricingSchedule()
        assert set(schedule.participant_earning) == set(StudyType)
        assert schedule.researcher_spending[StudyType.moderated].platform_fee == 0.20

    def test_role_permissions_are_copied_per_instance(self) -> None:
        first = ValidationConfig()
        first.role_permissions[UserRole.participant].append("manage_users")
        assert "manage_users" not in ValidationConfig().role_permissions[UserRole.participant]

    def test_default_critical_paths(self) -> None:
        names = [path.name for path in FlowConfig().critical_paths]
        assert names == [
            "study_creation",
            "participant_onboarding",
            "study_completion",
            "payment_processing",
        ]


class TestValidation:
    def test_missing_study_type_rejected(self) -> None:
        with pytest.raises(ValidationError, match="missing study type"):
            PricingSchedule(
                participant_earning={
                    StudyType.unmoderated: {"base_reward": 1, "per_block": 1, "max_reward": 1}
                }
            )

    def test_platform_fee_is_a_rate(self) -> None:
        with pytest.raises(ValidationError):
            PricingSchedule(
                researcher_spending={
                    StudyType.unmoderated: {"base_cost": 1, "per_block": 1, "platform_fee": 15},
                    StudyType.moderated: {"base_cost": 1, "per_block": 1, "platform_fee": 0.1},
                }
            )

    def test_interval_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ScheduleConfig(analysis_interval_s=0)


class TestLoadConfig:
    def test_loads_hubsight_section(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "hubsight:\n"
            "  flows:\n"
            "    retention_hours: 6\n"
            "  schedule:\n"
            "    detailed_monitoring: true\n",
        )
        settings = load_config(path)
        assert settings.flows.retention_hours == 6
        assert settings.schedule.detailed_monitoring
        assert settings.validation.stats_window == 100

    def test_loads_bare_mapping(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "performance:\n  thresholds:\n    lcp: 4000\n")
        assert load_config(path).performance.thresholds.lcp == 4000

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        assert load_config(_write(tmp_path, "")).flows.retention_hours == 24

    def test_shipped_example_config_loads(self) -> None:
        path = Path(__file__).resolve().parent.parent / "config" / "hubsight.yaml"
        settings = load_config(path)
        assert settings.performance.thresholds.cls == 0.1

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HUBSIGHT_FLOWS__RETENTION_HOURS", "12")
        path = _write(tmp_path, "hubsight:\n  flows:\n    retention_hours: 6\n")
        assert load_config(path).flows.retention_hours == 12

    def test_env_overrides_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HUBSIGHT_SCHEDULE__ANALYSIS_INTERVAL_S", "60")
        assert HubsightSettings().schedule.analysis_interval_s == 60

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="config file not found"):
            load_config(tmp_path / "absent.yaml")

    def test_non_mapping_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="top-level mapping"):
            load_config(_write(tmp_path, "- one\n- two\n"))

    def test_non_mapping_section_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="section must be a mapping"):
            load_config(_write(tmp_path, "hubsight: 3\n"))
