from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Severity(StrEnum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    @classmethod
    def highest(cls, severities: list[Severity]) -> Severity | None:
        if not severities:
            return None
        return max(severities, key=lambda severity: severity.rank)


_SEVERITY_ORDER: tuple[Severity, ...] = (
    Severity.low,
    Severity.medium,
    Severity.high,
    Severity.critical,
)


class EventModel(BaseModel):
    """Immutable record pushed in by a UI or network collaborator.

    Collaborators send camelCase JSON; Python callers use snake_case.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


__all__ = ["EventModel", "Severity"]
