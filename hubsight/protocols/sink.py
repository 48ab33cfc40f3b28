from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol, runtime_checkable


@runtime_checkable
class TelemetrySink(Protocol):
    def emit(self, message: str, context: Mapping[str, object]) -> None: ...


__all__ = ["TelemetrySink"]
