"""hubsight: in-process business-rule validation, flow tracking and performance alerting."""

from hubsight.config import HubsightSettings, load_config
from hubsight.engine import AnalysisCycle, ObservabilityEngine

__all__ = ["AnalysisCycle", "HubsightSettings", "ObservabilityEngine", "load_config"]
