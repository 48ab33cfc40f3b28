from hubsight.performance.monitor import MemoryProbe, PerformanceMonitor
from hubsight.performance.thresholds import ALERT_RULES, AlertRule, family_for

__all__ = ["ALERT_RULES", "AlertRule", "MemoryProbe", "PerformanceMonitor", "family_for"]
