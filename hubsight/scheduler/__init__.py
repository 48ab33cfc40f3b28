from hubsight.scheduler.ap_scheduler import HubsightScheduler

__all__ = ["HubsightScheduler"]
