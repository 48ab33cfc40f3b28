from hubsight.flows.devices import describe_device
from hubsight.flows.tracker import PARTICIPANT_JOURNEY, STUDY_CREATION, FlowJourneyTracker

__all__ = ["PARTICIPANT_JOURNEY", "STUDY_CREATION", "FlowJourneyTracker", "describe_device"]
