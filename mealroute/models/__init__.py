from .actual_stop import ActualStop, DeliveryStatus
from .journey_summary import JourneySummary
from .planned_stop import MealSession, PlannedStop
