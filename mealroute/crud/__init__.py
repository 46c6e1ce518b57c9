from mealroute.crud.base import CRUDBase
from .actual_stop import actual_stop
from .journey_summary import journey_summary
from .planned_stop import planned_stop

__all__ = ["CRUDBase", "actual_stop", "journey_summary", "planned_stop"]
