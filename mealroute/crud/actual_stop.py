from datetime import date
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select, func, or_
from mealroute.crud.base import CRUDBase
from mealroute.models.actual_stop import ActualStop, REACHED_STATUSES, START_MARKER_ORDER

_FIELDS = (
    "user_id", "planned_stop_id", "delivery_id", "delivery_status",
    "actual_completion_time", "start_time", "latitude", "longitude",
)


class CRUDActualStop(CRUDBase[ActualStop]):
    """
    CRUD operations for ActualStop.

    Writes go through ``upsert_event`` only. Completion and start times are
    write-once: an existing value always wins over the incoming one.
    """

    def upsert_event(self, db: Session, *, values: Dict[str, Any], commit: bool = True) -> ActualStop:
        values = {**{field: None for field in _FIELDS}, **values}

        def build_set(excluded):
            return {
                "user_id": func.coalesce(excluded.user_id, ActualStop.user_id),
                "planned_stop_id": func.coalesce(excluded.planned_stop_id, ActualStop.planned_stop_id),
                "delivery_id": func.coalesce(excluded.delivery_id, ActualStop.delivery_id),
                "delivery_status": func.coalesce(excluded.delivery_status, ActualStop.delivery_status),
                "actual_completion_time": func.coalesce(
                    ActualStop.actual_completion_time, excluded.actual_completion_time
                ),
                "start_time": func.coalesce(ActualStop.start_time, excluded.start_time),
                "latitude": func.coalesce(excluded.latitude, ActualStop.latitude),
                "longitude": func.coalesce(excluded.longitude, ActualStop.longitude),
                "updated_at": func.now(),
            }

        return self.upsert(db, values=values, build_set=build_set, commit=commit)

    def get_for_route(
        self,
        db: Session,
        *,
        route_id: str,
        delivery_date: date,
        driver_id: Optional[str] = None,
        started_only: bool = False,
        completed_only: bool = False,
    ) -> List[ActualStop]:
        """
        Events recorded for a route on one date.

        ``started_only`` keeps rows carrying a start time. ``completed_only``
        keeps stop rows (not the start marker) that were reached: a completion
        time is set or the status is delivered/arrived.
        """
        stmt = select(ActualStop).where(
            ActualStop.route_id == route_id,
            ActualStop.delivery_date == delivery_date,
        )
        if driver_id is not None:
            stmt = stmt.where(ActualStop.user_id == driver_id)
        if started_only:
            stmt = stmt.where(ActualStop.start_time.isnot(None))
        if completed_only:
            stmt = stmt.where(
                ActualStop.stop_order > START_MARKER_ORDER,
                or_(
                    ActualStop.actual_completion_time.isnot(None),
                    func.lower(ActualStop.delivery_status).in_(REACHED_STATUSES),
                ),
            )
        stmt = stmt.order_by(ActualStop.stop_order, ActualStop.session, ActualStop.id)
        return list(db.execute(stmt).scalars().all())

    def get_started_route_ids(self, db: Session, *, delivery_date: date) -> List[str]:
        stmt = (
            select(ActualStop.route_id)
            .where(ActualStop.delivery_date == delivery_date, ActualStop.start_time.isnot(None))
            .distinct()
            .order_by(ActualStop.route_id)
        )
        return list(db.execute(stmt).scalars().all())


# Create a singleton instance
actual_stop = CRUDActualStop(
    ActualStop, key_columns=("route_id", "delivery_date", "session", "stop_order")
)
