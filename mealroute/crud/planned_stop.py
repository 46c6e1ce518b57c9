from datetime import date, datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select, delete, func
from mealroute.crud.base import CRUDBase
from mealroute.models.planned_stop import PlannedStop


class CRUDPlannedStop(CRUDBase[PlannedStop]):
    """
    CRUD operations for PlannedStop.

    Inherits get/create/update from CRUDBase. Planned stops are written in bulk
    by the planning step and reordered by reoptimization.
    """

    def get_for_route(
        self,
        db: Session,
        *,
        route_id: str,
        delivery_date: date,
        session: Optional[str] = None,
    ) -> List[PlannedStop]:
        stmt = select(PlannedStop).where(
            PlannedStop.route_id == route_id,
            PlannedStop.delivery_date == delivery_date,
        )
        if session is not None:
            stmt = stmt.where(func.lower(PlannedStop.session) == session.lower())
        stmt = stmt.order_by(PlannedStop.session, PlannedStop.stop_order)
        return list(db.execute(stmt).scalars().all())

    def latest_reoptimized_at(self, db: Session, *, route_id: str, delivery_date: date) -> Optional[datetime]:
        stmt = select(func.max(PlannedStop.reoptimized_at)).where(
            PlannedStop.route_id == route_id,
            PlannedStop.delivery_date == delivery_date,
        )
        return db.execute(stmt).scalar()

    def delete_for_session(self, db: Session, *, route_id: str, delivery_date: date, session: str) -> int:
        """Remove a session's plan. Does not commit; callers replace it in the same transaction."""
        stmt = delete(PlannedStop).where(
            PlannedStop.route_id == route_id,
            PlannedStop.delivery_date == delivery_date,
            func.lower(PlannedStop.session) == session.lower(),
        )
        return db.execute(stmt).rowcount


# Create a singleton instance
planned_stop = CRUDPlannedStop(
    PlannedStop, key_columns=("route_id", "delivery_date", "session", "stop_order")
)
