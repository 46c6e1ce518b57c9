from datetime import date
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select, func
from mealroute.crud.base import CRUDBase
from mealroute.models.journey_summary import JourneySummary

_FIELDS = (
    "actual_start_time", "actual_end_time", "journey_ended_at",
    "total_duration_minutes", "end_latitude", "end_longitude",
)


class CRUDJourneySummary(CRUDBase[JourneySummary]):
    """CRUD operations for JourneySummary. End markers are sticky once written."""

    def upsert_summary(self, db: Session, *, values: Dict[str, Any], commit: bool = True) -> JourneySummary:
        values = {**{field: None for field in _FIELDS}, **values}

        def build_set(excluded):
            return {
                "actual_start_time": func.coalesce(JourneySummary.actual_start_time, excluded.actual_start_time),
                "actual_end_time": func.coalesce(JourneySummary.actual_end_time, excluded.actual_end_time),
                "journey_ended_at": func.coalesce(JourneySummary.journey_ended_at, excluded.journey_ended_at),
                "total_duration_minutes": func.coalesce(
                    excluded.total_duration_minutes, JourneySummary.total_duration_minutes
                ),
                "end_latitude": func.coalesce(excluded.end_latitude, JourneySummary.end_latitude),
                "end_longitude": func.coalesce(excluded.end_longitude, JourneySummary.end_longitude),
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
        ended_only: bool = False,
    ) -> List[JourneySummary]:
        stmt = select(JourneySummary).where(
            JourneySummary.route_id == route_id,
            JourneySummary.delivery_date == delivery_date,
        )
        if driver_id is not None:
            stmt = stmt.where(JourneySummary.driver_id == driver_id)
        if ended_only:
            stmt = stmt.where(JourneySummary.actual_end_time.isnot(None))
        stmt = stmt.order_by(JourneySummary.session, JourneySummary.driver_id)
        return list(db.execute(stmt).scalars().all())

    def get_journey_ended_route_ids(self, db: Session, *, delivery_date: date) -> List[str]:
        stmt = (
            select(JourneySummary.route_id)
            .where(JourneySummary.delivery_date == delivery_date, JourneySummary.journey_ended_at.isnot(None))
            .distinct()
        )
        return list(db.execute(stmt).scalars().all())


# Create a singleton instance
journey_summary = CRUDJourneySummary(
    JourneySummary, key_columns=("route_id", "delivery_date", "session", "driver_id")
)
