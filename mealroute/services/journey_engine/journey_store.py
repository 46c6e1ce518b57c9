"""
Persistence adapter for journey records.

Wraps the PlannedStop / ActualStop / JourneySummary CRUD objects behind
typed, parameterized query functions and translates database failures into
``StoreError``.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from mealroute.core.errors import StateError, StoreError
from mealroute.core.logging_config import logger
from mealroute.crud import actual_stop as actual_stop_crud
from mealroute.crud import journey_summary as journey_summary_crud
from mealroute.crud import planned_stop as planned_stop_crud
from mealroute.models.actual_stop import ActualStop, START_MARKER_ORDER
from mealroute.models.journey_summary import JourneySummary
from mealroute.models.planned_stop import PlannedStop
from mealroute.services.journey_engine.completion import normalize_session


class JourneyStore:
    """Journey persistence bound to one database session."""

    def __init__(self, db: Session):
        self.db = db

    def _fail(self, operation: str, error: SQLAlchemyError) -> StoreError:
        self.db.rollback()
        logger.error(f"Journey store {operation} failed: {type(error).__name__}: {str(error)}")
        return StoreError(f"Database error during {operation}", details={"operation": operation})

    def commit(self) -> None:
        """Commit writes made with ``commit=False``."""
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail("commit", e)

    # ActualStop

    def upsert_actual_stop(self, commit: bool = True, **values: Any) -> ActualStop:
        """
        Insert or merge a stop event keyed by (route_id, delivery_date, session, stop_order).

        Completion and start times already stored are never cleared or replaced.
        With ``commit=False`` the write joins the open transaction; finish it
        with ``commit()``.
        """
        values["session"] = normalize_session(values["session"])
        try:
            return actual_stop_crud.upsert_event(self.db, values=values, commit=commit)
        except SQLAlchemyError as e:
            raise self._fail("upsert_actual_stop", e)

    def get_actual_stop(
        self, route_id: str, delivery_date: date, session: str, stop_order: int
    ) -> Optional[ActualStop]:
        try:
            return actual_stop_crud.get_by_key(
                self.db,
                route_id=route_id,
                delivery_date=delivery_date,
                session=normalize_session(session),
                stop_order=stop_order,
            )
        except SQLAlchemyError as e:
            raise self._fail("get_actual_stop", e)

    def find_actual_stops(
        self,
        route_id: str,
        delivery_date: date,
        driver_id: Optional[str] = None,
        started_only: bool = False,
        completed_only: bool = False,
    ) -> List[ActualStop]:
        try:
            return actual_stop_crud.get_for_route(
                self.db,
                route_id=route_id,
                delivery_date=delivery_date,
                driver_id=driver_id,
                started_only=started_only,
                completed_only=completed_only,
            )
        except SQLAlchemyError as e:
            raise self._fail("find_actual_stops", e)

    def find_started_routes(self, delivery_date: date) -> List[str]:
        """Routes started on ``delivery_date`` whose journey has not been ended."""
        try:
            started = actual_stop_crud.get_started_route_ids(self.db, delivery_date=delivery_date)
            ended = set(journey_summary_crud.get_journey_ended_route_ids(self.db, delivery_date=delivery_date))
        except SQLAlchemyError as e:
            raise self._fail("find_started_routes", e)
        return [route_id for route_id in started if route_id not in ended]

    # JourneySummary

    def upsert_journey_summary(self, commit: bool = True, **values: Any) -> JourneySummary:
        """Insert or merge a summary keyed by (route_id, delivery_date, session, driver_id)."""
        values["session"] = normalize_session(values["session"])
        try:
            return journey_summary_crud.upsert_summary(self.db, values=values, commit=commit)
        except SQLAlchemyError as e:
            raise self._fail("upsert_journey_summary", e)

    def find_journey_summaries(
        self,
        route_id: str,
        delivery_date: date,
        driver_id: Optional[str] = None,
        ended_only: bool = False,
    ) -> List[JourneySummary]:
        try:
            return journey_summary_crud.get_for_route(
                self.db,
                route_id=route_id,
                delivery_date=delivery_date,
                driver_id=driver_id,
                ended_only=ended_only,
            )
        except SQLAlchemyError as e:
            raise self._fail("find_journey_summaries", e)

    # PlannedStop

    def get_planned_stop(self, planned_stop_id: str) -> Optional[PlannedStop]:
        try:
            return planned_stop_crud.get(self.db, id=planned_stop_id)
        except SQLAlchemyError as e:
            raise self._fail("get_planned_stop", e)

    def find_planned_stops(
        self, route_id: str, delivery_date: date, session: Optional[str] = None
    ) -> List[PlannedStop]:
        try:
            return planned_stop_crud.get_for_route(
                self.db, route_id=route_id, delivery_date=delivery_date, session=session
            )
        except SQLAlchemyError as e:
            raise self._fail("find_planned_stops", e)

    def latest_reoptimized_at(self, route_id: str, delivery_date: date) -> Optional[datetime]:
        try:
            return planned_stop_crud.latest_reoptimized_at(
                self.db, route_id=route_id, delivery_date=delivery_date
            )
        except SQLAlchemyError as e:
            raise self._fail("latest_reoptimized_at", e)

    def store_planned_stops(
        self,
        route_id: str,
        delivery_date: date,
        session: str,
        stops: List[Dict[str, Any]],
    ) -> List[PlannedStop]:
        """
        Replace the plan of one route/date/session in a single transaction.

        Raises:
            StateError ROUTE_IN_PROGRESS: If stop events exist for that session
        """
        return self.store_planned_routes(delivery_date, session, {route_id: stops})[route_id]

    def store_planned_routes(
        self,
        delivery_date: date,
        session: str,
        plans: Dict[str, List[Dict[str, Any]]],
    ) -> Dict[str, List[PlannedStop]]:
        """
        Replace the plans of several routes for one date/session.

        Every route is checked before the first delete, and all routes are
        written in one transaction: either every plan is replaced or none is.

        Args:
            delivery_date: Date the routes are planned for
            session: Meal session
            plans: route_id -> stop column values

        Returns:
            route_id -> created PlannedStop rows

        Raises:
            StateError ROUTE_IN_PROGRESS: If any route has stop events for that session
        """
        session = normalize_session(session)
        try:
            for route_id in plans:
                events = [
                    a for a in actual_stop_crud.get_for_route(
                        self.db, route_id=route_id, delivery_date=delivery_date
                    )
                    if normalize_session(a.session) == session
                ]
                if events:
                    raise StateError(
                        f"Route {route_id} already has recorded events for {session}",
                        code="ROUTE_IN_PROGRESS",
                        details={"route_id": route_id, "session": session},
                    )

            created = {}
            for route_id, stops in plans.items():
                planned_stop_crud.delete_for_session(
                    self.db, route_id=route_id, delivery_date=delivery_date, session=session
                )
                # The delete must reach the database before re-inserting the same stop orders
                self.db.flush()
                created[route_id] = planned_stop_crud.create_multi(
                    self.db,
                    objs_in=[
                        {**stop, "route_id": route_id, "delivery_date": delivery_date, "session": session}
                        for stop in stops
                    ],
                    commit=False,
                )
            self.db.commit()
            return created
        except SQLAlchemyError as e:
            raise self._fail("store_planned_routes", e)
        except Exception:
            self.db.rollback()
            raise

    def apply_stop_orders(
        self,
        route_id: str,
        delivery_date: date,
        orders: Dict[str, int],
        new_stops: List[Dict[str, Any]],
        stamp_ids: List[str],
        reoptimized_at: datetime,
    ) -> int:
        """
        Apply a reoptimized order in one transaction.

        Stops are first moved to temporary negative orders so the final orders
        never collide with the unique (route, date, session, stop_order)
        constraint mid-update.

        Args:
            route_id: Route being reordered
            delivery_date: Journey date
            orders: planned stop id -> new stop_order, only for stops that move
            new_stops: Stops the engine added, appended to their session
            stamp_ids: Stops to mark with ``reoptimized_at``
            reoptimized_at: Time of the reoptimization

        Returns:
            Number of stops moved

        Raises:
            StateError ROUTE_CHANGED: If a stop to be moved received an event meanwhile
        """
        try:
            ids = sorted(set(orders) | set(stamp_ids))
            rows = []
            if ids:
                stmt = select(PlannedStop).where(PlannedStop.id.in_(ids)).with_for_update()
                rows = list(self.db.execute(stmt).scalars().all())

            event_stmt = select(ActualStop.session, ActualStop.stop_order).where(
                ActualStop.route_id == route_id,
                ActualStop.delivery_date == delivery_date,
                ActualStop.stop_order > START_MARKER_ORDER,
            )
            event_keys = {
                (normalize_session(session), stop_order)
                for session, stop_order in self.db.execute(event_stmt).all()
            }
            moving = [row for row in rows if row.id in orders]
            conflicts = [
                row.id for row in moving
                if (normalize_session(row.session), row.stop_order) in event_keys
            ]
            if conflicts:
                self.db.rollback()
                raise StateError(
                    "Route changed while reoptimizing; stops were reached in the meantime",
                    code="ROUTE_CHANGED",
                    details={"route_id": route_id, "planned_stop_ids": conflicts},
                )

            for index, row in enumerate(moving, start=1):
                row.stop_order = -index
            self.db.flush()

            for row in moving:
                row.stop_order = orders[row.id]
            for row in rows:
                row.reoptimized_at = reoptimized_at
            self.db.flush()

            for stop in new_stops:
                self.db.add(PlannedStop(
                    **stop,
                    route_id=route_id,
                    delivery_date=delivery_date,
                    reoptimized_at=reoptimized_at,
                ))
            self.db.commit()
            return len(moving)
        except SQLAlchemyError as e:
            raise self._fail("apply_stop_orders", e)
