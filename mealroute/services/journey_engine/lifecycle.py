"""
Journey lifecycle for one route.

Per session: not_started -> started -> ended.
Per route:   not_started -> started -> journey_ended.

All state lives in the journey tables; every operation re-reads what it needs
so concurrent requests for the same route coordinate only through the store.
"""

from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
from mealroute.core.errors import NotFoundError, StateError, ValidationError
from mealroute.core.logging_config import logger
from mealroute.models.actual_stop import DeliveryStatus, START_MARKER_ORDER
from mealroute.models.planned_stop import MealSession
from mealroute.services.journey_engine.completion import (
    count_based_completion,
    is_hub_stop,
    is_reached,
    marker_based_completion,
    normalize_session,
    reached_keys,
    session_sort_key,
)
from mealroute.services.journey_engine.route_order import extract_route_order, plan_reorder
from mealroute.services.journey_engine.status_reconciler import StatusReconciler
from mealroute.services.journey_engine.traffic_monitor import TrafficMonitor
from mealroute.utils.clock import as_utc, local_today, minutes_between, utcnow


def _location(current_location: Optional[Dict[str, float]]):
    if not current_location:
        return None, None
    return current_location.get("lat"), current_location.get("lng")


class JourneyLifecycle:
    """
    Journey operations for drivers and managers.

    Args:
        store: JourneyStore bound to the request's database session
        route_client: RouteClient for engine calls
        settings: Application settings
        clock: Returns the current aware UTC time (tests pin it)
    """

    def __init__(self, store, route_client, settings, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.route_client = route_client
        self.settings = settings
        self.clock = clock
        self.reconciler = StatusReconciler(store, settings)
        self.traffic_monitor = TrafficMonitor(route_client, settings)

    @property
    def hub_name(self) -> str:
        return self.settings.HUB_STOP_NAME

    def _today(self) -> date:
        return local_today(self.settings.delivery_tz, self.clock())

    @staticmethod
    def _require_route(route_id: Optional[str]) -> str:
        if not route_id or not str(route_id).strip():
            raise ValidationError("route_id is required", code="MISSING_ROUTE")
        return str(route_id).strip()

    @staticmethod
    def _require_driver(driver_id: Optional[str]) -> str:
        if driver_id is None or not str(driver_id).strip():
            raise ValidationError("driver_id is required", code="MISSING_DRIVER")
        return str(driver_id).strip()

    @staticmethod
    def _parse_session(session: Optional[str]) -> str:
        name = normalize_session(session)
        if name not in MealSession.__members__:
            raise ValidationError(
                f"Unknown session '{session}'",
                code="INVALID_SESSION",
                details={"allowed": [s.value for s in MealSession]},
            )
        return name

    @staticmethod
    def _parse_status(status: Optional[str]) -> DeliveryStatus:
        if status is None or not str(status).strip():
            return DeliveryStatus.delivered
        try:
            return DeliveryStatus(str(status).strip().lower())
        except ValueError:
            raise ValidationError(
                f"Unknown delivery status '{status}'",
                code="INVALID_STATUS",
                details={"allowed": [s.value for s in DeliveryStatus]},
            )

    def _ended_sessions(self, route_id: str, delivery_date: date, driver_id: Optional[str] = None) -> set:
        summaries = self.store.find_journey_summaries(
            route_id, delivery_date, driver_id=driver_id, ended_only=True
        )
        return marker_based_completion(summaries)

    def start(
        self,
        driver_id: Optional[str],
        route_id: Optional[str],
        session: Optional[str] = None,
        delivery_date: Optional[date] = None,
        current_location: Optional[Dict[str, float]] = None,
    ) -> Dict[str, Any]:
        """
        Record the start of a journey session.

        The start marker is the ActualStop at stop_order 0. Calling start
        again returns the originally recorded start time.

        Args:
            driver_id: Driver starting the journey
            route_id: Route being driven
            session: Meal session; defaults to the first planned session that
                has not been ended
            delivery_date: Journey date, defaults to today
            current_location: Optional {lat, lng} at departure

        Returns:
            Dict with route_id, driver_id, session, date, start_time and already_started

        Raises:
            ValidationError MISSING_ROUTE / MISSING_DRIVER / INVALID_SESSION
            NotFoundError ROUTE_NOT_FOUND: No session given and no plan exists
            StateError SESSION_ALREADY_ENDED: The session was already ended
        """
        route_id = self._require_route(route_id)
        driver_id = self._require_driver(driver_id)
        delivery_date = delivery_date or self._today()
        ended = self._ended_sessions(route_id, delivery_date)

        if session:
            session = self._parse_session(session)
            if session in ended:
                raise StateError(
                    f"Session {session} of route {route_id} has already ended",
                    code="SESSION_ALREADY_ENDED",
                    details={"route_id": route_id, "session": session},
                )
        else:
            planned_sessions = sorted(
                {normalize_session(s.session) for s in self.store.find_planned_stops(route_id, delivery_date)},
                key=session_sort_key,
            )
            if not planned_sessions:
                raise NotFoundError(
                    f"No plan found for route {route_id} on {delivery_date}",
                    code="ROUTE_NOT_FOUND",
                    details={"route_id": route_id, "date": str(delivery_date)},
                )
            open_sessions = [s for s in planned_sessions if s not in ended]
            if not open_sessions:
                raise StateError(
                    f"All sessions of route {route_id} have already ended",
                    code="SESSION_ALREADY_ENDED",
                    details={"route_id": route_id, "sessions": planned_sessions},
                )
            session = open_sessions[0]

        existing = self.store.get_actual_stop(route_id, delivery_date, session, START_MARKER_ORDER)
        already_started = existing is not None and existing.start_time is not None

        now = self.clock()
        lat, lng = _location(current_location)
        marker = self.store.upsert_actual_stop(
            commit=False,
            route_id=route_id,
            delivery_date=delivery_date,
            session=session,
            stop_order=START_MARKER_ORDER,
            user_id=driver_id,
            start_time=now,
            latitude=lat,
            longitude=lng,
        )
        start_time = as_utc(marker.start_time)
        self.store.upsert_journey_summary(
            commit=False,
            route_id=route_id,
            delivery_date=delivery_date,
            session=session,
            driver_id=driver_id,
            actual_start_time=start_time,
        )
        self.store.commit()

        if already_started:
            logger.info(f"Journey already started: route={route_id}, session={session}, driver={driver_id}")
        else:
            logger.info(f"Journey started: route={route_id}, session={session}, driver={driver_id}")

        return {
            "route_id": route_id,
            "driver_id": driver_id,
            "session": session,
            "date": delivery_date,
            "start_time": start_time,
            "already_started": already_started,
            "message": "Journey already started" if already_started else "Journey started",
        }

    def mark_stop(
        self,
        route_id: Optional[str],
        delivery_id: Optional[str] = None,
        planned_stop_id: Optional[str] = None,
        stop_order: Optional[int] = None,
        driver_id: Optional[str] = None,
        completed_at: Optional[datetime] = None,
        current_location: Optional[Dict[str, float]] = None,
        status: Optional[str] = None,
        session: Optional[str] = None,
        delivery_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Record that a stop was reached.

        ``planned_stop_id`` identifies the stop when given; ``stop_order`` is
        accepted for older clients and needs ``session`` when the order exists
        in several sessions. A stop reported ``customer_unavailable`` gets no
        completion time unless one was already recorded, so it does not count
        toward session completion. A completion time already stored is never
        cleared by a later report.

        Returns:
            Dict with the stored event, already_completed, session_completed
            and the session's next_stop

        Raises:
            ValidationError MISSING_ROUTE / MISSING_STOP / INVALID_STATUS /
                INVALID_SESSION / SESSION_REQUIRED / STOP_ROUTE_MISMATCH
            NotFoundError STOP_NOT_FOUND
        """
        route_id = self._require_route(route_id)
        if not planned_stop_id and stop_order is None:
            raise ValidationError("planned_stop_id or stop_order is required", code="MISSING_STOP")
        delivery_status = self._parse_status(status)

        if planned_stop_id:
            planned = self.store.get_planned_stop(str(planned_stop_id))
            if planned is None:
                raise NotFoundError(
                    f"Planned stop {planned_stop_id} not found",
                    code="STOP_NOT_FOUND",
                    details={"planned_stop_id": planned_stop_id},
                )
            if planned.route_id != route_id:
                raise ValidationError(
                    f"Planned stop {planned_stop_id} belongs to route {planned.route_id}",
                    code="STOP_ROUTE_MISMATCH",
                    details={"planned_stop_id": planned_stop_id, "route_id": route_id},
                )
            session = normalize_session(planned.session)
            stop_order = planned.stop_order
            delivery_date = planned.delivery_date
        else:
            if stop_order < 1:
                raise ValidationError("stop_order must be 1 or greater", code="INVALID_STOP_ORDER")
            delivery_date = delivery_date or self._today()
            candidates = [
                s for s in self.store.find_planned_stops(route_id, delivery_date)
                if s.stop_order == stop_order
            ]
            if session:
                session = self._parse_session(session)
                candidates = [s for s in candidates if normalize_session(s.session) == session]
            elif len(candidates) > 1:
                raise ValidationError(
                    f"stop_order {stop_order} exists in several sessions; session is required",
                    code="SESSION_REQUIRED",
                    details={"sessions": sorted({normalize_session(s.session) for s in candidates})},
                )
            if not candidates:
                raise NotFoundError(
                    f"Stop {stop_order} not found on route {route_id}",
                    code="STOP_NOT_FOUND",
                    details={"route_id": route_id, "stop_order": stop_order, "session": session},
                )
            planned = candidates[0]
            session = normalize_session(planned.session)
            planned_stop_id = planned.id

        if delivery_id is None:
            delivery_id = planned.delivery_id

        if delivery_status == DeliveryStatus.customer_unavailable:
            completion_time = None
        else:
            completion_time = as_utc(completed_at) if completed_at else self.clock()

        existing = self.store.get_actual_stop(route_id, delivery_date, session, stop_order)
        already_completed = existing is not None and is_reached(existing)

        if session in self._ended_sessions(route_id, delivery_date):
            logger.warning(f"Stop marked after session end: route={route_id}, session={session}, stop={stop_order}")

        lat, lng = _location(current_location)
        row = self.store.upsert_actual_stop(
            route_id=route_id,
            delivery_date=delivery_date,
            session=session,
            stop_order=stop_order,
            user_id=str(driver_id) if driver_id is not None else None,
            planned_stop_id=planned_stop_id,
            delivery_id=str(delivery_id) if delivery_id is not None else None,
            delivery_status=delivery_status.value,
            actual_completion_time=completion_time,
            latitude=lat,
            longitude=lng,
        )
        logger.info(
            f"Stop marked: route={route_id}, session={session}, stop={stop_order}, "
            f"status={delivery_status.value}, driver={driver_id}"
        )

        session_planned = self.store.find_planned_stops(route_id, delivery_date, session)
        reached = self.store.find_actual_stops(route_id, delivery_date, completed_only=True)
        session_completed = (
            session in count_based_completion(session_planned, reached, self.hub_name)
            or session in self._ended_sessions(route_id, delivery_date)
        )

        return {
            "route_id": route_id,
            "date": delivery_date,
            "session": session,
            "stop_order": stop_order,
            "planned_stop_id": planned_stop_id,
            "delivery_id": row.delivery_id,
            "delivery_status": row.delivery_status,
            "actual_completion_time": as_utc(row.actual_completion_time),
            "already_completed": already_completed,
            "session_completed": session_completed,
            "next_stop": self._next_stop(session_planned, reached),
        }

    def _next_stop(self, planned, reached) -> Optional[Dict[str, Any]]:
        keys = reached_keys(reached)
        ordered = sorted(planned, key=lambda s: (session_sort_key(normalize_session(s.session)), s.stop_order))
        pending = [s for s in ordered if (normalize_session(s.session), s.stop_order) not in keys]
        deliveries = [s for s in pending if not is_hub_stop(s, self.hub_name)]
        stop = deliveries[0] if deliveries else (pending[0] if pending else None)
        if stop is None:
            return None
        return self._stop_view(stop)

    def _stop_view(self, stop) -> Dict[str, Any]:
        return {
            "planned_stop_id": stop.id,
            "session": normalize_session(stop.session),
            "stop_order": stop.stop_order,
            "delivery_id": stop.delivery_id,
            "delivery_name": stop.delivery_name,
            "customer_name": stop.customer_name,
            "latitude": stop.latitude,
            "longitude": stop.longitude,
            "planned_arrival_time": as_utc(stop.planned_arrival_time),
            "is_hub": is_hub_stop(stop, self.hub_name),
        }

    def end_session(
        self,
        route_id: Optional[str],
        session: Optional[str],
        driver_id: Optional[str],
        delivery_date: Optional[date] = None,
        current_location: Optional[Dict[str, float]] = None,
    ) -> Dict[str, Any]:
        """
        Explicitly end one meal session for a driver.

        The end marker is authoritative: the session counts as completed even
        if only some of its stops were marked.

        Raises:
            ValidationError MISSING_ROUTE / MISSING_DRIVER / INVALID_SESSION
            StateError SESSION_ALREADY_ENDED: The stored end time is left untouched
        """
        route_id = self._require_route(route_id)
        driver_id = self._require_driver(driver_id)
        session = self._parse_session(session)
        delivery_date = delivery_date or self._today()

        if session in self._ended_sessions(route_id, delivery_date, driver_id=driver_id):
            raise StateError(
                f"Session {session} of route {route_id} has already ended",
                code="SESSION_ALREADY_ENDED",
                details={"route_id": route_id, "session": session, "driver_id": driver_id},
            )

        now = self.clock()
        lat, lng = _location(current_location)
        summary = self.store.upsert_journey_summary(
            route_id=route_id,
            delivery_date=delivery_date,
            session=session,
            driver_id=driver_id,
            actual_end_time=now,
            end_latitude=lat,
            end_longitude=lng,
        )
        logger.info(f"Session ended: route={route_id}, session={session}, driver={driver_id}")

        return {
            "route_id": route_id,
            "date": delivery_date,
            "session": session,
            "driver_id": driver_id,
            "actual_end_time": as_utc(summary.actual_end_time),
            "message": f"{session.capitalize()} session ended",
        }

    def end_journey(
        self,
        user_id: Optional[str],
        route_id: Optional[str],
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        delivery_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Close the journey for a driver.

        Every session that was started is ended (existing end times are kept)
        and the total duration from the earliest start is recorded.

        Raises:
            ValidationError MISSING_ROUTE / MISSING_DRIVER
            StateError NOT_STARTED: No start was recorded for the route on that date
            StateError JOURNEY_ALREADY_ENDED: end_journey already ran for this driver
        """
        route_id = self._require_route(route_id)
        user_id = self._require_driver(user_id)
        delivery_date = delivery_date or self._today()

        starts = self.store.find_actual_stops(route_id, delivery_date, started_only=True)
        if not starts:
            raise StateError(
                f"Journey for route {route_id} was never started",
                code="NOT_STARTED",
                details={"route_id": route_id, "date": str(delivery_date)},
            )

        summaries = self.store.find_journey_summaries(route_id, delivery_date, driver_id=user_id)
        if any(s.journey_ended_at is not None for s in summaries):
            raise StateError(
                f"Journey for route {route_id} has already ended",
                code="JOURNEY_ALREADY_ENDED",
                details={"route_id": route_id, "user_id": user_id},
            )

        start_time = min(as_utc(s.start_time) for s in starts)
        now = self.clock()
        duration = minutes_between(start_time, now)
        sessions = sorted({normalize_session(s.session) for s in starts}, key=session_sort_key)

        for session in sessions:
            self.store.upsert_journey_summary(
                commit=False,
                route_id=route_id,
                delivery_date=delivery_date,
                session=session,
                driver_id=user_id,
                actual_end_time=now,
                journey_ended_at=now,
                total_duration_minutes=duration,
                end_latitude=latitude,
                end_longitude=longitude,
            )
        self.store.commit()
        logger.info(f"Journey ended: route={route_id}, driver={user_id}, duration={duration} min")

        return {
            "route_id": route_id,
            "user_id": user_id,
            "date": delivery_date,
            "start_time": start_time,
            "end_time": now,
            "total_duration_minutes": duration,
            "sessions_closed": sessions,
            "message": "Journey ended",
        }

    def check_traffic(
        self,
        route_id: Optional[str],
        current_location: Optional[Dict[str, float]] = None,
        check_all_segments: bool = True,
        delivery_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Check live traffic and reoptimize when it is heavy.

        Reoptimization is skipped while the route is inside its cooldown
        window, so frequent polling does not reorder the route repeatedly.

        Raises:
            ValidationError MISSING_ROUTE
            UpstreamError: If the traffic check or the reoptimization call fails
        """
        route_id = self._require_route(route_id)
        delivery_date = delivery_date or self._today()
        assessment = self.traffic_monitor.check(route_id, current_location, check_all_segments)

        result = {
            "route_id": route_id,
            "traffic_checked": True,
            "heavy_traffic_detected": assessment.heavy_traffic_detected,
            "max_traffic_multiplier": assessment.max_traffic_multiplier,
            "threshold": assessment.threshold,
            "traffic_segments": assessment.traffic_segments,
            "reoptimized": False,
            "reoptimization_result": None,
            "updated_route_order": None,
            "reason": assessment.reason,
        }
        if not assessment.heavy_traffic_detected:
            return result

        cooldown = self.settings.TRAFFIC_REOPTIMIZE_COOLDOWN_MINUTES
        last = as_utc(self.store.latest_reoptimized_at(route_id, delivery_date))
        if cooldown > 0 and last is not None and self.clock() - last < timedelta(minutes=cooldown):
            result["reason"] = f"{assessment.reason}; reoptimized at {last.isoformat()}, cooldown active"
            logger.info(f"Skipping reoptimization for route {route_id}: cooldown active")
            return result

        reoptimization = self.reoptimize(
            route_id,
            current_location=current_location,
            traffic_data={
                "max_traffic_multiplier": assessment.max_traffic_multiplier,
                "traffic_segments": assessment.traffic_segments,
            },
            delivery_date=delivery_date,
        )
        result["reoptimized"] = reoptimization["reoptimized"]
        result["reoptimization_result"] = reoptimization
        result["updated_route_order"] = reoptimization["route_order"]
        return result

    def reoptimize(
        self,
        route_id: Optional[str],
        current_location: Optional[Dict[str, float]] = None,
        delay_minutes: Optional[float] = None,
        traffic_data: Optional[Dict[str, Any]] = None,
        weather_data: Optional[Dict[str, Any]] = None,
        delivery_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Ask the engine for a new order of the remaining stops and store it.

        The engine response is fully validated before anything is written, so
        an engine failure leaves the stored plan unchanged. Stops that already
        have events keep their stop_order.

        Raises:
            ValidationError MISSING_ROUTE
            NotFoundError ROUTE_NOT_FOUND: No plan for the route on that date
            UpstreamError: Engine failure or malformed order
            StateError ROUTE_CHANGED: A stop to be moved was reached meanwhile
        """
        route_id = self._require_route(route_id)
        delivery_date = delivery_date or self._today()

        planned = self.store.find_planned_stops(route_id, delivery_date)
        if not planned:
            raise NotFoundError(
                f"No plan found for route {route_id} on {delivery_date}",
                code="ROUTE_NOT_FOUND",
                details={"route_id": route_id, "date": str(delivery_date)},
            )
        actual = self.store.find_actual_stops(route_id, delivery_date)
        keys = {(normalize_session(a.session), a.stop_order) for a in actual if a.stop_order > START_MARKER_ORDER}
        remaining = [
            self._stop_view(s) for s in planned
            if (normalize_session(s.session), s.stop_order) not in keys and not is_hub_stop(s, self.hub_name)
        ]

        payload = {
            "route_id": route_id,
            "delivery_date": delivery_date.isoformat(),
            "current_location": current_location,
            "delay_minutes": delay_minutes,
            "traffic_data": traffic_data,
            "weather_data": weather_data,
            "remaining_stops": [
                {**stop, "planned_arrival_time": stop["planned_arrival_time"].isoformat()
                 if stop["planned_arrival_time"] else None}
                for stop in remaining
            ],
        }
        response = self.route_client.reoptimize(payload)
        entries = extract_route_order(response)

        if response.get("reoptimized") is False or not entries:
            logger.info(f"Engine kept the current order for route {route_id}")
            return self._unchanged_order(route_id, delivery_date, [], response.get("reason"))

        reorder = plan_reorder(planned, actual, entries, self.hub_name)
        if not reorder.changed:
            # Nothing is written, so the traffic cooldown is not started either
            logger.info(f"Engine order for route {route_id} matches the stored order")
            return self._unchanged_order(
                route_id,
                delivery_date,
                reorder.locked_ids,
                response.get("reason") or "Proposed order matches the current order",
            )

        moved = self.store.apply_stop_orders(
            route_id,
            delivery_date,
            reorder.orders,
            reorder.new_stops,
            reorder.stamp_ids,
            self.clock(),
        )
        logger.info(
            f"Route {route_id} reoptimized: {moved} stops moved, {len(reorder.new_stops)} added, "
            f"{len(reorder.locked_ids)} locked"
        )

        return {
            "route_id": route_id,
            "reoptimized": True,
            "stops_moved": moved,
            "stops_added": len(reorder.new_stops),
            "locked_stop_ids": reorder.locked_ids,
            "reason": response.get("reason"),
            "route_order": self.get_route_order(route_id, delivery_date)["stops"],
        }

    def _unchanged_order(
        self, route_id: str, delivery_date: date, locked_ids: List[str], reason: Optional[str]
    ) -> Dict[str, Any]:
        return {
            "route_id": route_id,
            "reoptimized": False,
            "stops_moved": 0,
            "stops_added": 0,
            "locked_stop_ids": locked_ids,
            "reason": reason,
            "route_order": self.get_route_order(route_id, delivery_date)["stops"],
        }

    def get_route_order(
        self,
        route_id: Optional[str],
        delivery_date: Optional[date] = None,
        session: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Current stop order with per-stop status.

        Status is the reported delivery status, ``delivered`` for a stop with
        only a completion time, or ``pending``.

        Raises:
            NotFoundError ROUTE_NOT_FOUND
        """
        route_id = self._require_route(route_id)
        delivery_date = delivery_date or self._today()
        if session:
            session = self._parse_session(session)

        planned = self.store.find_planned_stops(route_id, delivery_date, session)
        if not planned:
            raise NotFoundError(
                f"No plan found for route {route_id} on {delivery_date}",
                code="ROUTE_NOT_FOUND",
                details={"route_id": route_id, "date": str(delivery_date)},
            )

        events: Dict[tuple, Any] = {}
        for row in self.store.find_actual_stops(route_id, delivery_date):
            if row.stop_order <= START_MARKER_ORDER:
                continue
            key = (normalize_session(row.session), row.stop_order)
            if key not in events or (is_reached(row) and not is_reached(events[key])):
                events[key] = row

        stops = []
        for stop in sorted(planned, key=lambda s: (session_sort_key(normalize_session(s.session)), s.stop_order)):
            view = self._stop_view(stop)
            event = events.get((view["session"], stop.stop_order))
            if event is None:
                view["status"] = "pending"
                view["actual_completion_time"] = None
            else:
                view["status"] = (event.delivery_status or "").lower() or (
                    DeliveryStatus.delivered.value if event.actual_completion_time else "pending"
                )
                view["actual_completion_time"] = as_utc(event.actual_completion_time)
            stops.append(view)

        next_stop = next((s for s in stops if s["status"] == "pending" and not s["is_hub"]), None)
        return {
            "route_id": route_id,
            "date": delivery_date,
            "stops": stops,
            "next_stop": next_stop,
        }

    def get_journey_status(
        self,
        route_id: Optional[str],
        delivery_date: Optional[date] = None,
        driver_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Live per-session state of a route.

        Returns:
            Route-level state (not_started / started / journey_ended) plus one
            entry per known session with its state, times and stop counts
        """
        route_id = self._require_route(route_id)
        delivery_date = delivery_date or self._today()

        status = self.reconciler.get_status(route_id, driver_id=driver_id, delivery_date=delivery_date)
        starts = self.store.find_actual_stops(route_id, delivery_date, driver_id=driver_id, started_only=True)
        summaries = self.store.find_journey_summaries(route_id, delivery_date, driver_id=driver_id)

        session_names = set(status["sessions"]) | {normalize_session(s.session) for s in starts}
        session_names |= {normalize_session(s.session) for s in summaries}

        sessions = []
        for name in sorted(session_names, key=session_sort_key):
            session_starts = [as_utc(s.start_time) for s in starts if normalize_session(s.session) == name]
            session_ends = [
                as_utc(s.actual_end_time) for s in summaries
                if normalize_session(s.session) == name and s.actual_end_time is not None
            ]
            if session_ends:
                state = "ended"
            elif session_starts:
                state = "started"
            else:
                state = "not_started"
            counts = status["sessions"].get(name, {"total": 0, "completed": 0})
            sessions.append({
                "session": name,
                "state": state,
                "start_time": min(session_starts) if session_starts else None,
                "end_time": min(session_ends) if session_ends else None,
                "total": counts["total"],
                "completed": counts["completed"],
                "is_completed": name in status["completed_sessions"],
            })

        journey_ended = [s for s in summaries if s.journey_ended_at is not None]
        if journey_ended:
            state = "journey_ended"
        elif status["is_journey_started"]:
            state = "started"
        else:
            state = "not_started"

        return {
            "route_id": route_id,
            "date": delivery_date,
            "state": state,
            "is_journey_started": status["is_journey_started"],
            "journey_ended_at": min(as_utc(s.journey_ended_at) for s in journey_ended) if journey_ended else None,
            "total_duration_minutes": max(
                (s.total_duration_minutes for s in journey_ended if s.total_duration_minutes is not None),
                default=None,
            ),
            "completed_sessions": status["completed_sessions"],
            "sessions": sessions,
            "degraded_sources": status["degraded_sources"],
        }
