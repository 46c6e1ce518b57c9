"""
Plan storage service.

Handles storage of engine planning results as PlannedStop rows.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional
from mealroute.core.errors import UpstreamError
from mealroute.core.logging_config import logger
from mealroute.services.journey_engine.journey_store import JourneyStore


def _parse_time(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class PlanStorage:
    """Stores planning results in the planned_route_stops table."""

    def __init__(self, store: JourneyStore, hub_name: str):
        self.store = store
        self.hub_name = hub_name

    def store_routes(
        self,
        delivery_date: date,
        session: str,
        plan_result: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        """
        Store routes and stops from a planning result.

        Each route in ``plan_result["routes"]`` replaces any earlier plan for
        the same route/date/session. A hub return stop is appended when the
        engine did not include one. All routes are written in one
        transaction, so a rejected route leaves every earlier plan in place.

        Args:
            delivery_date: Date the routes are planned for
            session: Meal session the routes serve
            plan_result: Engine response

        Returns:
            One summary per stored route: route_id, driver_id, stop count

        Raises:
            UpstreamError: If a route or stop in the response is malformed
            StateError ROUTE_IN_PROGRESS: If a route already has recorded events
        """
        routes_data = plan_result.get("routes") or []
        if not isinstance(routes_data, list):
            raise UpstreamError("Route engine returned malformed routes", code="UPSTREAM_INVALID_RESPONSE")
        if not routes_data:
            logger.warning(f"No routes to store for {delivery_date} {session}")
            return []

        # Validate and build everything before the first write
        seen_routes = set()
        plans = {}
        drivers = {}
        for route_data in routes_data:
            if not isinstance(route_data, dict) or not route_data.get("route_id"):
                raise UpstreamError("Route engine returned a route without route_id", code="UPSTREAM_INVALID_RESPONSE")
            route_id = str(route_data["route_id"])
            if route_id in seen_routes:
                raise UpstreamError(
                    f"Route engine returned route {route_id} twice",
                    code="UPSTREAM_INVALID_RESPONSE",
                )
            seen_routes.add(route_id)
            if not isinstance(route_data.get("stops") or [], list):
                raise UpstreamError(
                    f"Route engine returned malformed stops for route {route_id}",
                    code="UPSTREAM_INVALID_RESPONSE",
                )
            drivers[route_id] = route_data.get("driver_id")
            plans[route_id] = self._build_stops(route_id, route_data, plan_result)

        created = self.store.store_planned_routes(delivery_date, session, plans)

        stored = []
        for route_id, rows in created.items():
            stored.append({"route_id": route_id, "driver_id": drivers[route_id], "stop_count": len(rows)})
            logger.info(f"Stored plan for route {route_id}: {len(rows)} stops ({session}, {delivery_date})")
        return stored

    def _build_stops(
        self,
        route_id: str,
        route_data: Dict[str, Any],
        plan_result: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        """
        PlannedStop column values for one route, hub return included.

        Raises:
            UpstreamError: If a stop is not an object, has an unusable
                stop_order, or shares its stop_order with another stop
        """
        driver_id = route_data.get("driver_id")
        stops = []
        orders = set()

        for i, stop in enumerate(route_data.get("stops") or [], start=1):
            if not isinstance(stop, dict):
                raise UpstreamError(
                    f"Route engine returned a malformed stop for route {route_id}",
                    code="UPSTREAM_INVALID_RESPONSE",
                    details={"route_id": route_id, "position": i, "stop": stop},
                )
            try:
                stop_order = int(stop.get("stop_order") or i)
            except (TypeError, ValueError):
                stop_order = None
            if stop_order is None or stop_order < 1 or stop_order in orders:
                raise UpstreamError(
                    f"Route engine returned an invalid or duplicate stop_order for route {route_id}",
                    code="UPSTREAM_INVALID_RESPONSE",
                    details={"route_id": route_id, "position": i, "stop_order": stop.get("stop_order")},
                )
            orders.add(stop_order)

            record = {
                "stop_order": stop_order,
                "delivery_id": str(stop["delivery_id"]) if stop.get("delivery_id") is not None else None,
                "delivery_name": stop.get("delivery_name"),
                "customer_name": stop.get("customer_name"),
                "latitude": stop.get("latitude"),
                "longitude": stop.get("longitude"),
                "planned_arrival_time": _parse_time(stop.get("planned_arrival_time") or stop.get("arrival_time")),
                "driver_id": str(driver_id) if driver_id is not None else None,
            }
            if stop.get("planned_stop_id"):
                record["id"] = str(stop["planned_stop_id"])
            stops.append(record)

        # Add hub return
        if not any((s["delivery_name"] or "").strip().lower() == self.hub_name.lower() for s in stops):
            depot = route_data.get("depot_location") or plan_result.get("depot_location") or {}
            if not isinstance(depot, dict):
                depot = {}
            stops.append({
                "stop_order": max(orders, default=0) + 1,
                "delivery_name": self.hub_name,
                "latitude": depot.get("lat"),
                "longitude": depot.get("lng"),
                "driver_id": str(driver_id) if driver_id is not None else None,
            })

        return stops
