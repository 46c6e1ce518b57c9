from typing import Any, Dict
from mealroute.core.config import settings
from mealroute.core.errors import ValidationError
from mealroute.core.logging_config import logger
from mealroute.schemas.route import PlanRequest, PredictStartTimeRequest
from mealroute.services.journey_engine import JourneyStore, PlanStorage, RouteClient


class RoutePlanningService:
    """
    Service layer for route planning.

    Proxies planning requests to the Route Optimization Engine and stores the
    resulting stops so the journey engine can track them.
    """

    def plan_routes(
        self,
        store: JourneyStore,
        route_client: RouteClient,
        request: PlanRequest,
    ) -> Dict[str, Any]:
        """
        Plan routes for a date and session and store them as planned stops.

        Args:
            store: Journey store for the request's database session
            route_client: Engine client
            request: Planning parameters

        Returns:
            Engine response plus ``stored_routes``

        Raises:
            UpstreamError: If the engine fails; nothing is stored
            StateError ROUTE_IN_PROGRESS: If a planned route already has events
        """
        payload = request.model_dump(mode="json", exclude_none=True)
        result = route_client.plan(payload)

        storage = PlanStorage(store, settings.HUB_STOP_NAME)
        stored = storage.store_routes(request.delivery_date, request.delivery_session.value, result)
        logger.info(
            f"Planned {len(stored)} routes for {request.delivery_date} {request.delivery_session.value}"
        )
        return {**result, "success": True, "stored_routes": stored}

    def predict_start_time(
        self,
        route_client: RouteClient,
        request: PredictStartTimeRequest,
    ) -> Dict[str, Any]:
        """
        Predict a start time for a planned route or a prospective session.

        Raises:
            ValidationError: If neither route_id nor date and session are given
        """
        if request.route_id:
            payload = {"route_id": request.route_id}
        elif request.delivery_date and request.delivery_session:
            payload = {
                "delivery_date": request.delivery_date.isoformat(),
                "delivery_session": request.delivery_session.value,
                "depot_location": request.depot_location.model_dump() if request.depot_location else None,
            }
        else:
            raise ValidationError(
                "route_id or delivery_date with delivery_session is required",
                code="MISSING_ROUTE",
            )
        return {**route_client.predict_start_time(payload), "success": True}


route_planning_service = RoutePlanningService()
