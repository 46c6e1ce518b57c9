from datetime import date
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Query
from mealroute.core.logging_config import logger
from mealroute.dependencies import (
    Principal,
    get_journey_lifecycle,
    get_journey_store,
    get_route_client,
    get_status_reconciler,
    require_delivery_manager,
    require_delivery_staff,
)
from mealroute.schemas.journey import ReoptimizeResponse
from mealroute.schemas.route import (
    CompleteDriverSessionRequest,
    PlanRequest,
    PlanResponse,
    PredictStartTimeRequest,
    ReoptimizeRequest,
    RouteStatusResponse,
    VehicleTrackingRequest,
)
from mealroute.services import route_planning_service
from mealroute.services.journey_engine import JourneyLifecycle, JourneyStore, RouteClient, StatusReconciler

router = APIRouter()


@router.get("/engine/health")
def engine_health(
    route_client: RouteClient = Depends(get_route_client),
    _principal: Principal = Depends(require_delivery_staff),
) -> Dict[str, Any]:
    """Health of the Route Optimization Engine."""
    return {"success": True, "engine": route_client.health()}


@router.get("/{route_id}/status", response_model=RouteStatusResponse)
def get_route_status(
    route_id: str,
    driver_id: Optional[str] = Query(None),
    delivery_date: Optional[date] = Query(None, alias="date"),
    reconciler: StatusReconciler = Depends(get_status_reconciler),
    _principal: Principal = Depends(require_delivery_staff),
):
    """
    Reconciled status of a route.

    Returns whether the journey started, the stops reached so far and the
    sessions that are complete (all stops reached, or explicitly ended).
    ``date`` defaults to today in the delivery time zone.
    """
    return reconciler.get_status(route_id, driver_id=driver_id, delivery_date=delivery_date)


@router.post("/reoptimize", response_model=ReoptimizeResponse)
def reoptimize_route(
    request_data: ReoptimizeRequest,
    lifecycle: JourneyLifecycle = Depends(get_journey_lifecycle),
    _principal: Principal = Depends(require_delivery_staff),
):
    """
    Force reoptimization of the remaining stops.

    Stops already reached keep their position. Not retried automatically:
    check the route order before calling again after a failure.
    """
    try:
        logger.info(f"Reoptimization requested for route {request_data.route_id}")
        return lifecycle.reoptimize(
            route_id=request_data.route_id,
            current_location=request_data.current_location.model_dump() if request_data.current_location else None,
            delay_minutes=request_data.delay_minutes,
            traffic_data=request_data.traffic_data,
            weather_data=request_data.weather_data,
            delivery_date=request_data.delivery_date,
        )
    except Exception as e:
        logger.error(f"Error reoptimizing route {request_data.route_id}: {type(e).__name__}: {str(e)}")
        raise


@router.post("/plan", response_model=PlanResponse)
def plan_routes(
    request_data: PlanRequest,
    store: JourneyStore = Depends(get_journey_store),
    route_client: RouteClient = Depends(get_route_client),
    _principal: Principal = Depends(require_delivery_manager),
):
    """
    Plan routes for a delivery date and session and store their stops.

    Example:
        ```json
        {
            "delivery_date": "2024-06-01",
            "delivery_session": "lunch",
            "num_drivers": 3,
            "depot_location": {"lat": 12.97, "lng": 77.59}
        }
        ```
    """
    try:
        logger.info(
            f"Planning routes: date={request_data.delivery_date}, "
            f"session={request_data.delivery_session.value}, drivers={request_data.num_drivers}"
        )
        return route_planning_service.plan_routes(store, route_client, request_data)
    except Exception as e:
        logger.error(f"Error planning routes: {type(e).__name__}: {str(e)}")
        raise


@router.post("/predict-start-time")
def predict_start_time(
    request_data: PredictStartTimeRequest,
    route_client: RouteClient = Depends(get_route_client),
    _principal: Principal = Depends(require_delivery_staff),
) -> Dict[str, Any]:
    """Predict a start time for ``route_id``, or for ``delivery_date`` + ``delivery_session``."""
    return route_planning_service.predict_start_time(route_client, request_data)


@router.post("/vehicle-tracking")
def vehicle_tracking(
    request_data: VehicleTrackingRequest,
    route_client: RouteClient = Depends(get_route_client),
    _principal: Principal = Depends(require_delivery_staff),
) -> Dict[str, Any]:
    """
    Forward GPS points from a driver's device to the engine.

    Example:
        ```json
        {
            "route_id": "R-2024-06-01-1",
            "driver_id": "D-17",
            "tracking_points": [{"latitude": 12.97, "longitude": 77.59, "timestamp": "2024-06-01T08:05:00Z"}]
        }
        ```
    """
    try:
        data = route_client.push_vehicle_tracking(
            route_id=request_data.route_id,
            tracking_points=[p.model_dump(mode="json", exclude_none=True) for p in request_data.tracking_points],
            driver_id=request_data.driver_id,
            session_id=request_data.session_id,
        )
        return {**data, "success": True}
    except Exception as e:
        logger.error(f"Error saving vehicle tracking for route {request_data.route_id}: {type(e).__name__}: {str(e)}")
        raise


@router.get("/tracking-status/{route_id}")
def tracking_status(
    route_id: str,
    route_client: RouteClient = Depends(get_route_client),
    _principal: Principal = Depends(require_delivery_staff),
) -> Dict[str, Any]:
    """Live tracking status of a route as seen by the engine."""
    return {**route_client.tracking_status(route_id), "success": True}


@router.post("/driver-session/{session_id}/complete")
def complete_driver_session(
    session_id: str,
    request_data: CompleteDriverSessionRequest,
    route_client: RouteClient = Depends(get_route_client),
    _principal: Principal = Depends(require_delivery_staff),
) -> Dict[str, Any]:
    """Mark a driver session complete on the engine side."""
    return {**route_client.complete_driver_session(session_id, request_data.route_id), "success": True}
