from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query
from mealroute.core.logging_config import logger
from mealroute.dependencies import Principal, get_journey_lifecycle, require_delivery_staff
from mealroute.schemas.journey import (
    CheckTrafficRequest,
    CheckTrafficResponse,
    EndJourneyRequest,
    EndJourneyResponse,
    EndSessionRequest,
    EndSessionResponse,
    JourneyStatusResponse,
    MarkStopRequest,
    MarkStopResponse,
    RouteOrderResponse,
    StartJourneyRequest,
    StartJourneyResponse,
)
from mealroute.services.journey_engine import JourneyLifecycle

router = APIRouter()


@router.post("/start", response_model=StartJourneyResponse)
def start_journey(
    request_data: StartJourneyRequest,
    lifecycle: JourneyLifecycle = Depends(get_journey_lifecycle),
    _principal: Principal = Depends(require_delivery_staff),
):
    """
    Start a journey session for a driver.

    Calling this again for a session that is already running returns the
    original start time with ``already_started: true``.

    Example:
        ```json
        {"driver_id": "D-17", "route_id": "R-2024-06-01-1", "session": "breakfast"}
        ```
    """
    try:
        return lifecycle.start(
            driver_id=request_data.driver_id,
            route_id=request_data.route_id,
            session=request_data.session,
            delivery_date=request_data.delivery_date,
            current_location=request_data.current_location.model_dump() if request_data.current_location else None,
        )
    except Exception as e:
        logger.error(f"Error starting journey for route {request_data.route_id}: {type(e).__name__}: {str(e)}")
        raise


@router.post("/mark-stop", response_model=MarkStopResponse)
@router.post("/stop-reached", response_model=MarkStopResponse, include_in_schema=False)
def mark_stop(
    request_data: MarkStopRequest,
    lifecycle: JourneyLifecycle = Depends(get_journey_lifecycle),
    _principal: Principal = Depends(require_delivery_staff),
):
    """
    Report that a stop was reached.

    Identify the stop with ``planned_stop_id`` (preferred) or ``stop_order``.
    ``status`` defaults to delivered; ``CUSTOMER_UNAVAILABLE`` is accepted in
    any casing. Repeating a report never un-completes a stop.
    """
    try:
        return lifecycle.mark_stop(
            route_id=request_data.route_id,
            delivery_id=request_data.delivery_id,
            planned_stop_id=request_data.planned_stop_id,
            stop_order=request_data.stop_order,
            driver_id=request_data.reporting_driver,
            completed_at=request_data.completed_at,
            current_location=request_data.reported_location,
            status=request_data.status,
            session=request_data.session,
            delivery_date=request_data.delivery_date,
        )
    except Exception as e:
        logger.error(f"Error marking stop on route {request_data.route_id}: {type(e).__name__}: {str(e)}")
        raise


@router.post("/end-session", response_model=EndSessionResponse)
def end_session(
    request_data: EndSessionRequest,
    lifecycle: JourneyLifecycle = Depends(get_journey_lifecycle),
    _principal: Principal = Depends(require_delivery_staff),
):
    """
    End one meal session.

    The session is reported as completed from then on, whether or not every
    stop was marked.
    """
    return lifecycle.end_session(
        route_id=request_data.route_id,
        session=request_data.session,
        driver_id=request_data.driver_id,
        delivery_date=request_data.delivery_date,
        current_location=request_data.current_location.model_dump() if request_data.current_location else None,
    )


@router.post("/end", response_model=EndJourneyResponse)
def end_journey(
    request_data: EndJourneyRequest,
    lifecycle: JourneyLifecycle = Depends(get_journey_lifecycle),
    _principal: Principal = Depends(require_delivery_staff),
):
    """End the journey and record its total duration."""
    try:
        return lifecycle.end_journey(
            user_id=request_data.user_id or request_data.driver_id,
            route_id=request_data.route_id,
            latitude=request_data.latitude,
            longitude=request_data.longitude,
            delivery_date=request_data.delivery_date,
        )
    except Exception as e:
        logger.error(f"Error ending journey for route {request_data.route_id}: {type(e).__name__}: {str(e)}")
        raise


@router.get("/status/{route_id}", response_model=JourneyStatusResponse)
def get_journey_status(
    route_id: str,
    driver_id: Optional[str] = Query(None),
    delivery_date: Optional[date] = Query(None, alias="date"),
    lifecycle: JourneyLifecycle = Depends(get_journey_lifecycle),
    _principal: Principal = Depends(require_delivery_staff),
):
    """
    Live per-session state of a route.

    State progression per session:
    - not_started: No start marker yet
    - started: Start marker recorded
    - ended: Session explicitly ended
    """
    return lifecycle.get_journey_status(route_id, delivery_date=delivery_date, driver_id=driver_id)


@router.post("/check-traffic", response_model=CheckTrafficResponse)
def check_traffic(
    request_data: CheckTrafficRequest,
    lifecycle: JourneyLifecycle = Depends(get_journey_lifecycle),
    _principal: Principal = Depends(require_delivery_staff),
):
    """
    Check traffic on the remaining segments and reoptimize if it is heavy.

    Safe to poll; reoptimization is not repeated within the cooldown window.
    """
    return lifecycle.check_traffic(
        route_id=request_data.route_id,
        current_location=request_data.current_location.model_dump() if request_data.current_location else None,
        check_all_segments=request_data.check_all_segments,
        delivery_date=request_data.delivery_date,
    )


@router.get("/route-order/{route_id}", response_model=RouteOrderResponse)
def get_route_order(
    route_id: str,
    session: Optional[str] = Query(None),
    delivery_date: Optional[date] = Query(None, alias="date"),
    lifecycle: JourneyLifecycle = Depends(get_journey_lifecycle),
    _principal: Principal = Depends(require_delivery_staff),
):
    """Current stop order with each stop's status."""
    return lifecycle.get_route_order(route_id, delivery_date=delivery_date, session=session)
