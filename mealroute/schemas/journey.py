from datetime import date, datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator
from mealroute.schemas.common import Location, coerce_id


class StartJourneyRequest(BaseModel):
    driver_id: Optional[str] = None
    route_id: Optional[str] = None
    session: Optional[str] = None
    delivery_date: Optional[date] = None
    current_location: Optional[Location] = None

    @field_validator("driver_id", "route_id", mode="before")
    @classmethod
    def _ids(cls, v):
        return coerce_id(v)


class MarkStopRequest(BaseModel):
    route_id: Optional[str] = None
    planned_stop_id: Optional[str] = None
    stop_order: Optional[int] = Field(None, ge=1)
    delivery_id: Optional[str] = None
    driver_id: Optional[str] = None
    completed_at: Optional[datetime] = None
    current_location: Optional[Location] = None
    status: Optional[str] = None
    session: Optional[str] = None
    delivery_date: Optional[date] = None

    # Older driver apps
    user_id: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    @field_validator("route_id", "planned_stop_id", "delivery_id", "driver_id", "user_id", mode="before")
    @classmethod
    def _ids(cls, v):
        return coerce_id(v)

    @property
    def reporting_driver(self) -> Optional[str]:
        return self.driver_id or self.user_id

    @property
    def reported_location(self) -> Optional[Dict[str, float]]:
        if self.current_location:
            return self.current_location.model_dump()
        if self.latitude is not None and self.longitude is not None:
            return {"lat": self.latitude, "lng": self.longitude}
        return None


class EndSessionRequest(BaseModel):
    route_id: Optional[str] = None
    session: Optional[str] = None
    driver_id: Optional[str] = None
    delivery_date: Optional[date] = None
    current_location: Optional[Location] = None

    @field_validator("route_id", "driver_id", mode="before")
    @classmethod
    def _ids(cls, v):
        return coerce_id(v)


class EndJourneyRequest(BaseModel):
    user_id: Optional[str] = None
    driver_id: Optional[str] = None
    route_id: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    delivery_date: Optional[date] = None

    @field_validator("user_id", "driver_id", "route_id", mode="before")
    @classmethod
    def _ids(cls, v):
        return coerce_id(v)


class CheckTrafficRequest(BaseModel):
    route_id: Optional[str] = None
    current_location: Optional[Location] = None
    check_all_segments: bool = True
    delivery_date: Optional[date] = None

    @field_validator("route_id", mode="before")
    @classmethod
    def _ids(cls, v):
        return coerce_id(v)


class StopView(BaseModel):
    planned_stop_id: str
    session: str
    stop_order: int
    delivery_id: Optional[str] = None
    delivery_name: Optional[str] = None
    customer_name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    planned_arrival_time: Optional[datetime] = None
    is_hub: bool = False


class RouteOrderStop(StopView):
    status: str
    actual_completion_time: Optional[datetime] = None


class StartJourneyResponse(BaseModel):
    success: bool = True
    route_id: str
    driver_id: str
    session: str
    date: date
    start_time: datetime
    already_started: bool
    message: str


class MarkStopResponse(BaseModel):
    success: bool = True
    route_id: str
    date: date
    session: str
    stop_order: int
    planned_stop_id: Optional[str] = None
    delivery_id: Optional[str] = None
    delivery_status: Optional[str] = None
    actual_completion_time: Optional[datetime] = None
    already_completed: bool
    session_completed: bool
    next_stop: Optional[StopView] = None


class EndSessionResponse(BaseModel):
    success: bool = True
    route_id: str
    date: date
    session: str
    driver_id: str
    actual_end_time: datetime
    message: str


class EndJourneyResponse(BaseModel):
    success: bool = True
    route_id: str
    user_id: str
    date: date
    start_time: datetime
    end_time: datetime
    total_duration_minutes: float
    sessions_closed: List[str]
    message: str


class SessionState(BaseModel):
    session: str
    state: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    total: int
    completed: int
    is_completed: bool


class JourneyStatusResponse(BaseModel):
    success: bool = True
    route_id: str
    date: date
    state: str
    is_journey_started: bool
    journey_ended_at: Optional[datetime] = None
    total_duration_minutes: Optional[float] = None
    completed_sessions: List[str]
    sessions: List[SessionState]
    degraded_sources: List[str] = []


class RouteOrderResponse(BaseModel):
    success: bool = True
    route_id: str
    date: date
    stops: List[RouteOrderStop]
    next_stop: Optional[RouteOrderStop] = None


class ReoptimizeResponse(BaseModel):
    success: bool = True
    route_id: str
    reoptimized: bool
    stops_moved: int
    stops_added: int
    locked_stop_ids: List[str]
    reason: Optional[str] = None
    route_order: List[RouteOrderStop]


class CheckTrafficResponse(BaseModel):
    success: bool = True
    route_id: str
    traffic_checked: bool
    heavy_traffic_detected: bool
    max_traffic_multiplier: Optional[float] = None
    threshold: float
    traffic_segments: List[Dict[str, Any]]
    reoptimized: bool
    reoptimization_result: Optional[ReoptimizeResponse] = None
    updated_route_order: Optional[List[RouteOrderStop]] = None
    reason: Optional[str] = None
