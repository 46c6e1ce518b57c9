from datetime import date, datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from mealroute.models.planned_stop import MealSession
from mealroute.schemas.common import Location, coerce_id


def _session(v):
    return v.strip().lower() if isinstance(v, str) else v


class PlanRequest(BaseModel):
    delivery_date: date
    delivery_session: MealSession
    num_drivers: int = Field(..., ge=1)
    depot_location: Optional[Location] = None

    @field_validator("delivery_session", mode="before")
    @classmethod
    def _normalize_session(cls, v):
        return _session(v)


class PredictStartTimeRequest(BaseModel):
    route_id: Optional[str] = None
    delivery_date: Optional[date] = None
    delivery_session: Optional[MealSession] = None
    depot_location: Optional[Location] = None

    @field_validator("route_id", mode="before")
    @classmethod
    def _ids(cls, v):
        return coerce_id(v)

    @field_validator("delivery_session", mode="before")
    @classmethod
    def _normalize_session(cls, v):
        return _session(v)


class ReoptimizeRequest(BaseModel):
    route_id: Optional[str] = None
    current_location: Optional[Location] = None
    delay_minutes: Optional[float] = Field(None, ge=0)
    traffic_data: Optional[Dict[str, Any]] = None
    weather_data: Optional[Dict[str, Any]] = None
    delivery_date: Optional[date] = None

    @field_validator("route_id", mode="before")
    @classmethod
    def _ids(cls, v):
        return coerce_id(v)


class MarkedStop(BaseModel):
    stop_order: int
    session: Optional[str] = None
    delivery_status: Optional[str] = None
    actual_completion_time: Optional[datetime] = None
    delivery_id: Optional[str] = None


class SessionStats(BaseModel):
    total: int
    completed: int


class RouteStatusResponse(BaseModel):
    success: bool = True
    route_id: str
    date: date
    is_journey_started: bool
    marked_stops: List[MarkedStop]
    completed_sessions: List[str]
    sessions: Dict[str, SessionStats]
    degraded_sources: List[str] = []


class StoredRoute(BaseModel):
    route_id: str
    driver_id: Optional[Any] = None
    stop_count: int


class PlanResponse(BaseModel):
    success: bool = True
    stored_routes: List[StoredRoute]
    num_drivers: Optional[int] = None
    total_deliveries: Optional[int] = None
    routes: List[Dict[str, Any]] = []


class TrackingPoint(BaseModel):
    model_config = ConfigDict(extra="allow")  # device extras (accuracy, battery, ...) pass through

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    timestamp: Optional[datetime] = None
    speed: Optional[float] = None
    heading: Optional[float] = None


class VehicleTrackingRequest(BaseModel):
    route_id: str
    driver_id: Optional[str] = None
    session_id: Optional[str] = None
    tracking_points: List[TrackingPoint] = Field(..., min_length=1)

    @field_validator("route_id", "driver_id", "session_id", mode="before")
    @classmethod
    def _ids(cls, v):
        return coerce_id(v)


class CompleteDriverSessionRequest(BaseModel):
    route_id: str

    @field_validator("route_id", mode="before")
    @classmethod
    def _ids(cls, v):
        return coerce_id(v)
