import enum
import uuid
from sqlalchemy import Column, Integer, String, Float, Date, DateTime, UniqueConstraint, Index
from mealroute.database import Base, TimestampMixin

class MealSession(str, enum.Enum):
    breakfast = "breakfast"
    lunch = "lunch"
    dinner = "dinner"

# Delivery order within a day
SESSION_ORDER = {
    MealSession.breakfast.value: 0,
    MealSession.lunch.value: 1,
    MealSession.dinner.value: 2,
}

class PlannedStop(Base, TimestampMixin):
    __tablename__ = "planned_route_stops"
    __table_args__ = (
        UniqueConstraint("route_id", "delivery_date", "session", "stop_order", name="uq_planned_stop_order"),
        Index("ix_planned_route_stops_route_date", "route_id", "delivery_date"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    route_id = Column(String, nullable=False)
    delivery_date = Column(Date, nullable=False)
    session = Column(String, nullable=False)  # lowercase MealSession value
    stop_order = Column(Integer, nullable=False)  # 1-based
    delivery_id = Column(String, nullable=True)
    delivery_name = Column(String, nullable=True)
    customer_name = Column(String, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    planned_arrival_time = Column(DateTime(timezone=True), nullable=True)
    driver_id = Column(String, nullable=True)
    reoptimized_at = Column(DateTime(timezone=True), nullable=True)
