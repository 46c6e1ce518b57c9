import enum
from sqlalchemy import Column, Integer, String, Float, Date, DateTime, UniqueConstraint, Index
from mealroute.database import Base, TimestampMixin

class DeliveryStatus(str, enum.Enum):
    delivered = "delivered"
    arrived = "arrived"
    customer_unavailable = "customer_unavailable"

# Statuses that count a stop as reached even without a completion time
REACHED_STATUSES = (DeliveryStatus.delivered.value, DeliveryStatus.arrived.value)

# stop_order of the journey start marker (depot departure)
START_MARKER_ORDER = 0

class ActualStop(Base, TimestampMixin):
    __tablename__ = "actual_route_stops"
    __table_args__ = (
        UniqueConstraint("route_id", "delivery_date", "session", "stop_order", name="uq_actual_stop_key"),
        Index("ix_actual_route_stops_route_date", "route_id", "delivery_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    route_id = Column(String, nullable=False)
    delivery_date = Column(Date, nullable=False)
    session = Column(String, nullable=False)
    stop_order = Column(Integer, nullable=False)
    user_id = Column(String, nullable=True)  # driver who reported
    planned_stop_id = Column(String, nullable=True)
    delivery_id = Column(String, nullable=True)
    delivery_status = Column(String, nullable=True)
    actual_completion_time = Column(DateTime(timezone=True), nullable=True)  # never cleared once set
    start_time = Column(DateTime(timezone=True), nullable=True)  # set on the start marker
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
