from sqlalchemy import Column, Integer, String, Float, Date, DateTime, UniqueConstraint
from mealroute.database import Base, TimestampMixin

class JourneySummary(Base, TimestampMixin):
    __tablename__ = "route_journey_summary"
    __table_args__ = (
        UniqueConstraint("route_id", "delivery_date", "session", "driver_id", name="uq_journey_summary_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    route_id = Column(String, nullable=False, index=True)
    delivery_date = Column(Date, nullable=False)
    session = Column(String, nullable=False)
    driver_id = Column(String, nullable=False)
    actual_start_time = Column(DateTime(timezone=True), nullable=True)
    actual_end_time = Column(DateTime(timezone=True), nullable=True)  # session explicitly ended; sticky
    journey_ended_at = Column(DateTime(timezone=True), nullable=True)
    total_duration_minutes = Column(Float, nullable=True)
    end_latitude = Column(Float, nullable=True)
    end_longitude = Column(Float, nullable=True)
