import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from mealroute.models import ActualStop, JourneySummary, PlannedStop


def test_models(db):
    day = datetime.date(2024, 6, 1)

    stop = PlannedStop(route_id="R1", delivery_date=day, session="lunch", stop_order=1, delivery_name="Asha")
    db.add(stop)
    db.commit()
    assert stop.id  # uuid assigned on insert

    event = ActualStop(
        route_id="R1",
        delivery_date=day,
        session="lunch",
        stop_order=1,
        planned_stop_id=stop.id,
        delivery_status="delivered",
    )
    db.add(event)
    db.commit()
    assert event.id is not None
    assert event.created_at is not None

    summary = JourneySummary(route_id="R1", delivery_date=day, session="lunch", driver_id="D-1")
    db.add(summary)
    db.commit()
    assert summary.actual_end_time is None


def test_one_event_per_stop_slot(db):
    day = datetime.date(2024, 6, 1)
    db.add(ActualStop(route_id="R1", delivery_date=day, session="lunch", stop_order=2))
    db.commit()

    db.add(ActualStop(route_id="R1", delivery_date=day, session="lunch", stop_order=2))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_planned_stop_order_is_unique_per_session(db):
    day = datetime.date(2024, 6, 1)
    db.add(PlannedStop(route_id="R1", delivery_date=day, session="lunch", stop_order=1))
    db.add(PlannedStop(route_id="R1", delivery_date=day, session="dinner", stop_order=1))
    db.commit()

    db.add(PlannedStop(route_id="R1", delivery_date=day, session="lunch", stop_order=1))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
