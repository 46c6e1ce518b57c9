from datetime import date, datetime, timedelta, timezone

import pytest

from mealroute.core.errors import StateError
from mealroute.models import PlannedStop
from mealroute.utils.clock import as_utc

DELIVERY_DATE = date(2024, 6, 1)
FIRST = datetime(2024, 6, 1, 3, 0, tzinfo=timezone.utc)
LATER = FIRST + timedelta(minutes=20)


def _event(store, **overrides):
    values = dict(
        route_id="R1",
        delivery_date=DELIVERY_DATE,
        session="breakfast",
        stop_order=1,
        user_id="D-1",
        delivery_status="delivered",
        actual_completion_time=FIRST,
    )
    values.update(overrides)
    return store.upsert_actual_stop(**values)


def test_retry_without_status_keeps_completion_time(store):
    _event(store)
    row = _event(store, delivery_status=None, actual_completion_time=None)

    assert as_utc(row.actual_completion_time) == FIRST
    assert row.delivery_status == "delivered"
    assert len(store.find_actual_stops("R1", DELIVERY_DATE)) == 1


def test_later_completion_time_does_not_replace_first(store):
    _event(store)
    row = _event(store, delivery_status="arrived", actual_completion_time=LATER)

    assert as_utc(row.actual_completion_time) == FIRST
    assert row.delivery_status == "arrived"


def test_start_time_is_write_once(store):
    _event(store, stop_order=0, delivery_status=None, actual_completion_time=None, start_time=FIRST)
    row = _event(store, stop_order=0, delivery_status=None, actual_completion_time=None, start_time=LATER)

    assert as_utc(row.start_time) == FIRST


def test_session_is_stored_lowercase(store):
    _event(store, session="Breakfast")
    row = _event(store, session="BREAKFAST", delivery_status="arrived")

    assert row.session == "breakfast"
    assert len(store.find_actual_stops("R1", DELIVERY_DATE)) == 1


def test_completed_only_excludes_start_marker_and_unreached(store):
    _event(store, stop_order=0, delivery_status=None, actual_completion_time=None, start_time=FIRST)
    _event(store, stop_order=1)
    _event(store, stop_order=2, delivery_status="customer_unavailable", actual_completion_time=None)
    _event(store, stop_order=3, delivery_status="ARRIVED", actual_completion_time=None)

    completed = store.find_actual_stops("R1", DELIVERY_DATE, completed_only=True)
    started = store.find_actual_stops("R1", DELIVERY_DATE, started_only=True)

    assert [row.stop_order for row in completed] == [1, 3]
    assert [row.stop_order for row in started] == [0]


def test_summary_end_time_is_sticky(store):
    key = dict(route_id="R1", delivery_date=DELIVERY_DATE, session="lunch", driver_id="D-1")
    store.upsert_journey_summary(**key, actual_end_time=FIRST)
    row = store.upsert_journey_summary(**key, actual_end_time=LATER, total_duration_minutes=42.0)

    assert as_utc(row.actual_end_time) == FIRST
    assert row.total_duration_minutes == 42.0
    assert len(store.find_journey_summaries("R1", DELIVERY_DATE, ended_only=True)) == 1


def test_find_started_routes_skips_ended_journeys(store):
    _event(store, route_id="R1", stop_order=0, start_time=FIRST, delivery_status=None, actual_completion_time=None)
    _event(store, route_id="R2", stop_order=0, start_time=FIRST, delivery_status=None, actual_completion_time=None)
    store.upsert_journey_summary(
        route_id="R2", delivery_date=DELIVERY_DATE, session="breakfast", driver_id="D-1", journey_ended_at=LATER
    )

    assert store.find_started_routes(DELIVERY_DATE) == ["R1"]


def test_apply_stop_orders_swaps_without_constraint_violation(store, seed_plan):
    ids = seed_plan(count=3, hub=False)

    moved = store.apply_stop_orders(
        "R1", DELIVERY_DATE, {ids[0]: 3, ids[2]: 1}, [], stamp_ids=ids, reoptimized_at=LATER
    )

    stops = store.find_planned_stops("R1", DELIVERY_DATE)
    assert moved == 2
    assert [stop.id for stop in stops] == [ids[2], ids[1], ids[0]]
    assert as_utc(store.latest_reoptimized_at("R1", DELIVERY_DATE)) == LATER


def test_apply_stop_orders_appends_new_stops(store, seed_plan):
    ids = seed_plan(count=2, hub=False)

    store.apply_stop_orders(
        "R1",
        DELIVERY_DATE,
        {},
        [{"session": "breakfast", "stop_order": 3, "delivery_id": "NEW-1", "delivery_name": "Walk-in"}],
        stamp_ids=ids,
        reoptimized_at=LATER,
    )

    stops = store.find_planned_stops("R1", DELIVERY_DATE)
    assert [stop.delivery_id for stop in stops][-1] == "NEW-1"
    assert stops[-1].stop_order == 3


def test_apply_stop_orders_refuses_stop_reached_meanwhile(store, seed_plan):
    ids = seed_plan(count=2, hub=False)
    _event(store, stop_order=1)

    with pytest.raises(StateError) as exc:
        store.apply_stop_orders("R1", DELIVERY_DATE, {ids[0]: 2, ids[1]: 1}, [], stamp_ids=ids, reoptimized_at=LATER)

    assert exc.value.code == "ROUTE_CHANGED"
    assert [stop.id for stop in store.find_planned_stops("R1", DELIVERY_DATE)] == ids


def test_store_planned_stops_replaces_session_plan(store, seed_plan):
    seed_plan(count=3)

    created = store.store_planned_stops(
        "R1", DELIVERY_DATE, "Breakfast", [{"stop_order": 1, "delivery_id": "X"}]
    )

    assert len(created) == 1
    stops = store.find_planned_stops("R1", DELIVERY_DATE)
    assert [(s.session, s.delivery_id) for s in stops] == [("breakfast", "X")]


def test_store_planned_stops_refuses_route_in_progress(store, seed_plan, db):
    seed_plan(count=2)
    _event(store, stop_order=1)

    with pytest.raises(StateError) as exc:
        store.store_planned_stops("R1", DELIVERY_DATE, "breakfast", [{"stop_order": 1}])

    assert exc.value.code == "ROUTE_IN_PROGRESS"
    assert db.query(PlannedStop).count() == 3
