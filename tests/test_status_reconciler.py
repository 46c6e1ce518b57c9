from datetime import date, datetime, timezone

import pytest

from mealroute.core.config import settings
from mealroute.core.errors import StoreError
from mealroute.services.journey_engine import StatusReconciler

DELIVERY_DATE = date(2024, 6, 1)

DONE = datetime(2024, 6, 1, 3, 0, tzinfo=timezone.utc)


@pytest.fixture()
def reconciler(memory_store):
    return StatusReconciler(memory_store, settings)


def _plan(memory_store, session="breakfast", count=3):
    for order in range(1, count + 1):
        memory_store.add_planned(session, order)
    memory_store.add_planned(session, count + 1, delivery_name=settings.HUB_STOP_NAME)


def _deliver(memory_store, session, order, **fields):
    memory_store.add_actual(
        session, order, user_id="D-1", delivery_status="delivered", actual_completion_time=DONE, **fields
    )


def test_partial_session_is_not_complete(memory_store, reconciler):
    _plan(memory_store)
    _deliver(memory_store, "breakfast", 1)
    _deliver(memory_store, "breakfast", 2)

    status = reconciler.get_status("R1", delivery_date=DELIVERY_DATE)

    assert status["completed_sessions"] == []
    assert [m["stop_order"] for m in status["marked_stops"]] == [1, 2]
    assert status["sessions"] == {"breakfast": {"total": 3, "completed": 2}}


def test_all_stops_marked_completes_session(memory_store, reconciler):
    _plan(memory_store)
    for order in (1, 2, 3):
        _deliver(memory_store, "breakfast", order)

    status = reconciler.get_status("R1", delivery_date=DELIVERY_DATE)

    # hub return stop is never marked and does not block completion
    assert status["completed_sessions"] == ["breakfast"]


def test_end_marker_without_stops_completes_session(memory_store, reconciler):
    memory_store.add_summary("lunch", driver_id="driverX", actual_end_time=DONE)

    status = reconciler.get_status("R1", delivery_date=DELIVERY_DATE)

    assert status["completed_sessions"] == ["lunch"]
    assert status["marked_stops"] == []


def test_end_marker_wins_over_partial_count(memory_store, reconciler):
    _plan(memory_store, session="dinner", count=5)
    _deliver(memory_store, "dinner", 1)
    _deliver(memory_store, "dinner", 2)
    memory_store.add_summary("dinner", actual_end_time=DONE)

    status = reconciler.get_status("R1", delivery_date=DELIVERY_DATE)

    assert status["completed_sessions"] == ["dinner"]
    assert status["sessions"]["dinner"] == {"total": 5, "completed": 2}


def test_session_casing_collapses_to_one_entry(memory_store, reconciler):
    memory_store.add_planned("BREAKFAST", 1)
    memory_store.add_planned("Breakfast", 2)
    _deliver(memory_store, "breakfast", 1)
    _deliver(memory_store, "BREAKFAST", 2)
    memory_store.add_summary("Breakfast", actual_end_time=DONE)

    status = reconciler.get_status("R1", delivery_date=DELIVERY_DATE)

    assert status["completed_sessions"] == ["breakfast"]
    assert {m["session"] for m in status["marked_stops"]} == {"breakfast"}


def test_repeated_reads_are_identical(memory_store, reconciler):
    _plan(memory_store)
    _plan(memory_store, session="lunch", count=2)
    _deliver(memory_store, "lunch", 2)
    _deliver(memory_store, "breakfast", 1)
    memory_store.add_actual("breakfast", 0, user_id="D-1", start_time=DONE)
    memory_store.add_summary("lunch", actual_end_time=DONE)

    first = reconciler.get_status("R1", delivery_date=DELIVERY_DATE)
    second = reconciler.get_status("R1", delivery_date=DELIVERY_DATE)

    assert first == second
    assert [(m["stop_order"], m["session"]) for m in first["marked_stops"]] == [(1, "breakfast"), (2, "lunch")]


def test_duplicate_rows_collapse_preferring_completed(memory_store, reconciler):
    _plan(memory_store, count=1)
    memory_store.add_actual("Breakfast", 1, delivery_status="arrived")
    _deliver(memory_store, "breakfast", 1)

    status = reconciler.get_status("R1", delivery_date=DELIVERY_DATE)

    assert len(status["marked_stops"]) == 1
    assert status["marked_stops"][0]["delivery_status"] == "delivered"


def test_journey_started_flag(memory_store, reconciler):
    _plan(memory_store)
    assert reconciler.get_status("R1", delivery_date=DELIVERY_DATE)["is_journey_started"] is False

    memory_store.add_actual("breakfast", 0, user_id="D-1", start_time=DONE)
    _deliver(memory_store, "breakfast", 1)
    memory_store.add_summary("breakfast", actual_end_time=DONE)

    assert reconciler.get_status("R1", delivery_date=DELIVERY_DATE)["is_journey_started"] is True


def test_driver_filter_applies_to_events_and_markers(memory_store, reconciler):
    _plan(memory_store, count=1)
    _deliver(memory_store, "breakfast", 1)
    memory_store.add_summary("lunch", driver_id="D-2", actual_end_time=DONE)

    mine = reconciler.get_status("R1", driver_id="D-1", delivery_date=DELIVERY_DATE)
    other = reconciler.get_status("R1", driver_id="D-2", delivery_date=DELIVERY_DATE)

    assert mine["completed_sessions"] == ["breakfast"]
    assert other["completed_sessions"] == ["lunch"]
    assert other["marked_stops"] == []


def test_other_dates_are_ignored(memory_store, reconciler):
    _plan(memory_store, count=1)
    memory_store.add_summary("breakfast", actual_end_time=DONE, delivery_date=DELIVERY_DATE.replace(day=2))

    assert reconciler.get_status("R1", delivery_date=DELIVERY_DATE)["completed_sessions"] == []


def test_failed_source_is_reported_as_degraded(memory_store, reconciler):
    _plan(memory_store, count=1)
    _deliver(memory_store, "breakfast", 1)
    memory_store.add_summary("lunch", actual_end_time=DONE)
    memory_store.failing.add("find_journey_summaries")

    status = reconciler.get_status("R1", delivery_date=DELIVERY_DATE)

    assert status["degraded_sources"] == ["journey_summaries"]
    assert status["completed_sessions"] == ["breakfast"]


def test_all_sources_failing_raises(memory_store, reconciler):
    memory_store.failing.update({
        "find_actual_stops", "find_actual_stops:started", "find_planned_stops", "find_journey_summaries",
    })

    with pytest.raises(StoreError):
        reconciler.get_status("R1", delivery_date=DELIVERY_DATE)
