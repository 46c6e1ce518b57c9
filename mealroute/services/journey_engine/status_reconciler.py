"""
Reconciled journey status.

Merges planned stops, stop events and session end markers into
``is_journey_started`` / ``marked_stops`` / ``completed_sessions``. The read
has no side effects and returns the same result for the same rows.
"""

from datetime import date
from typing import Any, Callable, Dict, List, Optional
from mealroute.core.errors import RetryHint, StoreError
from mealroute.core.logging_config import logger
from mealroute.services.journey_engine.completion import (
    count_based_completion,
    is_reached,
    marker_based_completion,
    normalize_session,
    session_stats,
    union_completed_sessions,
)
from mealroute.utils.clock import as_utc, local_today


def collapse_marked_stops(rows) -> List[Dict[str, Any]]:
    """
    One entry per (session, stop_order), sorted by stop_order then session.

    Retried writes from other producers can leave duplicate rows; the one with
    a completion time wins, then the most recently updated.
    """
    best: Dict[tuple, Any] = {}
    for row in rows:
        if not is_reached(row):
            continue
        key = (normalize_session(row.session), row.stop_order)
        current = best.get(key)
        if current is None or _prefer(row, current):
            best[key] = row

    marked = [
        {
            "stop_order": row.stop_order,
            "session": session,
            "delivery_status": (row.delivery_status or "").lower() or None,
            "actual_completion_time": as_utc(row.actual_completion_time),
            "delivery_id": row.delivery_id,
        }
        for (session, _), row in best.items()
    ]
    marked.sort(key=lambda m: (m["stop_order"], m["session"] or ""))
    return marked


def _prefer(candidate, current) -> bool:
    if (candidate.actual_completion_time is None) != (current.actual_completion_time is None):
        return candidate.actual_completion_time is not None
    candidate_updated = as_utc(getattr(candidate, "updated_at", None))
    current_updated = as_utc(getattr(current, "updated_at", None))
    if candidate_updated and current_updated and candidate_updated != current_updated:
        return candidate_updated > current_updated
    return (candidate.id or 0) > (current.id or 0)


class StatusReconciler:
    """
    Computes the reconciled status of a route for one date.

    Each of the four underlying queries may fail independently; a failed
    source is listed in ``degraded_sources`` and treated as empty. Only when
    every source fails is the error raised.
    """

    def __init__(self, store, settings):
        self.store = store
        self.settings = settings

    def get_status(
        self,
        route_id: str,
        driver_id: Optional[str] = None,
        delivery_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Get the reconciled status of a route.

        Args:
            route_id: Route to report on
            driver_id: Restrict stop events and end markers to one driver
            delivery_date: Journey date, defaults to today in DELIVERY_TIMEZONE

        Returns:
            Dict with route_id, date, is_journey_started, marked_stops,
            completed_sessions, sessions and degraded_sources

        Raises:
            StoreError: If none of the sources could be read
        """
        delivery_date = delivery_date or local_today(self.settings.delivery_tz)
        hub_name = self.settings.HUB_STOP_NAME
        degraded: List[str] = []

        def read(source: str, query: Callable[[], list]) -> list:
            try:
                return query()
            except StoreError as e:
                logger.warning(f"Status for route {route_id} degraded: {source} unavailable ({e.message})")
                degraded.append(source)
                return []

        started = read("journey_start", lambda: self.store.find_actual_stops(
            route_id, delivery_date, driver_id=driver_id, started_only=True))
        reached = read("marked_stops", lambda: self.store.find_actual_stops(
            route_id, delivery_date, driver_id=driver_id, completed_only=True))
        planned = read("planned_stops", lambda: self.store.find_planned_stops(route_id, delivery_date))
        summaries = read("journey_summaries", lambda: self.store.find_journey_summaries(
            route_id, delivery_date, driver_id=driver_id, ended_only=True))

        if len(degraded) == 4:
            raise StoreError(
                f"Status for route {route_id} is unavailable",
                code="STATUS_UNAVAILABLE",
                retry=RetryHint.SAFE,
            )

        completed_sessions = union_completed_sessions(
            count_based_completion(planned, reached, hub_name),
            marker_based_completion(summaries),
        )

        return {
            "route_id": route_id,
            "date": delivery_date,
            "is_journey_started": any(row.start_time is not None for row in started),
            "marked_stops": collapse_marked_stops(reached),
            "completed_sessions": completed_sessions,
            "sessions": session_stats(planned, reached, hub_name),
            "degraded_sources": degraded,
        }
