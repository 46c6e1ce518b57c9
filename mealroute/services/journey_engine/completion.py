"""
Session completion rules.

A meal session is complete when either

* every planned stop of the session (hub return excluded) has been reached
  (count-based), or
* someone explicitly ended it, recorded as a JourneySummary end time
  (marker-based).

The reported set is the union of the two. Session names from other producers
may come in any casing, so everything is lowercased before comparison.
"""

from typing import Dict, Iterable, List, Optional, Set
from mealroute.models.actual_stop import REACHED_STATUSES, START_MARKER_ORDER
from mealroute.models.planned_stop import SESSION_ORDER


def normalize_session(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    name = str(value).strip().lower()
    return name or None


def session_sort_key(name: str):
    return (SESSION_ORDER.get(name, len(SESSION_ORDER)), name)


def is_hub_stop(stop, hub_name: str) -> bool:
    name = (getattr(stop, "delivery_name", None) or "").strip().lower()
    return name == hub_name.strip().lower()


def is_reached(actual) -> bool:
    """A stop event counts as reached when timed or reported delivered/arrived."""
    if actual.stop_order is None or actual.stop_order <= START_MARKER_ORDER:
        return False
    if actual.actual_completion_time is not None:
        return True
    status = (actual.delivery_status or "").strip().lower()
    return status in REACHED_STATUSES


def reached_keys(marked: Iterable) -> Set[tuple]:
    return {
        (normalize_session(a.session), a.stop_order)
        for a in marked
        if is_reached(a) and normalize_session(a.session)
    }


def session_stats(planned: Iterable, marked: Iterable, hub_name: str) -> Dict[str, Dict[str, int]]:
    """
    Per-session ``{"total", "completed"}`` counts over non-hub planned stops.

    ``completed`` counts the session's planned stop orders that appear among
    the reached events, so duplicate events for one stop count once.
    """
    orders: Dict[str, Set[int]] = {}
    for stop in planned:
        session = normalize_session(stop.session)
        if session is None or is_hub_stop(stop, hub_name):
            continue
        orders.setdefault(session, set()).add(stop.stop_order)

    keys = reached_keys(marked)
    stats = {}
    for session in sorted(orders, key=session_sort_key):
        session_orders = orders[session]
        completed = sum(1 for order in session_orders if (session, order) in keys)
        stats[session] = {"total": len(session_orders), "completed": completed}
    return stats


def count_based_completion(planned: Iterable, marked: Iterable, hub_name: str) -> Set[str]:
    stats = session_stats(planned, marked, hub_name)
    return {
        session
        for session, counts in stats.items()
        if counts["total"] > 0 and counts["total"] == counts["completed"]
    }


def marker_based_completion(summaries: Iterable) -> Set[str]:
    return {
        normalize_session(summary.session)
        for summary in summaries
        if summary.actual_end_time is not None and normalize_session(summary.session)
    }


def union_completed_sessions(count_based: Iterable[str], marker_based: Iterable[str]) -> List[str]:
    """Deduplicated lowercase union, in meal order (breakfast, lunch, dinner, others)."""
    names = {normalize_session(s) for s in count_based} | {normalize_session(s) for s in marker_based}
    names.discard(None)
    return sorted(names, key=session_sort_key)
