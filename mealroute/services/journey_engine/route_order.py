"""
Applying an engine-proposed stop order to the stored plan.

Only stops nobody has reported on yet may move. Stops with recorded events
keep their stop_order so their ActualStop rows stay linked, the hub return
stays last in its session, and stops the engine adds are appended.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
from mealroute.core.errors import UpstreamError
from mealroute.models.actual_stop import START_MARKER_ORDER
from mealroute.services.journey_engine.completion import is_hub_stop, normalize_session, session_sort_key


@dataclass
class ReorderPlan:
    orders: Dict[str, int] = field(default_factory=dict)  # planned stop id -> new stop_order
    new_stops: List[Dict[str, Any]] = field(default_factory=list)
    stamp_ids: List[str] = field(default_factory=list)
    locked_ids: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.orders or self.new_stops)


def extract_route_order(response: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Pull the proposed order out of an engine response.

    Raises:
        UpstreamError: If the order is present but not a list of objects
    """
    entries = response.get("route_order")
    if entries is None:
        entries = response.get("updated_route_order")
    if entries is None:
        return []
    if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
        raise UpstreamError(
            "Route engine returned a malformed route order",
            code="UPSTREAM_INVALID_RESPONSE",
            details={"route_order": entries},
        )
    return entries


def _entry_stop_id(entry: Dict[str, Any]) -> Optional[str]:
    value = entry.get("planned_stop_id") or entry.get("id")
    return str(value) if value is not None else None


def _entry_delivery_id(entry: Dict[str, Any]) -> Optional[str]:
    value = entry.get("delivery_id")
    return str(value) if value is not None else None


def plan_reorder(
    planned: Iterable,
    actual: Iterable,
    entries: List[Dict[str, Any]],
    hub_name: str,
) -> ReorderPlan:
    """
    Work out the stop_order changes for a proposed route order.

    Entries are matched to planned stops by ``planned_stop_id`` and then by
    ``delivery_id``. Within each session the pending stops are permuted over
    the slots they already occupy: mentioned stops in engine order, then
    unmentioned ones in their current order. Unknown entries become new stops
    after the last existing stop, and hub stops are moved behind them.

    Raises:
        UpstreamError: If an entry cannot be identified or placed. Nothing has
            been written at that point.
    """
    planned = list(planned)
    event_keys = {
        (normalize_session(a.session), a.stop_order)
        for a in actual
        if a.stop_order is not None and a.stop_order > START_MARKER_ORDER
    }

    by_id = {stop.id: stop for stop in planned}
    by_delivery: Dict[str, List[Any]] = {}
    for stop in planned:
        if stop.delivery_id is not None:
            by_delivery.setdefault(str(stop.delivery_id), []).append(stop)

    sessions: Dict[str, List[Any]] = {}
    for stop in planned:
        sessions.setdefault(normalize_session(stop.session), []).append(stop)

    plan = ReorderPlan()
    locked = set()
    for stop in planned:
        if (normalize_session(stop.session), stop.stop_order) in event_keys:
            locked.add(stop.id)
    plan.locked_ids = sorted(locked)

    mentioned: Dict[str, List[Any]] = {session: [] for session in sessions}
    seen = set()
    appended: Dict[str, List[Dict[str, Any]]] = {}

    for position, entry in enumerate(entries):
        stop_id = _entry_stop_id(entry)
        delivery_id = _entry_delivery_id(entry)
        if stop_id is None and delivery_id is None:
            raise UpstreamError(
                "Route engine returned a stop without planned_stop_id or delivery_id",
                code="UPSTREAM_INVALID_RESPONSE",
                details={"position": position, "entry": entry},
            )

        stop = by_id.get(stop_id) if stop_id else None
        if stop is None and delivery_id is not None:
            candidates = by_delivery.get(delivery_id, [])
            entry_session = normalize_session(entry.get("session"))
            if entry_session:
                candidates = [c for c in candidates if normalize_session(c.session) == entry_session]
            stop = candidates[0] if candidates else None

        if stop is not None:
            if stop.id in seen or stop.id in locked or is_hub_stop(stop, hub_name):
                continue
            seen.add(stop.id)
            mentioned[normalize_session(stop.session)].append(stop)
            continue

        if stop_id is not None and delivery_id is None:
            raise UpstreamError(
                f"Route engine referenced unknown planned stop {stop_id}",
                code="UPSTREAM_INVALID_RESPONSE",
                details={"position": position, "entry": entry},
            )

        session = normalize_session(entry.get("session"))
        if session is None and len(sessions) == 1:
            session = next(iter(sessions))
        if session is None:
            raise UpstreamError(
                f"Route engine added delivery {delivery_id} without a session",
                code="UPSTREAM_INVALID_RESPONSE",
                details={"position": position, "entry": entry},
            )
        if any(s.get("delivery_id") == delivery_id for s in appended.get(session, [])):
            continue
        appended.setdefault(session, []).append({
            "delivery_id": delivery_id,
            "delivery_name": entry.get("delivery_name"),
            "customer_name": entry.get("customer_name"),
            "latitude": entry.get("latitude"),
            "longitude": entry.get("longitude"),
            "session": session,
        })

    for session in sorted(set(sessions) | set(appended), key=session_sort_key):
        stops = sorted(sessions.get(session, []), key=lambda s: s.stop_order)
        hubs = [s for s in stops if s.id not in locked and is_hub_stop(s, hub_name)]
        pending = [s for s in stops if s.id not in locked and not is_hub_stop(s, hub_name)]

        ordered = mentioned.get(session, []) + [s for s in pending if s.id not in seen]
        slots = sorted(s.stop_order for s in pending)
        for stop, slot in zip(ordered, slots):
            if stop.stop_order != slot:
                plan.orders[stop.id] = slot

        non_hub_orders = [s.stop_order for s in stops if s not in hubs]
        next_order = max(non_hub_orders, default=0) + 1
        for new_stop in appended.get(session, []):
            plan.new_stops.append({**new_stop, "stop_order": next_order})
            next_order += 1
        for hub in hubs:
            if hub.stop_order != next_order:
                plan.orders[hub.id] = next_order
            next_order += 1

        plan.stamp_ids.extend(s.id for s in pending + hubs)

    return plan
