import json
import os
import tempfile
from datetime import date, datetime, timezone

os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(tempfile.mkdtemp(), 'mealroute.db')}")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ROUTE_ENGINE_BASE_URL", "http://engine.test")
os.environ.setdefault("ROUTE_ENGINE_API_KEY", "engine-test-key")
os.environ.setdefault("DELIVERY_TIMEZONE", "Asia/Kolkata")

import httpx
import pytest
from fastapi.testclient import TestClient

from main import app
from mealroute.core.config import settings
from mealroute.core.errors import StoreError
from mealroute.core.security import create_access_token
from mealroute.database import Base, SessionLocal, engine
from mealroute.dependencies import get_route_client
from mealroute.models import ActualStop, JourneySummary, PlannedStop
from mealroute.services.journey_engine import JourneyLifecycle, JourneyStore, RouteClient
from mealroute.services.journey_engine.completion import is_reached, normalize_session


DELIVERY_DATE = date(2024, 6, 1)


@pytest.fixture(autouse=True)
def reset_db():
    engine.dispose()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def store(db):
    return JourneyStore(db)


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def clock():
    # 13:30 in Asia/Kolkata, same calendar day as DELIVERY_DATE
    return FixedClock(datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc))


class FakeRouteEngine:
    """
    Stand-in for the Route Optimization Engine behind an httpx.MockTransport.

    ``responses`` maps a request path to a JSON body, a (status, body) tuple
    or a callable taking the httpx.Request.
    """

    def __init__(self):
        self.responses = {}
        self.requests = []

    def calls(self, path):
        return [body for p, body in self.requests if p == path]

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else None
        self.requests.append((path, body))

        reply = self.responses.get(path)
        if reply is None:
            return httpx.Response(404, json={"success": False, "error": f"no route for {path}"})
        if callable(reply):
            return reply(request)
        if isinstance(reply, tuple):
            status_code, payload = reply
            return httpx.Response(status_code, json=payload)
        return httpx.Response(200, json=reply)


@pytest.fixture()
def engine_api():
    return FakeRouteEngine()


@pytest.fixture()
def route_client(engine_api):
    return RouteClient(settings, transport=httpx.MockTransport(engine_api.handle))


@pytest.fixture()
def lifecycle(store, route_client, clock):
    return JourneyLifecycle(store, route_client, settings, clock=clock)


@pytest.fixture()
def seed_plan(db):
    """Insert planned stops 1..count for a session, followed by a hub return stop."""

    def seed(route_id="R1", session="breakfast", count=3, delivery_date=DELIVERY_DATE, hub=True):
        stops = [
            PlannedStop(
                route_id=route_id,
                delivery_date=delivery_date,
                session=session,
                stop_order=order,
                delivery_id=f"{route_id}-{session}-{order}",
                delivery_name=f"Customer {order}",
                latitude=12.9 + order / 100,
                longitude=77.5 + order / 100,
            )
            for order in range(1, count + 1)
        ]
        if hub:
            stops.append(PlannedStop(
                route_id=route_id,
                delivery_date=delivery_date,
                session=session,
                stop_order=count + 1,
                delivery_name=settings.HUB_STOP_NAME,
            ))
        db.add_all(stops)
        db.commit()
        return [stop.id for stop in stops]

    return seed


@pytest.fixture()
def client(route_client):
    app.dependency_overrides[get_route_client] = lambda: route_client
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth_headers(roles, user_id="D-1"):
    token = create_access_token({"id": user_id, "roles": roles})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def driver_headers():
    return auth_headers(["DELIVERY_EXECUTIVE"], user_id="D-1")


@pytest.fixture()
def manager_headers():
    return auth_headers("DELIVERY_MANAGER,ADMIN", user_id="M-1")


class InMemoryJourneyStore:
    """Read side of JourneyStore over plain lists; ``failing`` names queries that raise."""

    def __init__(self):
        self.planned = []
        self.actual = []
        self.summaries = []
        self.failing = set()

    def _check(self, name):
        if name in self.failing:
            raise StoreError(f"{name} unavailable")

    def add_planned(self, session, stop_order, delivery_name=None, route_id="R1", delivery_date=DELIVERY_DATE):
        self.planned.append(PlannedStop(
            id=f"{route_id}-{session}-{stop_order}",
            route_id=route_id,
            delivery_date=delivery_date,
            session=session,
            stop_order=stop_order,
            delivery_name=delivery_name or f"Customer {stop_order}",
        ))

    def add_actual(self, session, stop_order, route_id="R1", delivery_date=DELIVERY_DATE, **fields):
        self.actual.append(ActualStop(
            route_id=route_id,
            delivery_date=delivery_date,
            session=session,
            stop_order=stop_order,
            **fields,
        ))

    def add_summary(self, session, driver_id="D-1", route_id="R1", delivery_date=DELIVERY_DATE, **fields):
        self.summaries.append(JourneySummary(
            route_id=route_id,
            delivery_date=delivery_date,
            session=session,
            driver_id=driver_id,
            **fields,
        ))

    def find_actual_stops(self, route_id, delivery_date, driver_id=None, started_only=False, completed_only=False):
        self._check("find_actual_stops" if not started_only else "find_actual_stops:started")
        rows = [a for a in self.actual if a.route_id == route_id and a.delivery_date == delivery_date]
        if driver_id is not None:
            rows = [a for a in rows if a.user_id == driver_id]
        if started_only:
            rows = [a for a in rows if a.start_time is not None]
        if completed_only:
            rows = [a for a in rows if is_reached(a)]
        return sorted(rows, key=lambda a: (a.stop_order, a.session))

    def find_planned_stops(self, route_id, delivery_date, session=None):
        self._check("find_planned_stops")
        rows = [p for p in self.planned if p.route_id == route_id and p.delivery_date == delivery_date]
        if session is not None:
            rows = [p for p in rows if normalize_session(p.session) == session.lower()]
        return sorted(rows, key=lambda p: (p.session, p.stop_order))

    def find_journey_summaries(self, route_id, delivery_date, driver_id=None, ended_only=False):
        self._check("find_journey_summaries")
        rows = [s for s in self.summaries if s.route_id == route_id and s.delivery_date == delivery_date]
        if driver_id is not None:
            rows = [s for s in rows if s.driver_id == driver_id]
        if ended_only:
            rows = [s for s in rows if s.actual_end_time is not None]
        return rows


@pytest.fixture()
def memory_store():
    return InMemoryJourneyStore()
