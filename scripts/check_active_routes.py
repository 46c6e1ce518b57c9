"""
python -m scripts.check_active_routes

Runs a traffic check for every route started today whose journey has not
ended. Meant to be scheduled (cron, platform scheduler) every few minutes;
routes inside their reoptimization cooldown are checked but not reordered.
"""

import sys

sys.path.insert(0, ".")

from dotenv import load_dotenv
load_dotenv()

from mealroute.database import SessionLocal
from mealroute.core.config import settings
from mealroute.core.errors import JourneyError
from mealroute.core.logging_config import logger
from mealroute.services.journey_engine import JourneyLifecycle, JourneyStore, RouteClient
from mealroute.utils.clock import local_today


def check_active_routes() -> int:
    """Check traffic on active routes. Returns the number of failed checks."""
    today = local_today(settings.delivery_tz)
    route_client = RouteClient(settings)
    db = SessionLocal()
    failures = 0

    try:
        store = JourneyStore(db)
        lifecycle = JourneyLifecycle(store, route_client, settings)
        route_ids = store.find_started_routes(today)
        print(f"Active routes on {today}: {len(route_ids)}")

        for route_id in route_ids:
            try:
                result = lifecycle.check_traffic(route_id, delivery_date=today)
            except JourneyError as e:
                failures += 1
                logger.error(f"Traffic check failed for route {route_id}: {e}")
                continue
            print(
                f"{route_id}: max={result['max_traffic_multiplier']}, "
                f"heavy={result['heavy_traffic_detected']}, reoptimized={result['reoptimized']}"
            )
    finally:
        db.close()

    return failures


if __name__ == "__main__":
    sys.exit(1 if check_active_routes() else 0)
