"""
Route Optimization Engine API client.

Handles communication with the external engine that plans routes, predicts
start times, reorders stops and estimates live traffic. The engine's
algorithms are not reproduced here; this module only speaks its HTTP contract.
"""

import httpx
from typing import Any, Dict, List, Optional
from urllib.parse import quote
from mealroute.core.config import settings as default_settings
from mealroute.core.errors import UpstreamError
from mealroute.core.logging_config import logger


class RouteClient:
    """
    Client for the Route Optimization Engine.

    Every call has a hard timeout and is attempted exactly once. Failures are
    raised as ``UpstreamError``:

    - timeout: 504 ``UPSTREAM_TIMEOUT``
    - connection failure: 503 ``UPSTREAM_UNAVAILABLE``
    - non-2xx response: 502 ``UPSTREAM_ERROR`` carrying the engine's status
    - ``success: false`` or an unreadable body: 502 ``UPSTREAM_REJECTED`` / ``UPSTREAM_INVALID_RESPONSE``
    """

    def __init__(self, settings=None, transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize the client.

        Args:
            settings: Settings providing base URL, API key and timeouts
                (defaults to the application settings)
            transport: Optional httpx transport, used by tests
        """
        self.settings = settings or default_settings
        self.base_url = self.settings.ROUTE_ENGINE_BASE_URL.rstrip("/")
        self.transport = transport
        if not self.settings.ROUTE_ENGINE_API_KEY:
            logger.warning("ROUTE_ENGINE_API_KEY not set. Engine requests are sent unauthenticated.")

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.ROUTE_ENGINE_API_KEY:
            headers["Authorization"] = f"Bearer {self.settings.ROUTE_ENGINE_API_KEY}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        timeout: float,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            with httpx.Client(transport=self.transport, headers=self._headers()) as client:
                response = client.request(method, url, json=payload, timeout=timeout)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException:
            logger.error(f"Route engine {operation} timed out after {timeout}s")
            raise UpstreamError(
                f"Route engine did not answer {operation} within {timeout:g}s",
                code="UPSTREAM_TIMEOUT",
                status_code=504,
            )
        except httpx.HTTPStatusError as e:
            message = self._error_message(e.response) or f"Route engine {operation} failed"
            logger.error(f"Route engine {operation} error: {e.response.status_code} - {message}")
            raise UpstreamError(
                message,
                upstream_status=e.response.status_code,
                code="UPSTREAM_ERROR",
            )
        except httpx.RequestError as e:
            logger.error(f"Route engine {operation} unreachable: {type(e).__name__}: {str(e)}")
            raise UpstreamError(
                "Route engine is unavailable",
                code="UPSTREAM_UNAVAILABLE",
                status_code=503,
            )
        except ValueError:
            logger.error(f"Route engine {operation} returned a non-JSON body")
            raise UpstreamError(
                f"Route engine returned an unreadable response for {operation}",
                code="UPSTREAM_INVALID_RESPONSE",
            )

        if not isinstance(data, dict):
            raise UpstreamError(
                f"Route engine returned an unexpected payload for {operation}",
                code="UPSTREAM_INVALID_RESPONSE",
            )
        if data.get("success") is False:
            message = data.get("error") or data.get("message") or f"Route engine rejected {operation}"
            logger.error(f"Route engine rejected {operation}: {message}")
            raise UpstreamError(message, code="UPSTREAM_REJECTED", details={"response": data})

        return data

    @staticmethod
    def _error_message(response: httpx.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return response.text or None
        if isinstance(body, dict):
            return body.get("error") or body.get("message") or body.get("detail")
        return None

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/api/health", "health", self.settings.TRAFFIC_CHECK_TIMEOUT_SECONDS)

    def plan(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Plan routes for a delivery date and session.

        Args:
            payload: ``delivery_date``, ``delivery_session``, ``num_drivers``
                and optional ``depot_location``

        Returns:
            Engine response with a ``routes`` list
        """
        logger.info(
            f"Requesting route plan: date={payload.get('delivery_date')}, "
            f"session={payload.get('delivery_session')}, drivers={payload.get('num_drivers')}"
        )
        return self._request(
            "POST", "/api/route/plan", "plan", self.settings.ROUTE_ENGINE_TIMEOUT_SECONDS, payload
        )

    def predict_start_time(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Predict a start time for ``route_id`` or for a date/session/depot."""
        return self._request(
            "POST",
            "/api/route/predict-start-time",
            "predict_start_time",
            self.settings.ROUTE_ENGINE_TIMEOUT_SECONDS,
            payload,
        )

    def reoptimize(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Ask the engine for a new stop order.

        Args:
            payload: ``route_id`` plus optional ``current_location``,
                ``delay_minutes``, ``traffic_data``, ``weather_data`` and the
                ``remaining_stops`` still to visit

        Returns:
            Engine response; ``route_order`` holds the proposed order
        """
        logger.info(f"Requesting reoptimization for route {payload.get('route_id')}")
        return self._request(
            "POST", "/api/route/reoptimize", "reoptimize", self.settings.ROUTE_ENGINE_TIMEOUT_SECONDS, payload
        )

    def check_traffic(
        self,
        route_id: str,
        current_location: Optional[Dict[str, float]] = None,
        check_all_segments: bool = True,
    ) -> Dict[str, Any]:
        """
        Live traffic estimate for the remaining segments of a route.

        Returns:
            Engine response with ``traffic_segments`` and, when configured on
            the engine, ``reoptimize_threshold``
        """
        payload = {
            "route_id": route_id,
            "current_location": current_location,
            "check_all_segments": check_all_segments,
        }
        return self._request(
            "POST",
            "/api/journey/check-traffic",
            "check_traffic",
            self.settings.TRAFFIC_CHECK_TIMEOUT_SECONDS,
            payload,
        )

    def push_vehicle_tracking(
        self,
        route_id: str,
        tracking_points: List[Dict[str, Any]],
        driver_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Forward GPS points recorded by a driver's device.

        Returns:
            Engine response, usually with ``points_saved`` and ``total_distance_km``
        """
        payload = {
            "route_id": route_id,
            "driver_id": driver_id,
            "session_id": session_id,
            "tracking_points": tracking_points,
        }
        data = self._request(
            "POST",
            "/api/vehicle-tracking",
            "vehicle_tracking",
            self.settings.TRAFFIC_CHECK_TIMEOUT_SECONDS,
            payload,
        )
        logger.info(
            f"Vehicle tracking saved for route {route_id}: "
            f"{data.get('points_saved', len(tracking_points))} points"
        )
        return data

    def tracking_status(self, route_id: str) -> Dict[str, Any]:
        return self._request(
            "GET",
            f"/api/route/tracking-status/{quote(route_id, safe='')}",
            "tracking_status",
            self.settings.TRAFFIC_CHECK_TIMEOUT_SECONDS,
        )

    def complete_driver_session(self, session_id: str, route_id: str) -> Dict[str, Any]:
        """Tell the engine a driver session is finished."""
        logger.info(f"Completing driver session {session_id} for route {route_id}")
        return self._request(
            "POST",
            f"/api/driver-session/{quote(str(session_id), safe='')}/complete",
            "complete_driver_session",
            self.settings.ROUTE_ENGINE_TIMEOUT_SECONDS,
            {"route_id": route_id},
        )
