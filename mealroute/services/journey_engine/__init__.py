"""
Journey engine package.

This package provides modular components for:
- Talking to the external Route Optimization Engine
- Persisting planned stops, stop events and session markers
- Reconciling those records into a journey status
- Evaluating live traffic and applying reoptimized stop orders
- Driving the per-route journey lifecycle
"""

from .journey_store import JourneyStore
from .route_client import RouteClient
from .traffic_monitor import TrafficMonitor, TrafficAssessment
from .status_reconciler import StatusReconciler
from .plan_storage import PlanStorage
from .lifecycle import JourneyLifecycle

__all__ = [
    "JourneyStore",
    "RouteClient",
    "TrafficMonitor",
    "TrafficAssessment",
    "StatusReconciler",
    "PlanStorage",
    "JourneyLifecycle",
]
