from .route_planning import route_planning_service

__all__ = ["route_planning_service"]
