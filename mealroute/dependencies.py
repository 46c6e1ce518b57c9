from dataclasses import dataclass
from functools import lru_cache
from typing import Callable
from fastapi import Depends, HTTPException, status, Request
from jose import JWTError
from sqlalchemy.orm import Session
from mealroute.database import get_db
from mealroute.core.config import settings
from mealroute.core.roles import Role, RoleSet
from mealroute.core.security import verify_token
from mealroute.services.journey_engine import JourneyLifecycle, JourneyStore, RouteClient, StatusReconciler


@dataclass(frozen=True)
class Principal:
    user_id: str
    roles: RoleSet


def get_current_principal(request: Request) -> Principal:
    """
    Extract and validate the JWT from the Authorization Bearer header.

    Identity is issued elsewhere; this only checks the signature and reads
    the ``id`` and ``roles`` claims.

    Args:
        request: FastAPI Request to extract Authorization header

    Returns:
        Principal with the user id and parsed roles

    Raises:
        HTTPException 401: If the token is missing, invalid or has no id
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    authorization = request.headers.get("Authorization")
    if not authorization or not authorization.startswith("Bearer "):
        raise credentials_exception

    token = authorization.replace("Bearer ", "")
    try:
        payload = verify_token(token)
    except JWTError:
        raise credentials_exception

    user_id = payload.get("id")
    if user_id is None:
        raise credentials_exception

    return Principal(user_id=str(user_id), roles=RoleSet.parse(payload.get("roles")))


def require_roles(*roles: Role) -> Callable[..., Principal]:
    """Dependency factory: the principal must hold at least one of ``roles``."""

    def checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not principal.roles.has_any(*roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role for this operation",
            )
        return principal

    return checker


require_delivery_staff = require_roles(Role.DELIVERY_MANAGER, Role.DELIVERY_EXECUTIVE)
require_delivery_manager = require_roles(Role.DELIVERY_MANAGER)


@lru_cache
def get_route_client() -> RouteClient:
    return RouteClient(settings)


def get_journey_store(db: Session = Depends(get_db)) -> JourneyStore:
    return JourneyStore(db)


def get_journey_lifecycle(
    store: JourneyStore = Depends(get_journey_store),
    route_client: RouteClient = Depends(get_route_client),
) -> JourneyLifecycle:
    return JourneyLifecycle(store, route_client, settings)


def get_status_reconciler(store: JourneyStore = Depends(get_journey_store)) -> StatusReconciler:
    return StatusReconciler(store, settings)
