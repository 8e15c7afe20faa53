"""
FastAPI Authentication Dependencies for Microservices

Identity is verified upstream by the gateway, which forwards the caller as
headers. These dependencies only read and check those headers.
"""

from dataclasses import dataclass
from fastapi import Header, HTTPException, status, Request
from typing import Optional
import logging
import os

logger = logging.getLogger(__name__)

# Internal service authentication
INTERNAL_SERVICE_SECRET = os.getenv(
    "INTERNAL_SERVICE_SECRET",
    "dev-internal-secret-change-in-production"
)

ROLE_RIDER = "rider"
ROLE_ADMIN = "admin"
ROLE_SYSTEM = "system"
KNOWN_ROLES = {ROLE_RIDER, ROLE_ADMIN, ROLE_SYSTEM}


@dataclass(frozen=True)
class AuthenticatedActor:
    """Caller identity forwarded by the gateway"""
    actor_id: str
    role: str


async def require_actor(
    request: Request,
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
    x_internal_service: Optional[str] = Header(None, alias="X-Internal-Service"),
    x_internal_service_secret: Optional[str] = Header(None, alias="X-Internal-Service-Secret"),
) -> AuthenticatedActor:
    """
    Authentication dependency: forwarded user or internal service.

    Priority:
    1. Internal service (X-Internal-Service + X-Internal-Service-Secret) -> system actor
    2. Forwarded user (X-User-Id + X-User-Role)

    Raises:
        HTTPException 401: no usable identity
    """
    if x_internal_service == "true" and x_internal_service_secret:
        if x_internal_service_secret == INTERNAL_SERVICE_SECRET:
            logger.debug(f"Internal service request to {request.url.path}")
            return AuthenticatedActor(actor_id="internal-service", role=ROLE_SYSTEM)
        client_host = request.client.host if request.client else "unknown"
        logger.warning(f"Invalid internal service secret from {client_host}")

    role = (x_user_role or "").strip().lower()
    if x_user_id and role in KNOWN_ROLES:
        return AuthenticatedActor(actor_id=x_user_id, role=role)

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="User authentication required"
    )


def require_role(role: str):
    """
    Build a dependency that only admits actors with the given role.

    Usage:
        @app.get("/api/v1/admin/resource")
        async def get_resource(actor: AuthenticatedActor = Depends(require_role("admin"))):
            ...
    """

    async def dependency(
        request: Request,
        x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
        x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
        x_internal_service: Optional[str] = Header(None, alias="X-Internal-Service"),
        x_internal_service_secret: Optional[str] = Header(None, alias="X-Internal-Service-Secret"),
    ) -> AuthenticatedActor:
        actor = await require_actor(
            request, x_user_id, x_user_role, x_internal_service, x_internal_service_secret
        )
        if actor.role != role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{role.capitalize()} access required"
            )
        return actor

    return dependency


__all__ = [
    "AuthenticatedActor",
    "require_actor",
    "require_role",
    "ROLE_RIDER",
    "ROLE_ADMIN",
    "ROLE_SYSTEM",
]
