"""Access tiers for admin endpoints.

Handlers receive an explicit ActorContext from a dependency instead of
reading session state themselves. Services take the actor as an argument
so every mutation knows who made it.
"""

from dataclasses import dataclass
from typing import Any, Optional

import structlog
from fastapi import Request

from recruit_api.middleware.error_handler import ForbiddenError, UnauthorizedError
from recruit_api.middleware.security import get_client_ip

logger = structlog.get_logger()


@dataclass(frozen=True)
class ActorContext:
    """Who is performing an action, and at which tier."""

    user_id: Optional[str]
    email: Optional[str] = None
    is_admin: bool = False
    has_access: bool = False
    ip_address: Optional[str] = None

    @property
    def can_access(self) -> bool:
        return self.is_admin or self.has_access

    @classmethod
    def from_claims(cls, claims: dict[str, Any], ip_address: Optional[str] = None) -> "ActorContext":
        return cls(
            user_id=claims.get("dbUserId"),
            email=claims.get("email"),
            is_admin=bool(claims.get("isAdmin", False)),
            has_access=bool(claims.get("hasAccess", False)),
            ip_address=ip_address,
        )


# Actor used for changes driven by inbound webhooks
SYSTEM_ACTOR = ActorContext(user_id=None, email="system", is_admin=False, has_access=False)


def get_actor(request: Request) -> ActorContext:
    """
    Dependency that requires a session and returns the acting user.

    Usage:
        @router.get("/me")
        def get_me(actor: ActorContext = Depends(get_actor)):
            return actor
    """
    claims = getattr(request.state, "user", None)
    if not claims:
        raise UnauthorizedError()
    return ActorContext.from_claims(claims, ip_address=get_client_ip(request))


def require_access(request: Request) -> ActorContext:
    """Dependency that requires the pipeline access tier (or admin)."""
    actor = get_actor(request)
    if not actor.can_access:
        logger.warning("Access tier check failed", user=actor.user_id, required="access")
        raise ForbiddenError()
    return actor


def require_admin(request: Request) -> ActorContext:
    """
    Dependency that requires the admin tier.

    Usage:
        @router.delete("/dangerous")
        def delete_all(actor: ActorContext = Depends(require_admin)):
            ...
    """
    actor = get_actor(request)
    if not actor.is_admin:
        logger.warning("Access tier check failed", user=actor.user_id, required="admin")
        raise ForbiddenError("Admin access required")
    return actor
