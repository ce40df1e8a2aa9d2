"""
rapbattle/rbac.py
Role-based access at the HTTP boundary.

Identity is issued elsewhere; an upstream gateway forwards the
authenticated actor as headers:
    X-Actor-Id:    integer user id
    X-Actor-Roles: comma-separated roles (judge, artist, admin)
"""
import logging
from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import FrozenSet, List, Optional

from fastapi import Depends, Header

from rapbattle.errors import AuthRequiredError, NotAuthorizedError

logger = logging.getLogger(__name__)


class ActorRole(str, PyEnum):
    JUDGE = "judge"
    ARTIST = "artist"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    id: int
    roles: FrozenSet[ActorRole]

    def has_any(self, roles: List[ActorRole]) -> bool:
        return any(role in self.roles for role in roles)


def _parse_roles(raw: Optional[str]) -> FrozenSet[ActorRole]:
    roles = set()
    for token in (raw or "").split(","):
        token = token.strip().lower()
        if not token:
            continue
        try:
            roles.add(ActorRole(token))
        except ValueError:
            logger.debug(f"Ignoring unknown role '{token}'")
    return frozenset(roles)


async def get_current_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_roles: Optional[str] = Header(default=None),
) -> Actor:
    """Actor forwarded by the gateway. 401 if absent or malformed."""
    if not x_actor_id:
        raise AuthRequiredError()
    try:
        actor_id = int(x_actor_id)
    except ValueError:
        raise AuthRequiredError("X-Actor-Id must be an integer")
    return Actor(id=actor_id, roles=_parse_roles(x_actor_roles))


def require_role(allowed_roles: List[ActorRole]):
    """
    Dependency factory: require one of the given roles.
    Usage: actor: Actor = Depends(require_role([ActorRole.JUDGE]))
    """
    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not actor.has_any(allowed_roles):
            logger.warning(
                f"Access denied: actor {actor.id} with roles {sorted(r.value for r in actor.roles)} "
                f"attempted to access resource requiring {[r.value for r in allowed_roles]}"
            )
            raise NotAuthorizedError(
                f"This action requires one of: {[r.value for r in allowed_roles]}",
                details={"required_roles": [r.value for r in allowed_roles]},
            )
        return actor
    return dependency
