import json
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status

from .config import PROVIDER_ROLE


@dataclass(frozen=True)
class Actor:
    user_id: str
    roles: frozenset[str]

    @property
    def is_provider(self) -> bool:
        return PROVIDER_ROLE in self.roles


def get_actor(request: Request) -> Actor:
    """Identity forwarded by the gateway after it verified the token."""
    sub = request.headers.get("X-User-Sub")
    if not sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Sub header",
        )

    try:
        roles = json.loads(request.headers.get("X-User-Roles") or "[]")
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed X-User-Roles header",
        )
    if not isinstance(roles, list):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed X-User-Roles header",
        )

    request.state.user_sub = sub
    request.state.user_roles = roles
    return Actor(user_id=sub, roles=frozenset(str(r).lower() for r in roles))


def require_provider(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_provider:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access forbidden for this role",
        )
    return actor
