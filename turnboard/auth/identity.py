"""Actor resolution for requests authenticated by the external identity provider.

The provider issues the bearer token; this module only verifies it and reads
the subject id, display name and role from its claims.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from ..config import settings

bearer_scheme = HTTPBearer(auto_error=False)

SYSTEM_ACTOR_ID = "system"


@dataclass(frozen=True)
class Actor:
    user_id: str
    user_name: str
    user_role: str = "Technician"

    def has_any_role(self, *role_names: str) -> bool:
        return self.user_role in set(role_names)


SYSTEM_ACTOR = Actor(user_id=SYSTEM_ACTOR_ID, user_name="System", user_role="Admin")


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def actor_from_claims(payload: dict) -> Optional[Actor]:
    user_id = payload.get("sub")
    if not user_id:
        return None
    return Actor(
        user_id=str(user_id),
        user_name=payload.get("name") or payload.get("email") or str(user_id),
        user_role=payload.get("role") or "Viewer",
    )


def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> Actor:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception
    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise credentials_exception
    actor = actor_from_claims(payload)
    if actor is None:
        raise credentials_exception
    return actor


def require_roles(*allowed_roles: str):
    allowed = set(allowed_roles)

    def role_checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not allowed:
            return actor
        if actor.has_any_role(*allowed):
            return actor
        raise HTTPException(status_code=403, detail="Operation not permitted for your role")

    return role_checker
