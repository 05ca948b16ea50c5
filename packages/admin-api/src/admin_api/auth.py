"""Bearer token authentication.

A token resolves to an explicit Principal; route handlers build the flag
evaluation context from it instead of looking up a "current user".
"""
from __future__ import annotations

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from admin_api.deps import get_session_registry, get_settings
from admin_api.sessions import Principal, SessionRegistry
from financbase.config import FlagSettings

security = HTTPBearer(auto_error=False)


async def get_principal(
    credentials: HTTPAuthorizationCredentials | None = Security(security),
    registry: SessionRegistry = Depends(get_session_registry),
) -> Principal:
    """Resolve the Bearer token to a principal, or reject with 401."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    principal = registry.resolve(credentials.credentials)
    if principal is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return principal


async def require_admin(
    principal: Principal = Depends(get_principal),
    settings: FlagSettings = Depends(get_settings),
) -> Principal:
    """Allow only admin principals (flagged admin or listed in FLAGS_ADMIN_USER_IDS)."""
    if not (principal.is_admin or principal.user_id in settings.admin_ids):
        raise HTTPException(status_code=403, detail="Admin access required")
    return principal
