"""Shared FastAPI dependencies for authentication and authorization."""

from __future__ import annotations

import asyncio
import logging
import time
from functools import lru_cache
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from classroom.core.config import get_settings
from classroom.db.supabase import get_supabase


logger = logging.getLogger("auth.deps")
security = HTTPBearer(auto_error=True)

_ROLE_ALIASES = {
    "student": "student",
    "estudiante": "student",
    "teacher": "teacher",
    "docente": "teacher",
    "admin": "admin",
}


class CurrentUser(BaseModel):
    """Minimal user identity shared across endpoints."""
    id: str
    email: str
    role: str


def normalise_role(raw: Optional[str]) -> str:
    value = str(raw or "").strip().lower()
    return _ROLE_ALIASES.get(value, value or "student")


@lru_cache()
def _admin_roles() -> set[str]:
    return {"admin"}


async def _lookup_role(user_id: str) -> str:
    client = await get_supabase()
    resp = await client.table("users").select("role").eq("id", user_id).limit(1).execute()
    rows = resp.data or []
    return normalise_role(rows[0].get("role") if rows else None)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """Resolve the bearer token through Supabase Auth and attach the stored role."""
    client = await get_supabase()
    token = credentials.credentials
    try:
        t0 = time.perf_counter()
        auth_user = await asyncio.wait_for(
            client.auth.get_user(token), timeout=get_settings().auth_whoami_timeout
        )
        ms = int((time.perf_counter() - t0) * 1000)
        if ms > 50:
            logger.info("auth.get_user_ms=%d", ms)
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication credentials") from exc

    if not auth_user or not auth_user.user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication credentials")

    sup_user = auth_user.user
    email = sup_user.email or (sup_user.user_metadata or {}).get("email") or ""
    role = await _lookup_role(str(sup_user.id))
    current = CurrentUser(id=str(sup_user.id), email=email, role=role)

    request_id = getattr(request.state, "request_id", None)
    logger.info(
        "auth_resolved user_id=%s role=%s request_id=%s path=%s",
        current.id,
        current.role,
        request_id,
        request.url.path,
    )
    return current


def require_role(*roles: str) -> Callable:
    """Factory returning dependency enforcing that user has one of the roles.

    Admins pass every role check. Empty roles -> no restriction.
    """
    normalized = {normalise_role(r) for r in roles if r}

    async def _checker(current: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not normalized:
            return current
        role_l = current.role.lower()
        if role_l in normalized or role_l in _admin_roles():
            return current
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")

    return _checker


def is_admin(user: CurrentUser) -> bool:
    return user.role.lower() in _admin_roles()


__all__ = ["CurrentUser", "get_current_user", "require_role", "is_admin", "normalise_role"]
