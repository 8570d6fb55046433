"""Async Supabase clients (single entry point).

Import using: from classroom.db.supabase import get_supabase
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from supabase import AsyncClient, create_async_client

from classroom.core.config import get_settings

logger = logging.getLogger("db.supabase")

_client: Optional[AsyncClient] = None
_service_client: Optional[AsyncClient] = None
_lock = asyncio.Lock()


async def get_supabase() -> AsyncClient:
    """Return a cached `AsyncClient` built with the anon key (lazy-created)."""
    global _client
    if _client is not None:
        return _client
    async with _lock:
        if _client is None:
            settings = get_settings()
            try:
                _client = await create_async_client(settings.supabase_url, settings.supabase_key)
            except Exception as exc:  # pragma: no cover (network/init failure)
                raise RuntimeError("Could not create Supabase async client") from exc
    return _client


async def get_service_supabase() -> AsyncClient:
    """Return a service-role client for platform-wide reads.

    Falls back to the regular client when no service-role key is configured;
    row level security may then hide rows from aggregated metrics.
    """
    global _service_client
    settings = get_settings()
    if not settings.has_service_role:
        logger.warning("SUPABASE_SERVICE_ROLE_KEY missing; metrics use the anon client and RLS may hide rows")
        return await get_supabase()
    if _service_client is not None:
        return _service_client
    async with _lock:
        if _service_client is None:
            try:
                _service_client = await create_async_client(
                    settings.supabase_url, settings.supabase_service_role_key
                )
            except Exception as exc:  # pragma: no cover (network/init failure)
                raise RuntimeError("Could not create Supabase service-role client") from exc
    return _service_client


__all__ = ["get_supabase", "get_service_supabase"]
