"""Direct Postgres engine for migrations and health checks.

Request handlers go through Supabase; this engine exists only when
``DATABASE_URL`` is configured.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from classroom.core.config import get_settings

logger = logging.getLogger("db.session")

_engine: Optional[Engine] = None


def psycopg2_url(url: str) -> str:
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg2://", 1)
    return url


def get_engine() -> Optional[Engine]:
    global _engine
    if _engine is not None:
        return _engine
    settings = get_settings()
    url = settings.get_database_url()
    if not url:
        return None
    connect_args = {"sslmode": "require"} if "sslmode=" not in url else {}
    connect_args["connect_timeout"] = int(os.getenv("DB_CONNECT_TIMEOUT", "5"))
    _engine = create_engine(
        psycopg2_url(url),
        pool_pre_ping=True,
        pool_size=2,
        max_overflow=2,
        pool_recycle=300,
        echo=settings.debug,
        connect_args=connect_args,
    )
    return _engine


def ping_database() -> Optional[float]:
    """Run ``SELECT 1`` and return the latency in ms; None when no database is configured."""
    engine = get_engine()
    if engine is None:
        return None
    t0 = time.perf_counter()
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    ms = round((time.perf_counter() - t0) * 1000, 2)
    if ms > 500:
        logger.warning("db_ping_ms=%s", ms)
    return ms


__all__ = ["get_engine", "ping_database", "psycopg2_url"]
