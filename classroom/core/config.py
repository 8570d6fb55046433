from __future__ import annotations

import os
from functools import lru_cache
from dotenv import load_dotenv, find_dotenv

_env_path = find_dotenv(".env") or ".env"
load_dotenv(_env_path, override=False)


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


class Settings:
    """Central configuration (env driven)."""

    def __init__(self) -> None:
        # Supabase
        raw_url = os.getenv("SUPABASE_URL", "")
        self.supabase_url: str = raw_url.rstrip("/")
        self.supabase_anon_key: str = os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY", "")
        self.supabase_key: str = self.supabase_anon_key  # alias
        self.supabase_service_role_key: str = (
            os.getenv("SUPABASE_SERVICE_ROLE_KEY")
            or os.getenv("SUPABASE_SERVICE_KEY")
            or ""
        )
        # Database (migrations only)
        self.database_url: str = os.getenv("DATABASE_URL", "")
        # App meta
        self.app_name: str = "Aula Inclusiva Assessments"
        self.debug: bool = os.getenv("DEBUG", "False").lower() == "true"
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.allow_origins: list[str] = [
            o.strip().rstrip("/")
            for o in os.getenv("ALLOW_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
            if o.strip()
        ]
        # Aggregation
        self.metrics_top_n: int = max(1, _int_env("METRICS_TOP_N", 5))
        self.leaderboard_limit: int = max(1, _int_env("LEADERBOARD_LIMIT", 10))
        # Auth
        try:
            self.auth_whoami_timeout: float = float(os.getenv("AUTH_WHOAMI_TIMEOUT", "5"))
        except ValueError:
            self.auth_whoami_timeout = 5.0

    @property
    def has_service_role(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)

    def get_database_url(self) -> str:
        return self.database_url


@lru_cache()
def get_settings() -> Settings:
    return Settings()
