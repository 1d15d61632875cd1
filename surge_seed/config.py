from __future__ import annotations

import os
from dataclasses import dataclass, replace

DEFAULT_API_BASE = "https://api.langchao.org"
DEFAULT_REDIS_PREFIX = "surge-"
DEFAULT_ACL_PREFIX = "surge-acl"
DEFAULT_SEED_PASSWORD = "surgefm"
MAX_EVENT_PAGES = 10  # safety cap; the production API has ~7 pages
REQUEST_DELAY_SECONDS = 0.3
REQUEST_TIMEOUT_SECONDS = 15.0


def normalize_api_base(raw_value: str | None) -> str:
    value = str(raw_value or "").strip() or DEFAULT_API_BASE
    return value.rstrip("/")


def _int_env(name: str, default: int) -> int:
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return int(raw_value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw_value!r}") from exc


def resolve_database_url() -> str:
    explicit_url = os.getenv("DATABASE_URL")
    if explicit_url:
        return explicit_url

    host = os.getenv("POSTGRES_HOST", "postgres")
    port = os.getenv("POSTGRES_PORT", "5432")
    user = os.getenv("POSTGRES_USER", "postgres")
    password = os.getenv("POSTGRES_PWD", "postgres")
    dbname = os.getenv("POSTGRES_DB", "v2land")
    return f"postgresql+pg8000://{user}:{password}@{host}:{port}/{dbname}"


@dataclass(frozen=True)
class SeedConfig:
    api_base: str = DEFAULT_API_BASE
    database_url: str = ""
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_db: int = 0
    redis_prefix: str = DEFAULT_REDIS_PREFIX
    acl_prefix: str = DEFAULT_ACL_PREFIX
    seed_password: str = DEFAULT_SEED_PASSWORD
    max_event_pages: int = MAX_EVENT_PAGES
    request_delay: float = REQUEST_DELAY_SECONDS
    request_timeout: float = REQUEST_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls, *, api_base: str | None = None) -> "SeedConfig":
        """
        Build the run configuration from environment variables.
        An explicit `api_base` (e.g. from the command line) wins over API_BASE.
        """
        return cls(
            api_base=normalize_api_base(api_base or os.getenv("API_BASE")),
            database_url=resolve_database_url(),
            redis_host=os.getenv("REDIS_HOST", "redis"),
            redis_port=_int_env("REDIS_PORT", 6379),
            redis_db=_int_env("REDIS_DB", 0),
            redis_prefix=os.getenv("REDIS_PREFIX", DEFAULT_REDIS_PREFIX),
            acl_prefix=os.getenv("ACL_PREFIX", DEFAULT_ACL_PREFIX),
            seed_password=os.getenv("SEED_PASSWORD") or DEFAULT_SEED_PASSWORD,
            max_event_pages=_int_env("MAX_EVENT_PAGES", MAX_EVENT_PAGES),
        )

    def with_overrides(self, **changes: object) -> "SeedConfig":
        cleaned = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **cleaned)
