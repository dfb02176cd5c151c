from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Ensure environment variables from .env are available when running locally.
try:
    load_dotenv()
except PermissionError:
    logger.warning(
        "Could not read .env file due to insufficient permissions. "
        "Continuing with existing environment variables.",
    )


def _get_bool(name: str, default: str = "false") -> bool:
    """Read boolean-ish environment variables safely."""
    value = os.getenv(name, default)
    return value.lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL")
DB_MAX_CONNECTIONS = int(os.getenv("DB_MAX_CONNECTIONS", "10"))
DB_MIN_CONNECTIONS = int(os.getenv("DB_MIN_CONNECTIONS", "1"))
DB_GENERATE_SCHEMAS = _get_bool("DB_GENERATE_SCHEMAS", "false")

MODEL_MODULES = ["shared.database.models"]


def _parse_postgres_credentials(url: str) -> Dict[str, Any]:
    """Convert a postgres-style DSN into asyncpg credential kwargs."""
    parsed = urlparse(url)
    if parsed.scheme not in {"postgres", "postgresql"}:
        raise ValueError("DATABASE_URL must use postgres:// or postgresql:// scheme")

    database = (parsed.path or "").lstrip("/") or "postgres"
    schema = os.getenv("DB_SCHEMA", "public")

    credentials = {
        "host": parsed.hostname or "localhost",
        "port": parsed.port or 5432,
        "user": parsed.username,
        "password": parsed.password,
        "database": database,
        "minsize": DB_MIN_CONNECTIONS,
        "maxsize": DB_MAX_CONNECTIONS,
    }

    # asyncpg doesn't support "schema" parameter directly
    if schema != "public":
        credentials["server_settings"] = {"search_path": schema}

    return credentials


def build_tortoise_config(url: Optional[str] = None) -> Dict[str, Any]:
    """
    Build the Tortoise ORM config for ``url`` (defaults to DATABASE_URL).

    ``sqlite://`` URLs are passed through unchanged, which keeps local runs
    free of a postgres server.
    """
    url = url or DATABASE_URL
    if not url:
        raise RuntimeError("DATABASE_URL is not set")

    if url.startswith("sqlite://"):
        connection: Any = url
    else:
        try:
            connection = {
                "engine": "tortoise.backends.asyncpg",
                "credentials": _parse_postgres_credentials(url),
            }
        except ValueError as exc:
            raise RuntimeError(f"Invalid DATABASE_URL: {exc}") from exc

    return {
        "connections": {"default": connection},
        "apps": {
            "models": {
                "models": MODEL_MODULES,
                "default_connection": "default",
            },
        },
        "use_tz": True,
        "timezone": "UTC",
    }


__all__ = [
    "DATABASE_URL",
    "DB_GENERATE_SCHEMAS",
    "DB_MAX_CONNECTIONS",
    "DB_MIN_CONNECTIONS",
    "build_tortoise_config",
]
