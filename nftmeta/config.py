"""
Service configuration read from environment variables.
"""

import os
from dataclasses import dataclass
from typing import Optional, Mapping

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the metadata service."""
    port: int = 3001
    rpc_url: str = "https://polygon-rpc.com"
    network_name: str = "Polygon"
    ipfs_gateway: str = "https://ipfs.io/ipfs/"
    cache_ttl: int = 300
    cache_ttl_jitter: int = 0
    fallback_cache_ttl: int = 300
    cache_max_entries: Optional[int] = None
    cache_backend: str = "memory"
    database_url: str = "sqlite:///./nftmeta-cache.db"
    request_timeout: float = 10.0
    log_level: str = "INFO"


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build settings from the environment.

    Loads `.dev.env` first when it exists and no explicit mapping is given.

    Args:
        env: Mapping to read instead of os.environ (used by tests)

    Returns:
        Settings instance

    Raises:
        ValueError: If a numeric variable cannot be parsed or is out of range
    """
    if env is None:
        if os.path.exists('.dev.env'):
            load_dotenv('.dev.env')
        env = os.environ

    cache_ttl = _int(env, "CACHE_TTL_SECONDS", 300)
    max_entries = _int(env, "CACHE_MAX_ENTRIES", 0)

    try:
        timeout = float(env.get("REQUEST_TIMEOUT_SECONDS") or 10.0)
    except ValueError:
        raise ValueError("REQUEST_TIMEOUT_SECONDS must be a number")

    settings = Settings(
        port=_int(env, "PORT", 3001),
        rpc_url=env.get("POLYGON_RPC_URL") or "https://polygon-rpc.com",
        network_name=env.get("NETWORK_NAME") or "Polygon",
        ipfs_gateway=env.get("IPFS_GATEWAY") or "https://ipfs.io/ipfs/",
        cache_ttl=cache_ttl,
        cache_ttl_jitter=_int(env, "CACHE_TTL_JITTER_SECONDS", 0),
        fallback_cache_ttl=_int(env, "FALLBACK_CACHE_TTL_SECONDS", cache_ttl),
        cache_max_entries=max_entries or None,
        cache_backend=(env.get("CACHE_BACKEND") or "memory").lower(),
        database_url=env.get("DATABASE_URL") or "sqlite:///./nftmeta-cache.db",
        request_timeout=timeout,
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
    )

    if settings.cache_ttl < 0 or settings.fallback_cache_ttl < 0:
        raise ValueError("Cache TTL values must not be negative")
    if settings.request_timeout <= 0:
        raise ValueError("REQUEST_TIMEOUT_SECONDS must be positive")
    if settings.cache_backend not in ("memory", "sql"):
        raise ValueError(f"Unknown CACHE_BACKEND: {settings.cache_backend}")

    return settings
