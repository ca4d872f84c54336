from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

MULTICALL3_ADDRESS = '0xcA11bde05977b3631167028862bE2a173976CA11'
MAX_PAGE_SIZE = 100


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {'1', 'true', 'yes', 'y', 'on'}


def _env_int(name: str, default: int, minimum: int | None = None, maximum: int | None = None) -> int:
    raw = os.getenv(name, '').strip()
    try:
        value = int(raw) if raw else default
    except ValueError:
        value = default
    if minimum is not None:
        value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def _env_float(name: str, default: float, minimum: float | None = None) -> float:
    raw = os.getenv(name, '').strip()
    try:
        value = float(raw) if raw else default
    except ValueError:
        value = default
    if minimum is not None:
        value = max(minimum, value)
    return value


@dataclass(frozen=True)
class Settings:
    app_name: str
    environment: Literal['dev', 'prod', 'test']
    cors_origins: str
    registries_path: str
    count_cache_ttl_seconds: float
    fetch_concurrency: int
    http_timeout_seconds: float
    rpc_timeout_seconds: float
    multicall_address: str
    default_page_size: int
    metrics_enabled: bool


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    environment = os.getenv('ENVIRONMENT', 'dev').strip().lower()
    if environment not in {'dev', 'prod', 'test'}:
        environment = 'dev'

    return Settings(
        app_name=os.getenv('APP_NAME', 'agent-registry-api'),
        environment=environment,  # type: ignore[arg-type]
        cors_origins=os.getenv('CORS_ORIGINS', 'http://localhost:3300'),
        registries_path=os.getenv('AGENT_REGISTRIES_PATH', 'config/agent-registries.json'),
        count_cache_ttl_seconds=_env_float('COUNT_CACHE_TTL_SECONDS', 180.0, minimum=0.0),
        fetch_concurrency=_env_int('FETCH_CONCURRENCY', 12, minimum=1),
        http_timeout_seconds=_env_float('HTTP_TIMEOUT_SECONDS', 10.0, minimum=0.1),
        rpc_timeout_seconds=_env_float('RPC_TIMEOUT_SECONDS', 10.0, minimum=0.1),
        multicall_address=os.getenv('MULTICALL_ADDRESS', MULTICALL3_ADDRESS).strip() or MULTICALL3_ADDRESS,
        default_page_size=_env_int('DEFAULT_PAGE_SIZE', 20, minimum=1, maximum=MAX_PAGE_SIZE),
        metrics_enabled=_env_bool('METRICS_ENABLED', True)
    )
