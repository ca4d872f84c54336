from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import aiohttp

from .config import get_settings


@dataclass(frozen=True)
class HttpResponse:
    status: int
    reason: str
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class JsonFetcher(Protocol):
    async def get_json(self, url: str) -> HttpResponse:
        ...


class AiohttpJsonFetcher:
    """GETs JSON documents over one shared session; transport errors propagate."""

    def __init__(self, timeout_seconds: float | None = None) -> None:
        seconds = timeout_seconds if timeout_seconds is not None else get_settings().http_timeout_seconds
        self._timeout = aiohttp.ClientTimeout(total=seconds)
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={'Accept': 'application/json'}
            )
        return self._session

    async def get_json(self, url: str) -> HttpResponse:
        session = self._get_session()
        async with session.get(url) as response:
            body = await response.text(errors='replace')
            return HttpResponse(status=response.status, reason=response.reason or '', body=body)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
