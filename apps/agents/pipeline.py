from __future__ import annotations

import asyncio
import json
import logging

from .agent_schema import AgentDocument, error_document, is_http_url
from .batch_resolver import get_token_uri, resolve_owners, resolve_token_uris
from .chain import ChainReader
from .concurrency import map_with_concurrency
from .count_cache import CountCache
from .http_client import JsonFetcher
from .paging import plan_page
from .validator import validate_agent

LOGGER = logging.getLogger('agents.pipeline')

DEFAULT_FETCH_CONCURRENCY = 12
INVALID_TOKEN_URI = 'Invalid tokenURI: not an http(s) URL'


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return 'timeout'
    return str(exc) or 'Unknown error'


class AgentPageResolver:
    def __init__(
        self,
        reader: ChainReader,
        fetcher: JsonFetcher,
        count_cache: CountCache,
        concurrency: int = DEFAULT_FETCH_CONCURRENCY
    ) -> None:
        if concurrency < 1:
            raise ValueError(f'concurrency must be >= 1, got {concurrency}')
        self.reader = reader
        self.fetcher = fetcher
        self.count_cache = count_cache
        self.concurrency = concurrency

    async def get_total_count(self, registry: str) -> int:
        return await self.count_cache.get_total_count(registry)

    async def plan(self, registry: str, page: int, page_size: int) -> list[int]:
        total = await self.count_cache.get_total_count(registry)
        return plan_page(page, page_size, total)

    async def resolve_page_uris(self, registry: str, page: int, page_size: int) -> list[tuple[int, str]]:
        ids = await self.plan(registry, page, page_size)
        if not ids:
            return []
        return await resolve_token_uris(self.reader, registry, ids)

    async def resolve_page_owners(self, registry: str, page: int, page_size: int) -> list[tuple[int, str]]:
        ids = await self.plan(registry, page, page_size)
        if not ids:
            return []
        return await resolve_owners(self.reader, registry, ids)

    async def fetch_agent_document(self, uri: str) -> AgentDocument:
        if not is_http_url(uri):
            return error_document(INVALID_TOKEN_URI)

        try:
            response = await self.fetcher.get_json(uri)
        except Exception as exc:
            LOGGER.warning('fetch failed uri=%s: %s', uri, _error_message(exc))
            return error_document(f'Fetch error: {_error_message(exc)}')

        if not response.ok:
            LOGGER.warning('fetch returned status=%s uri=%s', response.status, uri)
            return error_document(f'Failed to fetch tokenURI ({response.status} {response.reason})')

        try:
            raw = json.loads(response.body)
        except ValueError as exc:
            return error_document(f'Fetch error: {exc}')
        return validate_agent(raw)

    async def resolve_page(self, registry: str, page: int, page_size: int) -> list[AgentDocument]:
        resolved = await self.resolve_page_uris(registry, page, page_size)
        if not resolved:
            return []

        documents: list[AgentDocument | None] = [None] * len(resolved)
        pending: list[tuple[int, str]] = []
        for position, (_, uri) in enumerate(resolved):
            if is_http_url(uri):
                pending.append((position, uri))
            else:
                documents[position] = error_document(INVALID_TOKEN_URI)

        async def fetch(item: tuple[int, str], _: int) -> AgentDocument:
            return await self.fetch_agent_document(item[1])

        fetched = await map_with_concurrency(pending, self.concurrency, fetch)
        for (position, _), document in zip(pending, fetched):
            documents[position] = document if document is not None else error_document('Fetch error: Unknown error')

        page_result = [document for document in documents if document is not None]
        LOGGER.info(
            'resolved page registry=%s page=%s page_size=%s items=%s partial=%s',
            registry,
            page,
            page_size,
            len(page_result),
            sum(1 for document in page_result if document.status == 'partial')
        )
        return page_result

    async def resolve_agent(self, registry: str, agent_id: int) -> AgentDocument:
        uri = await get_token_uri(self.reader, registry, agent_id)
        return await self.fetch_agent_document(uri)
