from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from .chain import OWNER_OF, TOKEN_URI, ChainReader, ContractMethod

LOGGER = logging.getLogger('agents.batch_resolver')


async def resolve_many(
    reader: ChainReader,
    registry: str,
    ids: Sequence[int],
    method: ContractMethod
) -> list[tuple[int, Any]]:
    """Read ``method(id)`` for every id in one multicall, keeping successes in order.

    Failed sub-calls are dropped; only a failure of the aggregated call itself
    raises (as UpstreamError from the reader).
    """
    if not ids:
        return []

    results = await reader.read_batch(registry, method, [(agent_id,) for agent_id in ids], allow_partial_failure=True)
    resolved = [(agent_id, result.value) for agent_id, result in zip(ids, results) if result.ok]

    dropped = len(ids) - len(resolved)
    if dropped:
        LOGGER.info(
            'dropped unresolved ids registry=%s method=%s requested=%s dropped=%s',
            registry,
            method.name,
            len(ids),
            dropped
        )
    return resolved


async def resolve_token_uris(reader: ChainReader, registry: str, ids: Sequence[int]) -> list[tuple[int, str]]:
    return await resolve_many(reader, registry, ids, TOKEN_URI)


async def resolve_owners(reader: ChainReader, registry: str, ids: Sequence[int]) -> list[tuple[int, str]]:
    return await resolve_many(reader, registry, ids, OWNER_OF)


async def get_token_uri(reader: ChainReader, registry: str, agent_id: int) -> str:
    return await reader.read_one(registry, TOKEN_URI, (agent_id,))


async def get_owner(reader: ChainReader, registry: str, agent_id: int) -> str:
    return await reader.read_one(registry, OWNER_OF, (agent_id,))
