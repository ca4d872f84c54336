from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import aiohttp
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from .config import get_settings
from .errors import UpstreamError
from .registries import rpc_target_for

LOGGER = logging.getLogger('agents.chain')

AGGREGATE3_RESULT_TYPE = '(bool,bytes)[]'


@dataclass(frozen=True)
class ContractMethod:
    name: str
    inputs: tuple[str, ...]
    output: str

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    def selector(self) -> bytes:
        return bytes(Web3.keccak(text=self.signature)[:4])

    def encode_call(self, args: Sequence[Any]) -> bytes:
        return self.selector() + encode(list(self.inputs), list(args))

    def decode_result(self, data: bytes) -> Any:
        value = decode([self.output], data)[0]
        if self.output == 'address':
            return Web3.to_checksum_address(value)
        return value


TOKEN_URI = ContractMethod('tokenURI', ('uint256',), 'string')
OWNER_OF = ContractMethod('ownerOf', ('uint256',), 'address')
TOTAL_AGENTS = ContractMethod('totalAgents', (), 'uint256')
AGGREGATE3 = ContractMethod('aggregate3', ('(address,bool,bytes)[]',), AGGREGATE3_RESULT_TYPE)


@dataclass(frozen=True)
class BatchCallResult:
    ok: bool
    value: Any = None

    @classmethod
    def success(cls, value: Any) -> BatchCallResult:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls) -> BatchCallResult:
        return cls(ok=False)


class ChainReader(Protocol):
    async def read_one(self, registry: str, method: ContractMethod, args: Sequence[Any] = ()) -> Any:
        ...

    async def read_batch(
        self,
        registry: str,
        method: ContractMethod,
        args_per_call: Sequence[Sequence[Any]],
        allow_partial_failure: bool = True
    ) -> list[BatchCallResult]:
        ...


def _hex_prefixed(value: bytes) -> str:
    return f'0x{bytes(value).hex()}'


def _checksum_registry(registry: str, operation: str) -> str:
    candidate = str(registry).strip()
    if not Web3.is_address(candidate):
        raise UpstreamError(operation, registry, 'registry is not a valid address')
    return Web3.to_checksum_address(candidate)


class Web3ChainReader:
    """ChainReader backed by web3's async HTTP provider and Multicall3."""

    def __init__(
        self,
        rpc_target: Callable[[str], tuple[int, str]] = rpc_target_for,
        multicall_address: str | None = None,
        timeout_seconds: float | None = None
    ) -> None:
        settings = get_settings()
        self._rpc_target = rpc_target
        self._multicall_address = Web3.to_checksum_address(multicall_address or settings.multicall_address)
        self._timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.rpc_timeout_seconds
        self._clients: dict[str, AsyncWeb3] = {}

    def _client_for(self, registry: str) -> AsyncWeb3:
        chain_id, rpc_url = self._rpc_target(registry)
        key = f"{chain_id}|{rpc_url or 'default'}"
        client = self._clients.get(key)
        if client is None:
            LOGGER.debug('creating rpc client chain_id=%s rpc_url=%s', chain_id, rpc_url)
            client = AsyncWeb3(
                AsyncHTTPProvider(
                    rpc_url,
                    request_kwargs={'timeout': aiohttp.ClientTimeout(total=self._timeout_seconds)}
                )
            )
            self._clients[key] = client
        return client

    async def _eth_call(self, registry: str, to: str, data: bytes) -> bytes:
        client = self._client_for(registry)
        raw = await client.eth.call({'to': to, 'data': _hex_prefixed(data)})
        return bytes(raw)

    async def read_one(self, registry: str, method: ContractMethod, args: Sequence[Any] = ()) -> Any:
        address = _checksum_registry(registry, method.name)
        try:
            raw = await self._eth_call(registry, address, method.encode_call(args))
            return method.decode_result(raw)
        except Exception as exc:
            raise UpstreamError(method.name, registry, str(exc) or type(exc).__name__) from exc

    async def read_batch(
        self,
        registry: str,
        method: ContractMethod,
        args_per_call: Sequence[Sequence[Any]],
        allow_partial_failure: bool = True
    ) -> list[BatchCallResult]:
        if not args_per_call:
            return []

        operation = f'multicall:{method.name}'
        address = _checksum_registry(registry, operation)
        calls = [(address, allow_partial_failure, method.encode_call(args)) for args in args_per_call]

        try:
            raw = await self._eth_call(registry, self._multicall_address, AGGREGATE3.encode_call([calls]))
            sub_results = AGGREGATE3.decode_result(raw)
        except Exception as exc:
            raise UpstreamError(operation, registry, str(exc) or type(exc).__name__) from exc

        if len(sub_results) != len(calls):
            raise UpstreamError(
                operation,
                registry,
                f'multicall returned {len(sub_results)} results for {len(calls)} calls'
            )

        results: list[BatchCallResult] = []
        for index, (success, return_data) in enumerate(sub_results):
            if not success:
                results.append(BatchCallResult.failure())
                continue
            try:
                results.append(BatchCallResult.success(method.decode_result(return_data)))
            except (DecodingError, ValueError, OverflowError) as exc:
                LOGGER.debug('undecodable %s result registry=%s position=%s: %s', method.name, registry, index, exc)
                results.append(BatchCallResult.failure())
        return results

    async def close(self) -> None:
        for client in self._clients.values():
            await client.provider.disconnect()
        self._clients.clear()
