from __future__ import annotations

import copy
import json
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

from .config import get_settings

LOGGER = logging.getLogger('agents.registries')

DEFAULT_REGISTRY_ADDRESS = '0x4f4B183eAE80D62B880458E4A812F896CFb2d4d6'
DEFAULT_EXPLORER_BASE = 'https://etherscan.io'


@dataclass(frozen=True)
class ChainInfo:
    chain_id: int
    name: str
    default_rpc_url: str
    explorer_url: str
    opensea_slug: str | None = None


CHAINS: dict[int, ChainInfo] = {
    1: ChainInfo(1, 'Ethereum', 'https://eth.merkle.io', 'https://etherscan.io', 'ethereum'),
    10: ChainInfo(10, 'OP Mainnet', 'https://mainnet.optimism.io', 'https://optimistic.etherscan.io', 'optimism'),
    137: ChainInfo(137, 'Polygon', 'https://polygon-rpc.com', 'https://polygonscan.com', 'matic'),
    42161: ChainInfo(42161, 'Arbitrum One', 'https://arb1.arbitrum.io/rpc', 'https://arbiscan.io', 'arbitrum'),
    8453: ChainInfo(8453, 'Base', 'https://mainnet.base.org', 'https://basescan.org', 'base'),
    7777777: ChainInfo(7777777, 'Zora', 'https://rpc.zora.energy', 'https://explorer.zora.energy', 'zora'),
    11155111: ChainInfo(11155111, 'Sepolia', 'https://sepolia.drpc.org', 'https://sepolia.etherscan.io')
}

ZORA_CHAIN_ID = 7777777


@dataclass(frozen=True)
class MarketplaceConfig:
    label: str
    url_template: str


@dataclass(frozen=True)
class IdentityRegistry:
    id: str
    label: str
    chain_id: int
    rpc_url: str | None = None
    explorer_base: str | None = None
    marketplace: MarketplaceConfig | None = None
    type: str = field(default='tag')

    @property
    def chain(self) -> ChainInfo:
        return resolve_chain(self.chain_id)


def resolve_chain(chain_id: int) -> ChainInfo:
    # Unknown chains fall back to mainnet.
    return CHAINS.get(chain_id, CHAINS[1])


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_registries_path(path_value: str) -> Path:
    path = Path(path_value)
    if path.is_absolute():
        return path
    return _repo_root() / path


def _is_evm_address(value: str) -> bool:
    return bool(re.fullmatch(r'0x[a-fA-F0-9]{40}', value))


def _default_registries() -> list[IdentityRegistry]:
    return [
        IdentityRegistry(
            id=DEFAULT_REGISTRY_ADDRESS,
            label='ERC-8004 Identity Registry',
            chain_id=11155111
        )
    ]


def _parse_marketplace(raw: Any) -> MarketplaceConfig | None:
    if not isinstance(raw, dict):
        return None
    label = str(raw.get('label', '')).strip()
    template = str(raw.get('urlTemplate', '')).strip()
    if not label or not template:
        return None
    return MarketplaceConfig(label=label, url_template=template)


def _parse_registry(raw: dict[str, Any]) -> IdentityRegistry | None:
    address = str(raw.get('id', '')).strip()
    if not _is_evm_address(address):
        return None
    try:
        chain_id = int(raw.get('chainId', 1))
    except (TypeError, ValueError):
        chain_id = 1

    rpc_url = str(raw.get('rpcUrl') or '').strip() or None
    explorer_base = str(raw.get('explorerBase') or '').strip() or None
    return IdentityRegistry(
        id=address,
        label=str(raw.get('label', '')).strip() or address,
        chain_id=chain_id,
        rpc_url=rpc_url,
        explorer_base=explorer_base,
        marketplace=_parse_marketplace(raw.get('marketplace'))
    )


@lru_cache(maxsize=1)
def _load_registries_cached() -> tuple[IdentityRegistry, ...]:
    settings = get_settings()
    path = _resolve_registries_path(settings.registries_path)
    if not path.exists():
        return tuple(_default_registries())

    try:
        payload = json.loads(path.read_text(encoding='utf-8'))
    except json.JSONDecodeError:
        LOGGER.warning('registries file is not valid json path=%s; using defaults', path)
        return tuple(_default_registries())

    if not isinstance(payload, list):
        return tuple(_default_registries())

    registries: list[IdentityRegistry] = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        registry = _parse_registry(entry)
        if registry is None:
            LOGGER.warning('skipping registry entry with invalid address id=%s', entry.get('id'))
            continue
        registries.append(registry)

    return tuple(registries) if registries else tuple(_default_registries())


def load_registries() -> list[IdentityRegistry]:
    return copy.deepcopy(list(_load_registries_cached()))


load_registries.cache_clear = _load_registries_cached.cache_clear  # type: ignore[attr-defined]


def get_registry_by_address(address: str) -> IdentityRegistry | None:
    wanted = address.strip().lower()
    for registry in load_registries():
        if registry.id.lower() == wanted:
            return registry
    return None


def default_registry() -> IdentityRegistry:
    return load_registries()[0]


def rpc_target_for(registry_address: str) -> tuple[int, str]:
    registry = get_registry_by_address(registry_address)
    if registry is None:
        chain = resolve_chain(1)
        return chain.chain_id, chain.default_rpc_url
    return registry.chain_id, registry.rpc_url or registry.chain.default_rpc_url


def explorer_address_url(registry: IdentityRegistry, address: str) -> str:
    base = registry.explorer_base or registry.chain.explorer_url or DEFAULT_EXPLORER_BASE
    return f"{base.rstrip('/')}/address/{address}"


def marketplace_link(registry: IdentityRegistry, address: str) -> dict[str, str] | None:
    if registry.marketplace is not None:
        return {
            'label': registry.marketplace.label,
            'url': registry.marketplace.url_template.replace('{address}', address)
        }

    if registry.chain_id == ZORA_CHAIN_ID:
        return {'label': 'Zora', 'url': f'https://zora.co/collections/{address}'}

    chain = CHAINS.get(registry.chain_id)
    if chain is None or not chain.opensea_slug:
        return None
    return {'label': 'OpenSea', 'url': f'https://opensea.io/assets/{chain.opensea_slug}/{address}'}


def registries_payload() -> list[dict[str, Any]]:
    payload: list[dict[str, Any]] = []
    for registry in load_registries():
        payload.append(
            {
                'id': registry.id,
                'label': registry.label,
                'type': registry.type,
                'chain_id': registry.chain_id,
                'chain_name': registry.chain.name,
                'explorer_url': explorer_address_url(registry, registry.id),
                'marketplace': marketplace_link(registry, registry.id)
            }
        )
    return payload
