from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import TypeAdapter, ValidationError

from .agent_schema import (
    EIP8004_REGISTRATION_V1,
    AgentDocument,
    AgentRegistration,
    Endpoint,
    FullAgent,
    PartialAgent,
    SupportedTrust,
    is_http_url
)

LOGGER = logging.getLogger('agents.validator')

_ENDPOINT = TypeAdapter(Endpoint)
_REGISTRATION = TypeAdapter(AgentRegistration)
_TRUST = TypeAdapter(SupportedTrust)


def _valid_items(adapter: TypeAdapter, values: Iterable[Any]) -> list[Any]:
    kept: list[Any] = []
    for value in values:
        try:
            kept.append(adapter.validate_python(value))
        except ValidationError:
            continue
    return kept


def build_partial(raw: Any, error: str) -> PartialAgent:
    """Keep every top-level field of ``raw`` that validates in isolation."""
    fields: dict[str, Any] = {}
    if isinstance(raw, dict):
        if raw.get('type') == EIP8004_REGISTRATION_V1:
            fields['type'] = EIP8004_REGISTRATION_V1
        if isinstance(raw.get('name'), str):
            fields['name'] = raw['name']
        if isinstance(raw.get('description'), str):
            fields['description'] = raw['description']
        if is_http_url(raw.get('image')):
            fields['image'] = raw['image']

        for key, adapter in (
            ('endpoints', _ENDPOINT),
            ('registrations', _REGISTRATION),
            ('supportedTrust', _TRUST)
        ):
            values = raw.get(key)
            if not isinstance(values, list):
                continue
            kept = _valid_items(adapter, values)
            if kept:
                fields[key] = kept

    return PartialAgent(**fields, error=error)


def validate_agent(raw: Any) -> AgentDocument:
    try:
        return FullAgent.model_validate(raw)
    except ValidationError as exc:
        partial = build_partial(raw, str(exc))
        LOGGER.debug('agent document failed strict validation; kept=%s', sorted(partial.model_fields_set - {'error'}))
        return partial
