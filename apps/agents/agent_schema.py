from __future__ import annotations

from typing import Annotated, Any, ClassVar, Literal, Union
from urllib.parse import urlparse

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

EIP8004_REGISTRATION_V1 = 'https://eips.ethereum.org/EIPS/eip-8004#registration-v1'

SupportedInput = Literal['text', 'image', 'file', 'audio']
SupportedTrust = Literal['reputation', 'crypto-economic', 'tee-attestation']


def is_http_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in {'http', 'https'} and bool(parsed.netloc)


def _require_url(value: str) -> str:
    parsed = urlparse(value)
    if not parsed.scheme or not (parsed.netloc or parsed.path):
        raise ValueError('Invalid url')
    return value


def _require_http_url(value: str) -> str:
    if not is_http_url(value):
        raise ValueError('Invalid url: expected an http(s) URL')
    return value


UrlStr = Annotated[str, AfterValidator(_require_url)]
HttpUrlStr = Annotated[str, AfterValidator(_require_http_url)]
PositiveStrictInt = Annotated[int, Field(strict=True, gt=0)]


class _WireModel(BaseModel):
    model_config = ConfigDict(extra='ignore')


class PromptEndpoint(_WireModel):
    name: Literal['prompt']
    endpoint: UrlStr
    version: str


class LlmEndpoint(_WireModel):
    name: Literal['llm']
    endpoint: UrlStr
    gateway: str | None = None
    model_id: str | None = Field(default=None, alias='modelId')
    provider_id: str | None = Field(default=None, alias='providerId')
    context_length: PositiveStrictInt | None = Field(default=None, alias='contextLength')
    supported_inputs: list[SupportedInput] | None = Field(default=None, alias='supportedInputs')
    parameters: dict[str, Any] | None = None


class McpEndpoint(_WireModel):
    name: Literal['mcp']
    endpoint: UrlStr
    server_name: str | None = Field(default=None, alias='serverName')


class ArtifactEndpoint(_WireModel):
    name: Literal['artifact']
    endpoint: UrlStr


class MetadataEndpoint(_WireModel):
    name: Literal['metadata']
    display_name: str | None = Field(default=None, alias='displayName')
    homepage: UrlStr | None = None
    repository: UrlStr | None = None
    suggestions: list[str] | None = None


Endpoint = Annotated[
    Union[PromptEndpoint, LlmEndpoint, McpEndpoint, ArtifactEndpoint, MetadataEndpoint],
    Field(discriminator='name')
]


class AgentRegistration(_WireModel):
    agent_id: str = Field(alias='agentId')
    agent_registry: str = Field(alias='agentRegistry')


class FullAgent(_WireModel):
    status: ClassVar[str] = 'full'

    type: Literal['https://eips.ethereum.org/EIPS/eip-8004#registration-v1']
    name: str
    description: str
    image: HttpUrlStr
    endpoints: list[Endpoint]
    registrations: list[AgentRegistration] | None = None
    supported_trust: list[SupportedTrust] | None = Field(default=None, alias='supportedTrust')

    @field_validator('endpoints')
    @classmethod
    def _require_llm_endpoint(cls, value: list[Any]) -> list[Any]:
        if not any(isinstance(endpoint, LlmEndpoint) for endpoint in value):
            raise ValueError('Must include at least one llm endpoint')
        return value


class PartialAgent(_WireModel):
    """Best-effort FullAgent: only fields that validated on their own, plus why the whole failed."""

    status: ClassVar[str] = 'partial'

    type: Literal['https://eips.ethereum.org/EIPS/eip-8004#registration-v1'] | None = None
    name: str | None = None
    description: str | None = None
    image: HttpUrlStr | None = None
    endpoints: list[Endpoint] | None = None
    registrations: list[AgentRegistration] | None = None
    supported_trust: list[SupportedTrust] | None = Field(default=None, alias='supportedTrust')
    error: str = Field(min_length=1)


AgentDocument = Union[FullAgent, PartialAgent]


def error_document(message: str) -> PartialAgent:
    return PartialAgent(error=message)


def to_payload(document: AgentDocument) -> dict[str, Any]:
    payload = document.model_dump(mode='json', by_alias=True, exclude_none=True)
    payload['status'] = document.status
    return payload
