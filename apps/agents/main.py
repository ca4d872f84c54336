from __future__ import annotations

import logging
import os

from fastapi import Depends, FastAPI, HTTPException, Path, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from prometheus_client import Counter, make_asgi_app

from .agent_schema import AgentDocument, to_payload
from .chain import Web3ChainReader
from .config import MAX_PAGE_SIZE, get_settings
from .count_cache import CountCache
from .errors import UpstreamError
from .http_client import AiohttpJsonFetcher
from .pipeline import AgentPageResolver
from .registries import default_registry, registries_payload

settings = get_settings()
logger = logging.getLogger(__name__)

DOCUMENTS_TOTAL = Counter(
    'agent_registry_documents_total',
    'Agent documents returned by the API',
    ['status']
)
UPSTREAM_ERRORS_TOTAL = Counter(
    'agent_registry_upstream_errors_total',
    'Registry-wide chain read failures surfaced to API callers',
    ['operation']
)

ADDRESS_PATTERN = r'^0x[a-fA-F0-9]{40}$'

app = FastAPI(title=settings.app_name, default_response_class=ORJSONResponse)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[x.strip() for x in settings.cors_origins.split(',') if x.strip()],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*']
)
if settings.metrics_enabled:
    app.mount('/metrics', make_asgi_app())

_reader: Web3ChainReader | None = None
_fetcher: AiohttpJsonFetcher | None = None
_resolver: AgentPageResolver | None = None


@app.on_event('startup')
async def startup() -> None:
    global _reader, _fetcher, _resolver
    _reader = Web3ChainReader()
    _fetcher = AiohttpJsonFetcher()
    _resolver = AgentPageResolver(
        reader=_reader,
        fetcher=_fetcher,
        count_cache=CountCache(_reader, ttl_seconds=settings.count_cache_ttl_seconds),
        concurrency=settings.fetch_concurrency
    )
    logger.info(
        'agent resolver ready ttl_seconds=%s concurrency=%s',
        settings.count_cache_ttl_seconds,
        settings.fetch_concurrency
    )


@app.on_event('shutdown')
async def shutdown() -> None:
    global _reader, _fetcher, _resolver
    if _fetcher is not None:
        await _fetcher.close()
    if _reader is not None:
        await _reader.close()
    _reader = None
    _fetcher = None
    _resolver = None


def get_resolver() -> AgentPageResolver:
    if _resolver is None:
        raise HTTPException(status_code=503, detail='resolver is not initialized')
    return _resolver


def _upstream_http_error(exc: UpstreamError) -> HTTPException:
    UPSTREAM_ERRORS_TOTAL.labels(operation=exc.operation).inc()
    logger.warning('upstream failure operation=%s registry=%s: %s', exc.operation, exc.registry, exc.detail)
    return HTTPException(status_code=502, detail=str(exc))


def _document_payload(document: AgentDocument) -> dict:
    DOCUMENTS_TOTAL.labels(status=document.status).inc()
    return to_payload(document)


@app.get('/health')
async def health() -> dict[str, str]:
    return {'status': 'ok'}


@app.get('/registries')
async def registries() -> dict:
    return {'default': default_registry().id, 'registries': registries_payload()}


@app.get('/registries/{address}/total')
async def registry_total(
    address: str = Path(..., pattern=ADDRESS_PATTERN),
    resolver: AgentPageResolver = Depends(get_resolver)
) -> dict:
    try:
        total = await resolver.get_total_count(address)
    except UpstreamError as exc:
        raise _upstream_http_error(exc) from exc
    return {'registry': address, 'total': total}


@app.get('/registries/{address}/agents')
async def registry_agents(
    address: str = Path(..., pattern=ADDRESS_PATTERN),
    page: int = Query(default=0, ge=0),
    page_size: int = Query(default=settings.default_page_size, ge=1, le=MAX_PAGE_SIZE),
    resolver: AgentPageResolver = Depends(get_resolver)
) -> dict:
    try:
        documents = await resolver.resolve_page(address, page, page_size)
    except UpstreamError as exc:
        raise _upstream_http_error(exc) from exc
    return {
        'registry': address,
        'page': page,
        'page_size': page_size,
        'items': [_document_payload(document) for document in documents]
    }


@app.get('/registries/{address}/owners')
async def registry_owners(
    address: str = Path(..., pattern=ADDRESS_PATTERN),
    page: int = Query(default=0, ge=0),
    page_size: int = Query(default=settings.default_page_size, ge=1, le=MAX_PAGE_SIZE),
    resolver: AgentPageResolver = Depends(get_resolver)
) -> dict:
    try:
        owners = await resolver.resolve_page_owners(address, page, page_size)
    except UpstreamError as exc:
        raise _upstream_http_error(exc) from exc
    return {
        'registry': address,
        'page': page,
        'page_size': page_size,
        'items': [{'agentId': agent_id, 'owner': owner} for agent_id, owner in owners]
    }


@app.get('/registries/{address}/agents/{agent_id}')
async def registry_agent(
    address: str = Path(..., pattern=ADDRESS_PATTERN),
    agent_id: int = Path(..., gt=0),
    resolver: AgentPageResolver = Depends(get_resolver)
) -> dict:
    try:
        document = await resolver.resolve_agent(address, agent_id)
    except UpstreamError as exc:
        raise _upstream_http_error(exc) from exc
    payload = _document_payload(document)
    payload['agentId'] = agent_id
    return payload


@app.get('/')
async def root() -> dict:
    return {
        'service': settings.app_name,
        'environment': settings.environment,
        'endpoints': ['/health', '/registries', '/registries/{address}/agents', '/metrics']
    }


def run() -> None:
    import uvicorn

    logging.basicConfig(
        level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    uvicorn.run(app, host=os.getenv('HOST', '0.0.0.0'), port=int(os.getenv('PORT', '8000')))


if __name__ == '__main__':
    run()
