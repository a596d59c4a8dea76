# backend/advisory_radar/services/ingestion/adapters/base.py
from typing import Any, Callable, Dict, Optional, Protocol

import httpx
from pydantic import BaseModel

from advisory_radar.schemas.alerts import SourceCategory
from advisory_radar.schemas.sources import AdapterResult
from advisory_radar.services.core_service.retry import async_retry

ClientFactory = Callable[[], httpx.AsyncClient]

DEFAULT_INTERVAL_SECONDS = 6 * 60 * 60


def default_client_factory() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=15.0, follow_redirects=True)


class SourceAdapter(Protocol):
    """Produces normalized candidates plus the raw responses they came from."""

    async def fetch(self) -> AdapterResult:
        ...


class SourceDefinition(BaseModel):
    source_id: str
    source_name: str
    category: SourceCategory
    trust_tier: int = 2
    url: str
    language: str = "en"
    default_interval_seconds: int = DEFAULT_INTERVAL_SECONDS
    adapter: Any = None  # SourceAdapter

    model_config = {"arbitrary_types_allowed": True}


async def http_get(
    client: httpx.AsyncClient,
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
    attempts: int = 3,
) -> httpx.Response:
    """GET with raise_for_status, retried on transient failures."""

    async def _get() -> httpx.Response:
        resp = await client.get(url, headers=headers, params=params)
        resp.raise_for_status()
        return resp

    return await async_retry(_get, attempts=attempts, base_delay=0.8)
