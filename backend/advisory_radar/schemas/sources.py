# backend/advisory_radar/schemas/sources.py
from typing import List, Union

from pydantic import BaseModel, Field

from advisory_radar.schemas.alerts import CandidateAlert


class RawCacheItem(BaseModel):
    """One raw provider response kept for archival."""
    label: str
    url: str
    content_type: str = "application/json"
    extension: str = "json"
    body: Union[str, bytes]


class AdapterResult(BaseModel):
    alerts: List[CandidateAlert] = Field(default_factory=list)
    raw_cache: List[RawCacheItem] = Field(default_factory=list)
