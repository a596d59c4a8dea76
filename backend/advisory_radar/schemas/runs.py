# backend/advisory_radar/schemas/runs.py
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RunStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"
    SKIPPED = "skipped"


class SourceRunSummary(BaseModel):
    source_id: str
    source_name: str
    status: RunStatus
    items_fetched: int = 0
    items_new: int = 0
    items_duplicate: int = 0
    items_error: int = 0
    duration_ms: int = 0
    error: Optional[str] = None
    raw_blob_path: Optional[str] = None


class FetchRunSummary(BaseModel):
    run_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    total_fetched: int = 0
    total_new: int = 0
    total_duplicate: int = 0
    total_errors: int = 0
    sources: List[SourceRunSummary] = Field(default_factory=list)


class RunLogEntry(BaseModel):
    """One row per source per run (enrichment runs use a pseudo source id)."""
    id: str
    run_id: str
    source_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: int = 0
    status: RunStatus
    items_fetched: int = 0
    items_new: int = 0
    items_duplicate: int = 0
    items_error: int = 0
    error: Optional[str] = None
    error_stack: Optional[str] = None
    raw_blob_path: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class SourceRegistryEntry(BaseModel):
    source_id: str
    source_name: str
    source_category: str
    source_url: Optional[str] = None
    last_fetch_at: Optional[datetime] = None
    last_fetch_status: Optional[str] = None
    last_error: Optional[str] = None
    consecutive_errors: int = 0
    is_enabled: bool = True
    fetch_interval_override: Optional[int] = None


class AlertError(BaseModel):
    alert_id: str
    error: str


class EnrichmentRunResult(BaseModel):
    run_id: str
    started_at: datetime
    completed_at: datetime
    total_candidates: int = 0
    total_processed: int = 0
    total_success: int = 0
    total_failed: int = 0
    total_skipped: int = 0
    total_tokens_used: int = 0
    estimated_cost_usd: float = 0.0
    duration_ms: int = 0
    stopped_early: bool = False
    errors: List[AlertError] = Field(default_factory=list)


class ReEnrichmentRequest(BaseModel):
    limit: int = Field(default=10, ge=1, le=1000)
    source_id: Optional[str] = None
    missing_only: bool = False
    missing_csaf: bool = False
    force_all: bool = False
    max_seconds: int = Field(
        default=200,
        ge=1,
        description="Wall-clock budget; the run stops between alerts once it is used up.",
    )
