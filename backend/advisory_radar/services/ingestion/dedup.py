# backend/advisory_radar/services/ingestion/dedup.py
import hashlib
import logging
import uuid
from enum import Enum

from advisory_radar.core.time_utils import utcnow
from advisory_radar.schemas.alerts import Alert, CandidateAlert, ProcessingState
from advisory_radar.services.storage.alert_store import AlertStore

logger = logging.getLogger(__name__)


class StoreOutcome(str, Enum):
    NEW = "new"
    DUPLICATE = "duplicate"


def compute_content_hash(candidate: CandidateAlert) -> str:
    """
    Stable fingerprint of a candidate.

    Built from source id, normalized title, sorted CVE ids and the canonical
    URL. Fetch/publish timestamps are deliberately not part of it.
    """
    parts = [
        candidate.source_id or "",
        (candidate.title or "").lower().strip(),
        ",".join(sorted(candidate.cve_ids or [])),
        candidate.source_url or "",
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


class ContentDeduplicator:
    def __init__(self, alert_store: AlertStore) -> None:
        self.alert_store = alert_store

    def store(self, candidate: CandidateAlert) -> StoreOutcome:
        content_hash = compute_content_hash(candidate)

        if self.alert_store.find_by_content_hash(candidate.source_id, content_hash):
            return StoreOutcome.DUPLICATE

        now = utcnow()
        alert = Alert(
            **candidate.model_dump(),
            id=str(uuid.uuid4()),
            content_hash=content_hash,
            fetched_at=now,
            updated_at=now,
            is_processed=False,
            processing_state=ProcessingState.RAW,
            enrichment_version=0,
        )
        if not self.alert_store.create(alert):
            # lost a race against another insert of the same fingerprint
            return StoreOutcome.DUPLICATE
        return StoreOutcome.NEW
