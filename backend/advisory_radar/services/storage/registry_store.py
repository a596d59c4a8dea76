# backend/advisory_radar/services/storage/registry_store.py

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session, sessionmaker

from advisory_radar.core.time_utils import utcnow
from advisory_radar.models.source_registry_record import SourceRegistryRecord
from advisory_radar.schemas.runs import RunStatus, SourceRegistryEntry

logger = logging.getLogger(__name__)

# consecutive failed fetches before a source is switched off
AUTO_DISABLE_THRESHOLD = 6


def _to_entry(record: SourceRegistryRecord) -> SourceRegistryEntry:
    return SourceRegistryEntry(
        source_id=record.source_id,
        source_name=record.source_name,
        source_category=record.source_category or "",
        source_url=record.source_url,
        last_fetch_at=record.last_fetch_at,
        last_fetch_status=record.last_fetch_status,
        last_error=record.last_error,
        consecutive_errors=record.consecutive_errors or 0,
        is_enabled=record.is_enabled if record.is_enabled is not None else True,
        fetch_interval_override=record.fetch_interval_override,
    )


class SourceRegistryStore:
    """Per-source fetch bookkeeping."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def _get_db(self) -> Session:
        return self._session_factory()

    def get(self, source_id: str) -> Optional[SourceRegistryEntry]:
        db = self._get_db()
        try:
            record = db.get(SourceRegistryRecord, source_id)
            return _to_entry(record) if record else None
        finally:
            db.close()

    def list_entries(self) -> List[SourceRegistryEntry]:
        db = self._get_db()
        try:
            q = db.query(SourceRegistryRecord).order_by(SourceRegistryRecord.source_id)
            return [_to_entry(r) for r in q]
        finally:
            db.close()

    def record_fetch(
        self,
        *,
        source_id: str,
        source_name: str,
        source_category: str,
        source_url: Optional[str],
        status: RunStatus,
        fetched_at: datetime,
        error: Optional[str] = None,
    ) -> SourceRegistryEntry:
        """
        Upsert after a fetch attempt.

        Success resets the error counter; anything else increments it and
        the source is disabled once the counter reaches the threshold.
        Operator-set interval overrides are preserved.
        """
        db = self._get_db()
        try:
            record = db.get(SourceRegistryRecord, source_id)
            if record is None:
                record = SourceRegistryRecord(
                    source_id=source_id,
                    consecutive_errors=0,
                    is_enabled=True,
                )
                db.add(record)

            if status == RunStatus.SUCCESS:
                consecutive = 0
            else:
                consecutive = (record.consecutive_errors or 0) + 1

            record.source_name = source_name
            record.source_category = source_category
            record.source_url = source_url
            record.last_fetch_at = fetched_at
            record.last_fetch_status = status.value
            record.last_error = error
            record.consecutive_errors = consecutive
            if consecutive >= AUTO_DISABLE_THRESHOLD:
                if record.is_enabled is not False:
                    logger.warning(
                        "Disabling source %s after %d consecutive errors", source_id, consecutive
                    )
                record.is_enabled = False
            elif record.is_enabled is None:
                record.is_enabled = True
            record.updated_at = utcnow()

            db.commit()
            return _to_entry(record)
        finally:
            db.close()

    def update_settings(
        self,
        source_id: str,
        *,
        is_enabled: Optional[bool] = None,
        fetch_interval_override: Optional[int] = None,
    ) -> Optional[SourceRegistryEntry]:
        """Operator switch: re-enable a source or change its interval."""
        db = self._get_db()
        try:
            record = db.get(SourceRegistryRecord, source_id)
            if record is None:
                return None
            if is_enabled is not None:
                record.is_enabled = is_enabled
                if is_enabled:
                    record.consecutive_errors = 0
            if fetch_interval_override is not None:
                record.fetch_interval_override = fetch_interval_override or None
            record.updated_at = utcnow()
            db.commit()
            return _to_entry(record)
        finally:
            db.close()
