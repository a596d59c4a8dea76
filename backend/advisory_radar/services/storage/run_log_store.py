# backend/advisory_radar/services/storage/run_log_store.py

from typing import List

from sqlalchemy.orm import Session, sessionmaker

from advisory_radar.models.run_log_record import RunLogRecord
from advisory_radar.schemas.runs import RunLogEntry


class RunLogStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def _get_db(self) -> Session:
        return self._session_factory()

    def log(self, entry: RunLogEntry) -> None:
        db = self._get_db()
        try:
            row = entry.model_dump()
            row["status"] = entry.status.value
            db.add(RunLogRecord(**row))
            db.commit()
        finally:
            db.close()

    def list_for_run(self, run_id: str) -> List[RunLogEntry]:
        db = self._get_db()
        try:
            q = (
                db.query(RunLogRecord)
                .filter(RunLogRecord.run_id == run_id)
                .order_by(RunLogRecord.started_at.asc())
            )
            return [self._to_entry(r) for r in q]
        finally:
            db.close()

    def list_recent(self, limit: int = 50) -> List[RunLogEntry]:
        db = self._get_db()
        try:
            q = db.query(RunLogRecord).order_by(RunLogRecord.created_at.desc()).limit(limit)
            return [self._to_entry(r) for r in q]
        finally:
            db.close()

    @staticmethod
    def _to_entry(r: RunLogRecord) -> RunLogEntry:
        return RunLogEntry(
            id=r.id,
            run_id=r.run_id,
            source_id=r.source_id,
            started_at=r.started_at,
            completed_at=r.completed_at,
            duration_ms=r.duration_ms or 0,
            status=r.status,
            items_fetched=r.items_fetched or 0,
            items_new=r.items_new or 0,
            items_duplicate=r.items_duplicate or 0,
            items_error=r.items_error or 0,
            error=r.error,
            error_stack=r.error_stack,
            raw_blob_path=r.raw_blob_path,
            details=r.details,
        )
