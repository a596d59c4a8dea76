# backend/advisory_radar/services/storage/alert_store.py

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from advisory_radar.core.errors import AlertNotFoundError
from advisory_radar.core.time_utils import utcnow
from advisory_radar.models.alert_record import AlertRecord
from advisory_radar.schemas.alerts import Alert, AlertKey

logger = logging.getLogger(__name__)

_COLUMNS = [c.name for c in AlertRecord.__table__.columns]
_DATETIME_FIELDS = ("published_at", "fetched_at", "updated_at")
_LIST_FIELDS = ("cve_ids", "affected_vendors", "affected_products", "mitre_tactics", "iocs")


def _to_row(alert: Alert) -> Dict[str, Any]:
    row = alert.model_dump(mode="json")
    for name in _DATETIME_FIELDS:
        row[name] = getattr(alert, name)
    return {k: v for k, v in row.items() if k in _COLUMNS}


def _to_schema(record: AlertRecord) -> Alert:
    data = {name: getattr(record, name) for name in _COLUMNS}
    for name in _LIST_FIELDS:
        if data.get(name) is None:
            data[name] = []
    if data.get("enrichment_version") is None:
        data["enrichment_version"] = 0
    return Alert.model_validate(data)


class AlertStore:
    """
    Durable alert collection (Postgres via SQLAlchemy).

    Alerts are partitioned by source_id: every point read or write takes an
    AlertKey(id, source_id). Writes are last-write-wins per alert.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def _get_db(self) -> Session:
        return self._session_factory()

    # --------------------------------------------------------
    # Create
    # --------------------------------------------------------
    def create(self, alert: Alert) -> bool:
        """
        Insert a new alert. Returns False when the (source_id, content_hash)
        pair already exists, which the caller treats as a duplicate.
        """
        db = self._get_db()
        try:
            db.add(AlertRecord(**_to_row(alert)))
            db.commit()
            return True
        except IntegrityError:
            db.rollback()
            logger.info(
                "Alert with hash %s already stored for %s", alert.content_hash, alert.source_id
            )
            return False
        finally:
            db.close()

    # --------------------------------------------------------
    # Reads
    # --------------------------------------------------------
    def find_by_content_hash(self, source_id: str, content_hash: str) -> Optional[Alert]:
        db = self._get_db()
        try:
            record = (
                db.query(AlertRecord)
                .filter(AlertRecord.source_id == source_id)
                .filter(AlertRecord.content_hash == content_hash)
                .first()
            )
            return _to_schema(record) if record else None
        finally:
            db.close()

    def get(self, key: AlertKey) -> Alert:
        db = self._get_db()
        try:
            record = db.get(AlertRecord, {"id": key.id, "source_id": key.source_id})
            if record is None:
                raise AlertNotFoundError(key.id, key.source_id)
            return _to_schema(record)
        finally:
            db.close()

    def find_by_id(self, alert_id: str) -> Optional[Alert]:
        """Cross-partition lookup, only used for on-demand single-alert runs."""
        db = self._get_db()
        try:
            record = db.query(AlertRecord).filter(AlertRecord.id == alert_id).first()
            return _to_schema(record) if record else None
        finally:
            db.close()

    def list_alerts(self, source_id: Optional[str] = None, limit: int = 50) -> List[Alert]:
        db = self._get_db()
        try:
            q = db.query(AlertRecord)
            if source_id:
                q = q.filter(AlertRecord.source_id == source_id)
            q = q.order_by(AlertRecord.fetched_at.desc()).limit(limit)
            return [_to_schema(r) for r in q]
        finally:
            db.close()

    def count(self, source_id: Optional[str] = None) -> int:
        db = self._get_db()
        try:
            q = db.query(AlertRecord)
            if source_id:
                q = q.filter(AlertRecord.source_id == source_id)
            return q.count()
        finally:
            db.close()

    def list_unprocessed(self, limit: int) -> List[Alert]:
        """Oldest-fetched first."""
        db = self._get_db()
        try:
            q = (
                db.query(AlertRecord)
                .filter(or_(AlertRecord.is_processed.is_(False), AlertRecord.is_processed.is_(None)))
                .order_by(AlertRecord.fetched_at.asc())
                .limit(limit)
            )
            return [_to_schema(r) for r in q]
        finally:
            db.close()

    def list_for_reenrichment(
        self,
        *,
        limit: int,
        current_version: int,
        source_id: Optional[str] = None,
        missing_only: bool = False,
        missing_csaf: bool = False,
        force_all: bool = False,
    ) -> List[Alert]:
        """
        Candidate set for a backfill run, oldest-fetched first.

        Default: alerts enriched by an older pipeline revision.
        missing_csaf: BSI alerts without extended advisory detail.
        missing_only: alerts lacking severity, CVSS or EPSS.
        force_all: every alert (subject to source_id and limit).
        """
        db = self._get_db()
        try:
            q = db.query(AlertRecord)
            if source_id:
                q = q.filter(AlertRecord.source_id == source_id)

            if missing_csaf:
                q = q.filter(AlertRecord.source_id == "bsi-cert").filter(
                    AlertRecord.csaf_description.is_(None)
                )
            elif missing_only:
                q = q.filter(
                    or_(
                        AlertRecord.severity.is_(None),
                        AlertRecord.cvss_score.is_(None),
                        AlertRecord.epss_score.is_(None),
                    )
                )
            elif not force_all:
                q = q.filter(
                    or_(
                        AlertRecord.enrichment_version.is_(None),
                        AlertRecord.enrichment_version < current_version,
                    )
                )

            q = q.order_by(AlertRecord.fetched_at.asc()).limit(limit)
            return [_to_schema(r) for r in q]
        finally:
            db.close()

    def list_missing_cvss(self, since: datetime) -> List[Alert]:
        db = self._get_db()
        try:
            q = (
                db.query(AlertRecord)
                .filter(AlertRecord.cvss_score.is_(None))
                .filter(AlertRecord.fetched_at >= since)
            )
            return [_to_schema(r) for r in q if r.cve_ids]
        finally:
            db.close()

    # --------------------------------------------------------
    # Updates
    # --------------------------------------------------------
    def update(self, alert: Alert) -> None:
        """Full replace of one alert, keyed by (id, source_id)."""
        db = self._get_db()
        try:
            alert.updated_at = utcnow()
            db.merge(AlertRecord(**_to_row(alert)))
            db.commit()
        finally:
            db.close()

    def patch_cvss(
        self,
        key: AlertKey,
        *,
        cvss_score: float,
        cvss_vector: Optional[str],
        cvss_cve_id: Optional[str],
        severity: Optional[str],
    ) -> bool:
        """
        Set CVSS fields only if the alert is still unscored.
        Severity is only filled in when missing.
        """
        db = self._get_db()
        try:
            record = db.get(AlertRecord, {"id": key.id, "source_id": key.source_id})
            if record is None:
                raise AlertNotFoundError(key.id, key.source_id)
            if record.cvss_score is not None:
                return False
            record.cvss_score = cvss_score
            record.cvss_vector = cvss_vector
            record.cvss_cve_id = cvss_cve_id
            if not record.severity and severity:
                record.severity = severity
            record.updated_at = utcnow()
            db.commit()
            return True
        finally:
            db.close()
