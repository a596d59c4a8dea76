# backend/advisory_radar/models/run_log_record.py
from sqlalchemy import Column, DateTime, Integer, String, Text

from advisory_radar.core.time_utils import utcnow
from advisory_radar.db.base_class import Base, JSONType


class RunLogRecord(Base):
    __tablename__ = "run_logs"

    id = Column(String, primary_key=True)
    run_id = Column(String, index=True, nullable=False)
    source_id = Column(String, index=True, nullable=False)

    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    duration_ms = Column(Integer, default=0)
    status = Column(String, index=True)  # success | partial | error

    items_fetched = Column(Integer, default=0)
    items_new = Column(Integer, default=0)
    items_duplicate = Column(Integer, default=0)
    items_error = Column(Integer, default=0)

    error = Column(Text, nullable=True)
    error_stack = Column(Text, nullable=True)
    raw_blob_path = Column(String, nullable=True)

    # enrichment runs carry token usage, cost and the per-alert error list
    details = Column(JSONType, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)
