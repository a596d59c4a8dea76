# backend/advisory_radar/models/source_registry_record.py
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from advisory_radar.core.time_utils import utcnow
from advisory_radar.db.base_class import Base


class SourceRegistryRecord(Base):
    __tablename__ = "source_registry"

    source_id = Column(String, primary_key=True)
    source_name = Column(String, nullable=False)
    source_category = Column(String, index=True)
    source_url = Column(String, nullable=True)

    last_fetch_at = Column(DateTime, nullable=True)
    last_fetch_status = Column(String, nullable=True)  # success | partial | error
    last_error = Column(Text, nullable=True)
    consecutive_errors = Column(Integer, default=0)
    is_enabled = Column(Boolean, default=True)
    fetch_interval_override = Column(Integer, nullable=True)  # seconds

    updated_at = Column(DateTime, default=utcnow)
