# backend/advisory_radar/models/alert_record.py
from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text, UniqueConstraint

from advisory_radar.core.time_utils import utcnow
from advisory_radar.db.base_class import Base, JSONType


class AlertRecord(Base):
    __tablename__ = "alerts"
    __table_args__ = (
        UniqueConstraint("source_id", "content_hash", name="uq_alerts_source_hash"),
    )

    # point reads/writes always use (id, source_id)
    id = Column(String, primary_key=True)
    source_id = Column(String, primary_key=True, index=True)
    content_hash = Column(String(64), nullable=False, index=True)

    # Provenance
    source_name = Column(String, nullable=False)
    source_category = Column(String, index=True)
    source_trust_tier = Column(Integer, default=2)
    source_url = Column(String, nullable=True)
    source_language = Column(String(8), default="en")
    published_at = Column(DateTime, nullable=True, index=True)
    fetched_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow)

    # Content
    title = Column(Text, nullable=False)
    title_de = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    description_de = Column(Text, nullable=True)
    summary = Column(Text, nullable=True)
    summary_de = Column(Text, nullable=True)
    article_text = Column(Text, nullable=True)

    # Classification
    alert_type = Column(String, index=True)
    alert_sub_type = Column(String, nullable=True)

    # Severity signals
    severity = Column(String, nullable=True, index=True)
    cvss_score = Column(Float, nullable=True)
    cvss_vector = Column(String, nullable=True)
    cvss_cve_id = Column(String, nullable=True)
    epss_score = Column(Float, nullable=True)
    epss_percentile = Column(Float, nullable=True)
    is_actively_exploited = Column(Boolean, default=False)
    is_zero_day = Column(Boolean, default=False)

    # Tenant (Microsoft 365) status signals
    m365_is_major_change = Column(Boolean, default=False)
    m365_action_required_by = Column(String, nullable=True)
    m365_status = Column(String, nullable=True)

    # Derived
    ai_score = Column(Integer, nullable=True)
    ai_score_reasoning = Column(Text, nullable=True)
    score_components = Column(JSONType, nullable=True)  # {"base", "epss", "threat", "context"}

    # Indicators
    cve_ids = Column(JSONType, default=list)
    affected_vendors = Column(JSONType, default=list)
    affected_products = Column(JSONType, default=list)
    affected_versions = Column(JSONType, nullable=True)
    mitre_tactics = Column(JSONType, default=list)
    iocs = Column(JSONType, default=list)  # [{"type", "value", "context"}]

    # Extended advisory detail
    csaf_description = Column(Text, nullable=True)
    csaf_recommendations = Column(Text, nullable=True)

    # Compliance
    compliance = Column(JSONType, nullable=True)
    compliance_ai_raw = Column(JSONType, nullable=True)
    compliance_evidence = Column(JSONType, nullable=True)
    compliance_policy_version = Column(String, nullable=True)

    # Lifecycle
    is_processed = Column(Boolean, default=False, index=True)
    processing_state = Column(String, default="raw", index=True)
    enrichment_version = Column(Integer, default=0, index=True)

    raw_blob_path = Column(String, nullable=True)
    raw_content_type = Column(String, nullable=True)
