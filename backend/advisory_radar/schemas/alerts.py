# backend/advisory_radar/schemas/alerts.py
from datetime import datetime
from enum import Enum
from typing import List, NamedTuple, Optional

from pydantic import BaseModel, Field

from advisory_radar.schemas.compliance import ComplianceEvidence, ComplianceMapping


class SourceCategory(str, Enum):
    GOVERNMENT = "government"
    VENDOR = "vendor"
    NEWS = "news"
    RESEARCH = "research"
    COMMUNITY = "community"
    TENANT = "tenant"


class AlertType(str, Enum):
    VULNERABILITY = "vulnerability"
    EXPLOIT = "exploit"
    MALWARE = "malware"
    APT = "apt"
    BREACH = "breach"
    ADVISORY = "advisory"
    GUIDANCE = "guidance"
    ENFORCEMENT = "enforcement"
    REGULATORY = "regulatory"
    M365_UPDATE = "m365-update"
    M365_HEALTH = "m365-health"
    M365_ROADMAP = "m365-roadmap"
    OTHER = "other"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class ProcessingState(str, Enum):
    RAW = "raw"
    ENRICHED = "enriched"
    VERIFIED = "verified"
    PUBLISHED = "published"


class AlertKey(NamedTuple):
    """Point-read key: an alert id is only unique within its source partition."""
    id: str
    source_id: str


class IOC(BaseModel):
    type: str
    value: str
    context: Optional[str] = None


class ScoreComponents(BaseModel):
    base: int = 0
    epss: int = 0
    threat: int = 0
    context: int = 0


class CandidateAlert(BaseModel):
    """
    Normalized record produced by a source adapter.
    Nothing here is stored until the deduplicator classifies it as new.
    """
    source_id: str
    source_name: str
    source_category: SourceCategory
    source_trust_tier: int = 2
    source_url: Optional[str] = None
    source_language: str = "en"
    published_at: Optional[datetime] = None

    title: str
    description: str = ""

    alert_type: AlertType = AlertType.OTHER
    alert_sub_type: Optional[str] = None

    severity: Optional[str] = None
    cvss_score: Optional[float] = None
    cvss_vector: Optional[str] = None
    is_actively_exploited: bool = False
    is_zero_day: bool = False

    m365_is_major_change: bool = False
    m365_action_required_by: Optional[str] = None
    m365_status: Optional[str] = None

    cve_ids: List[str] = Field(default_factory=list)
    affected_vendors: List[str] = Field(default_factory=list)
    affected_products: List[str] = Field(default_factory=list)
    affected_versions: Optional[List[str]] = None
    mitre_tactics: List[str] = Field(default_factory=list)
    iocs: List[IOC] = Field(default_factory=list)

    raw_blob_path: Optional[str] = None
    raw_content_type: Optional[str] = None


class Alert(CandidateAlert):
    """Stored alert, mutated in place by the enrichment stages."""
    id: str
    content_hash: str
    fetched_at: datetime
    updated_at: datetime

    title_de: Optional[str] = None
    description_de: Optional[str] = None
    summary: Optional[str] = None
    summary_de: Optional[str] = None
    article_text: Optional[str] = None

    cvss_cve_id: Optional[str] = None
    epss_score: Optional[float] = None
    epss_percentile: Optional[float] = None

    ai_score: Optional[int] = Field(default=None, ge=0, le=100)
    ai_score_reasoning: Optional[str] = None
    score_components: Optional[ScoreComponents] = None

    csaf_description: Optional[str] = None
    csaf_recommendations: Optional[str] = None

    compliance: Optional[ComplianceMapping] = None
    compliance_ai_raw: Optional[dict] = None
    compliance_evidence: Optional[ComplianceEvidence] = None
    compliance_policy_version: Optional[str] = None

    is_processed: bool = False
    processing_state: ProcessingState = ProcessingState.RAW
    enrichment_version: int = 0

    @property
    def key(self) -> AlertKey:
        return AlertKey(self.id, self.source_id)
