# backend/advisory_radar/schemas/compliance.py
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class Relevance(str, Enum):
    YES = "yes"
    CONDITIONAL = "conditional"
    NO = "no"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ComplianceTag(BaseModel):
    """Verdict for one regulatory framework."""
    relevant: Relevance = Relevance.CONDITIONAL
    confidence: Confidence = Confidence.LOW
    references: List[str] = Field(default_factory=list)
    reasoning: str = ""
    reporting_required: bool = False
    reporting_deadline_hours: Optional[int] = None
    action_items: List[str] = Field(default_factory=list)


class IsoMapping(BaseModel):
    controls: List[str] = Field(default_factory=list)
    reasoning: str = ""


class ComplianceMapping(BaseModel):
    nis2: Optional[ComplianceTag] = None
    dora: Optional[ComplianceTag] = None
    gdpr: Optional[ComplianceTag] = None
    iso27001: Optional[IsoMapping] = None


class TriggerEvidence(BaseModel):
    trigger: str
    source: str  # "ai" | "rule"
    detail: str = ""


class ComplianceEvidence(BaseModel):
    triggers: List[str] = Field(default_factory=list)
    evidence: List[TriggerEvidence] = Field(default_factory=list)
    mapped_references: Dict[str, List[str]] = Field(
        default_factory=lambda: {"nis2": [], "dora": [], "gdpr": []}
    )
    overrides: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    policy_version: str = ""
