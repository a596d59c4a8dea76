# backend/advisory_radar/schemas/ai_analysis.py
import math
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from advisory_radar.schemas.compliance import Confidence, Relevance


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


class AIComplianceTag(BaseModel):
    """
    One framework tag as returned by the model.
    Every field coerces to a safe default instead of failing validation.
    """
    relevant: Relevance = Relevance.CONDITIONAL
    confidence: Confidence = Confidence.LOW
    references: List[str] = Field(default_factory=list)
    reasoning: str = ""
    reporting_required: bool = Field(default=False, alias="reportingRequired")
    reporting_deadline_hours: Optional[int] = Field(default=None, alias="reportingDeadlineHours")
    action_items: List[str] = Field(default_factory=list, alias="actionItemsDe")

    model_config = {"populate_by_name": True}

    @field_validator("relevant", mode="before")
    @classmethod
    def _relevant(cls, v: Any) -> str:
        return v if v in ("yes", "conditional", "no") else "conditional"

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, v: Any) -> str:
        return v if v in ("high", "medium", "low") else "low"

    @field_validator("references", "action_items", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> List[str]:
        return _string_list(v)

    @field_validator("reasoning", mode="before")
    @classmethod
    def _reasoning(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""

    @field_validator("reporting_required", mode="before")
    @classmethod
    def _reporting(cls, v: Any) -> bool:
        return v is True

    @field_validator("reporting_deadline_hours", mode="before")
    @classmethod
    def _deadline(cls, v: Any) -> Optional[int]:
        if isinstance(v, bool):
            return None
        if isinstance(v, (int, float)) and math.isfinite(v):
            return int(v)
        return None


class AIComplianceBlock(BaseModel):
    nis2: Optional[AIComplianceTag] = None
    dora: Optional[AIComplianceTag] = None
    gdpr: Optional[AIComplianceTag] = None

    @field_validator("nis2", "dora", "gdpr", mode="before")
    @classmethod
    def _tag(cls, v: Any) -> Optional[dict]:
        return v if isinstance(v, dict) else None


class AIAnalysisResult(BaseModel):
    summary: str = ""
    summary_de: str = Field(default="", alias="summaryDe")
    title_de: str = Field(default="", alias="titleDe")
    triggers: List[str] = Field(default_factory=list)
    compliance: AIComplianceBlock = Field(default_factory=AIComplianceBlock)

    tokens_used: int = 0

    model_config = {"populate_by_name": True}

    @field_validator("summary", "summary_de", "title_de", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return v.strip() if isinstance(v, str) else ""

    @field_validator("triggers", mode="before")
    @classmethod
    def _triggers(cls, v: Any) -> List[str]:
        return [t.strip().lower() for t in _string_list(v) if t.strip()]

    @field_validator("compliance", mode="before")
    @classmethod
    def _compliance(cls, v: Any) -> dict:
        return v if isinstance(v, dict) else {}
