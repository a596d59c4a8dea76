# backend/advisory_radar/services/compliance/rule_engine.py
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from advisory_radar.schemas.alerts import Alert
from advisory_radar.schemas.compliance import (
    ComplianceEvidence,
    ComplianceMapping,
    ComplianceTag,
    Confidence,
    IsoMapping,
    Relevance,
    TriggerEvidence,
)
from advisory_radar.services.compliance.regulation_database import (
    ISO_CONTROLS,
    RegulationEntry,
    regulations_for,
)
from advisory_radar.services.compliance.trigger_keywords import ALLOWED_TRIGGERS_SET

logger = logging.getLogger(__name__)

POLICY_VERSION = "rules-v1"

KNOWN_EXPLOITED_SOURCE_ID = "cisa-kev"

PII_KEYWORDS = [
    "personal data", "pii", "personenbezogen", "email address",
    "credentials", "passwords", "patient data", "credit card", "social security",
    "customer data", "user data", "account data",
]

ICS_VENDORS = [
    "Siemens", "Schneider Electric", "Rockwell Automation",
    "Mitsubishi Electric", "ABB", "Honeywell", "Hitachi Energy", "Advantech",
]

SUPPLY_CHAIN_KEYWORDS = [
    "supply chain", "dependency", "npm", "pypi", "maven",
    "package manager", "lieferkette", "third-party library", "open source component",
]

NON_THREAT_TYPES = ("guidance", "enforcement", "regulatory")

EXPLOITED_SCORE_FLOOR = 70
CRITICAL_CVSS_SCORE_FLOOR = 80
NON_THREAT_SCORE_CAP = 60


class RuleEngineResult(BaseModel):
    triggers: List[str] = Field(default_factory=list)
    compliance: ComplianceMapping
    evidence: ComplianceEvidence
    overrides: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    score: Optional[int] = None
    score_reasoning: str = ""


class _TriggerSet:
    """Ordered trigger list that remembers who added each entry."""

    def __init__(self, ai_triggers: List[str]) -> None:
        self.items: List[str] = []
        self.origin: Dict[str, TriggerEvidence] = {}
        for t in ai_triggers:
            self.add(t, "ai", "returned by model")

    def add(self, trigger: str, source: str, detail: str) -> bool:
        if trigger in self.items:
            return False
        self.items.append(trigger)
        self.origin[trigger] = TriggerEvidence(trigger=trigger, source=source, detail=detail)
        return True

    def __contains__(self, trigger: str) -> bool:
        return trigger in self.items


def _alert_type(alert: Alert) -> str:
    return alert.alert_type.value if hasattr(alert.alert_type, "value") else str(alert.alert_type)


class ComplianceRuleEngine:
    """
    Post-AI validation. Runs a fixed sequence of deterministic corrections
    over the model's triggers and the risk score, then maps the surviving
    triggers to regulations using only the static database.
    """

    def validate(
        self,
        alert: Alert,
        ai_triggers: List[str],
        score: Optional[int] = None,
        score_reasoning: str = "",
    ) -> RuleEngineResult:
        overrides: List[str] = []
        warnings: List[str] = []
        text = f"{alert.title or ''} {alert.description or ''}".lower()
        cvss = alert.cvss_score
        triggers = _TriggerSet(ai_triggers)

        # 1) known exploited catalog or flagged alert -> active_exploitation
        if alert.source_id == KNOWN_EXPLOITED_SOURCE_ID or alert.is_actively_exploited:
            if triggers.add("active_exploitation", "rule", "known exploited source or flag"):
                overrides.append("RULE_1: added active_exploitation for known exploited alert")

        # 2) exploited + CVSS >= 9 -> critical_vulnerability
        if alert.is_actively_exploited and cvss is not None and cvss >= 9.0:
            if triggers.add("critical_vulnerability", "rule", "actively exploited with CVSS >= 9.0"):
                overrides.append("RULE_2: added critical_vulnerability for CVSS >= 9.0 + actively exploited")

        # 3) CVSS >= 7 -> vulnerability management triggers
        if cvss is not None and cvss >= 7.0:
            for t in ("vulnerability_management", "patch_management", "cve"):
                triggers.add(t, "rule", "CVSS >= 7.0")
            overrides.append("RULE_3: added vulnerability management triggers for CVSS >= 7.0")

        # 4) score floor for active exploitation
        if score is not None and alert.is_actively_exploited and score < EXPLOITED_SCORE_FLOOR:
            score = EXPLOITED_SCORE_FLOOR
            score_reasoning += f" [Rule engine: floor {EXPLOITED_SCORE_FLOOR} for active exploitation]"
            overrides.append(f"RULE_4: raised score to {EXPLOITED_SCORE_FLOOR} for active exploitation")

        # 5) score floor for critical CVSS
        if score is not None and cvss is not None and cvss >= 9.0 and score < CRITICAL_CVSS_SCORE_FLOOR:
            score = CRITICAL_CVSS_SCORE_FLOOR
            score_reasoning += f" [Rule engine: floor {CRITICAL_CVSS_SCORE_FLOOR} for CVSS >= 9.0]"
            overrides.append(f"RULE_5: raised score to {CRITICAL_CVSS_SCORE_FLOOR} for CVSS >= 9.0")

        # 6) PII keywords
        if any(kw in text for kw in PII_KEYWORDS):
            if triggers.add("pii_exposure", "rule", "personal data keyword in alert text"):
                overrides.append("RULE_6: added pii_exposure from keyword detection")

        # 7) ICS/OT vendors
        vendors = [v.lower() for v in alert.affected_vendors or []]
        if any(ics.lower() in v for ics in ICS_VENDORS for v in vendors):
            warnings.append("ICS/OT vendor detected, verify KRITIS relevance")
            if cvss is not None and cvss >= 7.0:
                if triggers.add("critical_vulnerability", "rule", "ICS/OT vendor with CVSS >= 7.0"):
                    overrides.append("RULE_7: added critical_vulnerability for ICS/OT vendor")

        # 8) supply chain keywords
        if any(kw in text for kw in SUPPLY_CHAIN_KEYWORDS):
            if triggers.add("supply_chain", "rule", "supply chain keyword in alert text"):
                overrides.append("RULE_8: added supply_chain from keyword detection")

        # 9) allow-list
        invalid = [t for t in triggers.items if t not in ALLOWED_TRIGGERS_SET]
        if invalid:
            overrides.append(f"RULE_9: removed invalid triggers: {', '.join(invalid)}")
            logger.info("Stripped %d non-vocabulary triggers from %s", len(invalid), alert.id)
        valid = [t for t in triggers.items if t in ALLOWED_TRIGGERS_SET]

        # 10) non-threat score cap
        if score is not None and _alert_type(alert) in NON_THREAT_TYPES and score > NON_THREAT_SCORE_CAP:
            score = NON_THREAT_SCORE_CAP
            score_reasoning += f" [Rule engine: capped at {NON_THREAT_SCORE_CAP} for non-threat alert]"
            overrides.append(f"RULE_10: capped score at {NON_THREAT_SCORE_CAP} for non-threat alert")

        compliance = map_to_compliance(valid, alert)
        evidence = ComplianceEvidence(
            triggers=valid,
            evidence=[triggers.origin[t] for t in valid],
            mapped_references={
                "nis2": list(compliance.nis2.references) if compliance.nis2 else [],
                "dora": list(compliance.dora.references) if compliance.dora else [],
                "gdpr": list(compliance.gdpr.references) if compliance.gdpr else [],
            },
            overrides=overrides,
            warnings=warnings,
            policy_version=POLICY_VERSION,
        )

        return RuleEngineResult(
            triggers=valid,
            compliance=compliance,
            evidence=evidence,
            overrides=overrides,
            warnings=warnings,
            score=score,
            score_reasoning=score_reasoning.strip(),
        )


# ---------------------------------------------
# Trigger -> compliance mapping
# ---------------------------------------------


def _matches(framework: str, triggers: List[str]) -> List[RegulationEntry]:
    wanted = set(triggers)
    return [r for r in regulations_for(framework) if wanted.intersection(r.triggers)]


def _unique(values: List[str]) -> List[str]:
    return list(dict.fromkeys(values))


def map_to_compliance(triggers: List[str], alert: Alert) -> ComplianceMapping:
    """Framework verdicts computed purely from the static regulation table."""
    result = ComplianceMapping()

    nis2 = _matches("NIS2", triggers)
    if nis2:
        reporting = any(r.reporting_required for r in nis2)
        result.nis2 = ComplianceTag(
            relevant=Relevance.YES if reporting else Relevance.CONDITIONAL,
            confidence=Confidence.HIGH if alert.source_trust_tier == 1 else Confidence.MEDIUM,
            references=_unique([r.reference for r in nis2]),
            reasoning=_nis2_reasoning(nis2, alert),
            reporting_required=reporting,
            reporting_deadline_hours=24 if reporting else None,
            action_items=_unique([a for r in nis2 for a in r.action_items]),
        )
    else:
        result.nis2 = ComplianceTag(
            relevant=Relevance.NO,
            confidence=Confidence.HIGH,
            reasoning="No NIS2-relevant triggers identified.",
        )

    dora = _matches("DORA", triggers)
    if dora:
        reporting = any(r.reporting_required for r in dora)
        refs = _unique([r.reference for r in dora])
        result.dora = ComplianceTag(
            relevant=Relevance.CONDITIONAL,
            confidence=Confidence.MEDIUM,
            references=refs,
            reasoning=(
                f"Relevant for financial-sector organizations: {', '.join(refs)}. "
                "Applies only if your organization falls under DORA."
            ),
            reporting_required=reporting,
            reporting_deadline_hours=4 if reporting else None,
            action_items=_unique([a for r in dora for a in r.action_items]),
        )

    gdpr = _matches("GDPR", triggers)
    if gdpr:
        art33 = any(r.id == "gdpr-art33" for r in gdpr)
        result.gdpr = ComplianceTag(
            relevant=Relevance.CONDITIONAL if art33 else Relevance.YES,
            confidence=Confidence.MEDIUM if art33 else Confidence.HIGH,
            references=_unique([r.reference for r in gdpr]),
            reasoning=_gdpr_reasoning(gdpr),
            reporting_required=art33,
            reporting_deadline_hours=72 if art33 else None,
            action_items=_unique([a for r in gdpr for a in r.action_items]),
        )

    wanted = set(triggers)
    iso = [c for c in ISO_CONTROLS if wanted.intersection(c.triggers)]
    if iso:
        result.iso27001 = IsoMapping(
            controls=[c.control for c in iso],
            reasoning="Relevant controls: " + ", ".join(f"{c.control} ({c.title})" for c in iso),
        )

    return result


def _nis2_reasoning(matches: List[RegulationEntry], alert: Alert) -> str:
    ids = {m.id for m in matches}
    parts: List[str] = []
    if "nis2-§32" in ids:
        parts.append(
            "Active exploitation confirmed - check reporting obligation under Section 32 BSIG."
            if alert.is_actively_exploited
            else "Potential reporting obligation under Section 32 BSIG - verify whether a significant incident exists."
        )
    if "nis2-§30" in ids:
        cvss_info = f"CVSS {alert.cvss_score}" if alert.cvss_score else "Vulnerability"
        parts.append(f"Risk management under Section 30 BSIG: {cvss_info} requires assessment and mitigation.")
    if "nis2-§31" in ids:
        parts.append("Inform management about the threat situation (Section 31 BSIG).")
    return " ".join(parts) or "NIS2 relevance based on identified triggers."


def _gdpr_reasoning(matches: List[RegulationEntry]) -> str:
    ids = {m.id for m in matches}
    if "gdpr-art33" in ids:
        return "Possible personal-data breach. Check whether reporting is required under Art. 33 GDPR (72 hours)."
    if "gdpr-art32" in ids:
        return "This vulnerability may impact processing security. Verify TOMs under Art. 32 GDPR."
    return "GDPR relevance based on identified triggers."
