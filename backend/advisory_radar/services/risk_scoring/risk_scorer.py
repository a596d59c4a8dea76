# backend/advisory_radar/services/risk_scoring/risk_scorer.py
from typing import List, Optional

from pydantic import BaseModel, Field

from advisory_radar.schemas.alerts import Alert, ScoreComponents


# ---------------------------------------------
# Static tables
# ---------------------------------------------

TENANT_TYPES = ("m365-update", "m365-roadmap", "m365-health")
INFORMATIONAL_TYPES = ("guidance", "regulatory", "other")

TYPE_BASE_SCORES = {
    "exploit": 28,
    "apt": 28,
    "breach": 25,
    "malware": 22,
    "vulnerability": 18,
    "advisory": 12,
    "guidance": 8,
    "regulatory": 8,
    "other": 10,
}
UNKNOWN_TYPE_BASE = 15

CRITICAL_PRODUCTS = [
    "microsoft", "windows", "exchange", "azure", "office", "365",
    "linux", "kernel", "ubuntu", "red hat", "rhel", "suse", "debian",
    "sap", "siemens", "sinec", "simatic",
    "apache", "tomcat", "httpd", "struts",
    "vmware", "vcenter", "esxi",
    "cisco", "fortinet", "fortigate", "palo alto",
    "oracle", "mysql", "postgresql",
    "citrix", "ivanti",
    "gitlab", "jenkins", "docker", "kubernetes",
    "chrome", "edge", "firefox",
    "openssl", "openssh",
    "wordpress", "drupal",
    "qnap", "synology",
    "zoom", "teams",
]

EXPLOITED_FLOOR = 85
ZERO_DAY_FLOOR = 80
INFORMATIONAL_CAP = 45
THREAT_CAP = 20
CONTEXT_CAP = 15


class ScoringInput(BaseModel):
    cvss_score: Optional[float] = None
    epss_score: Optional[float] = None
    is_actively_exploited: bool = False
    is_zero_day: bool = False
    alert_type: str = "other"
    source_name: str = ""
    source_trust_tier: int = 2
    cve_count: int = 0
    affected_products: List[str] = Field(default_factory=list)

    m365_is_major_change: bool = False
    m365_action_required_by: Optional[str] = None
    m365_status: Optional[str] = None

    @classmethod
    def from_alert(cls, alert: Alert) -> "ScoringInput":
        alert_type = alert.alert_type.value if hasattr(alert.alert_type, "value") else str(alert.alert_type)
        return cls(
            cvss_score=alert.cvss_score,
            epss_score=alert.epss_score,
            is_actively_exploited=alert.is_actively_exploited,
            is_zero_day=alert.is_zero_day,
            alert_type=alert_type,
            source_name=alert.source_name,
            source_trust_tier=alert.source_trust_tier,
            cve_count=len(alert.cve_ids or []),
            affected_products=alert.affected_products or [],
            m365_is_major_change=alert.m365_is_major_change,
            m365_action_required_by=alert.m365_action_required_by,
            m365_status=alert.m365_status,
        )


class ScoringResult(BaseModel):
    score: int
    rationale: str
    components: ScoreComponents


# ---------------------------------------------
# Components
# ---------------------------------------------


def _tenant_base(inp: ScoringInput, reasons: List[str]) -> int:
    if inp.alert_type in ("m365-update", "m365-roadmap"):
        if inp.m365_is_major_change and inp.m365_action_required_by:
            reasons.append("Microsoft 365: major change with deadline")
            return 25
        if inp.m365_is_major_change:
            reasons.append("Microsoft 365: major change")
            return 18
        reasons.append("Microsoft 365: notice")
        return 8

    if inp.alert_type == "m365-health":
        status = (inp.m365_status or "").lower()
        if "interruption" in status or "outage" in status:
            reasons.append("Microsoft 365: service interruption")
            return 35
        if "degradation" in status or "degraded" in status:
            reasons.append("Microsoft 365: service degradation")
            return 25
        reasons.append("Microsoft 365: service notice")
        return 15

    return 0


def _base_component(inp: ScoringInput, reasons: List[str]) -> int:
    base = _tenant_base(inp, reasons)

    cvss = inp.cvss_score
    if cvss is not None:
        if cvss >= 9.0:
            reasons.append(f"CVSS {cvss} (critical)")
            return 35
        if cvss >= 8.0:
            reasons.append(f"CVSS {cvss} (high)")
            return 30
        if cvss >= 7.0:
            reasons.append(f"CVSS {cvss} (high)")
            return 25
        if cvss >= 5.0:
            reasons.append(f"CVSS {cvss} (medium)")
            return 18
        if cvss >= 3.0:
            reasons.append(f"CVSS {cvss} (low)")
            return 10
        reasons.append(f"CVSS {cvss}")
        return 5

    if base == 0:
        base = TYPE_BASE_SCORES.get(inp.alert_type, UNKNOWN_TYPE_BASE)
        reasons.append(f"No CVSS, type: {inp.alert_type}")
    return base


def _epss_component(inp: ScoringInput, reasons: List[str]) -> int:
    epss = inp.epss_score
    if inp.alert_type in TENANT_TYPES or epss is None or epss <= 0:
        return 0

    pct = f"{epss * 100:.1f}%"
    if epss >= 0.5:
        reasons.append(f"EPSS {pct}, very high exploitation likelihood")
        return 25
    if epss >= 0.2:
        reasons.append(f"EPSS {pct}, high exploitation likelihood")
        return 20
    if epss >= 0.1:
        reasons.append(f"EPSS {pct}, elevated exploitation likelihood")
        return 15
    if epss >= 0.05:
        reasons.append(f"EPSS {pct}")
        return 10
    if epss >= 0.01:
        reasons.append(f"EPSS {pct}")
        return 5
    if epss >= 0.001:
        return 2
    return 0


def _threat_component(inp: ScoringInput, base: int, reasons: List[str]) -> int:
    threat = 0
    if inp.alert_type == "m365-health":
        # tenant availability incidents bubble up, but not like exploited CVEs
        threat += 10 if base >= 35 else 5 if base >= 25 else 0
    if inp.is_actively_exploited:
        threat += 15
        reasons.append("Actively exploited")
    if inp.is_zero_day:
        threat += 10
        reasons.append("Zero-day")
    if inp.alert_type == "breach":
        threat += 5
        reasons.append("Confirmed breach")
    if inp.alert_type == "apt":
        threat += 5
        reasons.append("APT campaign")
    return min(THREAT_CAP, threat)


def _context_component(inp: ScoringInput, reasons: List[str]) -> int:
    context = 0
    if inp.source_trust_tier == 1:
        context += 3

    products = " ".join(p.lower() for p in inp.affected_products)
    if products and any(cp in products for cp in CRITICAL_PRODUCTS):
        context += 5
        reasons.append("Widely deployed product")

    if inp.cve_count > 20:
        context += 4
        reasons.append(f"{inp.cve_count} CVEs")
    elif inp.cve_count > 5:
        context += 2

    if "Known Exploited" in inp.source_name:
        context += 5
        reasons.append("Known exploited catalog")

    return min(CONTEXT_CAP, context)


# ---------------------------------------------
# Entry point
# ---------------------------------------------


def calculate_risk_score(inp: ScoringInput) -> ScoringResult:
    """
    Reproducible 0-100 priority score.

    base (0-40) + epss (0-25) + threat (0-20) + context (0-15), then:
      - actively exploited  -> at least 85
      - zero-day            -> at least 80
      - informational types -> at most 45 unless actively exploited
    """
    reasons: List[str] = []

    base = _base_component(inp, reasons)
    epss = _epss_component(inp, reasons)
    threat = _threat_component(inp, base, reasons)
    context = _context_component(inp, reasons)

    total = base + epss + threat + context
    total = min(100, max(0, total))

    if inp.is_actively_exploited:
        total = max(total, EXPLOITED_FLOOR)
    if inp.is_zero_day:
        total = max(total, ZERO_DAY_FLOOR)

    if inp.alert_type in INFORMATIONAL_TYPES and not inp.is_actively_exploited:
        total = min(total, INFORMATIONAL_CAP)

    return ScoringResult(
        score=int(round(total)),
        rationale=". ".join(reasons) + "." if reasons else "",
        components=ScoreComponents(base=base, epss=epss, threat=threat, context=context),
    )
