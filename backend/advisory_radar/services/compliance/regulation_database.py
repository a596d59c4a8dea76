# backend/advisory_radar/services/compliance/regulation_database.py
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

BSIG_URL = "https://www.gesetze-im-internet.de/bsig_2024/"
DORA_URL = "https://eur-lex.europa.eu/eli/reg/2022/2554/oj"
GDPR_URL = "https://eur-lex.europa.eu/eli/reg/2016/679/oj"


class ReportingDeadline(BaseModel):
    initial_notification_hours: int
    full_report_hours: int
    final_report_days: Optional[int] = None
    report_to: str


class RegulationEntry(BaseModel):
    id: str
    framework: str  # NIS2 | DORA | GDPR
    reference: str
    title: str
    triggers: List[str]
    reporting_required: bool = False
    reporting_deadline: Optional[ReportingDeadline] = None
    action_items: List[str] = Field(default_factory=list)
    source_url: str


class IsoControl(BaseModel):
    control: str
    title: str
    triggers: List[str]


REGULATIONS: List[RegulationEntry] = [
    # ---------------- NIS2 (German BSIG) ----------------
    RegulationEntry(
        id="nis2-§28",
        framework="NIS2",
        reference="§28 BSIG",
        title="Essential entities",
        triggers=["entity_classification", "sector_identification", "critical_infrastructure"],
        action_items=[
            "Check if your organization qualifies as an essential entity under §28 BSIG",
            "Register with BSI per §33 BSIG within 3 months",
        ],
        source_url=BSIG_URL,
    ),
    RegulationEntry(
        id="nis2-§29",
        framework="NIS2",
        reference="§29 BSIG",
        title="Important entities",
        triggers=["entity_classification", "sector_identification"],
        action_items=[
            "Check if your organization qualifies as an important entity under §29 BSIG",
            "Register with BSI per §33 BSIG within 3 months",
        ],
        source_url=BSIG_URL,
    ),
    RegulationEntry(
        id="nis2-§30",
        framework="NIS2",
        reference="§30 BSIG",
        title="Risk management measures",
        triggers=[
            "vulnerability_management", "risk_assessment", "access_control",
            "encryption", "supply_chain", "patch_management", "security_update",
            "configuration_management", "critical_vulnerability", "unpatched_system", "cve",
        ],
        action_items=[
            "Assess the vulnerability relevance for your systems",
            "Check if affected products are used in your infrastructure",
            "Update your risk analysis per §30(1) BSIG",
            "Implement available patches or mitigation measures",
            "Document actions for audit evidence",
        ],
        source_url=BSIG_URL,
    ),
    RegulationEntry(
        id="nis2-§31",
        framework="NIS2",
        reference="§31 BSIG",
        title="Special management requirements",
        triggers=["management_liability", "board_responsibility", "security_training"],
        action_items=[
            "Inform management about the new threat situation",
            "Document management acknowledgement",
        ],
        source_url=BSIG_URL,
    ),
    RegulationEntry(
        id="nis2-§32",
        framework="NIS2",
        reference="§32 BSIG",
        title="Reporting obligations",
        triggers=[
            "active_exploitation", "data_breach", "service_disruption",
            "ransomware_attack", "significant_incident", "operational_impact",
            "confirmed_compromise",
        ],
        reporting_required=True,
        reporting_deadline=ReportingDeadline(
            initial_notification_hours=24,
            full_report_hours=72,
            final_report_days=30,
            report_to="BSI",
        ),
        action_items=[
            "IMMEDIATELY: Check if your organization is affected by the active exploitation",
            "If YES: Early warning to BSI within 24 hours (§32(1)(1) BSIG)",
            "Within 72 hours: Full notification with severity and impact",
            "Within 1 month: Final report with root cause analysis",
            "Report via BSI portal: https://www.bsi.bund.de/meldestelle",
        ],
        source_url=BSIG_URL,
    ),
    RegulationEntry(
        id="nis2-§33",
        framework="NIS2",
        reference="§33 BSIG",
        title="Registration obligation",
        triggers=["registration_deadline", "entity_registration"],
        action_items=["Register with BSI within 3 months of entry into force"],
        source_url=BSIG_URL,
    ),
    # ---------------- DORA ----------------
    RegulationEntry(
        id="dora-art5",
        framework="DORA",
        reference="Art. 5 DORA",
        title="ICT risk management framework",
        triggers=["risk_management", "ict_infrastructure", "vulnerability_management", "financial_sector"],
        action_items=[
            "Verify your ICT risk management measures meet DORA requirements",
            "Update your ICT risk analysis considering the new threat",
        ],
        source_url=DORA_URL,
    ),
    RegulationEntry(
        id="dora-art17",
        framework="DORA",
        reference="Art. 17 DORA",
        title="ICT-related incident reporting process",
        triggers=[
            "active_exploitation", "service_disruption", "data_breach",
            "financial_system_impact", "significant_incident", "confirmed_compromise",
        ],
        reporting_required=True,
        reporting_deadline=ReportingDeadline(
            initial_notification_hours=4,
            full_report_hours=72,
            final_report_days=30,
            report_to="BaFin",
        ),
        action_items=[
            "IMMEDIATELY: Check if your financial services systems are affected",
            "If YES: Initial report to BaFin within 4 hours (Art. 17(3) DORA)",
            "Within 72 hours: Intermediate report with detailed analysis",
            "Within 1 month: Final report with root cause analysis",
        ],
        source_url=DORA_URL,
    ),
    RegulationEntry(
        id="dora-art28",
        framework="DORA",
        reference="Art. 28 DORA",
        title="ICT third-party risk management",
        triggers=["supply_chain", "third_party", "cloud_provider", "saas_vulnerability", "managed_service"],
        action_items=[
            "Check if affected ICT providers are in your third-party register",
            "Assess the risk for your outsourced ICT services",
            "Notify your provider and request a statement",
        ],
        source_url=DORA_URL,
    ),
    # ---------------- GDPR ----------------
    RegulationEntry(
        id="gdpr-art32",
        framework="GDPR",
        reference="Art. 32 DSGVO",
        title="Security of processing",
        triggers=[
            "personal_data_processing", "encryption_weakness", "access_control_bypass",
            "authentication_bypass", "pii_exposure",
        ],
        action_items=[
            "Check if personal data is endangered by the vulnerability",
            "Assess if your TOMs per Art. 32 GDPR are still adequate",
        ],
        source_url=GDPR_URL,
    ),
    RegulationEntry(
        id="gdpr-art33",
        framework="GDPR",
        reference="Art. 33 DSGVO",
        title="Notification to supervisory authority",
        triggers=[
            "personal_data_breach", "pii_exposure", "data_exfiltration",
            "credential_theft", "patient_data", "customer_data_leak",
        ],
        reporting_required=True,
        reporting_deadline=ReportingDeadline(
            initial_notification_hours=72,
            full_report_hours=72,
            report_to="Data protection supervisory authority",
        ),
        action_items=[
            "CHECK: Was personal data compromised?",
            "If YES: Notify authority within 72 hours (Art. 33(1) GDPR)",
            "Document the breach, impact and measures taken",
            "Check notification obligation to affected persons (Art. 34 GDPR)",
        ],
        source_url=GDPR_URL,
    ),
    RegulationEntry(
        id="gdpr-art34",
        framework="GDPR",
        reference="Art. 34 DSGVO",
        title="Communication to the data subject",
        triggers=["high_risk_data_breach", "mass_pii_exposure", "health_data_breach", "financial_data_breach"],
        reporting_required=True,
        reporting_deadline=ReportingDeadline(
            initial_notification_hours=0,
            full_report_hours=0,
            report_to="Affected persons",
        ),
        action_items=[
            "Notify affected persons without undue delay about the data breach",
            "Use clear language: nature of breach, likely consequences, measures taken",
            "Provide DPO contact details",
        ],
        source_url=GDPR_URL,
    ),
]

ISO_CONTROLS: List[IsoControl] = [
    IsoControl(control="A.5.19", title="Information security in supplier relationships",
               triggers=["supply_chain", "third_party", "vendor_vulnerability"]),
    IsoControl(control="A.5.23", title="Information security for use of cloud services",
               triggers=["cloud_vulnerability", "saas_vulnerability", "cloud_provider"]),
    IsoControl(control="A.5.24", title="Information security incident management planning",
               triggers=["incident_response", "significant_incident"]),
    IsoControl(control="A.5.25", title="Assessment and decision on information security events",
               triggers=["threat_assessment", "risk_assessment"]),
    IsoControl(control="A.5.26", title="Response to information security incidents",
               triggers=["active_exploitation", "confirmed_compromise", "incident_response"]),
    IsoControl(control="A.8.7", title="Protection against malware",
               triggers=["malware", "ransomware", "trojan", "botnet", "wiper"]),
    IsoControl(control="A.8.8", title="Management of technical vulnerabilities",
               triggers=["vulnerability_management", "critical_vulnerability", "patch_management",
                         "security_update", "cve"]),
    IsoControl(control="A.8.9", title="Configuration management",
               triggers=["configuration_management", "misconfiguration", "default_credentials"]),
    IsoControl(control="A.8.20", title="Networks security",
               triggers=["network_vulnerability", "firewall_bypass", "vpn_vulnerability"]),
]

REGULATIONS_BY_ID: Dict[str, RegulationEntry] = {r.id: r for r in REGULATIONS}

ALL_REFERENCES = frozenset(r.reference for r in REGULATIONS)


def regulations_for(framework: str) -> List[RegulationEntry]:
    return [r for r in REGULATIONS if r.framework == framework]
