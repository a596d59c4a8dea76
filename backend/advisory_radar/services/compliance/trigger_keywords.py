# backend/advisory_radar/services/compliance/trigger_keywords.py
"""
Constrained trigger vocabulary.

Only these tokens may connect an alert to regulatory text. Anything else a
model returns is discarded by the rule engine before compliance mapping.
"""

VULNERABILITY_TRIGGERS = [
    "vulnerability_management",
    "risk_assessment",
    "access_control",
    "encryption",
    "supply_chain",
    "patch_management",
    "security_update",
    "configuration_management",
    "critical_vulnerability",
    "unpatched_system",
    "cve",
]

INCIDENT_TRIGGERS = [
    "active_exploitation",
    "data_breach",
    "service_disruption",
    "ransomware_attack",
    "significant_incident",
    "operational_impact",
    "confirmed_compromise",
    "incident_response",
]

PERSONAL_DATA_TRIGGERS = [
    "personal_data_breach",
    "pii_exposure",
    "data_exfiltration",
    "credential_theft",
    "patient_data",
    "customer_data_leak",
    "personal_data_processing",
    "encryption_weakness",
    "access_control_bypass",
    "authentication_bypass",
    "high_risk_data_breach",
    "mass_pii_exposure",
    "health_data_breach",
    "financial_data_breach",
]

FINANCIAL_AND_THIRD_PARTY_TRIGGERS = [
    "financial_system_impact",
    "financial_sector",
    "ict_infrastructure",
    "third_party",
    "cloud_provider",
    "saas_vulnerability",
    "managed_service",
]

GOVERNANCE_TRIGGERS = [
    "management_liability",
    "board_responsibility",
    "security_training",
    "entity_classification",
    "sector_identification",
    "registration_deadline",
    "risk_management",
    "threat_assessment",
]

THREAT_TRIGGERS = [
    "malware",
    "ransomware",
    "trojan",
    "botnet",
    "wiper",
    "network_vulnerability",
    "firewall_bypass",
    "vpn_vulnerability",
    "vendor_vulnerability",
    "cloud_vulnerability",
    "misconfiguration",
    "default_credentials",
]

ALLOWED_TRIGGERS = (
    VULNERABILITY_TRIGGERS
    + INCIDENT_TRIGGERS
    + PERSONAL_DATA_TRIGGERS
    + FINANCIAL_AND_THIRD_PARTY_TRIGGERS
    + GOVERNANCE_TRIGGERS
    + THREAT_TRIGGERS
)

ALLOWED_TRIGGERS_SET = frozenset(ALLOWED_TRIGGERS)


def is_allowed_trigger(trigger: str) -> bool:
    return trigger in ALLOWED_TRIGGERS_SET
