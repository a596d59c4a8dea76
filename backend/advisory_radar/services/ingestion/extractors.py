# backend/advisory_radar/services/ingestion/extractors.py
import re
from typing import List, Optional

CVE_RE = re.compile(r"CVE-\d{4}-\d{4,7}", re.IGNORECASE)

VENDOR_ALIASES = {
    "fortinet": "Fortinet",
    "fortigate": "Fortinet",
    "fortios": "Fortinet",
    "microsoft": "Microsoft",
    "ivanti": "Ivanti",
    "cisco": "Cisco",
    "siemens": "Siemens",
    "schneider electric": "Schneider Electric",
    "rockwell": "Rockwell Automation",
    "palo alto": "Palo Alto Networks",
    "sap": "SAP",
    "vmware": "VMware",
    "adobe": "Adobe",
    "apple": "Apple",
    "linux": "Linux",
    "gitlab": "GitLab",
    "atlassian": "Atlassian",
    "juniper": "Juniper Networks",
    "sophos": "Sophos",
    "check point": "Check Point",
    "mitsubishi electric": "Mitsubishi Electric",
    "abb": "ABB",
    "advantech": "Advantech",
}

_EXPLOITED_PHRASES = ("actively exploited", "active exploitation", "in the wild")
_ZERO_DAY_PHRASES = ("zero-day", "0-day", "zero day")

# first match wins, most specific first
_TYPE_KEYWORDS = [
    ("vulnerability", ("vulnerability", "cve-", "flaw", "remote code execution",
                       "privilege escalation", "sql injection", "authentication bypass")),
    ("exploit", ("exploit", "zero-day", "0-day", "actively exploited", "in the wild",
                 "proof of concept", "proof-of-concept")),
    ("malware", ("ransomware", "malware", "trojan", "backdoor", "botnet", "infostealer",
                 "wiper", "spyware", "command and control")),
    ("apt", ("nation-state", "espionage", "advanced persistent", "threat actor",
             "state-sponsored")),
    ("breach", ("breach", "leak", "stolen", "records exposed", "datenleck")),
    ("advisory", ("advisory", "patch", "security update", "security bulletin", "hotfix",
                  "sicherheitsupdate", "patchday")),
    ("guidance", ("best practice", "guidance", "framework", "regulation", "directive",
                  "nis2", "hardening guide", "empfehlung")),
]

_SEVERITY_WORDS = [
    ("critical", ("critical severity", "severity: critical", "critical vulnerability")),
    ("high", ("high severity", "severity: high")),
    ("medium", ("medium severity", "severity: medium")),
    ("low", ("low severity", "severity: low")),
]


def extract_cve_ids(text: str) -> List[str]:
    """Uppercased, deduplicated, in order of first appearance."""
    seen: List[str] = []
    for m in CVE_RE.findall(text or ""):
        cve = m.upper()
        if cve not in seen:
            seen.append(cve)
    return seen


def extract_vendors(text: str) -> List[str]:
    lower = (text or "").lower()
    found: List[str] = []
    for alias, vendor in VENDOR_ALIASES.items():
        if re.search(rf"\b{re.escape(alias)}\b", lower) and vendor not in found:
            found.append(vendor)
    return found


def is_actively_exploited(text: str) -> bool:
    lower = (text or "").lower()
    return any(p in lower for p in _EXPLOITED_PHRASES)


def is_zero_day(text: str) -> bool:
    lower = (text or "").lower()
    return any(p in lower for p in _ZERO_DAY_PHRASES)


def classify_alert_type(text: str) -> str:
    lower = (text or "").lower()
    for alert_type, keywords in _TYPE_KEYWORDS:
        if any(k in lower for k in keywords):
            return alert_type
    return "other"


def severity_from_text(text: str) -> Optional[str]:
    lower = (text or "").lower()
    for severity, words in _SEVERITY_WORDS:
        if any(w in lower for w in words):
            return severity
    return None
