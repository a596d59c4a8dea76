# backend/advisory_radar/services/risk_scoring/risk_utils.py
from typing import Optional


def cvss_to_severity(cvss: Optional[float]) -> Optional[str]:
    if cvss is None:
        return None
    if cvss >= 9.0:
        return "critical"
    if cvss >= 7.0:
        return "high"
    if cvss >= 4.0:
        return "medium"
    if cvss >= 0.1:
        return "low"
    return None


def severity_from_score(score: int) -> str:
    if score >= 85:
        return "critical"
    if score >= 60:
        return "high"
    if score >= 35:
        return "medium"
    if score >= 15:
        return "low"
    return "info"


def reconcile_severity(
    current: Optional[str],
    cvss_score: Optional[float],
    risk_score: Optional[int],
) -> str:
    """
    Keep an externally supplied severity unless it grossly contradicts CVSS,
    otherwise derive it from CVSS, then from the risk score.
    """
    label = (current or "").strip().lower()
    if label and label not in ("null", "unknown", "none"):
        if cvss_score is not None:
            if cvss_score >= 9.0 and label == "medium":
                return "critical"
            if cvss_score < 4.0 and label == "critical":
                return "low"
        return label

    if cvss_score is not None:
        if cvss_score >= 9.0:
            return "critical"
        if cvss_score >= 7.0:
            return "high"
        if cvss_score >= 4.0:
            return "medium"
        return "low"

    if risk_score is not None:
        return severity_from_score(risk_score)

    return "medium"
