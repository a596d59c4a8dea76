# backend/advisory_radar/services/enrichment/ai_prompts.py
from advisory_radar.schemas.alerts import Alert
from advisory_radar.services.compliance.trigger_keywords import ALLOWED_TRIGGERS

SYSTEM_PROMPT = f"""You are a senior cybersecurity intelligence analyst for the German market.

Analyse the alert and return one JSON object with:
- summary: 2-3 sentences in English. What is the threat, who is affected, what should be done.
- summaryDe: the same summary in professional German, suitable for a CISO briefing.
- titleDe: German translation of the title; leave German titles unchanged.
- triggers: regulatory trigger keywords that apply. Use ONLY tokens from this list:
  {", ".join(ALLOWED_TRIGGERS)}
- compliance: an object with keys nis2, dora, gdpr. Each is null or
  {{"relevant": "yes|conditional|no", "confidence": "high|medium|low",
    "references": [...], "reasoning": "...", "reportingRequired": true|false,
    "reportingDeadlineHours": number|null, "actionItemsDe": ["..."]}}.
  Action items must name the affected product or CVE.

Output JSON only. No markdown, no explanation."""


def build_user_prompt(alert: Alert) -> str:
    lines = [
        f"TITLE: {alert.title}",
        f"SOURCE: {alert.source_name} (tier {alert.source_trust_tier})",
        f"TYPE: {alert.alert_type.value if hasattr(alert.alert_type, 'value') else alert.alert_type}",
        f"SEVERITY: {alert.severity or 'unknown'}",
        f"CVSS: {alert.cvss_score if alert.cvss_score is not None else 'n/a'}",
        f"EPSS: {alert.epss_score if alert.epss_score is not None else 'n/a'}",
        f"ACTIVELY EXPLOITED: {'yes' if alert.is_actively_exploited else 'no'}",
        f"CVE IDS: {', '.join((alert.cve_ids or [])[:10]) or 'none'}",
        f"VENDORS: {', '.join(alert.affected_vendors or []) or 'unknown'}",
        f"PRODUCTS: {', '.join(alert.affected_products or []) or 'unknown'}",
        "",
        "DESCRIPTION:",
        (alert.description or "")[:6000],
    ]
    if alert.csaf_description:
        lines += ["", "ADVISORY DETAIL:", alert.csaf_description[:6000]]
    if alert.csaf_recommendations:
        lines += ["", "VENDOR RECOMMENDATIONS:", alert.csaf_recommendations[:3000]]
    if alert.article_text:
        lines += ["", "ARTICLE:", alert.article_text[:6000]]
    return "\n".join(lines)
