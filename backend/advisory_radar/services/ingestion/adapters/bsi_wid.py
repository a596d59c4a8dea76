# backend/advisory_radar/services/ingestion/adapters/bsi_wid.py
"""
BSI CERT-Bund WID security advisories (paged JSON API, German).

Every advisory carries a WID-SEC id in its description so the enrichment
stage can later pull the full CSAF document.
"""
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from dateutil import parser as date_parser

from advisory_radar.core.time_utils import to_naive_utc, utcnow
from advisory_radar.schemas.alerts import AlertType, CandidateAlert, SourceCategory
from advisory_radar.schemas.sources import AdapterResult, RawCacheItem
from advisory_radar.services.ingestion import extractors
from advisory_radar.services.ingestion.adapters.base import ClientFactory, default_client_factory, http_get

logger = logging.getLogger(__name__)

WID_API_URL = "https://wid.cert-bund.de/content/public/securityAdvisory"
WID_PORTAL_URL = "https://wid.cert-bund.de/portal/"
BSI_SOURCE_ID = "bsi-cert"
BSI_SOURCE_NAME = "BSI CERT-Bund (WID) Sicherheitshinweise"

PAGE_SIZE = 200
MAX_PAGES = 25

_GERMAN_TYPE_KEYWORDS = [
    (AlertType.VULNERABILITY, ("sicherheitslücke", "schwachstelle", "cve-")),
    (AlertType.EXPLOIT, ("angriff", "ausgenutzt", "zero-day")),
    (AlertType.MALWARE, ("ransomware", "malware", "trojaner", "schadprogramm")),
    (AlertType.BREACH, ("datenleck", "datenpanne", "datenabfluss")),
    (AlertType.ADVISORY, ("sicherheitshinweis", "warnung", "update")),
]

# Bedrohungsstufe keywords, used only when the classification is missing or unknown
_GERMAN_SEVERITY_WORDS = [
    ("critical", ("kritisch", "stufe 5", "stufe 4")),
    ("high", ("hoch", "stufe 3")),
    ("medium", ("mittel", "stufe 2")),
    ("low", ("niedrig", "gering", "stufe 1")),
    ("info", ("informativ", "hinweis")),
]


def classification_to_severity(classification: Optional[str], fallback_text: str = "") -> Optional[str]:
    value = (classification or "").strip().lower()
    if "krit" in value or "sehr hoch" in value:
        return "critical"
    if "hoch" in value:
        return "high"
    if "mittel" in value:
        return "medium"
    if "niedrig" in value or "gering" in value:
        return "low"
    if "info" in value:
        return "info"

    lower = (fallback_text or "").lower()
    for severity, words in _GERMAN_SEVERITY_WORDS:
        if any(w in lower for w in words):
            return severity
    return None


def classify_german_alert_type(text: str) -> AlertType:
    lower = (text or "").lower()
    for alert_type, keywords in _GERMAN_TYPE_KEYWORDS:
        if any(k in lower for k in keywords):
            return alert_type
    return AlertType.OTHER


def _published(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return to_naive_utc(date_parser.parse(value))
    except (ValueError, TypeError, OverflowError):
        return None


class BsiWidAdapter:
    def __init__(
        self,
        *,
        url: str = WID_API_URL,
        days_back: int = 14,
        user_agent: str = "advisory-radar/0.1",
        client_factory: ClientFactory = default_client_factory,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.url = url
        self.days_back = days_back
        self.user_agent = user_agent
        self._client_factory = client_factory
        self._now = now

    async def fetch(self) -> AdapterResult:
        """Pages are sorted newest first; paging stops at the recency cutoff."""
        cutoff = self._now() - timedelta(days=self.days_back)
        alerts: List[CandidateAlert] = []
        pages: List[Dict[str, Any]] = []

        async with self._client_factory() as client:
            for page in range(MAX_PAGES):
                resp = await http_get(
                    client,
                    self.url,
                    headers={"User-Agent": self.user_agent, "Accept": "application/json"},
                    params={"page": page, "size": PAGE_SIZE, "sort": "published,desc"},
                )
                data = resp.json()
                pages.append({"page": page, "data": data})

                parsed, reached_cutoff = self.parse_page(data, cutoff)
                alerts.extend(parsed)
                if reached_cutoff or data.get("last", True):
                    break

        logger.info("Parsed %d recent BSI advisories from %d pages", len(alerts), len(pages))
        return AdapterResult(
            alerts=alerts,
            raw_cache=[
                RawCacheItem(
                    label="pages",
                    url=self.url,
                    content_type="application/json",
                    extension="json",
                    body=json.dumps({"pageSize": PAGE_SIZE, "pages": pages}, indent=2),
                )
            ],
        )

    def parse_page(self, data: Dict[str, Any], cutoff: datetime):
        out: List[CandidateAlert] = []
        for item in data.get("content") or []:
            published = _published(item.get("published")) or self._now()
            if published < cutoff:
                return out, True
            out.append(self._to_candidate(item, published))
        return out, False

    def _to_candidate(self, item: Dict[str, Any], published: datetime) -> CandidateAlert:
        wid_id = item.get("name") or ""
        title = item.get("title") or wid_id or "Untitled"
        products = [p for p in item.get("productNames") or [] if p]
        cve_ids = [c.upper() for c in item.get("cves") or [] if c]

        lines = [f"WID ID: {wid_id}"]
        if item.get("status"):
            lines.append(f"Status: {item['status']}")
        if item.get("classification"):
            lines.append(f"Classification: {item['classification']}")
        if isinstance(item.get("basescore"), (int, float)):
            lines.append(f"Base score (0-100): {item['basescore']}")
        if isinstance(item.get("temporalscore"), (int, float)):
            lines.append(f"Temporal score (0-100): {item['temporalscore']}")
        if item.get("noPatch"):
            lines.append("No patch available: yes")
        if cve_ids:
            lines.append(f"CVEs: {', '.join(cve_ids)}")
        if products:
            lines.append(f"Products: {', '.join(products)}")
        description = "\n".join(lines)

        text = f"{title} {description}"

        return CandidateAlert(
            source_id=BSI_SOURCE_ID,
            source_name=BSI_SOURCE_NAME,
            source_category=SourceCategory.GOVERNMENT,
            source_trust_tier=1,
            source_url=WID_PORTAL_URL,
            source_language="de",
            published_at=published,
            title=title,
            description=description,
            alert_type=classify_german_alert_type(text),
            severity=classification_to_severity(item.get("classification"), text),
            is_zero_day=extractors.is_zero_day(text),
            cve_ids=cve_ids or extractors.extract_cve_ids(text),
            affected_vendors=extractors.extract_vendors(" ".join([title] + products)),
            affected_products=products,
            raw_content_type="api-response",
        )
