# backend/advisory_radar/services/ingestion/adapters/cisa_kev.py
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from dateutil import parser as date_parser

from advisory_radar.core.time_utils import to_naive_utc, utcnow
from advisory_radar.schemas.alerts import AlertType, CandidateAlert, SourceCategory
from advisory_radar.schemas.sources import AdapterResult, RawCacheItem
from advisory_radar.services.ingestion.adapters.base import (
    ClientFactory,
    default_client_factory,
    http_get,
)

logger = logging.getLogger(__name__)

KEV_FEED_URL = (
    "https://www.cisa.gov/sites/default/files/feeds/known_exploited_vulnerabilities.json"
)
KEV_CATALOG_URL = "https://www.cisa.gov/known-exploited-vulnerabilities-catalog"
KEV_SOURCE_ID = "cisa-kev"
KEV_SOURCE_NAME = "CISA Known Exploited Vulnerabilities Catalog"


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return to_naive_utc(date_parser.parse(value))
    except (ValueError, TypeError, OverflowError):
        logger.warning("Unparseable KEV dateAdded %r", value)
        return None


class CisaKevAdapter:
    """CISA KEV JSON catalog; every entry is by definition actively exploited."""

    def __init__(
        self,
        *,
        url: str = KEV_FEED_URL,
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
        async with self._client_factory() as client:
            resp = await http_get(
                client,
                self.url,
                headers={"User-Agent": self.user_agent, "Accept": "application/json"},
            )
        data = resp.json()
        return AdapterResult(
            alerts=self.parse(data),
            raw_cache=[
                RawCacheItem(
                    label="feed",
                    url=self.url,
                    content_type="application/json",
                    extension="json",
                    body=resp.text,
                )
            ],
        )

    def parse(self, data: Dict[str, Any]) -> List[CandidateAlert]:
        cutoff = self._now() - timedelta(days=self.days_back)
        out: List[CandidateAlert] = []

        for vuln in data.get("vulnerabilities", []) or []:
            added = _parse_date(vuln.get("dateAdded"))
            if added is None or added < cutoff:
                continue

            cve_id = (vuln.get("cveID") or "").strip().upper()
            vendor = (vuln.get("vendorProject") or "").strip()
            product = (vuln.get("product") or "").strip()
            name = (vuln.get("vulnerabilityName") or cve_id or "Untitled").strip()

            description = vuln.get("shortDescription") or ""
            if vuln.get("requiredAction"):
                description += f"\n\nRequired Action: {vuln['requiredAction']}"
            if vuln.get("dueDate"):
                description += f"\nDue Date: {vuln['dueDate']}"
            if vuln.get("notes"):
                description += f"\n\nNotes: {vuln['notes']}"

            ransomware = (vuln.get("knownRansomwareCampaignUse") or "").lower() == "known"

            out.append(
                CandidateAlert(
                    source_id=KEV_SOURCE_ID,
                    source_name=KEV_SOURCE_NAME,
                    source_category=SourceCategory.GOVERNMENT,
                    source_trust_tier=1,
                    source_url=KEV_CATALOG_URL,
                    source_language="en",
                    published_at=added,
                    title=f"{vendor} {product} — {name}".strip(),
                    description=description.strip(),
                    alert_type=AlertType.EXPLOIT,
                    alert_sub_type="ransomware" if ransomware else None,
                    is_actively_exploited=True,
                    cve_ids=[cve_id] if cve_id else [],
                    affected_vendors=[vendor] if vendor else [],
                    affected_products=[product] if product else [],
                    raw_content_type="json-feed",
                )
            )

        logger.info("Parsed %d recent KEV entries", len(out))
        return out
