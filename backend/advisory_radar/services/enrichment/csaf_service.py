# backend/advisory_radar/services/enrichment/csaf_service.py
"""
Extended advisory detail for BSI (CERT-Bund) alerts.

BSI publishes full CSAF documents per WID advisory:
  https://wid.cert-bund.de/.well-known/csaf/white/{year}/wid-sec-{year}-{nnnn}.json
They carry far more text than the RSS summary: notes, remediations and the
affected product tree.
"""
import logging
import re
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from advisory_radar.services.core_service.throttle import CallScheduler
from advisory_radar.services.core_service.ttl_cache import TTLCache
from advisory_radar.services.ingestion.adapters.base import ClientFactory, default_client_factory

logger = logging.getLogger(__name__)

WID_RE = re.compile(r"WID-SEC-(\d{4})-(\d+)", re.IGNORECASE)
CSAF_URL_TEMPLATE = "https://wid.cert-bund.de/.well-known/csaf/white/{year}/wid-sec-{year}-{num}.json"
WID_PORTAL_URL_TEMPLATE = "https://wid.cert-bund.de/portal/wid/{wid_id}"

MAX_AFFECTED_VERSIONS = 30
MAX_REMEDIATIONS = 5

_DESCRIPTION_CATEGORIES = ("description", "summary", "details", "general")
_RECOMMENDATION_HINTS = ("empfehlung", "workaround", "remediation", "mitigation")


class CsafDetail(BaseModel):
    wid_id: str
    full_description: Optional[str] = None
    recommendations: Optional[str] = None
    affected_versions: List[str] = Field(default_factory=list)
    csaf_severity: Optional[str] = None
    fetch_success: bool = False

    @property
    def portal_url(self) -> str:
        return WID_PORTAL_URL_TEMPLATE.format(wid_id=self.wid_id)


def extract_wid_id(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    m = WID_RE.search(text)
    return m.group(0).upper() if m else None


def _collect_versions(branches: List[Dict[str, Any]], out: List[str]) -> None:
    for branch in branches or []:
        if branch.get("category") == "product_version" and branch.get("name"):
            out.append(branch["name"])
        if branch.get("branches"):
            _collect_versions(branch["branches"], out)


def parse_csaf_document(wid_id: str, csaf: Dict[str, Any]) -> CsafDetail:
    document = csaf.get("document") or {}
    notes = document.get("notes") or []

    description = "\n\n".join(
        n.get("text", "") for n in notes if n.get("category") in _DESCRIPTION_CATEGORIES and n.get("text")
    )

    recommendations = "\n".join(
        n.get("text", "")
        for n in notes
        if n.get("category") == "description"
        and any(h in (n.get("title") or "").lower() for h in _RECOMMENDATION_HINTS)
        and n.get("text")
    )
    if not recommendations:
        remediations = []
        for vuln in csaf.get("vulnerabilities") or []:
            for r in vuln.get("remediations") or []:
                line = f"{r.get('category') or ''}: {r.get('details') or ''}".strip()
                if len(line) > 5:
                    remediations.append(line)
        recommendations = "\n".join(remediations[:MAX_REMEDIATIONS])

    versions: List[str] = []
    _collect_versions((csaf.get("product_tree") or {}).get("branches") or [], versions)

    return CsafDetail(
        wid_id=wid_id,
        full_description=description or None,
        recommendations=recommendations or None,
        affected_versions=versions[:MAX_AFFECTED_VERSIONS],
        csaf_severity=(document.get("aggregate_severity") or {}).get("text"),
        fetch_success=True,
    )


class CsafDetailService:
    """
    Fetches CSAF documents, cached per WID id so several alerts that cite
    the same advisory cost one request. Requests are paced by `scheduler`.
    """

    def __init__(
        self,
        *,
        scheduler: CallScheduler,
        cache: TTLCache,
        user_agent: str = "advisory-radar/0.1",
        client_factory: ClientFactory = default_client_factory,
    ) -> None:
        self.scheduler = scheduler
        self.cache = cache
        self.user_agent = user_agent
        self._client_factory = client_factory

    async def _download(self, url: str) -> httpx.Response:
        async with self._client_factory() as client:
            return await client.get(
                url,
                headers={"User-Agent": self.user_agent, "Accept": "application/json"},
                timeout=10.0,
            )

    async def fetch(self, wid_id: str) -> CsafDetail:
        """Never raises; a failed fetch returns fetch_success=False."""
        cached = self.cache.get(wid_id)
        if cached is not None:
            return cached

        m = WID_RE.search(wid_id)
        if not m:
            return CsafDetail(wid_id=wid_id)
        year, num = m.group(1), m.group(2).zfill(4)
        url = CSAF_URL_TEMPLATE.format(year=year, num=num)

        try:
            resp = await self.scheduler.run(lambda: self._download(url))
            if resp.status_code != 200:
                logger.warning("BSI CSAF fetch failed for %s: HTTP %s", wid_id, resp.status_code)
                detail = CsafDetail(wid_id=wid_id)
            else:
                detail = parse_csaf_document(wid_id, resp.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("BSI CSAF fetch error for %s: %s", wid_id, e)
            detail = CsafDetail(wid_id=wid_id)

        self.cache.set(wid_id, detail)
        return detail
