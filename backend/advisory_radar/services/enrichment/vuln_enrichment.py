# backend/advisory_radar/services/enrichment/vuln_enrichment.py
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx
from pydantic import BaseModel

from advisory_radar.services.core_service.throttle import CallScheduler
from advisory_radar.services.core_service.ttl_cache import TTLCache
from advisory_radar.services.ingestion.adapters.base import ClientFactory, default_client_factory

logger = logging.getLogger(__name__)

NVD_API_URL = "https://services.nvd.nist.gov/rest/json/cves/2.0"
EPSS_API_URL = "https://api.first.org/data/v1/epss"

MAX_CVES_PER_ALERT = 20
EPSS_BATCH_SIZE = 100
PERFECT_CVSS = 10.0
RATE_LIMIT_BACKOFF_SECONDS = 6.0

# NVD metric keys, best first
_CVSS_METRIC_KEYS = ("cvssMetricV31", "cvssMetricV30", "cvssMetricV2")


class NvdLookup(BaseModel):
    cve_id: str
    score: Optional[float] = None
    vector: Optional[str] = None
    raw: Optional[str] = None  # response body, kept for archival


class CvssResult(BaseModel):
    cvss_score: Optional[float] = None
    cvss_vector: Optional[str] = None
    cvss_cve_id: Optional[str] = None


class EpssResult(BaseModel):
    epss_score: Optional[float] = None
    epss_percentile: Optional[float] = None


def normalize_cve_ids(cve_ids: Iterable[str], limit: Optional[int] = None) -> List[str]:
    """Strip, uppercase, dedupe keeping first-seen order."""
    out: List[str] = []
    for raw in cve_ids or []:
        cve = (raw or "").strip().upper()
        if cve and cve not in out:
            out.append(cve)
    return out[:limit] if limit else out


def parse_nvd_cvss(data: Dict[str, Any]) -> Tuple[Optional[float], Optional[str]]:
    """Base score and vector of the highest CVSS version present."""
    vulns = data.get("vulnerabilities") or []
    if not vulns:
        return None, None
    metrics = ((vulns[0] or {}).get("cve") or {}).get("metrics") or {}
    for key in _CVSS_METRIC_KEYS:
        entries = metrics.get(key) or []
        if not entries:
            continue
        cvss_data = (entries[0] or {}).get("cvssData") or {}
        score = cvss_data.get("baseScore")
        if isinstance(score, (int, float)):
            return float(score), cvss_data.get("vectorString")
    return None, None


def _parse_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class NvdClient:
    """
    NIST NVD CVE lookups.

    Network calls go through `scheduler` (one at a time, spaced by the
    provider's rate limit). Cache hits skip the scheduler entirely.
    """

    def __init__(
        self,
        *,
        scheduler: CallScheduler,
        cache: TTLCache,
        api_key: Optional[str] = None,
        user_agent: str = "advisory-radar/0.1",
        client_factory: ClientFactory = default_client_factory,
    ) -> None:
        self.scheduler = scheduler
        self.cache = cache
        self.api_key = api_key
        self.user_agent = user_agent
        self._client_factory = client_factory

    def _headers(self) -> Dict[str, str]:
        headers = {"User-Agent": self.user_agent, "Accept": "application/json"}
        if self.api_key:
            headers["apiKey"] = self.api_key
        return headers

    async def _request(self, cve_id: str) -> httpx.Response:
        async with self._client_factory() as client:
            return await client.get(NVD_API_URL, params={"cveId": cve_id}, headers=self._headers())

    async def lookup(self, cve_id: str) -> NvdLookup:
        """
        Fetch one CVE. Rate-limit responses (403/429) back off once and retry;
        any other failure raises httpx errors to the caller.
        """
        cve_id = cve_id.strip().upper()
        cached = self.cache.get(cve_id)
        if cached is not None:
            return cached

        resp = await self.scheduler.run(lambda: self._request(cve_id))
        if resp.status_code in (403, 429):
            logger.warning("NVD rate limit for %s (HTTP %s), backing off", cve_id, resp.status_code)
            await self.scheduler.pause(RATE_LIMIT_BACKOFF_SECONDS)
            resp = await self.scheduler.run(lambda: self._request(cve_id))
        resp.raise_for_status()

        score, vector = parse_nvd_cvss(resp.json())
        result = NvdLookup(cve_id=cve_id, score=score, vector=vector, raw=resp.text)
        self.cache.set(cve_id, result)
        return result

    async def enrich_cvss(self, cve_ids: Iterable[str]) -> CvssResult:
        """
        Worst-case CVSS across an alert's CVEs (first 20 considered).
        Stops early at a perfect 10.0. Lookup failures degrade to no score.
        """
        best = CvssResult()
        for cve_id in normalize_cve_ids(cve_ids, MAX_CVES_PER_ALERT):
            try:
                found = await self.lookup(cve_id)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("NVD lookup failed for %s: %s", cve_id, e)
                continue

            if found.score is not None and (best.cvss_score is None or found.score > best.cvss_score):
                best = CvssResult(
                    cvss_score=found.score,
                    cvss_vector=found.vector,
                    cvss_cve_id=cve_id,
                )
                if found.score >= PERFECT_CVSS:
                    break
        return best


class EpssClient:
    """FIRST EPSS batch lookups (up to 100 CVEs per request)."""

    def __init__(
        self,
        *,
        user_agent: str = "advisory-radar/0.1",
        client_factory: ClientFactory = default_client_factory,
    ) -> None:
        self.user_agent = user_agent
        self._client_factory = client_factory

    async def enrich_epss(self, cve_ids: Iterable[str]) -> EpssResult:
        """
        Highest exploitation probability among the CVEs, with its percentile.
        A zero or missing probability means "no data", not a true zero.
        """
        batch = normalize_cve_ids(cve_ids, EPSS_BATCH_SIZE)
        if not batch:
            return EpssResult()

        try:
            async with self._client_factory() as client:
                resp = await client.get(
                    EPSS_API_URL,
                    params={"cve": ",".join(batch)},
                    headers={"User-Agent": self.user_agent, "Accept": "application/json"},
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("EPSS lookup failed for %d CVEs: %s", len(batch), e)
            return EpssResult()

        best_score: Optional[float] = None
        best_pct: Optional[float] = None
        for row in data.get("data") or []:
            score = _parse_float(row.get("epss"))
            if score is None:
                continue
            if best_score is None or score > best_score:
                best_score = score
                best_pct = _parse_float(row.get("percentile"))

        if best_score is None or best_score <= 0:
            return EpssResult()
        return EpssResult(epss_score=best_score, epss_percentile=best_pct)
