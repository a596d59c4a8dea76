# backend/advisory_radar/services/ingestion/fetch_orchestrator.py
"""
Fetch cycle: every configured source, one after another, then a secondary
CVSS pass over recent unscored alerts, then a run snapshot.

A failing source never aborts the cycle. Its error is counted, logged and
recorded against the source registry entry.
"""
import logging
import time
import traceback
import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError

from advisory_radar.core.errors import AlertNotFoundError, ArchiveError, SourceFetchError
from advisory_radar.core.time_utils import to_naive_utc, utcnow
from advisory_radar.schemas.alerts import Alert
from advisory_radar.schemas.runs import FetchRunSummary, RunLogEntry, RunStatus, SourceRunSummary
from advisory_radar.schemas.sources import AdapterResult, RawCacheItem
from advisory_radar.services.enrichment.vuln_enrichment import NVD_API_URL, NvdClient, NvdLookup
from advisory_radar.services.ingestion.adapters.base import SourceDefinition
from advisory_radar.services.ingestion.dedup import ContentDeduplicator, StoreOutcome
from advisory_radar.services.risk_scoring.risk_utils import cvss_to_severity
from advisory_radar.services.storage.alert_store import AlertStore
from advisory_radar.services.storage.raw_archive import RawArchiveStore
from advisory_radar.services.storage.registry_store import SourceRegistryStore
from advisory_radar.services.storage.run_log_store import RunLogStore

logger = logging.getLogger(__name__)

NVD_SOURCE_ID = "nist-nvd"
NVD_SOURCE_NAME = "NIST National Vulnerability Database"
NVD_LOOKBACK_DAYS = 14

# Secondary CVSS pass: these sources get their CVEs looked up first
SOURCE_PRIORITY = [
    "cisa-kev",
    "siemens-cert",
    "microsoft-msrc",
    "bsi-cert",
    "cisa-advisories",
    "cisa-ics",
]


def run_status(errors: int, new: int) -> RunStatus:
    if errors > 0 and new == 0:
        return RunStatus.ERROR
    if errors > 0:
        return RunStatus.PARTIAL
    return RunStatus.SUCCESS


def _priority(alert: Alert) -> int:
    try:
        return SOURCE_PRIORITY.index(alert.source_id)
    except ValueError:
        return len(SOURCE_PRIORITY)


class FetchOrchestrator:
    def __init__(
        self,
        *,
        sources: List[SourceDefinition],
        alert_store: AlertStore,
        registry_store: SourceRegistryStore,
        run_log_store: RunLogStore,
        archive: RawArchiveStore,
        nvd_client: Optional[NvdClient] = None,
        nvd_max_requests: int = 15,
        deduplicator: Optional[ContentDeduplicator] = None,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.sources = sources
        self.alert_store = alert_store
        self.registry_store = registry_store
        self.run_log_store = run_log_store
        self.archive = archive
        self.nvd_client = nvd_client
        self.nvd_max_requests = nvd_max_requests
        self.deduplicator = deduplicator or ContentDeduplicator(alert_store)
        self._now = now

    # --------------------------------------------------------
    # Eligibility
    # --------------------------------------------------------
    def should_fetch_source(self, source: SourceDefinition, now: datetime) -> bool:
        try:
            entry = self.registry_store.get(source.source_id)
        except SQLAlchemyError as e:
            logger.warning("Registry read failed for %s, fetching anyway: %s", source.source_id, e)
            return True

        if entry is None:
            return True
        if entry.is_enabled is False:
            logger.info("Source %s is disabled, skipping", source.source_id)
            return False
        if entry.last_fetch_at is None:
            return True

        interval = source.default_interval_seconds
        if entry.fetch_interval_override and entry.fetch_interval_override > 0:
            interval = entry.fetch_interval_override

        elapsed = (to_naive_utc(now) - to_naive_utc(entry.last_fetch_at)).total_seconds()
        if elapsed < interval:
            logger.debug(
                "Source %s fetched %.0fs ago (interval %ss), skipping", source.source_id, elapsed, interval
            )
            return False
        return True

    # --------------------------------------------------------
    # Cycle
    # --------------------------------------------------------
    async def run_fetch_cycle(self) -> FetchRunSummary:
        run_id = str(uuid.uuid4())
        started_at = self._now()
        summary = FetchRunSummary(run_id=run_id, started_at=started_at)

        archive_ok = self.archive.enabled
        if archive_ok:
            try:
                self.archive.ensure_ready()
            except ArchiveError as e:
                logger.warning("[%s] raw archive unavailable, continuing without it: %s", run_id, e)
                archive_ok = False

        logger.info("[%s] fetch cycle starting for %d sources", run_id, len(self.sources))

        for source in self.sources:
            if not self.should_fetch_source(source, self._now()):
                summary.sources.append(
                    SourceRunSummary(
                        source_id=source.source_id,
                        source_name=source.source_name,
                        status=RunStatus.SKIPPED,
                    )
                )
                continue

            result = await self._fetch_source(run_id, source, archive_ok)
            summary.sources.append(result)
            summary.total_fetched += result.items_fetched
            summary.total_new += result.items_new
            summary.total_duplicate += result.items_duplicate
            summary.total_errors += result.items_error

        if self.nvd_client is not None:
            try:
                nvd = await self.enrich_missing_cvss(run_id, archive_ok)
            except Exception as e:
                logger.exception("[%s] secondary CVSS pass failed", run_id)
                summary.total_errors += 1
                nvd = SourceRunSummary(
                    source_id=NVD_SOURCE_ID,
                    source_name=NVD_SOURCE_NAME,
                    status=RunStatus.ERROR,
                    items_error=1,
                    error=str(e),
                )
            summary.sources.append(nvd)

        summary.completed_at = self._now()

        if archive_ok:
            try:
                path = self.archive.write_snapshot(run_id, started_at, summary.model_dump(mode="json"))
                logger.info("[%s] run snapshot written to %s", run_id, path)
            except ArchiveError as e:
                logger.warning("[%s] %s", run_id, e)

        logger.info(
            "[%s] fetch cycle done: fetched=%d new=%d duplicate=%d errors=%d",
            run_id,
            summary.total_fetched,
            summary.total_new,
            summary.total_duplicate,
            summary.total_errors,
        )
        return summary

    async def _call_adapter(self, source: SourceDefinition) -> AdapterResult:
        try:
            return await source.adapter.fetch()
        except Exception as e:
            raise SourceFetchError(source.source_id, f"{type(e).__name__}: {e}") from e

    async def _fetch_source(self, run_id: str, source: SourceDefinition, archive_ok: bool) -> SourceRunSummary:
        started_at = self._now()
        t0 = time.monotonic()

        try:
            fetched = await self._call_adapter(source)
        except SourceFetchError as e:
            duration_ms = int((time.monotonic() - t0) * 1000)
            logger.warning("[%s] source %s failed: %s", run_id, source.source_id, e)
            self._record_registry(source, RunStatus.ERROR, started_at, str(e))
            self._log(
                RunLogEntry(
                    id=str(uuid.uuid4()),
                    run_id=run_id,
                    source_id=source.source_id,
                    started_at=started_at,
                    completed_at=self._now(),
                    duration_ms=duration_ms,
                    status=RunStatus.ERROR,
                    items_error=1,
                    error=str(e),
                    error_stack=traceback.format_exc(),
                )
            )
            return SourceRunSummary(
                source_id=source.source_id,
                source_name=source.source_name,
                status=RunStatus.ERROR,
                items_error=1,
                duration_ms=duration_ms,
                error=str(e),
            )

        raw_path = None
        if archive_ok and fetched.raw_cache:
            try:
                raw_path = self.archive.archive_source_payloads(
                    run_id=run_id,
                    source_id=source.source_id,
                    source_name=source.source_name,
                    items=fetched.raw_cache,
                    cached_at=started_at,
                )
            except ArchiveError as e:
                logger.warning("[%s] %s", run_id, e)

        new = duplicate = errors = 0
        first_error: Optional[str] = None
        for candidate in fetched.alerts:
            if raw_path and not candidate.raw_blob_path:
                candidate.raw_blob_path = raw_path
            try:
                outcome = self.deduplicator.store(candidate)
            except SQLAlchemyError as e:
                errors += 1
                first_error = first_error or str(e)
                logger.warning("[%s] failed to store candidate from %s: %s", run_id, source.source_id, e)
                continue
            if outcome == StoreOutcome.NEW:
                new += 1
            else:
                duplicate += 1

        status = run_status(errors, new)
        duration_ms = int((time.monotonic() - t0) * 1000)
        self._record_registry(source, status, started_at, first_error)
        self._log(
            RunLogEntry(
                id=str(uuid.uuid4()),
                run_id=run_id,
                source_id=source.source_id,
                started_at=started_at,
                completed_at=self._now(),
                duration_ms=duration_ms,
                status=status,
                items_fetched=len(fetched.alerts),
                items_new=new,
                items_duplicate=duplicate,
                items_error=errors,
                error=first_error,
                raw_blob_path=raw_path,
            )
        )

        logger.info(
            "[%s] %s: fetched=%d new=%d duplicate=%d errors=%d",
            run_id, source.source_id, len(fetched.alerts), new, duplicate, errors,
        )
        return SourceRunSummary(
            source_id=source.source_id,
            source_name=source.source_name,
            status=status,
            items_fetched=len(fetched.alerts),
            items_new=new,
            items_duplicate=duplicate,
            items_error=errors,
            duration_ms=duration_ms,
            error=first_error,
            raw_blob_path=raw_path,
        )

    # --------------------------------------------------------
    # Secondary CVSS pass
    # --------------------------------------------------------
    async def enrich_missing_cvss(self, run_id: str, archive_ok: bool = False) -> SourceRunSummary:
        """
        Look up CVSS for recent alerts that still have none, highest-priority
        sources first, bounded by the request budget.
        """
        started_at = self._now()
        t0 = time.monotonic()

        alerts = self.alert_store.list_missing_cvss(started_at - timedelta(days=NVD_LOOKBACK_DAYS))
        if not alerts:
            return SourceRunSummary(source_id=NVD_SOURCE_ID, source_name=NVD_SOURCE_NAME, status=RunStatus.SKIPPED)
        alerts.sort(key=_priority)

        cve_ids: List[str] = []
        for alert in alerts:
            for cve in alert.cve_ids:
                cve = cve.strip().upper()
                if cve and cve not in cve_ids:
                    cve_ids.append(cve)
        cve_ids = cve_ids[: self.nvd_max_requests]

        lookups: Dict[str, NvdLookup] = {}
        raw_items: List[RawCacheItem] = []
        errors = 0
        for cve in cve_ids:
            try:
                found = await self.nvd_client.lookup(cve)
            except (httpx.HTTPError, ValueError) as e:
                errors += 1
                logger.warning("[%s] NVD lookup failed for %s: %s", run_id, cve, e)
                continue
            lookups[cve] = found
            if found.raw:
                raw_items.append(
                    RawCacheItem(label=cve, url=f"{NVD_API_URL}?cveId={cve}", body=found.raw)
                )

        updated = 0
        for alert in alerts:
            best: Optional[NvdLookup] = None
            for cve in alert.cve_ids:
                found = lookups.get(cve.strip().upper())
                if found and found.score is not None and (best is None or found.score > best.score):
                    best = found
            if best is None:
                continue
            try:
                patched = self.alert_store.patch_cvss(
                    alert.key,
                    cvss_score=best.score,
                    cvss_vector=best.vector,
                    cvss_cve_id=best.cve_id,
                    severity=cvss_to_severity(best.score),
                )
            except AlertNotFoundError:
                continue
            if patched:
                updated += 1

        raw_path = None
        if archive_ok and raw_items:
            try:
                raw_path = self.archive.archive_source_payloads(
                    run_id=run_id,
                    source_id=NVD_SOURCE_ID,
                    source_name=NVD_SOURCE_NAME,
                    items=raw_items,
                    cached_at=started_at,
                )
            except ArchiveError as e:
                logger.warning("[%s] %s", run_id, e)

        status = run_status(errors, updated)
        duration_ms = int((time.monotonic() - t0) * 1000)
        self._log(
            RunLogEntry(
                id=str(uuid.uuid4()),
                run_id=run_id,
                source_id=NVD_SOURCE_ID,
                started_at=started_at,
                completed_at=self._now(),
                duration_ms=duration_ms,
                status=status,
                items_fetched=len(cve_ids),
                items_new=updated,
                items_error=errors,
                raw_blob_path=raw_path,
                details={"alertsConsidered": len(alerts)},
            )
        )
        logger.info(
            "[%s] CVSS pass: %d CVEs looked up, %d alerts updated, %d errors",
            run_id, len(cve_ids), updated, errors,
        )
        return SourceRunSummary(
            source_id=NVD_SOURCE_ID,
            source_name=NVD_SOURCE_NAME,
            status=status,
            items_fetched=len(cve_ids),
            items_new=updated,
            items_error=errors,
            duration_ms=duration_ms,
            raw_blob_path=raw_path,
        )

    # --------------------------------------------------------
    # Bookkeeping
    # --------------------------------------------------------
    def _record_registry(
        self, source: SourceDefinition, status: RunStatus, fetched_at: datetime, error: Optional[str]
    ) -> None:
        try:
            self.registry_store.record_fetch(
                source_id=source.source_id,
                source_name=source.source_name,
                source_category=source.category.value,
                source_url=source.url,
                status=status,
                fetched_at=fetched_at,
                error=error,
            )
        except SQLAlchemyError as e:
            logger.warning("Registry update failed for %s: %s", source.source_id, e)

    def _log(self, entry: RunLogEntry) -> None:
        try:
            self.run_log_store.log(entry)
        except SQLAlchemyError as e:
            logger.warning("[%s] failed to write run log for %s: %s", entry.run_id, entry.source_id, e)
