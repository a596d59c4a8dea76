# backend/advisory_radar/services/enrichment/enrichment_orchestrator.py
import logging
import time
import uuid
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from advisory_radar.core.errors import AlertNotFoundError
from advisory_radar.core.time_utils import utcnow
from advisory_radar.schemas.alerts import Alert, ProcessingState
from advisory_radar.schemas.runs import (
    AlertError,
    EnrichmentRunResult,
    ReEnrichmentRequest,
    RunLogEntry,
    RunStatus,
)
from advisory_radar.services.compliance.rule_engine import POLICY_VERSION, ComplianceRuleEngine
from advisory_radar.services.core_service.throttle import CallScheduler
from advisory_radar.services.enrichment.ai_analyzer import AIAnalyzer, AIOutcome, estimate_cost_usd
from advisory_radar.services.enrichment.csaf_service import CsafDetailService, extract_wid_id
from advisory_radar.services.enrichment.vuln_enrichment import EpssClient, NvdClient
from advisory_radar.services.risk_scoring.risk_scorer import ScoringInput, calculate_risk_score
from advisory_radar.services.risk_scoring.risk_utils import reconcile_severity
from advisory_radar.services.storage.alert_store import AlertStore
from advisory_radar.services.storage.run_log_store import RunLogStore

logger = logging.getLogger(__name__)

CURRENT_ENRICHMENT_VERSION = 3
RUN_LOG_SOURCE_ID = "enrichment-pipeline"
BSI_SOURCE_ID = "bsi-cert"

INTER_ALERT_PAUSE_SECONDS = 0.5
BACKFILL_BATCH_SIZE = 10
BACKFILL_BATCH_PAUSE_SECONDS = 3.0
DEADLINE_SAFETY_BUFFER_SECONDS = 15.0


class EnrichmentOrchestrator:
    """
    AI enrichment over stored alerts, strictly one alert at a time.

    Per alert, in this order:
      1. CVSS / EPSS backfill (only when missing)
      2. extended advisory detail (BSI CSAF)
      3. deterministic risk score
      4. AI analysis (summary, translations, triggers)
      5. rule engine (trigger correction, score floors/caps, compliance)
      6. persist
    """

    def __init__(
        self,
        *,
        alert_store: AlertStore,
        run_log_store: RunLogStore,
        nvd_client: NvdClient,
        epss_client: EpssClient,
        csaf_service: CsafDetailService,
        ai_analyzer: AIAnalyzer,
        rule_engine: Optional[ComplianceRuleEngine] = None,
        scheduler: Optional[CallScheduler] = None,
        clock: Callable[[], float] = time.monotonic,
        batch_size: int = BACKFILL_BATCH_SIZE,
        batch_pause_seconds: float = BACKFILL_BATCH_PAUSE_SECONDS,
        safety_buffer_seconds: float = DEADLINE_SAFETY_BUFFER_SECONDS,
    ) -> None:
        self.alert_store = alert_store
        self.run_log_store = run_log_store
        self.nvd_client = nvd_client
        self.epss_client = epss_client
        self.csaf_service = csaf_service
        self.ai_analyzer = ai_analyzer
        self.rule_engine = rule_engine or ComplianceRuleEngine()
        self.scheduler = scheduler or CallScheduler(INTER_ALERT_PAUSE_SECONDS, name="enrichment")
        self._clock = clock
        self.batch_size = max(1, batch_size)
        self.batch_pause_seconds = batch_pause_seconds
        self.safety_buffer_seconds = safety_buffer_seconds

    # --------------------------------------------------------
    # Entry points
    # --------------------------------------------------------
    async def run_enrichment(self, max_alerts: int, alert_id: Optional[str] = None) -> EnrichmentRunResult:
        if alert_id:
            alert = self.alert_store.find_by_id(alert_id)
            if alert is None:
                raise AlertNotFoundError(alert_id)
            candidates = [alert]
        else:
            candidates = self.alert_store.list_unprocessed(max_alerts)

        return await self._run(candidates, kind="enrichment")

    async def run_re_enrichment(self, options: ReEnrichmentRequest) -> EnrichmentRunResult:
        """
        Time-budgeted backfill over already stored alerts.
        Stops between alerts once `max_seconds` minus a safety buffer is used.
        """
        candidates = self.alert_store.list_for_reenrichment(
            limit=options.limit,
            current_version=CURRENT_ENRICHMENT_VERSION,
            source_id=options.source_id,
            missing_only=options.missing_only,
            missing_csaf=options.missing_csaf,
            force_all=options.force_all,
        )
        budget = max(0.0, options.max_seconds - self.safety_buffer_seconds)
        return await self._run(
            candidates,
            kind="re-enrichment",
            deadline=self._clock() + budget,
            batched=True,
        )

    # --------------------------------------------------------
    # Run loop
    # --------------------------------------------------------
    async def _run(
        self,
        candidates: List[Alert],
        *,
        kind: str,
        deadline: Optional[float] = None,
        batched: bool = False,
    ) -> EnrichmentRunResult:
        run_id = str(uuid.uuid4())
        started_at = utcnow()
        t0 = self._clock()

        logger.info("[%s] %s run: %d candidates", run_id, kind, len(candidates))

        attempted = 0
        success = 0
        failed = 0
        skipped = 0
        tokens = 0
        errors: List[AlertError] = []
        stopped_early = False

        for index, alert in enumerate(candidates):
            if deadline is not None and self._clock() >= deadline:
                stopped_early = True
                logger.info(
                    "[%s] time budget used, stopping after %d/%d alerts", run_id, attempted, len(candidates)
                )
                break
            if batched and index > 0 and index % self.batch_size == 0:
                await self.scheduler.pause(self.batch_pause_seconds)

            attempted += 1
            try:
                outcome = await self.scheduler.run(lambda: self.enrich_alert(alert))
            except Exception as e:
                logger.exception("[%s] enrichment failed for %s", run_id, alert.id)
                failed += 1
                errors.append(AlertError(alert_id=alert.id, error=str(e)))
                continue

            if outcome.ok:
                success += 1
                tokens += outcome.result.tokens_used
            elif outcome.status == "skipped":
                skipped += 1
                errors.append(AlertError(alert_id=alert.id, error=outcome.error or "skipped"))
            else:
                failed += 1
                errors.append(AlertError(alert_id=alert.id, error=outcome.error or "failed"))

        completed_at = utcnow()
        result = EnrichmentRunResult(
            run_id=run_id,
            started_at=started_at,
            completed_at=completed_at,
            total_candidates=len(candidates),
            total_processed=attempted,
            total_success=success,
            total_failed=failed,
            total_skipped=skipped,
            total_tokens_used=tokens,
            estimated_cost_usd=round(estimate_cost_usd(tokens), 6),
            duration_ms=int((self._clock() - t0) * 1000),
            stopped_early=stopped_early,
            errors=errors,
        )
        self._log_run(result, kind)

        logger.info(
            "[%s] %s done: %d ok, %d failed, %d skipped, %d tokens",
            run_id, kind, success, failed, skipped, tokens,
        )
        return result

    def _log_run(self, result: EnrichmentRunResult, kind: str) -> None:
        if result.total_failed > 0 and result.total_success == 0:
            status = RunStatus.ERROR
        elif result.total_failed > 0:
            status = RunStatus.PARTIAL
        else:
            status = RunStatus.SUCCESS

        first_error = result.errors[0].error if result.errors else None
        entry = RunLogEntry(
            id=str(uuid.uuid4()),
            run_id=result.run_id,
            source_id=RUN_LOG_SOURCE_ID,
            started_at=result.started_at,
            completed_at=result.completed_at,
            duration_ms=result.duration_ms,
            status=status,
            items_fetched=result.total_candidates,
            items_new=result.total_success,
            items_error=result.total_failed,
            error=first_error,
            details={
                "kind": kind,
                "processed": result.total_processed,
                "skipped": result.total_skipped,
                "tokensUsed": result.total_tokens_used,
                "estimatedCostUsd": result.estimated_cost_usd,
                "stoppedEarly": result.stopped_early,
            },
        )
        try:
            self.run_log_store.log(entry)
        except SQLAlchemyError as e:
            logger.warning("[%s] failed to write run log: %s", result.run_id, e)

    # --------------------------------------------------------
    # Per-alert pipeline
    # --------------------------------------------------------
    async def enrich_alert(self, alert: Alert) -> AIOutcome:
        """
        Run every stage for one alert. The alert is only persisted when the
        AI stage succeeds; otherwise it stays unenriched for a later run.
        """
        await self._backfill_vuln_metadata(alert)
        await self._attach_csaf_detail(alert)

        supplied_severity = alert.severity
        scoring = calculate_risk_score(ScoringInput.from_alert(alert))
        alert.score_components = scoring.components

        outcome = await self.ai_analyzer.analyze(alert)
        if not outcome.ok:
            return outcome

        ai = outcome.result
        alert.summary = ai.summary
        alert.summary_de = ai.summary_de
        alert.title_de = ai.title_de

        rules = self.rule_engine.validate(
            alert,
            ai.triggers,
            score=scoring.score,
            score_reasoning=scoring.rationale,
        )
        alert.ai_score = rules.score
        alert.ai_score_reasoning = rules.score_reasoning
        alert.severity = reconcile_severity(supplied_severity, alert.cvss_score, rules.score)

        alert.compliance = rules.compliance
        alert.compliance_evidence = rules.evidence
        alert.compliance_policy_version = POLICY_VERSION
        alert.compliance_ai_raw = ai.compliance.model_dump(by_alias=True)

        alert.processing_state = ProcessingState.ENRICHED
        alert.is_processed = True
        alert.enrichment_version = max(alert.enrichment_version or 0, CURRENT_ENRICHMENT_VERSION)

        self.alert_store.update(alert)
        return outcome

    async def _backfill_vuln_metadata(self, alert: Alert) -> None:
        if not alert.cve_ids:
            return

        if alert.cvss_score is None:
            cvss = await self.nvd_client.enrich_cvss(alert.cve_ids)
            if cvss.cvss_score is not None:
                alert.cvss_score = cvss.cvss_score
                alert.cvss_vector = cvss.cvss_vector
                alert.cvss_cve_id = cvss.cvss_cve_id

        if alert.epss_score is None:
            epss = await self.epss_client.enrich_epss(alert.cve_ids)
            if epss.epss_score is not None:
                alert.epss_score = epss.epss_score
                alert.epss_percentile = epss.epss_percentile

    async def _attach_csaf_detail(self, alert: Alert) -> None:
        if alert.source_id != BSI_SOURCE_ID or alert.csaf_description:
            return

        wid_id = extract_wid_id(alert.description) or extract_wid_id(alert.title)
        if not wid_id:
            return

        detail = await self.csaf_service.fetch(wid_id)
        if not detail.fetch_success:
            return

        alert.csaf_description = detail.full_description
        alert.csaf_recommendations = detail.recommendations
        if detail.affected_versions and not alert.affected_versions:
            alert.affected_versions = detail.affected_versions
        alert.source_url = detail.portal_url
