"""Per-alert enrichment pipeline and the time-budgeted backfill."""
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from advisory_radar.core.errors import AlertNotFoundError
from advisory_radar.schemas.ai_analysis import AIAnalysisResult
from advisory_radar.schemas.alerts import AlertType, ProcessingState
from advisory_radar.schemas.compliance import Relevance
from advisory_radar.schemas.runs import ReEnrichmentRequest, RunStatus
from advisory_radar.services.core_service.throttle import CallScheduler
from advisory_radar.services.enrichment.ai_analyzer import AIOutcome
from advisory_radar.services.enrichment.csaf_service import CsafDetail
from advisory_radar.services.enrichment.enrichment_orchestrator import (
    CURRENT_ENRICHMENT_VERSION,
    RUN_LOG_SOURCE_ID,
    EnrichmentOrchestrator,
)
from advisory_radar.services.enrichment.vuln_enrichment import CvssResult, EpssResult


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def ai_success(triggers=("data_breach", "invented_trigger"), tokens=1000):
    return AIOutcome(
        status="success",
        attempts=1,
        result=AIAnalysisResult(
            summary="Summary",
            summary_de="Zusammenfassung",
            title_de="Titel",
            triggers=list(triggers),
            compliance={"nis2": {"relevant": "yes", "references": ["Art. 999 Invented"]}},
            tokens_used=tokens,
        ),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ai():
    analyzer = MagicMock()
    analyzer.analyze = AsyncMock(return_value=ai_success())
    return analyzer


@pytest.fixture
def nvd():
    client = MagicMock()
    client.enrich_cvss = AsyncMock(return_value=CvssResult(cvss_score=9.8, cvss_vector="V", cvss_cve_id="CVE-2025-0282"))
    return client


@pytest.fixture
def epss():
    client = MagicMock()
    client.enrich_epss = AsyncMock(return_value=EpssResult(epss_score=0.42, epss_percentile=0.97))
    return client


@pytest.fixture
def csaf():
    service = MagicMock()
    service.fetch = AsyncMock(
        return_value=CsafDetail(
            wid_id="WID-SEC-2025-0042",
            full_description="Ausführliche Beschreibung",
            recommendations="Patch einspielen",
            affected_versions=["1.0"],
            fetch_success=True,
        )
    )
    return service


@pytest.fixture
def orchestrator(alert_store, run_log_store, nvd, epss, csaf, ai, fake_sleep, clock):
    return EnrichmentOrchestrator(
        alert_store=alert_store,
        run_log_store=run_log_store,
        nvd_client=nvd,
        epss_client=epss,
        csaf_service=csaf,
        ai_analyzer=ai,
        scheduler=CallScheduler(0.5, sleep=fake_sleep),
        clock=clock,
    )


async def test_full_pipeline_for_exploited_alert(orchestrator, alert_store, make_alert, run_log_store):
    alert = make_alert(is_actively_exploited=True, cvss_score=None, source_trust_tier=1)
    alert_store.create(alert)

    result = await orchestrator.run_enrichment(10)

    assert result.total_success == 1
    assert result.total_tokens_used == 1000
    assert result.estimated_cost_usd > 0

    stored = alert_store.get(alert.key)
    assert stored.cvss_score == 9.8
    assert stored.epss_score == 0.42
    assert stored.ai_score == 85
    assert stored.severity == "critical"
    assert stored.summary_de == "Zusammenfassung"
    assert stored.is_processed
    assert stored.processing_state == ProcessingState.ENRICHED
    assert stored.enrichment_version == CURRENT_ENRICHMENT_VERSION

    assert "invented_trigger" not in stored.compliance_evidence.triggers
    assert "active_exploitation" in stored.compliance_evidence.triggers
    assert stored.compliance.nis2.relevant == Relevance.YES
    assert "Art. 999 Invented" not in stored.compliance.nis2.references
    assert stored.compliance_ai_raw["nis2"]["references"] == ["Art. 999 Invented"]

    log = run_log_store.list_for_run(result.run_id)[0]
    assert log.source_id == RUN_LOG_SOURCE_ID
    assert log.status == RunStatus.SUCCESS
    assert log.details["tokensUsed"] == 1000


async def test_existing_scores_are_not_refetched(orchestrator, alert_store, make_alert, nvd, epss):
    alert_store.create(make_alert(cvss_score=5.0, epss_score=0.01))
    await orchestrator.run_enrichment(10)
    nvd.enrich_cvss.assert_not_awaited()
    epss.enrich_epss.assert_not_awaited()


async def test_failed_alert_is_recorded_and_run_continues(orchestrator, alert_store, make_alert, ai, now):
    first = make_alert(title="first", fetched_at=now - timedelta(hours=2))
    second = make_alert(title="second", fetched_at=now - timedelta(hours=1))
    alert_store.create(first)
    alert_store.create(second)
    ai.analyze.side_effect = [
        AIOutcome(status="failed", error="invalid_json: nope", attempts=3),
        ai_success(),
    ]

    result = await orchestrator.run_enrichment(10)

    assert result.total_processed == 2
    assert result.total_failed == 1
    assert result.total_success == 1
    assert [e.error for e in result.errors] == ["invalid_json: nope"]
    assert result.errors[0].alert_id == first.id
    assert alert_store.get(first.key).is_processed is False
    assert alert_store.get(second.key).is_processed is True


async def test_content_filtered_alert_is_skipped(orchestrator, alert_store, make_alert, ai, run_log_store):
    alert = make_alert()
    alert_store.create(alert)
    ai.analyze.return_value = AIOutcome(status="skipped", error="content_filtered: blocked", attempts=1)

    result = await orchestrator.run_enrichment(10)

    assert result.total_skipped == 1
    assert result.total_failed == 0
    assert alert_store.get(alert.key).is_processed is False
    assert run_log_store.list_for_run(result.run_id)[0].status == RunStatus.SUCCESS


async def test_oldest_alert_processed_first(orchestrator, alert_store, make_alert, ai, now):
    alert_store.create(make_alert(title="new", fetched_at=now))
    alert_store.create(make_alert(title="old", fetched_at=now - timedelta(days=2)))

    await orchestrator.run_enrichment(10)

    visited = [c.args[0].title for c in ai.analyze.await_args_list]
    assert visited == ["old", "new"]


async def test_unknown_single_alert_raises(orchestrator):
    with pytest.raises(AlertNotFoundError):
        await orchestrator.run_enrichment(10, alert_id="missing")


async def test_single_alert_run(orchestrator, alert_store, make_alert, ai):
    target = make_alert(title="target", is_processed=True, enrichment_version=3)
    alert_store.create(make_alert(title="other"))
    alert_store.create(target)

    result = await orchestrator.run_enrichment(10, alert_id=target.id)

    assert result.total_candidates == 1
    assert ai.analyze.await_args.args[0].title == "target"


async def test_enrichment_version_never_lowered(orchestrator, alert_store, make_alert):
    alert = make_alert(enrichment_version=7)
    alert_store.create(alert)

    await orchestrator.run_re_enrichment(ReEnrichmentRequest(force_all=True))

    assert alert_store.get(alert.key).enrichment_version == 7


async def test_reenrichment_stops_at_deadline(orchestrator, alert_store, make_alert, ai, clock):
    for i in range(5):
        alert_store.create(make_alert(title=f"a{i}", enrichment_version=1))

    async def slow_analyze(alert):
        clock.now += 3
        return ai_success()

    ai.analyze.side_effect = slow_analyze

    # 20s budget minus the 15s buffer leaves room for two 3s alerts
    result = await orchestrator.run_re_enrichment(ReEnrichmentRequest(limit=5, max_seconds=20))

    assert result.stopped_early is True
    assert result.total_candidates == 5
    assert result.total_processed == 2
    assert result.total_success == 2


async def test_reenrichment_pauses_between_batches(orchestrator, alert_store, make_alert, sleeps):
    for i in range(12):
        alert_store.create(make_alert(title=f"a{i}", enrichment_version=1))

    result = await orchestrator.run_re_enrichment(ReEnrichmentRequest(limit=12))

    assert result.total_processed == 12
    assert sleeps.count(3.0) == 1


async def test_bsi_alert_gets_csaf_detail(orchestrator, alert_store, make_alert, csaf):
    alert = make_alert(
        source_id="bsi-cert",
        title="[WID-SEC-2025-0042] Apache HTTP Server: Schwachstelle",
        description="Kurzbeschreibung",
        alert_type=AlertType.ADVISORY,
    )
    alert_store.create(alert)

    await orchestrator.run_enrichment(10)

    csaf.fetch.assert_awaited_once_with("WID-SEC-2025-0042")
    stored = alert_store.get(alert.key)
    assert stored.csaf_recommendations == "Patch einspielen"
    assert stored.affected_versions == ["1.0"]
    assert stored.source_url == "https://wid.cert-bund.de/portal/wid/WID-SEC-2025-0042"
