"""Fetch cycle: eligibility, isolation of failing sources, archive, CVSS pass."""
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from advisory_radar.core.errors import SourceFetchError
from advisory_radar.schemas.alerts import SourceCategory
from advisory_radar.schemas.runs import RunStatus
from advisory_radar.schemas.sources import AdapterResult, RawCacheItem
from advisory_radar.services.enrichment.vuln_enrichment import NvdLookup
from advisory_radar.services.ingestion.adapters.base import SourceDefinition
from advisory_radar.services.ingestion.fetch_orchestrator import NVD_SOURCE_ID, FetchOrchestrator
from advisory_radar.services.storage.raw_archive import RawArchiveStore
from advisory_radar.services.storage.registry_store import AUTO_DISABLE_THRESHOLD


class StaticAdapter:
    def __init__(self, candidates):
        self.candidates = candidates
        self.calls = 0

    async def fetch(self) -> AdapterResult:
        self.calls += 1
        return AdapterResult(
            alerts=[c.model_copy() for c in self.candidates],
            raw_cache=[RawCacheItem(label="feed", url="https://feed.example", body="<rss/>", extension="xml")],
        )


class FailingAdapter:
    def __init__(self):
        self.calls = 0

    async def fetch(self) -> AdapterResult:
        self.calls += 1
        raise httpx.ConnectError("connection refused")


def source(source_id, adapter, interval=0):
    return SourceDefinition(
        source_id=source_id,
        source_name=source_id.title(),
        category=SourceCategory.NEWS,
        url=f"https://{source_id}.example/feed",
        default_interval_seconds=interval,
        adapter=adapter,
    )


@pytest.fixture
def build(alert_store, registry_store, run_log_store, tmp_path):
    def _build(sources, archive=None, nvd_client=None, nvd_max_requests=15):
        return FetchOrchestrator(
            sources=sources,
            alert_store=alert_store,
            registry_store=registry_store,
            run_log_store=run_log_store,
            archive=archive or RawArchiveStore(tmp_path / "archive"),
            nvd_client=nvd_client,
            nvd_max_requests=nvd_max_requests,
        )

    return _build


async def test_refetching_unchanged_feed_is_noop(build, make_candidate, alert_store):
    adapter = StaticAdapter([make_candidate(source_id="news"), make_candidate(source_id="news", title="Second")])
    orchestrator = build([source("news", adapter)])

    first = await orchestrator.run_fetch_cycle()
    second = await orchestrator.run_fetch_cycle()

    assert (first.total_new, first.total_duplicate) == (2, 0)
    assert (second.total_new, second.total_duplicate) == (0, 2)
    assert alert_store.count() == 2


async def test_failing_source_does_not_abort_cycle(build, make_candidate, registry_store, run_log_store):
    good = StaticAdapter([make_candidate(source_id="good")])
    orchestrator = build([source("bad", FailingAdapter()), source("good", good)])

    summary = await orchestrator.run_fetch_cycle()

    assert summary.total_errors == 1
    assert summary.total_new == 1
    by_id = {s.source_id: s for s in summary.sources}
    assert by_id["bad"].status == RunStatus.ERROR
    assert by_id["bad"].error == "bad: ConnectError: connection refused"
    assert by_id["good"].status == RunStatus.SUCCESS

    assert registry_store.get("bad").consecutive_errors == 1
    logs = {e.source_id: e for e in run_log_store.list_for_run(summary.run_id)}
    assert logs["bad"].error_stack
    assert "SourceFetchError" in logs["bad"].error_stack
    assert logs["good"].items_new == 1


async def test_adapter_failure_is_wrapped_with_source_id(build):
    orchestrator = build([])

    with pytest.raises(SourceFetchError) as exc:
        await orchestrator._call_adapter(source("bad", FailingAdapter()))

    assert exc.value.source_id == "bad"
    assert isinstance(exc.value.__cause__, httpx.ConnectError)


async def test_source_disabled_after_repeated_failures(build):
    failing = FailingAdapter()
    orchestrator = build([source("flaky", failing)])

    for _ in range(AUTO_DISABLE_THRESHOLD):
        await orchestrator.run_fetch_cycle()
    summary = await orchestrator.run_fetch_cycle()

    assert failing.calls == AUTO_DISABLE_THRESHOLD
    assert summary.sources[0].status == RunStatus.SKIPPED


async def test_interval_and_override(build, make_candidate, registry_store):
    adapter = StaticAdapter([make_candidate(source_id="slow")])
    orchestrator = build([source("slow", adapter, interval=6 * 3600)])

    await orchestrator.run_fetch_cycle()
    await orchestrator.run_fetch_cycle()
    assert adapter.calls == 1

    # a past last-fetch with a short override makes it eligible again
    entry = registry_store.get("slow")
    registry_store.update_settings("slow", fetch_interval_override=60)
    orchestrator._now = lambda: entry.last_fetch_at + timedelta(seconds=120)
    await orchestrator.run_fetch_cycle()
    assert adapter.calls == 2


async def test_registry_read_failure_fetches_anyway(build, make_candidate, registry_store):
    adapter = StaticAdapter([make_candidate(source_id="news")])
    orchestrator = build([source("news", adapter)])
    orchestrator.registry_store = MagicMock(wraps=registry_store)
    orchestrator.registry_store.get.side_effect = OperationalError("select", {}, Exception("db down"))

    await orchestrator.run_fetch_cycle()
    assert adapter.calls == 1


async def test_archive_and_snapshot_written(build, make_candidate, tmp_path, alert_store):
    archive = RawArchiveStore(tmp_path / "archive")
    orchestrator = build([source("news", StaticAdapter([make_candidate(source_id="news")]))], archive=archive)

    summary = await orchestrator.run_fetch_cycle()

    raw_path = summary.sources[0].raw_blob_path
    assert raw_path and raw_path.endswith("_manifest.json")
    assert alert_store.list_alerts()[0].raw_blob_path == raw_path
    snapshots = list((tmp_path / "archive" / "fetch-snapshots").rglob(f"{summary.run_id}.json"))
    assert len(snapshots) == 1


async def test_archive_failure_does_not_fail_run(build, make_candidate, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    orchestrator = build(
        [source("news", StaticAdapter([make_candidate(source_id="news")]))],
        archive=RawArchiveStore(blocker / "archive"),
    )

    summary = await orchestrator.run_fetch_cycle()

    assert summary.total_new == 1
    assert summary.total_errors == 0
    assert summary.sources[0].raw_blob_path is None


async def test_cvss_pass_prioritizes_and_respects_budget(build, make_alert, alert_store, run_log_store):
    news = make_alert(source_id="hackernews", cve_ids=["CVE-2025-0003"], cvss_score=None)
    kev = make_alert(source_id="cisa-kev", cve_ids=["CVE-2025-0001", "CVE-2025-0002"], cvss_score=None, severity=None)
    for a in (news, kev):
        alert_store.create(a)

    scores = {"CVE-2025-0001": 7.5, "CVE-2025-0002": 9.8, "CVE-2025-0003": 5.0}
    nvd = MagicMock()
    nvd.lookup = AsyncMock(side_effect=lambda cve: NvdLookup(cve_id=cve, score=scores[cve], vector="V", raw="{}"))

    orchestrator = build([], nvd_client=nvd, nvd_max_requests=2)
    summary = await orchestrator.run_fetch_cycle()

    looked_up = [c.args[0] for c in nvd.lookup.await_args_list]
    assert looked_up == ["CVE-2025-0001", "CVE-2025-0002"]

    stored_kev = alert_store.get(kev.key)
    assert stored_kev.cvss_score == 9.8
    assert stored_kev.cvss_cve_id == "CVE-2025-0002"
    assert stored_kev.severity == "critical"
    assert alert_store.get(news.key).cvss_score is None

    nvd_summary = summary.sources[-1]
    assert nvd_summary.source_id == NVD_SOURCE_ID
    assert nvd_summary.items_new == 1
    assert run_log_store.list_for_run(summary.run_id)[0].source_id == NVD_SOURCE_ID


async def test_cvss_pass_failure_counts_as_error(build, make_alert, alert_store):
    alert_store.create(make_alert(cvss_score=None))
    nvd = MagicMock()
    nvd.lookup = AsyncMock(side_effect=httpx.ConnectError("down"))

    summary = await build([], nvd_client=nvd).run_fetch_cycle()

    assert summary.sources[-1].status == RunStatus.ERROR
    assert summary.sources[-1].items_error == 1
