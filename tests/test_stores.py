"""Alert store queries, source registry bookkeeping and the raw archive."""
import json
from datetime import timedelta

import pytest

from advisory_radar.core.errors import AlertNotFoundError, ArchiveError
from advisory_radar.schemas.alerts import AlertKey
from advisory_radar.schemas.runs import RunLogEntry, RunStatus
from advisory_radar.schemas.sources import RawCacheItem
from advisory_radar.services.storage.raw_archive import RawArchiveStore
from advisory_radar.services.storage.registry_store import AUTO_DISABLE_THRESHOLD


def test_get_requires_matching_partition(alert_store, make_alert):
    alert = make_alert()
    alert_store.create(alert)

    assert alert_store.get(AlertKey(alert.id, alert.source_id)).title == alert.title
    with pytest.raises(AlertNotFoundError):
        alert_store.get(AlertKey(alert.id, "other-source"))


def test_unprocessed_oldest_first(alert_store, make_alert, now):
    newer = make_alert(fetched_at=now - timedelta(hours=1), title="newer")
    older = make_alert(fetched_at=now - timedelta(hours=5), title="older")
    done = make_alert(fetched_at=now - timedelta(hours=9), title="done", is_processed=True)
    for a in (newer, older, done):
        alert_store.create(a)

    assert [a.title for a in alert_store.list_unprocessed(10)] == ["older", "newer"]


def test_reenrichment_filters(alert_store, make_alert):
    outdated = make_alert(title="outdated", enrichment_version=2, cvss_score=7.0, epss_score=0.1, severity="high")
    current = make_alert(title="current", enrichment_version=3, cvss_score=7.0, epss_score=0.1, severity="high")
    missing = make_alert(title="missing", enrichment_version=3, cvss_score=None)
    bsi = make_alert(title="bsi", source_id="bsi-cert", enrichment_version=3, cvss_score=5.0, epss_score=0.2, severity="low")
    for a in (outdated, current, missing, bsi):
        alert_store.create(a)

    def titles(**kw):
        return {a.title for a in alert_store.list_for_reenrichment(limit=10, current_version=3, **kw)}

    assert titles() == {"outdated"}
    assert titles(missing_only=True) == {"missing"}
    assert titles(missing_csaf=True) == {"bsi"}
    assert titles(force_all=True) == {"outdated", "current", "missing", "bsi"}
    assert titles(force_all=True, source_id="bsi-cert") == {"bsi"}


def test_patch_cvss_only_fills_unscored(alert_store, make_alert):
    alert = make_alert(cvss_score=None, severity=None)
    alert_store.create(alert)

    assert alert_store.patch_cvss(alert.key, cvss_score=9.8, cvss_vector="V", cvss_cve_id="CVE-1", severity="critical")
    assert not alert_store.patch_cvss(alert.key, cvss_score=5.0, cvss_vector="W", cvss_cve_id="CVE-2", severity="medium")

    stored = alert_store.get(alert.key)
    assert stored.cvss_score == 9.8
    assert stored.severity == "critical"


def test_registry_auto_disables_after_threshold(registry_store, now):
    kwargs = dict(source_id="hackernews", source_name="HN", source_category="news", source_url=None, fetched_at=now)

    for _ in range(AUTO_DISABLE_THRESHOLD - 1):
        entry = registry_store.record_fetch(status=RunStatus.ERROR, error="timeout", **kwargs)
    assert entry.is_enabled is True
    assert entry.consecutive_errors == AUTO_DISABLE_THRESHOLD - 1

    entry = registry_store.record_fetch(status=RunStatus.ERROR, error="timeout", **kwargs)
    assert entry.is_enabled is False
    assert entry.last_error == "timeout"


def test_registry_success_resets_counter_and_keeps_override(registry_store, now):
    kwargs = dict(source_id="hackernews", source_name="HN", source_category="news", source_url=None, fetched_at=now)
    registry_store.record_fetch(status=RunStatus.ERROR, error="boom", **kwargs)
    registry_store.update_settings("hackernews", fetch_interval_override=900)

    entry = registry_store.record_fetch(status=RunStatus.SUCCESS, **kwargs)

    assert entry.consecutive_errors == 0
    assert entry.fetch_interval_override == 900
    assert [e.source_id for e in registry_store.list_entries()] == ["hackernews"]


def test_run_log_roundtrip(run_log_store, now):
    run_log_store.log(
        RunLogEntry(id="1", run_id="run-a", source_id="cisa-kev", started_at=now, status=RunStatus.PARTIAL, details={"x": 1})
    )
    entries = run_log_store.list_for_run("run-a")
    assert entries[0].status == RunStatus.PARTIAL
    assert entries[0].details == {"x": 1}


def test_archive_writes_content_addressed_files(tmp_path, now):
    archive = RawArchiveStore(tmp_path)
    archive.ensure_ready()
    manifest_path = archive.archive_source_payloads(
        run_id="run-1",
        source_id="cisa-kev",
        source_name="KEV",
        items=[RawCacheItem(label="feed", url="https://x", body='{"a": 1}')],
        cached_at=now,
    )

    assert manifest_path.startswith(f"source-cache/cisa-kev/{now:%Y-%m-%d}/")
    manifest = json.loads(archive.read(manifest_path))
    item = manifest["items"][0]
    assert archive.read(item["path"]) == b'{"a": 1}'
    assert item["path"].endswith(item["sha256"][:12] + ".json")


def test_archive_disabled_or_unwritable(tmp_path):
    with pytest.raises(ArchiveError):
        RawArchiveStore(tmp_path, enabled=False).ensure_ready()

    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    with pytest.raises(ArchiveError):
        RawArchiveStore(blocker / "archive").ensure_ready()
