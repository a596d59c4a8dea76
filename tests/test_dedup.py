"""Content fingerprinting and idempotent storage."""
from advisory_radar.services.ingestion.dedup import (
    ContentDeduplicator,
    StoreOutcome,
    compute_content_hash,
)


def test_hash_ignores_title_case_whitespace_and_cve_order(make_candidate):
    a = make_candidate(title="  Ivanti Flaw  ", cve_ids=["CVE-2025-0002", "CVE-2025-0001"])
    b = make_candidate(title="ivanti flaw", cve_ids=["CVE-2025-0001", "CVE-2025-0002"])
    assert compute_content_hash(a) == compute_content_hash(b)


def test_hash_changes_with_url_and_source(make_candidate):
    base = make_candidate()
    assert compute_content_hash(base) != compute_content_hash(make_candidate(source_url="https://example.org/x"))
    assert compute_content_hash(base) != compute_content_hash(make_candidate(source_id="cisa-ics"))


def test_same_candidate_twice_is_stored_once(alert_store, make_candidate):
    dedup = ContentDeduplicator(alert_store)

    assert dedup.store(make_candidate()) == StoreOutcome.NEW
    assert dedup.store(make_candidate()) == StoreOutcome.DUPLICATE
    assert alert_store.count() == 1


def test_duplicate_across_runs_with_different_fetch_time(alert_store, make_candidate):
    # a new deduplicator per run; the stored fingerprint is what matters
    ContentDeduplicator(alert_store).store(make_candidate())
    outcome = ContentDeduplicator(alert_store).store(make_candidate())

    assert outcome == StoreOutcome.DUPLICATE
    assert alert_store.count("cisa-advisories") == 1


def test_new_alert_starts_raw_and_unprocessed(alert_store, make_candidate):
    ContentDeduplicator(alert_store).store(make_candidate())
    stored = alert_store.list_alerts()[0]

    assert stored.is_processed is False
    assert stored.processing_state.value == "raw"
    assert stored.enrichment_version == 0
    assert stored.content_hash == compute_content_hash(make_candidate())


def test_same_content_in_other_source_is_new(alert_store, make_candidate):
    dedup = ContentDeduplicator(alert_store)
    dedup.store(make_candidate())
    assert dedup.store(make_candidate(source_id="bleepingcomputer")) == StoreOutcome.NEW
    assert alert_store.count() == 2
