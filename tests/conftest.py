"""Shared fixtures: in-memory database, stores, sample feeds and alerts."""
from datetime import datetime, timedelta
from typing import List

import pytest

from advisory_radar.core.time_utils import utcnow
from advisory_radar.db.init_db import init_db
from advisory_radar.db.session import create_db_engine, create_session_factory
from advisory_radar.schemas.alerts import Alert, AlertType, CandidateAlert, SourceCategory
from advisory_radar.services.storage.alert_store import AlertStore
from advisory_radar.services.storage.registry_store import SourceRegistryStore
from advisory_radar.services.storage.run_log_store import RunLogStore


@pytest.fixture
def session_factory():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def alert_store(session_factory):
    return AlertStore(session_factory)


@pytest.fixture
def registry_store(session_factory):
    return SourceRegistryStore(session_factory)


@pytest.fixture
def run_log_store(session_factory):
    return RunLogStore(session_factory)


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    """Records requested delays instead of waiting."""

    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return _sleep


@pytest.fixture
def make_candidate():
    def _make(**overrides) -> CandidateAlert:
        data = dict(
            source_id="cisa-advisories",
            source_name="CISA Cybersecurity Advisories",
            source_category=SourceCategory.GOVERNMENT,
            source_trust_tier=1,
            source_url="https://www.cisa.gov/news-events/cybersecurity-advisories/aa25-001a",
            title="Exploitation of Ivanti Connect Secure",
            description="Threat actors exploit CVE-2025-0282 in Ivanti Connect Secure.",
            alert_type=AlertType.VULNERABILITY,
            cve_ids=["CVE-2025-0282"],
            affected_vendors=["Ivanti"],
            affected_products=["Connect Secure"],
        )
        data.update(overrides)
        return CandidateAlert(**data)

    return _make


@pytest.fixture
def make_alert(make_candidate):
    counter = {"n": 0}

    def _make(**overrides) -> Alert:
        counter["n"] += 1
        fetched_at = overrides.pop("fetched_at", utcnow() - timedelta(minutes=counter["n"]))
        alert_fields = {k: overrides.pop(k) for k in list(overrides) if k not in CandidateAlert.model_fields}
        candidate = make_candidate(**overrides)
        data = dict(
            id=f"alert-{counter['n']}",
            content_hash=f"hash-{counter['n']}",
            fetched_at=fetched_at,
            updated_at=fetched_at,
        )
        data.update(alert_fields)
        return Alert(**candidate.model_dump(), **data)

    return _make


@pytest.fixture
def sample_kev() -> dict:
    today = utcnow().strftime("%Y-%m-%d")
    old = (utcnow() - timedelta(days=60)).strftime("%Y-%m-%d")
    return {
        "title": "CISA Catalog of Known Exploited Vulnerabilities",
        "catalogVersion": "2025.01.10",
        "vulnerabilities": [
            {
                "cveID": "cve-2025-0282",
                "vendorProject": "Ivanti",
                "product": "Connect Secure",
                "vulnerabilityName": "Ivanti Connect Secure Stack-Based Buffer Overflow",
                "dateAdded": today,
                "shortDescription": "Ivanti Connect Secure contains a stack-based buffer overflow.",
                "requiredAction": "Apply mitigations per vendor instructions.",
                "dueDate": "2025-01-15",
                "knownRansomwareCampaignUse": "Known",
                "notes": "https://forums.ivanti.com/s/article/KB-CVE-2025-0282",
            },
            {
                "cveID": "CVE-2019-0001",
                "vendorProject": "Juniper",
                "product": "Junos OS",
                "vulnerabilityName": "Old entry",
                "dateAdded": old,
                "shortDescription": "Outside the recency window.",
                "knownRansomwareCampaignUse": "Unknown",
            },
        ],
    }


@pytest.fixture
def now() -> datetime:
    return utcnow()
