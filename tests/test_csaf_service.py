"""BSI CSAF advisory detail."""
import httpx

from advisory_radar.services.core_service.throttle import CallScheduler
from advisory_radar.services.core_service.ttl_cache import TTLCache
from advisory_radar.services.enrichment.csaf_service import (
    CsafDetailService,
    extract_wid_id,
    parse_csaf_document,
)

CSAF_DOC = {
    "document": {
        "aggregate_severity": {"text": "hoch"},
        "notes": [
            {"category": "summary", "text": "Ein Angreifer kann Code ausführen."},
            {"category": "description", "title": "Empfehlung", "text": "Update auf Version 2.4.1 installieren."},
            {"category": "legal_disclaimer", "text": "Nicht relevant."},
        ],
    },
    "product_tree": {
        "branches": [
            {
                "category": "vendor",
                "name": "Apache",
                "branches": [
                    {"category": "product_version", "name": "2.4.0"},
                    {"category": "product_name", "name": "httpd", "branches": [{"category": "product_version", "name": "2.3.9"}]},
                ],
            }
        ]
    },
}


def test_extract_wid_id():
    assert extract_wid_id("Siehe wid-sec-2025-0042 für Details") == "WID-SEC-2025-0042"
    assert extract_wid_id("no identifier here") is None
    assert extract_wid_id(None) is None


def test_parse_document():
    detail = parse_csaf_document("WID-SEC-2025-0042", CSAF_DOC)

    assert detail.fetch_success
    assert "Code ausführen" in detail.full_description
    assert "Nicht relevant" not in detail.full_description
    assert detail.recommendations == "Update auf Version 2.4.1 installieren."
    assert detail.affected_versions == ["2.4.0", "2.3.9"]
    assert detail.csaf_severity == "hoch"
    assert detail.portal_url == "https://wid.cert-bund.de/portal/wid/WID-SEC-2025-0042"


def test_remediations_used_when_no_recommendation_note():
    doc = {
        "document": {"notes": [{"category": "summary", "text": "x"}]},
        "vulnerabilities": [{"remediations": [{"category": "vendor_fix", "details": "Patch verfügbar"}]}],
    }
    assert parse_csaf_document("WID-SEC-2025-1", doc).recommendations == "vendor_fix: Patch verfügbar"


async def test_fetch_is_cached_per_id(fake_sleep):
    urls = []

    def handler(request):
        urls.append(str(request.url))
        return httpx.Response(200, json=CSAF_DOC)

    service = CsafDetailService(
        scheduler=CallScheduler(0.5, sleep=fake_sleep),
        cache=TTLCache(10, 60),
        client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    first = await service.fetch("WID-SEC-2025-42")
    second = await service.fetch("WID-SEC-2025-42")

    assert first.fetch_success and second is first
    assert urls == ["https://wid.cert-bund.de/.well-known/csaf/white/2025/wid-sec-2025-0042.json"]


async def test_fetch_failure_is_not_raised(fake_sleep):
    service = CsafDetailService(
        scheduler=CallScheduler(0.0, sleep=fake_sleep),
        cache=TTLCache(10, 60),
        client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(404))),
    )
    detail = await service.fetch("WID-SEC-2025-0001")
    assert detail.fetch_success is False
