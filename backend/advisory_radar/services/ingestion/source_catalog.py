# backend/advisory_radar/services/ingestion/source_catalog.py
from typing import Iterable, List

from advisory_radar.schemas.alerts import AlertType, SourceCategory
from advisory_radar.services.ingestion.adapters.base import (
    ClientFactory,
    SourceDefinition,
    default_client_factory,
)
from advisory_radar.services.ingestion.adapters.bsi_wid import (
    BSI_SOURCE_ID,
    BSI_SOURCE_NAME,
    WID_API_URL,
    BsiWidAdapter,
)
from advisory_radar.services.ingestion.adapters.cisa_kev import (
    KEV_FEED_URL,
    KEV_SOURCE_ID,
    KEV_SOURCE_NAME,
    CisaKevAdapter,
)
from advisory_radar.services.ingestion.adapters.rss import RssAdapter, RssFeedConfig

HOUR = 60 * 60

CISA_ADVISORIES_URL = "https://www.cisa.gov/cybersecurity-advisories/all.xml"
ICS_LINK_MARKER = "/news-events/ics-advisories/"

RSS_FEEDS: List[RssFeedConfig] = [
    RssFeedConfig(
        source_id="cisa-advisories",
        source_name="CISA Cybersecurity Advisories",
        category=SourceCategory.GOVERNMENT,
        trust_tier=1,
        url=CISA_ADVISORIES_URL,
        exclude_link_substrings=[ICS_LINK_MARKER],
    ),
    RssFeedConfig(
        source_id="cisa-ics",
        source_name="CISA Industrial Control Systems Advisories",
        category=SourceCategory.GOVERNMENT,
        trust_tier=1,
        url=CISA_ADVISORIES_URL,
        default_alert_type=AlertType.ADVISORY,
        default_alert_sub_type="ics-ot",
        include_link_substrings=[ICS_LINK_MARKER],
    ),
    RssFeedConfig(
        source_id="hackernews",
        source_name="The Hacker News",
        category=SourceCategory.NEWS,
        url="https://feeds.feedburner.com/TheHackersNews",
    ),
    RssFeedConfig(
        source_id="bleepingcomputer",
        source_name="BleepingComputer Security",
        category=SourceCategory.NEWS,
        url="https://www.bleepingcomputer.com/feed/",
        include_title_keywords=[
            "vulnerability", "exploit", "ransomware", "malware", "breach", "zero-day",
            "cve", "cisa", "microsoft", "patch", "hacker", "attack", "backdoor",
        ],
    ),
    RssFeedConfig(
        source_id="heise-security",
        source_name="heise Security",
        category=SourceCategory.NEWS,
        url="https://www.heise.de/security/rss/alert-news-atom.xml",
        language="de",
    ),
    RssFeedConfig(
        source_id="fortinet-psirt",
        source_name="Fortinet Product Security Incident Response Team",
        category=SourceCategory.VENDOR,
        trust_tier=1,
        url="https://www.fortiguard.com/rss/ir.xml",
        default_alert_type=AlertType.ADVISORY,
    ),
    RssFeedConfig(
        source_id="cisco-security",
        source_name="Cisco Security Advisories",
        category=SourceCategory.VENDOR,
        trust_tier=1,
        url="https://tools.cisco.com/security/center/psirtrss20/CiscoSecurityAdvisory.xml",
        default_alert_type=AlertType.ADVISORY,
        include_title_keywords=["Critical", "High"],
    ),
]


def _rss_interval(category: SourceCategory) -> int:
    return 6 * HOUR if category == SourceCategory.NEWS else 12 * HOUR


def build_default_sources(
    *,
    user_agent: str = "advisory-radar/0.1",
    client_factory: ClientFactory = default_client_factory,
) -> List[SourceDefinition]:
    sources = [
        SourceDefinition(
            source_id=KEV_SOURCE_ID,
            source_name=KEV_SOURCE_NAME,
            category=SourceCategory.GOVERNMENT,
            trust_tier=1,
            url=KEV_FEED_URL,
            default_interval_seconds=24 * HOUR,
            adapter=CisaKevAdapter(user_agent=user_agent, client_factory=client_factory),
        ),
        SourceDefinition(
            source_id=BSI_SOURCE_ID,
            source_name=BSI_SOURCE_NAME,
            category=SourceCategory.GOVERNMENT,
            trust_tier=1,
            url=WID_API_URL,
            language="de",
            default_interval_seconds=12 * HOUR,
            adapter=BsiWidAdapter(user_agent=user_agent, client_factory=client_factory),
        ),
    ]
    for cfg in RSS_FEEDS:
        sources.append(
            SourceDefinition(
                source_id=cfg.source_id,
                source_name=cfg.source_name,
                category=cfg.category,
                trust_tier=cfg.trust_tier,
                url=cfg.url,
                language=cfg.language,
                default_interval_seconds=_rss_interval(cfg.category),
                adapter=RssAdapter(cfg, user_agent=user_agent, client_factory=client_factory),
            )
        )
    return sources


def active_sources(
    sources: Iterable[SourceDefinition], enable_tenant_sources: bool
) -> List[SourceDefinition]:
    """Tenant-category sources only run when explicitly enabled."""
    return [
        s for s in sources
        if enable_tenant_sources or s.category != SourceCategory.TENANT
    ]
