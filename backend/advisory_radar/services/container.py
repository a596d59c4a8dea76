# backend/advisory_radar/services/container.py
import logging
from pathlib import Path
from typing import List, Optional

import openai
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from advisory_radar.core.config import Settings
from advisory_radar.db.init_db import init_db
from advisory_radar.db.session import create_db_engine, create_session_factory
from advisory_radar.services.compliance.rule_engine import ComplianceRuleEngine
from advisory_radar.services.core_service.throttle import CallScheduler
from advisory_radar.services.core_service.ttl_cache import TTLCache
from advisory_radar.services.enrichment.ai_analyzer import AIAnalyzer
from advisory_radar.services.enrichment.csaf_service import CsafDetailService
from advisory_radar.services.enrichment.enrichment_orchestrator import EnrichmentOrchestrator
from advisory_radar.services.enrichment.vuln_enrichment import EpssClient, NvdClient
from advisory_radar.services.ingestion.adapters.base import SourceDefinition
from advisory_radar.services.ingestion.fetch_orchestrator import FetchOrchestrator
from advisory_radar.services.ingestion.source_catalog import active_sources, build_default_sources
from advisory_radar.services.storage.alert_store import AlertStore
from advisory_radar.services.storage.raw_archive import RawArchiveStore
from advisory_radar.services.storage.registry_store import SourceRegistryStore
from advisory_radar.services.storage.run_log_store import RunLogStore

logger = logging.getLogger(__name__)

CSAF_POLITENESS_SECONDS = 0.5


def _enrichment_nvd_delay(settings: Settings) -> float:
    return 0.7 if settings.NVD_API_KEY else 6.5


def build_ai_client(settings: Settings) -> Optional[openai.AsyncAzureOpenAI]:
    if not (settings.AZURE_OPENAI_ENDPOINT and settings.AZURE_OPENAI_API_KEY):
        logger.warning("Azure OpenAI not configured; AI enrichment will fail every alert")
        return None
    # retries are handled by AIAnalyzer
    return openai.AsyncAzureOpenAI(
        azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
        api_key=settings.AZURE_OPENAI_API_KEY,
        api_version=settings.AZURE_OPENAI_API_VERSION,
        max_retries=0,
        timeout=60.0,
    )


class ServiceContainer:
    """Every long-lived service, built once at startup and shared by reference."""

    def __init__(
        self,
        *,
        settings: Settings,
        engine: Engine,
        session_factory: sessionmaker,
        alert_store: AlertStore,
        registry_store: SourceRegistryStore,
        run_log_store: RunLogStore,
        archive: RawArchiveStore,
        fetch_orchestrator: FetchOrchestrator,
        enrichment_orchestrator: EnrichmentOrchestrator,
    ) -> None:
        self.settings = settings
        self.engine = engine
        self.session_factory = session_factory
        self.alert_store = alert_store
        self.registry_store = registry_store
        self.run_log_store = run_log_store
        self.archive = archive
        self.fetch_orchestrator = fetch_orchestrator
        self.enrichment_orchestrator = enrichment_orchestrator

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        sources: Optional[List[SourceDefinition]] = None,
        ai_client: Optional[openai.AsyncAzureOpenAI] = None,
    ) -> "ServiceContainer":
        engine = create_db_engine(settings.DATABASE_URL)
        # create tables if missing (no migrations)
        init_db(engine)
        session_factory = create_session_factory(engine)

        alert_store = AlertStore(session_factory)
        registry_store = SourceRegistryStore(session_factory)
        run_log_store = RunLogStore(session_factory)
        archive = RawArchiveStore(Path(settings.RAW_ARCHIVE_DIR), enabled=settings.RAW_ARCHIVE_ENABLED)

        # one CVE cache shared by the fetch-time and enrichment-time lookups
        cve_cache = TTLCache(settings.CACHE_MAX_ENTRIES, settings.CACHE_TTL_SECONDS)
        user_agent = settings.HTTP_USER_AGENT

        fetch_nvd = NvdClient(
            scheduler=CallScheduler(settings.nvd_rate_limit_seconds, name="nvd-fetch"),
            cache=cve_cache,
            api_key=settings.NVD_API_KEY,
            user_agent=user_agent,
        )
        enrichment_nvd = NvdClient(
            scheduler=CallScheduler(_enrichment_nvd_delay(settings), name="nvd-enrichment"),
            cache=cve_cache,
            api_key=settings.NVD_API_KEY,
            user_agent=user_agent,
        )
        csaf = CsafDetailService(
            scheduler=CallScheduler(CSAF_POLITENESS_SECONDS, name="bsi-csaf"),
            cache=TTLCache(settings.CACHE_MAX_ENTRIES, settings.CACHE_TTL_SECONDS),
            user_agent=user_agent,
        )
        analyzer = AIAnalyzer(ai_client or build_ai_client(settings), settings.AZURE_OPENAI_MODEL)

        if sources is None:
            sources = build_default_sources(user_agent=user_agent)
        sources = active_sources(sources, settings.ENABLE_TENANT_SOURCES)

        fetch_orchestrator = FetchOrchestrator(
            sources=sources,
            alert_store=alert_store,
            registry_store=registry_store,
            run_log_store=run_log_store,
            archive=archive,
            nvd_client=fetch_nvd,
            nvd_max_requests=settings.nvd_max_requests,
        )
        enrichment_orchestrator = EnrichmentOrchestrator(
            alert_store=alert_store,
            run_log_store=run_log_store,
            nvd_client=enrichment_nvd,
            epss_client=EpssClient(user_agent=user_agent),
            csaf_service=csaf,
            ai_analyzer=analyzer,
            rule_engine=ComplianceRuleEngine(),
        )

        logger.info("Services ready: %d sources, archive=%s", len(sources), archive.enabled)
        return cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            alert_store=alert_store,
            registry_store=registry_store,
            run_log_store=run_log_store,
            archive=archive,
            fetch_orchestrator=fetch_orchestrator,
            enrichment_orchestrator=enrichment_orchestrator,
        )
