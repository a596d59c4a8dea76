"""Scheduled job wiring and settings-derived defaults."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

from advisory_radar.core.config import Settings
from advisory_radar.services.scheduling.timers import ScheduledJob, build_jobs


async def test_job_skips_tick_while_running():
    release = asyncio.Event()
    calls = []

    async def work():
        calls.append(1)
        await release.wait()
        return "done"

    job = ScheduledJob("fetch", 60, work)
    first = asyncio.create_task(job.run_once())
    await asyncio.sleep(0)

    assert await job.run_once() is None
    release.set()
    assert await first == "done"
    assert calls == [1]


def test_only_enabled_jobs_are_built():
    container = MagicMock()
    container.enrichment_orchestrator.run_re_enrichment = AsyncMock()
    settings = Settings(
        FETCH_TIMER_ENABLED=True,
        ENRICHMENT_TIMER_ENABLED=False,
        REENRICH_TIMER_ENABLED=True,
        REENRICH_LIMIT=25,
        REENRICH_MAX_SECONDS=10,
    )
    jobs = build_jobs(container, settings)
    assert [j.name for j in jobs] == ["fetch", "re-enrichment"]


async def test_backfill_job_uses_clamped_budget():
    container = MagicMock()
    container.enrichment_orchestrator.run_re_enrichment = AsyncMock()
    settings = Settings(
        FETCH_TIMER_ENABLED=False,
        ENRICHMENT_TIMER_ENABLED=False,
        REENRICH_TIMER_ENABLED=True,
        REENRICH_LIMIT=25,
        REENRICH_MAX_SECONDS=10,
    )

    (job,) = build_jobs(container, settings)
    await job.run_once()

    options = container.enrichment_orchestrator.run_re_enrichment.await_args.args[0]
    assert options.limit == 25
    assert options.max_seconds == 60


def test_nvd_defaults_depend_on_api_key():
    assert Settings(NVD_API_KEY=None).nvd_rate_limit_seconds == 7.0
    assert Settings(NVD_API_KEY="k").nvd_rate_limit_seconds == 1.0
    assert Settings(NVD_API_KEY="k").nvd_max_requests == 50
    assert Settings(NVD_API_KEY=None, NVD_MAX_REQUESTS=5).nvd_max_requests == 5


def test_database_url_override():
    assert Settings(DATABASE_URL_OVERRIDE="sqlite://").DATABASE_URL == "sqlite://"
    assert Settings(DATABASE_URL_OVERRIDE=None).DATABASE_URL.startswith("postgresql+psycopg2://")
