# backend/advisory_radar/services/scheduling/timers.py
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from advisory_radar.core.config import Settings
from advisory_radar.schemas.runs import ReEnrichmentRequest

logger = logging.getLogger(__name__)

JobFn = Callable[[], Awaitable[object]]


class ScheduledJob:
    """
    One periodic job. A lock keeps a tick from starting while the previous
    run (or an on-demand run of the same job) is still active.
    """

    def __init__(self, name: str, interval_seconds: float, fn: JobFn) -> None:
        self.name = name
        self.interval_seconds = interval_seconds
        self.fn = fn
        self.lock = asyncio.Lock()

    async def run_once(self) -> Optional[object]:
        if self.lock.locked():
            logger.info("Job %s still running, skipping tick", self.name)
            return None
        async with self.lock:
            return await self.fn()

    async def loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Job %s failed", self.name)
            await asyncio.sleep(self.interval_seconds)


class TimerService:
    def __init__(self, jobs: List[ScheduledJob]) -> None:
        self.jobs = jobs
        self._tasks: List[asyncio.Task] = []

    def start(self) -> None:
        for job in self.jobs:
            logger.info("Starting timer %s every %ss", job.name, job.interval_seconds)
            self._tasks.append(asyncio.create_task(job.loop(), name=f"timer-{job.name}"))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()


def build_jobs(container, settings: Settings) -> List[ScheduledJob]:
    """Enabled jobs only; each is independently switched by configuration."""
    jobs: List[ScheduledJob] = []

    if settings.FETCH_TIMER_ENABLED:
        jobs.append(
            ScheduledJob(
                "fetch",
                settings.FETCH_INTERVAL_SECONDS,
                container.fetch_orchestrator.run_fetch_cycle,
            )
        )

    if settings.ENRICHMENT_TIMER_ENABLED:
        jobs.append(
            ScheduledJob(
                "enrichment",
                settings.ENRICHMENT_INTERVAL_SECONDS,
                lambda: container.enrichment_orchestrator.run_enrichment(settings.ENRICHMENT_MAX_ALERTS),
            )
        )

    if settings.REENRICH_TIMER_ENABLED:
        options = ReEnrichmentRequest(
            limit=settings.REENRICH_LIMIT,
            max_seconds=settings.reenrich_max_seconds,
        )
        jobs.append(
            ScheduledJob(
                "re-enrichment",
                settings.REENRICH_INTERVAL_SECONDS,
                lambda: container.enrichment_orchestrator.run_re_enrichment(options),
            )
        )

    return jobs
