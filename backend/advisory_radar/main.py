# backend/advisory_radar/main.py
from fastapi import FastAPI

from advisory_radar.api.v1.routes_alerts import router as alerts_router
from advisory_radar.api.v1.routes_enrichment import router as enrichment_router
from advisory_radar.api.v1.routes_fetch import router as fetch_router
from advisory_radar.api.v1.routes_health import router as health_router
from advisory_radar.core.config import settings
from advisory_radar.core.logging import setup_logging
from advisory_radar.services.container import ServiceContainer
from advisory_radar.services.scheduling.timers import TimerService, build_jobs


app = FastAPI(
    title="Advisory Radar",
    version="0.1.0",
    description="Security advisory ingestion, risk scoring, AI enrichment and compliance mapping.",
)


@app.on_event("startup")
async def on_startup() -> None:
    setup_logging(settings.LOG_LEVEL)
    container = ServiceContainer.build(settings)
    app.state.container = container
    app.state.timers = TimerService(build_jobs(container, settings))
    app.state.timers.start()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    timers = getattr(app.state, "timers", None)
    if timers is not None:
        await timers.stop()


@app.get("/", tags=["root"])
async def root() -> dict:
    return {
        "status": "ok",
        "service": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
    }


app.include_router(health_router)

# API v1
app.include_router(fetch_router, prefix="/api/v1")
app.include_router(enrichment_router, prefix="/api/v1")
app.include_router(alerts_router, prefix="/api/v1")
