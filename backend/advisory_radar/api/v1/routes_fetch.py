# backend/advisory_radar/api/v1/routes_fetch.py
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from advisory_radar.api.v1.deps import get_container
from advisory_radar.services.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/fetch",
    tags=["fetch"],
)


@router.post("/run", summary="Run one fetch cycle over all eligible sources")
async def run_fetch(container: ServiceContainer = Depends(get_container)):
    try:
        summary = await container.fetch_orchestrator.run_fetch_cycle()
    except Exception as e:
        logger.exception("Fetch cycle failed")
        return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
    return {"ok": True, **summary.model_dump(mode="json")}
