# backend/advisory_radar/api/v1/routes_enrichment.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from advisory_radar.api.v1.deps import get_container
from advisory_radar.core.errors import AlertNotFoundError
from advisory_radar.schemas.runs import ReEnrichmentRequest
from advisory_radar.services.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/enrichment",
    tags=["enrichment"],
)


@router.post("/run", summary="Enrich unprocessed alerts (or one alert by id)")
async def run_enrichment(
    limit: int = Query(50, ge=1, le=1000),
    alert_id: Optional[str] = None,
    container: ServiceContainer = Depends(get_container),
):
    try:
        result = await container.enrichment_orchestrator.run_enrichment(limit, alert_id=alert_id)
    except AlertNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        logger.exception("Enrichment run failed")
        return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
    return {"ok": True, **result.model_dump(mode="json")}


@router.post("/re-enrich", summary="Time-budgeted backfill over stored alerts")
async def run_re_enrichment(
    payload: ReEnrichmentRequest,
    container: ServiceContainer = Depends(get_container),
):
    """
    Filters:
      - default: alerts enriched by an older pipeline revision
      - missing_only: severity, CVSS or EPSS missing
      - missing_csaf: BSI alerts without extended advisory detail
      - force_all: everything (bounded by limit)
    """
    try:
        result = await container.enrichment_orchestrator.run_re_enrichment(payload)
    except Exception as e:
        logger.exception("Re-enrichment run failed")
        return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
    return {"ok": True, **result.model_dump(mode="json")}
