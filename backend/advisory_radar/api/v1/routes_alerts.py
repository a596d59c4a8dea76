# backend/advisory_radar/api/v1/routes_alerts.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from advisory_radar.api.v1.deps import get_container
from advisory_radar.core.errors import AlertNotFoundError
from advisory_radar.schemas.alerts import Alert, AlertKey
from advisory_radar.schemas.runs import SourceRegistryEntry
from advisory_radar.services.container import ServiceContainer

router = APIRouter(tags=["alerts"])


@router.get("/alerts", response_model=List[Alert], summary="List latest alerts")
def list_alerts(
    source_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    container: ServiceContainer = Depends(get_container),
) -> List[Alert]:
    return container.alert_store.list_alerts(source_id=source_id, limit=limit)


@router.get("/alerts/{source_id}/{alert_id}", response_model=Alert, summary="Get a single alert")
def get_alert(
    source_id: str,
    alert_id: str,
    container: ServiceContainer = Depends(get_container),
) -> Alert:
    try:
        return container.alert_store.get(AlertKey(alert_id, source_id))
    except AlertNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Alert {alert_id} not found in {source_id}",
        )


@router.get("/sources", response_model=List[SourceRegistryEntry], summary="Source registry state")
def list_sources(container: ServiceContainer = Depends(get_container)) -> List[SourceRegistryEntry]:
    return container.registry_store.list_entries()
