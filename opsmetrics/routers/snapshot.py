"""
Snapshot router - operational snapshot as JSON.

Wired to:
- SnapshotService for latest-wins snapshot builds
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from opsmetrics.models.enums import PeriodPreset
from opsmetrics.models.filters import SnapshotFilters
from opsmetrics.services.snapshot_service import SnapshotService, get_snapshot_service
from opsmetrics.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


@router.get("")
async def get_snapshot(
    period: PeriodPreset = Query(PeriodPreset.TODAY),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    store_id: Optional[str] = None,
    client_id: Optional[str] = None,
    status: Optional[str] = None,
    service: SnapshotService = Depends(get_snapshot_service),
):
    """
    Build a fresh snapshot for the requested period and filters.

    A custom period requires both ``start_date`` and ``end_date``.
    """
    try:
        filters = SnapshotFilters(
            period=period,
            start_date=start_date,
            end_date=end_date,
            store_id=store_id,
            client_id=client_id,
            status=status,
        )
        snapshot = await service.refresh(filters)
    except ValueError as e:
        logger.warning("snapshot_request_invalid", period=period.value, error=str(e))
        raise HTTPException(status_code=422, detail=str(e))

    logger.info(
        "snapshot_served",
        period=period.value,
        degraded=snapshot.is_degraded,
    )
    return {"success": True, "data": snapshot.model_dump(mode="json")}


@router.get("/latest")
async def get_latest_snapshot(service: SnapshotService = Depends(get_snapshot_service)):
    """Last applied snapshot, without rebuilding."""
    snapshot = service.latest
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No snapshot has been built yet")
    return {"success": True, "data": snapshot.model_dump(mode="json")}
