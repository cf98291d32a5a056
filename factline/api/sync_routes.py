"""Factline — Sync & Health Routes."""

from fastapi import APIRouter, HTTPException, Path, Request

from factline.connectors.churchtools.client import ChurchToolsClient
from factline.sync.service import DataSyncService, SyncAlreadyRunningError
from factline.core.logging import get_logger

logger = get_logger("api.sync")

router = APIRouter(tags=["Sync"])

SERVICE_NAME = "factline"
VERSION = "1.0.0"


def _service(request: Request) -> DataSyncService:
    return request.app.state.sync_service


def _client(request: Request) -> ChurchToolsClient:
    return request.app.state.client


@router.get("/health", tags=["System"])
def health_check(request: Request):
    """Single-flight state plus the last sync watermark."""
    service = _service(request)
    last_sync = service.last_sync()
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "version": VERSION,
        "authenticated": _client(request).authenticated,
        "syncing": service.is_syncing,
        "last_sync": last_sync.isoformat().replace("+00:00", "Z") if last_sync else None,
    }


@router.post("/sync")
async def trigger_sync(request: Request):
    """Run a window sync now.

    409 if a sync is already running; 500 if the pass fails.
    """
    try:
        result = await _service(request).sync_window()
    except SyncAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"On-demand sync failed: {e}")
        raise HTTPException(status_code=500, detail=f"Sync failed: {str(e)}")
    return {"status": "success", "message": "Sync completed", **result.model_dump()}


@router.post("/sync/year/{year}")
async def trigger_year_sync(request: Request, year: int = Path(ge=1900, le=2999)):
    """Backfill one calendar year (slow, rate-limit-friendly path)."""
    try:
        result = await _service(request).sync_year(year)
    except SyncAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Year {year} sync failed: {e}", extra={"year": year})
        raise HTTPException(status_code=500, detail=f"Sync failed: {str(e)}")
    return {"status": "success", "year": year, **result.model_dump()}
