"""
Sheet Routes

POST /add-users-to-sheet - Append selected users to the export sheet
POST /sync/run - Start a sync pass now (409 if one is running)
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from intake.api.deps import get_exporter, get_scheduler
from intake.core.exceptions import SheetsError
from intake.schemas.schemas import BatchResponse, SyncTriggerResponse, UserBatch
from intake.services.sheet_export_service import SheetExportService
from intake.sync.scheduler import SyncScheduler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Sheets"])


@router.post("/add-users-to-sheet", response_model=BatchResponse)
async def add_users_to_sheet(data: UserBatch, exporter: SheetExportService = Depends(get_exporter)):
    """Append users to the export sheet and mark them as exported."""
    if not data.users:
        raise HTTPException(status_code=400, detail="No users provided")
    try:
        results = exporter.add_users(data.users)
    except SheetsError as e:
        logger.error("Google Sheets API error: %s", e)
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
    return BatchResponse(success=True, results=results)


@router.post("/sync/run", response_model=SyncTriggerResponse, status_code=202)
async def run_sync(scheduler: SyncScheduler = Depends(get_scheduler)):
    """Start a full sync pass in the background."""
    if not scheduler.trigger_now():
        return JSONResponse(
            status_code=409,
            content=SyncTriggerResponse(started=False, message="A sync pass is already running").model_dump()
        )
    return SyncTriggerResponse(started=True, message="Sync pass started")
