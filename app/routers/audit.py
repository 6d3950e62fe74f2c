from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
import asyncio
import logging
from typing import Optional

import requests

from app.dependencies import get_services, require_admin_key
from app.schemas import AuditLogResponse, AuditStatsResponse
from app.services import ServiceContainer
from utils.time import normalize_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["audit"], dependencies=[Depends(require_admin_key)])


@router.get("/audit-logs", response_model=AuditLogResponse)
async def audit_logs(
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    user_id: Optional[str] = Query(default=None, alias="userId"),
    limit: int = Query(default=100, ge=1, le=1000),
    services: ServiceContainer = Depends(get_services),
):
    recorder = services.audit_recorder
    if start_date and end_date:
        try:
            start, end = normalize_iso(start_date), normalize_iso(end_date)
        except ValueError:
            return JSONResponse(status_code=400, content={"success": False, "error": "Invalid startDate/endDate"})
        logs = await asyncio.to_thread(recorder.get_audit_report, start, end, user_id)
    else:
        logs = await asyncio.to_thread(recorder.get_command_history, user_id, limit)
    return {"success": True, "data": logs}


@router.get("/stats", response_model=AuditStatsResponse)
async def stats(services: ServiceContainer = Depends(get_services)):
    data = await asyncio.to_thread(services.audit_recorder.get_stats)
    return {"success": True, "data": data}


@router.get("/commands/{command_id}/status")
async def command_status(command_id: str, services: ServiceContainer = Depends(get_services)):
    """Look up a directly executed command in Insight Connect."""
    client = services.insight_connect_client
    if client is None:
        return JSONResponse(status_code=404, content={"success": False, "error": "Direct execution is not enabled"})
    try:
        status = await client.get_command_status(command_id)
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.error(f"❌ Command status lookup failed for {command_id}: {e}")
        return JSONResponse(status_code=502, content={"success": False, "error": str(e)})
    if status is None:
        return JSONResponse(status_code=404, content={"success": False, "error": f"Command {command_id} not found"})
    return {"success": True, "data": status}
