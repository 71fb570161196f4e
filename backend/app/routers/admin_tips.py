"""
backend/app/routers/admin_tips.py

Purpose:
    Admin write endpoints for daily tips: create a date's payload (optionally
    overwriting), set a tip's result, delete a tip. Guarded by a shared key in
    the X-Admin-Key header.

Dependencies:
    - app.services.tip_repository
    - app.config
"""

import json
import logging
import secrets

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.config import settings
from app.models.tips import DeleteTipRequest, UpdateResultRequest
from app.routers.tips import get_tip_repository
from app.services.tip_repository import TipRepository

logger = logging.getLogger("dailytips.admin")

router = APIRouter(prefix="/api/tips", tags=["admin-tips"])


async def verify_admin_key(x_admin_key: str = Header(default="")):
    """Verify the shared admin key sent by the admin UI or generation pipeline."""
    if not settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API key not configured on server.",
        )
    if not secrets.compare_digest(x_admin_key, settings.ADMIN_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin API key.",
        )


@router.post("/create", status_code=status.HTTP_201_CREATED)
async def create_daily_tips(
    request: Request,
    overwrite: bool = False,
    repo: TipRepository = Depends(get_tip_repository),
    _=Depends(verify_admin_key),
):
    """Validate and store a daily payload. The body is taken raw so every issue is reported."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(status_code=400, content={"detail": "Invalid JSON format."})

    result = await repo.save(body, overwrite=overwrite)
    action = "replaced" if result.replaced else "created"
    logger.info("Admin %s tips for %s (%d tips)", action, result.date_iso, result.tip_count)
    return {
        "success": True,
        "message": f"Tips for {result.date_iso} {action} successfully.",
        "data": result.to_wire(),
    }


@router.post("/update-result")
async def update_tip_result(
    body: UpdateResultRequest,
    repo: TipRepository = Depends(get_tip_repository),
    _=Depends(verify_admin_key),
):
    outcome = await repo.update_result(body.tip_id, body.result, date_iso=body.date)
    return {
        "success": True,
        "message": f"Tip {outcome.tip_id} result set to {outcome.new_result.value}.",
        "data": outcome.to_wire(),
    }


@router.delete("/delete")
async def delete_tip(
    body: DeleteTipRequest,
    repo: TipRepository = Depends(get_tip_repository),
    _=Depends(verify_admin_key),
):
    outcome = await repo.delete_tip(body.tip_id)
    return {
        "success": True,
        "message": f"Tip {outcome.tip_id} deleted.",
        "data": outcome.to_wire(),
    }
