"""
Location API - Supervisor Location Verification Endpoints

Provides:
- POST /{institution_id}/location/verify: Verify GPS location for a posting
- GET /{institution_id}/location/my-postings: Caller's postings with verification status
- GET /{institution_id}/location/check/{posting_id}: Verification status of one posting
- GET /{institution_id}/location/admin/logs: Paginated verification audit log
- GET /{institution_id}/location/admin/stats: Verification statistics summary
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from tp_location.context import RequestContext, RequestMetadata
from tp_location.dependencies import (
    get_admin_context, get_db, get_request_metadata, get_supervisor_context
)
from tp_location.services.location_query_service import LogFilters, location_query_service
from tp_location.services.location_verification_service import location_verification_service

logger = logging.getLogger(__name__)
router = APIRouter()


# ============================================================
# REQUEST MODELS
# ============================================================

class DeviceInfo(BaseModel):
    """Client-reported device details used for fingerprinting"""
    device_id: Optional[str] = None
    model: Optional[str] = None
    os: Optional[str] = None
    browser: Optional[str] = None


class VerifyLocationRequest(BaseModel):
    """Request model for a location verification attempt"""
    posting_id: int = Field(..., gt=0, description="ID of the supervisor posting")
    latitude: float = Field(..., ge=-90, le=90, description="GPS latitude")
    longitude: float = Field(..., ge=-180, le=180, description="GPS longitude")
    accuracy_meters: Optional[float] = Field(None, ge=0, description="Reported GPS accuracy")
    altitude_meters: Optional[float] = Field(None, description="Reported GPS altitude")
    timestamp_client: Optional[str] = Field(None, description="Client clock, ISO-8601")
    device_info: Optional[DeviceInfo] = None

    class Config:
        json_schema_extra = {
            "example": {
                "posting_id": 42,
                "latitude": 6.5244,
                "longitude": 3.3792,
                "accuracy_meters": 12.5,
                "timestamp_client": "2026-03-02T09:15:00Z",
                "device_info": {
                    "device_id": "a1b2c3",
                    "model": "Pixel 7",
                    "os": "Android 14"
                }
            }
        }


# ============================================================
# SUPERVISOR ENDPOINTS
# ============================================================

@router.post("/{institution_id}/location/verify")
async def verify_location(
    institution_id: int,
    request: VerifyLocationRequest,
    ctx: RequestContext = Depends(get_supervisor_context),
    metadata: RequestMetadata = Depends(get_request_metadata),
    db: Session = Depends(get_db)
):
    """
    Verify the supervisor's GPS location for a posting.

    A position outside the school's geofence returns 400 and is not
    recorded. Repeating a verification for an already verified posting
    succeeds with already_verified set.
    """
    outcome = location_verification_service.verify(
        db,
        ctx,
        posting_id=request.posting_id,
        latitude=request.latitude,
        longitude=request.longitude,
        accuracy_meters=request.accuracy_meters,
        altitude_meters=request.altitude_meters,
        timestamp_client=request.timestamp_client,
        device_info=request.device_info.model_dump(exclude_none=True) if request.device_info else None,
        metadata=metadata
    )

    if not outcome.success:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=outcome.to_dict())
    return outcome.to_dict()


@router.get("/{institution_id}/location/my-postings")
async def get_my_postings_location_status(
    institution_id: int,
    session_id: Optional[int] = Query(None, description="Limit to one academic session"),
    ctx: RequestContext = Depends(get_supervisor_context),
    db: Session = Depends(get_db)
):
    """Get all active postings of the caller with their location verification status."""
    postings = location_query_service.postings_status(db, ctx, session_id=session_id)
    return {"success": True, "data": postings}


@router.get("/{institution_id}/location/check/{posting_id}")
async def check_location_verification(
    institution_id: int,
    posting_id: int,
    ctx: RequestContext = Depends(get_supervisor_context),
    db: Session = Depends(get_db)
):
    """Check whether location is verified for a posting (and results may be uploaded)."""
    result = location_query_service.check_verification(db, ctx, posting_id)
    return {"success": True, "data": result}


# ============================================================
# ADMIN ENDPOINTS
# ============================================================

@router.get("/{institution_id}/location/admin/logs")
async def get_location_logs(
    institution_id: int,
    session_id: Optional[int] = Query(None),
    supervisor_id: Optional[int] = Query(None),
    school_id: Optional[int] = Query(None, description="Institution school ID"),
    device_shared: Optional[bool] = Query(None, description="Only entries with (or without) device sharing"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    ctx: RequestContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    """Get location verification logs for review."""
    filters = LogFilters(
        session_id=session_id,
        supervisor_id=supervisor_id,
        school_id=school_id,
        device_shared=device_shared
    )
    result = location_query_service.admin_logs(
        db, ctx.institution_id, filters=filters, page=page, limit=limit
    )
    return {"success": True, **result}


@router.get("/{institution_id}/location/admin/stats")
async def get_location_stats(
    institution_id: int,
    session_id: Optional[int] = Query(None),
    ctx: RequestContext = Depends(get_admin_context),
    db: Session = Depends(get_db)
):
    """Get location verification statistics for the recent window."""
    stats = location_query_service.admin_stats(db, ctx.institution_id, session_id=session_id)
    return {"success": True, "data": stats}
