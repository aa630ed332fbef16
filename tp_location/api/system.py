"""
System Router - Health checks
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tp_location import __version__
from tp_location.dependencies import get_db

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "TP Location Verification",
        "version": __version__,
        "status": "running"
    }


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint.
    Reports database reachability; the service has no other backing stores.
    """
    database_status = "healthy"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        database_status = "unhealthy"
    
    return {
        "status": "healthy" if database_status == "healthy" else "degraded",
        "database": database_status,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
