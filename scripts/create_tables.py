#!/usr/bin/env python3
"""
Database Setup Script for Location Verification Tables

Creates the tables this service needs (if missing) and registers the
supervisor_location_tracking feature toggle, disabled by default so each
institution opts in.

Usage:
    python scripts/create_tables.py
"""
import logging
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tp_location.config import settings
from tp_location.db import models
from tp_location.db.database import Base, SessionLocal, engine, unit_of_work

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger("create_tables")


def register_feature_toggle(db) -> bool:
    """Insert the location tracking toggle once. Returns True when created."""
    key = settings.LOCATION_TRACKING_FEATURE_KEY
    existing = db.query(models.FeatureToggle).filter(models.FeatureToggle.feature_key == key).first()
    if existing:
        return False
    
    with unit_of_work(db):
        db.add(models.FeatureToggle(
            feature_key=key,
            name="Supervisor Location Tracking",
            description=(
                "Require supervisors to verify their GPS location at school before "
                "uploading results. Uses geofencing to validate physical presence."
            ),
            is_enabled=True,
            default_enabled=False,
            scope="institution",
            module="supervision",
        ))
    return True


def main() -> int:
    logger.info("Creating tables...")
    Base.metadata.create_all(bind=engine)
    for table in Base.metadata.sorted_tables:
        logger.info(f"  [OK] {table.name}")
    
    db = SessionLocal()
    try:
        if register_feature_toggle(db):
            logger.info(f"Registered feature toggle {settings.LOCATION_TRACKING_FEATURE_KEY}")
        else:
            logger.info("Feature toggle already registered")
    finally:
        db.close()
    
    return 0


if __name__ == "__main__":
    sys.exit(main())
