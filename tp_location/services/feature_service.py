"""
Feature toggle lookups
"""
import logging

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from tp_location.db.models import FeatureToggle, InstitutionFeatureToggle

logger = logging.getLogger(__name__)


class FeatureService:
    """Per-institution feature flags, read fresh on every call."""
    
    def is_feature_enabled(self, db: Session, feature_key: str, institution_id: int) -> bool:
        """
        Institution override wins, then the toggle's default_enabled,
        then its global is_enabled. Unknown keys are disabled.
        """
        if not feature_key or not institution_id:
            return False
        
        enabled = db.query(
            func.coalesce(
                InstitutionFeatureToggle.is_enabled,
                FeatureToggle.default_enabled,
                FeatureToggle.is_enabled
            )
        ).select_from(FeatureToggle).outerjoin(
            InstitutionFeatureToggle,
            and_(
                InstitutionFeatureToggle.feature_toggle_id == FeatureToggle.id,
                InstitutionFeatureToggle.institution_id == institution_id
            )
        ).filter(
            FeatureToggle.feature_key == feature_key
        ).scalar()
        
        logger.debug(f"Feature {feature_key} for institution {institution_id}: {enabled}")
        return bool(enabled)


# Singleton instance
feature_service = FeatureService()
