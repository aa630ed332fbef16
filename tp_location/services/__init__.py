"""
Services package - Business logic layer
"""
from tp_location.services.feature_service import feature_service
from tp_location.services.location_verification_service import location_verification_service
from tp_location.services.location_query_service import location_query_service

__all__ = [
    "feature_service",
    "location_verification_service",
    "location_query_service"
]
