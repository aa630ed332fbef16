"""
Read-only views over postings and location verification logs
"""
import logging
import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from tp_location.config import settings
from tp_location.context import RequestContext
from tp_location.db.models import (
    AcademicSession, InstitutionSchool, MasterSchool,
    SupervisionLocationLog, SupervisorPosting, User
)
from tp_location.errors import NotFoundError, ValidationError
from tp_location.services.feature_service import feature_service
from tp_location.utils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogFilters:
    session_id: Optional[int] = None
    supervisor_id: Optional[int] = None
    school_id: Optional[int] = None
    device_shared: Optional[bool] = None


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


class LocationQueryService:
    """Status projections for supervisors and audit views for admins."""

    def postings_status(
        self,
        db: Session,
        ctx: RequestContext,
        session_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Active postings of the caller with their verification state."""
        has_coordinates = case(
            (MasterSchool.latitude.is_(None), False),
            (MasterSchool.longitude.is_(None), False),
            else_=True
        )

        query = db.query(
            SupervisorPosting,
            MasterSchool.name,
            MasterSchool.official_code,
            MasterSchool.latitude,
            MasterSchool.longitude,
            InstitutionSchool.distance_km,
            InstitutionSchool.geofence_radius_m,
            has_coordinates
        ).join(
            InstitutionSchool, SupervisorPosting.institution_school_id == InstitutionSchool.id
        ).join(
            MasterSchool, InstitutionSchool.master_school_id == MasterSchool.id
        ).filter(
            SupervisorPosting.institution_id == ctx.institution_id,
            SupervisorPosting.supervisor_id == ctx.supervisor_id,
            SupervisorPosting.status == "active"
        )

        if session_id:
            query = query.filter(SupervisorPosting.session_id == session_id)

        rows = query.order_by(
            MasterSchool.name,
            SupervisorPosting.group_number,
            SupervisorPosting.visit_number
        ).all()

        results = []
        for posting, name, code, lat, lon, distance_km, radius, coords in rows:
            verified = bool(posting.location_verified)
            coords = bool(coords)
            results.append({
                "posting_id": posting.id,
                "institution_school_id": posting.institution_school_id,
                "session_id": posting.session_id,
                "group_number": posting.group_number,
                "visit_number": posting.visit_number,
                "is_primary_posting": bool(posting.is_primary_posting),
                "location_verified": verified,
                "location_verified_at": _iso(posting.location_verified_at),
                "school_name": name,
                "school_code": code,
                "school_latitude": lat,
                "school_longitude": lon,
                "distance_km": distance_km,
                "geofence_radius_m": radius or settings.DEFAULT_GEOFENCE_RADIUS_M,
                "has_coordinates": coords,
                "can_verify_location": coords and not verified,
            })

        return results

    def check_verification(
        self,
        db: Session,
        ctx: RequestContext,
        posting_id: int
    ) -> Dict[str, Any]:
        """Whether one posting is verified, and so open for result upload."""
        row = db.query(
            SupervisorPosting.location_verified,
            SupervisorPosting.location_verified_at,
            MasterSchool.name
        ).join(
            InstitutionSchool, SupervisorPosting.institution_school_id == InstitutionSchool.id
        ).join(
            MasterSchool, InstitutionSchool.master_school_id == MasterSchool.id
        ).filter(
            SupervisorPosting.id == posting_id,
            SupervisorPosting.institution_id == ctx.institution_id,
            SupervisorPosting.supervisor_id == ctx.supervisor_id
        ).first()

        if row is None:
            raise NotFoundError("Posting not found")

        verified, verified_at, school_name = row
        verified = bool(verified)
        return {
            "posting_id": posting_id,
            "location_verified": verified,
            "location_verified_at": _iso(verified_at),
            "school_name": school_name,
            "can_upload_results": verified,
        }

    def admin_logs(
        self,
        db: Session,
        institution_id: int,
        filters: Optional[LogFilters] = None,
        page: int = 1,
        limit: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Paginated audit log, newest first.

        The total is counted over the same joins and predicate as the page
        itself, so rows whose supervisor, school or session is gone are left
        out of both.
        """
        filters = filters or LogFilters()
        page = max(1, page)
        limit = min(limit or settings.ADMIN_LOGS_DEFAULT_LIMIT, settings.ADMIN_LOGS_MAX_LIMIT)

        predicate = [SupervisionLocationLog.institution_id == institution_id]
        if filters.session_id:
            predicate.append(SupervisionLocationLog.session_id == filters.session_id)
        if filters.supervisor_id:
            predicate.append(SupervisionLocationLog.supervisor_id == filters.supervisor_id)
        if filters.school_id:
            predicate.append(SupervisionLocationLog.institution_school_id == filters.school_id)
        if filters.device_shared is not None:
            predicate.append(SupervisionLocationLog.device_shared.is_(filters.device_shared))

        total = self._joined_logs(
            db.query(func.count(SupervisionLocationLog.id)).select_from(SupervisionLocationLog)
        ).filter(*predicate).scalar() or 0

        rows = self._joined_logs(
            db.query(
                SupervisionLocationLog,
                User.name,
                User.email,
                MasterSchool.name,
                AcademicSession.name
            )
        ).filter(
            *predicate
        ).order_by(
            SupervisionLocationLog.created_at.desc(),
            SupervisionLocationLog.id.desc()
        ).limit(limit).offset((page - 1) * limit).all()

        data = [
            self._log_to_dict(log, supervisor_name, supervisor_email, school_name, session_name)
            for log, supervisor_name, supervisor_email, school_name, session_name in rows
        ]

        return {
            "data": data,
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "pages": math.ceil(total / limit),
            }
        }

    def admin_stats(
        self,
        db: Session,
        institution_id: int,
        session_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Summary of verifications over the last STATS_WINDOW_DAYS days."""
        window_days = settings.STATS_WINDOW_DAYS
        since = utcnow() - timedelta(days=window_days)

        predicate = [
            SupervisionLocationLog.institution_id == institution_id,
            SupervisionLocationLog.created_at >= since,
        ]
        if session_id:
            predicate.append(SupervisionLocationLog.session_id == session_id)

        stats = db.query(
            func.count(SupervisionLocationLog.id),
            func.count(func.distinct(SupervisionLocationLog.supervisor_id)),
            func.count(func.distinct(SupervisionLocationLog.institution_school_id)),
            func.count(func.distinct(SupervisionLocationLog.device_id)),
            func.avg(SupervisionLocationLog.distance_from_school_m),
            func.sum(case((SupervisionLocationLog.device_shared.is_(True), 1), else_=0))
        ).filter(*predicate).one()

        total, supervisors, schools, devices, avg_distance, shared = stats

        return {
            "total_verifications": total or 0,
            "unique_supervisors": supervisors or 0,
            "unique_schools": schools or 0,
            "unique_devices": devices or 0,
            "avg_distance_m": round(float(avg_distance or 0)),
            "shared_device_entries": int(shared or 0),
            "window_days": window_days,
        }

    def ensure_results_upload_allowed(
        self,
        db: Session,
        ctx: RequestContext,
        school_id: int,
        group_number: int,
        visit_number: int
    ) -> None:
        """
        Gate for result uploads: the matching active posting must be verified.

        This service exposes no upload route of its own. The results module
        of the wider backend calls this before it accepts a supervisor's
        upload for (school_id, group_number, visit_number), and lets the
        ValidationError propagate as its 400 response.

        Admin roles bypass the check, as do institutions without location
        tracking enabled. A supervisor with no matching posting is left to
        the result module's own validation.
        """
        if ctx.is_admin:
            return

        if not feature_service.is_feature_enabled(
            db, settings.LOCATION_TRACKING_FEATURE_KEY, ctx.institution_id
        ):
            return

        row = db.query(
            SupervisorPosting.location_verified,
            MasterSchool.name
        ).join(
            InstitutionSchool, SupervisorPosting.institution_school_id == InstitutionSchool.id
        ).join(
            MasterSchool, InstitutionSchool.master_school_id == MasterSchool.id
        ).filter(
            SupervisorPosting.institution_id == ctx.institution_id,
            SupervisorPosting.supervisor_id == ctx.supervisor_id,
            SupervisorPosting.institution_school_id == school_id,
            SupervisorPosting.group_number == group_number,
            SupervisorPosting.visit_number == visit_number,
            SupervisorPosting.status == "active"
        ).first()

        if row is not None and not row[0]:
            raise ValidationError(
                f'You must verify your location at "{row[1]}" (Group {group_number}, '
                f"Visit {visit_number}) before uploading results. "
                "Please record your location first.",
                reason="LOCATION_NOT_VERIFIED"
            )

    @staticmethod
    def _joined_logs(query):
        return query.join(
            User, SupervisionLocationLog.supervisor_id == User.id
        ).join(
            InstitutionSchool, SupervisionLocationLog.institution_school_id == InstitutionSchool.id
        ).join(
            MasterSchool, InstitutionSchool.master_school_id == MasterSchool.id
        ).join(
            AcademicSession, SupervisionLocationLog.session_id == AcademicSession.id
        )

    @staticmethod
    def _log_to_dict(
        log: SupervisionLocationLog,
        supervisor_name: str,
        supervisor_email: str,
        school_name: str,
        session_name: str
    ) -> Dict[str, Any]:
        return {
            "id": log.id,
            "institution_id": log.institution_id,
            "supervisor_posting_id": log.supervisor_posting_id,
            "supervisor_id": log.supervisor_id,
            "supervisor_name": supervisor_name,
            "supervisor_email": supervisor_email,
            "session_id": log.session_id,
            "session_name": session_name,
            "institution_school_id": log.institution_school_id,
            "school_name": school_name,
            "visit_number": log.visit_number,
            "latitude": log.latitude,
            "longitude": log.longitude,
            "accuracy_meters": log.accuracy_meters,
            "altitude_meters": log.altitude_meters,
            "distance_from_school_m": log.distance_from_school_m,
            "geofence_radius_m": log.geofence_radius_m,
            "is_within_geofence": bool(log.is_within_geofence),
            "validation_message": log.validation_message,
            "device_shared": bool(log.device_shared),
            "device_id": log.device_id,
            "device_info": log.device_info,
            "ip_address": log.ip_address,
            "user_agent": log.user_agent,
            "timestamp_client": _iso(log.timestamp_client),
            "timestamp_server": _iso(log.timestamp_server),
            "time_drift_seconds": log.time_drift_seconds,
            "created_at": _iso(log.created_at),
        }


# Singleton instance
location_query_service = LocationQueryService()
