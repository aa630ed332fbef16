"""
Supervisor Location Verification - Geofence & Anti-Cheating

Proves a supervisor was physically at the school of a posting before
results for that posting may be uploaded.

Pipeline for one attempt:
1. Ownership guard (posting belongs to the caller, is active, school has GPS)
2. Geofence admission (haversine distance <= school radius)
3. Idempotency check (posting already has its log row)
4. Device collusion check (same device used by another supervisor this session)
5. Verification transaction (insert log row + flag posting, atomically)

Only successful attempts are written. A supervisor walking towards the
school produces rejections that leave no trace in the audit table.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tp_location.config import settings
from tp_location.context import RequestContext, RequestMetadata
from tp_location.db.database import unit_of_work
from tp_location.db.models import (
    InstitutionSchool, MasterSchool, SupervisionLocationLog, SupervisorPosting, User
)
from tp_location.errors import AlreadyVerifiedError, NotFoundError, ValidationError
from tp_location.services.fingerprint import generate_device_hash
from tp_location.services.geo import GeofenceResult, admit
from tp_location.utils import clock_drift_seconds, parse_client_timestamp, utcnow

logger = logging.getLogger(__name__)

# Text marker kept in validation_message for human readers of the audit log.
# Filtering and statistics use the device_shared column instead.
DEVICE_SHARED_MARKER = "also used by"

STATUS_VERIFIED = "verified"
STATUS_ALREADY_VERIFIED = "already_verified"
STATUS_OUTSIDE_GEOFENCE = "outside_geofence"


@dataclass(frozen=True)
class PostingContext:
    """A posting joined with the school data needed to verify it."""
    posting_id: int
    institution_id: int
    supervisor_id: int
    session_id: int
    institution_school_id: int
    visit_number: int
    group_number: int
    status: str
    school_name: str
    school_latitude: Optional[float]
    school_longitude: Optional[float]
    geofence_radius_m: int
    location_verified: bool
    location_verified_at: Optional[datetime]


@dataclass(frozen=True)
class SharedDeviceUser:
    supervisor_id: int
    name: str


@dataclass
class VerificationOutcome:
    """Terminal result of one verification attempt."""
    status: str
    message: str
    school_name: Optional[str] = None
    geofence: Optional[GeofenceResult] = None
    device_shared: bool = False
    shared_with: List[SharedDeviceUser] = field(default_factory=list)
    verified_at: Optional[datetime] = None
    log_id: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.status != STATUS_OUTSIDE_GEOFENCE

    def to_dict(self) -> Dict[str, Any]:
        if self.status == STATUS_ALREADY_VERIFIED:
            return {
                "success": True,
                "message": self.message,
                "data": {
                    "already_verified": True,
                    "verified_at": self.verified_at.isoformat() if self.verified_at else None,
                }
            }

        distance = round(self.geofence.distance_m)
        radius = self.geofence.radius_m
        data = {
            "is_within_geofence": self.geofence.within_fence,
            "distance_from_school_m": distance,
            "geofence_radius_m": radius,
            "school_name": self.school_name,
        }
        if self.status == STATUS_OUTSIDE_GEOFENCE:
            data["hint"] = (
                f"You need to be within {radius}m of the school. "
                f"Current distance: {distance}m"
            )
            return {"success": False, "message": self.message, "errorCode": "OUTSIDE_GEOFENCE", "data": data}

        data["device_shared"] = self.device_shared
        if self.device_shared:
            data["shared_with"] = [
                {"supervisor_id": u.supervisor_id, "name": u.name} for u in self.shared_with
            ]
        return {"success": True, "message": self.message, "data": data}


class LocationVerificationService:
    """
    Service for verifying supervisor presence at posted schools.

    Every call re-reads postings and school coordinates; nothing is cached
    between requests.
    """

    def verify(
        self,
        db: Session,
        ctx: RequestContext,
        posting_id: int,
        latitude: float,
        longitude: float,
        accuracy_meters: Optional[float] = None,
        altitude_meters: Optional[float] = None,
        timestamp_client: Optional[str] = None,
        device_info: Optional[Dict[str, Any]] = None,
        metadata: Optional[RequestMetadata] = None
    ) -> VerificationOutcome:
        """
        Run one verification attempt through the full pipeline.

        Raises NotFoundError / ValidationError before anything is written.
        Geofence misses are returned, not raised: they are an expected
        outcome of normal use.
        """
        metadata = metadata or RequestMetadata()

        # 1. Ownership guard, holding the posting row until the transaction ends
        posting = self.resolve_posting(db, ctx, posting_id, lock=True)

        # 2. Geofence
        geofence = admit(
            latitude,
            longitude,
            posting.school_latitude,
            posting.school_longitude,
            posting.geofence_radius_m
        )

        if not geofence.within_fence:
            logger.info(
                f"Supervisor {ctx.supervisor_id} outside geofence for posting {posting_id}: "
                f"{geofence.distance_m:.0f}m > {geofence.radius_m}m"
            )
            return VerificationOutcome(
                status=STATUS_OUTSIDE_GEOFENCE,
                message=(
                    "You are not within the school's geofence area. "
                    "Please move closer to the school and try again."
                ),
                school_name=posting.school_name,
                geofence=geofence
            )

        # 3. Idempotency
        existing = self.existing_verification(db, posting_id)
        if existing is not None:
            return self._already_verified(posting, existing)

        # 4. Device collusion (advisory)
        device_hash = generate_device_hash(device_info, metadata.user_agent)
        shared_with = self.shared_device_users(
            db,
            device_hash,
            excluding_supervisor_id=ctx.supervisor_id,
            session_id=posting.session_id
        )

        validation_message = f"Location verified. Distance from school: {geofence.distance_m:.0f}m"
        if shared_with:
            other_names = ", ".join(u.name for u in shared_with)
            validation_message += f" (Note: Device {DEVICE_SHARED_MARKER} {other_names} this session)"
            logger.warning(
                f"Device {device_hash} used by supervisor {ctx.supervisor_id} was also used by "
                f"{[u.supervisor_id for u in shared_with]} in session {posting.session_id}"
            )

        # 5. Transaction
        try:
            log_id, verified_at = self.record_verification(
                db,
                posting=posting,
                latitude=latitude,
                longitude=longitude,
                accuracy_meters=accuracy_meters,
                altitude_meters=altitude_meters,
                geofence=geofence,
                validation_message=validation_message,
                device_hash=device_hash,
                device_shared=bool(shared_with),
                device_info=device_info,
                timestamp_client=timestamp_client,
                metadata=metadata
            )
        except AlreadyVerifiedError:
            # lost a race with a concurrent request for the same posting
            existing = self.existing_verification(db, posting_id)
            return self._already_verified(posting, existing)

        logger.info(
            f"Location verified for posting {posting_id} by supervisor {ctx.supervisor_id} "
            f"({geofence.distance_m:.0f}m from {posting.school_name}), log {log_id}"
        )

        return VerificationOutcome(
            status=STATUS_VERIFIED,
            message=validation_message,
            school_name=posting.school_name,
            geofence=geofence,
            device_shared=bool(shared_with),
            shared_with=shared_with,
            verified_at=verified_at,
            log_id=log_id
        )

    def resolve_posting(
        self,
        db: Session,
        ctx: RequestContext,
        posting_id: int,
        lock: bool = False
    ) -> PostingContext:
        """
        Load the caller's posting with its school location and geofence.

        The lookup is keyed on (posting, institution, supervisor) together so
        a posting owned by someone else is indistinguishable from a missing one.
        """
        query = db.query(
            SupervisorPosting,
            MasterSchool.name,
            MasterSchool.latitude,
            MasterSchool.longitude,
            InstitutionSchool.geofence_radius_m
        ).join(
            InstitutionSchool, SupervisorPosting.institution_school_id == InstitutionSchool.id
        ).join(
            MasterSchool, InstitutionSchool.master_school_id == MasterSchool.id
        ).filter(
            SupervisorPosting.id == posting_id,
            SupervisorPosting.institution_id == ctx.institution_id,
            SupervisorPosting.supervisor_id == ctx.supervisor_id
        )
        if lock:
            query = query.with_for_update(of=SupervisorPosting)

        row = query.first()
        if row is None:
            raise NotFoundError("Posting not found or does not belong to you")

        posting, school_name, school_lat, school_lon, radius = row

        if posting.status != "active":
            raise ValidationError(
                "Cannot verify location for inactive posting",
                reason="POSTING_INACTIVE"
            )

        if school_lat is None or school_lon is None:
            raise ValidationError(
                f'School "{school_name}" does not have GPS coordinates configured. '
                "Please contact the TP office.",
                reason="SCHOOL_COORDINATES_MISSING"
            )

        return PostingContext(
            posting_id=posting.id,
            institution_id=posting.institution_id,
            supervisor_id=posting.supervisor_id,
            session_id=posting.session_id,
            institution_school_id=posting.institution_school_id,
            visit_number=posting.visit_number,
            group_number=posting.group_number,
            status=posting.status,
            school_name=school_name,
            school_latitude=school_lat,
            school_longitude=school_lon,
            geofence_radius_m=radius or settings.DEFAULT_GEOFENCE_RADIUS_M,
            location_verified=bool(posting.location_verified),
            location_verified_at=posting.location_verified_at
        )

    def existing_verification(
        self,
        db: Session,
        posting_id: int
    ) -> Optional[SupervisionLocationLog]:
        """The posting's log row, if it has been verified."""
        return db.query(SupervisionLocationLog).filter(
            SupervisionLocationLog.supervisor_posting_id == posting_id
        ).first()

    def shared_device_users(
        self,
        db: Session,
        device_hash: str,
        excluding_supervisor_id: int,
        session_id: int,
        limit: Optional[int] = None
    ) -> List[SharedDeviceUser]:
        """Other supervisors who verified from this device in the same session."""
        limit = limit or settings.SHARED_DEVICE_LOOKUP_LIMIT

        rows = db.query(
            SupervisionLocationLog.supervisor_id,
            User.name
        ).join(
            User, SupervisionLocationLog.supervisor_id == User.id
        ).filter(
            SupervisionLocationLog.device_id == device_hash,
            SupervisionLocationLog.supervisor_id != excluding_supervisor_id,
            SupervisionLocationLog.session_id == session_id
        ).distinct().order_by(User.name).limit(limit).all()

        return [SharedDeviceUser(supervisor_id=r[0], name=r[1]) for r in rows]

    def record_verification(
        self,
        db: Session,
        posting: PostingContext,
        latitude: float,
        longitude: float,
        geofence: GeofenceResult,
        validation_message: str,
        device_hash: str,
        device_shared: bool = False,
        accuracy_meters: Optional[float] = None,
        altitude_meters: Optional[float] = None,
        device_info: Optional[Dict[str, Any]] = None,
        timestamp_client: Optional[str] = None,
        metadata: Optional[RequestMetadata] = None
    ) -> tuple:
        """
        Insert the log row and flag the posting as one unit of work.

        Returns (log_id, verified_at). Raises AlreadyVerifiedError when the
        insert is rejected because the posting's log row already exists; any
        other failure, including other integrity violations, is re-raised
        after rollback. Either both writes land or neither does.
        """
        metadata = metadata or RequestMetadata()
        server_time = utcnow()
        client_time = parse_client_timestamp(timestamp_client)
        if timestamp_client and client_time is None:
            logger.debug(f"Ignoring unparseable client timestamp {timestamp_client!r}")

        log = SupervisionLocationLog(
            institution_id=posting.institution_id,
            supervisor_posting_id=posting.posting_id,
            supervisor_id=posting.supervisor_id,
            session_id=posting.session_id,
            institution_school_id=posting.institution_school_id,
            visit_number=posting.visit_number,
            latitude=latitude,
            longitude=longitude,
            accuracy_meters=accuracy_meters,
            altitude_meters=altitude_meters,
            distance_from_school_m=geofence.distance_m,
            geofence_radius_m=geofence.radius_m,
            is_within_geofence=True,
            validation_message=validation_message,
            device_shared=device_shared,
            device_id=device_hash,
            device_info=dict(device_info) if device_info is not None else None,
            ip_address=metadata.ip_address,
            user_agent=metadata.user_agent,
            session_token_hash=metadata.auth_hash,
            timestamp_client=client_time,
            timestamp_server=server_time,
            time_drift_seconds=clock_drift_seconds(client_time, server_time),
            created_at=server_time
        )

        try:
            with unit_of_work(db):
                self._insert_log(db, log)
                log_id = log.id
                self._mark_posting_verified(db, posting.posting_id, log_id, server_time)
        except IntegrityError as e:
            # only the unique posting constraint means someone else got there first
            if self.existing_verification(db, posting.posting_id) is None:
                logger.exception(f"Failed to record verification for posting {posting.posting_id}")
                raise
            logger.info(f"Concurrent verification for posting {posting.posting_id} lost the race: {e.orig}")
            raise AlreadyVerifiedError(posting.posting_id) from e
        except Exception:
            logger.exception(f"Failed to record verification for posting {posting.posting_id}")
            raise

        return log_id, server_time

    def _insert_log(self, db: Session, log: SupervisionLocationLog) -> None:
        db.add(log)
        db.flush()

    def _mark_posting_verified(
        self,
        db: Session,
        posting_id: int,
        log_id: int,
        verified_at: datetime
    ) -> None:
        updated = db.query(SupervisorPosting).filter(
            SupervisorPosting.id == posting_id
        ).update(
            {
                SupervisorPosting.location_verified: True,
                SupervisorPosting.location_verified_at: verified_at,
                SupervisorPosting.location_log_id: log_id,
            },
            synchronize_session=False
        )
        if updated != 1:
            raise RuntimeError(f"Posting {posting_id} disappeared during verification")

    def _already_verified(
        self,
        posting: PostingContext,
        existing: Optional[SupervisionLocationLog]
    ) -> VerificationOutcome:
        verified_at = posting.location_verified_at
        if verified_at is None and existing is not None:
            verified_at = existing.created_at
        return VerificationOutcome(
            status=STATUS_ALREADY_VERIFIED,
            message="Location already verified for this posting",
            school_name=posting.school_name,
            verified_at=verified_at,
            log_id=existing.id if existing is not None else None
        )


# Singleton instance
location_verification_service = LocationVerificationService()
