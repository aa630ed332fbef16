"""
SQLAlchemy ORM Models for the location verification service

Institutions, users, sessions, schools and postings are owned by the wider
teaching-practice backend; this service reads them and only ever writes
supervision_location_logs and the verification columns of supervisor_postings.
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Float, Boolean, DateTime,
    ForeignKey, JSON, UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from tp_location.db.database import Base
from tp_location.utils import utcnow

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Institution(Base):
    __tablename__ = "institutions"
    
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    subdomain = Column(String(100), unique=True)
    status = Column(String(20), default="active")  # active, suspended
    created_at = Column(DateTime, server_default=func.now())


class User(Base):
    __tablename__ = "users"
    
    id = Column(Integer, primary_key=True, index=True)
    institution_id = Column(Integer, ForeignKey("institutions.id"))
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    role = Column(String(50), nullable=False)  # super_admin, head_of_teaching_practice, supervisor, field_monitor, student
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())


class AcademicSession(Base):
    __tablename__ = "academic_sessions"
    
    id = Column(Integer, primary_key=True, index=True)
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False)
    name = Column(String(100), nullable=False)
    is_current = Column(Boolean, default=False)
    status = Column(String(20), default="active")
    created_at = Column(DateTime, server_default=func.now())


class MasterSchool(Base):
    """Central school registry. Coordinates may be missing."""
    __tablename__ = "master_schools"
    
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    official_code = Column(String(50))
    latitude = Column(Float)
    longitude = Column(Float)
    created_at = Column(DateTime, server_default=func.now())


class InstitutionSchool(Base):
    """An institution's use of a registry school, with its own geofence."""
    __tablename__ = "institution_schools"
    
    id = Column(Integer, primary_key=True, index=True)
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False)
    master_school_id = Column(Integer, ForeignKey("master_schools.id"), nullable=False)
    distance_km = Column(Float)
    geofence_radius_m = Column(Integer)  # NULL means the default radius
    created_at = Column(DateTime, server_default=func.now())
    
    __table_args__ = (
        UniqueConstraint('institution_id', 'master_school_id', name='unique_institution_school'),
    )
    
    master_school = relationship("MasterSchool")


class SupervisorPosting(Base):
    __tablename__ = "supervisor_postings"
    
    id = Column(Integer, primary_key=True, index=True)
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False)
    supervisor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    institution_school_id = Column(Integer, ForeignKey("institution_schools.id"), nullable=False)
    session_id = Column(Integer, ForeignKey("academic_sessions.id"), nullable=False)
    group_number = Column(Integer, default=1)
    visit_number = Column(Integer, default=1)
    is_primary_posting = Column(Boolean, default=True)
    status = Column(String(20), default="active")  # active, cancelled, completed
    # Location verification
    location_verified = Column(Boolean, nullable=False, default=False)
    location_verified_at = Column(DateTime)
    location_log_id = Column(BigInteger)  # the accepted supervision_location_logs row
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())
    
    __table_args__ = (
        Index('idx_sp_location_verified', 'supervisor_id', 'session_id', 'location_verified'),
    )
    
    institution_school = relationship("InstitutionSchool")


# ============================================================
# LOCATION VERIFICATION AUDIT LOG
# ============================================================

class SupervisionLocationLog(Base):
    """
    Proof of presence for one posting.
    
    Only successful geofence checks are stored, so is_within_geofence is
    always true. Rows are never updated or deleted.
    """
    __tablename__ = "supervision_location_logs"
    
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True)
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False)
    supervisor_posting_id = Column(Integer, ForeignKey("supervisor_postings.id"), nullable=False)
    supervisor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    session_id = Column(Integer, ForeignKey("academic_sessions.id"), nullable=False)
    institution_school_id = Column(Integer, ForeignKey("institution_schools.id"), nullable=False)
    visit_number = Column(Integer, nullable=False)
    # Location data
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy_meters = Column(Float)
    altitude_meters = Column(Float)
    # Geofence validation
    distance_from_school_m = Column(Float)
    geofence_radius_m = Column(Integer, nullable=False)  # snapshot at verification time
    is_within_geofence = Column(Boolean, nullable=False, default=True)
    validation_message = Column(String(500))
    device_shared = Column(Boolean, nullable=False, default=False)
    # Device fingerprinting
    device_id = Column(String(255))  # fingerprint hash
    device_info = Column(JSONType)
    ip_address = Column(String(45))
    user_agent = Column(Text)
    # Session correlation
    session_token_hash = Column(String(64))
    timestamp_client = Column(DateTime)
    timestamp_server = Column(DateTime, nullable=False, default=utcnow)
    time_drift_seconds = Column(Integer)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    
    __table_args__ = (
        UniqueConstraint('supervisor_posting_id', name='unique_sll_posting'),
        Index('idx_sll_supervisor', 'supervisor_id'),
        Index('idx_sll_session', 'session_id'),
        Index('idx_sll_school_visit', 'institution_school_id', 'visit_number'),
        Index('idx_sll_device', 'device_id', 'session_id'),
        Index('idx_sll_created', 'created_at'),
    )
    
    supervisor = relationship("User")
    institution_school = relationship("InstitutionSchool")
    session = relationship("AcademicSession")


# ============================================================
# FEATURE TOGGLES
# ============================================================

class FeatureToggle(Base):
    __tablename__ = "feature_toggles"
    
    id = Column(Integer, primary_key=True, index=True)
    feature_key = Column(String(100), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    is_enabled = Column(Boolean, default=True)
    default_enabled = Column(Boolean)
    scope = Column(String(50), default="institution")
    module = Column(String(50))
    created_at = Column(DateTime, server_default=func.now())


class InstitutionFeatureToggle(Base):
    __tablename__ = "institution_feature_toggles"
    
    id = Column(Integer, primary_key=True, index=True)
    institution_id = Column(Integer, ForeignKey("institutions.id"), nullable=False)
    feature_toggle_id = Column(Integer, ForeignKey("feature_toggles.id"), nullable=False)
    is_enabled = Column(Boolean, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    
    __table_args__ = (
        UniqueConstraint('institution_id', 'feature_toggle_id', name='unique_institution_feature'),
    )
