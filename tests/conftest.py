"""
Fixtures for location verification tests.

Every test gets a fresh in-memory SQLite database seeded with two
institutions, a handful of users, one session and a few postings.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("APP_ENV", "test")

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tp_location.config import settings
from tp_location.context import RequestContext
from tp_location.db.database import Base
from tp_location.db.models import (
    AcademicSession, FeatureToggle, Institution, InstitutionFeatureToggle,
    InstitutionSchool, MasterSchool, SupervisorPosting, User
)
from tp_location.dependencies import get_db
from tp_location.main import app

from helpers import SCHOOL_LAT, SCHOOL_LON


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def world(db_session):
    """Seed reference data and return the ids tests refer to."""
    db = db_session
    db.add_all([
        Institution(id=1, name="Federal College of Education", subdomain="fce", status="active"),
        Institution(id=2, name="State University", subdomain="su", status="active"),
    ])
    db.add_all([
        User(id=10, institution_id=1, name="Ada Okafor", email="ada@fce.test", role="supervisor"),
        User(id=11, institution_id=1, name="Bola Ahmed", email="bola@fce.test", role="supervisor"),
        User(id=20, institution_id=1, name="Head TP", email="head@fce.test", role="head_of_teaching_practice"),
        User(id=30, institution_id=1, name="Student One", email="student@fce.test", role="student"),
        User(id=40, institution_id=2, name="Chidi Eze", email="chidi@su.test", role="supervisor"),
    ])
    db.add_all([
        AcademicSession(id=1, institution_id=1, name="2025/2026", is_current=True, status="active"),
        AcademicSession(id=2, institution_id=1, name="2024/2025", is_current=False, status="active"),
        AcademicSession(id=3, institution_id=2, name="2025/2026", is_current=True, status="active"),
    ])
    db.add_all([
        MasterSchool(id=100, name="Alpha Grammar School", official_code="AGS", latitude=SCHOOL_LAT, longitude=SCHOOL_LON),
        MasterSchool(id=101, name="Zulu Primary School", official_code="ZPS", latitude=None, longitude=None),
    ])
    db.add_all([
        InstitutionSchool(id=200, institution_id=1, master_school_id=100, distance_km=12.5, geofence_radius_m=None),
        InstitutionSchool(id=201, institution_id=1, master_school_id=101, distance_km=30.0, geofence_radius_m=250),
        InstitutionSchool(id=202, institution_id=2, master_school_id=100, distance_km=5.0, geofence_radius_m=100),
    ])
    db.add_all([
        # Ada
        SupervisorPosting(id=1, institution_id=1, supervisor_id=10, institution_school_id=200, session_id=1,
                          group_number=1, visit_number=1, status="active"),
        SupervisorPosting(id=2, institution_id=1, supervisor_id=10, institution_school_id=200, session_id=1,
                          group_number=1, visit_number=2, status="active"),
        SupervisorPosting(id=3, institution_id=1, supervisor_id=10, institution_school_id=200, session_id=1,
                          group_number=2, visit_number=1, status="cancelled"),
        SupervisorPosting(id=4, institution_id=1, supervisor_id=10, institution_school_id=201, session_id=1,
                          group_number=1, visit_number=1, status="active"),
        SupervisorPosting(id=5, institution_id=1, supervisor_id=10, institution_school_id=200, session_id=2,
                          group_number=1, visit_number=1, status="active"),
        # Bola
        SupervisorPosting(id=6, institution_id=1, supervisor_id=11, institution_school_id=200, session_id=1,
                          group_number=3, visit_number=1, status="active"),
        SupervisorPosting(id=7, institution_id=1, supervisor_id=11, institution_school_id=200, session_id=2,
                          group_number=3, visit_number=1, status="active"),
        # Chidi, other institution
        SupervisorPosting(id=8, institution_id=2, supervisor_id=40, institution_school_id=202, session_id=3,
                          group_number=1, visit_number=1, status="active"),
    ])
    toggle = FeatureToggle(
        id=1,
        feature_key=settings.LOCATION_TRACKING_FEATURE_KEY,
        name="Supervisor Location Tracking",
        is_enabled=True,
        default_enabled=False,
    )
    db.add(toggle)
    db.add(InstitutionFeatureToggle(institution_id=1, feature_toggle_id=1, is_enabled=True))
    db.commit()

    return SimpleNamespace(
        institution_id=1,
        other_institution_id=2,
        ada=10,
        bola=11,
        head=20,
        student=30,
        chidi=40,
        session_id=1,
        old_session_id=2,
        school_id=200,
        no_coords_school_id=201,
        posting=1,
        second_visit=2,
        inactive_posting=3,
        no_coords_posting=4,
        old_session_posting=5,
        bola_posting=6,
        bola_old_session_posting=7,
        chidi_posting=8,
    )


@pytest.fixture
def ada_ctx(world):
    return RequestContext(institution_id=world.institution_id, supervisor_id=world.ada)


@pytest.fixture
def bola_ctx(world):
    return RequestContext(institution_id=world.institution_id, supervisor_id=world.bola)


@pytest.fixture
def client(session_factory, world):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

