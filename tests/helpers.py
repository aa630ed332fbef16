"""
Shared helpers for location verification tests.
"""
from datetime import datetime, timedelta, timezone

import jwt

from tp_location.config import settings
from tp_location.db.models import SupervisionLocationLog, SupervisorPosting

SCHOOL_LAT = 40.0
SCHOOL_LON = -74.0

# ~33.4m north of the school
NEAR_LAT = 40.0003
# ~556m north of the school
FAR_LAT = 40.0050


def make_token(user_id, role, institution_id, expires_in=timedelta(hours=1)):
    payload = {
        "sub": str(user_id),
        "role": role,
        "institution_id": institution_id,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def auth_headers(user_id, role="supervisor", institution_id=1, user_agent="TestAgent/1.0"):
    return {
        "Authorization": f"Bearer {make_token(user_id, role, institution_id)}",
        "User-Agent": user_agent,
    }


def log_count(db, posting_id=None):
    db.expire_all()
    query = db.query(SupervisionLocationLog)
    if posting_id is not None:
        query = query.filter(SupervisionLocationLog.supervisor_posting_id == posting_id)
    return query.count()


def get_posting(db, posting_id):
    db.expire_all()
    return db.get(SupervisorPosting, posting_id)
