"""
FastAPI dependencies for the location verification service

Identity comes from a Bearer JWT issued by the main backend. The claims are
turned into an explicit RequestContext here so services never read request
state themselves.
"""
import logging
from dataclasses import dataclass
from typing import Generator, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from tp_location.config import settings
from tp_location.context import (
    ADMIN_ROLES, ROLE_SUPER_ADMIN, SUPERVISOR_ROLES, RequestContext, RequestMetadata
)
from tp_location.db.database import SessionLocal
from tp_location.db.models import Institution
from tp_location.errors import AuthenticationError, AuthorizationError, FeatureDisabledError, NotFoundError
from tp_location.services.feature_service import feature_service
from tp_location.services.fingerprint import hash_auth_credential

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False, description="JWT Bearer token")


@dataclass(frozen=True)
class AuthenticatedUser:
    id: int
    role: str
    institution_id: Optional[int] = None
    name: Optional[str] = None


def get_db() -> Generator[Session, None, None]:
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def decode_access_token(token: str) -> AuthenticatedUser:
    """Validate a JWT and pull the caller's identity out of it."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired.", error_code="TOKEN_EXPIRED")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid JWT: {e}")
        raise AuthenticationError("Invalid token.", error_code="INVALID_TOKEN")
    
    try:
        user_id = int(payload["sub"])
        role = str(payload["role"])
    except (KeyError, TypeError, ValueError):
        raise AuthenticationError("Token contains invalid or missing claims.", error_code="INVALID_TOKEN")
    
    institution_id = payload.get("institution_id")
    return AuthenticatedUser(
        id=user_id,
        role=role,
        institution_id=int(institution_id) if institution_id is not None else None,
        name=payload.get("name")
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> AuthenticatedUser:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError()
    return decode_access_token(credentials.credentials)


def require_institution_access(
    institution_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> AuthenticatedUser:
    """Caller must belong to the institution in the path (super admins excepted)."""
    institution = db.query(Institution).filter(Institution.id == institution_id).first()
    if institution is None or institution.status != "active":
        raise NotFoundError("Institution not found")
    
    if user.role != ROLE_SUPER_ADMIN and user.institution_id != institution_id:
        logger.warning(f"User {user.id} denied access to institution {institution_id}")
        raise AuthorizationError("You do not have access to this institution.", error_code="INSTITUTION_ACCESS_DENIED")
    return user


def get_supervisor_context(
    institution_id: int,
    user: AuthenticatedUser = Depends(require_institution_access),
    db: Session = Depends(get_db)
) -> RequestContext:
    """Supervisor endpoints: supervisor role or above, tracking feature enabled."""
    if user.role not in SUPERVISOR_ROLES:
        raise AuthorizationError("Insufficient permissions.")
    
    feature_key = settings.LOCATION_TRACKING_FEATURE_KEY
    if not feature_service.is_feature_enabled(db, feature_key, institution_id):
        raise FeatureDisabledError(feature_key)
    
    return RequestContext(institution_id=institution_id, supervisor_id=user.id, role=user.role)


def get_admin_context(
    institution_id: int,
    user: AuthenticatedUser = Depends(require_institution_access)
) -> RequestContext:
    """Admin endpoints: head of teaching practice or super admin."""
    if user.role not in ADMIN_ROLES:
        raise AuthorizationError("Insufficient permissions.")
    return RequestContext(institution_id=institution_id, supervisor_id=user.id, role=user.role)


def get_request_metadata(request: Request) -> RequestMetadata:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None
    
    return RequestMetadata(
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent"),
        auth_hash=hash_auth_credential(request.headers.get("authorization"))
    )
