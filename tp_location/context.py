"""
Explicit request context passed into the services
"""
from dataclasses import dataclass
from typing import Optional

ROLE_SUPER_ADMIN = "super_admin"
ROLE_HEAD_OF_TP = "head_of_teaching_practice"
ROLE_SUPERVISOR = "supervisor"
ROLE_FIELD_MONITOR = "field_monitor"
ROLE_STUDENT = "student"

ADMIN_ROLES = frozenset({ROLE_SUPER_ADMIN, ROLE_HEAD_OF_TP})
SUPERVISOR_ROLES = frozenset({ROLE_SUPER_ADMIN, ROLE_HEAD_OF_TP, ROLE_SUPERVISOR})


@dataclass(frozen=True)
class RequestContext:
    """Who is calling and for which institution."""
    institution_id: int
    supervisor_id: int
    role: str = ROLE_SUPERVISOR
    
    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


@dataclass(frozen=True)
class RequestMetadata:
    """Transport details stored with a verification for later correlation."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    auth_hash: Optional[str] = None
