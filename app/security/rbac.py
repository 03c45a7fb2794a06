"""
Role-Based Access Control (RBAC) Module

Workshop roles and the quote workflow permissions they grant. The caller's
identity comes from the access token (see app.api.deps.get_current_caller)
and is passed explicitly into every workflow function, which re-checks the
permission it needs so the rules hold outside HTTP too.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Set
import logging

from app.exceptions import ForbiddenError

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Workshop user roles."""
    ADMIN = "admin"
    MANAGER = "manager"
    RECEPTIONIST = "receptionist"
    MECHANIC = "mechanic"


class Permission(str, Enum):
    """Fine-grained permissions."""
    CREATE_QUOTE = "create_quote"
    VIEW_QUOTES = "view_quotes"
    EDIT_QUOTE = "edit_quote"
    SUBMIT_QUOTE = "submit_quote"
    CLAIM_QUOTE = "claim_quote"
    DIAGNOSE_QUOTE = "diagnose_quote"
    ASSIGN_MECHANIC = "assign_mechanic"
    SEND_QUOTE = "send_quote"
    APPROVE_QUOTE = "approve_quote"
    CONVERT_QUOTE = "convert_quote"
    VIEW_SERVICE_ORDERS = "view_service_orders"


_FRONT_DESK = {
    Permission.CREATE_QUOTE,
    Permission.VIEW_QUOTES,
    Permission.EDIT_QUOTE,
    Permission.SUBMIT_QUOTE,
    Permission.ASSIGN_MECHANIC,
    Permission.SEND_QUOTE,
    Permission.APPROVE_QUOTE,
    Permission.CONVERT_QUOTE,
    Permission.VIEW_SERVICE_ORDERS,
}

# Role-to-permissions mapping
ROLE_PERMISSIONS: dict[Role, Set[Permission]] = {
    Role.ADMIN: set(_FRONT_DESK),
    Role.MANAGER: set(_FRONT_DESK),
    Role.RECEPTIONIST: set(_FRONT_DESK),
    Role.MECHANIC: {
        Permission.CREATE_QUOTE,
        Permission.VIEW_QUOTES,
        Permission.CLAIM_QUOTE,
        Permission.DIAGNOSE_QUOTE,
        Permission.VIEW_SERVICE_ORDERS,
    },
}


@dataclass(frozen=True)
class Caller:
    """Authenticated actor of a workflow operation."""

    user_id: str
    tenant_id: str
    role: Role

    @property
    def is_mechanic(self) -> bool:
        return self.role == Role.MECHANIC


def get_permissions(caller: Caller) -> Set[Permission]:
    """Get all permissions for a caller based on their role."""
    return ROLE_PERMISSIONS.get(caller.role, set())


def has_permission(caller: Caller, permission: Permission) -> bool:
    """Check if caller has a specific permission."""
    return permission in get_permissions(caller)


def ensure_permission(caller: Caller, permission: Permission) -> None:
    """Raise ForbiddenError unless the caller's role grants `permission`."""
    if not has_permission(caller, permission):
        logger.warning(
            f"Permission denied: user {caller.user_id} ({caller.role.value}) lacks {permission.value}",
            extra={"user_id": caller.user_id, "tenant_id": caller.tenant_id, "permission": permission.value},
        )
        raise ForbiddenError(f"Permission denied: requires {permission.value}")
