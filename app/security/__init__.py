# Security module
from app.security.rbac import Caller, Permission, Role, ensure_permission, has_permission

__all__ = [
    "Caller",
    "Permission",
    "Role",
    "ensure_permission",
    "has_permission",
]
