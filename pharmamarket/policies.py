from __future__ import annotations

from typing import Iterable, Set

from pharmamarket.domain.contracts import ActingUser
from pharmamarket.errors import PermissionError as AppPermissionError


ROLE_PHARMACIST = "pharmacist"
ROLE_WHOLESALER = "wholesaler"
ROLE_ADMIN = "admin"

VALID_ROLES: Set[str] = {ROLE_PHARMACIST, ROLE_WHOLESALER, ROLE_ADMIN}


def normalize_role(role: str | None, default: str = "") -> str:
    normalized = str(role or "").strip().lower()
    if normalized in VALID_ROLES:
        return normalized
    return default if default in VALID_ROLES else ""


def normalize_allowed_roles(roles: Iterable[str]) -> Set[str]:
    allowed: Set[str] = set()
    for role in roles:
        normalized = normalize_role(role)
        if normalized:
            allowed.add(normalized)
    return allowed


def has_any_role(role: str | None, allowed_roles: Iterable[str]) -> bool:
    normalized_role = normalize_role(role)
    allowed = normalize_allowed_roles(allowed_roles)
    return not allowed or normalized_role in allowed


def require_roles(user: ActingUser, *allowed_roles: str) -> ActingUser:
    if has_any_role(user.role, allowed_roles):
        return user
    raise AppPermissionError(
        code="permission_denied",
        message_key="permission_denied",
        http_status=403,
        critical=False,
        payload={"required_roles": sorted(normalize_allowed_roles(allowed_roles))},
    )


def require_owner(user: ActingUser, owner_id: str) -> ActingUser:
    """Write access is reserved to the record's creator; admins are let through."""
    if user.is_admin or user.id == owner_id:
        return user
    raise AppPermissionError(code="permission_denied", critical=False)
