"""Acting-user resolution and contact lookup.

Authentication happens upstream; this module only reads an identity that
has already been established, either from the Flask session or from the
headers set by the fronting gateway.
"""

from __future__ import annotations

from typing import Dict, Iterable, Mapping, Protocol

from flask import request, session

from pharmamarket.domain.contracts import ActingUser, UserContact
from pharmamarket.errors import AuthRequired
from pharmamarket.policies import normalize_role


def build_acting_user(user_id, role, company_name=None, email=None) -> ActingUser:
    normalized_id = str(user_id or "").strip()
    normalized_role = normalize_role(role)
    if not normalized_id or not normalized_role:
        raise AuthRequired()
    return ActingUser(
        id=normalized_id,
        role=normalized_role,
        company_name=str(company_name or "").strip(),
        email=(str(email or "").strip().lower() or None),
    )


def resolve_acting_user() -> ActingUser:
    if session.get("user_id"):
        return build_acting_user(
            session.get("user_id"),
            session.get("user_role"),
            session.get("company_name"),
            session.get("user_email"),
        )
    return build_acting_user(
        request.headers.get("X-User-Id"),
        request.headers.get("X-User-Role"),
        request.headers.get("X-Company-Name"),
        request.headers.get("X-User-Email"),
    )


class UserDirectory(Protocol):
    def contact_for(self, user_id: str) -> UserContact | None:
        ...


class DictUserDirectory:
    def __init__(self, contacts: Mapping[str, UserContact] | None = None) -> None:
        self._contacts: Dict[str, UserContact] = dict(contacts or {})

    @classmethod
    def from_config(cls, raw: object) -> "DictUserDirectory":
        """Build from ``user_id:email[:company]`` entries separated by commas,
        semicolons or newlines, or from a list of such entries."""
        contacts = {}
        for contact in _parse_contacts(raw):
            contacts[contact.user_id] = contact
        return cls(contacts)

    def register(self, contact: UserContact) -> None:
        self._contacts[contact.user_id] = contact

    def contact_for(self, user_id: str) -> UserContact | None:
        return self._contacts.get(str(user_id or ""))


def _parse_contacts(raw: object) -> Iterable[UserContact]:
    if not raw:
        return []
    if isinstance(raw, str):
        entries = [chunk.strip() for chunk in raw.replace("\n", ",").replace(";", ",").split(",")]
    elif isinstance(raw, (list, tuple, set)):
        entries = [str(item).strip() for item in raw]
    else:
        return []

    contacts = []
    for entry in entries:
        parts = [part.strip() for part in entry.split(":")] if entry else []
        if len(parts) < 2 or not parts[0] or not parts[1]:
            continue
        contacts.append(
            UserContact(
                user_id=parts[0],
                email=parts[1].lower(),
                company_name=parts[2] if len(parts) > 2 else "",
            )
        )
    return contacts
