"""
Role definitions: which actions each role may ever attempt.

This is the coarse capability layer: a role missing an action here is denied
outright. Row-level scope (own complaint, own agency) is layered on top by
`app.auth.policy`.

    CITIZEN          files complaints, reads their own
    AGENCY_OFFICIAL  works the complaints routed to their agency
    ADMIN            manages the directory and users, reads everything
"""

from enum import Enum

from app.auth.permissions import Action


class Role(str, Enum):
    CITIZEN = "CITIZEN"
    AGENCY_OFFICIAL = "AGENCY_OFFICIAL"
    ADMIN = "ADMIN"


# ── Citizen: submit and follow own complaints ──
_CITIZEN_ACTIONS: set[Action] = {
    Action.CREATE_COMPLAINT,
    Action.READ_COMPLAINT,
    Action.READ_REFERENCE_DATA,
}

# ── Agency official: review, transition and answer agency complaints ──
_OFFICIAL_ACTIONS: set[Action] = {
    Action.READ_COMPLAINT,
    Action.TRANSITION_STATUS,
    Action.ADD_RESPONSE,
    Action.READ_REFERENCE_DATA,
}

# ── Admin: oversight is read/reporting only on complaints ──
_ADMIN_ACTIONS: set[Action] = {
    Action.READ_COMPLAINT,
    Action.READ_REFERENCE_DATA,
    Action.MANAGE_AGENCY,
    Action.MANAGE_CATEGORY,
    Action.MANAGE_USERS,
    Action.READ_AUDIT,
}

# Granted to ADMIN only when settings.admin_write_access is on
ADMIN_WRITE_ACTIONS: frozenset[Action] = frozenset({
    Action.TRANSITION_STATUS,
    Action.ADD_RESPONSE,
})


ROLE_ACTIONS: dict[Role, set[Action]] = {
    Role.CITIZEN: _CITIZEN_ACTIONS,
    Role.AGENCY_OFFICIAL: _OFFICIAL_ACTIONS,
    Role.ADMIN: _ADMIN_ACTIONS,
}
