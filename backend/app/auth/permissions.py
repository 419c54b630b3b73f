"""
Action constants: the exhaustive list of things a principal can attempt.

Each action follows the pattern `resource:action`. Whether a given principal
may perform one against a given record is decided solely by
`app.auth.policy.authorize`.
"""

from enum import Enum


class Action(str, Enum):
    # ── Complaints ──
    CREATE_COMPLAINT = "complaints:create"
    READ_COMPLAINT = "complaints:read"
    TRANSITION_STATUS = "complaints:transition"
    ADD_RESPONSE = "complaints:respond"

    # ── Reference directory ──
    READ_REFERENCE_DATA = "reference:read"
    MANAGE_AGENCY = "agencies:manage"
    MANAGE_CATEGORY = "categories:manage"

    # ── Admin ──
    MANAGE_USERS = "admin:users"
    READ_AUDIT = "audit:read"


# Actions evaluated against a specific complaint row
COMPLAINT_SCOPED: frozenset[Action] = frozenset({
    Action.READ_COMPLAINT,
    Action.TRANSITION_STATUS,
    Action.ADD_RESPONSE,
})
