"""
Permission evaluator: the single place where allow/deny is decided.

    authorize(principal, action, resource) -> Allow | Deny(reason)

Decision table (anything not listed as allowed is denied):

    Action               CITIZEN             AGENCY_OFFICIAL        ADMIN
    CREATE_COMPLAINT     allow               deny                   deny
    READ_COMPLAINT       own submissions     own agency             all
    TRANSITION_STATUS    deny                own agency             deny*
    ADD_RESPONSE         deny                own agency             deny*
    MANAGE_AGENCY/_CAT.  deny                deny                   allow
    READ_REFERENCE_DATA  allow               allow                  allow

    * allowed on every complaint when admin write access is enabled

`authorize` is pure. `require` is the enforcing wrapper used by services: it
logs and counts denials and raises ForbiddenError. `require_visible` does the
same for reads but reports the denial as a missing complaint. `complaint_scope` is the
same READ_COMPLAINT rule expressed as a SQL row filter for listings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Protocol, Union

from sqlalchemy import ColumnElement, false, true

from app.auth.context import Principal
from app.auth.permissions import Action, COMPLAINT_SCOPED
from app.auth.roles import Role, ROLE_ACTIONS, ADMIN_WRITE_ACTIONS
from app.config import settings
from app.errors import ForbiddenError, NotFoundError
from app.middleware.metrics import authorization_denials_total
from app.models import Complaint

logger = logging.getLogger(__name__)


class ComplaintResource(Protocol):
    submitter_id: str
    agency_id: int


@dataclass(frozen=True)
class ComplaintRef:
    """Minimal complaint identity needed to scope a check."""
    submitter_id: str
    agency_id: int


@dataclass(frozen=True)
class Allow:
    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class Deny:
    reason: str
    scoped: bool = False  # role may act, but not on this row

    def __bool__(self) -> bool:
        return False


Decision = Union[Allow, Deny]

ALLOW = Allow()


# ── Per-role complaint scope ─────────────────────────────────────────────────

@dataclass(frozen=True)
class _Scope:
    matches: Callable[[Principal, Any], bool]
    clause: Callable[[Principal], ColumnElement[bool]]


_SCOPES: dict[Role, _Scope] = {
    Role.CITIZEN: _Scope(
        matches=lambda p, c: c.submitter_id == p.id,
        clause=lambda p: Complaint.submitter_id == p.id,
    ),
    Role.AGENCY_OFFICIAL: _Scope(
        matches=lambda p, c: p.agency_id is not None and c.agency_id == p.agency_id,
        clause=lambda p: (
            Complaint.agency_id == p.agency_id if p.agency_id is not None else false()
        ),
    ),
    Role.ADMIN: _Scope(
        matches=lambda p, c: True,
        clause=lambda p: true(),
    ),
}


def authorize(
    principal: Principal,
    action: Action,
    resource: ComplaintResource | None = None,
    *,
    admin_write_access: bool = False,
) -> Decision:
    """Decide whether `principal` may perform `action` on `resource`."""
    granted = ROLE_ACTIONS[principal.role]
    if principal.role == Role.ADMIN and admin_write_access:
        granted = granted | ADMIN_WRITE_ACTIONS

    if action not in granted:
        return Deny(f"{principal.role.value} may not perform {action.value}")

    if action not in COMPLAINT_SCOPED:
        return ALLOW

    if resource is None:
        return Deny(f"{action.value} requires a complaint")

    if _SCOPES[principal.role].matches(principal, resource):
        return ALLOW
    return Deny(f"Complaint is outside the scope of {principal.actor}", scoped=True)


def require(
    principal: Principal,
    action: Action,
    resource: ComplaintResource | None = None,
    *,
    admin_write_access: bool | None = None,
) -> None:
    """Raise ForbiddenError unless `authorize` allows the action."""
    if admin_write_access is None:
        admin_write_access = settings.admin_write_access

    decision = authorize(principal, action, resource, admin_write_access=admin_write_access)
    if isinstance(decision, Allow):
        return

    _record_denial(principal, action, decision)
    raise ForbiddenError(decision.reason, conceal=decision.scoped)


def require_visible(principal: Principal, complaint: ComplaintResource, not_found: str) -> None:
    """Raise NotFoundError(`not_found`) unless `principal` may read `complaint`."""
    decision = authorize(principal, Action.READ_COMPLAINT, complaint)
    if isinstance(decision, Allow):
        return

    _record_denial(principal, Action.READ_COMPLAINT, decision)
    raise NotFoundError(not_found)


def _record_denial(principal: Principal, action: Action, decision: Deny) -> None:
    authorization_denials_total.labels(action=action.value, role=principal.role.value).inc()
    logger.info("Denied %s to %s: %s", action.value, principal.actor, decision.reason)


def complaint_scope(principal: Principal) -> ColumnElement[bool]:
    """SQL filter selecting exactly the complaints `principal` may read."""
    if Action.READ_COMPLAINT not in ROLE_ACTIONS[principal.role]:
        return false()
    return _SCOPES[principal.role].clause(principal)


def allowed_actions(principal: Principal, *, admin_write_access: bool | None = None) -> list[str]:
    """Role-level actions for display (e.g. `/api/auth/me`)."""
    if admin_write_access is None:
        admin_write_access = settings.admin_write_access
    granted = set(ROLE_ACTIONS[principal.role])
    if principal.role == Role.ADMIN and admin_write_access:
        granted |= ADMIN_WRITE_ACTIONS
    return sorted(a.value for a in granted)
