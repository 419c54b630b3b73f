from app.auth.permissions import Action
from app.auth.roles import Role, ROLE_ACTIONS
from app.auth.context import Principal, InvalidClaimError
from app.auth.policy import Allow, Deny, ComplaintRef, authorize, require, complaint_scope

__all__ = [
    "Action", "Role", "ROLE_ACTIONS", "Principal", "InvalidClaimError",
    "Allow", "Deny", "ComplaintRef", "authorize", "require", "complaint_scope",
]
