"""
Principal, the "who is asking and where are they scoped" abstraction.

Every core operation receives a Principal explicitly. It is rebuilt per request
from the verified claims of the access token and is never persisted:

- id: subject id issued by the identity provider
- role: one of the closed Role enumeration
- agency_id: the agency an official works for (officials only)

The core trusts the claim verbatim; `from_claims` only rejects claims that are
structurally inconsistent (unknown role, official without an agency).
"""

from __future__ import annotations

from dataclasses import dataclass

from app.auth.roles import Role


class InvalidClaimError(ValueError):
    """Raised when token claims cannot describe a valid principal."""


@dataclass(frozen=True)
class Principal:
    id: str
    role: Role
    agency_id: int | None = None

    def __post_init__(self):
        if self.role == Role.AGENCY_OFFICIAL and self.agency_id is None:
            raise InvalidClaimError("Agency officials must carry an agency_id")
        if self.role != Role.AGENCY_OFFICIAL and self.agency_id is not None:
            raise InvalidClaimError(f"{self.role.value} principals cannot carry an agency_id")

    @classmethod
    def from_claims(cls, claims: dict) -> Principal:
        """Build a principal from decoded token claims `{sub, role, agency_id?}`."""
        subject = claims.get("sub")
        if not subject:
            raise InvalidClaimError("Missing subject")
        try:
            role = Role(claims.get("role"))
        except ValueError:
            raise InvalidClaimError(f"Unknown role: {claims.get('role')!r}") from None

        agency_id = claims.get("agency_id")
        if agency_id is not None:
            try:
                agency_id = int(agency_id)
            except (TypeError, ValueError):
                raise InvalidClaimError(f"Invalid agency_id: {agency_id!r}") from None

        return cls(id=str(subject), role=role, agency_id=agency_id)

    @property
    def actor(self) -> str:
        """Identity string for audit logging."""
        if self.agency_id is not None:
            return f"{self.role.value}:{self.id}@agency:{self.agency_id}"
        return f"{self.role.value}:{self.id}"
