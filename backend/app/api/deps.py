"""
API dependencies: DB session, principal resolution and action guards.

The identity claim arrives as a JWT bearer token. `get_principal`:
  1. Extracts the Bearer token from the Authorization header
  2. Decodes and validates the JWT
  3. Builds a Principal `{id, role, agency_id}` from the claims verbatim

Services take that principal as an explicit argument; nothing downstream
reads request or session state.
"""

import logging
from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import async_session
from app.auth.context import InvalidClaimError, Principal
from app.auth.jwt import decode_access_token
from app.auth.permissions import Action
from app.auth.policy import require as require_action

logger = logging.getLogger(__name__)


# ── Database session ─────────────────────────────────────────────────────────

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session per request, commit on success, rollback on error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ── Principal (JWT authentication) ───────────────────────────────────────────

async def get_principal(request: Request) -> Principal:
    """Build the Principal for the current request from its access token."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")

    token = auth_header[7:]  # strip "Bearer "
    try:
        claims = decode_access_token(token)
        return Principal.from_claims(claims)
    except JWTError as e:
        logger.debug("JWT decode failed: %s", e)
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    except InvalidClaimError as e:
        logger.warning("Rejected token with inconsistent claims: %s", e)
        raise HTTPException(status_code=401, detail="Invalid token claims")


# ── Action guards ────────────────────────────────────────────────────────────

def require(action: Action):
    """
    FastAPI dependency for directory-level actions (no complaint involved).

    Usage:
        @router.get("/api/audit")
        async def list_audit(principal: Principal = Depends(require(Action.READ_AUDIT))):
            ...
    """
    async def _check(principal: Principal = Depends(get_principal)) -> Principal:
        require_action(principal, action)
        return principal
    return _check
