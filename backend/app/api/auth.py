"""Authentication API: registration, login and profile."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.api.deps import get_db, get_principal
from app.auth.context import Principal
from app.auth.jwt import create_access_token
from app.auth.passwords import check_password_strength, hash_password, verify_password
from app.auth.policy import allowed_actions
from app.auth.roles import Role
from app.models import User
from app.schemas.schemas import LoginRequest, RegisterRequest, TokenResponse, UserSchema
from app.services.audit_service import AuditService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


# ── Helpers ───────────────────────────────────────────────────────────────────

def user_to_schema(user: User) -> UserSchema:
    role = Role(user.role)
    principal = Principal(id=str(user.id), role=role, agency_id=user.agency_id)
    return UserSchema(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=role,
        agency_id=user.agency_id,
        is_active=user.is_active,
        permissions=allowed_actions(principal),
        created_at=user.created_at,
    )


def _token_response(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user.id, user.role, user.agency_id),
        expires_in=settings.access_token_expire_minutes * 60,
        user=user_to_schema(user),
    )


async def _current_user(principal: Principal, db: AsyncSession) -> User:
    try:
        user_id = int(principal.id)
    except ValueError:
        raise HTTPException(status_code=404, detail="User not found")
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# ── Endpoints ─────────────────────────────────────────────────────────────────

@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Self-registration. Always creates a CITIZEN account."""
    problem = check_password_strength(body.password)
    if problem:
        raise HTTPException(status_code=400, detail=problem)

    existing = (await db.execute(
        select(User).where(User.email == body.email)
    )).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=409, detail="User with this email already exists")

    user = User(
        email=body.email,
        password_hash=hash_password(body.password),
        full_name=body.full_name.strip(),
        role=Role.CITIZEN.value,
    )
    db.add(user)
    await db.flush()

    await AuditService(db).log_user_changed(
        user.id, "registered", {"role": user.role}, actor=f"{Role.CITIZEN.value}:{user.id}",
    )
    logger.info("Registered citizen %s", user.email)
    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Authenticate with email + password, receive a JWT access token."""
    user = (await db.execute(
        select(User).where(User.email == body.email)
    )).scalar_one_or_none()

    if not user or not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")

    logger.info("Login: %s (%s)", user.email, user.role)
    return _token_response(user)


@router.get("/me", response_model=UserSchema)
async def me(principal: Principal = Depends(get_principal),
             db: AsyncSession = Depends(get_db)):
    """Return the current authenticated user profile."""
    return user_to_schema(await _current_user(principal, db))


@router.put("/me/password")
async def change_password(body: ChangePasswordRequest,
                          principal: Principal = Depends(get_principal),
                          db: AsyncSession = Depends(get_db)):
    """Change own password (requires current password)."""
    user = await _current_user(principal, db)

    if not verify_password(body.current_password, user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    problem = check_password_strength(body.new_password)
    if problem:
        raise HTTPException(status_code=400, detail=problem)

    user.password_hash = hash_password(body.new_password)
    return {"ok": True}
