"""Admin user management: provisioning officials and admins, enabling or disabling accounts."""

import logging
import secrets
import string

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.auth import user_to_schema
from app.api.deps import get_db, require
from app.auth.context import Principal
from app.auth.passwords import check_password_strength, hash_password
from app.auth.permissions import Action
from app.auth.roles import Role
from app.models import Agency, User
from app.schemas.schemas import CreateUserRequest, UpdateUserRequest, UserSchema
from app.services.audit_service import AuditService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/users", tags=["admin"])


class CreatedUser(UserSchema):
    temp_password: str | None = None  # only returned on creation, never stored


def _generate_temp_password() -> str:
    alphabet = string.ascii_letters + string.digits + "!@#$%"
    return "".join(secrets.choice(alphabet) for _ in range(16))


@router.get("", response_model=list[UserSchema])
async def list_users(principal: Principal = Depends(require(Action.MANAGE_USERS)),
                     db: AsyncSession = Depends(get_db)):
    """List all users."""
    result = await db.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
    return [user_to_schema(u) for u in result.scalars()]


@router.post("", response_model=CreatedUser, status_code=201)
async def create_user(body: CreateUserRequest,
                      principal: Principal = Depends(require(Action.MANAGE_USERS)),
                      db: AsyncSession = Depends(get_db)):
    """
    Create a user account of any role.

    An AGENCY_OFFICIAL must name an existing agency; other roles must not
    carry one. The binding is fixed for the lifetime of the account.
    """
    if body.role == Role.AGENCY_OFFICIAL:
        if body.agency_id is None:
            raise HTTPException(status_code=400, detail="An agency official requires agency_id")
        if await db.get(Agency, body.agency_id) is None:
            raise HTTPException(status_code=400, detail=f"Agency {body.agency_id} does not exist")
    elif body.agency_id is not None:
        raise HTTPException(status_code=400, detail=f"Role {body.role.value} cannot be bound to an agency")

    existing = (await db.execute(
        select(User).where(User.email == body.email)
    )).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=409, detail="Email already registered")

    password = body.password or _generate_temp_password()
    problem = check_password_strength(password)
    if problem:
        raise HTTPException(status_code=400, detail=problem)

    user = User(
        email=body.email,
        password_hash=hash_password(password),
        full_name=body.full_name.strip(),
        role=body.role.value,
        agency_id=body.agency_id,
    )
    db.add(user)
    await db.flush()

    await AuditService(db).log_user_changed(
        user.id, "created", {"role": user.role, "agency_id": user.agency_id}, actor=principal.actor,
    )
    logger.info("User created: %s (%s) by %s", user.email, user.role, principal.actor)

    resp = CreatedUser(**user_to_schema(user).model_dump())
    if not body.password:
        resp.temp_password = password
    return resp


@router.put("/{user_id}", response_model=UserSchema)
async def update_user(user_id: int,
                      body: UpdateUserRequest,
                      principal: Principal = Depends(require(Action.MANAGE_USERS)),
                      db: AsyncSession = Depends(get_db)):
    """Update a user's name or active status. Role and agency are immutable."""
    user = (await db.execute(
        select(User).where(User.id == user_id).with_for_update()
    )).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    changes: dict = {}
    if body.full_name is not None:
        user.full_name = body.full_name.strip()
        changes["full_name"] = user.full_name
    if body.is_active is not None:
        user.is_active = body.is_active
        changes["is_active"] = body.is_active

    if changes:
        await db.flush()
        await AuditService(db).log_user_changed(user.id, "updated", changes, actor=principal.actor)
        logger.info("User updated: %s by %s", user.email, principal.actor)
    return user_to_schema(user)


@router.post("/{user_id}/reset-password")
async def reset_password(user_id: int,
                         principal: Principal = Depends(require(Action.MANAGE_USERS)),
                         db: AsyncSession = Depends(get_db)):
    """Admin-initiated password reset; generates a temp password."""
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    temp_password = _generate_temp_password()
    user.password_hash = hash_password(temp_password)
    await AuditService(db).log_user_changed(user.id, "password_reset", {}, actor=principal.actor)

    logger.info("Password reset for %s by %s", user.email, principal.actor)
    return {"temp_password": temp_password}
