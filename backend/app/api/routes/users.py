"""
PGB Event Scheduler - User & Authentication Routes
==================================================
First-admin setup, login, current user, and admin user management.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.envelope import success_envelope
from app.core.database import get_db
from app.core.logging import get_logger
from app.core.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from app.models.user import User, UserRole
from app.schemas.auth import (
    LoginRequest,
    SetupRequest,
    TokenResponse,
    UserCreateRequest,
    UserProfile,
    UserStatusRequest,
    UserUpdateRequest,
)
from app.services.activity_log_service import activity_log_service

router = APIRouter(prefix="/users", tags=["Users"])
logger = get_logger("users")
security = HTTPBearer(auto_error=False)


def _issue_token(user: User) -> str:
    return create_access_token(
        data={
            "sub": user.id,
            "username": user.username,
            "role": user.role,
            "department": user.department,
        }
    )


async def _assert_unique(db: AsyncSession, *, username: str, email: str, exclude_id: int | None = None) -> None:
    query = select(User.id).where(or_(User.username == username, User.email == email))
    if exclude_id is not None:
        query = query.where(User.id != exclude_id)
    if (await db.execute(query)).first() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User with this email or username already exists",
        )


async def _get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


# -- Dependency: current user --
async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required")

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    return await resolve_token_user(db, payload)


async def resolve_token_user(db: AsyncSession, payload: dict) -> User:
    """Load the active user a decoded token points at, or raise 401."""
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token - user not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account is inactive")
    return user


def _require_admin(user: User) -> None:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")


# -- First admin --
@router.post("/setup", status_code=status.HTTP_201_CREATED)
async def setup_first_admin(payload: SetupRequest, db: AsyncSession = Depends(get_db)):
    admins = await db.execute(select(func.count(User.id)).where(User.role == UserRole.admin.value))
    if int(admins.scalar_one() or 0) > 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admin user already exists. Use /register endpoint with admin authentication.",
        )
    await _assert_unique(db, username=payload.username, email=str(payload.email))

    user = User(
        username=payload.username.strip(),
        email=str(payload.email).lower(),
        hashed_password=hash_password(payload.password),
        role=UserRole.admin.value,
        department=payload.department,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    await activity_log_service.log(
        db,
        action="setup_admin",
        actor=user,
        description=f"Created first admin {user.username}",
        entity_type="user",
        entity_id=user.id,
    )
    await db.commit()
    logger.info("first_admin_created", user_id=user.id, username=user.username)
    token = TokenResponse(access_token=_issue_token(user), user=UserProfile.model_validate(user))
    return success_envelope(
        token,
        message="First admin user created successfully",
        status_code=status.HTTP_201_CREATED,
    )


# -- Login --
@router.post("/login")
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db)):
    identifier = request.username.strip()
    result = await db.execute(
        select(User).where(or_(User.username == identifier, User.email == identifier.lower()))
    )
    user = result.scalar_one_or_none()

    if not user or not verify_password(request.password, user.hashed_password):
        logger.warning("login_failed", username=identifier)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is inactive. Please contact administrator.",
        )

    user.last_login_at = datetime.now(timezone.utc)
    await activity_log_service.log(
        db,
        action="login",
        actor=user,
        description=f"{user.username} logged in",
        entity_type="user",
        entity_id=user.id,
    )
    await db.commit()

    logger.info("login_success", user_id=user.id, role=user.role)
    token = TokenResponse(access_token=_issue_token(user), user=UserProfile.model_validate(user))
    return success_envelope(token, message="Login successful")


# -- Current user --
@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    return success_envelope(UserProfile.model_validate(current_user))


# -- Admin management --
@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_user(
    payload: UserCreateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_admin(current_user)
    await _assert_unique(db, username=payload.username, email=str(payload.email))

    user = User(
        username=payload.username.strip(),
        email=str(payload.email).lower(),
        hashed_password=hash_password(payload.password),
        role=payload.role.value,
        department=payload.department,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    await activity_log_service.log(
        db,
        action="create_user",
        actor=current_user,
        description=f"Created user {user.username} ({user.department})",
        entity_type="user",
        entity_id=user.id,
    )
    await db.commit()
    logger.info("user_created", user_id=user.id, by=current_user.id)
    return success_envelope(
        UserProfile.model_validate(user),
        message="User registered successfully",
        status_code=status.HTTP_201_CREATED,
    )


@router.get("/")
async def list_users(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_admin(current_user)
    rows = await db.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
    return success_envelope([UserProfile.model_validate(user) for user in rows.scalars().all()])


@router.get("/department/{department_name}")
async def list_department_users(
    department_name: str,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(get_current_user),
):
    department = department_name.strip().upper()
    rows = await db.execute(
        select(User)
        .where(User.department == department, User.is_active.is_(True))
        .order_by(User.username.asc())
    )
    users = [UserProfile.model_validate(user) for user in rows.scalars().all()]
    return success_envelope(users, message=f"Found {len(users)} users in {department} department")


@router.put("/{user_id}")
async def update_user(
    user_id: int,
    payload: UserUpdateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_admin(current_user)
    user = await _get_user(db, user_id)
    changes = payload.model_dump(exclude_unset=True)

    if "username" in changes or "email" in changes:
        await _assert_unique(
            db,
            username=changes.get("username") or user.username,
            email=str(changes.get("email") or user.email).lower(),
            exclude_id=user.id,
        )
    if "username" in changes and changes["username"]:
        user.username = changes["username"].strip()
    if "email" in changes and changes["email"]:
        user.email = str(changes["email"]).lower()
    if "department" in changes and changes["department"]:
        user.department = changes["department"]
    if "role" in changes and changes["role"]:
        if user.id == current_user.id and changes["role"] != UserRole.admin:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot remove your own admin role")
        user.role = UserRole(changes["role"]).value
    if "password" in changes and changes["password"]:
        user.hashed_password = hash_password(changes["password"])

    await activity_log_service.log(
        db,
        action="update_user",
        actor=current_user,
        description=f"Updated user {user.username}",
        entity_type="user",
        entity_id=user.id,
        details={"fields": sorted(key for key in changes if key != "password")},
    )
    await db.commit()
    logger.info("user_updated", user_id=user.id, by=current_user.id)
    return success_envelope(UserProfile.model_validate(user), message="User updated successfully")


@router.put("/{user_id}/status")
async def set_user_status(
    user_id: int,
    payload: UserStatusRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_admin(current_user)
    user = await _get_user(db, user_id)
    if user.id == current_user.id and not payload.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot deactivate your own account")
    user.is_active = payload.is_active
    await activity_log_service.log(
        db,
        action="update_user_status",
        actor=current_user,
        description=f"Set {user.username} {'active' if payload.is_active else 'inactive'}",
        entity_type="user",
        entity_id=user.id,
    )
    await db.commit()
    return success_envelope(UserProfile.model_validate(user), message="User status updated successfully")


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_admin(current_user)
    user = await _get_user(db, user_id)
    if user.id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot delete your own account")
    username = user.username
    await db.delete(user)
    await activity_log_service.log(
        db,
        action="delete_user",
        actor=current_user,
        description=f"Deleted user {username}",
        entity_type="user",
        entity_id=user_id,
    )
    await db.commit()
    logger.info("user_deleted", user_id=user_id, by=current_user.id)
    return success_envelope({"id": user_id}, message="User deleted successfully")
