"""Staff user management endpoints (admin only)."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from recruit_api.config.database import get_db
from recruit_api.middleware.error_handler import BadRequestError, NotFoundError, ValidationAPIError
from recruit_api.models import User
from recruit_api.schemas.users import UserCreate, UserListResponse, UserResponse, UserStats, UserUpdate
from recruit_api.services.rbac import ActorContext, require_admin
from recruit_api.services.validation import is_valid_url, is_valid_uuid, sanitize_text

logger = structlog.get_logger()
router = APIRouter()


def _get_user(db: Session, user_id: str) -> User:
    if not is_valid_uuid(user_id):
        raise BadRequestError("Invalid user ID format")
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User", user_id)
    return user


def _clean_scheduling_link(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    if value and not is_valid_url(value):
        raise ValidationAPIError("Invalid schedulingLink format", field="schedulingLink")
    return value or None


@router.get("", response_model=UserListResponse)
async def list_users(
    db: Session = Depends(get_db),
    search: Optional[str] = Query(None, max_length=200),
    is_admin: Optional[bool] = Query(None, alias="isAdmin"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    actor: ActorContext = Depends(require_admin),
):
    """List users with filters, plus overall counts."""
    query = db.query(User)

    if search:
        escaped = search.strip().replace("%", r"\%").replace("_", r"\_")
        pattern = f"%{escaped}%"
        query = query.filter(
            or_(User.name.ilike(pattern, escape="\\"), User.email.ilike(pattern, escape="\\"))
        )
    if is_admin is not None:
        query = query.filter(User.is_admin == is_admin)

    total = query.count()
    users = query.order_by(User.name, User.email).offset(offset).limit(limit).all()

    stats = UserStats(
        total=db.query(func.count(User.id)).scalar(),
        admins=db.query(func.count(User.id)).filter(User.is_admin == True).scalar(),
        with_access=db.query(func.count(User.id)).filter(User.has_access == True).scalar(),
    )

    return UserListResponse(
        data=[UserResponse.model_validate(u) for u in users],
        total=total,
        limit=limit,
        offset=offset,
        stats=stats,
    )


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_admin),
):
    """Get a user by ID."""
    return UserResponse.model_validate(_get_user(db, user_id))


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    data: UserCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_admin),
):
    """Create a user ahead of their first sign-in."""
    email = data.email.strip().lower()
    if "@" not in email:
        raise ValidationAPIError("Invalid email format", field="email")
    if db.query(User.id).filter(User.email == email).first():
        raise BadRequestError("A user with this email already exists")

    user = User(
        email=email,
        name=sanitize_text(data.name, 255) or None,
        scheduling_link=_clean_scheduling_link(data.scheduling_link),
        is_admin=data.is_admin,
        has_access=data.has_access,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("User created", id=user.id, created_by=actor.user_id)
    return UserResponse.model_validate(user)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    data: UserUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(require_admin),
):
    """Update a user (only provided fields)."""
    update_data = data.model_dump(exclude_unset=True)
    if not update_data:
        raise BadRequestError("No valid fields to update")

    user = _get_user(db, user_id)

    if "name" in update_data:
        user.name = sanitize_text(update_data["name"], 255) or None
    if "scheduling_link" in update_data:
        user.scheduling_link = _clean_scheduling_link(update_data["scheduling_link"])
    for flag in ("is_admin", "has_access"):
        if update_data.get(flag) is not None:
            setattr(user, flag, update_data[flag])

    db.commit()
    db.refresh(user)

    logger.info("User updated", id=user.id, fields=sorted(update_data), updated_by=actor.user_id)
    return UserResponse.model_validate(user)
