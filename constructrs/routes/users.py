from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import structlog

from ..auth.security import get_caller, get_password_hash, require_action
from ..db import get_db
from ..errors import AuthzError, NotFoundError, ValidationError
from ..models.models import USER_ROLES, User
from ..schemas.auth import RegisterRequest, UserUpdate
from ..services import users as user_service
from ..services.entity_store import EntityStore
from ..services.permissions import USER_MANAGE, USER_READ, Caller, can


log = structlog.get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

PROFILE_FIELDS = {"name", "email", "job_name"}


def _require_user(db: Session, user_id: str) -> User:
    user = EntityStore(db, User).find_by_id(user_id, "userId")
    if user is None:
        raise NotFoundError("User not found")
    return user


@router.get("")
def list_users(
    role: Optional[str] = None,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_action(USER_READ)),
):
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    users = query.order_by(User.created_at.desc()).all()
    return {"success": True, "count": len(users), "users": [user_service.user_to_dict(u) for u in users]}


@router.post("", status_code=201)
def create_user(
    payload: RegisterRequest,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_action(USER_MANAGE)),
):
    """Admin-created account; any role may be assigned."""
    role = payload.role or "employee"
    if role not in USER_ROLES:
        raise ValidationError("Validation failed", [f"role: must be one of {', '.join(USER_ROLES)}"])
    user = user_service.register_user(
        db,
        name=f"{payload.first_name.strip()} {payload.last_name.strip()}",
        email=payload.email,
        password_hash=get_password_hash(payload.password),
        job_name=payload.job_name,
    )
    if user.role != role:
        user.role = role
        db.commit()
        db.refresh(user)
    log.info("user_created", user_id=user.id, role=user.role, caller_id=caller.id)
    return {"success": True, "message": "User created successfully", "user": user_service.user_to_dict(user)}


@router.get("/{user_id}")
def get_user(user_id: str, db: Session = Depends(get_db), caller: Caller = Depends(get_caller)):
    user = _require_user(db, user_id)
    if user.id != caller.id and not can(caller, USER_READ):
        raise AuthzError("Access denied. Insufficient permissions.")
    return {"success": True, "user": user_service.user_to_dict(user)}


@router.patch("/{user_id}")
def update_user(
    user_id: str,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_caller),
):
    user = _require_user(db, user_id)
    changes = payload.model_dump(exclude_unset=True)
    is_self = user.id == caller.id
    manager = can(caller, USER_MANAGE)
    if not manager and (not is_self or set(changes) - PROFILE_FIELDS):
        raise AuthzError("Access denied. Insufficient permissions.")

    if "role" in changes:
        if changes["role"] not in USER_ROLES:
            raise ValidationError("Validation failed", [f"role: must be one of {', '.join(USER_ROLES)}"])
        if changes["role"] != "admin":
            user_service.assert_not_last_admin(db, user)
    if changes.get("is_active") is False:
        user_service.assert_not_last_admin(db, user)
    if "email" in changes and changes["email"]:
        email = changes["email"].strip().lower()
        other = user_service.find_by_email(db, email)
        if other is not None and other.id != user.id:
            raise ValidationError("User with this email already exists", ["email: already registered"])
        changes["email"] = email

    for key, value in changes.items():
        if value is not None:
            setattr(user, key, value)
    db.commit()
    db.refresh(user)
    log.info("user_updated", user_id=user.id, caller_id=caller.id, fields=sorted(changes))
    return {"success": True, "message": "User updated successfully", "user": user_service.user_to_dict(user)}


@router.delete("/{user_id}")
def delete_user(user_id: str, db: Session = Depends(get_db), caller: Caller = Depends(require_action(USER_MANAGE))):
    user = _require_user(db, user_id)
    user_service.assert_not_last_admin(db, user)
    db.delete(user)
    db.commit()
    log.info("user_deleted", user_id=user_id, caller_id=caller.id)
    return {"success": True, "message": "User deleted successfully"}
