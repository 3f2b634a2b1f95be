from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..errors import AuthzError, ValidationError
from ..models.models import USER_ROLES, User, utcnow


SELF_ASSIGNABLE_ROLES = ("supervisor", "inspector", "employee")


def user_to_dict(u: User) -> Dict[str, Any]:
    # Never exposes the password hash or OAuth tokens
    return {
        "id": u.id,
        "name": u.name,
        "firstName": u.first_name,
        "lastName": u.last_name,
        "email": u.email,
        "jobName": u.job_name,
        "role": u.role,
        "permissions": list(u.permissions or []),
        "authProvider": u.auth_provider,
        "isActive": u.is_active,
        "createdAt": u.created_at.isoformat() if u.created_at else None,
        "updatedAt": u.updated_at.isoformat() if u.updated_at else None,
        "lastLoginAt": u.last_login_at.isoformat() if u.last_login_at else None,
    }


def find_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email.strip().lower()).first()


def register_user(
    db: Session,
    name: str,
    email: str,
    password_hash: Optional[str],
    job_name: Optional[str],
    role: Optional[str] = None,
    auth_provider: str = "local",
) -> User:
    """Create an account. The very first account becomes the admin."""
    email = email.strip().lower()
    if find_by_email(db, email) is not None:
        raise ValidationError("User with this email already exists", ["email: already registered"])
    if role is not None and role not in USER_ROLES:
        raise ValidationError("Validation failed", [f"role: must be one of {', '.join(USER_ROLES)}"])

    first_user = db.query(func.count(User.id)).scalar() == 0
    if first_user:
        role = "admin"
    elif role is None:
        role = "employee"
    elif role not in SELF_ASSIGNABLE_ROLES:
        raise AuthzError("Elevated roles must be granted by an administrator")

    user = User(
        name=name.strip(),
        email=email,
        password_hash=password_hash,
        job_name=job_name,
        role=role,
        permissions=[],
        auth_provider=auth_provider,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def touch_login(db: Session, user: User) -> None:
    user.last_login_at = utcnow()
    db.commit()


def admin_count(db: Session) -> int:
    return db.query(func.count(User.id)).filter(User.role == "admin", User.is_active.is_(True)).scalar()


def assert_not_last_admin(db: Session, user: User) -> None:
    """Raise when ``user`` is the only active admin left."""
    if user.role == "admin" and user.is_active and admin_count(db) <= 1:
        raise ValidationError("Cannot remove the last remaining admin", ["role: at least one admin is required"])
