from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
import structlog

from ..config import Settings
from ..db import get_db
from ..models.models import User
from ..schemas.auth import ChangePasswordRequest, LoginRequest, ProfileUpdate, RegisterRequest
from ..services import users as user_service
from .security import (
    create_access_token,
    get_current_user,
    get_password_hash,
    get_settings,
    verify_password,
)


log = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=201)
def register(req: RegisterRequest, db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    user = user_service.register_user(
        db,
        name=f"{req.first_name.strip()} {req.last_name.strip()}",
        email=req.email,
        password_hash=get_password_hash(req.password),
        job_name=req.job_name,
        role=req.role,
    )
    log.info("user_registered", user_id=user.id, role=user.role)
    return {
        "success": True,
        "message": "User registered successfully",
        "user": user_service.user_to_dict(user),
        "token": create_access_token(user, settings),
    }


@router.post("/login")
def login(req: LoginRequest, db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    user = user_service.find_by_email(db, req.email)
    if not user or not user.is_active or not verify_password(req.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    user_service.touch_login(db, user)
    return {
        "success": True,
        "message": "Login successful",
        "user": user_service.user_to_dict(user),
        "token": create_access_token(user, settings),
    }


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return {"success": True, "user": user_service.user_to_dict(user)}


@router.put("/profile")
def update_profile(req: ProfileUpdate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    changes = req.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="At least one field must be provided for update")
    if "first_name" in changes or "last_name" in changes:
        first = changes.get("first_name", user.first_name).strip()
        last = changes.get("last_name", user.last_name).strip()
        user.name = f"{first} {last}".strip()
    if "email" in changes:
        email = changes["email"].strip().lower()
        other = user_service.find_by_email(db, email)
        if other is not None and other.id != user.id:
            raise HTTPException(status_code=400, detail="User with this email already exists")
        user.email = email
    if "job_name" in changes:
        user.job_name = changes["job_name"]
    db.commit()
    db.refresh(user)
    return {"success": True, "message": "Profile updated successfully", "user": user_service.user_to_dict(user)}


@router.post("/change-password")
def change_password(req: ChangePasswordRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    if user.auth_provider == "microsoft":
        raise HTTPException(status_code=400, detail="Cannot change password for Microsoft OAuth users")
    if not verify_password(req.current_password, user.password_hash):
        raise HTTPException(status_code=401, detail="Current password is incorrect")
    user.password_hash = get_password_hash(req.new_password)
    db.commit()
    log.info("user_password_changed", user_id=user.id)
    return {"success": True, "message": "Password changed successfully"}
