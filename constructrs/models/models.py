import itertools
import os
import threading
import time
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, Boolean, JSON, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base


USER_ROLES = ("admin", "project_manager", "supervisor", "inspector", "employee")

_oid_counter = itertools.count(int.from_bytes(os.urandom(3), "big"))
_oid_lock = threading.Lock()
_oid_process = os.urandom(5)


def new_object_id() -> str:
    """24 hex chars: 4-byte seconds, 5-byte process value, 3-byte counter."""
    with _oid_lock:
        counter = next(_oid_counter) & 0xFFFFFF
    raw = int(time.time()).to_bytes(4, "big") + _oid_process + counter.to_bytes(3, "big")
    return raw.hex()


def utcnow() -> datetime:
    # Naive UTC; SQLite drops tzinfo on the way back anyway
    return datetime.now(timezone.utc).replace(tzinfo=None)


def object_id_pk() -> Mapped[str]:
    return mapped_column(String(24), primary_key=True, default=new_object_id)


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = object_id_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)  # stored lowercase
    password_hash: Mapped[Optional[str]] = mapped_column(String(255))  # null for OAuth-only accounts
    job_name: Mapped[Optional[str]] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="employee")
    permissions: Mapped[Optional[list]] = mapped_column(JSON, default=list)  # extra capability strings
    auth_provider: Mapped[str] = mapped_column(String(20), nullable=False, default="local")
    microsoft_id: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    microsoft_access_token: Mapped[Optional[str]] = mapped_column(Text)
    microsoft_refresh_token: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    @property
    def first_name(self) -> str:
        parts = (self.name or "").split()
        return parts[0] if parts else ""

    @property
    def last_name(self) -> str:
        parts = (self.name or "").split()
        return parts[-1] if len(parts) > 1 else ""


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = object_id_pk()
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(2000), default="")
    location: Mapped[Optional[str]] = mapped_column(String(500), default="")
    client_name: Mapped[Optional[str]] = mapped_column(String(255), default="")
    start_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    project_manager_id: Mapped[Optional[str]] = mapped_column(String(24), index=True)
    # Embedded documents: list of user ids, inspector dicts, report ids
    assigned_employees: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    inspectors: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    reports: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    last_working_day: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_by: Mapped[Optional[str]] = mapped_column(String(24))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def contract_day(self) -> int:
        """Whole days elapsed since start_date, recomputed on every read."""
        if not self.start_date:
            return 0
        return (utcnow() - self.start_date).days


class Report(Base):
    __tablename__ = "reports"

    id: Mapped[str] = object_id_pk()
    title: Mapped[Optional[str]] = mapped_column(String(255))
    content: Mapped[Optional[str]] = mapped_column(Text)
    author: Mapped[Optional[str]] = mapped_column(String(255))
    jobname: Mapped[Optional[str]] = mapped_column(String(255))
    jobid: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    project_id: Mapped[Optional[str]] = mapped_column(String(24))
    inspector_id: Mapped[Optional[str]] = mapped_column(String(24))
    created_by: Mapped[Optional[str]] = mapped_column(String(24))
    inspection_type: Mapped[Optional[str]] = mapped_column(String(100))
    findings: Mapped[Optional[str]] = mapped_column(Text)
    recommendations: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    labor_breakdown_title: Mapped[Optional[str]] = mapped_column(String(255))
    labor_breakdown: Mapped[Optional[list]] = mapped_column(JSON, default=list)  # [{position, quantity, hours}]
    equipment_breakdown_title: Mapped[Optional[str]] = mapped_column(String(255))
    equipment_breakdown: Mapped[Optional[list]] = mapped_column(JSON, default=list)  # [{equipment, quantity, hours}]
    weather: Mapped[Optional[dict]] = mapped_column(JSON)
    extra_fields: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)
    # Null until a render succeeds
    pdf_path: Mapped[Optional[str]] = mapped_column(String(1024))
    pdf_generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    is_draft: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    edited_by: Mapped[Optional[str]] = mapped_column(String(24))
    edited_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("idx_reports_project", "project_id"),
        Index("idx_reports_inspector", "inspector_id"),
    )
