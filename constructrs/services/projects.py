"""
Project bookkeeping: assigned employees, embedded inspectors and the
report back-reference list that keeps ``last_working_day`` current.
"""
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..errors import NotFoundError, ValidationError
from ..models.models import Project, Report, new_object_id, utcnow
from .entity_store import require_object_id


def validate_project_fields(name: Optional[str], start_date: Optional[datetime], end_date: Optional[datetime]) -> None:
    errors: List[str] = []
    if not name or not name.strip():
        errors.append("name: Project name is required")
    elif len(name) > 100:
        errors.append("name: Project name must be 100 characters or less")
    if end_date and start_date and end_date < start_date:
        errors.append("endDate: End date cannot be before start date")
    if errors:
        raise ValidationError("Validation failed", errors)


def add_employee(db: Session, project: Project, user_id: str) -> Project:
    user_id = require_object_id(user_id, "userId")
    current = list(project.assigned_employees or [])
    if user_id not in current:
        project.assigned_employees = current + [user_id]
        db.commit()
    return project


def remove_employee(db: Session, project: Project, user_id: str) -> Project:
    user_id = require_object_id(user_id, "userId")
    project.assigned_employees = [u for u in (project.assigned_employees or []) if u != user_id]
    db.commit()
    return project


def add_inspector(db: Session, project: Project, data: Dict[str, Any]) -> Dict[str, Any]:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Validation failed", ["name: Inspector name is required"])
    inspector = {
        "id": new_object_id(),
        "name": name,
        "company": data.get("company") or "",
        "phone": data.get("phone") or "",
        "email": data.get("email") or "",
        "specialization": data.get("specialization") or "",  # safety, quality, structural, ...
        "certifications": list(data.get("certifications") or []),
        "addedDate": utcnow().isoformat(),
        "isActive": bool(data["isActive"]) if data.get("isActive") is not None else True,
    }
    project.inspectors = list(project.inspectors or []) + [inspector]
    db.commit()
    return inspector


def remove_inspector(db: Session, project: Project, inspector_id: str) -> Project:
    inspector_id = require_object_id(inspector_id, "inspectorId")
    remaining = [i for i in (project.inspectors or []) if i.get("id") != inspector_id]
    if len(remaining) == len(project.inspectors or []):
        raise NotFoundError("Inspector not found")
    project.inspectors = remaining
    db.commit()
    return project


def update_inspector(db: Session, project: Project, inspector_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    inspector_id = require_object_id(inspector_id, "inspectorId")
    updated = None
    inspectors = []
    for entry in project.inspectors or []:
        entry = dict(entry)
        if entry.get("id") == inspector_id:
            for key in ("name", "company", "phone", "email", "specialization", "certifications", "isActive"):
                if key in changes and changes[key] is not None:
                    entry[key] = changes[key]
            updated = entry
        inspectors.append(entry)
    if updated is None:
        raise NotFoundError("Inspector not found")
    project.inspectors = inspectors
    db.commit()
    return updated


def active_inspectors(project: Project) -> List[Dict[str, Any]]:
    return [i for i in (project.inspectors or []) if i.get("isActive")]


def add_report(db: Session, project: Project, report: Report) -> Project:
    reports = list(project.reports or [])
    if report.id not in reports:
        reports.append(report.id)
    project.reports = reports
    if report.created_at and (project.last_working_day is None or report.created_at > project.last_working_day):
        project.last_working_day = report.created_at
    db.commit()
    return project


def remove_report(db: Session, project: Project, report_id: str) -> Project:
    return remove_reports(db, project, [report_id])


def remove_reports(db: Session, project: Project, report_ids: List[str]) -> Project:
    """Drop report back-references and recompute ``last_working_day`` from what is left."""
    gone = set(report_ids)
    project.reports = [r for r in (project.reports or []) if r not in gone]
    project.last_working_day = _latest_report_date(db, project.reports)
    db.commit()
    return project


def _latest_report_date(db: Session, report_ids: List[str]) -> Optional[datetime]:
    if not report_ids:
        return None
    latest = (
        db.query(Report.created_at)
        .filter(Report.id.in_(report_ids))
        .order_by(Report.created_at.desc())
        .first()
    )
    return latest[0] if latest else None


def days_since_last_work(project: Project) -> Optional[int]:
    if not project.last_working_day:
        return None
    delta = abs((utcnow() - project.last_working_day).total_seconds())
    return math.ceil(delta / 86400)


def activity_summary(db: Session, project: Project) -> Dict[str, Any]:
    dates = []
    if project.reports:
        dates = [
            r[0]
            for r in db.query(Report.created_at).filter(Report.id.in_(project.reports)).all()
            if r[0] is not None
        ]
    return {
        "totalReports": len(dates),
        "firstReportDate": min(dates).isoformat() if dates else None,
        "lastReportDate": max(dates).isoformat() if dates else None,
        "daysSinceLastWork": days_since_last_work(project),
        "activeInspectors": len(active_inspectors(project)),
        "totalInspectors": len(project.inspectors or []),
    }
