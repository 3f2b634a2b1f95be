from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import structlog

from ..auth.security import require_action
from ..db import get_db
from ..errors import NotFoundError
from ..models.models import Project
from ..schemas.projects import EmployeeAssign, InspectorCreate, InspectorUpdate, ProjectCreate, ProjectUpdate
from ..services import projects as project_service
from ..services.entity_store import EntityStore, require_object_id
from ..services.permissions import (
    PROJECT_ASSIGN,
    PROJECT_CREATE,
    PROJECT_DELETE,
    PROJECT_READ,
    PROJECT_UPDATE,
    Caller,
)


log = structlog.get_logger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _project_to_dict(p: Project) -> Dict[str, Any]:
    return {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "location": p.location,
        "clientName": p.client_name,
        "startDate": _iso(p.start_date),
        "endDate": _iso(p.end_date),
        "projectManagerId": p.project_manager_id,
        "assignedEmployees": list(p.assigned_employees or []),
        "inspectors": list(p.inspectors or []),
        "reports": list(p.reports or []),
        "lastWorkingDay": _iso(p.last_working_day),
        "contractDay": p.contract_day,
        "createdBy": p.created_by,
        "createdAt": _iso(p.created_at),
        "updatedAt": _iso(p.updated_at),
    }


def _require_project(db: Session, project_id: str) -> Project:
    project = EntityStore(db, Project).find_by_id(project_id, "projectId")
    if project is None:
        raise NotFoundError("Project not found")
    return project


@router.get("")
def list_projects(db: Session = Depends(get_db), caller: Caller = Depends(require_action(PROJECT_READ))):
    projects = db.query(Project).order_by(Project.created_at.desc()).all()
    return {"success": True, "data": [_project_to_dict(p) for p in projects]}


@router.get("/my-projects")
def my_projects(db: Session = Depends(get_db), caller: Caller = Depends(require_action(PROJECT_READ))):
    projects = [
        p for p in db.query(Project).order_by(Project.created_at.desc()).all()
        if caller.id in (p.assigned_employees or []) or p.project_manager_id == caller.id
    ]
    return {"success": True, "data": [_project_to_dict(p) for p in projects]}


@router.post("", status_code=201)
def create_project(
    payload: ProjectCreate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_action(PROJECT_CREATE)),
):
    project_service.validate_project_fields(payload.name, payload.start_date, payload.end_date)
    values = payload.model_dump()
    values["name"] = payload.name.strip()
    if values.get("project_manager_id"):
        values["project_manager_id"] = require_object_id(values["project_manager_id"], "projectManagerId")
    if values.get("start_date") is None:
        values.pop("start_date")
    values.update(assigned_employees=[], inspectors=[], reports=[], created_by=caller.id)
    project = EntityStore(db, Project).insert(values)
    log.info("project_created", project_id=project.id, caller_id=caller.id)
    return {"success": True, "message": "Project created successfully", "data": _project_to_dict(project)}


@router.get("/{project_id}")
def get_project(project_id: str, db: Session = Depends(get_db), caller: Caller = Depends(require_action(PROJECT_READ))):
    return {"success": True, "data": _project_to_dict(_require_project(db, project_id))}


@router.put("/{project_id}")
def update_project(
    project_id: str,
    payload: ProjectUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_action(PROJECT_UPDATE)),
):
    project = _require_project(db, project_id)
    changes = payload.model_dump(exclude_unset=True)
    project_service.validate_project_fields(
        changes.get("name", project.name),
        changes.get("start_date", project.start_date),
        changes.get("end_date", project.end_date),
    )
    if changes.get("project_manager_id"):
        changes["project_manager_id"] = require_object_id(changes["project_manager_id"], "projectManagerId")
    if "start_date" in changes and changes["start_date"] is None:
        del changes["start_date"]
    for key, value in changes.items():
        setattr(project, key, value)
    db.commit()
    db.refresh(project)
    return {"success": True, "message": "Project updated successfully", "data": _project_to_dict(project)}


@router.delete("/{project_id}")
def delete_project(project_id: str, db: Session = Depends(get_db), caller: Caller = Depends(require_action(PROJECT_DELETE))):
    project_id = require_object_id(project_id, "projectId")
    if not EntityStore(db, Project).delete_by_id(project_id):
        raise NotFoundError("Project not found")
    log.info("project_deleted", project_id=project_id, caller_id=caller.id)
    return {"success": True, "message": "Project deleted successfully"}


@router.get("/{project_id}/summary")
def project_summary(project_id: str, db: Session = Depends(get_db), caller: Caller = Depends(require_action(PROJECT_READ))):
    project = _require_project(db, project_id)
    return {"success": True, "data": project_service.activity_summary(db, project)}


@router.post("/{project_id}/employees")
def add_employee(
    project_id: str,
    payload: EmployeeAssign,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_action(PROJECT_ASSIGN)),
):
    project = project_service.add_employee(db, _require_project(db, project_id), payload.user_id)
    return {"success": True, "message": "Employee assigned successfully", "data": _project_to_dict(project)}


@router.delete("/{project_id}/employees/{user_id}")
def remove_employee(
    project_id: str,
    user_id: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_action(PROJECT_ASSIGN)),
):
    project = project_service.remove_employee(db, _require_project(db, project_id), user_id)
    return {"success": True, "message": "Employee removed successfully", "data": _project_to_dict(project)}


@router.post("/{project_id}/inspectors", status_code=201)
def add_inspector(
    project_id: str,
    payload: InspectorCreate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_action(PROJECT_ASSIGN)),
):
    inspector = project_service.add_inspector(db, _require_project(db, project_id), payload.model_dump(by_alias=True))
    return {"success": True, "message": "Inspector added successfully", "data": inspector}


@router.patch("/{project_id}/inspectors/{inspector_id}")
def update_inspector(
    project_id: str,
    inspector_id: str,
    payload: InspectorUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_action(PROJECT_ASSIGN)),
):
    changes = payload.model_dump(by_alias=True, exclude_unset=True)
    inspector = project_service.update_inspector(db, _require_project(db, project_id), inspector_id, changes)
    return {"success": True, "message": "Inspector updated successfully", "data": inspector}


@router.delete("/{project_id}/inspectors/{inspector_id}")
def remove_inspector(
    project_id: str,
    inspector_id: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_action(PROJECT_ASSIGN)),
):
    project = project_service.remove_inspector(db, _require_project(db, project_id), inspector_id)
    return {"success": True, "message": "Inspector removed successfully", "data": _project_to_dict(project)}
