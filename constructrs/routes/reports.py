from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ..auth.security import get_caller, get_download_caller
from ..db import get_db
from ..models.models import Report
from ..reports.lifecycle import Created, CreatedArtifactFailed, Rendered, ReportLifecycle
from ..schemas.reports import ReportCreate, ReportUpdate
from ..services.permissions import Caller
from ..storage.artifacts import ArtifactStore


router = APIRouter(prefix="/reports", tags=["reports"])


def get_lifecycle(request: Request, db: Session = Depends(get_db)) -> ReportLifecycle:
    return ReportLifecycle(db, request.app.state.renderer, request.app.state.artifacts)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def report_to_dict(r: Report, store: Optional[ArtifactStore] = None) -> Dict[str, Any]:
    data = {
        "id": r.id,
        "title": r.title,
        "content": r.content,
        "author": r.author,
        "jobname": r.jobname,
        "jobid": r.jobid,
        "projectId": r.project_id,
        "inspectorId": r.inspector_id,
        "createdBy": r.created_by,
        "inspectionType": r.inspection_type,
        "findings": r.findings,
        "recommendations": r.recommendations,
        "status": r.status,
        "laborBreakdownTitle": r.labor_breakdown_title,
        "laborBreakdown": list(r.labor_breakdown or []),
        "equipmentBreakdownTitle": r.equipment_breakdown_title,
        "equipmentBreakdown": list(r.equipment_breakdown or []),
        "weather": r.weather,
        "extraFields": dict(r.extra_fields or {}),
        "pdfPath": r.pdf_path,
        "pdfGeneratedAt": _iso(r.pdf_generated_at),
        "isDraft": bool(r.is_draft),
        "createdAt": _iso(r.created_at),
        "updatedAt": _iso(r.updated_at),
        "editedBy": r.edited_by,
        "editedAt": _iso(r.edited_at),
    }
    if store is not None:
        data["pdfAvailable"] = store.resolve(r.pdf_path) is not None
    return data


def pdf_response(path: Path, download_name: str) -> FileResponse:
    return FileResponse(
        path,
        media_type="application/pdf",
        filename=download_name,
    )


@router.post("", status_code=201)
def create_report(
    payload: ReportCreate,
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    caller: Caller = Depends(get_caller),
):
    outcome = lifecycle.create(payload, caller)
    body = {
        "success": True,
        "report": report_to_dict(outcome.report),
        "reportId": outcome.report.id,
    }
    if isinstance(outcome, Created):
        body["message"] = "Report created successfully"
        body["pdfPath"] = str(outcome.pdf_path)
        body["pdfGenerated"] = True
    elif isinstance(outcome, CreatedArtifactFailed):
        body["message"] = "Report created, but PDF generation failed"
        body["pdfPath"] = None
        body["pdfGenerated"] = False
        body["pdfError"] = outcome.reason
    return body


@router.post("/draft", status_code=201)
def save_draft(
    payload: ReportCreate,
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    caller: Caller = Depends(get_caller),
):
    report = lifecycle.save_draft(payload, caller)
    return {
        "success": True,
        "message": "Draft saved successfully",
        "report": report_to_dict(report),
        "reportId": report.id,
    }


@router.get("")
def list_reports(
    projectId: Optional[str] = None,
    status: Optional[str] = None,
    jobid: Optional[str] = None,
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    caller: Caller = Depends(get_caller),
):
    reports = lifecycle.list(caller, project_id=projectId, status=status, jobid=jobid)
    return {
        "success": True,
        "count": len(reports),
        "reports": [report_to_dict(r, lifecycle.store) for r in reports],
    }


@router.get("/{report_id}")
def get_report(
    report_id: str,
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    caller: Caller = Depends(get_caller),
):
    report = lifecycle.get(report_id, caller)
    return {"success": True, "report": report_to_dict(report, lifecycle.store)}


@router.put("/{report_id}")
def update_report(
    report_id: str,
    payload: ReportUpdate,
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    caller: Caller = Depends(get_caller),
):
    outcome = lifecycle.edit(report_id, payload, caller)
    body = {
        "success": True,
        "report": report_to_dict(outcome.report),
    }
    if isinstance(outcome, Rendered):
        body["message"] = "Report updated successfully"
        body["pdfPath"] = str(outcome.pdf_path)
        body["pdfGenerated"] = True
    else:
        body["message"] = "Report updated, but PDF generation failed"
        body["pdfPath"] = None
        body["pdfGenerated"] = False
        body["pdfError"] = outcome.reason
    return body


@router.delete("/{report_id}")
def delete_report(
    report_id: str,
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    caller: Caller = Depends(get_caller),
):
    result = lifecycle.delete(report_id, caller)
    return {
        "success": True,
        "message": "Report deleted successfully",
        "reportId": result.report_id,
        "pdfMoved": result.pdf_moved,
    }


@router.get("/{report_id}/pdf")
def download_report_pdf(
    report_id: str,
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    caller: Caller = Depends(get_download_caller),
):
    _, path = lifecycle.artifact_for(report_id, caller)
    return pdf_response(path, path.name)


@router.post("/{report_id}/regenerate-pdf")
def regenerate_report_pdf(
    report_id: str,
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    caller: Caller = Depends(get_caller),
):
    outcome = lifecycle.regenerate(report_id, caller)
    return {
        "success": True,
        "message": "PDF regenerated successfully",
        "pdfPath": str(outcome.pdf_path),
        "report": report_to_dict(outcome.report),
    }
