from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
import structlog

from ..auth.security import get_caller, get_download_caller
from ..models.models import Project, User
from ..reports.lifecycle import AdminReportView, BulkDeleteSummary, ReportLifecycle
from ..schemas.reports import ReportIdsRequest
from ..services.permissions import REPORTS_ADMIN_VIEW, Caller
from ..services.users import user_to_dict
from .reports import get_lifecycle, pdf_response, report_to_dict


log = structlog.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _project_info(p: Optional[Project]) -> Optional[Dict[str, Any]]:
    if p is None:
        return None
    return {"id": p.id, "name": p.name, "location": p.location, "clientName": p.client_name}


def _inspector_info(u: Optional[User]) -> Optional[Dict[str, Any]]:
    return user_to_dict(u) if u is not None else None


def _view_to_dict(v: AdminReportView) -> Dict[str, Any]:
    data = report_to_dict(v.report)
    data.update({
        "projectInfo": _project_info(v.project),
        "inspectorInfo": _inspector_info(v.inspector),
        "pdfExists": v.pdf_path is not None,
        "pdfSize": v.pdf_size_kb,
        "pdfFileName": v.pdf_path.name if v.pdf_path is not None else None,
    })
    return data


def _summary_body(message: str, s: BulkDeleteSummary, include_requested: bool = True) -> Dict[str, Any]:
    body = {
        "success": True,
        "message": message,
        "deletedReports": s.deleted_reports,
        "movedPDFs": s.moved_pdfs,
        "failedPDFs": s.failed_pdfs,
    }
    if include_requested:
        body["totalRequested"] = s.total_requested
    return body


@router.get("/reports")
def admin_list_reports(lifecycle: ReportLifecycle = Depends(get_lifecycle), caller: Caller = Depends(get_caller)):
    views = lifecycle.admin_overview(caller)
    return {
        "success": True,
        "totalReports": len(views),
        "reportsWithPDFs": sum(1 for v in views if v.pdf_path is not None),
        "reports": [_view_to_dict(v) for v in views],
    }


@router.get("/reports/stats")
def admin_report_stats(lifecycle: ReportLifecycle = Depends(get_lifecycle), caller: Caller = Depends(get_caller)):
    return {"success": True, "stats": lifecycle.stats(caller)}


@router.post("/reports/bulk-download")
def admin_bulk_download(
    payload: ReportIdsRequest,
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    caller: Caller = Depends(get_caller),
):
    available = lifecycle.download_manifest(payload.report_ids, caller)
    log.info("reports_bulk_download_requested", caller_id=caller.id, requested=len(payload.report_ids), available=len(available))
    return {
        "success": True,
        "message": f"Found {len(available)} valid PDFs out of {len(payload.report_ids)} requested",
        "availableReports": [
            {
                "id": report.id,
                "title": report.title,
                "pdfPath": report.pdf_path,
                "pdfFileName": path.name,
                "downloadUrl": f"/admin/reports/{report.id}/download",
            }
            for report, path in available
        ],
    }


# /bulk and /all must be registered before /{report_id}
@router.delete("/reports/bulk")
def admin_bulk_delete(
    payload: ReportIdsRequest,
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    caller: Caller = Depends(get_caller),
):
    summary = lifecycle.bulk_delete(payload.report_ids, caller)
    return _summary_body("Bulk deletion completed", summary)


@router.delete("/reports/all")
def admin_delete_all(lifecycle: ReportLifecycle = Depends(get_lifecycle), caller: Caller = Depends(get_caller)):
    summary = lifecycle.delete_all(caller)
    return _summary_body("All reports deleted successfully", summary, include_requested=False)


@router.get("/reports/{report_id}/download")
def admin_download_report(
    report_id: str,
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    caller: Caller = Depends(get_download_caller),
):
    report, path = lifecycle.artifact_for(report_id, caller, action=REPORTS_ADMIN_VIEW)
    log.info("report_pdf_downloaded", report_id=report.id, caller_id=caller.id)
    return pdf_response(path, f"report-{report.id}.pdf")


@router.delete("/reports/{report_id}")
def admin_delete_report(
    report_id: str,
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    caller: Caller = Depends(get_caller),
):
    result = lifecycle.delete(report_id, caller)
    return {
        "success": True,
        "message": "Report deleted successfully",
        "pdfMoved": result.pdf_moved,
        "reportId": result.report_id,
    }
