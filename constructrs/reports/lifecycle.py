"""
Report lifecycle: persist, resolve related records, render, patch back.

The database record is authoritative. Nothing downstream of a committed write
(rendering, moving files) rolls that write back; those failures come back as
degraded outcomes (``CreatedArtifactFailed``, ``RenderFailed``, failed-move
counters) instead of exceptions. Input and authorization problems are
rejected before anything is written.
"""
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import AuthzError, NotFoundError, RenderError, StorageError, ValidationError
from ..models.models import Project, Report, User, utcnow
from ..schemas.reports import ReportCreate, ReportUpdate
from ..services import projects as project_service
from ..services.entity_store import EntityStore, is_valid_object_id, require_object_id
from ..services.permissions import (
    REPORT_CREATE,
    REPORT_DELETE,
    REPORT_EDIT_ANY,
    REPORT_READ,
    REPORT_REGENERATE,
    REPORTS_ADMIN_VIEW,
    Caller,
    can,
    is_manager_tier,
)
from ..storage.artifacts import ArtifactStore
from .pdf_renderer import PdfRenderer


log = structlog.get_logger(__name__)


@dataclass
class Created:
    report: Report
    pdf_path: Path


@dataclass
class CreatedArtifactFailed:
    """Record committed, artifact missing."""

    report: Report
    reason: str


@dataclass
class Rendered:
    report: Report
    pdf_path: Path


@dataclass
class RenderFailed:
    report: Report
    reason: str


@dataclass
class DeleteResult:
    report_id: str
    pdf_moved: bool
    backup_path: Optional[Path] = None


@dataclass
class BulkDeleteSummary:
    deleted_reports: int
    total_requested: int
    moved_pdfs: int
    failed_pdfs: int


@dataclass
class AdminReportView:
    report: Report
    project: Optional[Project]
    inspector: Optional[User]
    pdf_path: Optional[Path]
    pdf_size_kb: Optional[int]


CreateOutcome = Union[Created, CreatedArtifactFailed]
RenderOutcome = Union[Rendered, RenderFailed]


class ReportLifecycle:
    def __init__(self, db: Session, renderer: PdfRenderer, store: ArtifactStore):
        self.db = db
        self.renderer = renderer
        self.store = store
        self.reports: EntityStore[Report] = EntityStore(db, Report)
        self.projects: EntityStore[Project] = EntityStore(db, Project)
        self.users: EntityStore[User] = EntityStore(db, User)

    # Authorization

    @staticmethod
    def _authorize(caller: Optional[Caller], action: str) -> Caller:
        if caller is None:
            raise AuthzError("Authentication required")
        if not can(caller, action):
            raise AuthzError("Access denied. Insufficient permissions.")
        return caller

    @staticmethod
    def can_edit(report: Report, caller: Optional[Caller]) -> bool:
        if caller is None:
            return False
        if caller.id in (report.inspector_id, report.created_by):
            return True
        return is_manager_tier(caller) or can(caller, REPORT_EDIT_ANY)

    # Lookups

    def _require(self, report_id: str) -> Report:
        report = self.reports.find_by_id(report_id, "reportId")
        if report is None:
            raise NotFoundError("Report not found")
        return report

    def _lenient(self, store: EntityStore, entity_id: Optional[str]):
        """Related-record lookup that never fails the caller."""
        if not entity_id or not is_valid_object_id(entity_id):
            return None
        try:
            return store.find_by_id(entity_id)
        except SQLAlchemyError as e:
            log.warning("report_related_lookup_failed", entity=store.model.__name__, entity_id=entity_id, error=str(e))
            return None

    def _related(self, report: Report) -> Tuple[Optional[Project], Optional[User]]:
        return self._lenient(self.projects, report.project_id), self._lenient(self.users, report.inspector_id)

    @staticmethod
    def _check_refs(values: Dict[str, Any]) -> None:
        for key, label in (("project_id", "projectId"), ("inspector_id", "inspectorId")):
            if values.get(key) is not None:
                values[key] = require_object_id(values[key], label)

    # Create

    def _insert(self, values: Dict[str, Any], caller: Caller) -> Report:
        values["labor_breakdown"] = values.get("labor_breakdown") or []
        values["equipment_breakdown"] = values.get("equipment_breakdown") or []
        values["extra_fields"] = values.get("extra_fields") or {}
        values["created_by"] = caller.id
        values["pdf_path"] = None
        report = self.reports.insert(values)
        project = self._lenient(self.projects, report.project_id)
        if project is not None:
            project_service.add_report(self.db, project, report)
        return report

    def create(self, data: ReportCreate, caller: Optional[Caller]) -> CreateOutcome:
        caller = self._authorize(caller, REPORT_CREATE)
        values = data.to_columns()
        if not (values.get("title") or "").strip():
            raise ValidationError("Validation failed", ["title: Title is required"])
        self._check_refs(values)
        values["status"] = values.get("status") or "submitted"
        values["is_draft"] = values["status"] == "draft"

        report = self._insert(values, caller)
        log.info("report_created", report_id=report.id, caller_id=caller.id)

        project, inspector = self._related(report)
        try:
            path = self.renderer.render(report, project, inspector)
        except RenderError as e:
            log.warning("report_created_without_pdf", report_id=report.id, error=e.message)
            return CreatedArtifactFailed(report, e.message)
        self._attach(report, path)
        return Created(report, path)

    def save_draft(self, data: ReportCreate, caller: Optional[Caller]) -> Report:
        caller = self._authorize(caller, REPORT_CREATE)
        values = data.to_columns()
        self._check_refs(values)
        values["status"] = "draft"
        values["is_draft"] = True
        report = self._insert(values, caller)
        log.info("report_draft_saved", report_id=report.id, caller_id=caller.id)
        return report

    @staticmethod
    def _merge_extra_fields(stored: Optional[Dict[str, Any]], patch: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Patch keys overwrite stored ones; a ``None`` value drops the key, ``extraFields: null`` clears all."""
        if patch is None:
            return {}
        merged = {**(stored or {}), **patch}
        return {k: v for k, v in merged.items() if v is not None}

    def _attach(self, report: Report, path: Path) -> None:
        report.pdf_path = str(path)
        report.pdf_generated_at = utcnow()
        self.db.commit()
        self.db.refresh(report)

    # Edit / regenerate

    def edit(self, report_id: str, patch: ReportUpdate, caller: Optional[Caller]) -> RenderOutcome:
        if caller is None:
            raise AuthzError("Authentication required")
        report = self._require(report_id)
        if not self.can_edit(report, caller):
            raise AuthzError("You can only edit your own reports")
        changes = patch.to_columns(exclude_unset=True)
        self._check_refs(changes)
        for key in ("labor_breakdown", "equipment_breakdown"):
            if key in changes and changes[key] is None:
                changes[key] = []
        if "extra_fields" in changes:
            changes["extra_fields"] = self._merge_extra_fields(report.extra_fields, changes["extra_fields"])
        if "status" in changes and changes["status"] is None:
            del changes["status"]

        old_project_id = report.project_id
        old_artifact = self.store.resolve(report.pdf_path)

        for key, value in changes.items():
            setattr(report, key, value)
        if report.status != "draft":
            report.is_draft = False
        report.edited_by = caller.id
        report.edited_at = utcnow()
        report.pdf_path = None
        report.pdf_generated_at = None
        self.db.commit()
        self.store.discard(old_artifact)

        if report.project_id != old_project_id:
            self._move_project_link(report, old_project_id)
        log.info("report_edited", report_id=report.id, caller_id=caller.id, fields=sorted(changes))

        project, inspector = self._related(report)
        try:
            path = self.renderer.render(report, project, inspector)
        except RenderError as e:
            return RenderFailed(report, e.message)
        self._attach(report, path)
        return Rendered(report, path)

    def _move_project_link(self, report: Report, old_project_id: Optional[str]) -> None:
        old_project = self._lenient(self.projects, old_project_id)
        if old_project is not None:
            project_service.remove_report(self.db, old_project, report.id)
        new_project = self._lenient(self.projects, report.project_id)
        if new_project is not None:
            project_service.add_report(self.db, new_project, report)

    def regenerate(self, report_id: str, caller: Optional[Caller]) -> Rendered:
        """Re-render from stored fields; the previous file goes only once the new one exists."""
        if caller is None:
            raise AuthzError("Authentication required")
        report = self._require(report_id)
        if not (self.can_edit(report, caller) or can(caller, REPORT_REGENERATE)):
            raise AuthzError("Access denied. Insufficient permissions.")
        old_artifact = self.store.resolve(report.pdf_path)
        project, inspector = self._related(report)
        path = self.renderer.render(report, project, inspector, replacing=str(old_artifact) if old_artifact else None)
        if old_artifact is not None and self.store.canonical(old_artifact) != self.store.canonical(path):
            self.store.discard(old_artifact)
        self._attach(report, path)
        log.info("report_pdf_regenerated", report_id=report.id, caller_id=caller.id)
        return Rendered(report, path)

    # Delete

    def _retire_artifact(self, report: Report) -> Tuple[bool, bool, Optional[Path]]:
        """Relocate a report's artifact. Returns (had_artifact, moved, backup_path)."""
        path = self.store.resolve(report.pdf_path)
        if path is None:
            return False, False, None
        try:
            return True, True, self.store.relocate(path)
        except StorageError as e:
            log.warning("report_artifact_move_failed", report_id=report.id, path=str(path), error=e.message)
            return True, False, None

    def _unlink_projects(self, links: Iterable[Tuple[str, Optional[str]]]) -> None:
        """Drop back-references for deleted ``(report_id, project_id)`` pairs."""
        by_project: Dict[str, List[str]] = {}
        for report_id, project_id in links:
            if project_id:
                by_project.setdefault(project_id, []).append(report_id)
        for project_id, report_ids in by_project.items():
            project = self._lenient(self.projects, project_id)
            if project is not None:
                project_service.remove_reports(self.db, project, report_ids)

    def delete(self, report_id: str, caller: Optional[Caller]) -> DeleteResult:
        caller = self._authorize(caller, REPORT_DELETE)
        report = self._require(report_id)
        link = (report.id, report.project_id)
        _, moved, backup = self._retire_artifact(report)
        self.db.delete(report)
        self.db.commit()
        self._unlink_projects([link])
        log.info("report_deleted", report_id=link[0], caller_id=caller.id, pdf_moved=moved)
        return DeleteResult(report_id=link[0], pdf_moved=moved, backup_path=backup)

    def _delete_batch(self, reports: List[Report], total_requested: int) -> BulkDeleteSummary:
        links = [(r.id, r.project_id) for r in reports]
        moved = failed = 0
        for report in reports:
            had, ok, _ = self._retire_artifact(report)
            if had:
                moved += int(ok)
                failed += int(not ok)
        deleted = self.reports.delete_many([rid for rid, _ in links]) if links else 0
        self._unlink_projects(links)
        return BulkDeleteSummary(
            deleted_reports=deleted,
            total_requested=total_requested,
            moved_pdfs=moved,
            failed_pdfs=failed,
        )

    def bulk_delete(self, report_ids: List[str], caller: Optional[Caller]) -> BulkDeleteSummary:
        caller = self._authorize(caller, REPORT_DELETE)
        if not report_ids:
            raise ValidationError("Report IDs array is required", ["reportIds: at least one id is required"])
        invalid = [i for i in report_ids if not is_valid_object_id(i)]
        if invalid:
            raise ValidationError("Invalid report ID format", [f"reportIds: invalid id {i!r}" for i in invalid])
        ids = list(dict.fromkeys(i.lower() for i in report_ids))
        summary = self._delete_batch(self.reports.find_many(ids), len(report_ids))
        log.info("reports_bulk_deleted", caller_id=caller.id, deleted=summary.deleted_reports,
                 moved=summary.moved_pdfs, failed=summary.failed_pdfs)
        return summary

    def delete_all(self, caller: Optional[Caller]) -> BulkDeleteSummary:
        caller = self._authorize(caller, REPORT_DELETE)
        reports = self.reports.find_all()
        summary = self._delete_batch(reports, len(reports))
        log.warning("reports_all_deleted", caller_id=caller.id, deleted=summary.deleted_reports)
        return summary

    # Reads

    def get(self, report_id: str, caller: Optional[Caller]) -> Report:
        self._authorize(caller, REPORT_READ)
        return self._require(report_id)

    def list(
        self,
        caller: Optional[Caller],
        project_id: Optional[str] = None,
        status: Optional[str] = None,
        jobid: Optional[str] = None,
    ) -> List[Report]:
        self._authorize(caller, REPORT_READ)
        query = self.db.query(Report)
        if project_id:
            query = query.filter(Report.project_id == require_object_id(project_id, "projectId"))
        if status:
            query = query.filter(Report.status == status)
        if jobid:
            query = query.filter(Report.jobid == jobid)
        return query.order_by(Report.created_at.desc()).all()

    def artifact_for(self, report_id: str, caller: Optional[Caller], action: str = REPORT_READ) -> Tuple[Report, Path]:
        self._authorize(caller, action)
        report = self._require(report_id)
        path = self.store.resolve(report.pdf_path)
        if path is None:
            raise NotFoundError("PDF file not found")
        return report, path

    # Admin views

    def admin_overview(self, caller: Optional[Caller]) -> List[AdminReportView]:
        self._authorize(caller, REPORTS_ADMIN_VIEW)
        views = []
        for report in self.db.query(Report).order_by(Report.created_at.desc()).all():
            project, inspector = self._related(report)
            path = self.store.resolve(report.pdf_path)
            size = self._artifact_size(path)
            if size is None:
                path = None
            views.append(AdminReportView(report, project, inspector, path, None if size is None else round(size / 1024)))
        return views

    @staticmethod
    def _artifact_size(path: Optional[Path]) -> Optional[int]:
        # The file may be relocated between resolve() and stat()
        if path is None:
            return None
        try:
            return path.stat().st_size
        except OSError as e:
            log.warning("artifact_stat_failed", path=str(path), error=str(e))
            return None

    def stats(self, caller: Optional[Caller]) -> Dict[str, Any]:
        self._authorize(caller, REPORTS_ADMIN_VIEW)
        reports = self.reports.find_all()
        with_pdf = 0
        total_size = 0
        for report in reports:
            size = self._artifact_size(self.store.resolve(report.pdf_path))
            if size is not None:
                with_pdf += 1
                total_size += size
        return {
            "totalReports": len(reports),
            "reportsWithPDFs": with_pdf,
            "reportsWithoutPDFs": len(reports) - with_pdf,
            "totalPDFSize": round(total_size / 1024 / 1024, 2),  # MB
            "averagePDFSize": round(total_size / with_pdf / 1024) if with_pdf else 0,  # KB
            "reportsByProject": dict(Counter(r.project_id or "unassigned" for r in reports)),
            "reportsByInspector": dict(Counter(r.inspector_id or "unassigned" for r in reports)),
            "reportsByStatus": dict(Counter(r.status for r in reports)),
        }

    def download_manifest(self, report_ids: List[str], caller: Optional[Caller]) -> List[Tuple[Report, Path]]:
        self._authorize(caller, REPORTS_ADMIN_VIEW)
        if not report_ids:
            raise ValidationError("Report IDs array is required", ["reportIds: at least one id is required"])
        available = []
        for report in self.reports.find_many(report_ids):
            path = self.store.resolve(report.pdf_path)
            if path is not None:
                available.append((report, path))
        if not available:
            raise NotFoundError("No valid PDFs found for the specified reports")
        return available
