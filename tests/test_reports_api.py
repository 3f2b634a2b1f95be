from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from constructrs.errors import RenderError
from constructrs.models.models import Report, new_object_id


SCENARIO = {
    "title": "Foundation Check",
    "jobname": "Site A",
    "inspectionType": "safety",
    "findings": "OK",
    "projectId": None,
    "inspectorId": None,
}


def _auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _create_report(client: TestClient, token: str, **overrides) -> dict:
    payload = {**SCENARIO, **overrides}
    response = client.post("/reports", json=payload, headers=_auth_header(token))
    assert response.status_code == 201, response.text
    return response.json()


def test_create_report_names_artifact(client: TestClient, make_user: Callable) -> None:
    _, token = make_user("inspector")
    body = _create_report(client, token)
    assert body["success"] is True
    assert body["pdfGenerated"] is True
    assert re.fullmatch(r"\d{4}\.\d{2}\.\d{2}_SiteA_safety_XX(_\d+)?\.pdf", Path(body["pdfPath"]).name)
    assert body["report"]["status"] == "submitted"
    assert body["report"]["isDraft"] is False
    assert Path(body["pdfPath"]).read_bytes().startswith(b"%PDF")


def test_get_after_create_reflects_artifact(client: TestClient, make_user: Callable) -> None:
    _, token = make_user("inspector")
    created = _create_report(client, token)
    response = client.get(f"/reports/{created['reportId']}", headers=_auth_header(token))
    assert response.status_code == 200
    report = response.json()["report"]
    assert report["pdfPath"] == created["pdfPath"]
    assert report["pdfAvailable"] is True
    assert report["findings"] == "OK"


def test_create_requires_authentication(client: TestClient) -> None:
    response = client.post("/reports", json=SCENARIO)
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Not authenticated"}


def test_create_without_title_is_rejected(client: TestClient, make_user: Callable) -> None:
    _, token = make_user("inspector")
    response = client.post("/reports", json={"content": "no title"}, headers=_auth_header(token))
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert "title: Title is required" in body["details"]


def test_legacy_top_level_keys_fold_into_extra_fields(client: TestClient, make_user: Callable) -> None:
    _, token = make_user("inspector")
    body = _create_report(client, token, safetyNotes="Hard hats", approved=False, extraFields={"crew": 4})
    assert body["report"]["extraFields"] == {"safetyNotes": "Hard hats", "approved": False, "crew": 4}


def test_edit_with_legacy_key_keeps_other_extra_fields(client: TestClient, make_user: Callable) -> None:
    _, token = make_user("inspector")
    created = _create_report(
        client,
        token,
        tags=["a", "b"],
        priority="low",
        laborBreakdown=[{"position": "Carpenter", "quantity": 2, "hours": 8}],
        weather={"temperature": 68, "description": "Clear"},
    )
    response = client.put(f"/reports/{created['reportId']}", json={"priority": "high"}, headers=_auth_header(token))
    assert response.status_code == 200, response.text

    report = client.get(f"/reports/{created['reportId']}", headers=_auth_header(token)).json()["report"]
    assert report["extraFields"] == {"tags": ["a", "b"], "priority": "high"}
    assert report["laborBreakdown"] == created["report"]["laborBreakdown"]
    assert report["weather"] == created["report"]["weather"]
    assert report["findings"] == "OK"


def test_create_survives_render_failure(app: FastAPI, client: TestClient, make_user: Callable, monkeypatch: pytest.MonkeyPatch) -> None:
    _, token = make_user("inspector")

    def boom(*args, **kwargs):
        raise RenderError("PDF generation failed: out of fonts")

    monkeypatch.setattr(app.state.renderer, "render", boom)
    response = client.post("/reports", json=SCENARIO, headers=_auth_header(token))
    assert response.status_code == 201
    body = response.json()
    assert body["pdfGenerated"] is False
    assert body["pdfPath"] is None
    assert "out of fonts" in body["pdfError"]

    fetched = client.get(f"/reports/{body['reportId']}", headers=_auth_header(token)).json()["report"]
    assert fetched["pdfPath"] is None
    assert fetched["pdfAvailable"] is False


def test_save_draft(client: TestClient, make_user: Callable) -> None:
    _, token = make_user("inspector")
    response = client.post("/reports/draft", json={"content": "half done"}, headers=_auth_header(token))
    assert response.status_code == 201
    report = response.json()["report"]
    assert report["status"] == "draft"
    assert report["isDraft"] is True
    assert report["pdfPath"] is None


def test_non_author_edit_is_forbidden_and_changes_nothing(client: TestClient, make_user: Callable) -> None:
    _, author = make_user("inspector")
    _, other = make_user("employee")
    created = _create_report(client, author)
    report_id = created["reportId"]

    response = client.put(f"/reports/{report_id}", json={"status": "approved"}, headers=_auth_header(other))
    assert response.status_code == 403
    assert response.json()["success"] is False

    report = client.get(f"/reports/{report_id}", headers=_auth_header(author)).json()["report"]
    assert report["status"] == "submitted"
    assert report["pdfPath"] == created["pdfPath"]
    assert report["pdfAvailable"] is True


def test_author_edit_rerenders_single_artifact(client: TestClient, make_user: Callable, settings) -> None:
    _, token = make_user("inspector")
    created = _create_report(client, token)
    response = client.put(
        f"/reports/{created['reportId']}",
        json={"jobname": "Site B", "recommendations": "Add bracing"},
        headers=_auth_header(token),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["pdfGenerated"] is True
    assert "_SiteB_" in body["pdfPath"]
    assert body["report"]["editedAt"] is not None
    assert body["report"]["title"] == "Foundation Check"
    assert [p.name for p in Path(settings.reports_dir).iterdir()] == [Path(body["pdfPath"]).name]


def test_manager_may_edit_any_report(client: TestClient, make_user: Callable) -> None:
    _, author = make_user("inspector")
    _, manager = make_user("project_manager")
    created = _create_report(client, author)
    response = client.put(f"/reports/{created['reportId']}", json={"status": "approved"}, headers=_auth_header(manager))
    assert response.status_code == 200
    assert response.json()["report"]["status"] == "approved"


def test_invalid_status_is_rejected(client: TestClient, make_user: Callable) -> None:
    _, token = make_user("inspector")
    created = _create_report(client, token)
    response = client.put(f"/reports/{created['reportId']}", json={"status": "bogus"}, headers=_auth_header(token))
    assert response.status_code == 400


def test_malformed_id_is_bad_request(client: TestClient, make_user: Callable) -> None:
    _, token = make_user("inspector")
    assert client.get("/reports/not-an-id", headers=_auth_header(token)).status_code == 400
    assert client.put("/reports/123", json={}, headers=_auth_header(token)).status_code == 400


def test_unknown_id_is_not_found(client: TestClient, make_user: Callable) -> None:
    _, token = make_user("inspector")
    response = client.get(f"/reports/{new_object_id()}", headers=_auth_header(token))
    assert response.status_code == 404
    assert response.json()["error"] == "Report not found"


def test_list_with_filters(client: TestClient, make_user: Callable) -> None:
    _, token = make_user("inspector")
    _create_report(client, token, jobid="J-100")
    _create_report(client, token, jobid="J-200", jobname="Other")
    response = client.get("/reports", params={"jobid": "J-100"}, headers=_auth_header(token))
    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["reports"][0]["jobid"] == "J-100"
    assert client.get("/reports", params={"projectId": "zzz"}, headers=_auth_header(token)).status_code == 400


def test_download_with_query_token(client: TestClient, make_user: Callable) -> None:
    _, token = make_user("inspector")
    created = _create_report(client, token)
    response = client.get(f"/reports/{created['reportId']}/pdf", params={"token": token})
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert Path(created["pdfPath"]).name in response.headers["content-disposition"]
    assert response.content.startswith(b"%PDF")


def test_download_without_token_is_unauthorized(client: TestClient, make_user: Callable) -> None:
    _, token = make_user("inspector")
    created = _create_report(client, token)
    assert client.get(f"/reports/{created['reportId']}/pdf").status_code == 401
    assert client.get(f"/reports/{created['reportId']}/pdf", params={"token": "garbage"}).status_code == 401


def test_download_missing_file_is_not_found(client: TestClient, make_user: Callable) -> None:
    _, token = make_user("inspector")
    created = _create_report(client, token)
    Path(created["pdfPath"]).unlink()
    response = client.get(f"/reports/{created['reportId']}/pdf", headers=_auth_header(token))
    assert response.status_code == 404
    assert response.json()["error"] == "PDF file not found"


def test_download_falls_back_to_output_directory(client: TestClient, make_user: Callable, settings, database) -> None:
    _, token = make_user("inspector")
    created = _create_report(client, token)
    name = Path(created["pdfPath"]).name
    session = database.session()
    try:
        report = session.get(Report, created["reportId"])
        report.pdf_path = f"/srv/old-host/generated-reports/{name}"
        session.commit()
    finally:
        session.close()
    response = client.get(f"/reports/{created['reportId']}/pdf", headers=_auth_header(token))
    assert response.status_code == 200
    assert response.content.startswith(b"%PDF")


def test_regenerate_pdf(client: TestClient, make_user: Callable) -> None:
    _, token = make_user("inspector")
    _, supervisor = make_user("supervisor")
    created = _create_report(client, token)
    response = client.post(f"/reports/{created['reportId']}/regenerate-pdf", headers=_auth_header(supervisor))
    assert response.status_code == 200
    body = response.json()
    assert body["pdfPath"] == created["pdfPath"]
    assert body["report"]["pdfGeneratedAt"] is not None


def test_regenerate_failure_is_server_error(app: FastAPI, client: TestClient, make_user: Callable, monkeypatch: pytest.MonkeyPatch) -> None:
    _, token = make_user("inspector")
    created = _create_report(client, token)

    def boom(*args, **kwargs):
        raise RenderError("PDF generation failed: boom")

    monkeypatch.setattr(app.state.renderer, "render", boom)
    response = client.post(f"/reports/{created['reportId']}/regenerate-pdf", headers=_auth_header(token))
    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "PDF generation failed: boom"}
    assert Path(created["pdfPath"]).exists()


def test_delete_report_requires_admin(client: TestClient, make_user: Callable) -> None:
    _, token = make_user("inspector")
    _, admin = make_user("admin")
    created = _create_report(client, token)
    assert client.delete(f"/reports/{created['reportId']}", headers=_auth_header(token)).status_code == 403

    response = client.delete(f"/reports/{created['reportId']}", headers=_auth_header(admin))
    assert response.status_code == 200
    assert response.json()["pdfMoved"] is True
    assert client.get(f"/reports/{created['reportId']}", headers=_auth_header(admin)).status_code == 404
