from app.constants import MAX_FILE_SIZE
from app.models import AuditAction, AuditLog, Document

from conftest import auth_headers, make_case

API = "/api/v1/documents"
PDF = b"%PDF-1.4 sample agreement"


def upload(client, owner, content=PDF, filename="agreement.pdf", content_type="application/pdf", **form):
    return client.post(
        f"{API}/",
        files={"file": (filename, content, content_type)},
        data=form,
        headers=auth_headers(owner),
    )


class TestUpload:
    def test_upload_pdf(self, client, db, user, external_services):
        response = upload(client, user, description="Rent agreement")

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["original_name"] == "agreement.pdf"
        assert data["mime_type"] == "application/pdf"
        assert data["size"] == len(PDF)
        assert data["type"] == "GENERAL"
        assert data["storage_path"].startswith(f"{user.id}/")
        assert data["storage_url"] == f"https://files.test/{data['storage_path']}"
        external_services["upload"].assert_called_once()

    def test_rejects_disallowed_type(self, client, user, external_services):
        response = upload(client, user, content=b"MZ", filename="setup.exe", content_type="application/x-msdownload")

        assert response.status_code == 400
        external_services["upload"].assert_not_called()

    def test_rejects_oversized_file(self, client, user, external_services):
        response = upload(client, user, content=b"0" * (MAX_FILE_SIZE + 1))

        assert response.status_code == 400
        assert "10MB" in response.json()["message"]
        external_services["upload"].assert_not_called()

    def test_case_upload_is_audited(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer)
        response = upload(client, user, case_id=case.id, type="CASE_DOCUMENT")

        assert response.status_code == 201
        audit = db.query(AuditLog).filter(AuditLog.case_id == case.id).one()
        assert audit.action == AuditAction.DOCUMENT_ADDED

    def test_case_upload_requires_access(self, client, db, user, other_user, lawyer):
        case = make_case(db, user, lawyer)
        assert upload(client, other_user, case_id=case.id).status_code == 403


class TestDocumentAccess:
    def test_list_own_documents(self, client, user, other_user):
        upload(client, user)
        upload(client, other_user)

        data = client.get(f"{API}/", headers=auth_headers(user)).json()["data"]
        assert len(data) == 1

    def test_sharing_grants_read_access(self, client, user, other_user):
        document_id = upload(client, user).json()["data"]["id"]
        assert client.get(f"{API}/{document_id}", headers=auth_headers(other_user)).status_code == 403

        response = client.post(
            f"{API}/{document_id}/share", json={"user_ids": [other_user.id, user.id]}, headers=auth_headers(user)
        )
        assert response.json()["data"]["shared_with"] == [other_user.id]
        assert client.get(f"{API}/{document_id}", headers=auth_headers(other_user)).status_code == 200

        download = client.get(f"{API}/{document_id}/download", headers=auth_headers(other_user)).json()["data"]
        assert download["url"] == "https://files.test/signed?token=abc"
        assert download["expires_in"] == 3600

    def test_only_owner_shares(self, client, user, other_user, admin):
        document_id = upload(client, user).json()["data"]["id"]
        response = client.post(f"{API}/{document_id}/share", json={"user_ids": [admin.id]}, headers=auth_headers(admin))
        assert response.status_code == 403

    def test_update_visibility(self, client, user, other_user):
        document_id = upload(client, user).json()["data"]["id"]
        client.put(f"{API}/{document_id}", json={"is_public": True}, headers=auth_headers(user))
        assert client.get(f"{API}/{document_id}", headers=auth_headers(other_user)).status_code == 200

    def test_delete_is_soft_and_removes_file(self, client, db, user, lawyer, external_services):
        case = make_case(db, user, lawyer)
        document_id = upload(client, user, case_id=case.id).json()["data"]["id"]

        assert client.delete(f"{API}/{document_id}", headers=auth_headers(user)).status_code == 200
        external_services["delete"].assert_called_once()
        assert db.get(Document, document_id).deleted_at is not None
        assert client.get(f"{API}/{document_id}", headers=auth_headers(user)).status_code == 404
        assert db.query(AuditLog).filter(AuditLog.action == AuditAction.DOCUMENT_REMOVED).count() == 1
