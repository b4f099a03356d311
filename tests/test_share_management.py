"""Staff share-link management: create, list, update, revoke."""
from datetime import timedelta

from nutrivault.models import DocumentShare, Patient, utc_now
from nutrivault.security_utils import create_jwt_token, verify_password_bcrypt


def create_share(client, auth_headers, document, patient, **payload):
    return client.post(
        f"/api/documents/{document.id}/share-links",
        json={"patient_id": patient.id, **payload},
        headers=auth_headers,
    )


class TestAuthentication:
    def test_requires_bearer_token(self, client, document, patient):
        response = client.post(
            f"/api/documents/{document.id}/share-links", json={"patient_id": patient.id}
        )

        assert response.status_code == 401

    def test_rejects_invalid_token(self, client, document, patient):
        response = client.post(
            f"/api/documents/{document.id}/share-links",
            json={"patient_id": patient.id},
            headers={"Authorization": "Bearer not.a.jwt"},
        )

        assert response.status_code == 401

    def test_rejects_inactive_user(self, client, db, staff_user, document, patient, auth_headers):
        staff_user.is_active = False
        db.commit()

        response = create_share(client, auth_headers, document, patient)

        assert response.status_code == 401

    def test_rejects_expired_token(self, client, staff_user, document, patient):
        token = create_jwt_token({"sub": str(staff_user.id)}, expires_delta=timedelta(minutes=-5))

        response = create_share(
            client, {"Authorization": f"Bearer {token}"}, document, patient
        )

        assert response.status_code == 401


class TestCreateShareLink:
    def test_creates_share_with_hex_token(self, client, db, auth_headers, document, patient, staff_user):
        response = create_share(client, auth_headers, document, patient, notes="Week 1 plan")

        assert response.status_code == 201
        body = response.json()
        assert len(body["token"]) == 64
        int(body["token"], 16)
        assert body["share_url"].endswith(f"/shared/{body['token']}")
        assert body["download_count"] == 0
        assert body["is_active"] is True
        assert body["is_password_protected"] is False
        assert body["sent_via"] == "link"
        assert body["created_by"] == staff_user.id
        assert body["notes"] == "Week 1 plan"

        share = db.query(DocumentShare).filter(DocumentShare.id == body["id"]).one()
        assert share.patient_id == patient.id

    def test_password_is_stored_hashed(self, client, db, auth_headers, document, patient):
        response = create_share(client, auth_headers, document, patient, password="secret12")

        body = response.json()
        assert body["is_password_protected"] is True
        share = db.query(DocumentShare).filter(DocumentShare.id == body["id"]).one()
        assert share.password_hash != "secret12"
        assert verify_password_bcrypt("secret12", share.password_hash)

    def test_accepts_timezone_aware_expiry(self, client, auth_headers, document, patient):
        expires = (utc_now() + timedelta(days=3)).isoformat() + "+00:00"

        response = create_share(
            client, auth_headers, document, patient, expires_at=expires, max_downloads=3
        )

        assert response.status_code == 201
        assert response.json()["max_downloads"] == 3
        assert response.json()["is_expired"] is False

    def test_rejects_short_password(self, client, auth_headers, document, patient):
        response = create_share(client, auth_headers, document, patient, password="abc")

        assert response.status_code == 422

    def test_rejects_past_expiry(self, client, auth_headers, document, patient):
        past = (utc_now() - timedelta(days=1)).isoformat()

        response = create_share(client, auth_headers, document, patient, expires_at=past)

        assert response.status_code == 422

    def test_rejects_zero_max_downloads(self, client, auth_headers, document, patient):
        response = create_share(client, auth_headers, document, patient, max_downloads=0)

        assert response.status_code == 422

    def test_unknown_patient_is_404(self, client, auth_headers, document):
        response = client.post(
            f"/api/documents/{document.id}/share-links",
            json={"patient_id": 9999},
            headers=auth_headers,
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "Patient not found"

    def test_unknown_document_is_404(self, client, auth_headers, patient):
        response = client.post(
            "/api/documents/9999/share-links",
            json={"patient_id": patient.id},
            headers=auth_headers,
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "Document not found"

    def test_created_link_is_usable(self, client, auth_headers, document, patient):
        token = create_share(client, auth_headers, document, patient, max_downloads=1).json()["token"]

        assert client.get(f"/public/documents/{token}/download").status_code == 200
        assert client.get(f"/public/documents/{token}/download").status_code == 403


class TestListShares:
    def test_lists_shares_with_access_logs(self, client, auth_headers, document, make_share):
        older = make_share()
        newer = make_share(password="testpass123")
        client.get(f"/public/documents/{older.token}")
        client.get(f"/public/documents/{older.token}/download")

        response = client.get(f"/api/documents/{document.id}/shares", headers=auth_headers)

        assert response.status_code == 200
        shares = response.json()
        assert [s["id"] for s in shares] == [newer.id, older.id]
        older_logs = shares[1]["access_logs"]
        assert [log["action"] for log in older_logs] == ["download", "view"]
        assert shares[0]["access_logs"] == []

    def test_unknown_document_is_404(self, client, auth_headers):
        response = client.get("/api/documents/9999/shares", headers=auth_headers)

        assert response.status_code == 404


class TestPatientShares:
    def test_lists_shares_sent_to_patient(self, client, db, auth_headers, make_document, make_share):
        handout = make_document(file_name="handout.pdf")
        first = make_share()
        second = make_share(target_document=handout, password="testpass123")
        other_patient = Patient(first_name="Jane", last_name="Roe", email="jane@example.com")
        db.add(other_patient)
        db.commit()
        make_share(patient_id=other_patient.id)

        response = client.get(f"/api/documents/patient/{first.patient_id}/shares", headers=auth_headers)

        assert response.status_code == 200
        shares = response.json()
        assert [s["id"] for s in shares] == [second.id, first.id]
        assert shares[0]["document_id"] == handout.id
        assert shares[0]["is_password_protected"] is True
        assert all(s["access_logs"] is None for s in shares)

    def test_unknown_patient_is_404(self, client, auth_headers):
        response = client.get("/api/documents/patient/9999/shares", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"] == "Patient not found"

    def test_requires_authentication(self, client, patient):
        response = client.get(f"/api/documents/patient/{patient.id}/shares")

        assert response.status_code == 401


class TestUpdateShare:
    def test_updates_limits_and_notes(self, client, auth_headers, make_share, future):
        share = make_share()

        response = client.patch(
            f"/api/documents/shares/{share.id}",
            json={"max_downloads": 5, "notes": "Resent", "expires_at": future.isoformat()},
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["max_downloads"] == 5
        assert body["notes"] == "Resent"
        assert body["expires_at"] is not None

    def test_explicit_null_clears_limits(self, client, auth_headers, make_share, future):
        share = make_share(max_downloads=1, download_count=1, expires_at=future)

        response = client.patch(
            f"/api/documents/shares/{share.id}",
            json={"max_downloads": None, "expires_at": None},
            headers=auth_headers,
        )

        body = response.json()
        assert body["max_downloads"] is None
        assert body["expires_at"] is None
        assert body["is_accessible"] is True

    def test_omitted_fields_are_untouched(self, client, auth_headers, make_share):
        share = make_share(max_downloads=4, notes="keep me")

        response = client.patch(
            f"/api/documents/shares/{share.id}", json={}, headers=auth_headers
        )

        assert response.json()["max_downloads"] == 4
        assert response.json()["notes"] == "keep me"

    def test_sets_and_clears_password(self, client, auth_headers, make_share):
        share = make_share()
        url = f"/api/documents/shares/{share.id}"

        protected = client.patch(url, json={"password": "newpass"}, headers=auth_headers)
        cleared = client.patch(url, json={"password": ""}, headers=auth_headers)

        assert protected.json()["is_password_protected"] is True
        assert cleared.json()["is_password_protected"] is False

    def test_cannot_reactivate_revoked_share(self, client, auth_headers, make_share):
        share = make_share(is_active=False)

        response = client.patch(
            f"/api/documents/shares/{share.id}", json={"is_active": True}, headers=auth_headers
        )

        assert response.status_code == 400

    def test_unknown_share_is_404(self, client, auth_headers):
        response = client.patch(
            "/api/documents/shares/9999", json={"notes": "x"}, headers=auth_headers
        )

        assert response.status_code == 404


class TestRevokeShare:
    def test_revoke_keeps_row_and_blocks_access(self, client, db, auth_headers, make_share):
        share = make_share()

        response = client.delete(f"/api/documents/shares/{share.id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"message": "Share link revoked successfully"}
        db.expire_all()
        stored = db.query(DocumentShare).filter(DocumentShare.id == share.id).one()
        assert stored.is_active is False

        download = client.get(f"/public/documents/{share.token}/download")
        assert download.status_code == 403
        assert download.json()["error"] == "This share link has been revoked"

    def test_revoke_is_idempotent(self, client, auth_headers, make_share):
        share = make_share(is_active=False)

        response = client.delete(f"/api/documents/shares/{share.id}", headers=auth_headers)

        assert response.status_code == 200
