"""End-to-end tests through the Flask routes."""

from __future__ import annotations

from urllib.parse import quote

from conftest import FILE_ID, OTHER_FILE_ID, sha256_hex, split

PAYLOAD = b"chunked upload payload " * 50


class TestHealth:
    def test_health(self, client) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "healthy"


class TestUploadScenario:
    def test_out_of_order_upload_then_expiry(self, client, post_chunk, clock) -> None:
        chunks = split(PAYLOAD, 3)

        r = post_chunk(chunks, 2)
        assert r.status_code == 200
        assert r.get_json()["received"] == 1

        r = post_chunk(chunks, 0)
        body = r.get_json()
        assert (body["received"], body["total"], body["status"]) == (2, 3, "pending")
        assert "finalReference" not in body

        r = post_chunk(chunks, 1)
        body = r.get_json()
        assert body["accepted"] is True
        assert body["status"] == "completed"
        assert body["finalReference"] == FILE_ID
        assert body["downloadUrl"] == f"/api/download/{FILE_ID}"

        r = client.get(f"/api/download/{FILE_ID}")
        assert r.status_code == 200
        assert r.data == PAYLOAD
        assert r.headers["Content-Length"] == str(len(PAYLOAD))
        assert r.headers["Content-Type"] == "application/octet-stream"
        assert 'filename="report.pdf"' in r.headers["Content-Disposition"]

        clock.advance(hours=1, ms=1)
        r = client.get(f"/api/download/{FILE_ID}")
        assert r.status_code == 410
        assert r.get_json()["error"] == "expired"

    def test_protected_upload(self, client, post_chunk) -> None:
        chunks = split(PAYLOAD, 2)
        for i in range(2):
            r = post_chunk(chunks, i, isProtected="true", credential="4821")
            assert r.status_code == 200

        r = client.get(f"/api/download/{FILE_ID}")
        assert r.status_code == 401
        assert r.get_json()["error"] == "authorization-required"

        r = client.get(f"/api/download/{FILE_ID}?credential=0000")
        assert r.status_code == 403
        assert r.get_json()["error"] == "invalid-credential"

        r = client.get(f"/api/download/{FILE_ID}?credential=4821")
        assert r.status_code == 200
        assert r.data == PAYLOAD

    def test_verify_probe(self, client, post_chunk) -> None:
        chunks = split(PAYLOAD, 1)
        post_chunk(chunks, 0, isProtected="true", credential="4821")

        r = client.post(f"/api/files/{FILE_ID}/verify", json={})
        assert r.status_code == 401
        r = client.post(f"/api/files/{FILE_ID}/verify", json={"credential": "1111"})
        assert r.status_code == 403
        r = client.post(f"/api/files/{FILE_ID}/verify", json={"credential": "4821"})
        assert r.get_json() == {"success": True, "fileName": "report.pdf", "isProtected": True}

    def test_wrong_digest_names_the_chunk(self, client, post_chunk) -> None:
        chunks = split(PAYLOAD, 2)
        post_chunk(chunks, 0)
        r = post_chunk(chunks, 1, chunkDigest=sha256_hex(b"something else"))
        body = r.get_json()
        assert r.status_code == 422
        assert body["accepted"] is False
        assert body["error"] == "integrity-mismatch"
        assert body["chunkIndex"] == 1

        info = client.get(f"/api/files/{FILE_ID}").get_json()
        assert info["receivedChunks"] == 1

        post_chunk(chunks, 1)
        assert client.get(f"/api/download/{FILE_ID}").data == PAYLOAD

    def test_duplicate_chunk_reported(self, post_chunk) -> None:
        chunks = split(PAYLOAD, 3)
        post_chunk(chunks, 0)
        body = post_chunk(chunks, 0).get_json()
        assert body["duplicate"] is True
        assert body["received"] == 1

    def test_non_ascii_file_name_preserved(self, client, post_chunk) -> None:
        chunks = split(PAYLOAD, 1)
        post_chunk(chunks, 0, fileName="résumé 2024.pdf")
        r = client.get(f"/api/download/{FILE_ID}")
        assert r.status_code == 200
        assert quote("résumé 2024.pdf", safe="") in r.headers["Content-Disposition"]
        assert client.get(f"/api/files/{FILE_ID}").get_json()["fileName"] == "résumé 2024.pdf"


class TestUploadValidation:
    def test_bad_file_id(self, post_chunk) -> None:
        r = post_chunk(split(PAYLOAD, 1), 0, fileId="12345670")
        assert r.status_code == 400
        assert r.get_json()["error"] == "invalid-request"

    def test_missing_field(self, client) -> None:
        r = client.post("/api/upload", data={"fileId": FILE_ID}, content_type="multipart/form-data")
        assert r.status_code == 400
        assert r.get_json()["accepted"] is False

    def test_non_numeric_field(self, post_chunk) -> None:
        r = post_chunk(split(PAYLOAD, 1), 0, totalChunks="many")
        assert r.status_code == 400

    def test_malformed_digest_is_rejected(self, post_chunk) -> None:
        r = post_chunk(split(PAYLOAD, 1), 0, chunkDigest="\u00e9" * 64)
        body = r.get_json()
        assert r.status_code == 400
        assert body["error"] == "invalid-request"
        assert body["chunkIndex"] == 0

    def test_protected_needs_four_digit_code(self, post_chunk) -> None:
        r = post_chunk(split(PAYLOAD, 1), 0, isProtected="true", credential="12a4")
        assert r.status_code == 400

    def test_chunk_after_completion_is_conflict(self, post_chunk) -> None:
        chunks = split(PAYLOAD, 1)
        post_chunk(chunks, 0)
        r = post_chunk(chunks, 0)
        assert r.status_code == 409
        assert r.get_json()["error"] == "stale-session"


class TestBusySession:
    def test_locked_session_answers_retryable_503(self, service, post_chunk) -> None:
        locks = service.ledger.locks
        locks.max_attempts = 1
        with locks.hold(FILE_ID):
            r = post_chunk(split(PAYLOAD, 2), 0)
        body = r.get_json()
        assert r.status_code == 503
        assert r.headers["Retry-After"] == "1"
        assert body["accepted"] is False
        assert body["error"] == "server-busy"
        assert body["retryable"] is True

        assert post_chunk(split(PAYLOAD, 2), 0).status_code == 200


class TestDownloadErrors:
    def test_unknown_file(self, client) -> None:
        r = client.get(f"/api/download/{OTHER_FILE_ID}")
        assert r.status_code == 404
        assert r.get_json()["error"] == "not-found"

    def test_invalid_id(self, client) -> None:
        assert client.get("/api/download/abc").status_code == 400

    def test_file_info_unknown(self, client) -> None:
        assert client.get(f"/api/files/{OTHER_FILE_ID}").status_code == 404


class TestCleanup:
    def test_requires_token(self, client) -> None:
        assert client.post("/api/cleanup").status_code == 401
        assert client.post("/api/cleanup?token=wrong").status_code == 401

    def test_refused_when_no_token_configured(self, app, client) -> None:
        app.config["CLEANUP_TOKEN"] = None
        assert client.post("/api/cleanup?token=").status_code == 401

    def test_reports_counts(self, client, post_chunk, clock) -> None:
        post_chunk(split(PAYLOAD, 1), 0)
        post_chunk(split(PAYLOAD, 2), 0, fileId=OTHER_FILE_ID)
        clock.advance(hours=25)

        r = client.post("/api/cleanup?token=test-token")
        body = r.get_json()
        assert r.status_code == 200
        assert body["expired"] == {"checked": 1, "removed": 1, "failed": 0}
        assert body["temp"] == {"checked": 1, "removed": 1, "failed": 0}

        again = client.get("/api/cleanup", headers={"X-Cleanup-Token": "test-token"}).get_json()
        assert again["expired"]["removed"] == 0
        assert again["temp"]["removed"] == 0

    def test_single_sweeps(self, client) -> None:
        assert set(client.post("/api/cleanup/expired?token=test-token").get_json()) == {"success", "expired"}
        assert set(client.post("/api/cleanup/temp?token=test-token").get_json()) == {"success", "temp"}


class TestHistory:
    def test_recent_uploads_listed(self, client, post_chunk) -> None:
        post_chunk(split(PAYLOAD, 1), 0)
        post_chunk(split(PAYLOAD, 2), 0, fileId=OTHER_FILE_ID)
        uploads = client.get("/api/history").get_json()["uploads"]
        statuses = {u["fileId"]: u["status"] for u in uploads}
        assert statuses == {FILE_ID: "completed", OTHER_FILE_ID: "pending"}

    def test_limit(self, client, post_chunk) -> None:
        post_chunk(split(PAYLOAD, 1), 0)
        post_chunk(split(PAYLOAD, 1), 0, fileId=OTHER_FILE_ID)
        assert len(client.get("/api/history?limit=1").get_json()["uploads"]) == 1
