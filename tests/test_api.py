"""
FastAPI endpoint tests for the POA Compliance Validator API.

Uses httpx + FastAPI TestClient: no real server, no OCR engine. The
pipeline gets a fake extractor and every test gets a fresh quota store.
"""

from __future__ import annotations

from datetime import date

import api
import pytest
from api import app
from fastapi.testclient import TestClient

from poa_validator.config import Settings
from poa_validator.exceptions import ExtractionFailure
from poa_validator.models import ExtractedText, Role, Tier
from poa_validator.pipeline import DocumentValidationPipeline
from poa_validator.quota import InMemoryQuotaStore, QuotaGate

client = TestClient(app)

# Commission far in the future so the run date never expires it
POA_TEXT = """\
DURABLE POWER OF ATTORNEY FOR DISPOSITION OF REMAINS
Pursuant to the California Probate Code, I, Mary Principal, authorize
my agent to arrange for the cremation of my body and the final
disposition of remains.
Date: 03/01/2024
Principal Signature: Mary Principal
Witness 1: Robert Roe
Witness 2: Sandra Smith
State of California, County of Alameda
Notary Public: Jane Doe
Commission Number: 1234567
Commission Expires: 12/31/2099
"""

HEADERS = {"X-User-Id": "user-1"}


class _FakeExtractor:
    def extract(self, document_bytes: bytes, filename: str) -> ExtractedText:
        if not filename.endswith((".pdf", ".png")):
            raise ExtractionFailure("Unsupported file format. Please upload a PDF or image file.")
        return ExtractedText(text=POA_TEXT, confidence=95)


@pytest.fixture(autouse=True)
def _wire_app() -> InMemoryQuotaStore:
    """Initialise pipeline and quota gate for each test (bypasses lifespan)."""
    settings = Settings(max_upload_bytes=1024)
    store = InMemoryQuotaStore(default_tier=Tier.FREE)
    api._pipeline = DocumentValidationPipeline(extractor=_FakeExtractor(), settings=settings)
    api._gate = QuotaGate(store)
    yield store  # type: ignore[misc]
    api._pipeline = None
    api._gate = None


class TestHealthEndpoint:
    def test_health_returns_200(self) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200

    def test_health_response_shape(self) -> None:
        data = client.get("/health").json()
        assert data == {"status": "healthy", "version": "1.0.0"}

    def test_uninitialised_returns_503(self) -> None:
        api._pipeline = None
        assert client.get("/health").status_code == 503


class TestValidateEndpoint:
    def test_compliant_text_passes(self) -> None:
        resp = client.post("/validate", json={"text": POA_TEXT, "ocr_confidence": 91}, headers=HEADERS)
        assert resp.status_code == 200
        data = resp.json()
        assert data["result"]["overall"] == "pass"
        assert data["result"]["ocr_confidence"] == 91
        assert data["result"]["summary"]["passed"] == 3

    def test_quota_in_response(self) -> None:
        data = client.post("/validate", json={"text": POA_TEXT}, headers=HEADERS).json()
        assert data["quota"] == {
            "admitted": True,
            "tier": "free",
            "limit": 5,
            "used": 1,
            "remaining": 4,
        }

    def test_issues_reported(self) -> None:
        text = POA_TEXT.replace("Witness 2: Sandra Smith\n", "")
        data = client.post("/validate", json={"text": text}, headers=HEADERS).json()
        witness = data["result"]["witness_validation"]
        assert witness["status"] == "fail"
        assert witness["issues"] == ["Insufficient witnesses found. Required: 2, Found: 1"]
        assert data["result"]["overall"] == "fail"


class TestQuotaEnforcement:
    def test_sixth_validation_returns_402(self) -> None:
        for _ in range(5):
            assert client.post("/validate", json={"text": POA_TEXT}, headers=HEADERS).status_code == 200

        resp = client.post("/validate", json={"text": POA_TEXT}, headers=HEADERS)
        assert resp.status_code == 402
        error = resp.json()["error"]
        assert error["code"] == "QUOTA_EXCEEDED"
        assert error["details"] == {"tier": "free", "limit": 5, "used": 5}

    def test_quotas_are_per_user(self) -> None:
        for _ in range(5):
            client.post("/validate", json={"text": POA_TEXT}, headers=HEADERS)
        resp = client.post("/validate", json={"text": POA_TEXT}, headers={"X-User-Id": "user-2"})
        assert resp.status_code == 200

    def test_admin_is_unlimited(self, _wire_app: InMemoryQuotaStore) -> None:
        _wire_app.add_user("admin", tier=Tier.FREE, role=Role.ADMIN)
        for _ in range(7):
            resp = client.post("/validate", json={"text": POA_TEXT}, headers={"X-User-Id": "admin"})
            assert resp.status_code == 200
        assert resp.json()["quota"]["limit"] is None

    def test_quota_endpoint_does_not_consume(self) -> None:
        client.post("/validate", json={"text": POA_TEXT}, headers=HEADERS)
        first = client.get("/quota", headers=HEADERS).json()
        second = client.get("/quota", headers=HEADERS).json()
        assert first["used"] == second["used"] == 1
        assert first["remaining"] == 4

    def test_unknown_user_without_default_tier_is_404(self) -> None:
        api._gate = QuotaGate(InMemoryQuotaStore(), clock=lambda: date(2025, 6, 1))
        resp = client.get("/quota", headers=HEADERS)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "UNKNOWN_USER"


class TestRequestValidation:
    def test_empty_body_returns_422(self) -> None:
        resp = client.post("/validate", json={}, headers=HEADERS)
        assert resp.status_code == 422

    def test_too_short_text_returns_422(self) -> None:
        resp = client.post("/validate", json={"text": "short"}, headers=HEADERS)
        assert resp.status_code == 422

    def test_missing_user_header_returns_422(self) -> None:
        resp = client.post("/validate", json={"text": POA_TEXT})
        assert resp.status_code == 422


class TestFileUploadEndpoint:
    def test_upload_pdf(self) -> None:
        resp = client.post(
            "/validate/file",
            files={"file": ("poa.pdf", b"%PDF-1.4 fake", "application/pdf")},
            headers=HEADERS,
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["report"]["document_name"] == "poa.pdf"
        assert len(data["report"]["original_hash"]) == 64  # SHA-256 hex
        assert data["report"]["result"]["overall"] == "pass"
        assert data["quota"]["used"] == 1

    def test_unsupported_file_returns_422(self) -> None:
        resp = client.post(
            "/validate/file",
            files={"file": ("poa.txt", b"plain text", "text/plain")},
            headers=HEADERS,
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "EXTRACTION_FAILED"

    def test_unreadable_image_still_validates(self) -> None:
        resp = client.post(
            "/validate/file",
            files={"file": ("scan.png", b"not an image", "image/png")},
            headers=HEADERS,
        )
        assert resp.status_code == 200
        report = resp.json()["report"]
        assert report["image_quality"] is None
        assert report["warnings"][0].startswith("Image quality analysis failed")

    def test_oversized_file_returns_413(self) -> None:
        resp = client.post(
            "/validate/file",
            files={"file": ("poa.pdf", b"x" * 2048, "application/pdf")},
            headers=HEADERS,
        )
        assert resp.status_code == 413

    def test_oversized_file_does_not_consume_quota(self) -> None:
        client.post(
            "/validate/file",
            files={"file": ("poa.pdf", b"x" * 2048, "application/pdf")},
            headers=HEADERS,
        )
        assert client.get("/quota", headers=HEADERS).json()["used"] == 0
