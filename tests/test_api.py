"""Tests for the HTTP API."""

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from snapdiff.api.app import create_app
from snapdiff.capture.orchestrator import CaptureOrchestrator

BLACK = (0, 0, 0, 255)


@pytest.fixture
def client(service_config, store, session_tracker) -> TestClient:
    orchestrator = CaptureOrchestrator(service_config, store, session_factory=session_tracker)
    return TestClient(create_app(service_config, orchestrator=orchestrator))


class TestHealth:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}


class TestCaptureEndpoint:

    def test_success(self, client, store):
        resp = client.post("/api/capture", json={
            "url": "https://example.com", "time": "before", "testId": "t1",
        })
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["success"] is True
        assert body["imagePath"] == "/uploads/before/t1.png"
        assert body["time"] == "before"
        assert body["testId"] == "t1"
        assert body["timestamp"]
        assert store.exists("before", "t1")

    @pytest.mark.parametrize("payload,field", [
        ({"time": "before", "testId": "t1"}, "url"),
        ({"url": "https://example.com", "testId": "t1"}, "time"),
        ({"url": "https://example.com", "time": "yesterday", "testId": "t1"}, "time"),
        ({"url": "https://example.com", "time": "after"}, "testId"),
        ({"url": "https://example.com", "time": "after", "testId": "../x"}, "testId"),
    ])
    def test_validation(self, client, session_tracker, payload, field):
        resp = client.post("/api/capture", json=payload)
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["field"] == field
        assert body["error"]
        assert session_tracker.acquired == 0

    def test_empty_body(self, client):
        resp = client.post("/api/capture")
        assert resp.status_code == 400
        assert resp.json()["field"] == "url"

    def test_malformed_json(self, client):
        resp = client.post(
            "/api/capture", content=b"{not json", headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid request"

    def test_wrong_type(self, client):
        resp = client.post("/api/capture", json={"url": 42, "time": "before", "testId": "t1"})
        assert resp.status_code == 400
        assert resp.json()["field"] == "url"

    def test_capture_failure(self, client, mock_page, session_tracker):
        mock_page.goto.side_effect = PlaywrightTimeoutError("Timeout 2000ms exceeded.")
        resp = client.post("/api/capture", json={
            "url": "https://slow.example.com", "time": "after", "testId": "t1",
        })
        assert resp.status_code == 500
        body = resp.json()
        assert body["success"] is False
        assert "Timeout 2000ms exceeded" in body["details"]
        assert session_tracker.released == 1


class TestCompareEndpoint:

    def test_missing_test_id(self, client):
        resp = client.post("/api/compare", json={})
        assert resp.status_code == 400
        assert resp.json()["field"] == "testId"

    def test_missing_images(self, client, write_capture):
        write_capture("before", "t1")
        resp = client.post("/api/compare", json={"testId": "t1"})
        assert resp.status_code == 404
        assert resp.json()["missing"] == ["after"]

    def test_dimension_mismatch(self, client, write_capture, store):
        write_capture("before", "t1", size=(10, 10))
        write_capture("after", "t1", size=(10, 12))
        resp = client.post("/api/compare", json={"testId": "t1"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["before"] == {"width": 10, "height": 10}
        assert body["after"] == {"width": 10, "height": 12}
        assert not store.exists("diff", "t1")

    def test_success(self, client, write_capture):
        write_capture("before", "t1", size=(10, 10))
        write_capture("after", "t1", size=(10, 10), pixels={(4, 4): BLACK})
        resp = client.post("/api/compare", json={"testId": "t1"})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["success"] is True
        assert body["diffPercentage"] == "1.00"
        assert body["diffPixels"] == 1
        assert body["diffUrl"] == "/uploads/diff/t1.png"
        assert body["beforeUrl"] == "/uploads/before/t1.png"
        assert body["afterUrl"] == "/uploads/after/t1.png"


class TestUploadsEndpoint:

    def test_serves_stored_image(self, client, write_capture, png_factory):
        png = png_factory(size=(3, 3))
        write_capture("before", "t1", data=png)
        resp = client.get("/uploads/before/t1.png")
        assert resp.status_code == 200
        assert resp.content == png
        assert resp.headers["content-type"] == "image/png"

    def test_absent_image(self, client):
        assert client.get("/uploads/after/nope.png").status_code == 404

    def test_upload_then_compare(self, client, png_factory):
        for label in ("before", "after"):
            resp = client.post(
                "/api/upload",
                data={"time": label, "testId": "ci-1"},
                files={"file": ("shot.png", png_factory(size=(6, 6)), "image/png")},
            )
            assert resp.status_code == 200, resp.text
            assert resp.json()["imagePath"] == f"/uploads/{label}/ci-1.png"

        resp = client.post("/api/compare", json={"testId": "ci-1"})
        assert resp.status_code == 200
        assert resp.json()["diffPercentage"] == "0.00"

    def test_upload_rejects_non_image(self, client, store):
        resp = client.post(
            "/api/upload",
            data={"time": "before", "testId": "ci-1"},
            files={"file": ("shot.png", b"plain text", "image/png")},
        )
        assert resp.status_code == 400
        assert resp.json()["field"] == "file"
        assert not store.exists("before", "ci-1")

    def test_upload_requires_file(self, client):
        resp = client.post("/api/upload", data={"time": "after", "testId": "ci-1"})
        assert resp.status_code == 400
        assert resp.json()["field"] == "file"


class TestEndToEnd:
    """Capture before, capture after, compare."""

    def test_capture_capture_compare(self, client, mock_page, png_factory):
        mock_page.screenshot.return_value = png_factory(size=(40, 30))
        resp = client.post("/api/capture", json={
            "url": "https://example.com", "time": "before", "testId": "t1",
        })
        assert resp.status_code == 200

        mock_page.screenshot.return_value = png_factory(size=(40, 30), pixels={(10, 10): BLACK, (20, 20): BLACK})
        resp = client.post("/api/capture", json={
            "url": "https://example.com/v2", "time": "after", "testId": "t1",
        })
        assert resp.status_code == 200

        resp = client.post("/api/compare", json={"testId": "t1"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert 0.0 <= float(body["diffPercentage"]) <= 100.0
        assert body["diffPercentage"] == "0.17"
        for key in ("beforeUrl", "afterUrl", "diffUrl"):
            assert client.get(body[key]).status_code == 200


class TestOversizedImages:
    """Images past Pillow's pixel limit still get JSON errors."""

    @pytest.fixture(autouse=True)
    def small_pixel_limit(self, monkeypatch):
        # 10x10 test images are past twice this limit
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 10)

    def test_oversized_upload(self, client, store, png_factory):
        resp = client.post(
            "/api/upload",
            data={"time": "before", "testId": "huge"},
            files={"file": ("shot.png", png_factory(size=(10, 10)), "image/png")},
        )
        assert resp.status_code == 400
        assert resp.headers["content-type"] == "application/json"
        body = resp.json()
        assert body["field"] == "file"
        assert "too large" in body["error"]
        assert not store.exists("before", "huge")

    def test_oversized_compare(self, client, store, write_capture):
        write_capture("before", "huge", size=(10, 10))
        write_capture("after", "huge", size=(10, 10))
        resp = client.post("/api/compare", json={"testId": "huge"})
        assert resp.status_code == 500
        assert resp.headers["content-type"] == "application/json"
        body = resp.json()
        assert body["success"] is False
        assert body["error"] == "Failed to compare images"
        assert body["details"]
        assert not store.exists("diff", "huge")


class TestUploadLimit:

    def test_rejects_body_over_limit(self, service_config, store):
        config = service_config.model_copy(update={"max_upload_bytes": 100})
        client = TestClient(create_app(config))
        resp = client.post(
            "/api/upload",
            data={"time": "after", "testId": "big"},
            files={"file": ("shot.png", b"\x89PNG" + b"\x00" * 200, "image/png")},
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body["field"] == "file"
        assert "100 byte" in body["error"]
        assert not store.exists("after", "big")


class TestUnexpectedErrors:

    def test_unhandled_exception_is_json(self, service_config):
        comparator = Mock()
        comparator.compare = Mock(side_effect=RuntimeError("disk on fire"))
        client = TestClient(
            create_app(service_config, comparator=comparator), raise_server_exceptions=False,
        )
        resp = client.post("/api/compare", json={"testId": "t1"})
        assert resp.status_code == 500
        assert resp.headers["content-type"] == "application/json"
        assert resp.json() == {
            "success": False, "error": "Internal server error", "details": "disk on fire",
        }
