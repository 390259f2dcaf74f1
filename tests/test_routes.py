from __future__ import annotations

import base64

import cv2
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from facematch.api import routes
from facematch.api.routes import router
from facematch.core.options import CNN_STRATEGY, DNN_STRATEGY
from facematch.core.pipeline import VerificationSession

from conftest import PROBE_MARK, REFERENCE_MARK, FakeExtractor, make_detection, make_image


class FakeRegistry:
    def __init__(self, detector=None, on_reload=None):
        self.detector = detector
        self.on_reload = on_reload
        self.source = "local:models" if detector else None
        self.error = None if detector else "no source"

    @property
    def loaded(self) -> bool:
        return self.detector is not None

    async def load(self) -> bool:
        if self.on_reload is not None:
            self.detector = self.on_reload
            self.source = "github-raw"
            self.error = None
        return self.loaded

    def status(self) -> dict:
        return {"loaded": self.loaded, "source": self.source, "error": self.error}


def _data_url(mark: int) -> str:
    ok, buf = cv2.imencode(".png", make_image(mark))
    assert ok
    return "data:image/png;base64," + base64.b64encode(buf.tobytes()).decode("ascii")


def _client(registry) -> TestClient:
    app = FastAPI()
    app.state.registry = registry
    app.state.session = VerificationSession()
    app.include_router(router, prefix="/api")
    return TestClient(app)


def _select_both(client: TestClient) -> None:
    r = client.put("/api/images/reference", json={"image": _data_url(REFERENCE_MARK), "filename": "id.png"})
    assert r.status_code == 200
    r = client.put("/api/images/probe", json={"image": _data_url(PROBE_MARK), "filename": "selfie.png"})
    assert r.status_code == 200


@pytest.fixture
def matching_extractor() -> FakeExtractor:
    return FakeExtractor({
        REFERENCE_MARK: {DNN_STRATEGY: make_detection([0.0, 0.0, 0.0])},
        PROBE_MARK: {DNN_STRATEGY: make_detection([0.2, 0.0, 0.0])},
    })


def test_status_reports_models_and_session(matching_extractor):
    client = _client(FakeRegistry(matching_extractor))
    body = client.get("/api/status").json()
    assert body["models"] == {"loaded": True, "source": "local:models", "error": None}
    assert body["session"]["state"] == "IDLE"
    assert body["defaultThreshold"] == pytest.approx(0.6)

    _select_both(client)
    body = client.get("/api/status").json()
    assert body["session"] == {"state": "READY", "busy": False, "reference": "id.png", "probe": "selfie.png"}


def test_select_image_returns_preview(matching_extractor):
    client = _client(FakeRegistry(matching_extractor))
    r = client.put("/api/images/reference", json={"image": _data_url(REFERENCE_MARK), "filename": "id.png"})
    assert r.status_code == 200
    body = r.json()
    assert body["name"] == "id.png"
    assert body["preview"].startswith("data:image/jpeg;base64,")
    assert body["detection"] is None


def test_select_image_errors(matching_extractor):
    client = _client(FakeRegistry(matching_extractor))
    r = client.put("/api/images/passport", json={"image": _data_url(REFERENCE_MARK)})
    assert r.status_code == 404

    bad = base64.b64encode(b"not an image").decode("ascii")
    r = client.put("/api/images/probe", json={"image": bad, "filename": "broken.jpg"})
    assert r.status_code == 400
    assert r.json()["detail"].startswith("Could not read the image file")
    # the other slot is unaffected
    assert client.get("/api/status").json()["session"]["probe"] is None


def test_select_image_too_large(matching_extractor, monkeypatch):
    monkeypatch.setattr(routes, "IMG_MAX_MB", 0)
    client = _client(FakeRegistry(matching_extractor))
    r = client.put("/api/images/reference", json={"image": _data_url(REFERENCE_MARK)})
    assert r.status_code == 413
    assert client.get("/api/status").json()["session"]["reference"] is None


def test_verify_match(matching_extractor):
    client = _client(FakeRegistry(matching_extractor))
    _select_both(client)
    r = client.post("/api/verify", json={"threshold": 0.6})
    assert r.status_code == 200
    body = r.json()
    assert body["state"] == "DONE"
    assert body["status"] == "success"
    assert body["outcome"]["distance"] == pytest.approx(0.2)
    assert body["outcome"]["similarity"] == pytest.approx(0.875)
    assert body["outcome"]["matched"] is True
    assert body["reference"]["detection"]["strategy"] == DNN_STRATEGY


def test_verify_uses_default_threshold_without_body(matching_extractor):
    client = _client(FakeRegistry(matching_extractor))
    _select_both(client)
    r = client.post("/api/verify")
    assert r.status_code == 200
    assert r.json()["outcome"]["threshold"] == pytest.approx(0.6)


def test_verify_no_face_is_422():
    extractor = FakeExtractor({
        REFERENCE_MARK: {DNN_STRATEGY: make_detection([0.0])},
        PROBE_MARK: {DNN_STRATEGY: None, CNN_STRATEGY: None},
    })
    client = _client(FakeRegistry(extractor))
    _select_both(client)
    r = client.post("/api/verify", json={})
    assert r.status_code == 422
    detail = r.json()["detail"]
    assert detail["state"] == "FAILED"
    assert detail["failedImage"] == "probe"
    assert detail["reference"]["detection"]["strategy"] == DNN_STRATEGY


def test_verify_dimension_mismatch_is_500():
    extractor = FakeExtractor({
        REFERENCE_MARK: {DNN_STRATEGY: make_detection([0.0] * 4)},
        PROBE_MARK: {DNN_STRATEGY: make_detection([0.0] * 3)},
    })
    client = _client(FakeRegistry(extractor))
    _select_both(client)
    r = client.post("/api/verify", json={})
    assert r.status_code == 500
    assert r.json()["detail"]["error"] == "dimension_mismatch"


@pytest.mark.parametrize("threshold", [-0.1, 1.5])
def test_verify_rejects_out_of_range_threshold(matching_extractor, threshold):
    client = _client(FakeRegistry(matching_extractor))
    _select_both(client)
    assert client.post("/api/verify", json={"threshold": threshold}).status_code == 400
    assert matching_extractor.calls == []


def test_verify_requires_both_images(matching_extractor):
    client = _client(FakeRegistry(matching_extractor))
    r = client.post("/api/verify", json={})
    assert r.status_code == 400
    assert r.json()["detail"]["message"] == "Please select a reference image."


def test_verify_disabled_until_models_load(matching_extractor):
    registry = FakeRegistry(None, on_reload=matching_extractor)
    client = _client(registry)
    _select_both(client)

    r = client.post("/api/verify", json={})
    assert r.status_code == 503
    assert r.json()["detail"]["loaded"] is False

    r = client.post("/api/models/reload")
    assert r.status_code == 200
    assert r.json()["models"]["source"] == "github-raw"
    assert client.post("/api/verify", json={}).status_code == 200


def test_reload_failure_is_503():
    client = _client(FakeRegistry(None))
    r = client.post("/api/models/reload")
    assert r.status_code == 503
    assert r.json()["detail"]["error"] == "no source"
