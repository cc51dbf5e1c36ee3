import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

sys.path.append(str(Path(__file__).resolve().parents[1]))

from slipparser import main, security
from slip_samples import SCB_EN

HEADERS = {"x-api-key": "test_key"}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(security, "API_KEY_TENANTS", {"test_key": "tenant_test"})
    return TestClient(main.app)


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["ok"] is True
    assert body["profiles"][-1] == "generic"


def test_normalize_returns_slip_and_meta(client):
    res = client.post("/v1/normalize", json={"text": SCB_EN}, headers=HEADERS)
    assert res.status_code == 200
    body = res.json()
    assert body["slip"]["bank_from"] == "SCB"
    assert body["slip"]["from"]["name"] == "นาย พสุพล บุญแสน"
    assert body["slip"]["amount"] == 1.0
    assert body["meta"]["profile"] == "scb"


def test_bearer_token_is_accepted(client):
    res = client.post("/v1/normalize", json={"text": SCB_EN}, headers={"Authorization": "Bearer test_key"})
    assert res.status_code == 200


def test_missing_or_unknown_key_is_401(client):
    assert client.post("/v1/normalize", json={"text": SCB_EN}).status_code == 401
    res = client.post("/v1/normalize", json={"text": SCB_EN}, headers={"x-api-key": "nope"})
    assert res.status_code == 401


def test_empty_text_is_400(client):
    res = client.post("/v1/normalize", json={"text": "   "}, headers=HEADERS)
    assert res.status_code == 400


def test_non_string_text_is_422(client):
    res = client.post("/v1/normalize", json={"text": ["SCB"]}, headers=HEADERS)
    assert res.status_code == 422


def test_batch_isolates_bad_items(client):
    payload = {
        "texts": [
            {"id": 1, "text": SCB_EN, "fileName": "a.png"},
            {"id": "b", "text": ""},
        ]
    }
    res = client.post("/v1/normalize/batch", json=payload, headers=HEADERS)
    assert res.status_code == 200
    body = res.json()
    assert [s["source_id"] for s in body["slips"]] == ["1"]
    assert body["slips"][0]["file_name"] == "a.png"
    assert [e["source_id"] for e in body["errors"]] == ["b"]


def test_batch_limits(client, monkeypatch):
    assert client.post("/v1/normalize/batch", json={"texts": []}, headers=HEADERS).status_code == 400
    monkeypatch.setattr(main, "MAX_BATCH_SLIPS", 1)
    payload = {"texts": [{"id": 1, "text": SCB_EN}, {"id": 2, "text": SCB_EN}]}
    assert client.post("/v1/normalize/batch", json=payload, headers=HEADERS).status_code == 413


def test_ocr_rejects_non_images(client):
    files = {"file": ("slip.png", b"not an image", "image/png")}
    res = client.post("/v1/ocr", files=files, headers=HEADERS)
    assert res.status_code == 422


def test_parse_runs_ocr_then_normalizes(client, monkeypatch):
    monkeypatch.setattr(main, "ocr_image_bytes", lambda data, lang: SCB_EN)
    files = {"file": ("slip.png", b"\x89PNG fake", "image/png")}
    res = client.post("/v1/parse", files=files, data={"bank_hint": "scb"}, headers=HEADERS)
    assert res.status_code == 200
    body = res.json()
    assert body["text"] == SCB_EN
    assert body["slip"]["transaction_reference"] == "2025090277mVUbbV49mBjwz9j"
    assert body["meta"]["profile"] == "scb"


def test_request_id_is_echoed(client):
    res = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert res.headers["X-Request-ID"] == "abc123"
    assert client.get("/health").headers["X-Request-ID"]


def test_api_keys_reload_from_env(monkeypatch):
    monkeypatch.setenv("API_KEYS", "k1:acme, k2")
    monkeypatch.setattr(security, "API_KEY_TENANTS", {})
    security.reload_api_keys()
    assert security.verify_api_key(None, "k1") == ("k1", "acme")
    assert security.verify_api_key("Bearer k2", None) == ("k2", "default")
