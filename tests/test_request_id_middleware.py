from __future__ import annotations

import logging

from fastapi.testclient import TestClient

from main import create_app
from tests.conftest import BENEFICIARY, MERCHANT


def test_request_id_added_when_missing():
    client = TestClient(create_app())
    resp = client.get("/health")
    assert resp.status_code == 200, resp.text
    assert resp.headers.get("X-Request-ID")


def test_request_id_echoed_when_present():
    client = TestClient(create_app())
    resp = client.get("/health", headers={"X-Request-ID": "client-request-id"})
    assert resp.status_code == 200, resp.text
    assert resp.headers.get("X-Request-ID") == "client-request-id"


def test_request_id_present_on_error_envelope():
    client = TestClient(create_app(), raise_server_exceptions=False)
    resp = client.get("/api/offline/iou/12345")
    assert resp.status_code == 404
    assert resp.headers.get("X-Request-ID")


def test_request_end_log_includes_method_path_status(caplog):
    client = TestClient(create_app())
    caplog.set_level(logging.INFO, logger="relief.http")
    resp = client.get("/health", headers={"X-Request-ID": "rid-1"})
    assert resp.status_code == 200, resp.text
    assert any(
        "http_request_end" in record.message
        and "method=GET" in record.message
        and "path=/health" in record.message
        and "status=200" in record.message
        and "duration_ms=" in record.message
        and getattr(record, "request_id", None) == "rid-1"
        for record in caplog.records
    )


def test_iou_logs_carry_request_id(caplog):
    client = TestClient(create_app())
    caplog.set_level(logging.INFO, logger="relief.ious")
    resp = client.post(
        "/api/offline/create-iou",
        json={"beneficiary": BENEFICIARY, "merchant": MERCHANT, "amount": "3", "signature": "0xsig"},
        headers={"X-Request-ID": "rid-create"},
    )
    assert resp.status_code == 200, resp.text
    created = [r for r in caplog.records if r.name == "relief.ious" and "iou created" in r.message]
    assert created
    assert created[0].request_id == "rid-create"
    # request bodies (signatures) are never logged
    assert not any("0xsig" in r.message for r in caplog.records)
