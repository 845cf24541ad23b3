from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient
from services.api.app.services.gateway_mock import sign_mock_payload


def _draft(client: TestClient, external_ref: str, amount_cents: int = 8000) -> dict:
    resp = client.post(
        "/v1/pay/mock/drafts",
        json={"amount_cents": amount_cents, "external_ref": external_ref, "payload": {"table": "12"}},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["draft"]


def _deliver(client: TestClient, body: dict, secret: str = "test-secret", provider: str = "mock"):
    raw = json.dumps(body).encode()
    return client.post(
        f"/v1/webhooks/{provider}",
        content=raw,
        headers={"Content-Type": "application/json", "X-Mock-Signature": sign_mock_payload(raw, secret)},
    )


def test_signed_success_creates_order(client: TestClient) -> None:
    _draft(client, "mock_evt_1")

    resp = _deliver(client, {"external_ref": "mock_evt_1", "status": "succeeded", "amount_cents": 8000})

    assert resp.status_code == 200
    ack = resp.json()
    assert ack["ok"] is True
    assert ack["ignored"] is False
    assert ack["order_id"]
    assert client.get("/v1/drafts/mock_evt_1").json()["order_id"] == ack["order_id"]


def test_duplicate_delivery_is_acknowledged_once(client: TestClient) -> None:
    _draft(client, "mock_evt_1")
    body = {"external_ref": "mock_evt_1", "status": "succeeded"}

    acks = [_deliver(client, body).json() for _ in range(3)]

    assert len({a["order_id"] for a in acks}) == 1
    events = client.get("/v1/events", params={"entity_type": "Order"}).json()
    assert len(events) == 1


def test_bad_signature_is_rejected(client: TestClient) -> None:
    _draft(client, "mock_evt_1")

    resp = _deliver(client, {"external_ref": "mock_evt_1", "status": "succeeded"}, secret="wrong")

    assert resp.status_code == 400
    assert client.get("/v1/drafts/mock_evt_1").json()["status"] == "pending"


def test_missing_signature_is_rejected(client: TestClient) -> None:
    resp = client.post("/v1/webhooks/mock", content=b"{}")
    assert resp.status_code == 400


def test_unknown_reference_is_acknowledged(client: TestClient) -> None:
    resp = _deliver(client, {"external_ref": "mock_foreign", "status": "succeeded"})

    assert resp.status_code == 200
    assert resp.json()["note"] == "draft not found"
    assert resp.json()["order_id"] is None


def test_irrelevant_event_is_ignored(client: TestClient) -> None:
    _draft(client, "mock_evt_1")

    resp = _deliver(client, {"external_ref": "mock_evt_1", "status": "requires_action"})

    assert resp.status_code == 200
    assert resp.json()["ignored"] is True
    assert client.get("/v1/drafts/mock_evt_1").json()["status"] == "pending"


def test_failed_payment_then_late_success(client: TestClient) -> None:
    _draft(client, "mock_evt_1")

    failed = _deliver(client, {"external_ref": "mock_evt_1", "status": "failed"})
    late = _deliver(client, {"external_ref": "mock_evt_1", "status": "succeeded"})

    assert failed.json()["order_id"] is None
    assert late.json()["order_id"] is None
    assert client.get("/v1/drafts/mock_evt_1").json()["status"] == "failed"


def test_webhook_probe(client: TestClient) -> None:
    assert client.get("/v1/webhooks/mock").status_code == 200
    assert client.get("/v1/webhooks/bitcoin").status_code == 404


def test_paypal_webhooks_are_not_implemented(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MESA_PAYMENTS_MODE", "live")
    monkeypatch.setenv("PAYPAL_CLIENT_ID", "client")
    monkeypatch.setenv("PAYPAL_CLIENT_SECRET", "secret")

    resp = client.post("/v1/webhooks/paypal", content=b"{}")

    assert resp.status_code == 501


def test_live_gateway_without_credentials_is_500(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MESA_PAYMENTS_MODE", "live")
    monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET", raising=False)

    resp = client.post("/v1/webhooks/stripe", content=b"{}")

    assert resp.status_code == 500
    assert "STRIPE_SECRET_KEY" in resp.json()["detail"]


def test_mock_provider_is_closed_in_live_mode(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    resp = client.post(
        "/v1/pay/stripe/drafts",
        json={"amount_cents": 5000, "external_ref": "pi_real_1", "payload": {"table": "3"}},
    )
    assert resp.status_code == 200, resp.text
    monkeypatch.setenv("MESA_PAYMENTS_MODE", "live")

    forged = _deliver(
        client,
        {"external_ref": "pi_real_1", "status": "succeeded", "amount_cents": 1},
        secret="mesa-dev-secret",
    )

    assert forged.status_code == 404
    assert client.get("/v1/drafts/pi_real_1").json()["status"] == "pending"


def test_confirmation_from_another_provider_is_ignored(client: TestClient) -> None:
    resp = client.post(
        "/v1/pay/stripe/drafts",
        json={"amount_cents": 5000, "external_ref": "pi_real_1", "payload": {"table": "3"}},
    )
    assert resp.status_code == 200, resp.text

    ack = _deliver(client, {"external_ref": "pi_real_1", "status": "succeeded", "amount_cents": 1})

    assert ack.status_code == 200
    assert ack.json()["ignored"] is True
    assert ack.json()["note"] == "provider mismatch"
    assert ack.json()["order_id"] is None

    draft = client.get("/v1/drafts/pi_real_1").json()
    assert draft["status"] == "pending"
    assert draft["provider"] == "stripe"
    assert client.get("/v1/events", params={"entity_type": "Order"}).json() == []


def test_non_integer_amount_is_rejected(client: TestClient) -> None:
    _draft(client, "mock_evt_1")

    resp = _deliver(client, {"external_ref": "mock_evt_1", "status": "succeeded", "amount_cents": "lots"})

    assert resp.status_code == 400
    assert client.get("/v1/drafts/mock_evt_1").json()["status"] == "pending"


def test_body_that_is_not_an_object_is_rejected(client: TestClient) -> None:
    raw = b'["succeeded"]'

    resp = client.post(
        "/v1/webhooks/mock",
        content=raw,
        headers={"X-Mock-Signature": sign_mock_payload(raw, "test-secret")},
    )

    assert resp.status_code == 400
