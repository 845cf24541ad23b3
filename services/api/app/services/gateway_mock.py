from __future__ import annotations

import hashlib
import hmac
import json
import os
from uuid import uuid4

from packages.shared.schemas.payment import PaymentOutcomeV1
from services.api.app.services.gateway_base import (
    CreatedPayment,
    GatewayPayloadError,
    GatewaySignatureError,
    PaymentConfirmation,
)


def mock_webhook_secret() -> str:
    return os.getenv("MESA_MOCK_WEBHOOK_SECRET", "mesa-dev-secret")


def sign_mock_payload(payload: bytes, secret: str | None = None) -> str:
    key = (secret or mock_webhook_secret()).encode()
    return hmac.new(key, payload, hashlib.sha256).hexdigest()


class MockGateway:
    """Deterministic stand-in for a processor, used in tests and local dev.

    Webhook bodies are JSON ``{"external_ref", "status", "amount_cents", "currency"}``
    signed with HMAC-SHA256 in the ``X-Mock-Signature`` header.
    """

    signature_header = "X-Mock-Signature"

    def __init__(self, provider: str = "mock", secret: str | None = None) -> None:
        self.provider = provider
        self._secret = secret or mock_webhook_secret()
        self.capture_outcome = PaymentOutcomeV1.SUCCEEDED
        self.calls: list[dict] = []
        self.closed = False

    def create_payment(
        self,
        amount_cents: int,
        currency: str,
        metadata: dict[str, str],
    ) -> CreatedPayment:
        self.calls.append(
            {"method": "create_payment", "amount_cents": amount_cents, "currency": currency}
        )
        external_ref = f"{self.provider}_{uuid4().hex[:16]}"
        return CreatedPayment(external_ref=external_ref, client_data={"metadata": metadata})

    def capture(self, external_ref: str) -> PaymentConfirmation:
        self.calls.append({"method": "capture", "external_ref": external_ref})
        return PaymentConfirmation(
            provider=self.provider,
            external_ref=external_ref,
            outcome=self.capture_outcome,
        )

    def parse_webhook(self, payload: bytes, signature: str) -> PaymentConfirmation | None:
        expected = sign_mock_payload(payload, self._secret)
        if not signature or not hmac.compare_digest(expected, signature):
            raise GatewaySignatureError(self.provider)

        try:
            body = json.loads(payload)
        except ValueError as e:
            raise GatewayPayloadError(self.provider, "body is not JSON") from e
        if not isinstance(body, dict):
            raise GatewayPayloadError(self.provider, "body is not a JSON object")

        status = str(body.get("status") or "").strip().lower()
        external_ref = str(body.get("external_ref") or "").strip()
        if status not in {o.value for o in PaymentOutcomeV1} or not external_ref:
            return None

        amount = body.get("amount_cents")
        if amount is not None and (isinstance(amount, bool) or not isinstance(amount, int)):
            raise GatewayPayloadError(self.provider, "amount_cents must be an integer")

        return PaymentConfirmation(
            provider=self.provider,
            external_ref=external_ref,
            outcome=PaymentOutcomeV1(status),
            amount_cents=amount,
            currency=body.get("currency"),
            raw=body,
        )

    def close(self) -> None:
        self.closed = True
