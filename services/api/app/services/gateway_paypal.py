from __future__ import annotations

import os
from decimal import Decimal

import httpx
import structlog
from packages.shared.schemas.payment import PaymentOutcomeV1
from services.api.app.services.gateway_base import (
    CreatedPayment,
    GatewayCaptureError,
    GatewayConfigError,
    GatewayError,
    GatewayPaymentPendingError,
    PaymentConfirmation,
)

logger = structlog.get_logger(__name__)

LIVE_BASE_URL = "https://api.paypal.com"
SANDBOX_BASE_URL = "https://api.sandbox.paypal.com"

_CAPTURE_OUTCOMES = {
    "COMPLETED": PaymentOutcomeV1.SUCCEEDED,
    "DECLINED": PaymentOutcomeV1.FAILED,
    "FAILED": PaymentOutcomeV1.FAILED,
}


def _to_cents(value: str) -> int:
    return int((Decimal(value) * 100).to_integral_value())


def _from_cents(amount_cents: int) -> str:
    return f"{Decimal(amount_cents) / 100:.2f}"


class PayPalGateway:
    """PayPal Orders v2. The external reference is the PayPal order id.

    Confirmation arrives through the client-initiated capture call only.
    """

    provider = "paypal"
    signature_header = "PayPal-Transmission-Sig"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str = SANDBOX_BASE_URL,
        transport: httpx.BaseTransport | None = None,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._client = httpx.Client(base_url=base_url, transport=transport, timeout=timeout_seconds)

    @classmethod
    def from_env(cls) -> PayPalGateway:
        client_id = os.getenv("PAYPAL_CLIENT_ID", "").strip()
        client_secret = os.getenv("PAYPAL_CLIENT_SECRET", "").strip()
        missing = [
            name
            for name, value in (
                ("PAYPAL_CLIENT_ID", client_id),
                ("PAYPAL_CLIENT_SECRET", client_secret),
            )
            if not value
        ]
        if missing:
            raise GatewayConfigError("paypal", missing)

        env = os.getenv("PAYPAL_ENV", "sandbox").strip().lower()
        base_url = LIVE_BASE_URL if env == "live" else SANDBOX_BASE_URL
        return cls(client_id=client_id, client_secret=client_secret, base_url=base_url)

    def _access_token(self) -> str:
        resp = self._client.post(
            "/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self._client_id, self._client_secret),
        )
        if resp.status_code != 200:
            raise GatewayError(f"PayPal auth failed: HTTP {resp.status_code}")
        return str(resp.json()["access_token"])

    def create_payment(
        self,
        amount_cents: int,
        currency: str,
        metadata: dict[str, str],
    ) -> CreatedPayment:
        token = self._access_token()
        resp = self._client.post(
            "/v2/checkout/orders",
            headers={"Authorization": f"Bearer {token}"},
            json={
                "intent": "CAPTURE",
                "purchase_units": [
                    {
                        "amount": {"currency_code": currency.upper(), "value": _from_cents(amount_cents)},
                        "custom_id": metadata.get("reference", ""),
                    }
                ],
                "application_context": {"shipping_preference": "NO_SHIPPING"},
            },
        )
        if resp.status_code not in {200, 201}:
            logger.warning("paypal_create_failed", status_code=resp.status_code, body=resp.text[:500])
            raise GatewayError(f"PayPal create failed: HTTP {resp.status_code}")

        data = resp.json()
        approve = next((link["href"] for link in data.get("links", []) if link.get("rel") == "approve"), None)
        return CreatedPayment(external_ref=str(data["id"]), client_data={"approve_url": approve})

    def capture(self, external_ref: str) -> PaymentConfirmation:
        token = self._access_token()
        resp = self._client.post(
            f"/v2/checkout/orders/{external_ref}/capture",
            headers={"Authorization": f"Bearer {token}"},
            json={},
        )
        if resp.status_code not in {200, 201}:
            logger.warning(
                "paypal_capture_failed",
                external_ref=external_ref,
                status_code=resp.status_code,
                body=resp.text[:500],
            )
            raise GatewayCaptureError(self.provider, external_ref, f"HTTP {resp.status_code}")

        data = resp.json()
        captures = [
            cap
            for unit in data.get("purchase_units", [])
            for cap in (unit.get("payments") or {}).get("captures", [])
        ]
        status = str((captures[0].get("status") if captures else data.get("status")) or "").upper()
        outcome = _CAPTURE_OUTCOMES.get(status)
        if outcome is None:
            raise GatewayPaymentPendingError(self.provider, external_ref, status or "UNKNOWN")

        amount_cents = None
        currency = None
        if captures and outcome is PaymentOutcomeV1.SUCCEEDED:
            amount = captures[0].get("amount") or {}
            if amount.get("value") is not None:
                amount_cents = _to_cents(str(amount["value"]))
            currency = amount.get("currency_code")

        return PaymentConfirmation(
            provider=self.provider,
            external_ref=external_ref,
            outcome=outcome,
            amount_cents=amount_cents,
            currency=currency,
            raw=data,
        )

    def parse_webhook(self, payload: bytes, signature: str) -> PaymentConfirmation | None:
        raise NotImplementedError(
            "PayPal webhooks are not supported. Confirm PayPal payments through /v1/pay/paypal/capture."
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> PayPalGateway:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
