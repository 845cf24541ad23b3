from __future__ import annotations

import json
import os

import stripe
import structlog
from packages.shared.schemas.payment import PaymentOutcomeV1
from services.api.app.services.gateway_base import (
    CreatedPayment,
    GatewayCaptureError,
    GatewayConfigError,
    GatewayError,
    GatewayPaymentPendingError,
    GatewayPayloadError,
    GatewaySignatureError,
    PaymentConfirmation,
)

logger = structlog.get_logger(__name__)

_EVENT_OUTCOMES = {
    "payment_intent.succeeded": PaymentOutcomeV1.SUCCEEDED,
    "payment_intent.payment_failed": PaymentOutcomeV1.FAILED,
}

# PaymentIntent statuses that are final from our point of view.
_INTENT_OUTCOMES = {
    "succeeded": PaymentOutcomeV1.SUCCEEDED,
    "canceled": PaymentOutcomeV1.FAILED,
}


class StripeGateway:
    """Stripe PaymentIntents. The external reference is the PaymentIntent id."""

    provider = "stripe"
    signature_header = "Stripe-Signature"

    def __init__(self, api_key: str, webhook_secret: str, client=stripe) -> None:
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._stripe = client

    @classmethod
    def from_env(cls) -> StripeGateway:
        api_key = os.getenv("STRIPE_SECRET_KEY", "").strip()
        webhook_secret = os.getenv("STRIPE_WEBHOOK_SECRET", "").strip()
        missing = [
            name
            for name, value in (
                ("STRIPE_SECRET_KEY", api_key),
                ("STRIPE_WEBHOOK_SECRET", webhook_secret),
            )
            if not value
        ]
        if missing:
            raise GatewayConfigError("stripe", missing)
        return cls(api_key=api_key, webhook_secret=webhook_secret)

    def create_payment(
        self,
        amount_cents: int,
        currency: str,
        metadata: dict[str, str],
    ) -> CreatedPayment:
        try:
            intent = self._stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=currency.lower(),
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
                api_key=self._api_key,
            )
        except stripe.StripeError as e:
            logger.warning("stripe_create_failed", error=str(e))
            raise GatewayError(f"stripe payment creation failed: {e}") from e

        return CreatedPayment(
            external_ref=intent["id"],
            client_data={"client_secret": intent["client_secret"]},
        )

    def capture(self, external_ref: str) -> PaymentConfirmation:
        # Card payments confirm client-side; here we only read back the final status.
        try:
            intent = self._stripe.PaymentIntent.retrieve(external_ref, api_key=self._api_key)
        except stripe.StripeError as e:
            logger.warning("stripe_retrieve_failed", external_ref=external_ref, error=str(e))
            raise GatewayCaptureError(self.provider, external_ref, str(e)) from e

        status = str(intent["status"])
        outcome = _INTENT_OUTCOMES.get(status)
        if outcome is None:
            raise GatewayPaymentPendingError(self.provider, external_ref, status)

        return self._confirmation(
            intent_id=intent["id"],
            outcome=outcome,
            amount=intent["amount_received"] or intent["amount"],
            currency=intent["currency"],
        )

    def parse_webhook(self, payload: bytes, signature: str) -> PaymentConfirmation | None:
        try:
            self._stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("webhook_signature_invalid", provider=self.provider, error=str(e))
            raise GatewaySignatureError(self.provider) from e
        except ValueError as e:
            raise GatewayPayloadError(self.provider, "body is not JSON") from e

        # Verified; read the body as plain JSON rather than through SDK objects.
        event = json.loads(payload)
        event_type = str(event.get("type") or "")
        outcome = _EVENT_OUTCOMES.get(event_type)
        if outcome is None:
            logger.info("webhook_event_ignored", provider=self.provider, event_type=event_type)
            return None

        intent = event["data"]["object"]
        return self._confirmation(
            intent_id=intent["id"],
            outcome=outcome,
            amount=intent.get("amount_received") or intent.get("amount"),
            currency=intent.get("currency"),
            raw=intent,
        )

    def _confirmation(
        self,
        *,
        intent_id: str,
        outcome: PaymentOutcomeV1,
        amount: int | None,
        currency: str | None,
        raw: dict | None = None,
    ) -> PaymentConfirmation:
        paid = outcome is PaymentOutcomeV1.SUCCEEDED and amount is not None
        return PaymentConfirmation(
            provider=self.provider,
            external_ref=str(intent_id),
            outcome=outcome,
            amount_cents=int(amount) if paid else None,
            currency=currency.upper() if currency else None,
            raw=raw or {},
        )

    def close(self) -> None:
        # The SDK manages its own HTTP client.
        pass
