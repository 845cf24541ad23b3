from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from packages.shared.schemas.payment import PaymentOutcomeV1


class GatewayError(Exception):
    """Base class for payment gateway errors."""


class GatewayConfigError(GatewayError):
    def __init__(self, provider: str, missing: list[str]) -> None:
        super().__init__(f"{provider} gateway is not configured. Missing: {', '.join(missing)}")
        self.provider = provider
        self.missing = missing


class GatewaySignatureError(GatewayError):
    def __init__(self, provider: str, reason: str = "invalid signature") -> None:
        super().__init__(f"{provider} webhook rejected: {reason}")
        self.provider = provider


class GatewayPayloadError(GatewayError):
    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"{provider} webhook body is malformed: {reason}")
        self.provider = provider


class GatewayCaptureError(GatewayError):
    def __init__(self, provider: str, external_ref: str, detail: str) -> None:
        super().__init__(f"{provider} capture failed for {external_ref}: {detail}")
        self.provider = provider
        self.external_ref = external_ref


class GatewayPaymentPendingError(GatewayError):
    def __init__(self, provider: str, external_ref: str, processor_status: str) -> None:
        super().__init__(
            f"{provider} payment {external_ref} is not final yet (status={processor_status})"
        )
        self.provider = provider
        self.external_ref = external_ref
        self.processor_status = processor_status


@dataclass(frozen=True, slots=True)
class PaymentConfirmation:
    """The only fields settlement consumes from a processor message."""

    provider: str
    external_ref: str
    outcome: PaymentOutcomeV1
    amount_cents: int | None = None
    currency: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True, slots=True)
class CreatedPayment:
    external_ref: str
    # Handed to the storefront to finish the payment (client secret, approval link).
    client_data: dict[str, Any] = field(default_factory=dict)


class PaymentGateway(Protocol):
    provider: str
    signature_header: str

    def create_payment(
        self,
        amount_cents: int,
        currency: str,
        metadata: dict[str, str],
    ) -> CreatedPayment: ...

    def capture(self, external_ref: str) -> PaymentConfirmation: ...

    def parse_webhook(self, payload: bytes, signature: str) -> PaymentConfirmation | None:
        """Verify and decode a webhook. ``None`` means a verified event we do not act on."""
        ...

    def close(self) -> None:
        """Release connections held by the gateway."""
        ...
