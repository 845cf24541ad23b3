from __future__ import annotations

import os

from services.api.app.services.gateway_base import PaymentGateway
from services.api.app.services.gateway_mock import MockGateway

PROVIDERS = ("mock", "stripe", "paypal")


def get_payment_gateway(provider: str) -> PaymentGateway:
    """Select a gateway for ``provider`` based on env vars.

    Defaults to mock gateways (one per provider name) so tests and local dev never
    reach a real processor unless MESA_PAYMENTS_MODE=live. Live mode serves no mock.
    """

    provider = provider.strip().lower()
    if provider not in PROVIDERS:
        raise ValueError(f"Unknown payment provider {provider!r}. Expected one of {', '.join(PROVIDERS)}.")

    mode = os.getenv("MESA_PAYMENTS_MODE", "mock").strip().lower()

    if mode == "mock":
        return MockGateway(provider=provider)

    if mode == "live":
        if provider == "mock":
            # The mock signs with a shared dev secret; it must never settle real payments.
            raise ValueError("The mock payment provider is disabled when MESA_PAYMENTS_MODE=live.")
        if provider == "stripe":
            from services.api.app.services.gateway_stripe import StripeGateway

            return StripeGateway.from_env()

        from services.api.app.services.gateway_paypal import PayPalGateway

        return PayPalGateway.from_env()

    raise ValueError(f"Unknown MESA_PAYMENTS_MODE={mode!r}. Expected mock or live.")
