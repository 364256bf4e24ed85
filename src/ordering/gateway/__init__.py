"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeGateway for development and testing (default)
- StripeGateway for production (``PAYMENT_GATEWAY=stripe``)
"""

import os

from ordering.gateway.fake_adapter import FakeGateway
from ordering.gateway.port import PaymentGateway

DEFAULT_TIMEOUT_SECONDS = 10.0

_current_gateway: PaymentGateway | None = None


def _build_from_env() -> PaymentGateway:
    if os.getenv("PAYMENT_GATEWAY", "fake").lower() == "stripe":
        from ordering.gateway.stripe_adapter import StripeGateway

        return StripeGateway(
            api_key=os.environ["STRIPE_SECRET_KEY"],
            webhook_secret=os.environ["STRIPE_WEBHOOK_SECRET"],
            timeout_seconds=float(os.getenv("GATEWAY_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS)),
        )
    return FakeGateway()


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway, building it from the environment on first use."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = _build_from_env()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None
