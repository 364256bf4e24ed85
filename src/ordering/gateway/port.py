"""Payment gateway port (abstract interface).

Defines the contract every payment processor adapter implements, so that
FakeGateway (dev/test) and StripeGateway (production) can be swapped without
touching domain or application code.

Amounts cross this boundary in minor units (cents); the Order aggregate keeps
major units.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

# Processor intent statuses the reconciliation layer acts on
INTENT_SUCCEEDED = "succeeded"
INTENT_CANCELED = "canceled"
INTENT_REQUIRES_PAYMENT_METHOD = "requires_payment_method"
INTENT_PROCESSING = "processing"

# Webhook event types
EVENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_INTENT_PAYMENT_FAILED = "payment_intent.payment_failed"
EVENT_INTENT_CANCELED = "payment_intent.canceled"


@dataclass(frozen=True)
class PaymentIntent:
    """Processor-side view of a payment intent."""

    intent_id: str
    status: str
    amount: int  # minor units
    currency: str
    client_secret: str | None = None
    metadata: dict = field(default_factory=dict)

    @property
    def amount_major_units(self) -> float:
        return round(self.amount / 100, 2)


@dataclass(frozen=True)
class WebhookEvent:
    """A verified processor notification about a payment intent."""

    event_id: str
    event_type: str
    intent_id: str | None
    intent_status: str | None = None
    amount: int | None = None
    currency: str | None = None
    metadata: dict = field(default_factory=dict)


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_intent(
        self,
        amount_minor_units: int,
        currency: str,
        metadata: dict,
        idempotency_key: str,
    ) -> PaymentIntent:
        """Open a payment intent. Raises UpstreamUnavailable on failure or timeout."""
        ...

    @abstractmethod
    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        """Fetch the current state of an intent.

        Raises NotFound for an unknown intent, UpstreamUnavailable when the
        processor cannot be reached.
        """
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> WebhookEvent:
        """Authenticate a raw webhook body. Raises UnverifiedSignature on failure."""
        ...


def webhook_event_from_payload(event: dict) -> WebhookEvent:
    """Build a WebhookEvent from a processor event dict (Stripe JSON shape)."""
    obj = (event.get("data") or {}).get("object") or {}
    return WebhookEvent(
        event_id=event.get("id", ""),
        event_type=event.get("type", ""),
        intent_id=obj.get("id"),
        intent_status=obj.get("status"),
        amount=obj.get("amount"),
        currency=obj.get("currency"),
        metadata=dict(obj.get("metadata") or {}),
    )
