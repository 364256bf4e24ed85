"""Configurable fake payment gateway for development and testing.

Keeps intents in memory and signs webhooks with HMAC-SHA256 over the raw body,
so the full checkout → webhook → reconciliation path can run without
processor credentials. Useful for:
- Automated tests with predictable outcomes
- Load tests and manual API testing (``sign`` produces valid signatures)
- Simulating processor outages (``configure(available=False)``)

Signature header format follows Stripe's: ``t=<timestamp>,v1=<hex digest>``.
"""

import hashlib
import hmac
import json
import os
import time
from uuid import uuid4

from ordering.exceptions import NotFound, UnverifiedSignature, UpstreamUnavailable
from ordering.gateway.port import (
    INTENT_REQUIRES_PAYMENT_METHOD,
    PaymentGateway,
    PaymentIntent,
    WebhookEvent,
    webhook_event_from_payload,
)

DEFAULT_WEBHOOK_SECRET = "whsec_test"


class FakeGateway(PaymentGateway):
    """In-memory payment processor."""

    def __init__(self, webhook_secret: str | None = None) -> None:
        self.webhook_secret = webhook_secret or os.getenv("FAKE_WEBHOOK_SECRET", DEFAULT_WEBHOOK_SECRET)
        self.available: bool = True
        self.intents: dict[str, PaymentIntent] = {}
        self.calls: list[dict] = []
        self._idempotency: dict[str, str] = {}

    def configure(self, available: bool = True) -> None:
        """Toggle simulated processor availability."""
        self.available = available

    def _ensure_available(self, operation: str) -> None:
        if not self.available:
            raise UpstreamUnavailable(
                f"Payment processor unavailable during {operation}",
                operation=operation,
            )

    # -------------------------------------------------------------------
    # Port
    # -------------------------------------------------------------------
    def create_intent(
        self,
        amount_minor_units: int,
        currency: str,
        metadata: dict,
        idempotency_key: str,
    ) -> PaymentIntent:
        self.calls.append(
            {
                "method": "create_intent",
                "amount": amount_minor_units,
                "currency": currency,
                "metadata": dict(metadata),
                "idempotency_key": idempotency_key,
            }
        )
        self._ensure_available("create_intent")

        if idempotency_key in self._idempotency:
            return self.intents[self._idempotency[idempotency_key]]

        intent_id = f"pi_fake_{uuid4().hex[:16]}"
        intent = PaymentIntent(
            intent_id=intent_id,
            status=INTENT_REQUIRES_PAYMENT_METHOD,
            amount=amount_minor_units,
            currency=currency.lower(),
            client_secret=f"{intent_id}_secret_{uuid4().hex[:8]}",
            metadata={k: str(v) for k, v in metadata.items()},
        )
        self.intents[intent_id] = intent
        self._idempotency[idempotency_key] = intent_id
        return intent

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        self.calls.append({"method": "retrieve_intent", "intent_id": intent_id})
        self._ensure_available("retrieve_intent")
        try:
            return self.intents[intent_id]
        except KeyError:
            raise NotFound({"_entity": f"Payment intent `{intent_id}` does not exist"}) from None

    def verify_webhook_signature(self, payload: bytes, signature: str) -> WebhookEvent:
        if isinstance(payload, str):
            payload = payload.encode("utf-8")

        parts = dict(part.split("=", 1) for part in (signature or "").split(",") if "=" in part)
        timestamp, digest = parts.get("t"), parts.get("v1")
        if not timestamp or not digest:
            raise UnverifiedSignature("Missing or malformed webhook signature header")

        expected = self._digest(timestamp, payload)
        if not hmac.compare_digest(expected, digest):
            raise UnverifiedSignature("Webhook signature does not match payload")

        try:
            event = json.loads(payload)
        except ValueError:
            raise UnverifiedSignature("Webhook payload is not valid JSON") from None
        return webhook_event_from_payload(event)

    # -------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------
    def set_intent_status(self, intent_id: str, status: str, amount: int | None = None) -> PaymentIntent:
        """Simulate the processor moving an intent (card confirmed, canceled...)."""
        current = self.intents[intent_id]
        updated = PaymentIntent(
            intent_id=current.intent_id,
            status=status,
            amount=current.amount if amount is None else amount,
            currency=current.currency,
            client_secret=current.client_secret,
            metadata=current.metadata,
        )
        self.intents[intent_id] = updated
        return updated

    def build_event(self, event_type: str, intent_id: str, status: str | None = None) -> bytes:
        """Serialize a webhook body for an intent in Stripe's event shape."""
        intent = self.intents.get(intent_id)
        obj = {
            "id": intent_id,
            "object": "payment_intent",
            "status": status or (intent.status if intent else None),
            "amount": intent.amount if intent else None,
            "currency": intent.currency if intent else None,
            "metadata": dict(intent.metadata) if intent else {},
        }
        event = {
            "id": f"evt_fake_{uuid4().hex[:16]}",
            "type": event_type,
            "data": {"object": obj},
        }
        return json.dumps(event).encode("utf-8")

    def sign(self, payload: bytes, timestamp: int | None = None) -> str:
        """Produce a signature header for ``payload``."""
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        ts = str(timestamp or int(time.time()))
        return f"t={ts},v1={self._digest(ts, payload)}"

    def _digest(self, timestamp: str, payload: bytes) -> str:
        signed = timestamp.encode("utf-8") + b"." + payload
        return hmac.new(self.webhook_secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
