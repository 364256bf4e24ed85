"""Stripe payment gateway adapter.

Uses the stripe-python SDK to:
- Create PaymentIntents (with an idempotency key per checkout)
- Retrieve PaymentIntents for callback and sweep reconciliation
- Verify webhook signatures with the endpoint signing secret

Every SDK failure surfaces as ``UpstreamUnavailable`` except unknown intents
(``NotFound``) and bad signatures (``UnverifiedSignature``).
"""

import json

import stripe
import structlog

from ordering.exceptions import NotFound, UnverifiedSignature, UpstreamUnavailable
from ordering.gateway.port import (
    PaymentGateway,
    PaymentIntent,
    WebhookEvent,
    webhook_event_from_payload,
)

logger = structlog.get_logger(__name__)


class StripeGateway(PaymentGateway):
    """Production Stripe gateway adapter."""

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        timeout_seconds: float = 10.0,
        max_retries: int = 2,
    ) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout_seconds)
        stripe.max_network_retries = max_retries

    def create_intent(
        self,
        amount_minor_units: int,
        currency: str,
        metadata: dict,
        idempotency_key: str,
    ) -> PaymentIntent:
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_minor_units,
                currency=currency,
                metadata={k: str(v) for k, v in metadata.items()},
                automatic_payment_methods={"enabled": True},
                idempotency_key=idempotency_key,
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            logger.error("stripe_create_intent_failed", error=str(e), idempotency_key=idempotency_key)
            raise UpstreamUnavailable("Payment processor rejected or timed out creating the intent") from e
        return self._to_intent(intent)

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id, api_key=self.api_key)
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing":
                raise NotFound({"_entity": f"Payment intent `{intent_id}` does not exist"}) from e
            raise UpstreamUnavailable("Payment processor rejected the intent lookup", intent_id=intent_id) from e
        except stripe.StripeError as e:
            logger.error("stripe_retrieve_intent_failed", error=str(e), intent_id=intent_id)
            raise UpstreamUnavailable("Payment processor unavailable", intent_id=intent_id) from e
        return self._to_intent(intent)

    def verify_webhook_signature(self, payload: bytes, signature: str) -> WebhookEvent:
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("webhook_signature_invalid", error=str(e))
            raise UnverifiedSignature("Invalid webhook signature") from e
        except ValueError as e:
            raise UnverifiedSignature("Webhook payload is not valid JSON") from e
        return webhook_event_from_payload(json.loads(payload))

    @staticmethod
    def _to_intent(intent) -> PaymentIntent:
        return PaymentIntent(
            intent_id=intent["id"],
            status=intent["status"],
            amount=intent["amount"],
            currency=intent["currency"],
            client_secret=intent.get("client_secret"),
            metadata=dict(intent.get("metadata") or {}),
        )
