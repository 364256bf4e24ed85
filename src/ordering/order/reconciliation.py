"""Reconciliation dispatcher — routes payment signals and manual actions to transitions.

Three independent inputs can move an order:

- the buyer's "payment succeeded" callback, treated only as a hint: the
  processor is asked for the intent's real status before anything changes;
- the processor webhook, authenticated by signature;
- seller/admin status actions.

Duplicate and out-of-order deliveries collapse into no-ops because
transitions to the current status are accepted without effect. A sweep over
stale pending orders covers webhooks that never arrive.
"""

from datetime import UTC, datetime, timedelta

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from ordering.exceptions import Conflict, Forbidden, InvalidTransition, NotFound, PaymentMismatch, UpstreamUnavailable
from ordering.gateway import get_gateway
from ordering.gateway.port import (
    EVENT_INTENT_CANCELED,
    EVENT_INTENT_PAYMENT_FAILED,
    EVENT_INTENT_SUCCEEDED,
    INTENT_CANCELED,
    INTENT_SUCCEEDED,
    PaymentIntent,
)
from ordering.order.lifecycle import Actor, ActorRole, OrderStatus
from ordering.order.order import Order, parse_status
from ordering.order.splitting import SplitOrder
from ordering.order.transitions import transition_command

logger = structlog.get_logger(__name__)

# Processor intent status → order status
INTENT_VERDICTS = {
    INTENT_SUCCEEDED: OrderStatus.COMPLETED,
    INTENT_CANCELED: OrderStatus.FAILED,
}

# Webhook event type → order status
WEBHOOK_TARGETS = {
    EVENT_INTENT_SUCCEEDED: OrderStatus.COMPLETED,
    EVENT_INTENT_PAYMENT_FAILED: OrderStatus.FAILED,
    EVENT_INTENT_CANCELED: OrderStatus.FAILED,
}

DEFAULT_PENDING_AGE_MINUTES = 30


def apply_transition(order_id, target: OrderStatus, actor: Actor) -> dict:
    """Run a guarded transition; split the order once its payment is confirmed."""
    result = current_domain.process(transition_command(order_id, target.value, actor), asynchronous=False)
    if result["status"] == OrderStatus.COMPLETED.value and actor.role is ActorRole.SYSTEM:
        try:
            result["sub_order_ids"] = current_domain.process(SplitOrder(order_id=str(order_id)), asynchronous=False)
        except ValidationError as exc:
            # Payment stands; the order stays whole
            logger.error("Order split refused", order_id=str(order_id), error=exc.messages)
            result["sub_order_ids"] = []
    return result


def check_intent_matches(order: Order, intent: PaymentIntent) -> None:
    if intent.amount != order.amount_minor_units or (intent.currency or "").lower() != order.currency:
        raise PaymentMismatch(
            f"Processor reports {intent.amount} {intent.currency} for order {order.id}, "
            f"expected {order.amount_minor_units} {order.currency}",
            order_id=str(order.id),
            payment_intent_id=order.payment_intent_id,
        )


def _find_order_for_intent(payment_intent_id: str) -> Order:
    order = current_domain.repository_for(Order).find_by_payment_intent(payment_intent_id)
    if order is None:
        raise NotFound({"_entity": f"No order for payment intent `{payment_intent_id}`"})
    return order


def apply_processor_verdict(order: Order, intent: PaymentIntent) -> dict:
    """Move ``order`` to whatever the processor's intent status implies, if anything."""
    check_intent_matches(order, intent)
    target = INTENT_VERDICTS.get(intent.status)
    if target is None:
        return {
            "order_id": str(order.id),
            "status": order.status,
            "changed": False,
        }
    return apply_transition(order.id, target, Actor.system())


# ---------------------------------------------------------------------------
# Buyer callback
# ---------------------------------------------------------------------------
def reconcile_buyer_callback(payment_intent_id: str, buyer_id: str) -> dict:
    order = _find_order_for_intent(payment_intent_id)
    if order.buyer_id != str(buyer_id):
        raise Forbidden(
            "Payment intent belongs to another buyer",
            payment_intent_id=payment_intent_id,
        )

    intent = get_gateway().retrieve_intent(payment_intent_id)
    result = apply_processor_verdict(order, intent)
    result["payment_status"] = intent.status

    logger.info(
        "Buyer payment callback reconciled",
        order_id=str(order.id),
        payment_intent_id=payment_intent_id,
        payment_status=intent.status,
        status=result["status"],
        changed=result["changed"],
    )
    return result


# ---------------------------------------------------------------------------
# Processor webhook
# ---------------------------------------------------------------------------
def handle_processor_webhook(raw_payload: bytes, signature: str) -> dict:
    """Verify and apply a processor webhook.

    Anything past signature verification is acknowledged, so the processor
    stops redelivering events this service can never act on.
    """
    event = get_gateway().verify_webhook_signature(raw_payload, signature)
    ack = {"received": True}

    target = WEBHOOK_TARGETS.get(event.event_type)
    if target is None:
        logger.info("Ignoring webhook event type", event_id=event.event_id, event_type=event.event_type)
        return ack

    order = current_domain.repository_for(Order).find_by_payment_intent(event.intent_id)
    if order is None:
        logger.warning(
            "Webhook for unknown payment intent",
            event_id=event.event_id,
            event_type=event.event_type,
            payment_intent_id=event.intent_id,
        )
        return ack

    if target is OrderStatus.COMPLETED and event.amount is not None:
        try:
            check_intent_matches(
                order,
                PaymentIntent(
                    intent_id=event.intent_id,
                    status=event.intent_status,
                    amount=event.amount,
                    currency=event.currency,
                ),
            )
        except PaymentMismatch as exc:
            logger.error("Webhook amount does not match order", event_id=event.event_id, **exc.details)
            return ack

    try:
        result = apply_transition(order.id, target, Actor.system())
    except (InvalidTransition, Conflict) as exc:
        details = {"order_id": str(order.id), **exc.details}
        logger.warning(
            "Webhook transition rejected",
            event_id=event.event_id,
            event_type=event.event_type,
            reason=exc.code,
            **details,
        )
        return ack

    logger.info(
        "Webhook reconciled",
        event_id=event.event_id,
        event_type=event.event_type,
        order_id=str(order.id),
        status=result["status"],
        changed=result["changed"],
    )
    return ack


# ---------------------------------------------------------------------------
# Manual actions
# ---------------------------------------------------------------------------
def set_order_status(order_id: str, target_status: str, actor: Actor) -> dict:
    return apply_transition(order_id, parse_status(target_status), actor)


# ---------------------------------------------------------------------------
# Pending sweep
# ---------------------------------------------------------------------------
def reconcile_pending_orders(older_than_minutes: int = DEFAULT_PENDING_AGE_MINUTES) -> dict:
    """Ask the processor about pending orders older than the threshold."""
    cutoff = datetime.now(UTC) - timedelta(minutes=older_than_minutes)
    gateway = get_gateway()
    summary = {"checked": 0, "completed": 0, "failed": 0, "unchanged": 0, "errors": 0}

    for order in current_domain.repository_for(Order).find_pending_older_than(cutoff):
        summary["checked"] += 1
        try:
            intent = gateway.retrieve_intent(order.payment_intent_id)
            result = apply_processor_verdict(order, intent)
        except (NotFound, UpstreamUnavailable, InvalidTransition, Conflict) as exc:
            summary["errors"] += 1
            logger.warning(
                "Pending order sweep skipped order",
                order_id=str(order.id),
                payment_intent_id=order.payment_intent_id,
                error=str(exc),
            )
            continue

        if result["changed"]:
            summary[result["status"]] += 1
        else:
            summary["unchanged"] += 1

    logger.info("Pending order sweep finished", older_than_minutes=older_than_minutes, **summary)
    return summary
