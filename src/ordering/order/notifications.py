"""Buyer notifications for order status changes.

Sends a payment receipt when an order's payment is confirmed and a status
update when it is dispatched or delivered. Delivery failures are logged and
never affect the transition that triggered them.
"""

import json

import structlog
from protean.utils.mixins import handle

from ordering.domain import ordering
from ordering.notification import get_notifier
from ordering.notification.templates import ORDER_DELIVERED, ORDER_DISPATCHED, PAYMENT_RECEIPT
from ordering.order.events import OrderStatusChanged
from ordering.order.lifecycle import OrderStatus
from ordering.order.order import Order

logger = structlog.get_logger(__name__)

_STATUS_UPDATE_KINDS = {
    OrderStatus.DISPATCHED.value: ORDER_DISPATCHED,
    OrderStatus.DELIVERED.value: ORDER_DELIVERED,
}


def build_notification(event: OrderStatusChanged) -> tuple[str, dict] | None:
    """Pick the template and payload for a status change, if it notifies anyone."""
    if event.new_status == OrderStatus.COMPLETED.value:
        if event.parent_order_id:
            return None
        return PAYMENT_RECEIPT, {
            "order_id": str(event.order_id),
            "order_number": event.order_number,
            "buyer_name": event.buyer_name,
            "payment_intent_id": event.payment_intent_id,
            "items": json.loads(event.items) if event.items else [],
            "amount": event.amount,
            "currency": event.currency,
            "paid_at": event.changed_at.isoformat() if event.changed_at else None,
        }

    kind = _STATUS_UPDATE_KINDS.get(event.new_status)
    if kind is None:
        return None
    return kind, {
        "order_id": str(event.order_id),
        "order_number": event.order_number,
        "buyer_name": event.buyer_name,
        "item_count": event.item_count,
        "amount": event.amount,
        "currency": event.currency,
        "status": event.new_status,
    }


@ordering.event_handler(part_of=Order)
class OrderNotificationHandler:
    """Notifies the buyer about payment and delivery milestones."""

    @handle(OrderStatusChanged)
    def on_status_changed(self, event: OrderStatusChanged) -> None:
        notification = build_notification(event)
        if notification is None:
            return

        kind, payload = notification
        try:
            get_notifier().send(event.buyer_id, kind, payload)
        except Exception as exc:
            logger.error(
                "Order notification failed",
                order_id=str(event.order_id),
                template_kind=kind,
                error=str(exc),
            )
            return

        logger.info(
            "Order notification sent",
            order_id=str(event.order_id),
            template_kind=kind,
            to=event.buyer_id,
        )
