"""Application tests for buyer notifications on status changes."""

from datetime import UTC, datetime

from ordering.notification.templates import ORDER_DELIVERED, ORDER_DISPATCHED, PAYMENT_RECEIPT
from ordering.order.events import OrderStatusChanged
from ordering.order.lifecycle import Actor
from ordering.order.notifications import OrderNotificationHandler, build_notification
from ordering.order.order import Order
from ordering.order.reconciliation import set_order_status
from protean import current_domain

SELLER_A = Actor.seller("seller-a", ["7", "8"])
ADMIN = Actor.admin("admin-1")


def _event(new_status, previous_status="pending", parent_order_id=None):
    return OrderStatusChanged(
        order_id="order-1",
        order_number="ORD-20260101-ABC123",
        buyer_id="buyer-1",
        buyer_name="Ada",
        payment_intent_id="pi_123",
        previous_status=previous_status,
        new_status=new_status,
        actor_role="system",
        actor_id="system",
        amount=59.98,
        currency="usd",
        item_count=2,
        items='[{"product_id": "7", "name": "Yoga Mat", "unit_price": 29.99, "quantity": 2}]',
        parent_order_id=parent_order_id,
        changed_at=datetime(2026, 1, 1, 12, 0, tzinfo=UTC),
    )


class TestBuildNotification:
    def test_receipt_on_completion(self):
        kind, payload = build_notification(_event("completed"))
        assert kind == PAYMENT_RECEIPT
        assert payload["order_number"] == "ORD-20260101-ABC123"
        assert payload["items"][0]["name"] == "Yoga Mat"
        assert payload["paid_at"].startswith("2026-01-01T12:00:00")

    def test_no_receipt_for_sub_order(self):
        assert build_notification(_event("completed", parent_order_id="parent-1")) is None

    def test_dispatched_and_delivered(self):
        assert build_notification(_event("dispatched", "completed"))[0] == ORDER_DISPATCHED
        assert build_notification(_event("delivered", "dispatched"))[0] == ORDER_DELIVERED

    def test_silent_statuses(self):
        for status in ("failed", "unfilled", "returned", "cancelled", "refunded"):
            assert build_notification(_event(status)) is None


class TestHandler:
    def test_sends_to_buyer(self, notifier):
        OrderNotificationHandler().on_status_changed(_event("completed"))

        assert len(notifier.sent) == 1
        message = notifier.sent[0]
        assert message["to"] == "buyer-1"
        assert message["subject"] == "Invoice & Receipt - Order #ORD-20260101-ABC123"

    def test_delivery_failure_is_swallowed(self, notifier):
        notifier.configure(should_succeed=False)
        OrderNotificationHandler().on_status_changed(_event("dispatched", "completed"))
        assert notifier.sent == []


class TestNotificationFlow:
    def test_receipt_then_status_updates(self, checkout, deliver_webhook, notifier):
        result = checkout()
        deliver_webhook(result["payment_intent_id"])
        set_order_status(result["order_id"], "dispatched", SELLER_A)
        set_order_status(result["order_id"], "delivered", ADMIN)

        assert [m["template_kind"] for m in notifier.sent] == [PAYMENT_RECEIPT, ORDER_DISPATCHED, ORDER_DELIVERED]
        assert "Total paid: 59.98 USD" in notifier.sent[0]["body"]
        assert notifier.sent[2]["subject"].endswith(result["order_number"])

    def test_failed_notification_keeps_transition(self, checkout, deliver_webhook, notifier):
        result = checkout()
        deliver_webhook(result["payment_intent_id"])
        notifier.configure(should_succeed=False)

        outcome = set_order_status(result["order_id"], "dispatched", SELLER_A)

        assert outcome["changed"] is True
        assert current_domain.repository_for(Order).get(result["order_id"]).status == "dispatched"
