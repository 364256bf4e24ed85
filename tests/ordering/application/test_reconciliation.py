"""Application tests for the reconciliation dispatcher.

Covers:
- processor webhooks: success, failure, duplicates, out-of-order, bad signatures
- buyer success callback, re-verified against the processor
- the pending-order sweep
"""

import pytest
from ordering.exceptions import Forbidden, PaymentMismatch, UnverifiedSignature
from ordering.gateway.port import (
    EVENT_INTENT_CANCELED,
    EVENT_INTENT_PAYMENT_FAILED,
    EVENT_INTENT_SUCCEEDED,
    INTENT_CANCELED,
    INTENT_PROCESSING,
    INTENT_REQUIRES_PAYMENT_METHOD,
    INTENT_SUCCEEDED,
)
from ordering.order.lifecycle import OrderStatus
from ordering.order.order import Order
from ordering.order.reconciliation import (
    handle_processor_webhook,
    reconcile_buyer_callback,
    reconcile_pending_orders,
)
from protean import current_domain
from protean.exceptions import ObjectNotFoundError


def _status(order_id):
    return current_domain.repository_for(Order).get(order_id).status


class TestWebhook:
    def test_succeeded_completes_order(self, checkout, deliver_webhook):
        result = checkout()
        assert deliver_webhook(result["payment_intent_id"]) == {"received": True}
        assert _status(result["order_id"]) == OrderStatus.COMPLETED.value

    def test_duplicate_delivery_is_acknowledged_noop(self, checkout, deliver_webhook, notifier):
        result = checkout()
        deliver_webhook(result["payment_intent_id"])
        assert deliver_webhook(result["payment_intent_id"]) == {"received": True}
        assert _status(result["order_id"]) == OrderStatus.COMPLETED.value
        assert len(notifier.sent) == 1

    def test_payment_failed_fails_order(self, checkout, deliver_webhook):
        result = checkout()
        deliver_webhook(
            result["payment_intent_id"],
            event_type=EVENT_INTENT_PAYMENT_FAILED,
            status=INTENT_REQUIRES_PAYMENT_METHOD,
        )
        assert _status(result["order_id"]) == OrderStatus.FAILED.value

    def test_canceled_fails_order(self, checkout, deliver_webhook):
        result = checkout()
        deliver_webhook(result["payment_intent_id"], event_type=EVENT_INTENT_CANCELED, status=INTENT_CANCELED)
        assert _status(result["order_id"]) == OrderStatus.FAILED.value

    def test_success_after_failure_is_acknowledged_but_ignored(self, checkout, deliver_webhook):
        result = checkout()
        deliver_webhook(result["payment_intent_id"], event_type=EVENT_INTENT_CANCELED, status=INTENT_CANCELED)
        assert deliver_webhook(result["payment_intent_id"]) == {"received": True}
        assert _status(result["order_id"]) == OrderStatus.FAILED.value

    def test_late_failure_after_dispatch_is_ignored(self, checkout, deliver_webhook):
        from ordering.order.lifecycle import Actor
        from ordering.order.reconciliation import set_order_status

        result = checkout()
        deliver_webhook(result["payment_intent_id"])
        set_order_status(result["order_id"], "dispatched", Actor.seller("seller-a", ["7"]))
        deliver_webhook(result["payment_intent_id"], event_type=EVENT_INTENT_CANCELED, status=INTENT_CANCELED)
        assert _status(result["order_id"]) == OrderStatus.DISPATCHED.value

    def test_unknown_intent_acknowledged(self, deliver_webhook):
        assert deliver_webhook("pi_unknown") == {"received": True}

    def test_unhandled_event_type_acknowledged(self, checkout, deliver_webhook):
        result = checkout()
        assert deliver_webhook(
            result["payment_intent_id"], event_type="payment_intent.created", status=INTENT_PROCESSING
        ) == {"received": True}
        assert _status(result["order_id"]) == OrderStatus.PENDING.value

    def test_invalid_signature_rejected(self, checkout, gateway):
        result = checkout()
        gateway.set_intent_status(result["payment_intent_id"], INTENT_SUCCEEDED)
        payload = gateway.build_event(EVENT_INTENT_SUCCEEDED, result["payment_intent_id"])
        with pytest.raises(UnverifiedSignature):
            handle_processor_webhook(payload, "t=1,v1=deadbeef")
        assert _status(result["order_id"]) == OrderStatus.PENDING.value

    def test_amount_mismatch_acknowledged_without_transition(self, checkout, gateway):
        result = checkout()
        gateway.set_intent_status(result["payment_intent_id"], INTENT_SUCCEEDED, amount=100)
        payload = gateway.build_event(EVENT_INTENT_SUCCEEDED, result["payment_intent_id"])
        assert handle_processor_webhook(payload, gateway.sign(payload)) == {"received": True}
        assert _status(result["order_id"]) == OrderStatus.PENDING.value


class TestBuyerCallback:
    def test_processor_success_completes(self, checkout, gateway):
        result = checkout()
        gateway.set_intent_status(result["payment_intent_id"], INTENT_SUCCEEDED)
        outcome = reconcile_buyer_callback(result["payment_intent_id"], "buyer-1")
        assert outcome["status"] == OrderStatus.COMPLETED.value
        assert outcome["changed"] is True
        assert outcome["payment_status"] == INTENT_SUCCEEDED

    def test_callback_is_only_a_hint(self, checkout):
        result = checkout()
        outcome = reconcile_buyer_callback(result["payment_intent_id"], "buyer-1")
        assert outcome["changed"] is False
        assert outcome["payment_status"] == INTENT_REQUIRES_PAYMENT_METHOD
        assert _status(result["order_id"]) == OrderStatus.PENDING.value

    def test_processor_canceled_fails(self, checkout, gateway):
        result = checkout()
        gateway.set_intent_status(result["payment_intent_id"], INTENT_CANCELED)
        outcome = reconcile_buyer_callback(result["payment_intent_id"], "buyer-1")
        assert outcome["status"] == OrderStatus.FAILED.value

    def test_callback_after_webhook_is_noop(self, checkout, deliver_webhook):
        result = checkout()
        deliver_webhook(result["payment_intent_id"])
        outcome = reconcile_buyer_callback(result["payment_intent_id"], "buyer-1")
        assert outcome["changed"] is False
        assert outcome["status"] == OrderStatus.COMPLETED.value

    def test_other_buyer_forbidden(self, checkout, gateway):
        result = checkout()
        gateway.set_intent_status(result["payment_intent_id"], INTENT_SUCCEEDED)
        with pytest.raises(Forbidden):
            reconcile_buyer_callback(result["payment_intent_id"], "buyer-2")
        assert _status(result["order_id"]) == OrderStatus.PENDING.value

    def test_unknown_intent(self):
        with pytest.raises(ObjectNotFoundError):
            reconcile_buyer_callback("pi_missing", "buyer-1")

    def test_amount_mismatch_conflicts(self, checkout, gateway):
        result = checkout()
        gateway.set_intent_status(result["payment_intent_id"], INTENT_SUCCEEDED, amount=1)
        with pytest.raises(PaymentMismatch):
            reconcile_buyer_callback(result["payment_intent_id"], "buyer-1")
        assert _status(result["order_id"]) == OrderStatus.PENDING.value


class TestPendingSweep:
    def test_applies_processor_verdicts(self, checkout, gateway):
        paid = checkout()
        canceled = checkout()
        waiting = checkout()
        gateway.set_intent_status(paid["payment_intent_id"], INTENT_SUCCEEDED)
        gateway.set_intent_status(canceled["payment_intent_id"], INTENT_CANCELED)

        summary = reconcile_pending_orders(older_than_minutes=0)

        assert summary == {"checked": 3, "completed": 1, "failed": 1, "unchanged": 1, "errors": 0}
        assert _status(paid["order_id"]) == OrderStatus.COMPLETED.value
        assert _status(canceled["order_id"]) == OrderStatus.FAILED.value
        assert _status(waiting["order_id"]) == OrderStatus.PENDING.value

    def test_recent_orders_left_alone(self, checkout, gateway):
        result = checkout()
        gateway.set_intent_status(result["payment_intent_id"], INTENT_SUCCEEDED)
        summary = reconcile_pending_orders(older_than_minutes=30)
        assert summary["checked"] == 0
        assert _status(result["order_id"]) == OrderStatus.PENDING.value

    def test_processor_outage_counts_errors(self, checkout, gateway):
        checkout()
        gateway.configure(available=False)
        summary = reconcile_pending_orders(older_than_minutes=0)
        assert summary["checked"] == 1
        assert summary["errors"] == 1
