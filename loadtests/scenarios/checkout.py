"""Checkout and reconciliation load test scenarios.

Stateful SequentialTaskSet journeys covering the paid path, failed payments
with late success signals, seller/admin fulfilment, and multi-seller splits.
Webhooks are signed with the fake gateway secret, so the target server must
run with ``PAYMENT_GATEWAY=fake``.
"""

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import (
    admin_headers,
    buyer_headers,
    checkout_data,
    seller_headers,
    sellers_in,
    signed_webhook,
)
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import CheckoutState


class _CheckoutJourney(SequentialTaskSet):
    """Shared steps: open a checkout, then deliver processor webhooks for it."""

    multi_seller = False
    num_items = 2

    def on_start(self):
        self.state = CheckoutState(buyer_headers=buyer_headers())

    def open_checkout(self):
        payload = checkout_data(num_items=self.num_items, multi_seller=self.multi_seller)
        with self.client.post(
            "/payments/create-payment-intent",
            json=payload,
            headers=self.state.buyer_headers,
            catch_response=True,
            name="POST /payments/create-payment-intent",
        ) as resp:
            if resp.status_code == 201:
                body = resp.json()
                self.state.order_id = body["order_id"]
                self.state.payment_intent_id = body["payment_intent_id"]
                self.state.amount = payload["amount"]
                self.state.sellers = sellers_in(payload)
            else:
                resp.failure(f"Checkout failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    def deliver_webhook(self, event_type, intent_status, label):
        payload, signature = signed_webhook(
            self.state.payment_intent_id, event_type, intent_status, self.state.amount
        )
        with self.client.post(
            "/payments/webhook",
            data=payload,
            headers={"Stripe-Signature": signature, "Content-Type": "application/json"},
            catch_response=True,
            name=f"POST /payments/webhook ({label})",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Webhook {label} failed: {resp.status_code} — {extract_error_detail(resp)}")

    def set_status(self, order_id, status, headers, label):
        with self.client.put(
            f"/orders/{order_id}/status",
            json={"status": status},
            headers=headers,
            catch_response=True,
            name=f"PUT /orders/{{id}}/status ({label})",
        ) as resp:
            if resp.status_code == 200:
                self.state.current_status = resp.json()["status"]
            else:
                resp.failure(f"Set {status} failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()


class PaidCheckoutJourney(_CheckoutJourney):
    """Checkout -> Webhook Success -> Duplicate Webhook -> Buyer Callback -> View Order.

    The happy path. The duplicate webhook and the buyer callback are both
    no-ops once the first webhook has completed the order.
    """

    @task
    def checkout(self):
        self.open_checkout()

    @task
    def webhook_success(self):
        self.deliver_webhook("payment_intent.succeeded", "succeeded", "success")

    @task
    def webhook_duplicate(self):
        self.deliver_webhook("payment_intent.succeeded", "succeeded", "duplicate")

    @task
    def buyer_callback(self):
        with self.client.post(
            "/payments/payment-success",
            json={"payment_intent_id": self.state.payment_intent_id},
            headers=self.state.buyer_headers,
            catch_response=True,
            name="POST /payments/payment-success",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Callback failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task
    def view_order(self):
        with self.client.get(
            f"/orders/{self.state.order_id}",
            headers=self.state.buyer_headers,
            catch_response=True,
            name="GET /orders/{id}",
        ) as resp:
            if resp.status_code == 200 and resp.json()["status"] != "completed":
                resp.failure(f"Expected completed order, got {resp.json()['status']}")
            elif resp.status_code != 200:
                resp.failure(f"Get order failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task
    def done(self):
        self.interrupt()


class FailedPaymentJourney(_CheckoutJourney):
    """Checkout -> Webhook Failure -> Late Success Webhook -> List Orders.

    The late success must be acknowledged and ignored; failed is final.
    """

    @task
    def checkout(self):
        self.open_checkout()

    @task
    def webhook_failure(self):
        self.deliver_webhook("payment_intent.payment_failed", "requires_payment_method", "failure")

    @task
    def webhook_late_success(self):
        self.deliver_webhook("payment_intent.succeeded", "succeeded", "late success")

    @task
    def list_orders(self):
        self.client.get("/orders?status=failed", headers=self.state.buyer_headers, name="GET /orders")

    @task
    def done(self):
        self.interrupt()


class FulfilmentJourney(_CheckoutJourney):
    """Checkout -> Webhook Success -> Seller Dispatch -> Admin Deliver."""

    num_items = 1

    @task
    def checkout(self):
        self.open_checkout()

    @task
    def webhook_success(self):
        self.deliver_webhook("payment_intent.succeeded", "succeeded", "success")

    @task
    def find_seller_order(self):
        seller = seller_headers(self.state.sellers[0])
        with self.client.get(
            "/orders?status=completed&limit=100",
            headers=seller,
            catch_response=True,
            name="GET /orders (seller)",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Seller listing failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()
            ids = [
                order["order_id"]
                for order in resp.json()["orders"]
                if self.state.order_id in (order["order_id"], order["parent_order_id"])
            ]
            if not ids:
                resp.failure("Paid order not visible to its seller")
                self.interrupt()
            self.state.sub_order_ids = ids

    @task
    def dispatch(self):
        seller = seller_headers(self.state.sellers[0])
        self.set_status(self.state.sub_order_ids[0], "dispatched", seller, "dispatch")

    @task
    def deliver(self):
        self.set_status(self.state.sub_order_ids[0], "delivered", admin_headers(), "deliver")

    @task
    def done(self):
        self.interrupt()


class SplitCheckoutJourney(_CheckoutJourney):
    """Multi-seller Checkout -> Webhook Success -> Each Seller Lists Orders."""

    multi_seller = True

    @task
    def checkout(self):
        self.open_checkout()

    @task
    def webhook_success(self):
        self.deliver_webhook("payment_intent.succeeded", "succeeded", "success")

    @task
    def sellers_list_orders(self):
        for seller_id in self.state.sellers:
            self.client.get("/orders", headers=seller_headers(seller_id), name="GET /orders (seller)")

    @task
    def done(self):
        self.interrupt()


class CheckoutUser(HttpUser):
    """Buyers checking out, weighted towards successful payments."""

    wait_time = between(0.5, 3.0)
    tasks = {
        PaidCheckoutJourney: 6,
        FailedPaymentJourney: 2,
        FulfilmentJourney: 3,
        SplitCheckoutJourney: 2,
    }


class WebhookStormUser(HttpUser):
    """Processor redelivering the same success event in bursts."""

    wait_time = between(0.05, 0.2)

    class Storm(_CheckoutJourney):
        @task
        def checkout(self):
            self.open_checkout()

        @task
        def storm(self):
            for _ in range(10):
                self.deliver_webhook("payment_intent.succeeded", "succeeded", "storm")

        @task
        def done(self):
            self.interrupt()

    tasks = [Storm]


class PendingSweepUser(HttpUser):
    """Admin running the pending-order sweep periodically."""

    wait_time = between(30, 60)

    @task
    def sweep(self):
        with self.client.post(
            "/orders/reconcile-pending",
            json={"older_than_minutes": 30},
            headers=admin_headers(),
            catch_response=True,
            name="POST /orders/reconcile-pending",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Sweep failed: {resp.status_code} — {extract_error_detail(resp)}")
