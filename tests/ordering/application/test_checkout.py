"""Application tests for checkout, intent adoption and payment verification."""

import json
import threading
import time

import pytest
from ordering.exceptions import (
    CheckoutNotPersisted,
    DuplicatePaymentIntent,
    Forbidden,
    InvalidAmount,
    UpstreamUnavailable,
)
from ordering.gateway.port import INTENT_SUCCEEDED
from ordering.order.checkout import PlaceOrder, _persist_order, adopt_payment_intent, verify_payment
from ordering.order.lifecycle import OrderStatus
from ordering.order.order import Order
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError

YOGA_MAT_LINE = [{"product_id": "7", "seller_id": "seller-a", "name": "Yoga Mat", "unit_price": 29.99, "quantity": 1}]


class TestCreateCheckout:
    def test_returns_client_secret_and_order(self, checkout):
        result = checkout()
        assert result["client_secret"]
        assert result["payment_intent_id"].startswith("pi_fake_")
        assert result["order_number"].startswith("ORD-")

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.status == OrderStatus.PENDING.value
        assert order.payment_intent_id == result["payment_intent_id"]
        assert order.amount == 59.98
        assert order.buyer_name == "Ada"

    def test_intent_carries_order_metadata(self, checkout, gateway):
        result = checkout()
        call = gateway.calls[0]
        assert call["amount"] == 5998
        assert call["idempotency_key"] == f"checkout-{result['order_id']}"
        assert call["metadata"] == {"order_id": result["order_id"], "buyer_id": "buyer-1", "item_count": 2}

    def test_items_snapshot_from_catalog(self, checkout):
        result = checkout()
        order = current_domain.repository_for(Order).get(result["order_id"])
        item = order.items[0]
        assert item.name == "Yoga Mat"
        assert item.unit_price == 29.99
        assert item.seller_id == "seller-a"
        assert item.quantity == 2

    def test_later_catalog_edits_do_not_change_order(self, checkout, catalog):
        from ordering.catalog.port import ProductSnapshot

        result = checkout()
        catalog.register(ProductSnapshot("7", "seller-a", "Yoga Mat Pro", 99.0))
        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.items[0].name == "Yoga Mat"
        assert order.items[0].unit_price == 29.99

    @pytest.mark.parametrize("amount", [0, -1, -0.01, 0.004, "59.98", True])
    def test_amount_below_one_minor_unit(self, checkout, gateway, amount):
        with pytest.raises(InvalidAmount):
            checkout(amount=amount)
        assert gateway.calls == []
        assert current_domain.repository_for(Order)._dao.query.all().total == 0

    def test_one_minor_unit_is_accepted(self, checkout, gateway):
        checkout(amount=0.01, items=[{"product_id": "8", "quantity": 1}])
        assert gateway.calls[0]["amount"] == 1

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"buyer_name": "x" * 300}, "buyer_name"),
            ({"buyer_id": "b" * 256}, "buyer_id"),
            ({"buyer_id": ""}, "buyer_id"),
            ({"currency": "dollars"}, "currency"),
            ({"currency": "us1"}, "currency"),
        ],
    )
    def test_invalid_buyer_details_open_no_intent(self, checkout, gateway, overrides, field):
        with pytest.raises(ValidationError) as exc:
            checkout(**overrides)
        assert field in exc.value.messages
        assert gateway.calls == []
        assert gateway.intents == {}
        assert current_domain.repository_for(Order)._dao.query.all().total == 0

    def test_empty_items(self, checkout):
        with pytest.raises(ValidationError) as exc:
            checkout(items=[])
        assert "items" in exc.value.messages

    def test_zero_quantity(self, checkout):
        with pytest.raises(ValidationError):
            checkout(items=[{"product_id": "7", "quantity": 0}])

    def test_unknown_product(self, checkout, gateway):
        with pytest.raises(ObjectNotFoundError):
            checkout(items=[{"product_id": "404", "quantity": 1}])
        assert gateway.calls == []

    def test_processor_unavailable(self, checkout, gateway):
        gateway.configure(available=False)
        with pytest.raises(UpstreamUnavailable) as exc:
            checkout()
        assert exc.value.retryable is True
        assert current_domain.repository_for(Order)._dao.query.all().total == 0


class TestPlaceOrderIdempotence:
    def _command(self, order_id, intent_id="pi_dup"):
        return PlaceOrder(
            order_id=order_id,
            buyer_id="buyer-1",
            payment_intent_id=intent_id,
            amount=29.99,
            items=json.dumps(
                [{"product_id": "7", "seller_id": "seller-a", "name": "Yoga Mat", "unit_price": 29.99, "quantity": 1}]
            ),
        )

    def test_same_order_and_intent_is_noop(self):
        order_id = "a6f0a1de-1111-4111-8111-000000000001"
        first = current_domain.process(self._command(order_id), asynchronous=False)
        second = current_domain.process(self._command(order_id), asynchronous=False)
        assert first["created"] is True
        assert second["created"] is False
        assert second["order_id"] == first["order_id"]
        assert current_domain.repository_for(Order)._dao.query.all().total == 1

    def test_second_order_for_same_intent_conflicts(self):
        current_domain.process(self._command("a6f0a1de-1111-4111-8111-000000000001"), asynchronous=False)
        with pytest.raises(DuplicatePaymentIntent) as exc:
            current_domain.process(self._command("a6f0a1de-1111-4111-8111-000000000002"), asynchronous=False)
        assert exc.value.existing_order_id == "a6f0a1de-1111-4111-8111-000000000001"
        assert current_domain.repository_for(Order)._dao.query.all().total == 1

    def test_concurrent_placements_store_one_order(self, monkeypatch):
        from ordering.domain import ordering

        original_place = Order.place

        def _slow_place(**kwargs):
            time.sleep(0.05)
            return original_place(**kwargs)

        monkeypatch.setattr(Order, "place", _slow_place)

        results, conflicts = [], []
        barrier = threading.Barrier(2)

        def _place(order_id):
            with ordering.domain_context():
                barrier.wait()
                try:
                    results.append(_persist_order(order_id, "buyer-1", None, "pi_race", 29.99, "usd", YOGA_MAT_LINE))
                except DuplicatePaymentIntent as exc:
                    conflicts.append(exc)

        threads = [
            threading.Thread(target=_place, args=(order_id,))
            for order_id in ("a6f0a1de-1111-4111-8111-000000000001", "a6f0a1de-1111-4111-8111-000000000002")
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert len(results) == 1
        assert len(conflicts) == 1
        assert conflicts[0].existing_order_id == results[0]["order_id"]
        assert current_domain.repository_for(Order)._dao.query.all().total == 1

    def test_unique_violation_from_store_is_a_duplicate(self, monkeypatch):
        from ordering.order.repository import OrderRepository

        first_id = "a6f0a1de-1111-4111-8111-000000000001"
        _persist_order(first_id, "buyer-1", None, "pi_dup", 29.99, "usd", YOGA_MAT_LINE)

        # The handler's own lookup misses the stored order, as a second writer would
        original_lookup = OrderRepository.find_by_payment_intent
        lookups = []

        def _stale_lookup(self, payment_intent_id):
            lookups.append(payment_intent_id)
            return None if len(lookups) == 1 else original_lookup(self, payment_intent_id)

        monkeypatch.setattr(OrderRepository, "find_by_payment_intent", _stale_lookup)

        with pytest.raises(DuplicatePaymentIntent) as exc:
            _persist_order("a6f0a1de-1111-4111-8111-000000000002", "buyer-1", None, "pi_dup", 29.99, "usd", YOGA_MAT_LINE)
        assert exc.value.existing_order_id == first_id
        assert current_domain.repository_for(Order)._dao.query.all().total == 1


class TestPersistFailureAndAdoption:
    def _break_persistence(self, monkeypatch):
        def _fail(*args, **kwargs):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(Order, "place", _fail)

    def test_persist_failure_raises_checkout_not_persisted(self, checkout, gateway, monkeypatch):
        self._break_persistence(monkeypatch)
        with pytest.raises(CheckoutNotPersisted) as exc:
            checkout()
        assert exc.value.retryable is True
        assert exc.value.details["payment_intent_id"] in gateway.intents

    def test_adopt_recovers_order_under_metadata_id(self, checkout, gateway, monkeypatch):
        self._break_persistence(monkeypatch)
        with pytest.raises(CheckoutNotPersisted) as exc:
            checkout()
        monkeypatch.undo()

        intent_id = exc.value.details["payment_intent_id"]
        result = adopt_payment_intent(intent_id, "buyer-1", [{"product_id": "7", "quantity": 2}])
        assert result["adopted"] is True
        assert result["order_id"] == exc.value.details["order_id"]
        assert result["status"] == OrderStatus.PENDING.value

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.amount == 59.98

    def test_adopt_applies_processor_verdict(self, checkout, gateway, monkeypatch):
        self._break_persistence(monkeypatch)
        with pytest.raises(CheckoutNotPersisted) as exc:
            checkout()
        monkeypatch.undo()

        intent_id = exc.value.details["payment_intent_id"]
        gateway.set_intent_status(intent_id, INTENT_SUCCEEDED)
        result = adopt_payment_intent(intent_id, "buyer-1", [{"product_id": "7", "quantity": 2}])
        assert result["status"] == OrderStatus.COMPLETED.value

    def test_adopt_existing_order_returns_it(self, checkout):
        result = checkout()
        adopted = adopt_payment_intent(result["payment_intent_id"], "buyer-1", [])
        assert adopted == {
            "order_id": result["order_id"],
            "order_number": result["order_number"],
            "status": OrderStatus.PENDING.value,
            "adopted": False,
        }

    def test_adopt_someone_elses_intent(self, checkout):
        result = checkout()
        with pytest.raises(Forbidden):
            adopt_payment_intent(result["payment_intent_id"], "buyer-2", [])


class TestVerifyPayment:
    def test_reports_processor_status(self, checkout, gateway):
        result = checkout()
        gateway.set_intent_status(result["payment_intent_id"], INTENT_SUCCEEDED)
        assert verify_payment(result["payment_intent_id"]) == {
            "payment_intent_id": result["payment_intent_id"],
            "payment_status": INTENT_SUCCEEDED,
            "amount": 59.98,
            "currency": "usd",
        }

    def test_does_not_touch_order(self, checkout, gateway):
        result = checkout()
        gateway.set_intent_status(result["payment_intent_id"], INTENT_SUCCEEDED)
        verify_payment(result["payment_intent_id"])
        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.status == OrderStatus.PENDING.value

    def test_unknown_intent(self):
        with pytest.raises(ObjectNotFoundError):
            verify_payment("pi_missing")
