import pytest
from protean.integrations.pytest import DomainFixture

from ordering.catalog import reset_catalog, set_catalog
from ordering.catalog.memory_adapter import InMemoryCatalog
from ordering.catalog.port import ProductSnapshot
from ordering.gateway import reset_gateway, set_gateway
from ordering.gateway.fake_adapter import FakeGateway
from ordering.notification import reset_notifier, set_notifier
from ordering.notification.fake_adapter import FakeNotifier

# Seller A lists the yoga mat and the water bottle, seller B the resistance band
YOGA_MAT = ProductSnapshot("7", "seller-a", "Yoga Mat", 29.99, "fitness", "https://img.example/yoga-mat.png")
WATER_BOTTLE = ProductSnapshot("8", "seller-a", "Water Bottle", 12.50, "fitness", None)
RESISTANCE_BAND = ProductSnapshot("9", "seller-b", "Resistance Band", 15.00, "fitness", None)


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield

        from protean import current_domain

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()


@pytest.fixture(autouse=True)
def gateway():
    fake = FakeGateway(webhook_secret="whsec_test")
    set_gateway(fake)
    yield fake
    reset_gateway()


@pytest.fixture(autouse=True)
def catalog():
    fake = InMemoryCatalog([YOGA_MAT, WATER_BOTTLE, RESISTANCE_BAND])
    set_catalog(fake)
    yield fake
    reset_catalog()


@pytest.fixture(autouse=True)
def notifier():
    fake = FakeNotifier()
    set_notifier(fake)
    yield fake
    reset_notifier()


@pytest.fixture()
def checkout():
    """Open a checkout for buyer-1; defaults to two yoga mats (59.98 USD)."""
    from ordering.order.checkout import create_checkout

    def _checkout(buyer_id="buyer-1", items=None, amount=59.98, currency="usd", buyer_name="Ada"):
        return create_checkout(
            buyer_id=buyer_id,
            buyer_name=buyer_name,
            amount=amount,
            currency=currency,
            items=items if items is not None else [{"product_id": "7", "quantity": 2}],
        )

    return _checkout


@pytest.fixture()
def deliver_webhook(gateway):
    """Move the fake intent to ``status`` and deliver a signed webhook for it."""
    from ordering.gateway.port import EVENT_INTENT_SUCCEEDED, INTENT_SUCCEEDED
    from ordering.order.reconciliation import handle_processor_webhook

    def _deliver(intent_id, event_type=EVENT_INTENT_SUCCEEDED, status=INTENT_SUCCEEDED):
        if status and intent_id in gateway.intents:
            gateway.set_intent_status(intent_id, status)
        payload = gateway.build_event(event_type, intent_id, status=status)
        return handle_processor_webhook(payload, gateway.sign(payload))

    return _deliver
