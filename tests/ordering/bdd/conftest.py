"""Shared BDD fixtures and step definitions for order reconciliation and fulfilment."""

import pytest
from ordering.catalog import get_catalog
from ordering.exceptions import OrderingError, UnverifiedSignature
from ordering.gateway.port import (
    EVENT_INTENT_CANCELED,
    EVENT_INTENT_PAYMENT_FAILED,
    EVENT_INTENT_SUCCEEDED,
    INTENT_CANCELED,
    INTENT_REQUIRES_PAYMENT_METHOD,
    INTENT_SUCCEEDED,
)
from ordering.order.lifecycle import Actor
from ordering.order.order import Order
from ordering.order.reconciliation import set_order_status
from protean import current_domain
from pytest_bdd import given, parsers, then, when

# Processor intent status → webhook event delivered for it
_EVENTS_FOR_STATUS = {
    INTENT_SUCCEEDED: EVENT_INTENT_SUCCEEDED,
    INTENT_CANCELED: EVENT_INTENT_CANCELED,
    INTENT_REQUIRES_PAYMENT_METHOD: EVENT_INTENT_PAYMENT_FAILED,
}


@pytest.fixture()
def error():
    """Container for an error captured by a When step."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse('buyer "{buyer_id}" checked out {quantity:d} of product "{product_id}" for {amount:f}'),
    target_fixture="placed",
)
def _(checkout, buyer_id, quantity, product_id, amount):
    return checkout(buyer_id=buyer_id, items=[{"product_id": product_id, "quantity": quantity}], amount=amount)


@given(parsers.cfparse('the processor marked the intent "{status}"'))
def _(gateway, placed, status):
    gateway.set_intent_status(placed["payment_intent_id"], status)


@given(parsers.cfparse('the processor reports "{status}"'))
def _(deliver_webhook, placed, status):
    deliver_webhook(placed["payment_intent_id"], event_type=_EVENTS_FOR_STATUS[status], status=status)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the processor reports "{status}"'))
def _(deliver_webhook, placed, status):
    deliver_webhook(placed["payment_intent_id"], event_type=_EVENTS_FOR_STATUS[status], status=status)


@when(parsers.cfparse('"{user_id}" as {role} sets the status to "{status}"'))
def _(placed, error, user_id, role, status):
    if role == "seller":
        actor = Actor.seller(user_id, get_catalog().products_owned_by(user_id))
    else:
        actor = Actor.admin(user_id)
    try:
        set_order_status(placed["order_id"], status, actor)
    except OrderingError as exc:
        error["exc"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _(placed, status):
    assert current_domain.repository_for(Order).get(placed["order_id"]).status == status


@then(parsers.cfparse('the buyer received a "{template_kind}" notification'))
def _(notifier, template_kind):
    assert notifier.sent, "no notification was sent"
    assert notifier.sent[-1]["template_kind"] == template_kind
    assert notifier.sent[-1]["to"] == "buyer-1"


@then(parsers.re(r"the buyer received (?P<count>\d+) notifications?"))
def _(notifier, count):
    assert len(notifier.sent) == int(count)


@then(parsers.cfparse('the action is refused with "{code}"'))
def _(error, code):
    assert error["exc"] is not None, "expected the action to be refused"
    assert error["exc"].code == code


@then("the webhook is rejected")
def _(error):
    assert isinstance(error["exc"], UnverifiedSignature)
