"""Checkout — open a payment intent and persist the pending order behind it.

The order identifier is generated before the processor is called and travels
in the intent metadata, so an intent whose local persist failed can always be
traced back and adopted later (``adopt_payment_intent``).
"""

import json
import threading
from uuid import uuid4

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.catalog import get_catalog
from ordering.domain import ordering
from ordering.exceptions import (
    CheckoutNotPersisted,
    Conflict,
    DuplicatePaymentIntent,
    Forbidden,
    InvalidAmount,
)
from ordering.gateway import get_gateway
from ordering.order.order import BUYER_FIELD_MAX_LENGTH, DEFAULT_CURRENCY, Order, to_minor_units
from ordering.order.reconciliation import apply_processor_verdict

logger = structlog.get_logger(__name__)

PERSIST_ATTEMPTS = 3

# Serializes the find-then-add in PlaceOrderHandler within this process
_PLACEMENT_LOCK = threading.Lock()


@ordering.command(part_of="Order")
class PlaceOrder:
    order_id = Identifier(required=True)
    buyer_id = String(required=True, max_length=BUYER_FIELD_MAX_LENGTH)
    buyer_name = String(max_length=BUYER_FIELD_MAX_LENGTH)
    payment_intent_id = String(required=True, max_length=255)
    amount = Float(required=True)
    currency = String(max_length=3, default=DEFAULT_CURRENCY)
    items = Text(required=True)  # JSON: list of item snapshots


@ordering.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        repo = current_domain.repository_for(Order)

        existing = repo.find_by_payment_intent(command.payment_intent_id)
        if existing is not None:
            if str(existing.id) != str(command.order_id):
                raise DuplicatePaymentIntent(command.payment_intent_id, str(existing.id))
            return {"order_id": str(existing.id), "order_number": existing.order_number, "created": False}

        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        order = Order.place(
            order_id=command.order_id,
            buyer_id=command.buyer_id,
            buyer_name=command.buyer_name,
            payment_intent_id=command.payment_intent_id,
            amount=command.amount,
            currency=command.currency,
            items_data=items_data,
        )
        repo.add(order)
        return {"order_id": str(order.id), "order_number": order.order_number, "created": True}


# ---------------------------------------------------------------------------
# Application services
# ---------------------------------------------------------------------------
def validate_checkout_items(items) -> None:
    if not items:
        raise ValidationError({"items": ["At least one item is required"]})

    errors = []
    for index, item in enumerate(items):
        if not item.get("product_id"):
            errors.append(f"Item {index}: product_id is required")
        quantity = item.get("quantity")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            errors.append(f"Item {index}: quantity must be an integer of at least 1")
    if errors:
        raise ValidationError({"items": errors})


def validate_buyer_details(buyer_id, buyer_name, currency) -> None:
    errors = {}
    if not buyer_id:
        errors["buyer_id"] = ["is required"]
    elif len(str(buyer_id)) > BUYER_FIELD_MAX_LENGTH:
        errors["buyer_id"] = [f"must be at most {BUYER_FIELD_MAX_LENGTH} characters"]
    if buyer_name is not None and len(str(buyer_name)) > BUYER_FIELD_MAX_LENGTH:
        errors["buyer_name"] = [f"must be at most {BUYER_FIELD_MAX_LENGTH} characters"]
    if currency is not None and not (len(currency) == 3 and currency.isalpha()):
        errors["currency"] = ["must be a three-letter ISO currency code"]
    if errors:
        raise ValidationError(errors)


def snapshot_items(items) -> list[dict]:
    """Copy each requested product from the catalog. Unknown products raise NotFound."""
    products = get_catalog().get_products(item["product_id"] for item in items)
    snapshots = []
    for item in items:
        product = products[str(item["product_id"])]
        snapshots.append(
            {
                "product_id": product.product_id,
                "seller_id": product.seller_id,
                "name": product.name,
                "unit_price": product.price,
                "category": product.category,
                "image": product.image,
                "quantity": item["quantity"],
            }
        )
    return snapshots


def _resolve_existing(order_id, payment_intent_id) -> dict | None:
    existing = current_domain.repository_for(Order).find_by_payment_intent(payment_intent_id)
    if existing is None:
        return None
    if str(existing.id) != str(order_id):
        logger.warning(
            "Concurrent order placement for payment intent",
            order_id=order_id,
            existing_order_id=str(existing.id),
            payment_intent_id=payment_intent_id,
        )
        raise DuplicatePaymentIntent(payment_intent_id, str(existing.id))
    return {"order_id": str(existing.id), "order_number": existing.order_number, "created": False}


def _persist_order(order_id, buyer_id, buyer_name, payment_intent_id, amount, currency, items_data) -> dict:
    command = PlaceOrder(
        order_id=order_id,
        buyer_id=buyer_id,
        buyer_name=buyer_name,
        payment_intent_id=payment_intent_id,
        amount=amount,
        currency=currency,
        items=json.dumps(items_data),
    )

    last_error = None
    for attempt in range(1, PERSIST_ATTEMPTS + 1):
        try:
            with _PLACEMENT_LOCK:
                return current_domain.process(command, asynchronous=False)
        except Conflict:
            raise
        except ValidationError as exc:
            # Another writer stored an order for this intent between the
            # handler's lookup and the insert
            if "payment_intent_id" in exc.messages:
                resolved = _resolve_existing(order_id, payment_intent_id)
                if resolved is not None:
                    return resolved
            raise
        except Exception as exc:
            last_error = exc
            logger.warning(
                "Order persist attempt failed",
                order_id=order_id,
                payment_intent_id=payment_intent_id,
                attempt=attempt,
                error=str(exc),
            )

    logger.error(
        "Order could not be persisted for open payment intent",
        order_id=order_id,
        payment_intent_id=payment_intent_id,
        attempts=PERSIST_ATTEMPTS,
    )
    raise CheckoutNotPersisted(
        "Payment intent was created but the order could not be saved; adopt the intent to recover",
        order_id=order_id,
        payment_intent_id=payment_intent_id,
    ) from last_error


def create_checkout(buyer_id: str, amount, items, currency: str = DEFAULT_CURRENCY, buyer_name=None) -> dict:
    """Open a processor intent for ``amount`` and store the pending order.

    Returns:
        dict with client_secret, payment_intent_id, order_id, order_number
    """
    if isinstance(amount, bool) or not isinstance(amount, int | float):
        raise InvalidAmount(amount)
    amount_minor_units = to_minor_units(amount)
    if amount_minor_units < 1:
        raise InvalidAmount(amount)

    currency = (currency or DEFAULT_CURRENCY).lower()
    validate_buyer_details(buyer_id, buyer_name, currency)
    validate_checkout_items(items)
    items_data = snapshot_items(items)

    items_total = round(sum(i["unit_price"] * i["quantity"] for i in items_data), 2)
    if abs(items_total - round(amount, 2)) > 0.005:
        logger.warning(
            "Checkout amount differs from catalog total",
            buyer_id=buyer_id,
            amount=amount,
            items_total=items_total,
        )

    order_id = str(uuid4())
    intent = get_gateway().create_intent(
        amount_minor_units=amount_minor_units,
        currency=currency,
        metadata={
            "order_id": order_id,
            "buyer_id": buyer_id,
            "item_count": sum(i["quantity"] for i in items_data),
        },
        idempotency_key=f"checkout-{order_id}",
    )

    result = _persist_order(order_id, buyer_id, buyer_name, intent.intent_id, amount, currency, items_data)

    logger.info(
        "Checkout opened",
        order_id=result["order_id"],
        order_number=result["order_number"],
        payment_intent_id=intent.intent_id,
        buyer_id=buyer_id,
        amount=amount,
        currency=currency,
    )
    return {
        "client_secret": intent.client_secret,
        "payment_intent_id": intent.intent_id,
        "order_id": result["order_id"],
        "order_number": result["order_number"],
    }


def adopt_payment_intent(payment_intent_id: str, buyer_id: str, items, buyer_name=None) -> dict:
    """Recreate the local order for an intent whose checkout persist failed.

    Returns the existing order when one is already stored. Otherwise the
    order is rebuilt under the identifier carried in the intent metadata,
    with the processor's amount and currency, and brought up to date with the
    processor's current verdict.
    """
    validate_buyer_details(buyer_id, buyer_name, None)
    repo = current_domain.repository_for(Order)
    existing = repo.find_by_payment_intent(payment_intent_id)
    if existing is not None:
        if existing.buyer_id != str(buyer_id):
            raise Forbidden("Payment intent belongs to another buyer", payment_intent_id=payment_intent_id)
        return {
            "order_id": str(existing.id),
            "order_number": existing.order_number,
            "status": existing.status,
            "adopted": False,
        }

    intent = get_gateway().retrieve_intent(payment_intent_id)
    if intent.metadata.get("buyer_id") != str(buyer_id):
        raise Forbidden("Payment intent belongs to another buyer", payment_intent_id=payment_intent_id)

    validate_checkout_items(items)
    items_data = snapshot_items(items)
    order_id = intent.metadata.get("order_id") or str(uuid4())

    result = _persist_order(
        order_id,
        str(buyer_id),
        buyer_name,
        intent.intent_id,
        intent.amount_major_units,
        intent.currency,
        items_data,
    )
    order = repo.get(result["order_id"])
    verdict = apply_processor_verdict(order, intent)

    logger.info(
        "Payment intent adopted",
        order_id=result["order_id"],
        payment_intent_id=payment_intent_id,
        payment_status=intent.status,
        status=verdict["status"],
    )
    return {
        "order_id": result["order_id"],
        "order_number": result["order_number"],
        "status": verdict["status"],
        "adopted": True,
    }


def verify_payment(payment_intent_id: str) -> dict:
    """Read-only lookup of the processor's view of an intent."""
    intent = get_gateway().retrieve_intent(payment_intent_id)
    return {
        "payment_intent_id": intent.intent_id,
        "payment_status": intent.status,
        "amount": intent.amount_major_units,
        "currency": intent.currency,
    }
