"""Order aggregate — the local record of one checkout attempt.

One Order exists per payment intent. Its items are a snapshot of the catalog
taken at checkout, so later catalog edits never rewrite order history. The
status field is only ever written by ``apply_transition``, which consults the
role policy in ``ordering.order.lifecycle``; orders are never deleted.
"""

import json
from datetime import UTC, datetime
from uuid import uuid4

from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
)

from ordering.domain import ordering
from ordering.exceptions import Forbidden, InvalidAmount, InvalidTransition
from ordering.order.events import OrderPlaced, OrderStatusChanged
from ordering.order.lifecycle import (
    Actor,
    ActorRole,
    OrderStatus,
    allowed_targets,
    role_targets,
)

DEFAULT_CURRENCY = "usd"
BUYER_FIELD_MAX_LENGTH = 255


def to_minor_units(amount) -> int:
    """Major units (59.98) to the processor's integer minor units (5998)."""
    return int(round(float(amount) * 100))


def generate_order_number(when: datetime) -> str:
    return f"ORD-{when:%Y%m%d}-{uuid4().hex[:6].upper()}"


def parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError(
            {"status": [f"Unknown order status '{value}'. Expected one of: {', '.join(s.value for s in OrderStatus)}"]}
        ) from None


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    """A purchased product, copied from the catalog at checkout time."""

    product_id = String(required=True, max_length=100)
    seller_id = String(max_length=255)
    name = String(required=True, max_length=255)
    unit_price = Float(required=True, min_value=0.0)
    category = String(max_length=100)
    image = String(max_length=1000)
    quantity = Integer(required=True, min_value=1)

    @property
    def subtotal(self) -> float:
        return round(self.unit_price * self.quantity, 2)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "seller_id": self.seller_id,
            "name": self.name,
            "unit_price": self.unit_price,
            "category": self.category,
            "image": self.image,
            "quantity": self.quantity,
        }


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    order_number = String(required=True, max_length=32)
    buyer_id = String(required=True, max_length=BUYER_FIELD_MAX_LENGTH)
    buyer_name = String(max_length=BUYER_FIELD_MAX_LENGTH)
    payment_intent_id = String(required=True, max_length=255, unique=True)
    amount = Float(required=True)
    currency = String(max_length=3, default=DEFAULT_CURRENCY)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    items = HasMany(OrderItem)
    parent_order_id = Identifier()
    seller_id = String(max_length=255)  # Only on split sub-orders
    split_processed = Boolean(default=False)
    created_at = DateTime()
    updated_at = DateTime()
    paid_at = DateTime()  # Set when payment is confirmed

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        buyer_id,
        payment_intent_id,
        amount,
        items_data,
        currency=DEFAULT_CURRENCY,
        buyer_name=None,
        order_id=None,
        parent_order_id=None,
        seller_id=None,
    ):
        """Create a pending order for a freshly opened payment intent.

        Args:
            buyer_id: The user the order belongs to.
            payment_intent_id: Processor reference; unique across orders.
            amount: Authorized charge in major units (e.g. 59.98).
            items_data: List of dicts with product_id, seller_id, name,
                        unit_price, category, image, quantity.
            order_id: Pre-generated identifier (checkout puts it into the
                      intent metadata before the order exists).
        """
        if amount is None or to_minor_units(amount) < 1:
            raise InvalidAmount(amount)
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        now = datetime.now(UTC)
        kwargs = {"id": str(order_id)} if order_id else {}
        order = cls(
            order_number=generate_order_number(now),
            buyer_id=str(buyer_id),
            buyer_name=buyer_name,
            payment_intent_id=payment_intent_id,
            amount=round(float(amount), 2),
            currency=(currency or DEFAULT_CURRENCY).lower(),
            status=OrderStatus.PENDING.value,
            items=[OrderItem(**_item_fields(item)) for item in items_data],
            parent_order_id=parent_order_id,
            seller_id=seller_id,
            created_at=now,
            updated_at=now,
            **kwargs,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                buyer_id=order.buyer_id,
                payment_intent_id=payment_intent_id,
                amount=order.amount,
                currency=order.currency,
                items=json.dumps([item.to_dict() for item in order.items]),
                parent_order_id=parent_order_id,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def amount_minor_units(self) -> int:
        return to_minor_units(self.amount)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def is_sub_order(self) -> bool:
        return self.parent_order_id is not None

    def has_any_product(self, product_ids) -> bool:
        owned = {str(pid) for pid in product_ids}
        return any(str(item.product_id) in owned for item in self.items)

    def items_for_products(self, product_ids) -> list[OrderItem]:
        owned = {str(pid) for pid in product_ids}
        return [item for item in self.items if str(item.product_id) in owned]

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def apply_transition(self, target, actor: Actor) -> bool:
        """Move the order to ``target`` on behalf of ``actor``.

        Returns False when the order is already in ``target`` (duplicate
        webhook or callback delivery), True when the status changed.

        Raises:
            Forbidden: the role may never request ``target``, or a seller does
                not own any item of this order.
            InvalidTransition: ``target`` is not reachable from the current status.
        """
        requested = parse_status(target)

        if requested not in role_targets(actor.role):
            raise Forbidden(
                f"Role {actor.role.value} is not allowed to set status {requested.value}",
                order_id=str(self.id),
                role=actor.role.value,
                requested=requested.value,
            )

        if actor.role is ActorRole.SELLER:
            if not self.has_any_product(actor.product_ids):
                raise Forbidden(
                    f"Seller {actor.actor_id} has no items in order {self.id}",
                    order_id=str(self.id),
                    role=actor.role.value,
                )
            if self.split_processed:
                raise Forbidden(
                    f"Order {self.id} was split per seller; update the seller sub-order instead",
                    order_id=str(self.id),
                    role=actor.role.value,
                )

        current = OrderStatus(self.status)
        if requested is current:
            return False

        if requested not in allowed_targets(actor.role, current):
            raise InvalidTransition(str(self.id), current.value, requested.value)

        now = datetime.now(UTC)
        self.status = requested.value
        self.updated_at = now
        if requested is OrderStatus.COMPLETED:
            self.paid_at = now

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                order_number=self.order_number,
                buyer_id=self.buyer_id,
                buyer_name=self.buyer_name,
                payment_intent_id=self.payment_intent_id,
                previous_status=current.value,
                new_status=requested.value,
                actor_role=actor.role.value,
                actor_id=actor.actor_id,
                amount=self.amount,
                currency=self.currency,
                item_count=self.item_count,
                items=json.dumps([item.to_dict() for item in self.items]),
                parent_order_id=str(self.parent_order_id) if self.parent_order_id else None,
                changed_at=now,
            )
        )
        return True

    def mark_split(self) -> None:
        self.split_processed = True


def _item_fields(item: dict) -> dict:
    return {
        "product_id": str(item["product_id"]),
        "seller_id": item.get("seller_id"),
        "name": item["name"],
        "unit_price": float(item["unit_price"]),
        "category": item.get("category"),
        "image": item.get("image"),
        "quantity": item["quantity"],
    }
