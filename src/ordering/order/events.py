"""Domain events for the Order aggregate.

Events are raised by the aggregate on every accepted change and drive
notification dispatch and sub-order splitting.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A checkout produced a pending order bound to a payment intent."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    buyer_id = String(required=True)
    payment_intent_id = String(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    items = Text(required=True)  # JSON: list of item dicts
    parent_order_id = Identifier()
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderStatusChanged:
    """An order moved along an edge of the lifecycle state machine."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    buyer_id = String(required=True)
    buyer_name = String()
    payment_intent_id = String(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    actor_role = String(required=True)
    actor_id = String()
    amount = Float(required=True)
    currency = String(required=True)
    item_count = Integer(required=True)
    items = Text()  # JSON: list of item dicts
    parent_order_id = Identifier()
    changed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderSplit:
    """A multi-seller order was partitioned into per-seller sub-orders."""

    __version__ = 1

    order_id = Identifier(required=True)
    sub_order_ids = Text(required=True)  # JSON: list of order ids
    split_at = DateTime(required=True)
