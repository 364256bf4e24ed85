"""Order splitting — partition a paid multi-seller order into per-seller sub-orders.

Each sub-order carries only one seller's items, references its origin through
``parent_order_id`` and is born ``completed`` because the parent's payment
already succeeded. Sub-orders move through fulfilment independently; nothing
cascades between siblings or back to the parent.
"""

import json
from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.events import OrderSplit
from ordering.order.lifecycle import Actor, OrderStatus
from ordering.order.order import Order

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class SplitOrder:
    order_id = Identifier(required=True)


def sub_order_intent_id(parent_intent_id: str, seller_id: str) -> str:
    return f"{parent_intent_id}:{seller_id}"


def group_items_by_seller(order: Order) -> dict[str, list[dict]]:
    groups: dict[str, list[dict]] = {}
    for item in order.items:
        groups.setdefault(item.seller_id, []).append(item.to_dict())
    return groups


@ordering.command_handler(part_of=Order)
class SplitOrderHandler:
    @handle(SplitOrder)
    def split_order(self, command):
        repo = current_domain.repository_for(Order)
        parent = repo.get(command.order_id)

        if parent.status != OrderStatus.COMPLETED.value or parent.split_processed or parent.is_sub_order:
            return []

        groups = group_items_by_seller(parent)
        if len(groups) <= 1:
            return []
        if None in groups:
            logger.warning(
                "Skipping split, order has items without a seller",
                order_id=str(parent.id),
            )
            return []

        amounts = {
            seller_id: round(sum(i["unit_price"] * i["quantity"] for i in items), 2)
            for seller_id, items in groups.items()
        }
        if sum(amounts.values()) > parent.amount + 0.005:
            raise ValidationError(
                {
                    "amount": [
                        f"Sub-order amounts {sum(amounts.values()):.2f} exceed "
                        f"order {parent.id} amount {parent.amount:.2f}"
                    ]
                }
            )

        sub_order_ids = []
        for seller_id, items in groups.items():
            intent_id = sub_order_intent_id(parent.payment_intent_id, seller_id)
            existing = repo.find_by_payment_intent(intent_id)
            if existing is not None:
                sub_order_ids.append(str(existing.id))
                continue

            sub_order = Order.place(
                buyer_id=parent.buyer_id,
                buyer_name=parent.buyer_name,
                payment_intent_id=intent_id,
                amount=amounts[seller_id],
                currency=parent.currency,
                items_data=items,
                parent_order_id=str(parent.id),
                seller_id=seller_id,
            )
            sub_order.apply_transition(OrderStatus.COMPLETED.value, Actor.system())
            repo.add(sub_order)
            sub_order_ids.append(str(sub_order.id))

        parent.mark_split()
        parent.raise_(
            OrderSplit(
                order_id=str(parent.id),
                sub_order_ids=json.dumps(sub_order_ids),
                split_at=datetime.now(UTC),
            )
        )
        repo.add(parent)

        logger.info(
            "Order split per seller",
            order_id=str(parent.id),
            sellers=sorted(groups),
            sub_order_ids=sub_order_ids,
        )
        return sub_order_ids
