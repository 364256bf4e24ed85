"""Order status transitions — command and handler.

The only write path for ``Order.status``. Webhooks, buyer callbacks, the
pending sweep and seller/admin actions all end up here.
"""

import json

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.lifecycle import Actor, ActorRole
from ordering.order.order import Order

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class TransitionOrder:
    order_id = Identifier(required=True)
    target_status = String(required=True, max_length=20)
    actor_role = String(required=True, choices=ActorRole)
    actor_id = String(max_length=255)
    actor_product_ids = Text()  # JSON: list of product ids (sellers only)


def transition_command(order_id, target_status: str, actor: Actor) -> TransitionOrder:
    return TransitionOrder(
        order_id=str(order_id),
        target_status=target_status,
        actor_role=actor.role.value,
        actor_id=actor.actor_id,
        actor_product_ids=json.dumps(sorted(actor.product_ids)),
    )


@ordering.command_handler(part_of=Order)
class TransitionOrderHandler:
    @handle(TransitionOrder)
    def transition_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        product_ids = json.loads(command.actor_product_ids) if command.actor_product_ids else []
        actor = Actor(
            role=ActorRole(command.actor_role),
            actor_id=command.actor_id,
            product_ids=frozenset(str(pid) for pid in product_ids),
        )

        previous = order.status
        changed = order.apply_transition(command.target_status, actor)
        if changed:
            repo.save_transition(order, previous)
            logger.info(
                "Order status changed",
                order_id=str(order.id),
                previous_status=previous,
                new_status=order.status,
                actor_role=actor.role.value,
                actor_id=actor.actor_id,
            )
        else:
            logger.debug(
                "Order already in requested status",
                order_id=str(order.id),
                status=order.status,
                actor_role=actor.role.value,
            )

        return {
            "order_id": str(order.id),
            "status": order.status,
            "previous_status": previous,
            "updated_at": order.updated_at.isoformat() if order.updated_at else None,
            "changed": changed,
        }
