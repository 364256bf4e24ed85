"""Role-scoped order views.

- Buyers see their own orders in every status.
- Sellers see orders containing at least one of their products, with the
  line items pruned to their own products. Orders that were never paid
  (pending, failed, or cancelled before payment) are hidden unless a status
  filter asks for them. Split parents are replaced by their per-seller
  sub-orders.
- Admins see everything; listings default to completed orders and
  ``status=all`` lifts the filter.
"""

import math

from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from ordering.exceptions import Forbidden
from ordering.order.lifecycle import Actor, ActorRole, OrderStatus
from ordering.order.order import Order, parse_status

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
ALL_STATUSES = "all"

SELLER_HIDDEN_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.FAILED})


def order_to_dict(order: Order, product_ids=None) -> dict:
    """Serialize an order; restrict items to ``product_ids`` when given."""
    items = order.items if product_ids is None else order.items_for_products(product_ids)
    return {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "buyer_id": order.buyer_id,
        "buyer_name": order.buyer_name,
        "payment_intent_id": order.payment_intent_id,
        "amount": order.amount,
        "currency": order.currency,
        "status": order.status,
        "items": [item.to_dict() for item in items],
        "parent_order_id": str(order.parent_order_id) if order.parent_order_id else None,
        "seller_id": order.seller_id,
        "split_processed": bool(order.split_processed),
        "paid_at": order.paid_at.isoformat() if order.paid_at else None,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }


def validate_paging(page: int, limit: int) -> None:
    errors = {}
    if page < 1:
        errors["page"] = ["Page must be 1 or greater"]
    if limit < 1 or limit > MAX_PAGE_SIZE:
        errors["limit"] = [f"Limit must be between 1 and {MAX_PAGE_SIZE}"]
    if errors:
        raise ValidationError(errors)


def resolve_statuses(actor: Actor, status: str | None) -> list[str] | None:
    """Status filter for a listing; None means unfiltered."""
    if status == ALL_STATUSES:
        return None
    if status:
        return [parse_status(status).value]
    if actor.role is ActorRole.SELLER:
        return [s.value for s in OrderStatus if s not in SELLER_HIDDEN_STATUSES]
    if actor.role is ActorRole.ADMIN:
        return [OrderStatus.COMPLETED.value]
    return None


def list_orders(actor: Actor, status: str | None = None, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> dict:
    validate_paging(page, limit)
    statuses = resolve_statuses(actor, status)
    repo = current_domain.repository_for(Order)

    product_ids = None
    if actor.role is ActorRole.BUYER:
        orders, total = repo.find_for_buyer(actor.actor_id, statuses, page, limit)
    elif actor.role is ActorRole.SELLER:
        product_ids = actor.product_ids
        orders, total = repo.find_for_seller(product_ids, statuses, page, limit, paid_only=not status)
    elif actor.role is ActorRole.ADMIN:
        orders, total = repo.find_all(statuses, page, limit)
    else:
        raise Forbidden(f"Role {actor.role.value} cannot list orders", role=actor.role.value)

    return {
        "orders": [order_to_dict(order, product_ids) for order in orders],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
    }


def get_order(order_id: str, actor: Actor) -> dict:
    order = current_domain.repository_for(Order).get(order_id)

    if actor.role is ActorRole.ADMIN:
        return order_to_dict(order)
    if actor.role is ActorRole.BUYER and order.buyer_id == str(actor.actor_id):
        return order_to_dict(order)
    if actor.role is ActorRole.SELLER and order.has_any_product(actor.product_ids):
        return order_to_dict(order, actor.product_ids)

    raise Forbidden(f"Order {order_id} is not visible to this user", order_id=str(order_id))
