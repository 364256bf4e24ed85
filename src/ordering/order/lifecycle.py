"""Order status state machine and the role policy that guards it.

State Machine:
    PENDING → COMPLETED → DISPATCHED → DELIVERED / RETURNED
    COMPLETED → UNFILLED
    PENDING → FAILED
    PENDING / COMPLETED / DISPATCHED / UNFILLED → CANCELLED / REFUNDED

Who may request what:
    system  → completed, failed          (verified payment signals only)
    seller  → dispatched, returned, unfilled
    admin   → delivered, cancelled, refunded
    buyer   → nothing

Every decision is read from ``TRANSITION_POLICY``, keyed by
``(role, current status)``.
"""

from dataclasses import dataclass, field
from enum import Enum


class OrderStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    DISPATCHED = "dispatched"
    UNFILLED = "unfilled"
    DELIVERED = "delivered"
    RETURNED = "returned"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class ActorRole(Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"
    SYSTEM = "system"


TERMINAL_STATES = frozenset(
    {
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
        OrderStatus.RETURNED,
        OrderStatus.FAILED,
    }
)

_ADMIN_EXITS = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}

_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.COMPLETED, OrderStatus.FAILED} | _ADMIN_EXITS,
    OrderStatus.COMPLETED: {OrderStatus.DISPATCHED, OrderStatus.UNFILLED} | _ADMIN_EXITS,
    OrderStatus.DISPATCHED: {OrderStatus.DELIVERED, OrderStatus.RETURNED} | _ADMIN_EXITS,
    OrderStatus.UNFILLED: set(_ADMIN_EXITS),
    **{state: set() for state in TERMINAL_STATES},
}

_ROLE_TARGETS = {
    ActorRole.BUYER: frozenset(),
    ActorRole.SELLER: frozenset({OrderStatus.DISPATCHED, OrderStatus.RETURNED, OrderStatus.UNFILLED}),
    ActorRole.ADMIN: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}),
    ActorRole.SYSTEM: frozenset({OrderStatus.COMPLETED, OrderStatus.FAILED}),
}

TRANSITION_POLICY: dict[tuple[ActorRole, OrderStatus], frozenset[OrderStatus]] = {
    (role, state): frozenset(_VALID_TRANSITIONS[state] & targets)
    for role, targets in _ROLE_TARGETS.items()
    for state in OrderStatus
}


def role_targets(role: ActorRole) -> frozenset[OrderStatus]:
    """Every status a role may ever request, independent of the current state."""
    return frozenset().union(*(targets for (r, _), targets in TRANSITION_POLICY.items() if r is role))


def allowed_targets(role: ActorRole, current: OrderStatus) -> frozenset[OrderStatus]:
    return TRANSITION_POLICY.get((role, current), frozenset())


@dataclass(frozen=True)
class Actor:
    """Whoever is asking for a transition.

    Sellers carry the identifiers of the products they own; ownership of an
    order is decided from its line items against this set.
    """

    role: ActorRole
    actor_id: str | None = None
    product_ids: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def system(cls) -> "Actor":
        return cls(role=ActorRole.SYSTEM, actor_id="system")

    @classmethod
    def seller(cls, seller_id: str, product_ids) -> "Actor":
        return cls(
            role=ActorRole.SELLER,
            actor_id=seller_id,
            product_ids=frozenset(str(pid) for pid in product_ids),
        )

    @classmethod
    def admin(cls, admin_id: str) -> "Actor":
        return cls(role=ActorRole.ADMIN, actor_id=admin_id)

    @classmethod
    def buyer(cls, buyer_id: str) -> "Actor":
        return cls(role=ActorRole.BUYER, actor_id=buyer_id)
