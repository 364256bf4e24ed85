"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance maintains its own state — no cross-user sharing.
State tracks the identifiers returned by checkout so follow-up requests can
reference them.
"""

from dataclasses import dataclass, field


@dataclass
class CheckoutState:
    """Tracks a single checkout from payment intent to delivery."""

    buyer_headers: dict = field(default_factory=dict)
    order_id: str | None = None
    payment_intent_id: str | None = None
    amount: float = 0.0
    sellers: list[str] = field(default_factory=list)
    sub_order_ids: list[str] = field(default_factory=list)
    current_status: str = "pending"
