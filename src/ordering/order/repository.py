"""Order store — custom repository for the Order aggregate.

Adds lookups by payment intent, buyer and seller product ownership, and a
compare-and-set write for status transitions.
"""

from datetime import datetime

from protean.exceptions import ExpectedVersionError, ObjectNotFoundError

from ordering.domain import ordering
from ordering.exceptions import NotFound, TransitionConflict
from ordering.order.lifecycle import OrderStatus
from ordering.order.order import Order

# Orders fetched per round trip when scanning for seller ownership
SCAN_BATCH_SIZE = 100


@ordering.repository(part_of=Order)
class OrderRepository:
    def find_by_payment_intent(self, payment_intent_id: str) -> Order | None:
        return self._dao.query.filter(payment_intent_id=payment_intent_id).all().first

    def find_sub_orders(self, parent_order_id: str) -> list[Order]:
        return self._dao.query.filter(parent_order_id=str(parent_order_id)).all().items

    def find_for_buyer(self, buyer_id: str, statuses=None, page: int = 1, limit: int = 20) -> tuple[list[Order], int]:
        return self._page(self._by_status(statuses).filter(buyer_id=str(buyer_id)), page, limit)

    def find_all(self, statuses=None, page: int = 1, limit: int = 20) -> tuple[list[Order], int]:
        return self._page(self._by_status(statuses), page, limit)

    def find_for_seller(
        self, product_ids, statuses=None, page: int = 1, limit: int = 20, paid_only: bool = False
    ) -> tuple[list[Order], int]:
        """Orders with at least one line item from ``product_ids``, newest first.

        Item membership is not indexed, so candidate orders are scanned in
        batches and matched in memory. Split parents are skipped; their
        per-seller sub-orders are listed instead. With ``paid_only``, orders whose
        payment was never confirmed are skipped as well.
        """
        owned = frozenset(str(pid) for pid in product_ids)
        if not owned:
            return [], 0

        matches = []
        offset = 0
        while True:
            batch = (
                self._by_status(statuses)
                .filter(split_processed=False)
                .order_by("-created_at")
                .offset(offset)
                .limit(SCAN_BATCH_SIZE)
                .all()
            )
            matches.extend(
                order
                for order in batch.items
                if order.has_any_product(owned) and (not paid_only or order.paid_at is not None)
            )
            offset += SCAN_BATCH_SIZE
            if not batch.items or offset >= batch.total:
                break

        start = (page - 1) * limit
        return matches[start : start + limit], len(matches)

    def find_pending_older_than(self, cutoff: datetime) -> list[Order]:
        return (
            self._dao.query.filter(status=OrderStatus.PENDING.value, created_at__lt=cutoff)
            .order_by("created_at")
            .limit(SCAN_BATCH_SIZE)
            .all()
            .items
        )

    def save_transition(self, order: Order, expected_status: str) -> Order:
        """Persist ``order`` only if the stored status is still ``expected_status``.

        Raises:
            TransitionConflict: another writer moved the order first.
        """
        try:
            persisted = self._dao.get(order.id)
        except ObjectNotFoundError:
            raise NotFound({"_entity": f"Order `{order.id}` does not exist"}) from None

        if persisted.status != expected_status:
            raise TransitionConflict(str(order.id), expected_status, persisted.status)

        try:
            self.add(order)
        except ExpectedVersionError as exc:
            raise TransitionConflict(str(order.id), expected_status, persisted.status) from exc
        return order

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _by_status(self, statuses):
        query = self._dao.query
        if statuses:
            query = query.filter(status__in=list(statuses))
        return query

    @staticmethod
    def _page(query, page: int, limit: int) -> tuple[list[Order], int]:
        result = query.order_by("-created_at").offset((page - 1) * limit).limit(limit).all()
        return result.items, result.total
