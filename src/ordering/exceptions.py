"""Error taxonomy for checkout, reconciliation and order transitions.

Input errors build on Protean's ``ValidationError`` and lookups on
``ObjectNotFoundError`` so that domain code and framework code raise the same
types. Everything else derives from ``OrderingError``; the API layer maps each
class to an HTTP status (see ``ordering.api.errors``).
"""

from protean.exceptions import ObjectNotFoundError, ValidationError


class OrderingError(Exception):
    """Base class for ordering errors that are not input validation failures."""

    code = "OrderingError"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, **self.details}


class InvalidAmount(ValidationError):
    """Checkout amount is missing, zero or negative."""

    def __init__(self, amount):
        super().__init__({"amount": [f"Amount must be greater than zero, got {amount}"]})
        self.amount = amount


class NotFound(ObjectNotFoundError):
    """An order, product or payment intent could not be located."""


class Unauthorized(OrderingError):
    code = "Unauthorized"


class Forbidden(OrderingError):
    code = "Forbidden"


class InvalidTransition(OrderingError):
    """The requested status is not reachable from the order's current status."""

    code = "InvalidTransition"

    def __init__(self, order_id: str, current: str, requested: str):
        super().__init__(
            f"Cannot transition order {order_id} from {current} to {requested}",
            order_id=order_id,
            current=current,
            requested=requested,
        )
        self.order_id = order_id
        self.current = current
        self.requested = requested


class Conflict(OrderingError):
    code = "Conflict"


class TransitionConflict(Conflict):
    """The persisted status moved on between reading the order and writing it back."""

    code = "TransitionConflict"

    def __init__(self, order_id: str, expected: str, actual: str):
        super().__init__(
            f"Order {order_id} changed concurrently: expected {expected}, found {actual}",
            order_id=order_id,
            expected=expected,
            actual=actual,
        )
        self.order_id = order_id
        self.expected = expected
        self.actual = actual


class DuplicatePaymentIntent(Conflict):
    code = "DuplicatePaymentIntent"

    def __init__(self, payment_intent_id: str, existing_order_id: str):
        super().__init__(
            f"Payment intent {payment_intent_id} already belongs to order {existing_order_id}",
            payment_intent_id=payment_intent_id,
            order_id=existing_order_id,
        )
        self.payment_intent_id = payment_intent_id
        self.existing_order_id = existing_order_id


class PaymentMismatch(Conflict):
    """Processor-reported amount or currency differs from the order record."""

    code = "PaymentMismatch"


class UnverifiedSignature(OrderingError):
    code = "UnverifiedSignature"


class UpstreamUnavailable(OrderingError):
    """The payment processor failed or timed out. Safe to retry."""

    code = "UpstreamUnavailable"
    retryable = True


class CheckoutNotPersisted(UpstreamUnavailable):
    """The processor intent exists but the local order could not be stored.

    The caller can retry checkout adoption with the carried ``payment_intent_id``.
    """

    code = "CheckoutNotPersisted"
