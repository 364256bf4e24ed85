"""Pydantic request/response schemas for the Ordering API.

These are external contracts (anti-corruption layer), separate from the
internal Protean commands. Amount and quantity bounds are enforced by the
domain so that violations surface as domain validation errors.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class CheckoutItemSchema(BaseModel):
    product_id: str
    quantity: int = 1


class OrderItemSchema(BaseModel):
    product_id: str
    seller_id: str | None = None
    name: str
    unit_price: float
    category: str | None = None
    image: str | None = None
    quantity: int


class OrderSchema(BaseModel):
    order_id: str
    order_number: str
    buyer_id: str
    buyer_name: str | None = None
    payment_intent_id: str
    amount: float
    currency: str
    status: str
    items: list[OrderItemSchema]
    parent_order_id: str | None = None
    seller_id: str | None = None
    split_processed: bool = False
    paid_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class PaginationSchema(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


# ---------------------------------------------------------------------------
# Payment Request Schemas
# ---------------------------------------------------------------------------
class CreatePaymentIntentRequest(BaseModel):
    amount: float
    currency: str = "usd"
    items: list[CheckoutItemSchema] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "amount": 59.98,
                    "currency": "usd",
                    "items": [{"product_id": "7", "quantity": 2}],
                }
            ]
        }
    }


class PaymentIntentRequest(BaseModel):
    payment_intent_id: str


class AdoptPaymentIntentRequest(BaseModel):
    items: list[CheckoutItemSchema] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Payment Response Schemas
# ---------------------------------------------------------------------------
class CheckoutResponse(BaseModel):
    client_secret: str | None = None
    payment_intent_id: str
    order_id: str
    order_number: str


class PaymentSuccessResponse(BaseModel):
    order_id: str
    status: str
    payment_status: str
    changed: bool


class VerifyPaymentResponse(BaseModel):
    payment_intent_id: str
    payment_status: str
    amount: float
    currency: str


class AdoptPaymentIntentResponse(BaseModel):
    order_id: str
    order_number: str
    status: str
    adopted: bool


class WebhookAckResponse(BaseModel):
    received: bool = True


# ---------------------------------------------------------------------------
# Order Request / Response Schemas
# ---------------------------------------------------------------------------
class UpdateOrderStatusRequest(BaseModel):
    status: str


class ReconcilePendingRequest(BaseModel):
    older_than_minutes: int = Field(default=30, ge=0)


class OrderListResponse(BaseModel):
    orders: list[OrderSchema]
    pagination: PaginationSchema


class TransitionResponse(BaseModel):
    order_id: str
    status: str
    previous_status: str
    updated_at: str | None = None
    changed: bool


class ReconcilePendingResponse(BaseModel):
    checked: int
    completed: int
    failed: int
    unchanged: int
    errors: int
