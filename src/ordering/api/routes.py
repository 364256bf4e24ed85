"""FastAPI routes for the Ordering domain: checkout, payment reconciliation and orders.

Handlers call the processor and the store synchronously, so they are plain
``def`` routes that FastAPI runs in its threadpool.
"""

from fastapi import APIRouter, Depends, Header, Request
from starlette.concurrency import run_in_threadpool

from ordering.api.auth import Principal, get_principal
from ordering.api.schemas import (
    AdoptPaymentIntentRequest,
    AdoptPaymentIntentResponse,
    CheckoutResponse,
    CreatePaymentIntentRequest,
    OrderListResponse,
    OrderSchema,
    PaymentIntentRequest,
    PaymentSuccessResponse,
    ReconcilePendingRequest,
    ReconcilePendingResponse,
    TransitionResponse,
    UpdateOrderStatusRequest,
    VerifyPaymentResponse,
    WebhookAckResponse,
)
from ordering.order.checkout import adopt_payment_intent, create_checkout, verify_payment
from ordering.order.lifecycle import ActorRole
from ordering.order.reconciliation import (
    handle_processor_webhook,
    reconcile_buyer_callback,
    reconcile_pending_orders,
    set_order_status,
)
from ordering.order.visibility import DEFAULT_PAGE_SIZE, get_order, list_orders

# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/create-payment-intent", status_code=201, response_model=CheckoutResponse)
def create_payment_intent(
    body: CreatePaymentIntentRequest,
    principal: Principal = Depends(get_principal),
) -> CheckoutResponse:
    """Open a processor payment intent and store the pending order."""
    principal.require(ActorRole.BUYER)
    result = create_checkout(
        buyer_id=principal.user_id,
        buyer_name=principal.name,
        amount=body.amount,
        currency=body.currency,
        items=[item.model_dump() for item in body.items],
    )
    return CheckoutResponse(**result)


@payment_router.post("/payment-success", response_model=PaymentSuccessResponse)
def payment_success(
    body: PaymentIntentRequest,
    principal: Principal = Depends(get_principal),
) -> PaymentSuccessResponse:
    """Buyer-side success callback; the processor is consulted before any change."""
    result = reconcile_buyer_callback(body.payment_intent_id, principal.user_id)
    return PaymentSuccessResponse(
        order_id=result["order_id"],
        status=result["status"],
        payment_status=result["payment_status"],
        changed=result["changed"],
    )


@payment_router.post("/webhook", response_model=WebhookAckResponse)
async def processor_webhook(
    request: Request,
    stripe_signature: str = Header(default=""),
) -> WebhookAckResponse:
    """Processor webhook. The raw body is needed for signature verification."""
    payload = await request.body()
    result = await run_in_threadpool(handle_processor_webhook, payload, stripe_signature)
    return WebhookAckResponse(**result)


@payment_router.post("/verify-payment", response_model=VerifyPaymentResponse)
def verify_payment_status(
    body: PaymentIntentRequest,
    principal: Principal = Depends(get_principal),  # noqa: ARG001
) -> VerifyPaymentResponse:
    """Read-only lookup of the processor's status for an intent."""
    return VerifyPaymentResponse(**verify_payment(body.payment_intent_id))


@payment_router.post("/intents/{payment_intent_id}/adopt", response_model=AdoptPaymentIntentResponse)
def adopt_intent(
    payment_intent_id: str,
    body: AdoptPaymentIntentRequest,
    principal: Principal = Depends(get_principal),
) -> AdoptPaymentIntentResponse:
    """Recover the order for an intent whose checkout could not be saved."""
    principal.require(ActorRole.BUYER)
    result = adopt_payment_intent(
        payment_intent_id,
        buyer_id=principal.user_id,
        buyer_name=principal.name,
        items=[item.model_dump() for item in body.items],
    )
    return AdoptPaymentIntentResponse(**result)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("", response_model=OrderListResponse)
def list_orders_view(
    status: str | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    principal: Principal = Depends(get_principal),
) -> OrderListResponse:
    return OrderListResponse(**list_orders(principal.to_actor(), status=status, page=page, limit=limit))


@order_router.post("/reconcile-pending", response_model=ReconcilePendingResponse)
def reconcile_pending(
    body: ReconcilePendingRequest,
    principal: Principal = Depends(get_principal),
) -> ReconcilePendingResponse:
    """Sweep stale pending orders against the processor (admin only)."""
    principal.require(ActorRole.ADMIN)
    return ReconcilePendingResponse(**reconcile_pending_orders(body.older_than_minutes))


@order_router.get("/{order_id}", response_model=OrderSchema)
def get_order_view(order_id: str, principal: Principal = Depends(get_principal)) -> OrderSchema:
    return OrderSchema(**get_order(order_id, principal.to_actor()))


@order_router.put("/{order_id}/status", response_model=TransitionResponse)
def update_order_status(
    order_id: str,
    body: UpdateOrderStatusRequest,
    principal: Principal = Depends(get_principal),
) -> TransitionResponse:
    result = set_order_status(order_id, body.status, principal.to_actor())
    return TransitionResponse(
        order_id=result["order_id"],
        status=result["status"],
        previous_status=result["previous_status"],
        updated_at=result["updated_at"],
        changed=result["changed"],
    )
