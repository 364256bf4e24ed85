"""Buyer notification templates and their registry.

Each template renders ``{subject, body}`` from a payload dict built by the
order notification handler.
"""

PAYMENT_RECEIPT = "payment_receipt"
ORDER_DISPATCHED = "order_dispatched"
ORDER_DELIVERED = "order_delivered"


def format_money(value, currency: str = "usd") -> str:
    try:
        return f"{float(value):.2f} {str(currency or 'usd').upper()}"
    except (TypeError, ValueError):
        return "N/A"


class PaymentReceiptTemplate:
    """Invoice and receipt — sent once payment for an order is confirmed."""

    template_kind = PAYMENT_RECEIPT

    @staticmethod
    def render(context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        buyer_name = context.get("buyer_name") or "Customer"
        currency = context.get("currency", "usd")
        items = context.get("items") or []

        lines = []
        subtotal = 0.0
        for index, item in enumerate(items, start=1):
            quantity = int(item.get("quantity", 0))
            unit_price = float(item.get("unit_price", 0.0))
            subtotal += quantity * unit_price
            lines.append(
                f"{index}. {item.get('name', 'Item')} | Qty: {quantity} | "
                f"Unit: {format_money(unit_price, currency)} | "
                f"Line Total: {format_money(quantity * unit_price, currency)}"
            )
        item_count = sum(int(item.get("quantity", 0)) for item in items)
        total_paid = context.get("amount", subtotal)

        return {
            "subject": f"Invoice & Receipt - Order #{order_number}",
            "body": (
                f"Hello {buyer_name},\n\n"
                "Your payment has been successfully processed.\n\n"
                f"Order #: {order_number}\n"
                f"No. of items: {item_count}\n"
                f"Payment intent ID: {context.get('payment_intent_id', 'N/A')}\n"
                f"Paid at: {context.get('paid_at', 'N/A')}\n\n"
                "Items:\n" + ("\n".join(lines) if lines else "No items available.") + "\n\n"
                f"Items subtotal: {format_money(subtotal, currency)}\n"
                f"Total paid: {format_money(total_paid, currency)}\n\n"
                "Thank you for your purchase!"
            ),
        }


class _OrderStatusUpdateTemplate:
    title = "Order Update"

    @classmethod
    def render(cls, context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        buyer_name = context.get("buyer_name") or "Customer"
        status = context.get("status", "")
        currency = context.get("currency", "usd")
        return {
            "subject": f"{cls.title}: {order_number}",
            "body": (
                f"Hello {buyer_name},\n\n"
                f"Your order has been {status}.\n\n"
                f"Order #: {order_number}\n"
                f"No. of items: {context.get('item_count', 'N/A')}\n"
                f"Amount: {format_money(context.get('amount'), currency)}\n"
                f"Current Status: {status}"
            ),
        }


class OrderDispatchedTemplate(_OrderStatusUpdateTemplate):
    template_kind = ORDER_DISPATCHED
    title = "Order Dispatched"


class OrderDeliveredTemplate(_OrderStatusUpdateTemplate):
    template_kind = ORDER_DELIVERED
    title = "Order Delivered"


TEMPLATE_REGISTRY: dict[str, type] = {
    PAYMENT_RECEIPT: PaymentReceiptTemplate,
    ORDER_DISPATCHED: OrderDispatchedTemplate,
    ORDER_DELIVERED: OrderDeliveredTemplate,
}


def get_template(template_kind: str):
    """Look up a template class by kind."""
    template_cls = TEMPLATE_REGISTRY.get(template_kind)
    if template_cls is None:
        raise ValueError(f"No template registered for notification kind: {template_kind}")
    return template_cls
