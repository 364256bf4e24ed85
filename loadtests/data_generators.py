"""Faker-based data generators for Locust load test scenarios.

Each generator produces payloads that pass the domain's validation rules and
match the field names expected by the API's Pydantic request schemas.
Products come from ``loadtests/catalog.json``; start the server with
``CATALOG_FILE=loadtests/catalog.json`` so checkouts resolve.
"""

import json
import os
import random
import uuid
from pathlib import Path

from faker import Faker
from ordering.gateway.fake_adapter import FakeGateway

fake = Faker()

CATALOG = json.loads((Path(__file__).parent / "catalog.json").read_text())
SELLERS = sorted({product["seller_id"] for product in CATALOG})

# Must match the server's FAKE_WEBHOOK_SECRET
_signer = FakeGateway(webhook_secret=os.getenv("FAKE_WEBHOOK_SECRET"))


# ---------- Identity headers ----------


def buyer_headers(buyer_id: str | None = None) -> dict:
    """Headers the upstream auth layer would forward for a buyer."""
    return {
        "X-User-Id": buyer_id or f"buyer-lt-{uuid.uuid4().hex[:8]}",
        "X-User-Role": "buyer",
        "X-User-Name": fake.name()[:255],
    }


def seller_headers(seller_id: str) -> dict:
    return {"X-User-Id": seller_id, "X-User-Role": "seller"}


def admin_headers() -> dict:
    return {"X-User-Id": "admin-lt", "X-User-Role": "admin"}


# ---------- Checkout ----------


def checkout_data(num_items: int = 2, multi_seller: bool = False) -> dict:
    """CreatePaymentIntentRequest payload with an exact catalog total."""
    if multi_seller:
        by_seller = {}
        for product in CATALOG:
            by_seller.setdefault(product["seller_id"], product)
        picks = random.sample(list(by_seller.values()), k=min(2, len(by_seller)))
    else:
        picks = random.sample(CATALOG, k=min(num_items, len(CATALOG)))

    items = [{"product_id": p["product_id"], "quantity": random.randint(1, 3)} for p in picks]
    prices = {p["product_id"]: p["price"] for p in CATALOG}
    amount = round(sum(prices[i["product_id"]] * i["quantity"] for i in items), 2)
    return {"amount": amount, "currency": "usd", "items": items}


def sellers_in(checkout: dict) -> list[str]:
    owners = {p["product_id"]: p["seller_id"] for p in CATALOG}
    return sorted({owners[item["product_id"]] for item in checkout["items"]})


# ---------- Processor webhooks ----------


def signed_webhook(
    intent_id: str,
    event_type: str,
    intent_status: str,
    amount: float,
    currency: str = "usd",
) -> tuple[bytes, str]:
    """Webhook body in the processor's event shape plus its signature header."""
    event = {
        "id": f"evt_lt_{uuid.uuid4().hex[:16]}",
        "type": event_type,
        "data": {
            "object": {
                "id": intent_id,
                "object": "payment_intent",
                "status": intent_status,
                "amount": int(round(amount * 100)),
                "currency": currency,
                "metadata": {},
            }
        },
    }
    payload = json.dumps(event).encode("utf-8")
    return payload, _signer.sign(payload)
