"""Ordering domain API package."""

from ordering.api.errors import register_error_handlers
from ordering.api.routes import order_router, payment_router

__all__ = ["payment_router", "order_router", "register_error_handlers"]
