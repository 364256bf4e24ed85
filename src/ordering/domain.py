"""Ordering bounded context — checkout, payment reconciliation and the order lifecycle.

Owns the Order aggregate and everything that may move its status: checkout
against the payment processor, processor webhooks, buyer payment callbacks and
seller/admin status actions.
"""

import os

from protean.domain import Domain

from ordering.utils.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging(log_dir=os.getenv("LOG_DIR", "logs") or None, log_file_prefix="cartline")

logger = get_logger(__name__)

# Domain Composition Root
ordering = Domain(name="ordering")
