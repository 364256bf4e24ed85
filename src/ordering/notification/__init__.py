"""Notifier registry — singleton access to the outbound notification adapter.

Uses the fake adapter by default; a real mail/SMS adapter can be installed
with set_notifier() at application start.
"""

from ordering.notification.fake_adapter import FakeNotifier
from ordering.notification.port import NotificationPort

_current_notifier: NotificationPort | None = None


def get_notifier() -> NotificationPort:
    global _current_notifier
    if _current_notifier is None:
        _current_notifier = FakeNotifier()
    return _current_notifier


def set_notifier(notifier: NotificationPort) -> None:
    global _current_notifier
    _current_notifier = notifier


def reset_notifier() -> None:
    """Reset the notifier singleton (useful for testing)."""
    global _current_notifier
    _current_notifier = None
