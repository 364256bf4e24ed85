"""Notification port — abstract interface for outbound buyer notifications."""

from abc import ABC, abstractmethod


class NotificationPort(ABC):
    @abstractmethod
    def send(self, to: str, template_kind: str, payload: dict) -> dict:
        """Dispatch a rendered notification.

        Returns:
            dict with keys: message_id, status ("sent" or "failed"), error (optional)
        """
        ...
