"""Fake notifier — renders templates and records messages for testing."""

from uuid import uuid4

from ordering.notification.port import NotificationPort
from ordering.notification.templates import get_template


class FakeNotifier(NotificationPort):
    """Notifier that records messages in memory for test assertions."""

    def __init__(self):
        self.sent: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Notification delivery failed"):
        """Configure the fake adapter behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def send(self, to: str, template_kind: str, payload: dict) -> dict:
        if not self.should_succeed:
            raise ConnectionError(self.failure_reason)

        content = get_template(template_kind).render(payload)
        message_id = f"msg-{uuid4().hex[:12]}"
        self.sent.append(
            {
                "message_id": message_id,
                "to": to,
                "template_kind": template_kind,
                "payload": payload,
                "subject": content["subject"],
                "body": content["body"],
            }
        )
        return {"message_id": message_id, "status": "sent"}
