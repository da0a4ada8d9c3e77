"""Fake notifier that records messages in memory for test assertions."""

from uuid import uuid4

from marketplace.notification.port import Notifier


class NotifierUnavailable(ConnectionError):
    pass


class FakeNotifier(Notifier):
    def __init__(self):
        self.sent: list[dict] = []
        self.should_fail = False

    def configure(self, should_fail: bool = False):
        """When ``should_fail`` is set, send() raises as an unreachable provider would."""
        self.should_fail = should_fail

    def send(self, recipient_id: str, template: str, data: dict | None = None) -> dict:
        if self.should_fail:
            raise NotifierUnavailable("Notification service unreachable")

        message_id = f"msg-{uuid4().hex[:12]}"
        self.sent.append(
            {
                "message_id": message_id,
                "recipient_id": recipient_id,
                "template": template,
                "data": data or {},
            }
        )
        return {"message_id": message_id, "status": "sent"}

    def templates_for(self, recipient_id: str) -> list[str]:
        return [m["template"] for m in self.sent if m["recipient_id"] == recipient_id]

    def reset(self):
        self.sent.clear()
        self.should_fail = False
