"""Notification port: fire-and-forget messages to customers and providers."""

from abc import ABC, abstractmethod


class Notifier(ABC):
    @abstractmethod
    def send(self, recipient_id: str, template: str, data: dict | None = None) -> dict:
        """Deliver a templated message.

        Returns:
            dict with keys: message_id, status ("sent" or "failed"), error (optional)
        """
        ...
