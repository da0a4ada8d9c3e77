"""Notifier registry. Defaults to the in-memory FakeNotifier."""

from marketplace.notification.fake_adapter import FakeNotifier
from marketplace.notification.port import Notifier

_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = FakeNotifier()
    return _notifier


def set_notifier(notifier: Notifier) -> None:
    global _notifier
    _notifier = notifier


def reset_notifier() -> None:
    global _notifier
    _notifier = None
