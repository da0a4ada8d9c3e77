"""Moderator registry and the guard used by commands accepting free text."""

from protean.exceptions import ValidationError

from marketplace.moderation.fake_adapter import FakeModerator
from marketplace.moderation.port import ContentModerator

_moderator: ContentModerator | None = None


def get_moderator() -> ContentModerator:
    global _moderator
    if _moderator is None:
        _moderator = FakeModerator()
    return _moderator


def set_moderator(moderator: ContentModerator) -> None:
    global _moderator
    _moderator = moderator


def reset_moderator() -> None:
    global _moderator
    _moderator = None


def ensure_acceptable(field_name: str, text: str | None) -> None:
    """Raise ValidationError when moderation rejects ``text``. Blank text passes."""
    if not text or not text.strip():
        return
    result = get_moderator().check(text)
    if not result.allowed:
        raise ValidationError({field_name: [result.reason or "Content was rejected by moderation"]})
