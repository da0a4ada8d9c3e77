"""Content moderation port: pass/fail check on user-supplied free text."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ModerationResult:
    allowed: bool
    reason: str | None = None


class ContentModerator(ABC):
    @abstractmethod
    def check(self, text: str) -> ModerationResult: ...
