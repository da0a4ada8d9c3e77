"""Word-list moderator for development and tests."""

import re

from marketplace.moderation.port import ContentModerator, ModerationResult


class FakeModerator(ContentModerator):
    def __init__(self, banned_words: set[str] | None = None):
        self.banned_words = {w.lower() for w in (banned_words or set())}
        self.checked: list[str] = []

    def check(self, text: str) -> ModerationResult:
        self.checked.append(text)
        words = set(re.findall(r"\w+", text.lower()))
        hits = words & self.banned_words
        if hits:
            return ModerationResult(allowed=False, reason="Contains prohibited language")
        return ModerationResult(allowed=True)
