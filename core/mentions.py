"""Mention detection so the agent only speaks up in groups when addressed."""

from __future__ import annotations

import re
from typing import Iterable, Tuple


class MentionGate:
    def __init__(self, handles: Iterable[str]):
        cleaned = [h.strip().lstrip("@") for h in handles if h and h.strip()]
        if not cleaned:
            raise ValueError("at least one mention handle is required")
        # longest first so "song.base.eth" wins over "song"
        self.handles: Tuple[str, ...] = tuple(sorted(set(cleaned), key=len, reverse=True))
        alternatives = "|".join(re.escape(h) for h in self.handles)
        self._pattern = re.compile(rf"(^|\s)@\s*(?:{alternatives})\b", re.IGNORECASE)
        self._strip_pattern = re.compile(
            rf"(?:^|\s+)@\s*(?:{alternatives})\b\s*", re.IGNORECASE
        )

    def is_mentioned(self, text: str) -> bool:
        if not text:
            return False
        return bool(self._pattern.search(text))

    def remove_mention(self, text: str) -> str:
        if not text:
            return text
        return self._strip_pattern.sub(" ", text).strip()
