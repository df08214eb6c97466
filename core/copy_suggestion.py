"""Copy-suggestion content type.

Carries ``{label, text}`` so a capable chat client can render a button that
copies ``text``. Clients without support show the fallback, which is the
``text`` itself.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ContentTypeId:
    authority_id: str
    type_id: str
    version_major: int
    version_minor: int

    def same_as(self, other: Any) -> bool:
        """Compare identity fields only; anything else on ``other`` is ignored."""

        if other is None:
            return False
        if isinstance(other, dict):
            fields = (
                other.get("authorityId", other.get("authority_id")),
                other.get("typeId", other.get("type_id")),
                other.get("versionMajor", other.get("version_major")),
                other.get("versionMinor", other.get("version_minor")),
            )
        else:
            fields = (
                getattr(other, "authority_id", None),
                getattr(other, "type_id", None),
                getattr(other, "version_major", None),
                getattr(other, "version_minor", None),
            )
        return fields == (
            self.authority_id,
            self.type_id,
            self.version_major,
            self.version_minor,
        )

    def __str__(self) -> str:
        return f"{self.authority_id}/{self.type_id}:{self.version_major}.{self.version_minor}"


COPY_SUGGESTION_TYPE = ContentTypeId("songcast.xyz", "copy-suggestion", 1, 0)


@dataclass(frozen=True)
class CopySuggestion:
    label: str
    text: str


class CopySuggestionCodec:
    should_push = True

    @property
    def content_type(self) -> ContentTypeId:
        return COPY_SUGGESTION_TYPE

    def encode(self, content: CopySuggestion) -> bytes:
        payload = {"label": content.label, "text": content.text}
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")

    def decode(self, data: bytes) -> CopySuggestion:
        try:
            payload = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValueError(f"malformed copy suggestion payload: {exc}") from exc
        if not isinstance(payload, dict):
            raise ValueError("copy suggestion payload must be an object")
        return CopySuggestion(
            label=str(payload.get("label") or ""),
            text=str(payload.get("text") or ""),
        )

    def fallback(self, content: CopySuggestion) -> str:
        return content.text or ""
