"""Spotify track reference extraction from free-form chat text."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Pattern, Set, Tuple

TRACK_ID_LENGTH = 22
DEFAULT_TRACK_HOSTS = ("open.spotify.com", "spotify.com")
URI_PREFIX = "spotify:track:"
LINK_PREFIX = "track/"

_ID = rf"[A-Za-z0-9]{{{TRACK_ID_LENGTH}}}"
_URI_RE = re.compile(rf"{re.escape(URI_PREFIX)}({_ID})(?![A-Za-z0-9])")
_BARE_RE = re.compile(rf"(?<![A-Za-z0-9])({_ID})(?![A-Za-z0-9])")
_BARE_ONLY_RE = re.compile(rf"^{_ID}$")
_LINK_ID_RE = re.compile(rf"/track/({_ID})(?![A-Za-z0-9])", re.IGNORECASE)

_link_patterns: Dict[Tuple[str, ...], Pattern[str]] = {}


def _link_pattern(hosts: Iterable[str]) -> Pattern[str]:
    key = tuple(hosts)
    pattern = _link_patterns.get(key)
    if pattern is None:
        bare_hosts = sorted(
            {h.strip().lower().removeprefix("open.").removeprefix("www.") for h in key if h.strip()},
            key=len,
            reverse=True,
        )
        alternatives = "|".join(re.escape(h) for h in bare_hosts)
        pattern = re.compile(
            rf"(?<![A-Za-z0-9.-])(?:https?://)?(?:open\.|www\.)?(?:{alternatives})"
            rf"/(?:intl-[A-Za-z]{{2}}(?:-[A-Za-z]+)?/)?track/({_ID})(?![A-Za-z0-9])",
            re.IGNORECASE,
        )
        _link_patterns[key] = pattern
    return pattern


def parse_track_id(surface: str) -> Optional[str]:
    """Normalise a link, URI or bare id to the 22-character track id."""

    trimmed = (surface or "").strip()
    if not trimmed:
        return None
    if trimmed.startswith(URI_PREFIX):
        match = _URI_RE.match(trimmed)
        return match.group(1) if match else None
    match = _LINK_ID_RE.search(trimmed)
    if match:
        return match.group(1)
    if _BARE_ONLY_RE.match(trimmed):
        return trimmed
    return None


def _preceded_by_prefix(text: str, start: int) -> bool:
    window = text[max(0, start - len(URI_PREFIX)) : start].lower()
    return window.endswith(URI_PREFIX) or window.endswith(LINK_PREFIX)


def extract_track_refs(text: Optional[str], hosts: Iterable[str] = DEFAULT_TRACK_HOSTS) -> List[str]:
    """Return track references found in ``text`` in first-seen order.

    Links win over URIs, URIs over bare ids. Every underlying track id appears
    at most once, represented by the first surface form that matched it.
    """

    if not text:
        return []
    refs: List[str] = []
    seen: Set[str] = set()

    def _add(surface: str, track_id: str) -> None:
        if track_id in seen:
            return
        seen.add(track_id)
        refs.append(surface)

    for match in _link_pattern(hosts).finditer(text):
        _add(match.group(0), match.group(1))
    for match in _URI_RE.finditer(text):
        _add(match.group(0), match.group(1))
    for match in _BARE_RE.finditer(text):
        if _preceded_by_prefix(text, match.start()):
            continue
        _add(match.group(1), match.group(1))
    return refs
