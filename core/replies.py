"""User-facing reply templates backed by YAML."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional

import yaml

log = logging.getLogger(__name__)

DEFAULT_REPLIES = Path(__file__).with_name("replies.yaml")


class ReplyBook:
    """Default templates merged key by key with an optional override file."""

    def __init__(self, default_path: Path = DEFAULT_REPLIES, override_path: Optional[Path] = None) -> None:
        self.default_path = default_path
        self.override_path = override_path
        base = self._read(default_path)
        if not base:
            raise RuntimeError(f"reply templates missing or empty: {default_path}")
        self._templates = self._merge(base, self._read(override_path) if override_path else {})

    @staticmethod
    def _read(path: Optional[Path]) -> Dict[str, str]:
        if path is None or not path.exists():
            return {}
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            log.warning("failed to read reply templates %s: %s", path, exc)
            return {}
        if not isinstance(raw, dict):
            return {}
        return {
            str(key).strip().lower(): str(value)
            for key, value in raw.items()
            if value is not None
        }

    @staticmethod
    def _merge(base: Dict[str, str], override: Dict[str, str]) -> Dict[str, str]:
        merged = dict(base)
        for key, value in override.items():
            if value.strip():
                merged[key] = value
        return merged

    def render(self, key: str, **values: object) -> str:
        template = self._templates[key]
        return template.format(**values) if values else template

    def __contains__(self, key: str) -> bool:
        return key in self._templates
