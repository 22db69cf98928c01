from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from .model import RootMarkers

MOVE_CONFLICT_POLICIES = ("queue", "reject")
LIST_FIELDS = ("toolbar_markers", "other_markers")


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_list(name: str, default: List[str]) -> List[str]:
    # Comma separated; an empty value keeps the default.
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return list(default)
    return [x.strip() for x in v.split(",") if x.strip()]


@dataclass
class Settings:
    # Root detection (lower-case title fragments, used when the store sets no role)
    toolbar_markers: List[str] = field(default_factory=lambda: ["bookmarks bar", "bookmarks toolbar"])
    other_markers: List[str] = field(default_factory=lambda: ["other bookmarks"])

    # Reorganize
    move_conflict: str = "queue"  # queue | reject

    # Stores
    places_busy_timeout_ms: int = 5000
    html_loose_root_title: str = "Other Bookmarks"

    # Logging / UX
    log_level: str = "INFO"
    no_color: bool = False

    def root_markers(self) -> RootMarkers:
        return RootMarkers(
            toolbar=tuple(m.strip().lower() for m in self.toolbar_markers if m.strip()),
            other=tuple(m.strip().lower() for m in self.other_markers if m.strip()),
        )

    def validate(self) -> "Settings":
        for name in LIST_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, list) or not all(isinstance(m, str) for m in value):
                raise ValueError(f"{name} must be a list of strings, got {value!r}")
        if self.move_conflict not in MOVE_CONFLICT_POLICIES:
            raise ValueError(
                f"move_conflict must be one of {', '.join(MOVE_CONFLICT_POLICIES)}, got {self.move_conflict!r}"
            )
        return self

    @staticmethod
    def from_env() -> "Settings":
        s = Settings()
        s.toolbar_markers = _env_list("TREEMARKS_TOOLBAR_MARKERS", s.toolbar_markers)
        s.other_markers = _env_list("TREEMARKS_OTHER_MARKERS", s.other_markers)

        s.move_conflict = _env_str("TREEMARKS_MOVE_CONFLICT", s.move_conflict).strip().lower()

        s.places_busy_timeout_ms = _env_int("TREEMARKS_PLACES_BUSY_TIMEOUT_MS", s.places_busy_timeout_ms)
        s.html_loose_root_title = _env_str("TREEMARKS_HTML_LOOSE_ROOT_TITLE", s.html_loose_root_title)

        s.log_level = _env_str("TREEMARKS_LOG_LEVEL", s.log_level)
        s.no_color = _env_bool("TREEMARKS_NO_COLOR", s.no_color)
        return s

    @staticmethod
    def from_file(path: Path) -> "Settings":
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        s = Settings.from_env()
        for k, v in data.items():
            if not hasattr(s, k):
                continue
            if k in LIST_FIELDS and isinstance(v, str):
                v = [v]
            setattr(s, k, v)
        return s


def load_settings(config_path: Optional[str]) -> Settings:
    if config_path:
        return Settings.from_file(Path(config_path)).validate()
    return Settings.from_env().validate()
