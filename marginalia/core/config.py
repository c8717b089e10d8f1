"""Configuration management for Marginalia."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

CONFIG_DIR = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "marginalia"
DEFAULTS_PATH = Path(__file__).resolve().parent.parent / "settings" / "defaults.yaml"
USER_SETTINGS_PATH = CONFIG_DIR / "settings.yaml"


class ConfigManager:
    """Loads default and user configuration and provides helpers to query values."""

    def __init__(self) -> None:
        self.defaults = self._load_yaml(DEFAULTS_PATH)
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        if USER_SETTINGS_PATH.exists():
            self.user_settings = self._load_yaml(USER_SETTINGS_PATH)
        else:
            self.user_settings = {}
        self.settings = self._deep_merge(self.defaults, self.user_settings)
        migrated = self._apply_migrations()
        if migrated and USER_SETTINGS_PATH.exists():
            self.save()

    def _load_yaml(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        with path.open("r", encoding="utf-8") as handle:
            return yaml.safe_load(handle) or {}

    def get(self, key: str, default: Any | None = None) -> Any:
        return self.settings.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.settings[key] = value

    def section(self, *keys: str) -> dict[str, Any]:
        """Return a nested mapping such as ``section("assist", "panel")`` or ``{}``."""

        node: Any = self.settings
        for key in keys:
            if not isinstance(node, dict):
                return {}
            node = node.get(key, {})
        return node if isinstance(node, dict) else {}

    def save(self) -> None:
        USER_SETTINGS_PATH.parent.mkdir(parents=True, exist_ok=True)
        with USER_SETTINGS_PATH.open("w", encoding="utf-8") as handle:
            yaml.safe_dump(self.settings, handle)

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        merged: dict[str, Any] = dict(base)
        for key, value in override.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = self._deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged

    def _apply_migrations(self) -> bool:
        """Update loaded settings to align with current defaults."""

        changed = False
        assist_cfg = self.settings.get("assist")
        if isinstance(assist_cfg, dict):
            suggestions = assist_cfg.get("suggestions")
            if isinstance(suggestions, dict):
                changed |= self._migrate_idle_thresholds(suggestions)
        return changed

    def _migrate_idle_thresholds(self, suggestions: dict[str, Any]) -> bool:
        # Older settings files stored the per-reason floors in seconds under "idle_seconds".
        legacy = suggestions.pop("idle_seconds", None)
        if not isinstance(legacy, dict):
            return legacy is not None

        thresholds = suggestions.setdefault("idle_thresholds_ms", {})
        for reason, seconds in legacy.items():
            try:
                thresholds[reason] = int(float(seconds) * 1000)
            except (TypeError, ValueError):
                continue
        return True

    def assist_enabled(self) -> bool:
        """Master switch for inline assistance."""

        return bool(self.section("assist").get("enabled", True))
