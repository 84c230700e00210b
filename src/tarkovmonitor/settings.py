"""Monitor configuration stored in ~/.tarkovmonitor/settings.json.

Only keys listed in DEFAULTS are recognised. Values read from disk are
checked against the type of their default; anything unusable is logged
and the default is kept, so a hand-edited file never stops the monitor.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

SETTINGS_DIR = Path.home() / ".tarkovmonitor"
SETTINGS_FILE = SETTINGS_DIR / "settings.json"

# Environment override for the game's Logs directory
LOGS_PATH_ENV = "TARKOV_LOGS_PATH"

DEFAULTS: dict[str, Any] = {
    "poll_interval": 30.0,  # Seconds between game process checks
    "flush_interval": 1.0,  # Idle seconds before a held-back message is released
    "backfill": True,  # Read the latest session's logs from the start on attach
    "log_types": ["application", "notifications"],
    "process_names": ["EscapeFromTarkov.exe", "EscapeFromTarkov"],
    "logs_path": None,  # None = <game install>/Logs
}

# Accepted value types per key; logs_path may also be null
_TYPES: dict[str, tuple[type, ...]] = {
    "poll_interval": (int, float),
    "flush_interval": (int, float),
    "backfill": (bool,),
    "log_types": (list,),
    "process_names": (list,),
    "logs_path": (str, type(None)),
}


def _fresh_defaults() -> dict[str, Any]:
    return {key: list(value) if isinstance(value, list) else value for key, value in DEFAULTS.items()}


def _valid(key: str, value: Any) -> bool:
    # bool is an int subclass; keep it out of the numeric keys
    if isinstance(value, bool) and bool not in _TYPES[key]:
        return False
    return isinstance(value, _TYPES[key])


class Settings:
    """Monitor settings backed by a JSON file.

    Example:
        settings = Settings()
        interval = settings.get("poll_interval")
        settings.update({"backfill": False})
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        """Load settings, falling back to DEFAULTS for anything missing.

        Args:
            path: Settings file to use instead of ~/.tarkovmonitor/settings.json.
        """
        self.path = Path(path) if path is not None else SETTINGS_FILE
        self._values = _fresh_defaults()
        self._read()

    def _read(self) -> None:
        if not self.path.exists():
            return
        try:
            stored = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable settings file {self.path}: {e}")
            return
        if not isinstance(stored, dict):
            logger.warning(f"Ignoring settings file {self.path}: expected a JSON object")
            return

        for key, value in stored.items():
            if key not in DEFAULTS:
                logger.warning(f"Unknown setting '{key}' in {self.path}")
            elif not _valid(key, value):
                logger.warning(f"Bad value for '{key}' in {self.path}: {value!r}, using {DEFAULTS[key]!r}")
            else:
                self._values[key] = value
        logger.debug(f"Loaded settings from {self.path}")

    def get(self, key: str) -> Any:
        """Current value of a setting.

        ``logs_path`` honours the TARKOV_LOGS_PATH environment variable.

        Raises:
            KeyError: key is not a known setting.
        """
        if key not in DEFAULTS:
            raise KeyError(key)
        if key == "logs_path" and os.environ.get(LOGS_PATH_ENV):
            return os.environ[LOGS_PATH_ENV]
        value = self._values[key]
        return list(value) if isinstance(value, list) else value

    def update(self, values: dict[str, Any], save: bool = True) -> None:
        """Change several settings at once.

        Raises:
            KeyError: a key is not a known setting.
            ValueError: a value has the wrong type. Nothing is changed.
        """
        for key, value in values.items():
            if key not in DEFAULTS:
                raise KeyError(key)
            if not _valid(key, value):
                raise ValueError(f"Bad value for '{key}': {value!r}")
        self._values.update(values)
        if save:
            self.save()

    def save(self) -> None:
        """Write only the settings that differ from DEFAULTS."""
        changed = {key: value for key, value in self._values.items() if value != DEFAULTS[key]}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(changed, indent=2), encoding="utf-8")
            logger.info(f"Saved settings to {self.path}")
        except OSError as e:
            logger.warning(f"Failed to save settings: {e}")


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings loaded from the default location."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
