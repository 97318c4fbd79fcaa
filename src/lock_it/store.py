import json
import threading
from pathlib import Path
from typing import Any, Protocol

from loguru import logger
from pydantic import ValidationError

from lock_it.errors import ConfigurationError
from lock_it.schema import AppConfig
from lock_it.utils.files import write_json_atomic


class ConfigStore(Protocol):
    """
    Persisted app config, loaded whole and saved in parts.

    ``load`` raises ConfigurationError when no usable config exists.
    """

    def load(self) -> AppConfig: ...

    def save(self, partial: dict[str, Any]) -> bool: ...


def _merge(current: AppConfig, partial: dict[str, Any]) -> AppConfig:
    data = current.model_dump(mode="json")
    for key, value in partial.items():
        if hasattr(value, "model_dump"):
            value = value.model_dump(mode="json")
        data[key] = value
    return AppConfig(**data)


class MemoryConfigStore:
    """Config store kept in memory only."""

    def __init__(self, config: AppConfig | None = None):
        self._config = config or AppConfig()
        self._lock = threading.Lock()

    def load(self) -> AppConfig:
        with self._lock:
            return self._config.model_copy(deep=True)

    def save(self, partial: dict[str, Any]) -> bool:
        with self._lock:
            try:
                self._config = _merge(self._config, partial)
                return True
            except ValidationError as e:
                logger.error(f"Rejected config update: {e}")
                return False


class JsonConfigStore:
    """
    Config store backed by a JSON file, reloaded when the file changes.

    A missing file means first run and yields the defaults. A file that cannot
    be read or validated never does: the last good config stays in use, and
    without one ``load`` raises ConfigurationError. Saving over an unreadable
    file is refused.
    """

    def __init__(self, config_file: Path):
        self.config_file = config_file
        self._config: AppConfig | None = None
        self._last_mtime: float | None = None
        self._broken: str | None = None  # why the file at _last_mtime was rejected
        self._lock = threading.Lock()

    def _reload(self):
        if not self.config_file.exists():
            self._last_mtime = None
            self._broken = None
            self._config = AppConfig()
            return

        current_mtime = self.config_file.stat().st_mtime
        if self._last_mtime == current_mtime:
            return
        self._last_mtime = current_mtime

        try:
            with open(self.config_file) as f:
                data = json.load(f)
            config = AppConfig(**data)
        except (OSError, ValueError, TypeError) as e:
            # ValueError covers both JSONDecodeError and ValidationError
            self._broken = f"Config file {self.config_file} is unreadable: {e}"
            if self._config is None:
                logger.error(self._broken)
            else:
                logger.error(f"{self._broken}. Keeping the last good config.")
            return

        self._config = config
        self._broken = None

    def load(self) -> AppConfig:
        with self._lock:
            self._reload()
            if self._config is None:
                raise ConfigurationError(self._broken or "Config is not available")
            return self._config.model_copy(deep=True)

    def save(self, partial: dict[str, Any]) -> bool:
        """Merges ``partial`` into the stored config and writes it back."""
        with self._lock:
            self._reload()
            if self._broken is not None or self._config is None:
                logger.error(f"Refusing to save config: {self._broken}")
                return False

            try:
                updated = _merge(self._config, partial)
            except ValidationError as e:
                logger.error(f"Rejected config update: {e}")
                return False

            try:
                write_json_atomic(self.config_file, updated.model_dump(mode="json"))
            except OSError as e:
                logger.error(f"Failed to save config: {e}")
                return False

            self._config = updated
            self._last_mtime = self.config_file.stat().st_mtime
            logger.debug(f"Saved config keys: {', '.join(partial)}")
            return True
