import json
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from lock_it.utils.paths import get_default_data_dir, get_default_log_dir


class Settings(BaseSettings):
    """Runtime settings managed via .env / LOCK_IT_* variables and settings.json."""

    app_name: str = "lock_it"
    debug: bool = Field(default=False, description="Master toggle for verbose logging")

    # Paths
    data_dir: Path = Field(default_factory=get_default_data_dir)
    log_dir: Path = Field(default_factory=get_default_log_dir)

    def model_post_init(self, __context):
        # Ensure paths are absolute
        self.data_dir = self.data_dir.resolve()
        self.log_dir = self.log_dir.resolve()

    @property
    def state_file(self) -> Path:
        return self.data_dir / "state.json"

    @property
    def command_file(self) -> Path:
        return self.data_dir / "command.json"

    @property
    def config_file(self) -> Path:
        """The persisted app config (password, schedule, ...)."""
        return self.data_dir / "config.json"

    @property
    def records_file(self) -> Path:
        return self.data_dir / "unlock_records.json"

    @property
    def photos_dir(self) -> Path:
        return self.data_dir / "unlock-photos"

    @property
    def settings_file(self) -> Path:
        return self.data_dir / "settings.json"

    # Timing
    tick_interval_seconds: float = Field(default=5.0, ge=1.0)
    quit_auth_timeout_seconds: float = 60.0
    settings_close_timeout_seconds: float = 30.0

    # Authentication
    totp_issuer: str = "Lock It"
    settings_close_requires_auth: bool = True

    # Unlock records
    max_unlock_records: int | None = 100

    # Notifications
    notifications_enabled: bool = True
    lock_summary: str = "Focus time"
    lock_body: str = "The screen is locked until {end_time}."

    model_config = SettingsConfigDict(
        env_prefix="LOCK_IT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def save(self):
        """Saves current settings to settings.json in data_dir."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")
        with open(self.settings_file, "w") as f:
            json.dump(data, f, indent=4)


_last_settings_mtime: float | None = None
_cached_settings: Settings | None = None


def load_settings() -> Settings:
    """Loads settings, merging with settings.json if it exists."""
    global _last_settings_mtime, _cached_settings

    initial = Settings()
    settings_path = initial.settings_file

    if not settings_path.exists():
        _last_settings_mtime = None
        _cached_settings = initial
        return initial

    current_mtime = settings_path.stat().st_mtime
    if _last_settings_mtime == current_mtime and _cached_settings is not None:
        return _cached_settings

    try:
        with open(settings_path) as f:
            file_data = json.load(f)
        _cached_settings = Settings(**{**initial.model_dump(), **file_data})
        _last_settings_mtime = current_mtime
        return _cached_settings
    except Exception:
        _cached_settings = initial
        return initial


# The single source of truth for the app
settings = load_settings()
