from pathlib import Path

from platformdirs import PlatformDirs

APP_DIR_NAME = "lock_it"

_dirs = PlatformDirs(appname=APP_DIR_NAME, appauthor=False)


def get_checkout_root() -> Path | None:
    """The git checkout this module runs from, or None when installed."""
    # src/lock_it/utils/paths.py
    root = Path(__file__).resolve().parents[3]
    if (root / "pyproject.toml").is_file() and (root / ".git").exists():
        return root
    return None


def get_default_data_dir() -> Path:
    """Config, unlock records and photos. ``outputs/data`` in a checkout."""
    root = get_checkout_root()
    if root:
        return root / "outputs" / "data"
    return _dirs.user_data_path


def get_default_log_dir() -> Path:
    root = get_checkout_root()
    if root:
        return root / "outputs" / "logs"
    return _dirs.user_log_path
