import sys
from pathlib import Path

from loguru import logger

from lock_it.settings import settings

LOG_FORMAT_CONSOLE = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<level>{message}</level>"
)
LOG_FORMAT_FILE = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}"
LOG_FORMAT_AUDIT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"
LOG_ROTATION = "10 MB"
LOG_RETENTION = "10 days"
LOG_COMPRESSION = "zip"

LOG_FILE_NAME = "lock_it.log"
AUDIT_FILE_NAME = "unlock_audit.log"
AUDIT_RETENTION = "90 days"

# Modules whose messages describe lock, unlock and re-authentication outcomes
AUDIT_MODULES = frozenset({"lock_it.controller", "lock_it.coordinator", "lock_it.ledger"})


def _is_audit_event(record) -> bool:
    return record["name"] in AUDIT_MODULES


def setup_logging(verbose: bool = False, console: bool = True) -> Path:
    """
    Configure loguru for the application.

    Args:
        verbose (bool): Log at DEBUG instead of INFO (also enabled by ``settings.debug``).
        console (bool): Echo to stderr. The lock session turns this off so log
                        lines do not draw over the lock screen.

    Returns:
        Path: the main log file.
    """
    logger.remove()

    level = "DEBUG" if verbose or settings.debug else "INFO"

    if console:
        logger.add(sys.stderr, level=level, format=LOG_FORMAT_CONSOLE)

    settings.log_dir.mkdir(parents=True, exist_ok=True)
    log_file_path = settings.log_dir / LOG_FILE_NAME
    logger.add(
        log_file_path,
        level=level,
        format=LOG_FORMAT_FILE,
        rotation=LOG_ROTATION,
        retention=LOG_RETENTION,
        compression=LOG_COMPRESSION,
    )

    # Separate trail of unlock attempts, kept longer than the debug log
    logger.add(
        settings.log_dir / AUDIT_FILE_NAME,
        level="INFO",
        format=LOG_FORMAT_AUDIT,
        filter=_is_audit_event,
        rotation=LOG_ROTATION,
        retention=AUDIT_RETENTION,
        compression=LOG_COMPRESSION,
    )

    logger.debug(f"Logging initialized. Logs saved to: {log_file_path}")
    return log_file_path
