import subprocess

from loguru import logger

from lock_it.settings import settings


def send_notification(summary: str, body: str, urgency: str = "normal"):
    """Sends a desktop notification with notify-send, unless notifications are off."""
    if not settings.notifications_enabled:
        return
    logger.info(f"Sending notification: {summary} | {body}")
    cmd = [
        "notify-send",
        "--app-name",
        settings.app_name,
        "--urgency",
        urgency,
        summary,
        body,
    ]
    try:
        subprocess.run(cmd, check=False, timeout=5)
    except FileNotFoundError:
        logger.error("notify-send not found. Install libnotify-bin.")
    except subprocess.TimeoutExpired:
        logger.warning("notify-send timed out.")


def notify_locked(until: str | None):
    send_notification(
        settings.lock_summary,
        settings.lock_body.format(end_time=until or "the end of the window"),
        urgency="critical",
    )


def notify_unlocked(passive: bool):
    if passive:
        send_notification("Focus time is over", "The lock window has ended.")
    else:
        send_notification("Unlocked", "You can now resume your work.")
