import json
import threading
from datetime import datetime

from loguru import logger
from rich.console import Console
from rich.prompt import Prompt

from lock_it.engine import LockEngine
from lock_it.errors import ConfigurationError
from lock_it.schedule import active_slot
from lock_it.schema import CloseDecision
from lock_it.settings import settings
from lock_it.utils import lock_screen
from lock_it.utils.files import write_json_atomic
from lock_it.utils.notifications import notify_locked, notify_unlocked
from lock_it.utils.state import cleanup_state, write_state
from lock_it.utils.time import format_minute_of_day


def lock_window_end(engine: LockEngine, now: datetime | None = None) -> str | None:
    """'HH:MM' end of the window covering ``now``, if any."""
    match = active_slot(engine.config_store.load().schedule, now or engine.clock())
    if match is None:
        return None
    _, slot = match
    return format_minute_of_day(slot.end)


SESSION_COMMANDS = ("lock_now", "resume_auto_lock")


def send_command(command: str):
    """Queues a command for the running session. It is picked up on the next tick."""
    if command not in SESSION_COMMANDS:
        raise ValueError(f"Unknown session command: {command}")
    write_json_atomic(settings.command_file, {"command": command})


def _take_command() -> str | None:
    """Reads and removes the pending command file, if any."""
    if not settings.command_file.exists():
        return None
    try:
        with open(settings.command_file) as f:
            command_data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Error reading command file: {e}")
        return None
    finally:
        settings.command_file.unlink(missing_ok=True)

    command = command_data.get("command") if isinstance(command_data, dict) else None
    if command not in SESSION_COMMANDS:
        logger.warning(f"Ignoring unknown session command: {command}")
        return None
    return command


class ScheduleTicker:
    """Ticks the lock controller on a background thread and publishes the state file."""

    def __init__(self, engine: LockEngine, interval_seconds: float):
        self.engine = engine
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            logger.warning("ScheduleTicker is already running.")
            return
        logger.info(f"Starting schedule ticker: interval={self.interval_seconds}s")
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self):
        if not self.running:
            return
        logger.info("Stopping schedule ticker...")
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=2.0)
        logger.info("Schedule ticker stopped.")

    def tick_once(self):
        controller = self.engine.controller
        command = _take_command()
        if command == "lock_now":
            self.engine.lock_now()
        elif command == "resume_auto_lock":
            self.engine.resume_auto_lock()

        state = self.engine.tick()
        write_state(
            {
                "state": state.value,
                "schedule_active": controller.schedule_active,
                "attempt_count": controller.attempt_count,
                "auto_lock_paused": controller.auto_lock_paused,
                "until": lock_window_end(self.engine),
            }
        )

    def _run(self):
        last_config_error = None
        while not self._stop_event.is_set():
            try:
                self.tick_once()
                last_config_error = None
            except ConfigurationError as e:
                # Stays until the config file is fixed; report it once
                if str(e) != last_config_error:
                    logger.error(f"Schedule tick skipped: {e}")
                    last_config_error = str(e)
            except Exception as e:
                logger.exception(f"Error in schedule tick: {e}")
            if self._stop_event.wait(timeout=self.interval_seconds):
                return


def _unlock_prompt(engine: LockEngine, console: Console):
    """Shows the lock screen and reads secrets until the episode ends."""
    controller = engine.controller
    message = None
    while controller.is_locked:
        lock_screen.render(
            console,
            until=lock_window_end(engine),
            attempt_count=controller.attempt_count,
            message=message,
        )
        secret = Prompt.ask("Password", password=True, console=console)
        if not controller.is_locked:
            # The window ended while the prompt was open
            break
        try:
            if engine.verify_password(secret):
                console.clear()
                console.print("[bold green]Unlocked.[/bold green]")
                return
            message = "Wrong password or code."
        except ConfigurationError as e:
            message = f"{e}. Fix the password settings with `lockit password`."


def _confirm_quit(engine: LockEngine, console: Console) -> bool:
    """Runs the quit re-authentication in the terminal. True when quitting is allowed."""
    try:
        outcome = engine.request_quit()
    except ConfigurationError as e:
        console.print(f"[red]Cannot check the lock schedule:[/red] {e}")
        return False
    if outcome.done():
        return outcome.result() == CloseDecision.PROCEED

    request = engine.coordinator.pending
    console.print(
        "\n[bold yellow]A lock window is active.[/bold yellow] "
        "Enter the password to quit (Ctrl+C to keep running)."
    )
    while not outcome.done():
        try:
            password = Prompt.ask("Password", password=True, console=console)
        except KeyboardInterrupt:
            engine.cancel_quit_password_auth(request.request_id)
            break
        try:
            if not engine.verify_quit_password(request.request_id, password):
                if not outcome.done():
                    console.print("[red]Wrong password.[/red]")
        except ConfigurationError as e:
            console.print(f"[red]{e}[/red]")

    return outcome.result() == CloseDecision.PROCEED


def run_session(engine: LockEngine, console: Console):
    """Foreground lock session: schedule ticks in the background, lock screen in the terminal."""
    lock_requested = threading.Event()

    def on_locked(_state):
        lock_requested.set()
        notify_locked(lock_window_end(engine))

    def on_unlocked(_state):
        lock_requested.clear()
        # Still inside the window means the user unlocked it
        notify_unlocked(passive=not engine.controller.schedule_active)

    engine.controller.locked.add_listener(on_locked)
    engine.controller.unlocked.add_listener(on_unlocked)

    ticker = ScheduleTicker(engine, settings.tick_interval_seconds)
    console.print("[bold green]Lock It session started...[/bold green]")
    console.print(f"Data directory: [cyan]{settings.data_dir}[/cyan]")
    console.print("Following the weekly schedule. Press Ctrl+C to quit.")
    ticker.start()

    try:
        while True:
            try:
                if lock_requested.wait(timeout=1.0):
                    _unlock_prompt(engine, console)
                    lock_requested.clear()
            except KeyboardInterrupt:
                if _confirm_quit(engine, console):
                    break
                console.print("[yellow]Still running.[/yellow]")
    finally:
        console.print("\n[yellow]Stopping session...[/yellow]")
        ticker.stop()
        engine.close()
        cleanup_state()
