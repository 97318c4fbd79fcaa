from datetime import datetime

import typer
from rich.console import Console
from rich.table import Table

from lock_it.daemon import lock_window_end, run_session, send_command
from lock_it.engine import LockEngine
from lock_it.errors import ConfigurationError
from lock_it.schedule import active_slot
from lock_it.schema import PasswordType, TimeSlot
from lock_it.settings import load_settings
from lock_it.utils.logging import setup_logging
from lock_it.utils.state import read_state
from lock_it.utils.time import (
    MINUTES_PER_DAY,
    WEEKDAYS,
    format_duration_seconds,
    format_minute_of_day,
    minute_of_day,
    parse_time_string,
)

app = typer.Typer(help="Lock It - scheduled focus lock")
schedule_app = typer.Typer(help="Show and edit the weekly lock schedule")
records_app = typer.Typer(help="Inspect the unlock attempt records")
app.add_typer(schedule_app, name="schedule")
app.add_typer(records_app, name="records")

console = Console()

VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Enable debug logging")


def _engine() -> LockEngine:
    return LockEngine.from_settings(load_settings())


def _day_arg(day: str) -> str:
    name = day.lower()
    matches = [d for d in WEEKDAYS if d.startswith(name)] if len(name) >= 2 else []
    if len(matches) != 1:
        console.print(f"[red]Error:[/red] Unknown weekday: {day}")
        raise typer.Exit(1)
    return matches[0]


def parse_slot(text: str) -> TimeSlot:
    """Parses 'START-END' (e.g. '8:00-17:00', '10pm-2am') into a TimeSlot."""
    start, sep, end = text.partition("-")
    if not sep:
        raise ValueError(f"Slot must look like START-END: {text}")
    return TimeSlot(start=parse_time_string(start), end=parse_time_string(end))


def _format_slot(slot: TimeSlot) -> str:
    text = f"{format_minute_of_day(slot.start)}-{format_minute_of_day(slot.end)}"
    return f"{text} (+1d)" if slot.wraps else text


def _require_password(engine: LockEngine):
    """Asks for the current password or code and exits unless it checks out."""
    secret = typer.prompt("Current password or code", hide_input=True)
    try:
        allowed = engine.verify_settings_password(secret)
    except ConfigurationError as e:
        # A broken password config must still be repairable with the fixed password
        console.print(f"[yellow]Warning:[/yellow] {e}")
        try:
            allowed = engine.verifier.verify_fixed(secret, engine.password_config()).success
        except ConfigurationError as fixed_error:
            console.print(f"[red]Error:[/red] {fixed_error}")
            raise typer.Exit(1) from None
    if not allowed:
        console.print("[red]Error:[/red] Wrong password.")
        raise typer.Exit(1)


def _require_session():
    if not read_state():
        console.print("[red]Error:[/red] No lock session is running. Start one with `lockit run`.")
        raise typer.Exit(1)


def _send_command(command: str):
    try:
        send_command(command)
    except OSError as e:
        console.print(f"[red]Error:[/red] Could not send command to the session: {e}")
        raise typer.Exit(1) from None


def _prompt_fixed_password() -> str:
    password = typer.prompt("New fixed password", hide_input=True, confirmation_prompt=True)
    if not password.strip():
        console.print("[red]Error:[/red] The password cannot be empty.")
        raise typer.Exit(1)
    return password


def _run_totp_setup(engine: LockEngine, device: str | None, password_type: PasswordType) -> bool:
    provisioning = engine.generate_totp_secret(device)
    console.print(f"Device name: [magenta]{provisioning.device_name}[/magenta]")
    console.print("Add this account to your authenticator app:")
    console.print(f"[cyan]{provisioning.otpauth_url}[/cyan]")
    console.print(f"Secret: [bold]{provisioning.secret}[/bold]")

    for _ in range(3):
        code = typer.prompt("Code from the authenticator app")
        if engine.confirm_totp_setup(provisioning, code, password_type=password_type):
            console.print("[green]TOTP enabled.[/green]")
            return True
        console.print("[red]That code does not match.[/red] Check the device clock and try again.")
    return False


@app.command()
def setup(
    totp: bool = typer.Option(False, "--totp", help="Also enable TOTP codes"),
    device: str | None = typer.Option(None, "--device", "-d", help="TOTP device name"),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """First-run setup: choose the unlock password (and optionally TOTP)."""
    setup_logging(verbose=verbose)
    engine = _engine()
    if engine.config_store.load().has_completed_setup:
        console.print(
            "[red]Error:[/red] Setup is already done. "
            "Use `lockit password` or `lockit totp-setup` to change the credentials."
        )
        raise typer.Exit(1)

    password = _prompt_fixed_password()
    current = engine.password_config()
    if not engine.config_store.save(
        {"password": current.model_copy(update={"fixed_password": password})}
    ):
        console.print("[red]Error:[/red] Could not save the password.")
        raise typer.Exit(1)

    if totp and not _run_totp_setup(engine, device, PasswordType.BOTH):
        console.print("[yellow]TOTP was not enabled; the fixed password still works.[/yellow]")

    engine.complete_setup()
    console.print("[bold green]Setup complete.[/bold green] Start the lock with `lockit run`.")


@app.command()
def run(verbose: bool = VERBOSE_OPTION) -> None:
    """Run the lock session in this terminal, following the weekly schedule."""
    setup_logging(verbose=verbose, console=verbose)
    if read_state():
        console.print("[yellow]A lock session is already running.[/yellow]")
        raise typer.Exit(1)

    engine = _engine()
    if not engine.config_store.load().has_completed_setup:
        console.print("[red]Error:[/red] Setup has not been completed. Run `lockit setup` first.")
        raise typer.Exit(1)

    run_session(engine, console)


@app.command()
def status(verbose: bool = VERBOSE_OPTION) -> None:
    """Show whether the schedule locks now and the running session's state."""
    setup_logging(verbose=verbose)
    engine = _engine()
    config = engine.config_store.load()
    now = datetime.now()

    console.print("[bold cyan]Lock It - Status[/bold cyan]")
    match = active_slot(config.schedule, now)
    if match:
        day, slot = match
        remaining = ((slot.end - minute_of_day(now)) % MINUTES_PER_DAY) * 60 - now.second
        console.print(
            f"Schedule: [bold yellow]lock window active[/bold yellow] "
            f"({day.capitalize()} {_format_slot(slot)}, ends {lock_window_end(engine, now)}, "
            f"{format_duration_seconds(remaining)} left)"
        )
    else:
        console.print("Schedule: [green]no lock window now[/green]")

    console.print(f"Unlock method: [magenta]{config.password.type.value}[/magenta]")

    state = read_state()
    if state:
        session = state.get("session") or {}
        console.print(
            f"Session: [bold green]● Running[/bold green] (PID [magenta]{state['pid']}[/magenta])"
        )
        if session.get("state") == "locked":
            console.print(
                f"[bold yellow]⚠️ LOCKED[/bold yellow] - failed attempts: "
                f"{session.get('attempt_count', 0)}"
            )
        elif session.get("auto_lock_paused"):
            console.print(
                "[yellow]Auto-lock paused[/yellow] until this window ends. "
                "Resume it with `lockit resume`."
            )
    else:
        console.print("Session: [bold red]○ Stopped[/bold red]")
        console.print("\n[dim]To start the lock session, run: [bold]lockit run[/bold][/dim]")


@app.command()
def verify(verbose: bool = VERBOSE_OPTION) -> None:
    """Check a password or TOTP code against the configured method."""
    setup_logging(verbose=verbose)
    engine = _engine()
    secret = typer.prompt("Password or code", hide_input=True)
    try:
        result = engine.verify_password_with_method(secret)
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    if result.success:
        console.print(f"[green]Valid[/green] ({result.method.value})")
    else:
        console.print("[red]Invalid[/red]")
        raise typer.Exit(1)


@app.command()
def password(
    method: PasswordType | None = typer.Option(
        None, "--method", "-m", help="Unlock method: fixed, totp or both"
    ),
    change: bool = typer.Option(False, "--change", "-c", help="Set a new fixed password"),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Change the fixed password or the unlock method. Requires the current password."""
    setup_logging(verbose=verbose)
    engine = _engine()
    _require_password(engine)

    updates: dict = {}
    if change:
        updates["fixed_password"] = _prompt_fixed_password()
    if method is not None:
        if method != PasswordType.FIXED and not engine.password_config().totp_secret:
            console.print("[red]Error:[/red] No TOTP secret yet. Run `lockit totp-setup` first.")
            raise typer.Exit(1)
        updates["type"] = method

    if not updates:
        console.print("Nothing to change. Use --change and/or --method.")
        return

    config = engine.password_config().model_copy(update=updates)
    if engine.config_store.save({"password": config}):
        console.print(f"[green]Password settings saved.[/green] Method: {config.type.value}")
    else:
        console.print("[red]Error:[/red] Could not save password settings.")
        raise typer.Exit(1)


@app.command(name="totp-setup")
def totp_setup(
    device: str | None = typer.Option(None, "--device", "-d", help="Device name for the account label"),
    only_totp: bool = typer.Option(
        False, "--only-totp", help="Accept TOTP codes only (no fixed password)"
    ),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Generate a TOTP secret, confirm it with a code and enable it. Requires the password."""
    setup_logging(verbose=verbose)
    engine = _engine()
    _require_password(engine)
    password_type = PasswordType.TOTP if only_totp else PasswordType.BOTH
    if not _run_totp_setup(engine, device, password_type):
        raise typer.Exit(1)


@schedule_app.command("show")
def schedule_show(verbose: bool = VERBOSE_OPTION) -> None:
    """Show the weekly schedule."""
    setup_logging(verbose=verbose)
    schedule = _engine().config_store.load().schedule

    table = Table(title="Weekly Lock Schedule")
    table.add_column("Day", style="cyan")
    table.add_column("Enabled", style="yellow")
    table.add_column("Lock windows", style="magenta")
    for day in WEEKDAYS:
        day_schedule = schedule.day(day)
        slots = ", ".join(_format_slot(s) for s in day_schedule.slots) or "None"
        table.add_row(day.capitalize(), "Yes" if day_schedule.enabled else "No", slots)
    console.print(table)


@schedule_app.command("set")
def schedule_set(
    day: str = typer.Argument(..., help="Weekday (e.g. monday, mon)"),
    slots: list[str] = typer.Argument(..., help="Lock windows as START-END, e.g. 8:00-12:00 22:00-2:00"),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Replace the lock windows of one weekday (and enable it). Requires the password."""
    setup_logging(verbose=verbose)
    day_name = _day_arg(day)
    try:
        parsed = [parse_slot(s) for s in slots]
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    engine = _engine()
    _require_password(engine)
    _update_day(day_name, enabled=True, slots=parsed, engine=engine)
    console.print(
        f"[green]{day_name.capitalize()}:[/green] " + ", ".join(_format_slot(s) for s in parsed)
    )


@schedule_app.command("enable")
def schedule_enable(
    day: str = typer.Argument(..., help="Weekday"),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Enable the lock windows of a weekday."""
    setup_logging(verbose=verbose)
    day_name = _day_arg(day)
    _update_day(day_name, enabled=True)
    console.print(f"[green]{day_name.capitalize()} enabled.[/green]")


@schedule_app.command("disable")
def schedule_disable(
    day: str = typer.Argument(..., help="Weekday"),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Disable the lock windows of a weekday. Requires the password."""
    setup_logging(verbose=verbose)
    day_name = _day_arg(day)
    engine = _engine()
    _require_password(engine)
    _update_day(day_name, enabled=False, engine=engine)
    console.print(f"[yellow]{day_name.capitalize()} disabled.[/yellow]")


def _update_day(day_name: str, engine: LockEngine | None = None, **changes):
    engine = engine or _engine()
    schedule = engine.config_store.load().schedule
    day_schedule = schedule.day(day_name).model_copy(update=changes)
    updated = schedule.model_copy(update={day_name: day_schedule})
    if not engine.config_store.save({"schedule": updated}):
        console.print("[red]Error:[/red] Could not save the schedule.")
        raise typer.Exit(1)


@records_app.command("list")
def records_list(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of records to show"),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """List unlock attempts, most recent first."""
    setup_logging(verbose=verbose)
    records = _engine().get_unlock_records(include_photos=False)
    if not records:
        console.print("[yellow]No unlock records.[/yellow]")
        return

    table = Table(title=f"Unlock Attempts ({len(records)} total)")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Time", style="magenta")
    table.add_column("Result")
    table.add_column("Attempt", justify="right", style="blue")
    table.add_column("Method", style="yellow")
    table.add_column("Photo", style="white")
    table.add_column("Error", style="red")
    for r in records[:limit]:
        table.add_row(
            r.id,
            r.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            "[green]success[/green]" if r.success else "[red]failed[/red]",
            str(r.attempt_count),
            r.unlock_method.value if r.unlock_method else "-",
            r.photo_path or "-",
            r.error or "",
        )
    console.print(table)


@records_app.command("delete")
def records_delete(
    record_id: str = typer.Argument(..., help="Record ID (from `lockit records list`)"),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Delete one unlock record and its photo."""
    setup_logging(verbose=verbose)
    if not _engine().delete_unlock_record(record_id):
        console.print(f"[red]Error:[/red] No record with ID {record_id}.")
        raise typer.Exit(1)
    console.print(f"[green]Deleted record {record_id}.[/green]")


@records_app.command("clear")
def records_clear(verbose: bool = VERBOSE_OPTION) -> None:
    """Delete all unlock records. Requires the fixed password (TOTP codes are not accepted)."""
    setup_logging(verbose=verbose)
    engine = _engine()
    secret = typer.prompt("Fixed password", hide_input=True)
    try:
        cleared = engine.clear_unlock_records(secret)
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    if not cleared:
        console.print("[red]Error:[/red] Wrong password. Records were kept.")
        raise typer.Exit(1)
    console.print("[green]All unlock records cleared.[/green]")


@app.command()
def config(
    tick: float | None = typer.Option(None, "--tick", "-t", help="Schedule check interval in seconds"),
    max_records: int | None = typer.Option(
        None, "--max-records", "-m", help="Unlock records to keep (0 = unlimited)"
    ),
    notifications: bool | None = typer.Option(
        None, "--notifications/--no-notifications", help="Desktop notifications on lock/unlock"
    ),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Configure runtime settings."""
    setup_logging(verbose=verbose)
    current_settings = load_settings()

    if tick is not None:
        if tick < 1:
            console.print("[red]Error:[/red] The check interval must be at least 1 second.")
            raise typer.Exit(1)
        current_settings.tick_interval_seconds = tick
    if max_records is not None:
        if max_records < 0:
            console.print("[red]Error:[/red] The record limit cannot be negative.")
            raise typer.Exit(1)
        # A lower limit drops old records, which the fixed password guards
        _require_password(_engine())
        current_settings.max_unlock_records = max_records or None
    if notifications is not None:
        current_settings.notifications_enabled = notifications

    current_settings.save()

    table = Table(title="Current Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Data directory", str(current_settings.data_dir))
    table.add_row("Check interval (s)", str(current_settings.tick_interval_seconds))
    table.add_row("Max unlock records", str(current_settings.max_unlock_records or "unlimited"))
    table.add_row("Notifications", "on" if current_settings.notifications_enabled else "off")
    table.add_row("Quit auth timeout (s)", str(current_settings.quit_auth_timeout_seconds))
    console.print(table)
    console.print("[green]Configuration saved![/green]")


@app.command()
def lock(verbose: bool = VERBOSE_OPTION) -> None:
    """Lock the running session now, outside the schedule. Only the password ends it."""
    setup_logging(verbose=verbose)
    _require_session()
    _send_command("lock_now")
    console.print("[bold yellow]Lock requested.[/bold yellow] The session locks on its next check.")


@app.command()
def resume(verbose: bool = VERBOSE_OPTION) -> None:
    """Resume scheduled locking after an unlock paused it for the current window."""
    setup_logging(verbose=verbose)
    _require_session()
    _send_command("resume_auto_lock")
    console.print("[green]Auto-lock resumed.[/green] The schedule is checked again on the next tick.")


@app.callback()
def main():
    """
    Lock It - a focus lock that follows a weekly schedule.

    Use 'setup' once, 'schedule' to plan lock windows and 'run' to enforce them.
    """


def entrypoint():
    """Console script. An unusable config file is reported without a traceback."""
    try:
        app()
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1) from None


if __name__ == "__main__":
    entrypoint()
