import json

import pytest
from loguru import logger
from typer.testing import CliRunner

from lock_it.cli import app, entrypoint, parse_slot
from lock_it.engine import LockEngine
from lock_it.settings import load_settings, settings
from lock_it.utils.state import cleanup_state, write_state

runner = CliRunner()


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("LOCK_IT_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("LOCK_IT_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setattr(settings, "data_dir", tmp_path)
    monkeypatch.setattr(settings, "log_dir", tmp_path / "logs")
    yield tmp_path
    logger.remove()


def engine() -> LockEngine:
    return LockEngine.from_settings(load_settings())


def test_parse_slot():
    slot = parse_slot("10pm-2am")
    assert (slot.start, slot.end) == (22 * 60, 2 * 60)
    with pytest.raises(ValueError):
        parse_slot("10pm")


def test_schedule_set_and_show():
    result = runner.invoke(
        app, ["schedule", "set", "sat", "9:00-12:00", "22:00-2:00"], input="123456\n"
    )
    assert result.exit_code == 0, result.output
    assert "22:00-02:00 (+1d)" in result.output

    saturday = engine().config_store.load().schedule.saturday
    assert saturday.enabled
    assert [(s.start, s.end) for s in saturday.slots] == [(540, 720), (1320, 120)]

    result = runner.invoke(app, ["schedule", "show"])
    assert result.exit_code == 0
    assert "Saturday" in result.output


@pytest.mark.parametrize("args", [["schedule", "set", "x", "9:00-10:00"], ["schedule", "set", "mon", "nine"]])
def test_schedule_set_rejects_bad_input(args):
    result = runner.invoke(app, args)
    assert result.exit_code == 1
    assert engine().config_store.load().schedule.monday.slots[0].start == 8 * 60


def test_schedule_disable_needs_password():
    result = runner.invoke(app, ["schedule", "disable", "monday"], input="nope\n")
    assert result.exit_code == 1
    assert engine().config_store.load().schedule.monday.enabled

    result = runner.invoke(app, ["schedule", "disable", "monday"], input="123456\n")
    assert result.exit_code == 0
    assert not engine().config_store.load().schedule.monday.enabled


def test_verify_default_password():
    result = runner.invoke(app, ["verify"], input="123456\n")
    assert result.exit_code == 0
    assert "Valid" in result.output

    result = runner.invoke(app, ["verify"], input="654321\n")
    assert result.exit_code == 1


def test_records_commands():
    result = runner.invoke(app, ["records", "list"])
    assert "No unlock records" in result.output

    e = engine()
    e.verify_password("wrong")
    [record] = e.get_unlock_records()

    result = runner.invoke(app, ["records", "list"])
    assert result.exit_code == 0
    assert "Unlock Attempts (1 total)" in result.output

    assert runner.invoke(app, ["records", "delete", "missing"]).exit_code == 1
    assert runner.invoke(app, ["records", "delete", record.id]).exit_code == 0
    assert engine().get_unlock_records() == []


def test_records_clear_wrong_password_keeps_records():
    engine().verify_password("wrong")
    result = runner.invoke(app, ["records", "clear"], input="bad\n")
    assert result.exit_code == 1
    assert len(engine().get_unlock_records()) == 1

    result = runner.invoke(app, ["records", "clear"], input="123456\n")
    assert result.exit_code == 0
    assert engine().get_unlock_records() == []


def test_status_without_session():
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "Stopped" in result.output


def test_setup_only_runs_once():
    result = runner.invoke(app, ["setup"], input="owner-secret\nowner-secret\n")
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["setup"], input="intruder\nintruder\n")
    assert result.exit_code == 1
    e = engine()
    assert e.verify_settings_password("owner-secret")
    assert not e.verify_settings_password("intruder")


def test_schedule_set_needs_password():
    result = runner.invoke(app, ["schedule", "set", "monday", "0:00-0:01"], input="nope\n")
    assert result.exit_code == 1
    slots = engine().config_store.load().schedule.monday.slots
    assert [(s.start, s.end) for s in slots] == [(8 * 60, 17 * 60)]


def test_totp_setup_needs_password():
    result = runner.invoke(app, ["totp-setup", "--only-totp"], input="nope\n")
    assert result.exit_code == 1
    config = engine().password_config()
    assert config.totp_secret is None
    assert config.type.value == "fixed"


def test_lowering_record_limit_needs_password(data_dir):
    result = runner.invoke(app, ["config", "--max-records", "1"], input="nope\n")
    assert result.exit_code == 1
    assert load_settings().max_unlock_records == 100


@pytest.mark.parametrize("command", ["lock", "resume"])
def test_session_commands_need_a_running_session(command):
    result = runner.invoke(app, [command])
    assert result.exit_code == 1
    assert "No lock session is running" in result.output


@pytest.mark.parametrize(("command", "queued"), [("lock", "lock_now"), ("resume", "resume_auto_lock")])
def test_session_commands_are_queued(command, queued):
    cleanup_state()
    write_state({"state": "unlocked"})
    try:
        result = runner.invoke(app, [command])
    finally:
        cleanup_state()
    assert result.exit_code == 0
    assert json.loads(settings.command_file.read_text()) == {"command": queued}


def test_unreadable_config_is_reported(data_dir, monkeypatch):
    (data_dir / "config.json").write_text("{not json")
    monkeypatch.setattr("sys.argv", ["lockit", "status"])
    with pytest.raises(SystemExit) as exc_info:
        entrypoint()
    assert exc_info.value.code == 1
