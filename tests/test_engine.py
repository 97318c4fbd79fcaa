from datetime import datetime

import pyotp
import pytest

from lock_it.auth import CredentialVerifier
from lock_it.controller import LockState
from lock_it.engine import LockEngine
from lock_it.ledger import AttemptLedger
from lock_it.schema import (
    AppConfig,
    CloseDecision,
    PasswordConfig,
    PasswordType,
    UnlockMethod,
    UnlockRecord,
)
from lock_it.settings import Settings
from lock_it.store import MemoryConfigStore

# Default schedule locks Monday 08:00-17:00
IN_WINDOW = datetime(2024, 1, 1, 10, 0)
OUT_OF_WINDOW = datetime(2024, 1, 1, 20, 0)


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return Clock(IN_WINDOW)


@pytest.fixture
def engine(clock):
    store = MemoryConfigStore(
        AppConfig(password=PasswordConfig(type=PasswordType.FIXED, fixed_password="letmein"))
    )
    e = LockEngine(store, clock=clock)
    yield e
    e.close()


def capture(register):
    seen = []
    register(seen.append)
    return seen


def test_verify_password_unlocks(engine):
    engine.tick()
    assert engine.controller.state == LockState.LOCKED

    assert engine.verify_password("wrong") is False
    assert engine.verify_password("letmein") is True
    assert engine.controller.state == LockState.UNLOCKED
    assert len(engine.get_unlock_records()) == 2


def test_verify_with_method_has_no_side_effects(engine):
    engine.tick()
    result = engine.verify_password_with_method("letmein")
    assert result.success and result.method == UnlockMethod.FIXED
    assert engine.verify_settings_password("letmein")
    assert engine.controller.is_locked
    assert engine.get_unlock_records() == []


def test_record_boundary(engine):
    assert engine.save_unlock_record({"success": False, "attempt_count": 3})
    [record] = engine.get_unlock_records()
    assert record.attempt_count == 3

    assert engine.delete_unlock_record("missing") is False
    assert engine.delete_unlock_record(record.id) is True
    assert engine.get_unlock_records() == []


def test_clear_unlock_records_needs_fixed_password(engine):
    engine.save_unlock_record(UnlockRecord(success=False))
    assert engine.clear_unlock_records("wrong") is False
    assert len(engine.get_unlock_records()) == 1
    assert engine.clear_unlock_records("letmein") is True
    assert engine.get_unlock_records() == []


def test_set_settings_dirty_is_idempotent(engine):
    assert engine.set_settings_dirty(True)
    assert engine.set_settings_dirty(True)
    assert engine.settings_dirty is True


def test_clean_settings_close_proceeds_immediately(engine):
    attempts = capture(engine.on_settings_close_attempt)
    outcome = engine.request_settings_close()
    assert outcome.result(timeout=1) == CloseDecision.PROCEED
    assert attempts == []


def test_dirty_settings_close_needs_password(engine):
    attempts = capture(engine.on_settings_close_attempt)
    engine.set_settings_dirty(True)

    outcome = engine.request_settings_close()
    assert len(attempts) == 1
    request_id = attempts[0].request_id

    # A plain confirmation is not enough
    assert engine.respond_settings_close("proceed") is False
    assert not outcome.done()

    assert engine.verify_quit_password(request_id, "wrong") is False
    assert engine.verify_quit_password(request_id, "letmein") is True
    assert outcome.result(timeout=1) == CloseDecision.PROCEED
    assert engine.settings_dirty is False


def test_dirty_settings_close_can_be_cancelled(engine):
    attempts = capture(engine.on_settings_close_attempt)
    engine.set_settings_dirty(True)

    outcome = engine.request_settings_close()
    assert engine.respond_settings_close(CloseDecision.CANCEL) is True
    assert outcome.result(timeout=1) == CloseDecision.CANCEL
    assert engine.settings_dirty is True
    assert engine.cancel_quit_password_auth(attempts[0].request_id) is False


def test_confirm_only_settings_close(clock):
    engine = LockEngine(MemoryConfigStore(), clock=clock, settings_close_requires_auth=False)
    engine.set_settings_dirty(True)

    outcome = engine.request_settings_close()
    assert engine.respond_settings_close("proceed") is True
    assert outcome.result(timeout=1) == CloseDecision.PROCEED
    engine.close()


def test_respond_without_pending_close(engine):
    assert engine.respond_settings_close("cancel") is False


def test_quit_outside_lock_window_proceeds(engine, clock):
    clock.now = OUT_OF_WINDOW
    requests = capture(engine.on_quit_auth_request)

    assert engine.request_quit().result(timeout=1) == CloseDecision.PROCEED
    assert requests == []
    assert engine.quit_authorized


def test_quit_inside_lock_window_needs_password(engine):
    requests = capture(engine.on_quit_auth_request)

    outcome = engine.request_quit()
    [request] = requests
    assert not outcome.done()

    assert engine.verify_quit_password(request.request_id, "letmein") is True
    assert outcome.result(timeout=1) == CloseDecision.PROCEED
    assert engine.quit_authorized
    # Once authorized, quitting does not ask again
    assert engine.request_quit().result(timeout=1) == CloseDecision.PROCEED


def test_second_quit_attempt_supersedes_first(engine):
    requests = capture(engine.on_quit_auth_request)

    first = engine.request_quit()
    second = engine.request_quit()

    assert first.result(timeout=1) == CloseDecision.CANCEL
    assert not second.done()
    assert engine.verify_quit_password(requests[0].request_id, "letmein") is False
    assert engine.verify_quit_password(requests[1].request_id, "letmein") is True
    assert second.result(timeout=1) == CloseDecision.PROCEED


def test_cancel_quit(engine):
    requests = capture(engine.on_quit_auth_request)
    outcome = engine.request_quit()

    assert engine.cancel_quit_password_auth(requests[0].request_id) is True
    assert outcome.result(timeout=1) == CloseDecision.CANCEL
    assert not engine.quit_authorized
    assert engine.cancel_quit_password_auth(requests[0].request_id) is False


def test_close_cancels_pending_quit(clock):
    engine = LockEngine(MemoryConfigStore(), clock=clock)
    outcome = engine.request_quit()
    engine.close()
    assert outcome.result(timeout=1) == CloseDecision.CANCEL


def test_confirm_totp_setup(engine, clock):
    provisioning = engine.generate_totp_secret("Laptop")

    assert engine.confirm_totp_setup(provisioning, "000000x") is False
    assert engine.password_config().totp_secret is None

    code = pyotp.TOTP(provisioning.secret).at(clock.now)
    assert engine.confirm_totp_setup(provisioning, code) is True

    config = engine.password_config()
    assert config.type == PasswordType.BOTH
    assert config.totp_secret == provisioning.secret
    assert config.totp_device_name == "Laptop"
    assert config.fixed_password == "letmein"


def test_confirm_totp_setup_rejects_fixed_type(engine):
    provisioning = engine.generate_totp_secret()
    with pytest.raises(ValueError):
        engine.confirm_totp_setup(provisioning, "123456", password_type=PasswordType.FIXED)


def test_complete_setup(engine):
    engine.set_settings_dirty(True)
    assert engine.complete_setup()
    assert engine.config_store.load().has_completed_setup
    assert not engine.settings_dirty


def test_from_settings_uses_data_dir(tmp_path):
    settings = Settings(data_dir=tmp_path, log_dir=tmp_path)
    engine = LockEngine.from_settings(settings)

    engine.save_unlock_record(UnlockRecord(success=False))
    assert engine.config_store.save({"has_completed_setup": True})

    assert settings.records_file.exists()
    assert settings.config_file.exists()
    assert LockEngine.from_settings(settings).config_store.load().has_completed_setup
    engine.close()


def test_save_unlock_record_reports_write_failure(clock, tmp_path):
    records_file = tmp_path / "records"
    records_file.mkdir()
    ledger = AttemptLedger(CredentialVerifier(), records_file=records_file)
    engine = LockEngine(MemoryConfigStore(), ledger=ledger, clock=clock)

    assert engine.save_unlock_record({"success": False}) is False
    [record] = engine.get_unlock_records()
    assert engine.delete_unlock_record(record.id) is False
    assert engine.clear_unlock_records("123456") is False
    engine.close()


def test_lock_now_and_resume(engine, clock):
    clock.now = OUT_OF_WINDOW
    engine.tick()
    assert engine.lock_now()
    assert engine.tick() == LockState.LOCKED
    assert engine.verify_password("letmein")

    clock.now = IN_WINDOW
    engine.tick()
    assert engine.verify_password("letmein")
    assert engine.tick() == LockState.UNLOCKED
    assert engine.resume_auto_lock() == LockState.LOCKED
