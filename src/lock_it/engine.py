from concurrent.futures import Future
from datetime import datetime
from typing import Any, Callable

from loguru import logger

from lock_it.auth import CredentialVerifier
from lock_it.controller import LockController, LockState
from lock_it.coordinator import QuitAuthCoordinator, QuitAuthRequest
from lock_it.errors import NotFoundError, StaleRequestError, StorageError
from lock_it.ledger import AttemptLedger
from lock_it.photos import PhotoStore
from lock_it.schedule import is_locked_now
from lock_it.schema import (
    CloseDecision,
    PasswordConfig,
    PasswordType,
    PrivilegedAction,
    TotpProvisioning,
    UnlockRecord,
    VerifyResult,
)
from lock_it.settings import Settings
from lock_it.store import ConfigStore, JsonConfigStore


def _decided(decision: CloseDecision) -> Future:
    future: Future = Future()
    future.set_result(decision)
    return future


class LockEngine:
    """
    The engine context for one app run: owns the verifier, the attempt
    ledger, the lock controller and the re-authentication coordinator,
    plus the settings dirty flag. Methods here are what the presentation
    layer calls.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        ledger: AttemptLedger | None = None,
        verifier: CredentialVerifier | None = None,
        clock: Callable[[], datetime] = datetime.now,
        quit_auth_timeout: float = 60.0,
        settings_close_timeout: float = 30.0,
        settings_close_requires_auth: bool = True,
    ):
        self.config_store = config_store
        self.verifier = verifier or CredentialVerifier()
        self.ledger = ledger or AttemptLedger(self.verifier)
        self.clock = clock
        self.settings_close_requires_auth = settings_close_requires_auth

        self.controller = LockController(config_store, self.verifier, self.ledger, clock=clock)
        self.coordinator = QuitAuthCoordinator(
            self.verify_password_with_method,
            timeouts={
                PrivilegedAction.QUIT: quit_auth_timeout,
                PrivilegedAction.SETTINGS_CLOSE: settings_close_timeout,
            },
        )

        self._settings_dirty = False
        self.quit_authorized = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "LockEngine":
        """Builds an engine on the files in ``settings.data_dir``."""
        verifier = CredentialVerifier(issuer=settings.totp_issuer)
        ledger = AttemptLedger(
            verifier,
            records_file=settings.records_file,
            photos=PhotoStore(settings.photos_dir),
            max_records=settings.max_unlock_records,
        )
        return cls(
            JsonConfigStore(settings.config_file),
            ledger=ledger,
            verifier=verifier,
            quit_auth_timeout=settings.quit_auth_timeout_seconds,
            settings_close_timeout=settings.settings_close_timeout_seconds,
            settings_close_requires_auth=settings.settings_close_requires_auth,
        )

    def close(self):
        """Tears the engine down, cancelling any pending re-authentication."""
        self.coordinator.shutdown()
        logger.debug("Lock engine closed")

    # Lock state

    def tick(self, now: datetime | None = None) -> LockState:
        return self.controller.tick(now)

    def password_config(self) -> PasswordConfig:
        return self.config_store.load().password

    def lock_now(self) -> bool:
        """Locks outside the schedule. False if already locked."""
        return self.controller.lock_now()

    def resume_auto_lock(self) -> LockState:
        return self.controller.resume_auto_lock()

    # Verification

    def verify_password(self, secret: str, photo: bytes | str | None = None) -> bool:
        """Lock screen unlock: verifies, records the attempt and unlocks on success."""
        return self.controller.unlock(secret, photo).success

    def verify_password_with_method(self, secret: str) -> VerifyResult:
        return self.verifier.verify(secret, self.password_config(), now=self.clock())

    def verify_settings_password(self, secret: str) -> bool:
        """Second confirmation inside settings. Does not touch the lock state."""
        return self.verify_password_with_method(secret).success

    def generate_totp_secret(self, device_name: str | None = None) -> TotpProvisioning:
        return self.verifier.generate_secret(device_name)

    def confirm_totp_setup(
        self,
        provisioning: TotpProvisioning,
        code: str,
        password_type: PasswordType = PasswordType.BOTH,
    ) -> bool:
        """Saves a freshly generated TOTP secret once a code from the authenticator app checks out."""
        if password_type == PasswordType.FIXED:
            raise ValueError("TOTP setup needs a password type that includes TOTP")
        if not self.verifier.verify_totp_code(code, provisioning.secret, now=self.clock()):
            logger.warning("TOTP setup not confirmed: code did not match the new secret")
            return False

        updated = self.password_config().model_copy(
            update={
                "type": password_type,
                "totp_secret": provisioning.secret,
                "totp_device_name": provisioning.device_name,
            }
        )
        saved = self.config_store.save({"password": updated})
        if saved:
            logger.info(f"TOTP enabled for device '{provisioning.device_name}'")
        return saved

    # Unlock records

    def save_unlock_record(self, record: UnlockRecord | dict[str, Any]) -> bool:
        """False when the record could not be written to disk."""
        try:
            self.ledger.append(UnlockRecord.model_validate(record))
        except StorageError:
            return False
        return True

    def get_unlock_records(self, include_photos: bool = True) -> list[UnlockRecord]:
        return self.ledger.list(include_photos=include_photos)

    def delete_unlock_record(self, record_id: str) -> bool:
        try:
            self.ledger.delete(record_id)
        except NotFoundError as e:
            logger.warning(str(e))
            return False
        except StorageError:
            return False
        return True

    def clear_unlock_records(self, password: str) -> bool:
        try:
            return self.ledger.clear_all(password, self.password_config())
        except StorageError:
            return False

    # Settings close

    @property
    def settings_dirty(self) -> bool:
        return self._settings_dirty

    def set_settings_dirty(self, dirty: bool) -> bool:
        self._settings_dirty = bool(dirty)
        return True

    def on_settings_close_attempt(self, callback: Callable[[QuitAuthRequest], Any]):
        return self.coordinator.settings_close_attempted.add_listener(callback)

    def request_settings_close(self) -> Future:
        """Decides whether the settings view may close. Unsaved changes need confirmation."""
        if not self._settings_dirty:
            return _decided(CloseDecision.PROCEED)

        outcome = self.coordinator.request(PrivilegedAction.SETTINGS_CLOSE).outcome
        outcome.add_done_callback(self._after_settings_close)
        return outcome

    def respond_settings_close(self, decision: CloseDecision | str) -> bool:
        """
        Answer from the settings view to a pending close attempt. While
        ``settings_close_requires_auth`` is set, only ``cancel`` is accepted
        here; proceeding needs verify_quit_password.
        """
        decision = CloseDecision(decision)
        pending = self.coordinator.pending
        if pending is None or pending.action != PrivilegedAction.SETTINGS_CLOSE:
            logger.debug("Settings close response with no pending close attempt")
            return False
        if decision == CloseDecision.PROCEED and self.settings_close_requires_auth:
            logger.warning("Closing dirty settings needs the password, not a plain confirmation")
            return False
        return self.coordinator.resolve(pending.request_id, decision)

    def _after_settings_close(self, outcome: Future):
        if outcome.result() == CloseDecision.PROCEED:
            self._settings_dirty = False

    # Quit

    def on_quit_auth_request(self, callback: Callable[[QuitAuthRequest], Any]):
        return self.coordinator.quit_auth_requested.add_listener(callback)

    def request_quit(self) -> Future:
        """Decides whether the app may quit. During a scheduled lock window a password is needed."""
        if self.quit_authorized:
            return _decided(CloseDecision.PROCEED)

        if not is_locked_now(self.config_store.load().schedule, self.clock()):
            self.quit_authorized = True
            return _decided(CloseDecision.PROCEED)

        outcome = self.coordinator.request(PrivilegedAction.QUIT).outcome
        outcome.add_done_callback(self._after_quit)
        return outcome

    def _after_quit(self, outcome: Future):
        if outcome.result() == CloseDecision.PROCEED:
            self.quit_authorized = True

    def verify_quit_password(self, request_id: str, password: str) -> bool:
        try:
            return self.coordinator.verify(request_id, password)
        except StaleRequestError as e:
            logger.warning(str(e))
            return False

    def cancel_quit_password_auth(self, request_id: str) -> bool:
        return self.coordinator.cancel(request_id)

    # Setup

    def complete_setup(self) -> bool:
        saved = self.config_store.save({"has_completed_setup": True})
        self._settings_dirty = False
        return saved
