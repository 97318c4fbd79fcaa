import threading
from datetime import datetime
from enum import Enum
from typing import Callable

from loguru import logger

from lock_it.auth import CredentialVerifier
from lock_it.errors import ConfigurationError, StorageError
from lock_it.events import Event
from lock_it.ledger import AttemptLedger
from lock_it.photos import encode_photo
from lock_it.schedule import is_locked_now
from lock_it.schema import UnlockRecord, VerifyResult
from lock_it.store import ConfigStore


class LockState(str, Enum):
    UNLOCKED = "unlocked"
    LOCKED = "locked"


class LockController:
    """
    Drives the lock state from the schedule and handles unlock attempts.

    A lock episode starts when the schedule flips on, or manually through
    ``lock_now``. It ends with a successful unlock, or for scheduled episodes
    when the schedule window ends. After a successful unlock the same window
    does not lock again unless ``resume_auto_lock`` is called.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        verifier: CredentialVerifier,
        ledger: AttemptLedger,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config_store = config_store
        self.verifier = verifier
        self.ledger = ledger
        self.clock = clock

        self.locked = Event("locked")
        self.unlocked = Event("unlocked")

        self._state = LockState.UNLOCKED
        self._attempt_count = 0
        self._schedule_active = False
        self._suppressed = False  # unlocked by the user within the current window
        self._manual = False  # current episode came from lock_now
        self._lock = threading.RLock()

    @property
    def state(self) -> LockState:
        return self._state

    @property
    def is_locked(self) -> bool:
        return self._state == LockState.LOCKED

    @property
    def attempt_count(self) -> int:
        return self._attempt_count

    @property
    def schedule_active(self) -> bool:
        """Whether the schedule demanded a lock at the last tick."""
        return self._schedule_active

    @property
    def auto_lock_paused(self) -> bool:
        """True after an unlock inside a window, until the window ends or auto-lock resumes."""
        return self._suppressed

    def tick(self, now: datetime | None = None) -> LockState:
        """Re-evaluates the schedule and applies the resulting transition."""
        now = now or self.clock()
        schedule = self.config_store.load().schedule
        active = is_locked_now(schedule, now)

        transition = None
        with self._lock:
            self._schedule_active = active
            if not active:
                self._suppressed = False
                if self._state == LockState.LOCKED and not self._manual:
                    self._state = LockState.UNLOCKED
                    transition = self.unlocked
                    logger.info("Schedule window ended, unlocking")
            elif self._state == LockState.UNLOCKED and not self._suppressed:
                self._start_episode()
                transition = self.locked
                logger.info(f"Lock time! Locking at {now:%a %H:%M}")
            state = self._state

        if transition is not None:
            transition.emit(state)
        return state

    def lock_now(self) -> bool:
        """
        Starts a lock episode regardless of the schedule. False if already locked.

        A manual episode only ends with a successful unlock.
        """
        with self._lock:
            if self._state == LockState.LOCKED:
                return False
            self._start_episode()
            self._manual = True
            logger.info("Locked manually")

        self.locked.emit(LockState.LOCKED)
        return True

    def resume_auto_lock(self, now: datetime | None = None) -> LockState:
        """Lets the schedule lock again after an unlock paused it, and re-checks it right away."""
        with self._lock:
            if self._suppressed:
                logger.info("Auto-lock resumed")
            self._suppressed = False
        return self.tick(now)

    def unlock(self, submitted: str, photo: bytes | str | None = None) -> VerifyResult:
        """
        Verifies a secret entered on the lock screen and records the attempt.

        A photo is only kept on failed attempts. A ConfigurationError is
        recorded as a failed attempt and then re-raised. A record that cannot
        be written to disk does not stop the unlock.
        """
        ended = False
        with self._lock:
            self._attempt_count += 1

            try:
                config = self.config_store.load().password
                result = self.verifier.verify(submitted, config, now=self.clock())
            except ConfigurationError as e:
                logger.error(f"Unlock attempt {self._attempt_count} failed: {e}")
                self._record(
                    UnlockRecord(
                        success=False,
                        attempt_count=self._attempt_count,
                        photo_data=encode_photo(photo) if photo else None,
                        error=str(e),
                    )
                )
                raise

            self._record(
                UnlockRecord(
                    success=result.success,
                    attempt_count=self._attempt_count,
                    unlock_method=result.method,
                    photo_data=encode_photo(photo) if photo and not result.success else None,
                )
            )

            if result.success:
                logger.info(
                    f"Unlocked with {result.method.value} after {self._attempt_count} attempt(s)"
                )
                if self._state == LockState.LOCKED:
                    self._state = LockState.UNLOCKED
                    ended = True
                self._manual = False
                if self._schedule_active:
                    self._suppressed = True
            else:
                logger.warning(f"Unlock attempt {self._attempt_count} failed")

        if ended:
            self.unlocked.emit(LockState.UNLOCKED)
        return result

    def _start_episode(self):
        self._state = LockState.LOCKED
        self._attempt_count = 0

    def _record(self, record: UnlockRecord):
        try:
            self.ledger.append(record)
        except StorageError as e:
            logger.warning(f"Unlock attempt {record.attempt_count} kept in memory only: {e}")
