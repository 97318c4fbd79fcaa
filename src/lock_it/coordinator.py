"""
Re-authentication for privileged actions (quitting, closing dirty settings).

At most one request is pending per coordinator. A request ends when the
password is verified against it (proceed), when it is cancelled, when it
times out, or when a newer request supersedes it; all but the first resolve
its outcome to ``cancel``. Operations naming any other request id are stale.
"""

import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable
from uuid import uuid4

from loguru import logger

from lock_it.errors import StaleRequestError
from lock_it.events import Event
from lock_it.schema import CloseDecision, PrivilegedAction, VerifyResult


class RequestState(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"
    SUPERSEDED = "superseded"
    EXPIRED = "expired"


@dataclass
class QuitAuthRequest:
    request_id: str
    action: PrivilegedAction
    state: RequestState = RequestState.PENDING
    outcome: Future = field(default_factory=Future, repr=False)

    def wait(self, timeout: float | None = None) -> CloseDecision:
        """Blocks until the request is resolved and returns the decision."""
        return self.outcome.result(timeout=timeout)

    @property
    def done(self) -> bool:
        return self.outcome.done()


DEFAULT_TIMEOUTS = {
    PrivilegedAction.QUIT: 60.0,
    PrivilegedAction.SETTINGS_CLOSE: 30.0,
}


class QuitAuthCoordinator:
    def __init__(
        self,
        verify: Callable[[str], VerifyResult],
        timeouts: dict[PrivilegedAction, float] | None = None,
    ):
        self._verify = verify
        self.timeouts = {**DEFAULT_TIMEOUTS, **(timeouts or {})}

        self.quit_auth_requested = Event("quit_auth_requested")
        self.settings_close_attempted = Event("settings_close_attempted")

        self._pending: QuitAuthRequest | None = None
        self._timer: threading.Timer | None = None
        self._lock = threading.RLock()

    @property
    def pending(self) -> QuitAuthRequest | None:
        with self._lock:
            return self._pending

    def request(self, action: PrivilegedAction) -> QuitAuthRequest:
        """Opens a new pending request, superseding any previous one, and notifies listeners."""
        request = QuitAuthRequest(request_id=uuid4().hex, action=action)

        with self._lock:
            previous = self._pending
            self._cancel_timer()
            self._pending = request
            timeout = self.timeouts.get(action)
            if timeout:
                self._timer = threading.Timer(timeout, self._expire, args=(request.request_id,))
                self._timer.daemon = True
                self._timer.start()

        if previous is not None:
            logger.info(f"Request {previous.request_id} superseded by {request.request_id}")
            self._settle(previous, RequestState.SUPERSEDED, CloseDecision.CANCEL)

        logger.info(f"Re-authentication requested for {action.value} ({request.request_id})")
        if action == PrivilegedAction.QUIT:
            self.quit_auth_requested.emit(request)
        else:
            self.settings_close_attempted.emit(request)
        return request

    def verify(self, request_id: str, password: str) -> bool:
        """
        Checks ``password`` for the pending request.

        A correct password resolves it to ``proceed``; a wrong one leaves it
        pending. Raises StaleRequestError when ``request_id`` is not pending.
        """
        with self._lock:
            if self._pending is None or self._pending.request_id != request_id:
                raise StaleRequestError(request_id)

        result = self._verify(password)
        if not result.success:
            logger.info(f"Wrong password for request {request_id}, still pending")
            return False

        if not self._finish(request_id, RequestState.RESOLVED, CloseDecision.PROCEED):
            # Superseded or expired while the password was being checked
            raise StaleRequestError(request_id)
        return True

    def resolve(self, request_id: str, decision: CloseDecision) -> bool:
        """Resolves the pending request without a password. False if it is not pending."""
        state = RequestState.RESOLVED if decision == CloseDecision.PROCEED else RequestState.CANCELLED
        return self._finish(request_id, state, decision)

    def cancel(self, request_id: str) -> bool:
        """Cancels the pending request. Unknown or finished ids are a no-op returning False."""
        return self._finish(request_id, RequestState.CANCELLED, CloseDecision.CANCEL)

    def shutdown(self):
        with self._lock:
            pending = self._pending
        if pending is not None:
            self.cancel(pending.request_id)

    def _expire(self, request_id: str):
        if self._finish(request_id, RequestState.EXPIRED, CloseDecision.CANCEL):
            logger.info(f"Request {request_id} timed out")

    def _finish(self, request_id: str, state: RequestState, decision: CloseDecision) -> bool:
        with self._lock:
            request = self._pending
            if request is None or request.request_id != request_id:
                logger.debug(f"Ignoring {state.value} for non-pending request {request_id}")
                return False
            self._pending = None
            self._cancel_timer()

        self._settle(request, state, decision)
        logger.info(f"Request {request_id} {state.value}: {decision.value}")
        return True

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @staticmethod
    def _settle(request: QuitAuthRequest, state: RequestState, decision: CloseDecision):
        request.state = state
        if not request.outcome.done():
            request.outcome.set_result(decision)
