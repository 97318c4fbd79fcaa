class LockItError(Exception):
    """Base class for errors raised by the unlock engine."""


class ConfigurationError(LockItError):
    """The password config lacks the secret its method needs; verification is unavailable."""


class StaleRequestError(LockItError):
    """A quit/settings-close request id that is not the current pending one."""

    def __init__(self, request_id: str):
        super().__init__(f"No such pending request: {request_id}")
        self.request_id = request_id


class NotFoundError(LockItError):
    """An unlock record id that is not in the ledger."""

    def __init__(self, record_id: str):
        super().__init__(f"Unlock record not found: {record_id}")
        self.record_id = record_id


class StorageError(LockItError):
    """The unlock records could not be written to disk."""
