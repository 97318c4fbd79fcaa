import threading

from loguru import logger


class Event:
    """A notification channel with any number of listeners."""

    def __init__(self, name: str):
        self.name = name
        self._listeners = []
        self._lock = threading.Lock()

    def add_listener(self, listener):
        if not callable(listener):
            raise ValueError("Listener must be callable")
        with self._lock:
            self._listeners.append(listener)
        return listener

    def remove_listener(self, listener):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def emit(self, *args, **kwargs):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(*args, **kwargs)
            except Exception:
                logger.exception(f"Error in '{self.name}' event listener")

    def __len__(self) -> int:
        return len(self._listeners)
