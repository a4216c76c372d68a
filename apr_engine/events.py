"""
Progress notifications for host applications.

The engine emits events through a RepairEvents instance. Subscribers are
optional; an engine with no subscribers behaves identically.
"""

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[..., None]

SESSION_START = "session:start"
SESSION_END = "session:end"
LOCALIZATION = "localization"
PROGRESS = "progress"
FAULT_START = "fault:start"
CANDIDATE = "candidate"
VALIDATION = "validation"
SUCCESS = "success"
FAILURE = "failure"
ROLLBACK = "rollback"
CHAT_START = "chat:start"
CHAT_ATTEMPT = "chat:attempt"


class RepairEvents:
    """A minimal synchronous observer registry."""

    def __init__(self):
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def on(self, name: str, listener: Listener) -> None:
        self._listeners[name].append(listener)

    def off(self, name: str, listener: Listener) -> None:
        if listener in self._listeners.get(name, []):
            self._listeners[name].remove(listener)

    def emit(self, name: str, **payload: Any) -> None:
        """Call every listener for ``name``; listener errors are logged only."""
        for listener in list(self._listeners.get(name, [])):
            try:
                listener(**payload)
            except Exception:
                logger.warning("Listener for %r raised", name, exc_info=True)
