"""
Session state machine.

    idle --begin--> recording --end--> transcribing --commit--> complete
    transcribing --fail--> error
    idle --fail--> error                 (capture could not start)
    complete/error --settle--> idle

Pure transitions. Invalid events are rejected without side effects.
"""

import threading
from typing import Callable, List, Optional

from .types import (
    SessionStatus, StatusKind, IDLE, RECORDING, TRANSCRIBING, COMPLETE,
)


StatusListener = Callable[[SessionStatus, SessionStatus], None]

# (current kind, event) -> next kind
TRANSITIONS = {
    ("idle", "begin"): "recording",
    ("idle", "fail"): "error",
    ("recording", "end"): "transcribing",
    ("transcribing", "commit"): "complete",
    ("transcribing", "fail"): "error",
    ("complete", "settle"): "idle",
    ("error", "settle"): "idle",
}

_FIXED = {
    "idle": IDLE,
    "recording": RECORDING,
    "transcribing": TRANSCRIBING,
    "complete": COMPLETE,
}


def next_status(
    current: SessionStatus,
    event: str,
    reason: str = "",
    error_code: str = "",
) -> Optional[SessionStatus]:
    """Return the status after event, or None if the event is not allowed."""
    target: Optional[StatusKind] = TRANSITIONS.get((current.kind, event))
    if target is None:
        return None
    if target == "error":
        return SessionStatus("error", reason=reason, error_code=error_code)
    return _FIXED[target]


class SessionStateMachine:
    """
    Holds the current SessionStatus and applies transitions.

    Thread-safe. Listeners are called after each accepted transition
    with (old, new), outside the internal lock.
    """

    def __init__(self):
        self._status: SessionStatus = IDLE
        self._lock = threading.Lock()
        self._listeners: List[StatusListener] = []

    @property
    def status(self) -> SessionStatus:
        with self._lock:
            return self._status

    def add_listener(self, listener: StatusListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def begin(self) -> bool:
        return self._apply("begin")

    def end(self) -> bool:
        return self._apply("end")

    def commit(self) -> bool:
        return self._apply("commit")

    def fail(self, error_code: str, reason: str) -> bool:
        return self._apply("fail", reason=reason, error_code=error_code)

    def settle(self) -> bool:
        return self._apply("settle")

    def _apply(self, event: str, reason: str = "", error_code: str = "") -> bool:
        with self._lock:
            old = self._status
            new = next_status(old, event, reason=reason, error_code=error_code)
            if new is None:
                return False
            self._status = new
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(old, new)
            except Exception as e:
                print(f"[State] Listener error: {e}")
        return True
