"""
Hotkey handling.

Raw pynput press/release events become two intents, start and stop, which
the entry point maps onto RaceCoordinator.begin() and end().
"""

import threading
from typing import Callable, Literal, Optional

from .types import ConfigSnapshot


InputState = Literal["idle", "recording"]

# macOS reports F17 as a bare virtual key code
F17_VK = 64


class InputController:
    """
    Edge detector for the trigger key.

    input_mode "hold": press starts, release stops.
    input_mode "toggle": press starts, next press stops. A recording left
    running longer than toggle_mode_timeout is stopped automatically.

    Auto-repeat presses and releases without a matching press are dropped.
    Callbacks run on the caller's thread, outside the controller lock.
    A start callback returning False means the start was refused, and the
    controller stays idle so the next press tries again.

    Usage:
        controller = InputController(snapshot)
        controller.on_start_recording = coordinator.begin
        controller.on_stop_recording = coordinator.end
        keyboard.Listener(on_press=controller.on_key_press,
                          on_release=controller.on_key_release).start()
    """

    def __init__(self, config: ConfigSnapshot):
        self.config = config
        self.state: InputState = "idle"
        self.on_start_recording: Optional[Callable[[], object]] = None
        self.on_stop_recording: Optional[Callable[[], object]] = None

        self._held = False
        self._lock = threading.Lock()
        self._timeout: Optional[threading.Timer] = None
        self._trigger = None

    @property
    def toggle_mode(self) -> bool:
        return self.config.input_mode == "toggle"

    def on_key_press(self, key) -> None:
        if not self._is_trigger_key(key):
            return

        starting = False
        with self._lock:
            if self._held:
                return
            self._held = True
            if self.state == "idle":
                action = self._enter_recording()
                starting = True
            elif self.toggle_mode:
                action = self._leave_recording()
            else:
                action = None

        if not action:
            return
        if action() is False and starting:
            self._start_rejected()

    def _start_rejected(self) -> None:
        """The start callback refused; the next press should try to start again."""
        with self._lock:
            if self.state == "recording":
                self.state = "idle"
                self._disarm_timeout()

    def on_key_release(self, key) -> None:
        if not self._is_trigger_key(key):
            return

        with self._lock:
            if not self._held:
                return
            self._held = False
            action = None
            if self.state == "recording" and not self.toggle_mode:
                action = self._leave_recording()

        if action:
            action()

    def _is_trigger_key(self, key) -> bool:
        if self._trigger is None:
            self._trigger = self._resolve_trigger(self.config.trigger_key)
        return self._trigger(key)

    @staticmethod
    def _resolve_trigger(name: str) -> Callable[[object], bool]:
        """Build a matcher for a pynput Key name such as "alt_r" or "f17"."""
        from pynput.keyboard import Key, KeyCode

        named = getattr(Key, name, None)

        def matches(key) -> bool:
            if named is not None and key == named:
                return True
            if name.lower() == "f17" and isinstance(key, KeyCode):
                return getattr(key, "vk", None) == F17_VK
            return False

        return matches

    # State changes below must hold the lock; they return the callback to fire

    def _enter_recording(self) -> Optional[Callable[[], object]]:
        self.state = "recording"
        if self.toggle_mode:
            self._arm_timeout()
        return self.on_start_recording

    def _leave_recording(self) -> Optional[Callable[[], object]]:
        self.state = "idle"
        self._disarm_timeout()
        return self.on_stop_recording

    def _arm_timeout(self) -> None:
        self._disarm_timeout()
        self._timeout = threading.Timer(self.config.toggle_mode_timeout, self._on_timeout)
        self._timeout.daemon = True
        self._timeout.start()

    def _disarm_timeout(self) -> None:
        if self._timeout is not None:
            self._timeout.cancel()
            self._timeout = None

    def _on_timeout(self) -> None:
        with self._lock:
            if self.state != "recording":
                return
            print(f"[Input] Recording ran past {self.config.toggle_mode_timeout:.0f}s, stopping")
            action = self._leave_recording()

        if action:
            action()
