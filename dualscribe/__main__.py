"""
Main entry point for DualScribe.

Run with: python -m dualscribe
"""

import signal
import sys
from typing import Optional

from pynput import keyboard

from .audio import AudioSource, has_input_device
from .config import Config
from .coordinator import RaceCoordinator
from .engines import BatchEngine, MlxWhisperBackend, ParakeetStreamFactory, StreamingEngine
from .input import InputController
from .metrics import MetricsWriter
from .models import LocalModelGate
from .output import SystemOutputSink, notify, play_busy_sound
from .types import SessionStatus


# Global state
coordinator: Optional[RaceCoordinator] = None
metrics: Optional[MetricsWriter] = None
stream_factory: Optional[ParakeetStreamFactory] = None
_keyboard_listener: Optional[keyboard.Listener] = None


def main():
    """Main entry point."""
    global coordinator, metrics, stream_factory, _keyboard_listener

    from . import __version__

    print(f"DualScribe v{__version__} starting...")

    config = Config.load()
    snapshot = config.snapshot()
    print(f"  Input device: {snapshot.input_device or 'system default'}")
    print(f"  Input mode: {snapshot.input_mode}")

    if snapshot.metrics_enabled:
        metrics = MetricsWriter(config.metrics_file)

    # Streaming engine (fast, partial results)
    stream_factory = ParakeetStreamFactory(
        snapshot.streaming_model,
        context_size=snapshot.streaming_context_size,
    )
    stream_factory.initialize()
    streaming = StreamingEngine(stream_factory, finalize_timeout=snapshot.streaming_timeout)

    # Batch engine (slow, accurate); absent from the race until the model exists
    gate = LocalModelGate(snapshot.batch_model_path)
    batch = BatchEngine(gate, MlxWhisperBackend(language=snapshot.batch_language))
    print(f"  Batch model: {snapshot.batch_model_path} ({'ready' if gate.is_ready() else 'not ready'})")

    coordinator = RaceCoordinator(
        audio=AudioSource(snapshot.input_device, blocksize=snapshot.blocksize),
        streaming=streaming,
        batch=batch,
        sink=SystemOutputSink(),
        settle_delay=snapshot.settle_delay,
        can_record=has_input_device,
        metrics=metrics,
    )
    coordinator.state.add_listener(_on_status_change)

    input_controller = InputController(snapshot)
    input_controller.on_start_recording = _on_start_recording
    input_controller.on_stop_recording = coordinator.end

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    _keyboard_listener = keyboard.Listener(
        on_press=input_controller.on_key_press,
        on_release=input_controller.on_key_release
    )
    _keyboard_listener.start()
    print("  Keyboard listener started")

    print(f"Ready! Press {snapshot.trigger_key} to record.")
    print("Press Ctrl+C to quit.")
    notify(f"Press {snapshot.trigger_key} to record", title="DualScribe started")

    try:
        _keyboard_listener.join()
    finally:
        shutdown()


def _on_start_recording() -> bool:
    if coordinator is None:
        return False
    busy = coordinator.status.kind != "idle"
    started = coordinator.begin()
    if not started and busy:
        play_busy_sound()
    return started


def _on_status_change(old: SessionStatus, new: SessionStatus) -> None:
    print(f"[Status] {new.message}")
    if new.kind == "error":
        notify(new.reason)


def shutdown() -> None:
    """Clean shutdown."""
    global coordinator, metrics, stream_factory

    print("\nShutting down...")

    if _keyboard_listener:
        _keyboard_listener.stop()

    if coordinator:
        coordinator.shutdown()
        coordinator = None

    if stream_factory:
        stream_factory.shutdown()
        stream_factory = None

    if metrics:
        metrics.shutdown()
        metrics = None

    print("Goodbye!")


def _signal_handler(signum, frame):
    """Handle SIGINT/SIGTERM."""
    shutdown()
    sys.exit(0)


if __name__ == "__main__":
    main()
