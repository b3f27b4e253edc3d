"""
Microphone capture for one recording at a time.

Opens a sounddevice input stream at the device's native rate, forwards every
hardware buffer to a listener (the streaming engine), downmixes to mono,
accumulates the session buffer and publishes a loudness level.
"""

import threading
from typing import Callable, List, Optional, Tuple

import numpy as np

from .errors import CaptureError
from .types import SampleChunk


# Constants
DEFAULT_BLOCKSIZE = 1024
MAX_CHANNELS = 2
LEVEL_GAIN = 10.0  # RMS is scaled up so normal speech fills the meter


def compute_level(mono: np.ndarray) -> float:
    """RMS-based level in [0.0, 1.0]."""
    if len(mono) == 0:
        return 0.0
    rms = float(np.sqrt(np.mean(np.square(mono, dtype=np.float64))))
    return min(1.0, rms * LEVEL_GAIN)


def find_input_device(name: str) -> Optional[int]:
    """Find input device index by name (fuzzy matching)."""
    import sounddevice as sd

    if not name:
        return None

    devices = sd.query_devices()
    name_lower = name.lower()
    inputs = [(i, d) for i, d in enumerate(devices) if d["max_input_channels"] > 0]

    # Exact match first
    for i, d in inputs:
        if d["name"].lower() == name_lower:
            return i

    # Substring match
    for i, d in inputs:
        if name_lower in d["name"].lower():
            return i

    # Reverse substring
    for i, d in inputs:
        if d["name"].lower() in name_lower:
            return i

    return None


def has_input_device() -> bool:
    """True if the system reports at least one input device."""
    try:
        import sounddevice as sd

        sd.query_devices(kind="input")
        return True
    except Exception as e:
        print(f"[Audio] No input device: {e}")
        return False


class AudioSource:
    """
    Captures microphone audio for a single session.

    Thread-safe: start()/stop() may be called from any thread while the
    sounddevice callback runs on its own real-time thread.

    Usage:
        source = AudioSource(device_name="MacBook Pro Microphone")
        source.listener = streaming_engine.append_chunk
        source.start()
        # ... user speaks ...
        samples, rate = source.stop()
    """

    def __init__(self, device_name: str = "", blocksize: int = DEFAULT_BLOCKSIZE):
        self.device_name = device_name
        self.blocksize = blocksize

        # Callbacks
        self.listener: Optional[Callable[[SampleChunk], None]] = None
        self.on_level: Optional[Callable[[float], None]] = None

        # State
        self.level: float = 0.0
        self.sample_rate: int = 0
        self._stream = None
        self._buffers: List[np.ndarray] = []
        self._capturing = False
        self._lock = threading.Lock()

    @property
    def is_capturing(self) -> bool:
        with self._lock:
            return self._capturing

    def start(self) -> None:
        """
        Open the input stream and begin capturing.

        Raises:
            CaptureError: If already capturing or the device can't be opened
        """
        with self._lock:
            if self._capturing:
                raise CaptureError("Already capturing")

        try:
            import sounddevice as sd

            device = find_input_device(self.device_name)
            if self.device_name and device is None:
                print(f"[Audio] Mic not found: {self.device_name}, using system default")

            info = sd.query_devices(device, "input")
            sample_rate = int(info["default_samplerate"])
            channels = max(1, min(int(info["max_input_channels"]), MAX_CHANNELS))

            stream = sd.InputStream(
                device=device,
                samplerate=sample_rate,
                channels=channels,
                dtype=np.float32,
                blocksize=self.blocksize,
                callback=self._audio_callback,
            )
        except Exception as e:
            raise CaptureError(str(e)) from e

        with self._lock:
            self._buffers = []
            self.sample_rate = sample_rate
            self.level = 0.0
            self._stream = stream
            self._capturing = True

        try:
            stream.start()
        except Exception as e:
            with self._lock:
                self._capturing = False
                self._stream = None
            self._close_stream(stream)
            raise CaptureError(str(e)) from e

        print(f"[Audio] Capturing at {sample_rate} Hz, {channels} channel(s)")

    def stop(self) -> Tuple[np.ndarray, int]:
        """
        Stop capturing and return (mono samples, sample rate).

        The internal buffer is cleared. Safe to call when not capturing,
        in which case an empty buffer is returned.
        """
        with self._lock:
            if not self._capturing:
                return np.array([], dtype=np.float32), self.sample_rate

            self._capturing = False
            stream = self._stream
            self._stream = None
            buffers = self._buffers
            self._buffers = []
            sample_rate = self.sample_rate

        # Close outside the lock to avoid deadlock with the audio callback
        self._close_stream(stream)

        if buffers:
            samples = np.concatenate(buffers)
        else:
            samples = np.array([], dtype=np.float32)

        self.level = 0.0
        duration = len(samples) / sample_rate if sample_rate else 0.0
        print(f"[Audio] Stopped: {duration:.2f}s of audio")
        return samples, sample_rate

    def _close_stream(self, stream) -> None:
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            print(f"[Audio] Error closing stream: {e}")

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        """
        Called by sounddevice for each audio block.

        Never blocks on anything but the buffer lock.
        """
        if status:
            print(f"[Audio] Callback status: {status}")

        with self._lock:
            if not self._capturing:
                return
            sample_rate = self.sample_rate

        data = np.array(indata, dtype=np.float32, copy=True)
        data.setflags(write=False)
        chunk = SampleChunk(samples=data, sample_rate=sample_rate)

        # Forward raw buffer before any processing
        listener = self.listener
        if listener is not None:
            try:
                listener(chunk)
            except Exception as e:
                print(f"[Audio] Listener error: {e}")

        mono = chunk.mono()

        with self._lock:
            if not self._capturing:
                return
            self._buffers.append(mono)

        self.level = compute_level(mono)
        on_level = self.on_level
        if on_level is not None:
            try:
                on_level(self.level)
            except Exception as e:
                print(f"[Audio] Level observer error: {e}")
