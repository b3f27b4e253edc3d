"""
Shared type definitions for DualScribe.
"""

from dataclasses import dataclass
from typing import Literal, Optional
from uuid import UUID

import numpy as np


StatusKind = Literal["idle", "recording", "transcribing", "complete", "error"]


@dataclass(frozen=True)
class SampleChunk:
    """
    One hardware buffer from the microphone.

    samples has shape (frames, channels), float32, and is read-only once
    emitted. Consumers that need to modify it must copy.
    """
    samples: np.ndarray
    sample_rate: int

    @property
    def channels(self) -> int:
        return 1 if self.samples.ndim == 1 else self.samples.shape[1]

    @property
    def frames(self) -> int:
        return self.samples.shape[0]

    def mono(self) -> np.ndarray:
        """Downmix to mono by averaging channels (returns a new array)."""
        if self.samples.ndim == 1:
            return self.samples.astype(np.float32, copy=True)
        return self.samples.mean(axis=1, dtype=np.float32)


@dataclass(frozen=True)
class EngineResult:
    """Text produced by one engine for one session."""
    engine: str             # "streaming" | "batch"
    text: str               # "" means no speech detected
    latency_ms: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


_STATUS_MESSAGES = {
    "idle": "Ready",
    "recording": "Recording...",
    "transcribing": "Transcribing...",
    "complete": "Done",
}


@dataclass(frozen=True)
class SessionStatus:
    """Observable session status. reason/error_code are set only for "error"."""
    kind: StatusKind
    reason: str = ""
    error_code: str = ""

    @property
    def message(self) -> str:
        if self.kind == "error":
            return f"Error: {self.reason}"
        return _STATUS_MESSAGES[self.kind]

    @property
    def is_terminal(self) -> bool:
        return self.kind in ("complete", "error")


IDLE = SessionStatus("idle")
RECORDING = SessionStatus("recording")
TRANSCRIBING = SessionStatus("transcribing")
COMPLETE = SessionStatus("complete")


@dataclass(frozen=True)
class SessionOutcome:
    """How a session's race resolved."""
    session_id: UUID
    status: SessionStatus
    text: str = ""
    engine: Optional[str] = None


@dataclass(frozen=True)
class ConfigSnapshot:
    """
    Immutable snapshot of configuration for one run.
    Ensures config changes mid-session don't cause inconsistency.
    """
    # Audio
    input_device: str
    blocksize: int

    # Engines
    streaming_model: str
    streaming_context_size: int
    streaming_timeout: float
    batch_model_path: str
    batch_language: str

    # Session
    settle_delay: float

    # Input
    trigger_key: str
    input_mode: str
    toggle_mode_timeout: float

    # Metrics
    metrics_enabled: bool = True
    metrics_file: str = ""
