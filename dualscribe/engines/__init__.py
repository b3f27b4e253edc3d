"""
Speech recognition engines raced by the coordinator.

- StreamingEngine: fed chunk by chunk while recording, finalizes fast
- BatchEngine: transcribes the whole resampled buffer after recording

Both hand work to an executor supplied at construction, so the coordinator
only sees futures and never cares which thread a branch runs on.
"""

from typing import List, Protocol

import numpy as np


STREAMING = "streaming"
BATCH = "batch"


class StreamRecognizer(Protocol):
    """One open recognition stream for one session."""

    def add_audio(self, samples: np.ndarray) -> str:
        """Feed 16kHz mono samples, return the current partial text."""
        ...

    def finish(self) -> str:
        """Signal end of input and return the final text."""
        ...

    def close(self) -> None:
        """Release the stream."""
        ...


class BatchBackend(Protocol):
    """Whole-buffer model inference."""

    def transcribe_segments(self, samples: np.ndarray, model_path: str) -> List[str]:
        """Return recognized segment texts for 16kHz mono samples."""
        ...


from .streaming import StreamingEngine, ParakeetStreamFactory  # noqa: E402
from .batch import BatchEngine, MlxWhisperBackend  # noqa: E402

__all__ = [
    "STREAMING",
    "BATCH",
    "StreamRecognizer",
    "BatchBackend",
    "StreamingEngine",
    "ParakeetStreamFactory",
    "BatchEngine",
    "MlxWhisperBackend",
]
