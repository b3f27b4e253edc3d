"""
Batch engine: whole-buffer transcription with a local Whisper model.

Slower than the streaming engine but usually more accurate. Invocations
are serialized, so overlapping sessions never share the model concurrently.
"""

import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import List, Optional

import numpy as np

from . import BATCH, BatchBackend
from ..errors import EmptyAudioError, ModelNotLoadedError
from ..models import ModelGate
from ..resample import resample


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace and trim."""
    return " ".join(text.split())


class MlxWhisperBackend:
    """
    Whisper inference via mlx-whisper (Apple Silicon).

    Tuned for short dictation: fixed language, greedy decoding, no
    conditioning on previous text.
    """

    def __init__(self, language: str = "en"):
        self.language = language

    def transcribe_segments(self, samples: np.ndarray, model_path: str) -> List[str]:
        import mlx_whisper

        result = mlx_whisper.transcribe(
            samples,
            path_or_hf_repo=model_path,
            language=self.language or None,
            temperature=0.0,
            condition_on_previous_text=False,
            fp16=True,
        )
        segments = []
        for seg in result.get("segments", []):
            if not isinstance(seg, dict):
                continue
            segments.append(str(seg.get("text", "") or ""))
        return segments


class BatchEngine:
    """
    Slow, accurate recognizer run once recording has stopped.

    Readiness is delegated to the model gate; loading the model is
    somebody else's job.

    Usage:
        engine = BatchEngine(LocalModelGate(path), MlxWhisperBackend())
        if engine.is_ready:
            future = engine.submit(samples, input_rate)
    """

    name = BATCH

    def __init__(
        self,
        gate: ModelGate,
        backend: Optional[BatchBackend] = None,
        executor: Optional[Executor] = None,
    ):
        self.gate = gate
        self.backend = backend or MlxWhisperBackend()
        # One worker keeps invocations from overlapping sessions in order
        self.executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="batch"
        )
        self._lock = threading.Lock()

    @property
    def is_ready(self) -> bool:
        try:
            return bool(self.gate.is_ready())
        except Exception as e:
            print(f"[{self.name}] Model gate error: {e}")
            return False

    def transcribe(self, samples: np.ndarray) -> str:
        """
        Transcribe 16kHz mono samples. Blocks for the whole inference.

        Raises:
            ModelNotLoadedError: If the model gate reports not ready
            EmptyAudioError: If samples is empty
        """
        if not self.is_ready:
            print(f"[{self.name}] Model not loaded")
            raise ModelNotLoadedError()

        if len(samples) == 0:
            print(f"[{self.name}] No audio samples to transcribe")
            raise EmptyAudioError()

        model_path = self.gate.path()
        print(f"[{self.name}] Transcribing {len(samples)} samples")

        with self._lock:
            segments = self.backend.transcribe_segments(
                np.asarray(samples, dtype=np.float32), model_path
            )

        text = normalize_whitespace(" ".join(segments))
        print(f"[{self.name}] Got {len(segments)} segments: \"{text}\"")
        return text

    def submit(self, samples: np.ndarray, source_rate: float) -> "Future[str]":
        """
        Resample and transcribe on this engine's executor.

        The future always resolves to text; failures become "".
        """
        return self.executor.submit(self._resample_and_transcribe, samples, source_rate)

    def _resample_and_transcribe(self, samples: np.ndarray, source_rate: float) -> str:
        start = time.time()
        try:
            audio = resample(samples, source_rate)
            if len(audio) == 0:
                return ""
            text = self.transcribe(audio)
        except Exception as e:
            print(f"[{self.name}] Transcription failed: {e}")
            text = ""

        latency_ms = int((time.time() - start) * 1000)
        print(f"[{self.name}] Done in {latency_ms / 1000:.2f}s")
        return text

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False)
