"""
Streaming engine: incremental recognition while the user speaks.

Chunks arrive from the audio callback and are queued; a feeder thread
resamples them and pushes them into the recognizer. On finalize the engine
waits a bounded time for the final text and never raises.
"""

import gc
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from queue import Queue
from typing import Callable, Literal, Optional

import numpy as np

from . import STREAMING, StreamRecognizer
from ..errors import EngineError
from ..resample import StreamResampler
from ..types import SampleChunk


DEFAULT_FINALIZE_TIMEOUT = 1.5
DEFAULT_STREAMING_MODEL = "mlx-community/parakeet-tdt-0.6b-v3"
DEFAULT_CONTEXT_SIZE = 256

StreamingState = Literal["idle", "listening", "finalizing"]

# Queue sentinels
_FINISH = object()
_CANCEL = object()


class _StreamSession:
    """Per-session recognition state, owned by one feeder thread."""

    def __init__(self, recognizer: StreamRecognizer):
        self.recognizer = recognizer
        self.queue: Queue = Queue()
        self.done = threading.Event()
        self.text = ""
        self.failed = False


class StreamingEngine:
    """
    Fast recognizer fed while recording.

    A recognizer that can't be created, or fails mid-stream, degrades to
    returning whatever text it had (possibly empty). Nothing surfaces to
    the coordinator as an error.

    Usage:
        engine = StreamingEngine(ParakeetStreamFactory())
        engine.start_session()
        audio_source.listener = engine.append_chunk
        ...
        text = engine.submit_finalize().result()
    """

    name = STREAMING

    def __init__(
        self,
        recognizer_factory: Callable[[], StreamRecognizer],
        executor: Optional[Executor] = None,
        finalize_timeout: float = DEFAULT_FINALIZE_TIMEOUT,
    ):
        self.recognizer_factory = recognizer_factory
        self.executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="streaming"
        )
        self.finalize_timeout = finalize_timeout
        self.state: StreamingState = "idle"

        # Ingestion handle: written in start_session/finalize/cleanup,
        # appended to from the capture thread
        self._stream: Optional[_StreamSession] = None
        # Bumped per start_session so a late finalize leaves newer sessions alone
        self._generation = 0
        self._lock = threading.Lock()

    def start_session(self) -> None:
        """Reset state and open a new recognition stream."""
        self.cleanup()

        try:
            recognizer = self.recognizer_factory()
        except Exception as e:
            print(f"[{self.name}] Recognizer unavailable: {e}")
            recognizer = None

        with self._lock:
            self._generation += 1
            self.state = "listening"
            if recognizer is None:
                return
            stream = _StreamSession(recognizer)
            self._stream = stream

        threading.Thread(
            target=self._feed,
            args=(stream,),
            name="streaming-feeder",
            daemon=True,
        ).start()

    def append_chunk(self, chunk: SampleChunk) -> None:
        """
        Queue a chunk for recognition. Called from the audio thread.

        No-op when no session is listening.
        """
        with self._lock:
            stream = self._stream
        if stream is None or stream.done.is_set():
            return
        stream.queue.put(chunk)

    def finalize_and_wait(self, timeout: Optional[float] = None) -> str:
        """
        Signal end of input and wait for the final text.

        Returns when the recognizer delivers its final result, fails, or
        the timeout elapses, whichever comes first. Never raises. Only the
        stream open at call time is touched; a session started while this
        call is still waiting keeps its own stream.
        """
        if timeout is None:
            timeout = self.finalize_timeout

        with self._lock:
            stream = self._stream
            self._stream = None
            self.state = "finalizing" if stream is not None else "idle"
            generation = self._generation

        if stream is None:
            return ""

        start = time.time()
        stream.queue.put(_FINISH)
        if not stream.done.wait(timeout):
            print(f"[{self.name}] Final result timed out after {timeout:.1f}s, using partial")

        text = stream.text.strip()
        # Ignored by the feeder if it already stopped
        stream.queue.put(_CANCEL)

        with self._lock:
            if self._generation == generation:
                self.state = "idle"

        latency_ms = int((time.time() - start) * 1000)
        print(f"[{self.name}] Finalized in {latency_ms}ms: \"{text}\"")
        return text

    def submit_finalize(self) -> "Future[str]":
        """Run finalize_and_wait on this engine's executor."""
        return self.executor.submit(self.finalize_and_wait)

    def cleanup(self) -> None:
        """Tear down any open stream so a later start_session begins cleanly."""
        with self._lock:
            stream = self._stream
            self._stream = None
            self.state = "idle"

        if stream is not None:
            stream.queue.put(_CANCEL)

    def shutdown(self) -> None:
        self.cleanup()
        self.executor.shutdown(wait=False)

    def _feed(self, stream: _StreamSession) -> None:
        """Feeder thread: drain the queue into the recognizer."""
        resampler: Optional[StreamResampler] = None
        try:
            while True:
                item = stream.queue.get()
                if item is _CANCEL:
                    break
                if item is _FINISH:
                    if resampler is not None:
                        self._recognize(stream, resampler.flush())
                    stream.text = stream.recognizer.finish()
                    break

                # One filter per session keeps chunk boundaries seamless
                if resampler is None or resampler.source_rate != item.sample_rate:
                    if resampler is not None:
                        self._recognize(stream, resampler.flush())
                    resampler = StreamResampler(item.sample_rate)
                self._recognize(stream, resampler.feed(item.mono()))

        except Exception as e:
            # Deliver whatever partial text we hold
            stream.failed = True
            print(f"[{self.name}] Recognizer error: {e}")

        finally:
            stream.done.set()
            try:
                stream.recognizer.close()
            except Exception as e:
                print(f"[{self.name}] Error closing recognizer: {e}")

    @staticmethod
    def _recognize(stream: _StreamSession, audio: np.ndarray) -> None:
        if len(audio) > 0:
            stream.text = stream.recognizer.add_audio(np.asarray(audio, dtype=np.float32))


class _ParakeetStream:
    """One parakeet-mlx streaming transcription context."""

    def __init__(self, model, context_size: int, lock: threading.Lock):
        import mlx.core as mx

        self._mx = mx
        self._lock = lock
        self._context = model.transcribe_stream(context_size=(context_size, context_size))
        self._transcriber = self._context.__enter__()

    def add_audio(self, samples: np.ndarray) -> str:
        with self._lock:
            self._transcriber.add_audio(self._mx.array(samples))
            return self._transcriber.result.text

    def finish(self) -> str:
        with self._lock:
            return self._transcriber.result.text

    def close(self) -> None:
        with self._lock:
            self._context.__exit__(None, None, None)
            if hasattr(self._mx, "clear_cache"):
                self._mx.clear_cache()


class ParakeetStreamFactory:
    """
    Builds streaming recognizers from a locally loaded Parakeet MLX model.

    The model is loaded once on initialize() and kept in memory.
    MLX models aren't thread-safe, so all streams share one lock.
    """

    name = "parakeet"

    def __init__(self, model_id: str = DEFAULT_STREAMING_MODEL, context_size: int = DEFAULT_CONTEXT_SIZE):
        self.model_id = model_id
        self.context_size = context_size
        self.model = None
        self._lock = threading.Lock()

    def initialize(self) -> None:
        """Load Parakeet model weights."""
        try:
            from parakeet_mlx import from_pretrained

            print(f"[{self.name}] Loading model {self.model_id}...")
            self.model = from_pretrained(self.model_id)
            print(f"[{self.name}] Initialized")

        except Exception as e:
            print(f"[{self.name}] Failed to initialize: {e}")
            self.model = None

    def __call__(self) -> StreamRecognizer:
        if self.model is None:
            raise EngineError("Streaming model is not loaded")
        return _ParakeetStream(self.model, self.context_size, self._lock)

    def shutdown(self) -> None:
        """Unload model weights."""
        with self._lock:
            self.model = None

        gc.collect()
        print(f"[{self.name}] Shutdown")
