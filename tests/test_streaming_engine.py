"""
Tests for the streaming engine.

A fake recognizer stands in for parakeet-mlx.
"""

import threading
import time

import numpy as np
import pytest


class FakeRecognizer:
    """Records audio and returns scripted partial/final text."""

    def __init__(self, partials=None, final="hello world", finish_delay=0.0, fail_after=None):
        self.partials = list(partials or ["hello"])
        self.final = final
        self.finish_delay = finish_delay
        self.fail_after = fail_after
        self.received = []
        self.closed = threading.Event()

    def add_audio(self, samples):
        if self.fail_after is not None and len(self.received) >= self.fail_after:
            raise RuntimeError("recognizer crashed")
        self.received.append(samples)
        index = min(len(self.received), len(self.partials)) - 1
        return self.partials[index]

    def finish(self):
        if self.finish_delay:
            time.sleep(self.finish_delay)
        return self.final

    def close(self):
        self.closed.set()


def make_chunk(frames=160, channels=1, rate=16000, value=0.1):
    from dualscribe.types import SampleChunk

    data = np.full((frames, channels), value, dtype=np.float32)
    data.setflags(write=False)
    return SampleChunk(samples=data, sample_rate=rate)


class TestStreamingEngine:
    """Tests for StreamingEngine session lifecycle."""

    def test_finalize_returns_final_text(self):
        from dualscribe.engines.streaming import StreamingEngine

        recognizer = FakeRecognizer(final="hello world")
        engine = StreamingEngine(lambda: recognizer)

        engine.start_session()
        assert engine.state == "listening"
        engine.append_chunk(make_chunk())
        engine.append_chunk(make_chunk())

        assert engine.finalize_and_wait(timeout=2.0) == "hello world"
        assert engine.state == "idle"
        assert len(recognizer.received) == 2
        assert recognizer.closed.wait(1.0)

    def test_chunks_delivered_in_order(self):
        from dualscribe.engines.streaming import StreamingEngine

        recognizer = FakeRecognizer()
        engine = StreamingEngine(lambda: recognizer)
        engine.start_session()

        for i in range(10):
            engine.append_chunk(make_chunk(value=i / 100))
        engine.finalize_and_wait(timeout=2.0)

        firsts = [round(float(samples[0]), 2) for samples in recognizer.received]
        assert firsts == [i / 100 for i in range(10)]

    def test_stereo_chunk_is_downmixed_and_resampled(self):
        from dualscribe.engines.streaming import StreamingEngine

        recognizer = FakeRecognizer()
        engine = StreamingEngine(lambda: recognizer)
        engine.start_session()

        engine.append_chunk(make_chunk(frames=480, channels=2, rate=48000))
        engine.finalize_and_wait(timeout=2.0)

        # The filter tail is delivered on finish
        assert all(audio.ndim == 1 for audio in recognizer.received)
        assert all(audio.dtype == np.float32 for audio in recognizer.received)
        assert sum(len(audio) for audio in recognizer.received) == 160

    def test_chunked_audio_matches_whole_buffer_resampling(self):
        """Chunk boundaries leave no trace in what the recognizer hears."""
        from scipy.signal import resample_poly
        from dualscribe.engines.streaming import StreamingEngine
        from dualscribe.types import SampleChunk

        t = np.arange(2 * 48000) / 48000
        sine = (0.5 * np.sin(2 * np.pi * 440 * t)).astype(np.float32)

        recognizer = FakeRecognizer()
        engine = StreamingEngine(lambda: recognizer)
        engine.start_session()
        for i in range(0, len(sine), 1024):
            block = sine[i:i + 1024].reshape(-1, 1)
            engine.append_chunk(SampleChunk(samples=block, sample_rate=48000))
        engine.finalize_and_wait(timeout=5.0)

        heard = np.concatenate(recognizer.received)
        expected = resample_poly(sine, 1, 3)
        assert len(heard) == 32000
        np.testing.assert_allclose(heard, expected, atol=1e-4)

    def test_recognizer_unavailable_returns_empty(self):
        """A factory that fails makes the engine always return empty."""
        from dualscribe.engines.streaming import StreamingEngine

        def factory():
            raise RuntimeError("no recognizer")

        engine = StreamingEngine(factory)
        engine.start_session()
        engine.append_chunk(make_chunk())

        assert engine.finalize_and_wait(timeout=0.5) == ""
        assert engine.state == "idle"

    def test_recognizer_error_returns_partial(self):
        from dualscribe.engines.streaming import StreamingEngine

        recognizer = FakeRecognizer(partials=["hello wor"], fail_after=1)
        engine = StreamingEngine(lambda: recognizer)
        engine.start_session()
        engine.append_chunk(make_chunk())
        engine.append_chunk(make_chunk())

        start = time.time()
        assert engine.finalize_and_wait(timeout=2.0) == "hello wor"
        assert time.time() - start < 1.0

    def test_timeout_returns_partial(self):
        from dualscribe.engines.streaming import StreamingEngine

        recognizer = FakeRecognizer(partials=["partial text"], final="final text", finish_delay=1.0)
        engine = StreamingEngine(lambda: recognizer)
        engine.start_session()
        engine.append_chunk(make_chunk())

        start = time.time()
        text = engine.finalize_and_wait(timeout=0.2)
        elapsed = time.time() - start

        assert text == "partial text"
        assert elapsed < 0.9

    def test_default_timeout_used(self):
        from dualscribe.engines.streaming import StreamingEngine

        recognizer = FakeRecognizer(partials=["partial"], finish_delay=1.0)
        engine = StreamingEngine(lambda: recognizer, finalize_timeout=0.1)
        engine.start_session()
        engine.append_chunk(make_chunk())

        start = time.time()
        assert engine.finalize_and_wait() == "partial"
        assert time.time() - start < 0.9

    def test_finalize_without_session(self):
        from dualscribe.engines.streaming import StreamingEngine

        engine = StreamingEngine(FakeRecognizer)
        assert engine.finalize_and_wait(timeout=0.1) == ""

    def test_second_finalize_does_not_hang(self):
        from dualscribe.engines.streaming import StreamingEngine

        engine = StreamingEngine(FakeRecognizer)
        engine.start_session()
        engine.append_chunk(make_chunk())
        engine.finalize_and_wait(timeout=1.0)

        start = time.time()
        assert engine.finalize_and_wait(timeout=1.0) == ""
        assert time.time() - start < 0.5

    def test_append_after_finalize_ignored(self):
        from dualscribe.engines.streaming import StreamingEngine

        recognizer = FakeRecognizer()
        engine = StreamingEngine(lambda: recognizer)
        engine.start_session()
        engine.finalize_and_wait(timeout=1.0)

        engine.append_chunk(make_chunk())
        assert recognizer.received == []

    def test_new_session_starts_clean(self):
        from dualscribe.engines.streaming import StreamingEngine

        recognizers = [FakeRecognizer(final="first"), FakeRecognizer(final="second")]
        engine = StreamingEngine(lambda: recognizers.pop(0))

        engine.start_session()
        engine.append_chunk(make_chunk())
        assert engine.finalize_and_wait(timeout=1.0) == "first"

        engine.start_session()
        engine.append_chunk(make_chunk())
        assert engine.finalize_and_wait(timeout=1.0) == "second"

    def test_late_finalize_leaves_next_session_alone(self):
        """A finalize still waiting on an old stream must not close a newer one."""
        from concurrent.futures import ThreadPoolExecutor
        from dualscribe.engines.streaming import StreamingEngine

        slow = FakeRecognizer(partials=["first partial"], final="first", finish_delay=1.0)
        fresh = FakeRecognizer(partials=["second"], final="second")
        recognizers = [slow, fresh]
        engine = StreamingEngine(
            lambda: recognizers.pop(0),
            executor=ThreadPoolExecutor(max_workers=2),
            finalize_timeout=0.4,
        )

        engine.start_session()
        engine.append_chunk(make_chunk())
        first = engine.submit_finalize()
        time.sleep(0.1)

        engine.start_session()
        engine.append_chunk(make_chunk())
        assert first.result(timeout=2.0) == "first partial"

        assert engine.state == "listening"
        engine.append_chunk(make_chunk())
        assert engine.finalize_and_wait(timeout=2.0) == "second"
        assert len(fresh.received) == 2

    def test_cleanup_closes_open_stream(self):
        from dualscribe.engines.streaming import StreamingEngine

        recognizer = FakeRecognizer()
        engine = StreamingEngine(lambda: recognizer)
        engine.start_session()
        engine.cleanup()

        assert recognizer.closed.wait(1.0)
        assert engine.state == "idle"

    def test_submit_finalize_runs_on_executor(self):
        from concurrent.futures import ThreadPoolExecutor
        from dualscribe.engines.streaming import StreamingEngine

        executor = ThreadPoolExecutor(max_workers=1)
        engine = StreamingEngine(lambda: FakeRecognizer(final="from executor"), executor=executor)
        engine.start_session()
        engine.append_chunk(make_chunk())

        future = engine.submit_finalize()
        assert future.result(timeout=2.0) == "from executor"
        executor.shutdown()

    def test_concurrent_append_during_finalize(self):
        """Appends racing with finalize never raise."""
        from dualscribe.engines.streaming import StreamingEngine

        engine = StreamingEngine(FakeRecognizer)
        engine.start_session()
        errors = []

        def producer():
            try:
                for _ in range(200):
                    engine.append_chunk(make_chunk())
            except Exception as e:
                errors.append(e)

        thread = threading.Thread(target=producer)
        thread.start()
        text = engine.finalize_and_wait(timeout=1.0)
        thread.join()

        assert errors == []
        assert isinstance(text, str)


class TestParakeetStreamFactory:
    """Tests for the parakeet factory without loading a model."""

    def test_unloaded_factory_raises(self):
        from dualscribe.engines.streaming import ParakeetStreamFactory
        from dualscribe.errors import EngineError

        factory = ParakeetStreamFactory()
        with pytest.raises(EngineError):
            factory()

    def test_engine_with_unloaded_factory_returns_empty(self):
        from dualscribe.engines.streaming import ParakeetStreamFactory, StreamingEngine

        engine = StreamingEngine(ParakeetStreamFactory())
        engine.start_session()
        assert engine.finalize_and_wait(timeout=0.1) == ""
