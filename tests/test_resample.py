"""
Tests for dualscribe resampling.

Covers the 16kHz identity path, the polyphase converter and the linear
interpolation fallback.
"""

import numpy as np
import pytest
from unittest.mock import patch


def make_signal(n: int, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.uniform(-0.5, 0.5, n).astype(np.float32)


class TestResampleIdentity:
    """Audio already at 16kHz is returned unchanged."""

    def test_identity_returns_same_array(self):
        from dualscribe.resample import resample

        audio = make_signal(1000)
        assert resample(audio, 16000) is audio

    def test_identity_for_each_path(self):
        from dualscribe.resample import resample_linear, resample_with_converter

        audio = make_signal(10)
        assert resample_linear(audio, 16000) is audio
        assert resample_with_converter(audio, 16000) is audio


class TestLinearFallback:
    """Tests for linear interpolation."""

    @pytest.mark.parametrize("length", [1000, 44100, 12345])
    def test_output_length_44100(self, length):
        """Length is floor(n * 16000 / 44100)."""
        from dualscribe.resample import resample_linear

        output = resample_linear(make_signal(length), 44100)
        expected = int(length * 16000 / 44100)
        assert abs(len(output) - expected) <= 1
        assert output.dtype == np.float32

    def test_upsampling_from_8k(self):
        from dualscribe.resample import resample_linear

        output = resample_linear(make_signal(800), 8000)
        assert len(output) == 1600

    def test_empty_input_returns_empty(self):
        from dualscribe.resample import resample_linear

        output = resample_linear(np.array([], dtype=np.float32), 44100)
        assert len(output) == 0

    def test_interpolates_between_samples(self):
        """Upsampling a ramp by 2x puts midpoints between samples."""
        from dualscribe.resample import resample_linear

        ramp = np.array([0.0, 0.2, 0.4, 0.6], dtype=np.float32)
        output = resample_linear(ramp, 8000)
        np.testing.assert_allclose(output[:7], [0.0, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6], atol=1e-6)

    def test_amplitude_bounded_by_input(self):
        from dualscribe.resample import resample_linear

        audio = make_signal(4410, seed=3)
        output = resample_linear(audio, 44100)
        assert output.max() <= audio.max()
        assert output.min() >= audio.min()


class TestConverter:
    """Tests for the scipy polyphase path."""

    def test_non_empty_output_for_non_empty_input(self):
        from dualscribe.resample import resample_with_converter

        output = resample_with_converter(make_signal(480), 48000)
        assert output is not None
        assert len(output) == 160

    def test_very_short_input_still_produces_output(self):
        from dualscribe.resample import resample_with_converter

        output = resample_with_converter(make_signal(2), 44100)
        assert output is not None
        assert len(output) > 0

    def test_empty_input_returns_none(self):
        from dualscribe.resample import resample_with_converter

        assert resample_with_converter(np.array([], dtype=np.float32), 44100) is None

    def test_invalid_rate_returns_none(self):
        from dualscribe.resample import resample_with_converter

        assert resample_with_converter(make_signal(100), 0) is None

    def test_no_clipping_introduced(self):
        """Filter ringing on a square wave must not exceed the input range."""
        from dualscribe.resample import resample_with_converter

        square = np.where(np.arange(4410) % 100 < 50, 0.8, -0.8).astype(np.float32)
        output = resample_with_converter(square, 44100)
        assert output.max() <= square.max()
        assert output.min() >= square.min()


class TestResample:
    """Tests for the combined primary/fallback entry point."""

    def test_uses_converter_when_it_succeeds(self):
        from dualscribe.resample import resample

        output = resample(make_signal(4800), 48000)
        assert len(output) == 1600

    def test_falls_back_when_converter_fails(self):
        from dualscribe.resample import resample

        audio = make_signal(44100)
        with patch("dualscribe.resample.resample_with_converter", return_value=None) as converter:
            output = resample(audio, 44100)

        converter.assert_called_once()
        assert len(output) == 16000

    def test_falls_back_on_scipy_error(self):
        from dualscribe.resample import resample

        audio = make_signal(4410)
        with patch("scipy.signal.resample_poly", side_effect=MemoryError("no memory")):
            output = resample(audio, 44100)

        assert len(output) == int(4410 * 16000 / 44100)

    def test_empty_input_non_16k(self):
        from dualscribe.resample import resample

        assert len(resample(np.array([], dtype=np.float32), 48000)) == 0


class TestInvalidRates:
    """Bad source rates give empty output instead of raising."""

    @pytest.mark.parametrize("rate", [0, -44100, float("inf")])
    def test_linear_rejects_rate(self, rate):
        from dualscribe.resample import resample_linear

        assert len(resample_linear(make_signal(100), rate)) == 0

    @pytest.mark.parametrize("rate", [0, float("inf")])
    def test_converter_rejects_rate(self, rate):
        from dualscribe.resample import resample_with_converter

        assert resample_with_converter(make_signal(100), rate) is None

    def test_resample_never_raises_on_zero_rate(self):
        from dualscribe.resample import resample

        assert len(resample(make_signal(100), 0)) == 0


class TestStreamResampler:
    """Tests for chunk-by-chunk resampling."""

    def feed_in_chunks(self, resampler, audio, size):
        parts = [resampler.feed(audio[i:i + size]) for i in range(0, len(audio), size)]
        parts.append(resampler.flush())
        return np.concatenate(parts)

    @pytest.mark.parametrize("rate,up,down", [(48000, 1, 3), (44100, 160, 441), (8000, 2, 1)])
    def test_matches_whole_buffer(self, rate, up, down):
        from scipy.signal import resample_poly
        from dualscribe.resample import StreamResampler

        t = np.arange(rate) / rate
        sine = (0.5 * np.sin(2 * np.pi * 440 * t)).astype(np.float32)

        chunked = self.feed_in_chunks(StreamResampler(rate), sine, 1024)
        whole = resample_poly(sine, up, down)

        assert len(chunked) == len(whole) == 16000
        np.testing.assert_allclose(chunked, whole, atol=1e-4)

    def test_uneven_chunk_sizes(self):
        from scipy.signal import resample_poly
        from dualscribe.resample import StreamResampler

        audio = make_signal(4800)
        resampler = StreamResampler(48000)
        parts = [resampler.feed(audio[a:b]) for a, b in [(0, 7), (7, 1000), (1000, 1001), (1001, 4800)]]
        parts.append(resampler.flush())

        np.testing.assert_allclose(np.concatenate(parts), resample_poly(audio, 1, 3), atol=1e-4)

    def test_passthrough_at_16k(self):
        from dualscribe.resample import StreamResampler

        resampler = StreamResampler(16000)
        audio = make_signal(160)
        np.testing.assert_array_equal(resampler.feed(audio), audio)
        assert len(resampler.flush()) == 0

    def test_flush_without_input(self):
        from dualscribe.resample import StreamResampler

        assert len(StreamResampler(48000).flush()) == 0

    def test_invalid_rate_uses_linear(self):
        from dualscribe.resample import StreamResampler

        resampler = StreamResampler(0)
        assert resampler.linear is True
        assert len(resampler.feed(make_signal(100))) == 0
