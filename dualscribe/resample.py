"""
Resampling to the 16kHz mono float32 format the recognizers expect.

The primary path is scipy's polyphase (windowed FIR) resampler. If it fails
or produces nothing, a linear-interpolation fallback is used, which only
returns empty output for empty input.
"""

from fractions import Fraction
from typing import Optional

import numpy as np


TARGET_SAMPLE_RATE = 16000

# Upper bound on the up/down factors handed to resample_poly
MAX_RATIO_DENOMINATOR = 1000


def resample(samples: np.ndarray, source_rate: float) -> np.ndarray:
    """
    Resample mono audio from source_rate to 16kHz.

    Returns the input unchanged when it is already 16kHz.
    """
    if source_rate == TARGET_SAMPLE_RATE:
        return samples

    converted = resample_with_converter(samples, source_rate)
    if converted is not None:
        return converted

    return resample_linear(samples, source_rate)


def resample_with_converter(samples: np.ndarray, source_rate: float) -> Optional[np.ndarray]:
    """
    High-quality resampling via scipy.signal.resample_poly.

    Output is clipped to the input's amplitude range so the filter's
    ringing never pushes samples past what was captured.

    Returns:
        Resampled audio, or None on failure or empty output
    """
    if source_rate == TARGET_SAMPLE_RATE:
        return samples

    if len(samples) == 0:
        print("[Resample] No input samples to resample")
        return None

    try:
        from scipy.signal import resample_poly

        audio = np.asarray(samples, dtype=np.float32)
        ratio = Fraction(TARGET_SAMPLE_RATE) / Fraction(source_rate)
        ratio = ratio.limit_denominator(MAX_RATIO_DENOMINATOR)
        if ratio <= 0:
            print(f"[Resample] Invalid source rate: {source_rate}")
            return None

        output = resample_poly(audio, ratio.numerator, ratio.denominator)
        if len(output) == 0:
            print("[Resample] Converter produced no frames")
            return None

        output = np.clip(output, audio.min(), audio.max())
        return output.astype(np.float32)

    except (ValueError, MemoryError, ZeroDivisionError, OverflowError) as e:
        print(f"[Resample] Conversion failed: {e}")
        return None


def resample_linear(samples: np.ndarray, source_rate: float) -> np.ndarray:
    """
    Linear-interpolation resampling.

    Output length is floor(len(samples) * 16000 / source_rate).
    """
    if source_rate == TARGET_SAMPLE_RATE:
        return samples

    if len(samples) == 0:
        print("[Resample] Linear interpolation called with empty samples")
        return np.array([], dtype=np.float32)

    if not np.isfinite(source_rate) or source_rate <= 0:
        print(f"[Resample] Invalid source rate for linear interpolation: {source_rate}")
        return np.array([], dtype=np.float32)

    audio = np.asarray(samples, dtype=np.float32)
    output_length = int(len(audio) * TARGET_SAMPLE_RATE / source_rate)
    if output_length <= 0:
        print("[Resample] Linear interpolation would produce empty output")
        return np.array([], dtype=np.float32)

    # Positions in the source; np.interp holds the last sample past the end
    step = source_rate / TARGET_SAMPLE_RATE
    positions = np.arange(output_length, dtype=np.float64) * step
    output = np.interp(positions, np.arange(len(audio), dtype=np.float64), audio)
    return output.astype(np.float32)


class StreamResampler:
    """
    Incremental 16kHz resampling for audio that arrives in chunks.

    Uses the same Kaiser-windowed FIR as resample_poly and carries the
    input tail the filter still needs between calls, so the output of
    every feed() followed by flush() equals resampling the whole signal
    in one go. If scipy fails, later chunks go through resample_linear.

    Usage:
        resampler = StreamResampler(48000)
        for chunk in chunks:
            recognizer.add_audio(resampler.feed(chunk))
        recognizer.add_audio(resampler.flush())
    """

    def __init__(self, source_rate: float):
        self.source_rate = source_rate
        self.passthrough = source_rate == TARGET_SAMPLE_RATE
        self.linear = False

        self._pending = np.zeros(0, dtype=np.float32)
        self._pending_start = 0  # input index of _pending[0]
        self._received = 0
        self._emitted = 0

        if self.passthrough:
            return
        try:
            self._design_filter()
        except (ValueError, MemoryError, ZeroDivisionError, OverflowError) as e:
            print(f"[Resample] Stream filter unavailable ({e}), using linear interpolation")
            self.linear = True

    def _design_filter(self) -> None:
        from scipy.signal import firwin

        ratio = Fraction(TARGET_SAMPLE_RATE) / Fraction(self.source_rate)
        ratio = ratio.limit_denominator(MAX_RATIO_DENOMINATOR)
        if ratio <= 0:
            raise ValueError(f"invalid source rate {self.source_rate}")

        self.up, self.down = ratio.numerator, ratio.denominator
        max_rate = max(self.up, self.down)
        # resample_poly's default design
        self._half_len = 10 * max_rate
        self._taps = firwin(2 * self._half_len + 1, 1.0 / max_rate, window=("kaiser", 5.0)) * self.up

    def feed(self, samples: np.ndarray) -> np.ndarray:
        """Resample one chunk. Output lags input by the filter's half length."""
        samples = np.asarray(samples, dtype=np.float32)
        if self.passthrough or len(samples) == 0:
            return samples
        if self.linear:
            return resample_linear(samples, self.source_rate)

        self._pending = np.concatenate([self._pending, samples])
        self._received += len(samples)
        last = (self._received * self.up - 1 - self._half_len) // self.down
        try:
            return self._emit(self._pending, last)
        except (ValueError, MemoryError) as e:
            print(f"[Resample] Stream conversion failed ({e}), using linear interpolation")
            self.linear = True
            return resample_linear(samples, self.source_rate)

    def flush(self) -> np.ndarray:
        """Emit the remaining output, treating input past the end as silence."""
        if self.passthrough or self.linear or self._received == 0:
            return np.zeros(0, dtype=np.float32)

        total = -(-self._received * self.up // self.down)
        silence = np.zeros(len(self._taps) // self.up + 2, dtype=np.float32)
        try:
            return self._emit(np.concatenate([self._pending, silence]), total - 1)
        except (ValueError, MemoryError) as e:
            print(f"[Resample] Stream flush failed: {e}")
            return np.zeros(0, dtype=np.float32)

    def _emit(self, buffer: np.ndarray, last: int) -> np.ndarray:
        """Compute outputs _emitted..last from buffer (which starts at _pending_start)."""
        if last < self._emitted:
            return np.zeros(0, dtype=np.float32)

        from scipy.signal import upfirdn

        up, down, taps = self.up, self.down, self._taps

        # Output k sits at upsampled position k*down + half_len and needs
        # inputs n with 0 <= position - n*up < len(taps)
        position = self._emitted * down + self._half_len
        start = max(0, -(-(position - len(taps) + 1) // up))
        window = buffer[start - self._pending_start:]

        # Zeros ahead of the taps line output `first` up with `position`
        offset = position - start * up
        pad = (-offset) % down
        first = (offset + pad) // down
        out = upfirdn(np.concatenate([np.zeros(pad), taps]), window, up, down)
        out = out[first:first + last - self._emitted + 1].astype(np.float32)

        self._emitted = last + 1
        self._trim()
        return out

    def _trim(self) -> None:
        """Drop input no future output depends on."""
        position = self._emitted * self.down + self._half_len
        keep_from = max(0, -(-(position - len(self._taps) + 1) // self.up))
        keep_from = min(keep_from, self._received)
        drop = keep_from - self._pending_start
        if drop > 0:
            self._pending = self._pending[drop:]
            self._pending_start = keep_from
