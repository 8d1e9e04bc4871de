"""Pitch shifting that keeps duration, using a short-time Fourier transform."""

from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np

MAX_FRAME_LENGTH = 8192


def _is_power_of_two(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0


def fft(buffer: Sequence[complex] | np.ndarray, sign: int) -> np.ndarray:
    """Unnormalised complex FFT of a power-of-two length buffer.

    ``sign == -1`` gives the forward transform, ``sign == 1`` the inverse
    transform without the 1/N scaling. A new array is returned.
    """
    data = np.asarray(buffer, dtype=np.complex128)
    if data.ndim != 1 or not _is_power_of_two(len(data)):
        raise ValueError("FFT buffer must be one-dimensional with a power-of-two length")
    if sign == -1:
        return np.fft.fft(data)
    if sign == 1:
        return np.fft.ifft(data) * len(data)
    raise ValueError("sign must be -1 (forward) or 1 (inverse)")


def smb_atan2(x: float, y: float) -> float:
    """atan2(x, y) that returns fixed values instead of failing on zero arguments."""
    if x == 0.0:
        return 0.0
    if y == 0.0:
        return (1.0 if x > 0.0 else -1.0) * math.pi / 2.0
    return math.atan2(x, y)


class PitchShifter:
    """Streaming phase-vocoder pitch shifter.

    State is kept between calls to :meth:`process`, so a signal may be fed in
    blocks of any size. The output is delayed by ``fft_frame_size - step``
    samples, where ``step = fft_frame_size // osamp``.
    """

    def __init__(self, fft_frame_size: int, osamp: int, sample_rate: float) -> None:
        if fft_frame_size < 2 or not _is_power_of_two(fft_frame_size):
            raise ValueError("fft_frame_size must be a power of two of at least 2")
        if fft_frame_size > MAX_FRAME_LENGTH:
            raise ValueError(f"fft_frame_size may not exceed {MAX_FRAME_LENGTH}")
        if osamp < 1 or osamp > fft_frame_size:
            raise ValueError("osamp must be between 1 and fft_frame_size")
        if sample_rate <= 0:
            raise ValueError("sample_rate must be positive")

        self.fft_frame_size = fft_frame_size
        self.osamp = osamp
        self.sample_rate = float(sample_rate)
        self.step_size = fft_frame_size // osamp
        self.latency = fft_frame_size - self.step_size

        half = fft_frame_size // 2
        self._half = half
        self._freq_per_bin = self.sample_rate / fft_frame_size
        self._expct = 2.0 * math.pi * self.step_size / fft_frame_size
        self._bins = np.arange(half + 1, dtype=np.float64)
        self._window = 0.5 - 0.5 * np.cos(
            2.0 * np.pi * np.arange(fft_frame_size, dtype=np.float64) / fft_frame_size
        )
        self.reset()

    def reset(self) -> None:
        """Clear all internal state, as if no samples had been processed."""
        n = self.fft_frame_size
        self._in_fifo = np.zeros(n)
        self._out_fifo = np.zeros(self.step_size)
        self._last_phase = np.zeros(self._half + 1)
        self._sum_phase = np.zeros(self._half + 1)
        self._accum = np.zeros(n)
        self._rover = self.latency

    def process(self, samples: Sequence[float] | np.ndarray, pitch_shift: float) -> np.ndarray:
        """Shift the pitch of ``samples`` by the factor ``pitch_shift``.

        Returns an array of the same length as the input.
        """
        if pitch_shift <= 0:
            raise ValueError("pitch_shift must be positive")
        data = np.asarray(samples, dtype=np.float64)
        if data.ndim != 1:
            raise ValueError("samples must be one-dimensional")

        out = np.empty_like(data)
        total = len(data)
        pos = 0
        while pos < total:
            take = min(total - pos, self.fft_frame_size - self._rover)
            rover = self._rover
            self._in_fifo[rover:rover + take] = data[pos:pos + take]
            start = rover - self.latency
            out[pos:pos + take] = self._out_fifo[start:start + take]
            self._rover += take
            pos += take
            if self._rover >= self.fft_frame_size:
                self._rover = self.latency
                self._process_frame(float(pitch_shift))
        return out

    def _process_frame(self, shift: float) -> None:
        n = self.fft_frame_size
        half = self._half
        bins = self._bins
        fpb = self._freq_per_bin

        # Analysis
        spectrum = fft(self._in_fifo * self._window, -1)[: half + 1]
        magn = 2.0 * np.abs(spectrum)
        phase = np.arctan2(spectrum.imag, spectrum.real)

        delta = phase - self._last_phase
        self._last_phase = phase
        delta -= bins * self._expct
        qpd = np.trunc(delta / np.pi).astype(np.int64)
        qpd = np.where(qpd >= 0, qpd + (qpd & 1), qpd - (qpd & 1))
        delta -= np.pi * qpd
        delta = self.osamp * delta / (2.0 * np.pi)
        ana_freq = bins * fpb + delta * fpb

        # Processing: move each bin to its shifted position
        target = (bins * shift).astype(np.int64)
        keep = target <= half
        kept_target = target[keep]
        syn_magn = np.zeros(half + 1)
        np.add.at(syn_magn, kept_target, magn[keep])
        syn_freq = np.zeros(half + 1)
        kept_freq = ana_freq[keep] * shift
        # Where several bins land on one target, the highest source bin wins.
        unique_target, last = np.unique(kept_target[::-1], return_index=True)
        syn_freq[unique_target] = kept_freq[::-1][last]

        # Synthesis
        dev = (syn_freq - bins * fpb) / fpb
        dev = 2.0 * np.pi * dev / self.osamp + bins * self._expct
        self._sum_phase += dev

        full = np.zeros(n, dtype=np.complex128)
        full[: half + 1] = syn_magn * np.exp(1j * self._sum_phase)
        time = fft(full, 1).real

        self._accum += 2.0 * self._window * time / (half * self.osamp)
        step = self.step_size
        self._out_fifo[:] = self._accum[:step]
        self._accum[:-step] = self._accum[step:].copy()
        self._accum[-step:] = 0.0
        self._in_fifo[: self.latency] = self._in_fifo[step:].copy()


def pitch_shift(
    shift: float,
    samples: Sequence[float] | np.ndarray,
    fft_frame_size: int,
    osamp: int,
    sample_rate: float,
) -> np.ndarray:
    """Pitch-shift a whole signal with a fresh :class:`PitchShifter`."""
    return PitchShifter(fft_frame_size, osamp, sample_rate).process(samples, shift)