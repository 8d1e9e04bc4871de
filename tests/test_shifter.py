import math

import numpy as np
import pytest

from pitchshifter.shifter import PitchShifter, fft, pitch_shift, smb_atan2


def _sine(freq, sample_rate, count):
    t = np.arange(count) / sample_rate
    return 0.5 * np.sin(2 * np.pi * freq * t)


def _dominant_frequency(signal, sample_rate):
    spectrum = np.abs(np.fft.rfft(signal * np.hanning(len(signal))))
    return np.argmax(spectrum) * sample_rate / len(signal)


def test_fft_of_constant_is_impulse():
    result = fft([1, 1, 1, 1], -1)
    assert np.allclose(result, [4, 0, 0, 0])


def test_fft_of_impulse_is_flat():
    result = fft([1, 0, 0, 0, 0, 0, 0, 0], -1)
    assert np.allclose(result, np.ones(8))


def test_fft_round_trip_scales_by_length():
    rng = np.random.default_rng(1)
    data = rng.normal(size=16) + 1j * rng.normal(size=16)
    back = fft(fft(data, -1), 1)
    assert np.allclose(back / 16, data)


def test_fft_rejects_non_power_of_two():
    with pytest.raises(ValueError):
        fft([1, 2, 3], -1)


def test_fft_rejects_bad_sign():
    with pytest.raises(ValueError):
        fft([1, 2, 3, 4], 0)


def test_smb_atan2_zero_x():
    assert smb_atan2(0.0, 5.0) == 0.0


def test_smb_atan2_zero_y():
    assert smb_atan2(2.0, 0.0) == pytest.approx(math.pi / 2)
    assert smb_atan2(-2.0, 0.0) == pytest.approx(-math.pi / 2)


def test_smb_atan2_general_matches_atan2():
    assert smb_atan2(1.5, -0.7) == math.atan2(1.5, -0.7)


def test_output_length_matches_input():
    shifter = PitchShifter(256, 4, 8000)
    out = shifter.process(np.ones(1000), 1.5)
    assert len(out) == 1000


def test_silence_stays_silent():
    out = pitch_shift(2.0, np.zeros(4096), 512, 8, 44100)
    assert np.all(out == 0.0)


def test_first_step_is_zero():
    # frame 256 with oversampling 4 gives a step of 64 samples
    shifter = PitchShifter(256, 4, 8000)
    rng = np.random.default_rng(2)
    out = shifter.process(rng.uniform(-1, 1, 2000), 1.0)
    assert np.array_equal(out[:64], np.zeros(64))
    assert np.abs(out[64:]).max() > 0.01


def test_chunked_processing_matches_one_shot():
    rng = np.random.default_rng(3)
    signal = rng.uniform(-1, 1, 3000)
    whole = pitch_shift(1.5, signal, 256, 8, 22050)
    shifter = PitchShifter(256, 8, 22050)
    parts = [shifter.process(signal[i:i + 97], 1.5) for i in range(0, len(signal), 97)]
    assert np.allclose(np.concatenate(parts), whole)


def test_reset_restores_fresh_state():
    rng = np.random.default_rng(4)
    signal = rng.uniform(-1, 1, 1500)
    shifter = PitchShifter(128, 4, 8000)
    first = shifter.process(signal, 0.5)
    shifter.reset()
    second = shifter.process(signal, 0.5)
    assert np.allclose(first, second)


def test_output_scales_linearly_with_amplitude():
    rng = np.random.default_rng(5)
    signal = rng.uniform(-0.4, 0.4, 2500)
    base = pitch_shift(1.5, signal, 256, 8, 8000)
    doubled = pitch_shift(1.5, 2 * signal, 256, 8, 8000)
    assert np.allclose(doubled, 2 * base, atol=1e-9)


@pytest.mark.parametrize("shift", [1.0, 2.0, 0.5])
def test_sine_frequency_is_shifted(shift):
    sample_rate = 8192
    frame = 1024
    tone = 400.0
    signal = _sine(tone, sample_rate, 16384)
    out = pitch_shift(shift, signal, frame, 8, sample_rate)
    tail = out[-8192:]
    found = _dominant_frequency(tail, sample_rate)
    assert abs(found - tone * shift) <= sample_rate / frame


def test_invalid_frame_size():
    with pytest.raises(ValueError):
        PitchShifter(1000, 4, 44100)


def test_frame_size_too_large():
    with pytest.raises(ValueError):
        PitchShifter(16384, 4, 44100)


def test_invalid_osamp():
    with pytest.raises(ValueError):
        PitchShifter(256, 0, 44100)


def test_non_positive_shift_rejected():
    shifter = PitchShifter(256, 4, 44100)
    with pytest.raises(ValueError):
        shifter.process(np.zeros(10), 0.0)


def test_multidimensional_samples_rejected():
    shifter = PitchShifter(256, 4, 44100)
    with pytest.raises(ValueError):
        shifter.process(np.zeros((2, 10)), 1.0)