from __future__ import annotations

import math

import numpy as np
import pytest

from loudscan.metrics.loudness import (
    LoudnessAccumulator,
    channel_weights,
    energy_to_lufs,
    k_weighting_coefficients,
    lufs_to_energy,
)
from tests.conftest import sine


def _amp(dbfs: float) -> float:
    return 10.0 ** (dbfs / 20.0)


def test_stereo_sine_reads_reference_level():
    # EBU Tech 3341 case 1: stereo 1 kHz sine at -23 dBFS reads -23 LUFS
    x = sine(seconds=5.0, amp=_amp(-23.0), channels=2)
    meter = LoudnessAccumulator(2, 48000)
    meter.add_samples(x.reshape(-1))
    assert meter.global_loudness() == pytest.approx(-23.0, abs=0.1)


def test_mono_sine_is_three_db_below_stereo():
    x = sine(seconds=5.0, amp=_amp(-23.0), channels=1)
    meter = LoudnessAccumulator(1, 48000)
    meter.add_samples(x)
    assert meter.global_loudness() == pytest.approx(-26.01, abs=0.1)


def test_block_count_and_energy():
    x = sine(seconds=5.0, amp=_amp(-23.0), channels=2)
    meter = LoudnessAccumulator(2, 48000)
    meter.add_samples(x)
    count, energy = meter.gated_block_count_and_energy()
    # 50 sub-blocks of 100 ms make 47 overlapping 400 ms blocks
    assert count == 47
    assert energy_to_lufs(energy / count) == pytest.approx(-23.0, abs=0.1)


def test_chunked_input_matches_single_call():
    x = sine(seconds=3.0, fs=44100, amp=0.2, channels=2)
    whole = LoudnessAccumulator(2, 44100)
    whole.add_samples(x)
    chunked = LoudnessAccumulator(2, 44100)
    for start in range(0, x.shape[0], 1234):
        chunked.add_samples(x[start:start + 1234].reshape(-1))
    assert chunked.global_loudness() == pytest.approx(whole.global_loudness(), abs=1e-9)
    assert chunked.gated_block_count_and_energy()[0] == whole.gated_block_count_and_energy()[0]
    assert chunked.gated_block_count_and_energy()[1] == pytest.approx(
        whole.gated_block_count_and_energy()[1], rel=1e-9
    )


def test_silence_has_no_gated_blocks():
    meter = LoudnessAccumulator(2, 48000)
    meter.add_samples(np.zeros((48000 * 2, 2), dtype=np.float32))
    assert meter.gated_block_count_and_energy() is None
    assert meter.global_loudness() == float("-inf")


def test_shorter_than_one_block_has_no_gated_blocks():
    meter = LoudnessAccumulator(2, 48000)
    meter.add_samples(sine(seconds=0.3, amp=0.5, channels=2))
    assert meter.gated_block_count_and_energy() is None


def test_relative_gate_ignores_quiet_passage():
    loud = sine(seconds=5.0, amp=_amp(-23.0), channels=2)
    quiet = sine(seconds=5.0, amp=_amp(-50.0), channels=2)
    meter = LoudnessAccumulator(2, 48000)
    meter.add_samples(np.concatenate([loud, quiet]))
    assert meter.global_loudness() == pytest.approx(-23.0, abs=0.3)
    # quiet blocks are above the absolute gate and still counted in the energy
    count, _ = meter.gated_block_count_and_energy()
    assert count == 97


def test_add_samples_rejects_wrong_layout():
    meter = LoudnessAccumulator(2, 48000)
    with pytest.raises(ValueError):
        meter.add_samples(np.zeros(3, dtype=np.float32))
    with pytest.raises(ValueError):
        meter.add_samples(np.zeros((10, 3), dtype=np.float32))


def test_constructor_rejects_missing_parameters():
    with pytest.raises(ValueError):
        LoudnessAccumulator(0, 48000)
    with pytest.raises(ValueError):
        LoudnessAccumulator(2, 0)


def test_channel_weights_surround():
    assert list(channel_weights(2)) == [1.0, 1.0]
    assert list(channel_weights(6)) == [1.0, 1.0, 1.0, 0.0, 1.41, 1.41]
    assert list(channel_weights(5)) == [1.0, 1.0, 1.0, 1.41, 1.41]


def test_k_weighting_48k_matches_published_coefficients():
    b, a = k_weighting_coefficients(48000.0)
    # BS.1770-4 stage 1 and 2 coefficients at 48 kHz, convolved
    b1 = [1.53512485958697, -2.69169618940638, 1.19839281085285]
    a1 = [1.0, -1.69065929318241, 0.73248077421585]
    b2 = [1.0, -2.0, 1.0]
    a2 = [1.0, -1.99004745483398, 0.99007225036621]
    assert np.allclose(b, np.convolve(b1, b2), atol=1e-5)
    assert np.allclose(a, np.convolve(a1, a2), atol=1e-5)


def test_lufs_energy_conversions_are_inverse():
    assert energy_to_lufs(lufs_to_energy(-14.0)) == pytest.approx(-14.0)
    assert math.isinf(energy_to_lufs(0.0))
