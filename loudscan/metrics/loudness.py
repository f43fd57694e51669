"""Loudness measurement module.

Incremental BS.1770-4 / EBU R128 integrated loudness. Samples are K-weighted
as they arrive and reduced to 100 ms sub-block energies; 400 ms gating blocks
(75% overlap) are formed from four consecutive sub-blocks.
"""
from __future__ import annotations
import math
import numpy as np
from scipy.signal import lfilter

ABSOLUTE_GATE_LUFS = -70.0
RELATIVE_GATE_LU = -10.0
LOUDNESS_OFFSET = -0.691
SUBBLOCKS_PER_BLOCK = 4

# 5.1 channel order: L, R, C, LFE, Ls, Rs
_CHANNEL_WEIGHTS = (1.0, 1.0, 1.0, 0.0, 1.41, 1.41)


def k_weighting_coefficients(fs: float) -> tuple[np.ndarray, np.ndarray]:
    """
    K-weighting filter (high shelf followed by high pass) for a sample rate.

    Returns the combined fourth-order (b, a) coefficients.
    """
    f0 = 1681.974450955533
    gain_db = 3.999843853973347
    q = 0.7071752369554196
    k = math.tan(math.pi * f0 / fs)
    vh = 10.0 ** (gain_db / 20.0)
    vb = vh ** 0.4996667741545416
    a0 = 1.0 + k / q + k * k
    shelf_b = np.array([
        (vh + vb * k / q + k * k) / a0,
        2.0 * (k * k - vh) / a0,
        (vh - vb * k / q + k * k) / a0,
    ])
    shelf_a = np.array([1.0, 2.0 * (k * k - 1.0) / a0, (1.0 - k / q + k * k) / a0])

    f0 = 38.13547087602444
    q = 0.5003270373238773
    k = math.tan(math.pi * f0 / fs)
    a0 = 1.0 + k / q + k * k
    hp_b = np.array([1.0, -2.0, 1.0])
    hp_a = np.array([1.0, 2.0 * (k * k - 1.0) / a0, (1.0 - k / q + k * k) / a0])

    return np.convolve(shelf_b, hp_b), np.convolve(shelf_a, hp_a)


def channel_weights(channels: int) -> np.ndarray:
    """Per-channel BS.1770 weights, using the libebur128 default layouts."""
    if channels < 4:
        return np.ones(channels, dtype=np.float64)
    if channels == 4:
        return np.array([1.0, 1.0, 1.41, 1.41])
    if channels == 5:
        return np.array([1.0, 1.0, 1.0, 1.41, 1.41])
    # channels beyond 5.1 have no defined position and are not measured
    w = np.zeros(channels, dtype=np.float64)
    w[:len(_CHANNEL_WEIGHTS)] = _CHANNEL_WEIGHTS
    return w


def energy_to_lufs(energy: float) -> float:
    if energy <= 0.0:
        return float("-inf")
    return LOUDNESS_OFFSET + 10.0 * math.log10(energy)


def lufs_to_energy(lufs: float) -> float:
    return 10.0 ** ((lufs - LOUDNESS_OFFSET) / 10.0)


class LoudnessAccumulator:
    """
    Stateful integrated-loudness meter.

    Feed interleaved float samples with ``add_samples``; query the result
    with ``global_loudness`` and ``gated_block_count_and_energy`` at any
    point. Trailing samples that do not fill a 100 ms sub-block are held
    until more samples arrive and are not counted.
    """

    def __init__(self, channels: int, sample_rate: int):
        if channels <= 0:
            raise ValueError("channels must be positive.")
        if sample_rate <= 0:
            raise ValueError("sample_rate must be positive.")
        self.channels = int(channels)
        self.sample_rate = int(sample_rate)
        self._b, self._a = k_weighting_coefficients(float(sample_rate))
        self._zi = np.zeros((len(self._a) - 1, self.channels), dtype=np.float64)
        self._weights = channel_weights(self.channels)
        self._subblock_frames = int(round(self.sample_rate * 0.1))
        self._pending = np.zeros((0, self.channels), dtype=np.float64)
        self._subblocks: list[float] = []
        self._blocks: list[float] = []
        self.frames_added = 0

    def add_samples(self, samples: np.ndarray) -> None:
        """Consume an interleaved buffer (flat or shaped frames x channels)."""
        x = np.asarray(samples, dtype=np.float64)
        if x.ndim == 1:
            if x.size % self.channels != 0:
                raise ValueError(
                    f"buffer of {x.size} samples is not a multiple of {self.channels} channels."
                )
            x = x.reshape(-1, self.channels)
        elif x.ndim != 2 or x.shape[1] != self.channels:
            raise ValueError(f"expected {self.channels} channels, got shape {x.shape}.")
        if x.shape[0] == 0:
            return
        y, self._zi = lfilter(self._b, self._a, x, axis=0, zi=self._zi)
        self.frames_added += x.shape[0]

        buf = np.concatenate([self._pending, y * y], axis=0) if self._pending.size else y * y
        n_full = buf.shape[0] // self._subblock_frames
        if n_full:
            used = n_full * self._subblock_frames
            sums = buf[:used].reshape(n_full, self._subblock_frames, self.channels).sum(axis=1)
            for e in sums @ self._weights:
                self._push_subblock(float(e))
            buf = buf[used:]
        self._pending = buf

    def _push_subblock(self, weighted_sum: float) -> None:
        self._subblocks.append(weighted_sum)
        if len(self._subblocks) < SUBBLOCKS_PER_BLOCK:
            return
        window = self._subblocks[-SUBBLOCKS_PER_BLOCK:]
        self._blocks.append(sum(window) / (SUBBLOCKS_PER_BLOCK * self._subblock_frames))
        del self._subblocks[:-(SUBBLOCKS_PER_BLOCK - 1)]

    def _above_absolute_gate(self) -> np.ndarray:
        blocks = np.asarray(self._blocks, dtype=np.float64)
        return blocks[blocks >= lufs_to_energy(ABSOLUTE_GATE_LUFS)]

    def gated_block_count_and_energy(self) -> tuple[int, float] | None:
        """Number and summed energy of blocks above the absolute gate."""
        gated = self._above_absolute_gate()
        if gated.size == 0:
            return None
        return int(gated.size), float(np.sum(gated))

    def global_loudness(self) -> float:
        """Integrated loudness in LUFS; ``-inf`` when nothing passes the gates."""
        gated = self._above_absolute_gate()
        if gated.size == 0:
            return float("-inf")
        relative = float(np.mean(gated)) * 10.0 ** (RELATIVE_GATE_LU / 10.0)
        passed = gated[gated >= relative]
        if passed.size == 0:
            return float("-inf")
        return energy_to_lufs(float(np.mean(passed)))
