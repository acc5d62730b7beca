"""Windowed-sinc sample rate conversion.

Each output sample is a 32-tap convolution around its fractional source
position.  The kernel is a sinc low-pass tapered by a Hann window and
normalised to unit gain, so DC level is preserved across the conversion.
"""

from __future__ import annotations

import numpy as np

KERNEL_SIZE = 32
MAX_CUTOFF = 0.9

# Output positions processed per vectorised block (bounds the tap matrix size)
_BLOCK_SIZE = 65536


def _hann_taps(kernel_size: int) -> np.ndarray:
    n = np.arange(kernel_size, dtype=np.float64)
    return 0.5 * (1.0 - np.cos(2.0 * np.pi * n / (kernel_size - 1)))


def resample(
    samples: np.ndarray,
    src_rate: int,
    dst_rate: int,
    kernel_size: int = KERNEL_SIZE,
) -> np.ndarray:
    """Resample a mono signal from ``src_rate`` to ``dst_rate``.

    Args:
        samples: Mono signal
        src_rate: Source sample rate in Hz
        dst_rate: Target sample rate in Hz
        kernel_size: Number of sinc taps

    Returns:
        float32 array of length ``ceil(len(samples) * dst_rate / src_rate)``
    """
    x = np.asarray(samples, dtype=np.float64).reshape(-1)
    if len(x) == 0:
        return np.zeros(0, dtype=np.float32)
    if src_rate <= 0 or dst_rate <= 0:
        raise ValueError(f"Sample rates must be positive: {src_rate} -> {dst_rate}")
    if src_rate == dst_rate:
        return x.astype(np.float32)

    ratio = dst_rate / src_rate
    output_len = int(np.ceil(len(x) * ratio))
    # Below 1.0 only when downsampling: pulls the low-pass under the new Nyquist
    cutoff = min(MAX_CUTOFF, ratio)

    half = kernel_size // 2
    taps = np.arange(-half, kernel_size - half)
    window = _hann_taps(kernel_size)

    # Zero-pad so out-of-range taps read zeros instead of wrapping
    padded = np.concatenate([np.zeros(half), x, np.zeros(kernel_size)])

    out = np.empty(output_len, dtype=np.float64)
    for start in range(0, output_len, _BLOCK_SIZE):
        idx = np.arange(start, min(start + _BLOCK_SIZE, output_len))
        src_pos = idx / ratio
        src_index = np.floor(src_pos).astype(np.int64)
        frac = src_pos - src_index

        kernel = np.sinc((taps[None, :] - frac[:, None]) * cutoff) * window[None, :]
        kernel /= kernel.sum(axis=1, keepdims=True)

        gather = src_index[:, None] + taps[None, :] + half
        out[idx] = np.sum(padded[gather] * kernel, axis=1)

    return out.astype(np.float32)
