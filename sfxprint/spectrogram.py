"""Short-time magnitude spectrogram with a fixed Hann window."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

DEFAULT_WINDOW_SIZE = 1024


@dataclass(frozen=True, slots=True)
class Spectrogram:
    """Magnitude frames of a mono signal.

    Attributes:
        magnitudes: 2D array (time x frequency), ``window_size // 2 + 1`` bins
        window_size: FFT window length in samples
        hop_size: Distance between frame starts in samples
    """
    magnitudes: np.ndarray
    window_size: int
    hop_size: int

    @property
    def n_frames(self) -> int:
        return self.magnitudes.shape[0]

    @property
    def n_bins(self) -> int:
        return self.magnitudes.shape[1]

    def __len__(self) -> int:
        return self.n_frames

    def __getitem__(self, frame: int) -> np.ndarray:
        return self.magnitudes[frame]

    def duration_seconds(self, sample_rate: int) -> float:
        """Duration covered by the frame grid (frames x hop)."""
        return self.n_frames * self.hop_size / sample_rate


def compute_spectrogram(
    samples: np.ndarray,
    window_size: int = DEFAULT_WINDOW_SIZE,
    hop_size: int | None = None,
) -> Spectrogram:
    """Compute the magnitude spectrogram of a mono signal.

    Frame ``t`` covers ``samples[t * hop : t * hop + window]``.  A signal
    shorter than one window yields a spectrogram with zero frames.

    Args:
        samples: Mono signal
        window_size: FFT size
        hop_size: Frame advance (defaults to half a window)

    Returns:
        Spectrogram
    """
    if hop_size is None:
        hop_size = window_size // 2
    if window_size <= 0 or hop_size <= 0:
        raise ValueError(f"Invalid window/hop: {window_size}/{hop_size}")

    n_bins = window_size // 2 + 1
    x = np.asarray(samples, dtype=np.float32).reshape(-1)

    if len(x) < window_size:
        return Spectrogram(np.zeros((0, n_bins), dtype=np.float32), window_size, hop_size)

    n_frames = (len(x) - window_size) // hop_size + 1
    window = np.hanning(window_size).astype(np.float32)

    frames = np.zeros((n_frames, window_size), dtype=np.float32)
    for t in range(n_frames):
        chunk = x[t * hop_size : t * hop_size + window_size]
        # Tail slices shorter than a window stay zero-padded
        frames[t, : len(chunk)] = chunk

    spectrum = np.fft.rfft(frames * window[None, :], n=window_size, axis=1)
    magnitudes = np.abs(spectrum).astype(np.float32)

    return Spectrogram(magnitudes, window_size, hop_size)
