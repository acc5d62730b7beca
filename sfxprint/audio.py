"""Decoded PCM container shared by every analysis stage."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, slots=True)
class SampleBuffer:
    """Deinterleaved float32 PCM with its sample rate.

    Channel arrays are flagged read-only on construction, so a buffer can be
    handed to several analysis stages (and threads) without copying.

    Attributes:
        channels: One 1-D float32 array per channel, all the same length
        sample_rate: Sample rate in Hz
    """
    channels: tuple[np.ndarray, ...]
    sample_rate: int

    def __post_init__(self) -> None:
        if not self.channels:
            raise ValueError("SampleBuffer needs at least one channel")
        if self.sample_rate <= 0:
            raise ValueError(f"Invalid sample rate: {self.sample_rate}")

        frozen = []
        for ch in self.channels:
            arr = np.array(ch, dtype=np.float32, copy=True).reshape(-1)
            arr.setflags(write=False)
            frozen.append(arr)

        lengths = {len(ch) for ch in frozen}
        if len(lengths) != 1:
            raise ValueError(f"Channel lengths differ: {sorted(lengths)}")

        object.__setattr__(self, "channels", tuple(frozen))

    @classmethod
    def from_interleaved(
        cls,
        data: np.ndarray,
        sample_rate: int,
        channel_count: int,
    ) -> SampleBuffer:
        """Build a buffer from interleaved samples (L R L R ...).

        Trailing samples that do not fill a whole frame are dropped.
        """
        data = np.asarray(data, dtype=np.float32).reshape(-1)
        frames = len(data) // channel_count
        frame_data = data[: frames * channel_count].reshape(frames, channel_count)
        return cls(tuple(frame_data[:, ch] for ch in range(channel_count)), sample_rate)

    @classmethod
    def mono(cls, samples: np.ndarray, sample_rate: int) -> SampleBuffer:
        """Build a single-channel buffer."""
        return cls((np.asarray(samples, dtype=np.float32),), sample_rate)

    @property
    def channel_count(self) -> int:
        return len(self.channels)

    @property
    def num_frames(self) -> int:
        return len(self.channels[0])

    @property
    def duration_seconds(self) -> float:
        return self.num_frames / self.sample_rate

    def to_mono(self) -> np.ndarray:
        """Average all channels into one float32 signal."""
        if self.channel_count == 1:
            return self.channels[0]
        return np.mean(np.stack(self.channels), axis=0).astype(np.float32)

    def interleaved_bytes(self) -> bytes:
        """Return the samples interleaved as little-endian float32 bytes."""
        stacked = np.stack(self.channels, axis=1)
        return stacked.astype("<f4").tobytes()
