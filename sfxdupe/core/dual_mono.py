"""Detection of stereo files whose two channels carry the same signal."""

from __future__ import annotations

import logging

import numpy as np

from sfxprint.audio import SampleBuffer

from .config import DualMonoConfig
from .errors import ChannelCountError

logger = logging.getLogger(__name__)

DEFAULT_EPSILON = 1e-6

# Frames compared per step before checking for an early exit
COMPARE_BLOCK_FRAMES = 65536


def are_channels_identical(
    buffer: SampleBuffer,
    epsilon: float = DEFAULT_EPSILON,
    step: int = 1,
) -> bool:
    """Check whether both channels of a stereo buffer are equal.

    Args:
        buffer: Two-channel audio
        epsilon: Largest tolerated per-sample difference
        step: Compare every ``step``-th frame only

    Returns:
        True if no compared frame differs by more than ``epsilon``

    Raises:
        ChannelCountError: If the buffer is not stereo
    """
    if buffer.channel_count != 2:
        raise ChannelCountError(2, buffer.channel_count)
    if step < 1:
        raise ValueError(f"step must be >= 1, got {step}")

    left, right = buffer.channels
    if step > 1:
        left, right = left[::step], right[::step]

    for start in range(0, len(left), COMPARE_BLOCK_FRAMES):
        stop = start + COMPARE_BLOCK_FRAMES
        diff = np.abs(left[start:stop] - right[start:stop])
        # A NaN difference is never within epsilon
        if not np.all(diff <= epsilon):
            return False
    return True


class DualMonoDetector:
    """Strict comparison for normal files, sampled comparison for long ones."""

    def __init__(self, config: DualMonoConfig | None = None):
        self.config = config or DualMonoConfig()

    def is_dual_mono(self, buffer: SampleBuffer) -> bool:
        """Check a stereo buffer.

        Buffers longer than ``fast_threshold_frames`` are only compared on
        every ``fast_step``-th frame, with ``fast_tolerance``.

        Raises:
            ChannelCountError: If the buffer is not stereo
        """
        cfg = self.config
        if buffer.num_frames > cfg.fast_threshold_frames:
            logger.debug(
                "[DualMono] %d frames, sampling every %d", buffer.num_frames, cfg.fast_step
            )
            return are_channels_identical(buffer, cfg.fast_tolerance, cfg.fast_step)
        return are_channels_identical(buffer, cfg.epsilon)
