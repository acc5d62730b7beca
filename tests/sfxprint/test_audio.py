"""Tests for sfxprint.audio.SampleBuffer."""

from __future__ import annotations

import numpy as np
import pytest

from sfxprint.audio import SampleBuffer


class TestSampleBuffer:
    """Construction and validation."""

    def test_channels_are_read_only_copies(self) -> None:
        source = np.zeros(10, dtype=np.float32)
        buffer = SampleBuffer.mono(source, 8000)

        source[0] = 1.0
        assert buffer.channels[0][0] == 0.0
        with pytest.raises(ValueError):
            buffer.channels[0][0] = 1.0

    def test_converted_to_float32(self) -> None:
        buffer = SampleBuffer.mono(np.arange(4, dtype=np.int16), 8000)
        assert buffer.channels[0].dtype == np.float32

    def test_properties(self) -> None:
        x = np.zeros(16000, dtype=np.float32)
        buffer = SampleBuffer((x, x), 8000)
        assert buffer.channel_count == 2
        assert buffer.num_frames == 16000
        assert buffer.duration_seconds == pytest.approx(2.0)

    def test_no_channels(self) -> None:
        with pytest.raises(ValueError):
            SampleBuffer((), 8000)

    def test_invalid_rate(self) -> None:
        with pytest.raises(ValueError):
            SampleBuffer.mono(np.zeros(10), 0)

    def test_unequal_lengths(self) -> None:
        with pytest.raises(ValueError):
            SampleBuffer((np.zeros(10), np.zeros(11)), 8000)


class TestSampleBufferConversions:
    """Mixdown and (de)interleaving."""

    def test_from_interleaved(self) -> None:
        data = np.array([1, -1, 2, -2, 3, -3, 9], dtype=np.float32)
        buffer = SampleBuffer.from_interleaved(data, 8000, 2)

        np.testing.assert_array_equal(buffer.channels[0], [1, 2, 3])
        np.testing.assert_array_equal(buffer.channels[1], [-1, -2, -3])

    def test_to_mono_averages(self) -> None:
        buffer = SampleBuffer((np.array([1.0, 0.0]), np.array([0.0, 1.0])), 8000)
        np.testing.assert_allclose(buffer.to_mono(), [0.5, 0.5])

    def test_mono_to_mono_is_identity(self) -> None:
        buffer = SampleBuffer.mono(np.array([0.25, -0.5]), 8000)
        np.testing.assert_array_equal(buffer.to_mono(), [0.25, -0.5])

    def test_interleaved_bytes(self) -> None:
        buffer = SampleBuffer((np.array([1.0, 2.0]), np.array([3.0, 4.0])), 8000)
        expected = np.array([1.0, 3.0, 2.0, 4.0], dtype="<f4").tobytes()
        assert buffer.interleaved_bytes() == expected
