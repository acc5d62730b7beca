"""External converter (ffmpeg) for formats the in-process decoders refuse.

The converter always produces mono little-endian float32 at a fixed rate.
The number of concurrent ffmpeg processes is bounded by a ``ConverterGate``
shared by every converter of a session.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import threading
from contextlib import contextmanager
from pathlib import Path

import numpy as np

from sfxprint.audio import SampleBuffer

from .config import ConverterConfig
from .errors import AudioFileNotFoundError, ConverterError

logger = logging.getLogger(__name__)


class ConverterGate:
    """Blocking limit on concurrent converter processes."""

    def __init__(self, capacity: int = 4):
        if capacity < 1:
            raise ValueError(f"Gate capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._semaphore = threading.BoundedSemaphore(capacity)

    @contextmanager
    def slot(self):
        """Hold one process slot for the duration of the block."""
        self._semaphore.acquire()
        try:
            yield
        finally:
            self._semaphore.release()


class ExternalConverter:
    """Decode arbitrary media to mono float32 PCM through ffmpeg."""

    def __init__(
        self,
        config: ConverterConfig | None = None,
        gate: ConverterGate | None = None,
    ) -> None:
        """Initialize converter.

        Args:
            config: Converter configuration (defaults if None)
            gate: Shared process gate (a private one sized from config if None)

        Raises:
            ConverterError: If ffmpeg is not found
        """
        self.config = config or ConverterConfig()
        self.gate = gate or ConverterGate(self.config.max_processes)

        self.ffmpeg_path = self.config.ffmpeg_path or shutil.which("ffmpeg")
        if not self.ffmpeg_path:
            raise ConverterError("FFmpeg not found. Please install FFmpeg.")

    def build_command(self, path: Path) -> list[str]:
        """Build the ffmpeg argument list for one input file."""
        return [
            self.ffmpeg_path,
            "-nostdin",
            "-loglevel",
            "error",
            "-i",
            str(path),
            "-ar",
            str(self.config.sample_rate),
            "-ac",
            "1",
            "-f",
            "f32le",
            "-vn",
            "-map_metadata",
            "-1",
            "-threads",
            str(self.config.threads),
            "-t",
            str(self.config.max_duration_seconds),
            "-",  # stdout
        ]

    def convert_bytes(self, path: Path | str) -> bytes:
        """Run ffmpeg and return the raw f32le output.

        Raises:
            AudioFileNotFoundError: If the input does not exist
            ConverterError: If ffmpeg fails or produces nothing
        """
        path = Path(path)
        if not path.exists():
            raise AudioFileNotFoundError(path)

        cmd = self.build_command(path)
        with self.gate.slot():
            logger.debug("[Converter] Running: %s", " ".join(cmd))
            try:
                result = subprocess.run(cmd, capture_output=True, check=False)
            except OSError as e:
                raise ConverterError(f"Failed to start ffmpeg: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.decode(errors="replace").strip()
            raise ConverterError(
                f"ffmpeg failed on {path.name} (exit {result.returncode}): {stderr}"
            )
        if not result.stdout:
            raise ConverterError(f"ffmpeg produced no audio for {path.name}")
        return result.stdout

    def convert(self, path: Path | str) -> SampleBuffer:
        """Decode a file to a mono SampleBuffer at the configured rate."""
        raw = self.convert_bytes(path)
        # A truncated last sample is dropped
        usable = len(raw) - len(raw) % 4
        samples = np.frombuffer(raw[:usable], dtype="<f4")
        logger.debug("[Converter] %s: %d samples", Path(path).name, len(samples))
        return SampleBuffer.mono(samples, self.config.sample_rate)
