"""Audio decoding collaborators.

The container format is sniffed from magic bytes (the extension is only a
fallback) and routed to one decoder per format family:

- ``SoundFileDecoder``: WAV, AIFF/AIFC, FLAC, Ogg through libsndfile
- ``LibrosaDecoder``: MP3
- ``ExternalConverter``: anything else, when one is configured
"""

from __future__ import annotations

import logging
from pathlib import Path

import librosa
import numpy as np
import soundfile as sf

from sfxprint.audio import SampleBuffer

from .converter import ExternalConverter
from .errors import (
    AudioFileNotFoundError,
    AudioTooShortError,
    DecodeError,
    UnsupportedBitDepthError,
    UnsupportedFormatError,
)

logger = logging.getLogger(__name__)

SOUNDFILE_FORMATS = frozenset({"wav", "aiff", "flac", "ogg"})
LIBROSA_FORMATS = frozenset({"mp3"})

EXTENSION_FORMATS = {
    ".wav": "wav",
    ".wave": "wav",
    ".bwf": "wav",
    ".aif": "aiff",
    ".aiff": "aiff",
    ".aifc": "aiff",
    ".flac": "flac",
    ".ogg": "ogg",
    ".oga": "ogg",
    ".mp3": "mp3",
}

SUPPORTED_SUBTYPES = frozenset(
    {
        "PCM_S8",
        "PCM_U8",
        "PCM_16",
        "PCM_24",
        "PCM_32",
        "FLOAT",
        "DOUBLE",
        "ULAW",
        "ALAW",
        "VORBIS",
        "OPUS",
    }
)

# Frames read per block; a corrupt block only loses this much audio
READ_BLOCK_FRAMES = 65536


def sniff_format(path: Path | str) -> str | None:
    """Guess the container format of a file.

    Args:
        path: File to inspect

    Returns:
        One of "wav", "aiff", "flac", "ogg", "mp3", or None if unknown
    """
    path = Path(path)
    try:
        with open(path, "rb") as f:
            header = f.read(12)
    except OSError:
        header = b""

    if len(header) >= 12 and header[:4] == b"RIFF" and header[8:12] == b"WAVE":
        return "wav"
    if len(header) >= 12 and header[:4] == b"FORM" and header[8:12] in (b"AIFF", b"AIFC"):
        return "aiff"
    if header[:4] == b"fLaC":
        return "flac"
    if header[:4] == b"OggS":
        return "ogg"
    if header[:3] == b"ID3":
        return "mp3"
    if len(header) >= 2 and header[0] == 0xFF and (header[1] & 0xE0) == 0xE0:
        return "mp3"

    return EXTENSION_FORMATS.get(path.suffix.lower())


class SoundFileDecoder:
    """libsndfile-backed decoder, read block by block."""

    def __init__(self, block_frames: int = READ_BLOCK_FRAMES):
        self.block_frames = block_frames

    def decode(self, path: Path) -> SampleBuffer:
        """Decode a file to deinterleaved float32.

        A block that fails to decode is skipped with a warning; the rest of
        the file is still returned.

        Raises:
            UnsupportedBitDepthError: If the sample encoding is not supported
            DecodeError: If the file cannot be opened or nothing decodes
        """
        try:
            f = sf.SoundFile(str(path))
        except sf.LibsndfileError as e:
            raise DecodeError(f"Cannot open {path.name}: {e}") from e

        with f:
            if f.subtype not in SUPPORTED_SUBTYPES:
                raise UnsupportedBitDepthError(
                    f"{path.name}: unsupported sample encoding {f.subtype}"
                )

            if f.frames == 0:
                raise AudioTooShortError(f"No samples in {path.name}")

            blocks: list[np.ndarray] = []
            position = 0
            skipped = 0
            while position < f.frames:
                try:
                    block = f.read(self.block_frames, dtype="float32", always_2d=True)
                except RuntimeError as e:
                    logger.warning(
                        "[Decoder] %s: skipping corrupt block at frame %d: %s",
                        path.name,
                        position,
                        e,
                    )
                    skipped += 1
                    position += self.block_frames
                    if position >= f.frames:
                        break
                    try:
                        f.seek(position)
                    except RuntimeError as e:
                        logger.warning(
                            "[Decoder] %s: cannot resume at frame %d, keeping %d block(s): %s",
                            path.name,
                            position,
                            len(blocks),
                            e,
                        )
                        break
                    continue
                if len(block) == 0:
                    break
                blocks.append(block)
                position += len(block)

            channels = f.channels
            sample_rate = f.samplerate

        if not blocks:
            raise DecodeError(f"No audio could be decoded from {path.name}")
        if skipped:
            logger.warning("[Decoder] %s: %d block(s) skipped", path.name, skipped)

        data = np.concatenate(blocks, axis=0)
        return SampleBuffer(tuple(data[:, ch] for ch in range(channels)), sample_rate)


class LibrosaDecoder:
    """MP3 decoder at the file's native rate and channel layout."""

    def decode(self, path: Path) -> SampleBuffer:
        try:
            y, sr = librosa.load(str(path), sr=None, mono=False)
        except Exception as e:
            raise DecodeError(f"Cannot decode {path.name}: {e}") from e

        if y.ndim == 1:
            return SampleBuffer.mono(y, int(sr))
        return SampleBuffer(tuple(y), int(sr))


class AudioDecoder:
    """Route a file to the decoder of its format family."""

    def __init__(
        self,
        converter: ExternalConverter | None = None,
        soundfile_decoder: SoundFileDecoder | None = None,
        librosa_decoder: LibrosaDecoder | None = None,
    ) -> None:
        """Initialize decoder.

        Args:
            converter: Fallback for unknown formats (unknown formats raise if None)
            soundfile_decoder: Decoder for libsndfile formats
            librosa_decoder: Decoder for MP3
        """
        self.converter = converter
        self.soundfile_decoder = soundfile_decoder or SoundFileDecoder()
        self.librosa_decoder = librosa_decoder or LibrosaDecoder()

    def decode(self, path: Path | str) -> SampleBuffer:
        """Decode an audio file.

        Raises:
            AudioFileNotFoundError: If the file does not exist
            UnsupportedFormatError: If no decoder handles the file
            AudioTooShortError: If the file holds no samples
            DecodeError: If decoding fails
        """
        path = Path(path)
        if not path.exists():
            raise AudioFileNotFoundError(path)

        fmt = sniff_format(path)
        if fmt in SOUNDFILE_FORMATS:
            buffer = self.soundfile_decoder.decode(path)
        elif fmt in LIBROSA_FORMATS:
            buffer = self.librosa_decoder.decode(path)
        elif self.converter is not None:
            logger.debug("[Decoder] %s: unknown format, using converter", path.name)
            buffer = self.converter.convert(path)
        else:
            raise UnsupportedFormatError(f"Unsupported audio format: {path.name}")

        if buffer.num_frames == 0:
            raise AudioTooShortError(f"No samples in {path.name}")
        return buffer
