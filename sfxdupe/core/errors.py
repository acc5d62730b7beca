"""Exception hierarchy for audio identity operations."""

from pathlib import Path


class SfxDupeError(Exception):
    """Base class for every error raised by sfxdupe."""


class AudioInputError(SfxDupeError):
    """The audio at a path cannot be used as input."""


class AudioFileNotFoundError(AudioInputError, FileNotFoundError):
    """The file does not exist."""

    def __init__(self, path: Path | str):
        super().__init__(f"Audio file not found: {path}")
        self.path = Path(path)


class UnsupportedFormatError(AudioInputError):
    """No decoder handles this container or codec."""


class UnsupportedBitDepthError(UnsupportedFormatError):
    """The container is known but its sample encoding is not."""


class AudioTooShortError(AudioInputError):
    """Audio decodes to fewer samples than the operation needs."""


class ChannelCountError(AudioInputError):
    """Operation needs a different number of channels."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Expected {expected} channels, got {actual}")
        self.expected = expected
        self.actual = actual


class DecodeError(AudioInputError):
    """Decoding failed beyond recovery."""


class ConverterError(SfxDupeError, RuntimeError):
    """The external converter is missing or failed."""
