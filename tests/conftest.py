"""Pytest configuration and fixtures."""

from pathlib import Path

import numpy as np
import pytest
import soundfile as sf


@pytest.fixture
def test_config():
    """Provide test configuration."""
    from sfxdupe.core.config import (
        ContentHashConfig,
        FingerprintConfig,
        LoggingConfig,
        SessionConfig,
        SfxDupeConfig,
    )

    return SfxDupeConfig(
        fingerprint=FingerprintConfig(hop_size=512, min_match_count=5),
        content_hash=ContentHashConfig(workers=2, cache_capacity=10),
        session=SessionConfig(fingerprint_workers=2),
        logging=LoggingConfig(level="DEBUG", file="test.log"),
    )


@pytest.fixture
def rng() -> np.random.Generator:
    """Seeded random generator."""
    return np.random.default_rng(1234)


@pytest.fixture
def write_wav(tmp_path: Path):
    """Return a helper writing float samples (frames x channels) to a WAV file."""

    def _write(name: str, data: np.ndarray, sample_rate: int = 8000, subtype: str = "FLOAT") -> Path:
        path = tmp_path / name
        sf.write(str(path), data, sample_rate, subtype=subtype, format="WAV")
        return path

    return _write
