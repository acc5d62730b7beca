"""Landmark (constellation) fingerprinting.

This implementation uses:
- A linear-frequency STFT magnitude spectrogram at a fixed analysis rate
- Strict local maxima as landmarks, thinned to a target density per second
- Anchor/target landmark pairs inside disjoint target zones as hash keys

The hash key only describes the *shape* of a pair (two frequencies and their
time distance); the anchor's absolute time is kept next to it so matches can
later be aligned by offset voting.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Hashable, Sequence
from dataclasses import dataclass, field
from typing import NamedTuple

import numpy as np
from scipy.ndimage import maximum_filter

from .audio import SampleBuffer
from .resample import resample
from .spectrogram import DEFAULT_WINDOW_SIZE, Spectrogram, compute_spectrogram

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_RATE = 8000


@dataclass(frozen=True, slots=True)
class Landmark:
    """A spectral peak: strict local maximum above the amplitude floor."""
    time_bin: int
    freq_bin: int
    magnitude: float


class LandmarkHash(NamedTuple):
    """Fixed-width key describing one anchor -> target pair."""
    anchor_freq_bin: int
    target_freq_bin: int
    delta_time_bins: int


@dataclass(frozen=True, slots=True)
class TargetZone:
    """Rectangle of allowed (time, frequency) offsets from an anchor, bounds inclusive."""
    min_dt: int
    max_dt: int
    min_df: int
    max_df: int

    def contains(self, dt: int, df: int) -> bool:
        return self.min_dt <= dt <= self.max_dt and self.min_df <= df <= self.max_df


DEFAULT_TARGET_ZONES = (
    TargetZone(1, 3, -30, 30),
    TargetZone(4, 6, -30, 30),
    TargetZone(7, 10, -30, 30),
)


@dataclass(frozen=True, slots=True)
class LandmarkProfile:
    """Peak picking and pairing parameters for one class of content.

    Attributes:
        name: Profile identifier
        min_bin: Lowest frequency bin searched for peaks
        max_bin: Highest frequency bin searched for peaks (inclusive)
        time_radius: Neighbourhood half-width in frames
        freq_radius: Neighbourhood half-width in bins
        amplitude_floor: Peaks must exceed this magnitude
        points_per_second: Landmark density kept after thinning
        target_zones: Disjoint zones a target must fall into
        max_pairs_per_anchor: Hash fan-out per anchor
    """
    name: str
    min_bin: int = 30
    max_bin: int = 300
    time_radius: int = 3
    freq_radius: int = 3
    amplitude_floor: float = 0.01
    points_per_second: float = 20.0
    target_zones: tuple[TargetZone, ...] = DEFAULT_TARGET_ZONES
    max_pairs_per_anchor: int = 5

    def __post_init__(self) -> None:
        if self.min_bin > self.max_bin:
            raise ValueError(f"min_bin {self.min_bin} > max_bin {self.max_bin}")
        if not self.target_zones:
            raise ValueError("At least one target zone is required")
        zones = sorted(self.target_zones, key=lambda z: z.min_dt)
        for prev, cur in zip(zones, zones[1:]):
            if cur.min_dt <= prev.max_dt:
                raise ValueError(f"Target zones overlap in time: {prev} / {cur}")

    @property
    def max_zone_dt(self) -> int:
        return max(z.max_dt for z in self.target_zones)


# Speech/music: mid band only, where tonal peaks are stable
MUSIC_PROFILE = LandmarkProfile(name="music")

# Short effects and ambiences: wide band, denser points, wider pair spread
EFFECTS_PROFILE = LandmarkProfile(
    name="effects",
    min_bin=10,
    max_bin=512,
    points_per_second=30.0,
    target_zones=(
        TargetZone(1, 3, -60, 60),
        TargetZone(4, 6, -60, 60),
        TargetZone(7, 10, -60, 60),
    ),
)

PROFILES: dict[str, LandmarkProfile] = {
    MUSIC_PROFILE.name: MUSIC_PROFILE,
    EFFECTS_PROFILE.name: EFFECTS_PROFILE,
}


@dataclass
class AssetFingerprint:
    """All hashes of one asset, keyed by hash with the anchor times as values."""
    asset_id: Hashable
    duration_seconds: float
    landmark_count: int = 0
    hashes: dict[LandmarkHash, list[int]] = field(default_factory=dict)

    @property
    def hash_count(self) -> int:
        """Number of (hash, anchor time) pairs."""
        return sum(len(times) for times in self.hashes.values())

    def pairs(self) -> list[tuple[LandmarkHash, int]]:
        """Flatten to (hash, anchor time) pairs."""
        return [(h, t) for h, times in self.hashes.items() for t in times]


def extract_landmarks(
    spectrogram: Spectrogram,
    sample_rate: int,
    profile: LandmarkProfile = MUSIC_PROFILE,
) -> list[Landmark]:
    """Find landmarks in a spectrogram.

    A point is kept if it lies in ``[min_bin, max_bin]``, exceeds the
    amplitude floor and is strictly greater than every other point of its
    neighbourhood (points outside the spectrogram are ignored).  Candidates
    are then thinned to ``duration * points_per_second`` by magnitude.

    Args:
        spectrogram: Magnitude spectrogram
        sample_rate: Sample rate the spectrogram was computed at
        profile: Peak picking parameters

    Returns:
        Landmarks sorted by time, then frequency
    """
    mags = spectrogram.magnitudes
    if mags.size == 0:
        return []

    lo = profile.min_bin
    hi = min(profile.max_bin, spectrogram.n_bins - 1)
    if lo > hi:
        return []

    tr, fr = profile.time_radius, profile.freq_radius
    footprint = np.ones((2 * tr + 1, 2 * fr + 1), dtype=bool)
    footprint[tr, fr] = False

    # Magnitudes are non-negative, so -1 never wins against a real neighbour
    neighbour_max = maximum_filter(mags, footprint=footprint, mode="constant", cval=-1.0)
    is_peak = (mags > neighbour_max) & (mags > profile.amplitude_floor)
    is_peak[:, :lo] = False
    is_peak[:, hi + 1 :] = False

    times, freqs = np.nonzero(is_peak)
    if len(times) == 0:
        return []
    values = mags[times, freqs]

    target = int(spectrogram.duration_seconds(sample_rate) * profile.points_per_second)
    if len(times) > target:
        # Strongest first; ties resolved by earlier time, then lower bin
        strongest = np.lexsort((freqs, times, -values))[:target]
        times, freqs, values = times[strongest], freqs[strongest], values[strongest]

    order = np.lexsort((freqs, times))
    return [
        Landmark(time_bin=int(times[i]), freq_bin=int(freqs[i]), magnitude=float(values[i]))
        for i in order
    ]


def generate_hashes(
    landmarks: Sequence[Landmark],
    profile: LandmarkProfile = MUSIC_PROFILE,
) -> dict[LandmarkHash, list[int]]:
    """Pair each landmark with later ones to build translation-invariant hashes.

    Args:
        landmarks: Landmarks (any order)
        profile: Target zones and fan-out

    Returns:
        Mapping of hash -> anchor time bins, in anchor order
    """
    ordered = sorted(landmarks, key=lambda lm: (lm.time_bin, lm.freq_bin))
    zones = profile.target_zones
    max_dt = profile.max_zone_dt

    hashes: dict[LandmarkHash, list[int]] = defaultdict(list)
    for i, anchor in enumerate(ordered):
        pairs = 0
        for j in range(i + 1, len(ordered)):
            target = ordered[j]
            dt = target.time_bin - anchor.time_bin
            if dt > max_dt:
                break

            df = target.freq_bin - anchor.freq_bin
            if not any(zone.contains(dt, df) for zone in zones):
                continue

            key = LandmarkHash(anchor.freq_bin, target.freq_bin, dt)
            hashes[key].append(anchor.time_bin)
            pairs += 1
            if pairs >= profile.max_pairs_per_anchor:
                break

    return dict(hashes)


class Fingerprinter:
    """Extract landmark fingerprints from decoded audio.

    The pipeline:
    1. Mix down to mono and resample to the analysis rate
    2. Compute the magnitude spectrogram
    3. Pick landmarks (profile-dependent)
    4. Pair landmarks into hashes
    """

    def __init__(
        self,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        window_size: int = DEFAULT_WINDOW_SIZE,
        hop_size: int | None = None,
        profile: LandmarkProfile = MUSIC_PROFILE,
    ):
        """Initialize fingerprinter.

        Args:
            sample_rate: Analysis sample rate (input is resampled to it)
            window_size: FFT window size
            hop_size: Frame hop (defaults to half a window)
            profile: Landmark picking and pairing parameters
        """
        self.sample_rate = sample_rate
        self.window_size = window_size
        self.hop_size = hop_size if hop_size is not None else window_size // 2
        self.profile = profile

    @property
    def seconds_per_bin(self) -> float:
        """Duration of one time bin (frame hop) in seconds."""
        return self.hop_size / self.sample_rate

    def fingerprint(self, asset_id: Hashable, buffer: SampleBuffer) -> AssetFingerprint:
        """Fingerprint a decoded asset."""
        return self.fingerprint_samples(asset_id, buffer.to_mono(), buffer.sample_rate)

    def fingerprint_samples(
        self,
        asset_id: Hashable,
        samples: np.ndarray,
        sample_rate: int,
    ) -> AssetFingerprint:
        """Fingerprint a mono signal at an arbitrary sample rate.

        Audio shorter than one window produces an empty fingerprint.
        """
        duration = len(samples) / sample_rate if sample_rate > 0 else 0.0
        y = resample(samples, sample_rate, self.sample_rate)

        spec = compute_spectrogram(y, self.window_size, self.hop_size)
        landmarks = extract_landmarks(spec, self.sample_rate, self.profile)
        hashes = generate_hashes(landmarks, self.profile)

        logger.debug(
            "[Fingerprinter] %s: %d frames, %d landmarks, %d hash keys",
            asset_id,
            spec.n_frames,
            len(landmarks),
            len(hashes),
        )
        return AssetFingerprint(
            asset_id=asset_id,
            duration_seconds=duration,
            landmark_count=len(landmarks),
            hashes=hashes,
        )


def extract_fingerprint(asset_id: Hashable, buffer: SampleBuffer, **kwargs) -> AssetFingerprint:
    """Convenience function to fingerprint one buffer.

    Args:
        asset_id: Identifier stored in the fingerprint
        buffer: Decoded audio
        **kwargs: Arguments passed to Fingerprinter

    Returns:
        AssetFingerprint
    """
    return Fingerprinter(**kwargs).fingerprint(asset_id, buffer)
