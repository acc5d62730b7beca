"""sfxprint - Landmark fingerprinting for sound-effect libraries.

Finds audio that appears, whole or as a clip, inside other assets even after
resampling or re-encoding:
- Windowed-sinc resampling to a fixed analysis rate
- Magnitude spectrogram with strict local-maximum landmarks
- Anchor/target pair hashes indexed per session
- Subset matching by offset-histogram voting

References:
- "An Industrial-Strength Audio Search Algorithm" (Wang, 2003)
"""

__version__ = "0.1.0"

from .audio import SampleBuffer
from .fingerprint import (
    EFFECTS_PROFILE,
    MUSIC_PROFILE,
    PROFILES,
    AssetFingerprint,
    Fingerprinter,
    LandmarkProfile,
)
from .index import FingerprintIndex, build_index
from .matcher import MatchResult, SubsetMatcher, find_all_subset_matches, subset_match
from .resample import resample

__all__ = [
    "SampleBuffer",
    "Fingerprinter",
    "AssetFingerprint",
    "LandmarkProfile",
    "MUSIC_PROFILE",
    "EFFECTS_PROFILE",
    "PROFILES",
    "FingerprintIndex",
    "build_index",
    "MatchResult",
    "SubsetMatcher",
    "subset_match",
    "find_all_subset_matches",
    "resample",
]
