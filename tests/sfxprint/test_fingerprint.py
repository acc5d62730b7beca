"""Tests for sfxprint.fingerprint: landmarks, hashes and the Fingerprinter."""

from __future__ import annotations

import numpy as np
import pytest

from sfxprint.audio import SampleBuffer
from sfxprint.fingerprint import (
    EFFECTS_PROFILE,
    MUSIC_PROFILE,
    Fingerprinter,
    Landmark,
    LandmarkHash,
    LandmarkProfile,
    TargetZone,
    extract_fingerprint,
    extract_landmarks,
    generate_hashes,
)
from sfxprint.spectrogram import Spectrogram, compute_spectrogram

SR = 8000


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _tremolo_sine(freq: float, duration: float = 3.0, sr: int = SR) -> np.ndarray:
    """Sine with a slow amplitude modulation so it has maxima in time."""
    t = np.arange(int(sr * duration)) / sr
    envelope = 0.6 + 0.4 * np.sin(2 * np.pi * 1.5 * t)
    return (0.5 * envelope * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def _lm(t: int, f: int, mag: float = 1.0) -> Landmark:
    return Landmark(time_bin=t, freq_bin=f, magnitude=mag)


# ---------------------------------------------------------------------------
# TestLandmarkProfile
# ---------------------------------------------------------------------------

class TestLandmarkProfile:
    """Profile validation and presets."""

    def test_music_defaults(self) -> None:
        assert MUSIC_PROFILE.min_bin == 30
        assert MUSIC_PROFILE.max_bin == 300
        assert MUSIC_PROFILE.points_per_second == 20
        assert MUSIC_PROFILE.max_zone_dt == 10

    def test_effects_is_wider(self) -> None:
        assert EFFECTS_PROFILE.min_bin < MUSIC_PROFILE.min_bin
        assert EFFECTS_PROFILE.max_bin > MUSIC_PROFILE.max_bin
        assert EFFECTS_PROFILE.points_per_second > MUSIC_PROFILE.points_per_second

    def test_inverted_band_rejected(self) -> None:
        with pytest.raises(ValueError):
            LandmarkProfile(name="bad", min_bin=300, max_bin=30)

    def test_overlapping_zones_rejected(self) -> None:
        with pytest.raises(ValueError):
            LandmarkProfile(
                name="bad",
                target_zones=(TargetZone(1, 4, -30, 30), TargetZone(4, 6, -30, 30)),
            )

    def test_zone_contains_is_inclusive(self) -> None:
        zone = TargetZone(1, 3, -30, 30)
        assert zone.contains(1, -30)
        assert zone.contains(3, 30)
        assert not zone.contains(0, 0)
        assert not zone.contains(4, 0)
        assert not zone.contains(2, 31)


# ---------------------------------------------------------------------------
# TestExtractLandmarks
# ---------------------------------------------------------------------------

class TestExtractLandmarks:
    """Peak picking on spectrograms."""

    def test_sine_landmarks_at_sine_bin(self) -> None:
        """The strongest landmarks of a tone sit on the tone's bin."""
        freq = 1234.5
        spec = compute_spectrogram(_tremolo_sine(freq), 1024, 512)
        landmarks = extract_landmarks(spec, SR)

        assert landmarks
        expected_bin = round(freq * 1024 / SR)
        strongest = sorted(landmarks, key=lambda lm: -lm.magnitude)[:3]
        for lm in strongest:
            assert abs(lm.freq_bin - expected_bin) <= 1

    def test_silence_has_no_landmarks(self) -> None:
        spec = compute_spectrogram(np.zeros(SR * 2, dtype=np.float32), 1024, 512)
        assert extract_landmarks(spec, SR) == []

    def test_empty_spectrogram(self) -> None:
        spec = Spectrogram(np.zeros((0, 513), dtype=np.float32), 1024, 512)
        assert extract_landmarks(spec, SR) == []

    def test_single_strict_peak(self) -> None:
        """An isolated point above the floor is a landmark."""
        mags = np.zeros((20, 513), dtype=np.float32)
        mags[10, 100] = 5.0
        landmarks = extract_landmarks(Spectrogram(mags, 1024, 512), SR)
        assert landmarks == [Landmark(time_bin=10, freq_bin=100, magnitude=5.0)]

    def test_plateau_is_not_a_peak(self) -> None:
        """Equal neighbours mean no strict maximum."""
        mags = np.zeros((20, 513), dtype=np.float32)
        mags[10, 100] = 5.0
        mags[10, 101] = 5.0
        assert extract_landmarks(Spectrogram(mags, 1024, 512), SR) == []

    def test_peak_below_floor_ignored(self) -> None:
        mags = np.zeros((20, 513), dtype=np.float32)
        mags[10, 100] = 0.005
        assert extract_landmarks(Spectrogram(mags, 1024, 512), SR) == []

    def test_peak_outside_band_ignored(self) -> None:
        mags = np.zeros((20, 513), dtype=np.float32)
        mags[10, 10] = 5.0
        mags[10, 400] = 5.0
        assert extract_landmarks(Spectrogram(mags, 1024, 512), SR) == []

    def test_thinned_to_target_density(self, rng: np.random.Generator) -> None:
        """Noise yields exactly duration * points_per_second landmarks, in order."""
        mags = rng.random((100, 513)).astype(np.float32)
        spec = Spectrogram(mags, 1024, 512)
        landmarks = extract_landmarks(spec, SR)

        target = int(spec.duration_seconds(SR) * MUSIC_PROFILE.points_per_second)
        assert len(landmarks) == target
        assert all(30 <= lm.freq_bin <= 300 for lm in landmarks)
        keys = [(lm.time_bin, lm.freq_bin) for lm in landmarks]
        assert keys == sorted(keys)


# ---------------------------------------------------------------------------
# TestGenerateHashes
# ---------------------------------------------------------------------------

class TestGenerateHashes:
    """Anchor/target pairing."""

    def test_pairs_inside_zones(self) -> None:
        landmarks = [_lm(0, 100), _lm(2, 110), _lm(5, 90), _lm(12, 100)]
        hashes = generate_hashes(landmarks, MUSIC_PROFILE)

        assert hashes == {
            LandmarkHash(100, 110, 2): [0],
            LandmarkHash(100, 90, 5): [0],
            LandmarkHash(110, 90, 3): [2],
            LandmarkHash(110, 100, 10): [2],
            LandmarkHash(90, 100, 7): [5],
        }

    def test_frequency_spread_limit(self) -> None:
        assert generate_hashes([_lm(0, 100), _lm(1, 200)], MUSIC_PROFILE) == {}

    def test_same_frame_targets_not_paired(self) -> None:
        assert generate_hashes([_lm(3, 100), _lm(3, 110)], MUSIC_PROFILE) == {}

    def test_fan_out_limit(self) -> None:
        """An anchor pairs with at most max_pairs_per_anchor targets."""
        landmarks = [_lm(0, 100)] + [_lm(1, 100 + k) for k in range(1, 9)]
        hashes = generate_hashes(landmarks, MUSIC_PROFILE)
        assert sum(len(times) for times in hashes.values()) == MUSIC_PROFILE.max_pairs_per_anchor

    def test_translation_invariance(self) -> None:
        """Shifting all landmarks in time keeps the keys and shifts the times."""
        landmarks = [_lm(0, 100), _lm(2, 110), _lm(5, 90), _lm(12, 100)]
        shifted = [_lm(lm.time_bin + 7, lm.freq_bin) for lm in landmarks]

        base = generate_hashes(landmarks)
        moved = generate_hashes(shifted)
        assert base.keys() == moved.keys()
        for key, times in base.items():
            assert moved[key] == [t + 7 for t in times]

    def test_input_order_does_not_matter(self) -> None:
        landmarks = [_lm(0, 100), _lm(2, 110), _lm(5, 90)]
        assert generate_hashes(landmarks) == generate_hashes(list(reversed(landmarks)))


# ---------------------------------------------------------------------------
# TestFingerprinter
# ---------------------------------------------------------------------------

class TestFingerprinter:
    """End-to-end extraction from buffers."""

    def test_silent_buffers_have_identical_empty_fingerprints(self) -> None:
        fp = Fingerprinter()
        a = fp.fingerprint("a", SampleBuffer.mono(np.zeros(SR * 2), SR))
        b = fp.fingerprint("b", SampleBuffer.mono(np.zeros(SR * 3), 44100))

        assert a.landmark_count == 0
        assert a.hashes == {} == b.hashes
        assert a.hash_count == 0

    def test_shorter_than_window_is_empty(self) -> None:
        fp = Fingerprinter().fingerprint("short", SampleBuffer.mono(np.ones(100), SR))
        assert fp.hashes == {}
        assert fp.duration_seconds == pytest.approx(100 / SR)

    def test_duration_taken_from_source(self) -> None:
        buffer = SampleBuffer.mono(_tremolo_sine(1000.0, duration=2.0, sr=22050), 22050)
        fp = Fingerprinter().fingerprint("tone", buffer)
        assert fp.duration_seconds == pytest.approx(2.0)
        assert fp.landmark_count > 0

    def test_stereo_is_mixed_down(self) -> None:
        tone = _tremolo_sine(1000.0)
        stereo = SampleBuffer((tone, tone), SR)
        mono = SampleBuffer.mono(tone, SR)

        fp = Fingerprinter()
        assert fp.fingerprint("s", stereo).hashes == fp.fingerprint("m", mono).hashes

    def test_seconds_per_bin(self) -> None:
        assert Fingerprinter(sample_rate=8000, hop_size=512).seconds_per_bin == pytest.approx(0.064)

    def test_extract_fingerprint_passes_kwargs(self) -> None:
        buffer = SampleBuffer.mono(_tremolo_sine(1000.0), SR)
        fp = extract_fingerprint("x", buffer, profile=EFFECTS_PROFILE)
        assert fp.asset_id == "x"
        assert fp.pairs() == [(h, t) for h, times in fp.hashes.items() for t in times]
