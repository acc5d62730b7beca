"""One duplicate search over a set of files.

A session runs these phases in order and can be aborted between and inside
them:

1. Content hashing (exact duplicates)
2. Decoding, dual-mono check and fingerprinting
3. Index build
4. Subset matching

An aborted session still returns everything produced so far, flagged
``incomplete``.
"""

from __future__ import annotations

import logging
import os
import threading
from collections import defaultdict
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from sfxprint.fingerprint import AssetFingerprint, Fingerprinter
from sfxprint.index import FingerprintIndex
from sfxprint.matcher import MatchResult, SubsetMatcher

from .config import SfxDupeConfig
from .content_hash import ContentHashEngine
from .converter import ConverterGate, ExternalConverter
from .decoder import AudioDecoder
from .dual_mono import DualMonoDetector
from .errors import AudioInputError, AudioTooShortError, ConverterError, SfxDupeError

logger = logging.getLogger(__name__)


class SessionPhase(Enum):
    CONTENT_HASH = "content_hash"
    FINGERPRINT = "fingerprint"
    INDEX = "index"
    MATCH = "match"


@dataclass
class SessionResult:
    """Everything a search session produced.

    Attributes:
        hashes: Content digest per successfully hashed path
        duplicate_groups: Paths sharing a digest, one list per digest
        dual_mono: Stereo files whose channels are identical
        matches: Subset relationships between files
        errors: First error recorded per path
        completed_phases: Phases that ran to the end
        incomplete: True if the session was aborted
        index_stats: Fingerprint index statistics (empty if never built)
    """
    hashes: dict[Path, str] = field(default_factory=dict)
    duplicate_groups: list[list[Path]] = field(default_factory=list)
    dual_mono: list[Path] = field(default_factory=list)
    matches: list[MatchResult] = field(default_factory=list)
    errors: dict[Path, SfxDupeError] = field(default_factory=dict)
    completed_phases: list[SessionPhase] = field(default_factory=list)
    incomplete: bool = False
    index_stats: dict = field(default_factory=dict)


def group_duplicates(hashes: dict[Path, str]) -> list[list[Path]]:
    """Group paths by digest, keeping groups of two or more."""
    by_digest: dict[str, list[Path]] = defaultdict(list)
    for path, digest in hashes.items():
        by_digest[digest].append(path)
    return [paths for paths in by_digest.values() if len(paths) > 1]


class SearchSession:
    """Run a full identity search with a shared abort flag."""

    def __init__(
        self,
        config: SfxDupeConfig,
        engine: ContentHashEngine | None = None,
        decoder: AudioDecoder | None = None,
        gate: ConverterGate | None = None,
    ) -> None:
        """Initialize session.

        Args:
            config: Application configuration
            engine: Content hash engine (built from config if None)
            decoder: Audio decoder (built from config if None)
            gate: Converter process gate shared by decoder and engine
        """
        self.config = config
        self.gate = gate or ConverterGate(config.converter.max_processes)

        converter: ExternalConverter | None = None
        if decoder is None or engine is None:
            try:
                converter = ExternalConverter(config.converter, self.gate)
            except ConverterError as e:
                logger.warning("[Session] %s Unknown formats will be rejected.", e)

        self.decoder = decoder or AudioDecoder(converter=converter)
        self.engine = engine or ContentHashEngine(
            config.content_hash,
            config.converter,
            decoder=self.decoder,
            converter=converter,
            gate=self.gate,
        )
        fp = config.fingerprint
        self.fingerprinter = Fingerprinter(
            sample_rate=fp.sample_rate,
            window_size=fp.window_size,
            hop_size=fp.hop_size,
            profile=fp.active_profile(),
        )
        self.detector = DualMonoDetector(config.dual_mono)
        self._abort = threading.Event()
        self._owns_engine = engine is None

    def close(self) -> None:
        """Release the content hash engine if this session created it."""
        if self._owns_engine:
            self.engine.close()

    def abort(self) -> None:
        """Ask the running session to stop as soon as possible."""
        logger.info("[Session] Abort requested")
        self._abort.set()

    def aborted(self) -> bool:
        return self._abort.is_set()

    def run(self, paths: Iterable[Path | str]) -> SessionResult:
        """Search the given files.

        Args:
            paths: Audio files

        Returns:
            SessionResult (``incomplete`` if aborted)
        """
        self._abort.clear()
        paths = list(dict.fromkeys(Path(p) for p in paths))
        cfg = self.config.session
        result = SessionResult()
        logger.info("[Session] Searching %d files", len(paths))

        if cfg.find_exact_duplicates:
            self._hash_phase(paths, result)
            if self._stop(result):
                return result
            result.completed_phases.append(SessionPhase.CONTENT_HASH)

        if not (cfg.detect_dual_mono or cfg.find_subsets):
            return result

        pending = [p for p in paths if p not in result.errors]
        fingerprints = self._fingerprint_phase(pending, result)
        if self._stop(result):
            return result
        result.completed_phases.append(SessionPhase.FINGERPRINT)

        if not cfg.find_subsets:
            return result

        index = FingerprintIndex()
        for fingerprint in fingerprints:
            index.add(fingerprint)
        index.freeze()
        result.index_stats = index.stats()
        result.completed_phases.append(SessionPhase.INDEX)
        if self._stop(result):
            return result

        matcher = SubsetMatcher(index, self.config.fingerprint.min_match_count)
        result.matches = matcher.find_all_subset_matches(cancelled=self.aborted)
        if self._stop(result):
            return result
        result.completed_phases.append(SessionPhase.MATCH)

        logger.info(
            "[Session] Done: %d duplicate groups, %d dual mono, %d subset matches, %d errors",
            len(result.duplicate_groups),
            len(result.dual_mono),
            len(result.matches),
            len(result.errors),
        )
        return result

    def _stop(self, result: SessionResult) -> bool:
        if self.aborted():
            result.incomplete = True
            logger.info("[Session] Aborted after %s", [p.value for p in result.completed_phases])
            return True
        return False

    def _hash_phase(self, paths: list[Path], result: SessionResult) -> None:
        outcomes = self.engine.hash_files(paths, cancelled=self.aborted)
        for path, outcome in outcomes.items():
            if isinstance(outcome, SfxDupeError):
                result.errors[path] = outcome
            else:
                result.hashes[path] = outcome
        result.duplicate_groups = group_duplicates(result.hashes)

    def _analyse(self, path: Path) -> tuple[bool, AssetFingerprint | None]:
        buffer = self.decoder.decode(path)
        cfg = self.config.session
        fp = self.config.fingerprint

        # Length in samples once resampled to the analysis rate
        if buffer.num_frames * fp.sample_rate / buffer.sample_rate < fp.window_size:
            raise AudioTooShortError(
                f"{path.name} is shorter than one analysis window ({fp.window_size} samples)"
            )

        dual_mono = False
        if cfg.detect_dual_mono and buffer.channel_count == 2:
            dual_mono = self.detector.is_dual_mono(buffer)

        fingerprint = None
        if cfg.find_subsets:
            fingerprint = self.fingerprinter.fingerprint(path, buffer)
        return dual_mono, fingerprint

    def _fingerprint_phase(
        self, paths: list[Path], result: SessionResult
    ) -> list[AssetFingerprint]:
        workers = self.config.session.fingerprint_workers or os.cpu_count() or 1
        fingerprints: list[AssetFingerprint] = []

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [(path, executor.submit(self._analyse, path)) for path in paths]
            for path, future in futures:
                if self.aborted():
                    for _, pending in futures:
                        pending.cancel()
                    break
                try:
                    dual_mono, fingerprint = future.result()
                except SfxDupeError as e:
                    logger.warning("[Session] %s: %s", path.name, e)
                    result.errors.setdefault(path, e)
                    continue
                except Exception as e:
                    logger.exception("[Session] Unexpected failure on %s", path.name)
                    error = AudioInputError(f"Cannot analyse {path.name}: {e}")
                    result.errors.setdefault(path, error)
                    continue
                if dual_mono:
                    result.dual_mono.append(path)
                if fingerprint is not None:
                    fingerprints.append(fingerprint)

        logger.info("[Session] Fingerprinted %d/%d files", len(fingerprints), len(paths))
        return fingerprints
