"""
Tempo estimation from an onset-strength envelope.

Frame energies are turned into an onset envelope and scored against every
integer tempo in the search range with a fractional-lag autocorrelation.
This is a single global estimate: syncopated or tempo-varying material is
not tracked.
"""

import logging
from dataclasses import dataclass

import librosa
import numpy as np

from stemscope.core.buffers import resample_linear
from stemscope.settings import round_half_up

logger = logging.getLogger(__name__)

ANALYSIS_RATE = 11025
FRAME_SIZE = 512
MIN_FRAMES = 16
NOISE_FLOOR_RATIO = 0.85

MIN_BPM = 60
MAX_BPM = 200

# Autocorrelation scores a tempo and its multiples alike; results are
# folded into this octave.
FOLD_LOW_BPM = 80
FOLD_HIGH_BPM = 180


@dataclass(frozen=True)
class TempoEstimate:
    """Global tempo estimate; both fields are None when undetectable."""

    bpm: int | None
    confidence: float | None


NO_TEMPO = TempoEstimate(bpm=None, confidence=None)


def onset_envelope(y: np.ndarray, frame_size: int = FRAME_SIZE) -> np.ndarray:
    """
    Positive energy differences between consecutive frames.

    RMS is taken over non-overlapping frames, a noise floor of 0.85x the
    mean energy is removed, and only rising energy is kept.

    Args:
        y: Mono signal with at least one full frame.
        frame_size: Samples per frame.

    Returns:
        Onset strength per frame (first frame is always 0).
    """
    energies = librosa.feature.rms(
        y=np.ascontiguousarray(y, dtype=np.float64),
        frame_length=frame_size,
        hop_length=frame_size,
        center=False,
    )[0]
    energies = np.maximum(0.0, energies - energies.mean() * NOISE_FLOOR_RATIO)

    onset = np.zeros_like(energies)
    onset[1:] = np.maximum(0.0, np.diff(energies))
    return onset


def lag_score(onset: np.ndarray, lag: float) -> float:
    """
    Autocorrelation of the onset envelope at a fractional frame lag.

    The lagged value is interpolated between ``lag`` and ``lag + 1``.
    """
    lag_int = int(np.floor(lag))
    frac = lag - lag_int
    if lag_int < 1 or lag_int + 1 >= len(onset):
        return 0.0

    current = onset[lag_int + 1:]
    previous = (
        onset[1:len(onset) - lag_int] * (1.0 - frac)
        + onset[:len(onset) - lag_int - 1] * frac
    )
    return float(np.dot(current, previous))


def fold_bpm(bpm: float) -> float:
    """Double or halve a tempo until it lies in the folding octave."""
    while bpm < FOLD_LOW_BPM:
        bpm *= 2
    while bpm > FOLD_HIGH_BPM:
        bpm /= 2
    return bpm


def estimate_tempo(
    y: np.ndarray,
    sr: int,
    analysis_rate: int = ANALYSIS_RATE,
) -> TempoEstimate:
    """
    Estimate the tempo of a mono signal.

    Args:
        y: Mono audio samples.
        sr: Sample rate of ``y``.
        analysis_rate: Signals above this rate are downsampled to it first.

    Returns:
        TempoEstimate with an integer BPM folded into [80, 180] and a
        best/(best+second) confidence, or NO_TEMPO for short or silent input.
    """
    y = np.asarray(y, dtype=np.float64)
    if sr > analysis_rate:
        y = resample_linear(y, sr, analysis_rate)
        sr = analysis_rate

    frame_count = len(y) // FRAME_SIZE
    if frame_count < MIN_FRAMES:
        logger.debug("Tempo: only %d frames, need %d", frame_count, MIN_FRAMES)
        return NO_TEMPO

    onset = onset_envelope(y)
    frames_per_second = sr / FRAME_SIZE

    best_score = -np.inf
    second_score = -np.inf
    best_bpm = 0
    for bpm in range(MIN_BPM, MAX_BPM + 1):
        lag = frames_per_second * 60.0 / bpm
        if lag < 1:
            continue
        score = lag_score(onset, lag)
        if score > best_score:
            second_score = best_score
            best_score = score
            best_bpm = bpm
        elif score > second_score:
            second_score = score

    if not np.isfinite(best_score) or best_score <= 0 or not best_bpm:
        return NO_TEMPO

    confidence = best_score / max(best_score + max(0.0, second_score), 1e-6)
    confidence = float(np.clip(confidence, 0.0, 1.0))
    return TempoEstimate(
        bpm=round_half_up(fold_bpm(best_bpm)),
        confidence=round(confidence, 3),
    )
