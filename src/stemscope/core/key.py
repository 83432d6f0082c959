"""
Key estimation by chroma / key-profile correlation.

A chroma vector is built from narrowband energy detectors tuned to every
semitone between C2 and B6 (restricted to 55-1900 Hz), then scored against
the 24 rotations of the Krumhansl-Kessler major and minor profiles.
"""

import logging
from dataclasses import dataclass

import librosa
import numpy as np

from stemscope.core.buffers import resample_linear

logger = logging.getLogger(__name__)

ANALYSIS_RATE = 11025
FRAME_SIZE = 4096
HOP_SIZE = 2048
MIN_FRAME_RMS = 0.01

MIDI_LOW = 36
MIDI_HIGH = 95
MIN_HZ = 55.0
MAX_HZ = 1900.0

# Flat spelling, indexed by pitch class (C = 0)
KEY_LABELS = ("C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B")

MAJOR_PROFILE = np.array([6.35, 2.23, 3.48, 2.33, 4.38, 4.09, 2.52, 5.19, 2.39, 3.66, 2.29, 2.88])
MINOR_PROFILE = np.array([6.33, 2.68, 3.52, 5.38, 2.60, 3.53, 2.54, 4.75, 3.98, 2.69, 3.34, 3.17])

MODES = ("major", "minor")


@dataclass(frozen=True)
class KeyEstimate:
    """Estimated key; all fields are None when undetectable."""

    root: str | None
    mode: str | None
    confidence: float | None


NO_KEY = KeyEstimate(root=None, mode=None, confidence=None)


def midi_to_hz(midi: float) -> float:
    return 440.0 * 2.0 ** ((midi - 69) / 12.0)


def candidate_pitches() -> list[tuple[int, float]]:
    """(pitch_class, frequency) pairs for every semitone in the detector band."""
    pitches = []
    for midi in range(MIDI_LOW, MIDI_HIGH + 1):
        hz = midi_to_hz(midi)
        if MIN_HZ <= hz <= MAX_HZ:
            pitches.append((midi % 12, hz))
    return pitches


def narrowband_power(frames: np.ndarray, sr: int, frequencies: np.ndarray) -> np.ndarray:
    """
    Single-frequency power of each frame at each analysis frequency.

    Equivalent to running a Goertzel resonator per frequency over each
    frame: the result is ``|sum_n x[n] exp(-j w n)|^2``.

    Args:
        frames: Array shaped (frame_size, n_frames).
        sr: Sample rate.
        frequencies: Analysis frequencies in Hz.

    Returns:
        Array shaped (n_frequencies, n_frames).
    """
    n = np.arange(frames.shape[0])
    omega = 2.0 * np.pi * np.asarray(frequencies)[:, np.newaxis] / sr
    basis = np.exp(-1j * omega * n[np.newaxis, :])
    spectrum = basis @ frames
    return np.abs(spectrum) ** 2


def chroma_vector(y: np.ndarray, sr: int) -> np.ndarray:
    """
    RMS-weighted 12-bin chroma accumulated over all voiced frames.

    Frames quieter than 0.01 RMS are skipped.

    Args:
        y: Mono signal with at least one full frame.
        sr: Sample rate.

    Returns:
        Unnormalized chroma energies, indexed by pitch class.
    """
    frames = librosa.util.frame(
        np.ascontiguousarray(y, dtype=np.float64),
        frame_length=FRAME_SIZE,
        hop_length=HOP_SIZE,
    )
    rms = np.sqrt(np.mean(frames ** 2, axis=0))
    voiced = rms >= MIN_FRAME_RMS
    chroma = np.zeros(12)
    if not np.any(voiced):
        return chroma

    pitches = candidate_pitches()
    pitch_classes = np.array([pc for pc, _ in pitches])
    frequencies = np.array([hz for _, hz in pitches])

    power = narrowband_power(frames[:, voiced], sr, frequencies)
    weighted = power @ rms[voiced]
    np.add.at(chroma, pitch_classes, weighted)
    return chroma


def rotate_profile(profile: np.ndarray, shift: int) -> np.ndarray:
    """Rotate a C-based profile so that its tonic lands on ``shift``."""
    return np.roll(profile, shift)


def estimate_key(
    y: np.ndarray,
    sr: int,
    analysis_rate: int = ANALYSIS_RATE,
) -> KeyEstimate:
    """
    Estimate the key of a mono signal.

    Args:
        y: Mono audio samples.
        sr: Sample rate of ``y``.
        analysis_rate: Signals above this rate are downsampled to it first.

    Returns:
        KeyEstimate with flat-spelled root, mode and a separation-based
        confidence, or NO_KEY when there is too little tonal energy.
    """
    y = np.asarray(y, dtype=np.float64)
    if sr > analysis_rate:
        y = resample_linear(y, sr, analysis_rate)
        sr = analysis_rate

    if len(y) < FRAME_SIZE:
        logger.debug("Key: %d samples is shorter than one frame", len(y))
        return NO_KEY

    chroma = chroma_vector(y, sr)
    total = float(chroma.sum())
    if not np.isfinite(total) or total <= 0:
        return NO_KEY

    normalized = chroma / total
    best_score = -np.inf
    second_score = -np.inf
    best_pitch_class = 0
    best_mode = "minor"

    for shift in range(12):
        for mode, profile in zip(MODES, (MAJOR_PROFILE, MINOR_PROFILE)):
            score = float(np.dot(normalized, rotate_profile(profile, shift)))
            if score > best_score:
                second_score = best_score
                best_score = score
                best_pitch_class = shift
                best_mode = mode
            elif score > second_score:
                second_score = score

    confidence = (best_score - max(0.0, second_score)) / max(best_score, 1e-6)
    confidence = float(np.clip(confidence, 0.0, 1.0))
    return KeyEstimate(
        root=KEY_LABELS[best_pitch_class],
        mode=best_mode,
        confidence=round(confidence, 3),
    )
