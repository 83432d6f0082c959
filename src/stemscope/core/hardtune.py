"""
Frame-based pitch correction ("hardtune").

Each frame's pitch is found by normalized autocorrelation, snapped to the
nearest equal-tempered semitone, and the frame is resampled by the smoothed
correction ratio. Frames are Hann-windowed and overlap-added back together.
"""

import logging
from dataclasses import dataclass

import numpy as np
from scipy import signal as scipy_signal

from stemscope.settings import AutotuneSettings, clamp

logger = logging.getLogger(__name__)

MIN_PITCH_HZ = 80.0
MAX_PITCH_HZ = 1000.0
MIN_CORRELATION = 0.55
MIN_FRAME_ENERGY = 1e-6
MIN_WEIGHT = 1e-5

# Unvoiced frames ease the ratio back toward 1.0 at this rate
RELEASE_RATE = 0.08
ROBOT_ALPHA = 0.92


@dataclass(frozen=True)
class PitchDetection:
    hz: float | None
    confidence: float


def hz_to_midi(hz: float) -> float:
    return 69.0 + 12.0 * np.log2(hz / 440.0)


def midi_to_hz(midi: float) -> float:
    return 440.0 * 2.0 ** ((midi - 69.0) / 12.0)


def detect_pitch(frame: np.ndarray, sample_rate: int) -> PitchDetection:
    """
    Detect the fundamental of one frame by normalized autocorrelation.

    Only lags corresponding to 80-1000 Hz are searched. A result below a
    0.55 correlation is reported without a frequency.

    Args:
        frame: Frame samples.
        sample_rate: Sample rate in Hz.

    Returns:
        PitchDetection with ``hz`` set only for a confident detection.
    """
    n = len(frame)
    if n == 0 or not sample_rate:
        return PitchDetection(None, 0.0)

    centered = frame - frame.mean()
    energy = float(np.dot(centered, centered))
    if energy < MIN_FRAME_ENERGY:
        return PitchDetection(None, 0.0)

    min_lag = max(1, int(sample_rate // MAX_PITCH_HZ))
    max_lag = min(n - 2, int(sample_rate // MIN_PITCH_HZ))
    if max_lag <= min_lag:
        return PitchDetection(None, 0.0)

    lags = np.arange(min_lag, max_lag + 1)
    full = scipy_signal.correlate(centered, centered, mode="full", method="fft")
    corr = full[n - 1 + lags]

    # Energy of the overlapping head and tail for each lag
    cumulative = np.cumsum(centered ** 2)
    norm_head = cumulative[n - 1 - lags]
    norm_tail = cumulative[-1] - cumulative[lags - 1]
    denom = np.sqrt(norm_head * norm_tail)
    denom[denom == 0] = 1.0
    scores = corr / denom

    best = int(np.argmax(scores))
    best_score = float(scores[best])
    if best_score <= 0:
        return PitchDetection(None, 0.0)
    if best_score < MIN_CORRELATION:
        return PitchDetection(None, best_score)
    return PitchDetection(sample_rate / lags[best], best_score)


def hann_window(size: int) -> np.ndarray:
    """Symmetric Hann window."""
    if size <= 1:
        return np.ones(size)
    return np.hanning(size)


def apply_hardtune(
    samples: np.ndarray,
    sample_rate: int,
    settings: AutotuneSettings,
) -> np.ndarray:
    """
    Pitch-correct a mono signal.

    Args:
        samples: Mono input in [-1, 1].
        sample_rate: Sample rate in Hz.
        settings: amount, retune speed, robot mode and mix.

    Returns:
        Corrected signal, same length as the input, clamped to [-1, 1].
        The dry input is returned when it is empty or amount or mix is 0.
    """
    dry = np.array(samples, dtype=np.float64)
    mix = clamp(settings.mix, 0.0, 100.0) / 100.0
    amount = clamp(settings.amount, 0.0, 100.0) / 100.0
    retune_speed = clamp(settings.retune_speed, 0.0, 100.0) / 100.0
    if len(dry) == 0 or mix <= 0 or amount <= 0:
        return dry

    frame_size = 1024 if settings.robot else 2048
    hop_size = 256 if settings.robot else 512
    alpha = ROBOT_ALPHA if settings.robot else 0.15 + retune_speed * 0.75

    n = len(dry)
    wet_accum = np.zeros(n)
    weight_accum = np.zeros(n)
    window = hann_window(frame_size)
    positions = np.arange(frame_size, dtype=np.float64)

    smoothed_ratio = 1.0
    voiced_frames = 0
    for start in range(0, n, hop_size):
        frame = np.zeros(frame_size)
        chunk = dry[start:start + frame_size]
        frame[:len(chunk)] = chunk

        detection = detect_pitch(frame, sample_rate)
        if detection.hz is not None and detection.hz > 0:
            voiced_frames += 1
            target_hz = midi_to_hz(np.round(hz_to_midi(detection.hz)))
            raw_ratio = clamp(target_hz / detection.hz, 0.5, 2.0)
            desired_ratio = 1.0 + (raw_ratio - 1.0) * amount
            smoothed_ratio += (desired_ratio - smoothed_ratio) * alpha
        elif not settings.robot:
            smoothed_ratio += (1.0 - smoothed_ratio) * RELEASE_RATE

        span = min(frame_size, n - start)
        resampled = np.interp(positions[:span] / smoothed_ratio, positions, frame)
        wet_accum[start:start + span] += resampled * window[:span]
        weight_accum[start:start + span] += window[:span]

    logger.debug("Hardtune: %d voiced frames of %d", voiced_frames, -(-n // hop_size))

    covered = weight_accum > MIN_WEIGHT
    wet = dry.copy()
    wet[covered] = wet_accum[covered] / weight_accum[covered]
    return np.clip(dry * (1.0 - mix) + wet * mix, -1.0, 1.0)
