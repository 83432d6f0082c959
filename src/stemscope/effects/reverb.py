"""
Convolution reverb with a synthesized impulse response.

No sampled rooms: the impulse response is decaying deterministic noise plus
a faint tonal component, normalized the way a browser ConvolverNode
normalizes its buffer. Responses are memoized per
(sample_rate, size, decay, tone).
"""

import functools
import logging

import numpy as np
from scipy import signal as scipy_signal

from stemscope.effects.base import mix_dry_wet
from stemscope.effects.biquad import apply_sections, tone_lowpass
from stemscope.settings import ReverbSettings, clamp

logger = logging.getLogger(__name__)

# Convolver normalization constants (-58 dB calibration at 44.1 kHz)
GAIN_CALIBRATION = 0.00125
GAIN_CALIBRATION_SAMPLE_RATE = 44100.0
MIN_POWER = 0.000125

IR_CACHE_SIZE = 32


def impulse_length(sample_rate: int, size: float) -> int:
    """0.25 s to 2.75 s depending on size."""
    seconds = 0.25 + clamp(size, 0.0, 100.0) / 100.0 * 2.5
    return max(1, int(np.floor(sample_rate * seconds)))


def synthesize_impulse(sample_rate: int, size: float, decay: float, tone: float) -> np.ndarray:
    """
    Build an unnormalized impulse response.

    Args:
        sample_rate: Sample rate in Hz.
        size: Room size in percent (sets the length).
        decay: Decay in percent (sets the envelope exponent).
        tone: Brightness in percent (sets the tonal component's pitch).

    Returns:
        Impulse response samples.
    """
    length = impulse_length(sample_rate, size)
    decay_pow = 0.15 + clamp(decay, 0.0, 100.0) / 100.0 * 2.85
    damping = 0.35 + clamp(tone, 0.0, 100.0) / 100.0 * 0.65

    i = np.arange(length, dtype=np.float64)
    t = i / max(1, length - 1)
    envelope = (1.0 - t) ** decay_pow

    # Hash-style pseudo-random noise, identical on every run
    pseudo = np.sin((i + 1.0) * 12.9898) * 43758.5453
    noise = (pseudo - np.floor(pseudo)) * 2.0 - 1.0
    tonal = np.sin((i / sample_rate) * (320.0 + 4200.0 * damping) * np.pi * 2.0) * 0.15

    return (noise * 0.9 + tonal) * envelope


def normalization_scale(response: np.ndarray, sample_rate: int) -> float:
    """Gain that brings an impulse response to the calibrated loudness."""
    power = float(np.sqrt(np.sum(response ** 2) / max(1, len(response))))
    if not np.isfinite(power) or power < MIN_POWER:
        power = MIN_POWER
    scale = 1.0 / power
    scale *= GAIN_CALIBRATION
    scale *= GAIN_CALIBRATION_SAMPLE_RATE / sample_rate
    return scale


@functools.lru_cache(maxsize=IR_CACHE_SIZE)
def _cached_impulse(sample_rate: int, size: int, decay: int, tone: int) -> np.ndarray:
    logger.debug("Synthesizing reverb IR: sr=%d size=%d decay=%d tone=%d", sample_rate, size, decay, tone)
    response = synthesize_impulse(sample_rate, size, decay, tone)
    response = response * normalization_scale(response, sample_rate)
    response.setflags(write=False)
    return response


def impulse_response(sample_rate: int, size: float, decay: float, tone: float) -> np.ndarray:
    """
    Memoized, normalized impulse response.

    Parameters are rounded to whole percent before lookup, so nearby
    settings share one response. The returned array is read-only.
    """
    return _cached_impulse(int(sample_rate), int(round(size)), int(round(decay)), int(round(tone)))


def clear_impulse_cache() -> None:
    _cached_impulse.cache_clear()


def apply_reverb(samples: np.ndarray, settings: ReverbSettings, sample_rate: int) -> np.ndarray:
    """Pre-delay, convolve, tone low-pass, then blend with the dry signal."""
    pre_delay = int(round(clamp(settings.pre_delay_ms, 0.0, 120.0) / 1000.0 * sample_rate))
    tone = tone_lowpass(settings.tone, sample_rate)

    def wet(x: np.ndarray) -> np.ndarray:
        n = len(x)
        if n == 0:
            return x.copy()
        response = impulse_response(sample_rate, settings.size, settings.decay, settings.tone)
        delayed = np.concatenate([np.zeros(pre_delay), x])[:n]
        convolved = scipy_signal.fftconvolve(delayed, response, mode="full")[:n]
        return apply_sections(convolved, [tone])

    return mix_dry_wet(samples, settings.mix, wet)
