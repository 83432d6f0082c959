"""
Feedback delay with a tone low-pass inside the loop.

The wet output is the filtered delay line; each repeat is fed back through
the same filter, so echoes darken as they decay.
"""

import logging

import numpy as np
from scipy import signal as scipy_signal

from stemscope.effects.base import mix_dry_wet
from stemscope.effects.biquad import tone_lowpass
from stemscope.settings import DelaySettings, clamp, delay_time_ms

logger = logging.getLogger(__name__)

MIN_TIME_MS = 40.0
MAX_TIME_MS = 1200.0


def resolve_delay_time_ms(settings: DelaySettings, bpm: float | None = None) -> float:
    """Free time, or the synced note division at ``bpm``."""
    if settings.sync_mode == "bpm":
        time_ms = delay_time_ms(bpm, settings.note_division)
    else:
        time_ms = settings.time_ms
    return clamp(time_ms, MIN_TIME_MS, MAX_TIME_MS)


def feedback_delay_line(
    samples: np.ndarray,
    delay_samples: int,
    feedback: float,
    loop_filter: np.ndarray,
) -> np.ndarray:
    """
    Filtered recirculating delay line.

    ``line[n] = x[n] + feedback * out[n]`` and ``out = filter(line[n - d])``.
    The buffer is processed in blocks of one delay length, which is the
    longest span whose input is already known.

    Args:
        samples: Input signal.
        delay_samples: Delay length in samples (at least 1).
        feedback: Feedback gain in [0, 1).
        loop_filter: Second-order sections of the in-loop filter.

    Returns:
        Delay line output, same length as the input.
    """
    n = len(samples)
    d = max(1, int(delay_samples))
    line = np.zeros(n)
    out = np.zeros(n)
    zi = np.zeros((loop_filter.shape[0], 2))

    for start in range(0, n, d):
        end = min(start + d, n)
        if start < d:
            delayed = np.zeros(end - start)
        else:
            delayed = line[start - d:end - d]
        block, zi = scipy_signal.sosfilt(loop_filter, delayed, zi=zi)
        out[start:end] = block
        line[start:end] = samples[start:end] + feedback * block

    return out


def apply_delay(
    samples: np.ndarray,
    settings: DelaySettings,
    sample_rate: int,
    bpm: float | None = None,
) -> np.ndarray:
    """
    Apply the delay unit.

    Args:
        samples: Mono input.
        settings: Sanitized delay settings.
        sample_rate: Sample rate in Hz.
        bpm: Project tempo, used when the delay is synced.

    Returns:
        Blended output, same length as the input (tails past the end are cut).
    """
    time_ms = resolve_delay_time_ms(settings, bpm)
    delay_samples = int(round(time_ms / 1000.0 * sample_rate))
    feedback = clamp(settings.feedback, 0.0, 90.0) / 100.0
    loop_filter = tone_lowpass(settings.tone, sample_rate)
    logger.debug("Delay: %.1f ms (%d samples), feedback %.2f", time_ms, delay_samples, feedback)

    return mix_dry_wet(
        samples,
        settings.mix,
        lambda x: feedback_delay_line(x, delay_samples, feedback, loop_filter),
    )
