"""
Second-order filter designs (Audio EQ Cookbook, R. Bristow-Johnson).

Each design returns a single second-order section ``[b0, b1, b2, 1, a1, a2]``
so that sections can be stacked and run with ``scipy.signal.sosfilt``.
"""

import numpy as np
from scipy import signal as scipy_signal

BUTTERWORTH_Q = 0.7071

# Cutoffs are kept just under Nyquist
MAX_NYQUIST_RATIO = 0.99


def design_biquad(
    kind: str,
    frequency: float,
    sample_rate: int,
    q: float = BUTTERWORTH_Q,
    gain_db: float = 0.0,
) -> np.ndarray:
    """
    Design one biquad section.

    Args:
        kind: "lowpass", "highpass", "bandpass", "peaking", "lowshelf"
              or "highshelf".
        frequency: Cutoff / center / corner frequency in Hz.
        sample_rate: Sample rate in Hz.
        q: Linear quality factor. Bandwidth for peaking and bandpass, slope
           for shelves. Browser biquads read lowpass/highpass Q in dB and
           ignore it on shelves; here it is linear for every kind, so a
           resonance of 1.0 is a gentle 1.0 Q, not a 1 dB peak.
        gain_db: Gain for peaking and shelf designs.

    Returns:
        Array shaped (1, 6).
    """
    nyquist = sample_rate / 2.0
    frequency = min(max(float(frequency), 1.0), nyquist * MAX_NYQUIST_RATIO)
    q = max(float(q), 1e-4)

    w0 = 2.0 * np.pi * frequency / sample_rate
    cos_w0 = np.cos(w0)
    alpha = np.sin(w0) / (2.0 * q)
    a = 10.0 ** (gain_db / 40.0)

    if kind == "lowpass":
        b = [(1 - cos_w0) / 2, 1 - cos_w0, (1 - cos_w0) / 2]
        den = [1 + alpha, -2 * cos_w0, 1 - alpha]
    elif kind == "highpass":
        b = [(1 + cos_w0) / 2, -(1 + cos_w0), (1 + cos_w0) / 2]
        den = [1 + alpha, -2 * cos_w0, 1 - alpha]
    elif kind == "bandpass":
        b = [alpha, 0.0, -alpha]
        den = [1 + alpha, -2 * cos_w0, 1 - alpha]
    elif kind == "peaking":
        b = [1 + alpha * a, -2 * cos_w0, 1 - alpha * a]
        den = [1 + alpha / a, -2 * cos_w0, 1 - alpha / a]
    elif kind == "lowshelf":
        sq = 2 * np.sqrt(a) * alpha
        b = [
            a * ((a + 1) - (a - 1) * cos_w0 + sq),
            2 * a * ((a - 1) - (a + 1) * cos_w0),
            a * ((a + 1) - (a - 1) * cos_w0 - sq),
        ]
        den = [
            (a + 1) + (a - 1) * cos_w0 + sq,
            -2 * ((a - 1) + (a + 1) * cos_w0),
            (a + 1) + (a - 1) * cos_w0 - sq,
        ]
    elif kind == "highshelf":
        sq = 2 * np.sqrt(a) * alpha
        b = [
            a * ((a + 1) + (a - 1) * cos_w0 + sq),
            -2 * a * ((a - 1) + (a + 1) * cos_w0),
            a * ((a + 1) + (a - 1) * cos_w0 - sq),
        ]
        den = [
            (a + 1) - (a - 1) * cos_w0 + sq,
            2 * ((a - 1) - (a + 1) * cos_w0),
            (a + 1) - (a - 1) * cos_w0 - sq,
        ]
    else:
        raise ValueError(f"Unknown biquad type: {kind}")

    a0 = den[0]
    return np.array([[b[0] / a0, b[1] / a0, b[2] / a0, 1.0, den[1] / a0, den[2] / a0]])


def apply_sections(samples: np.ndarray, sections: list[np.ndarray]) -> np.ndarray:
    """Run samples through a cascade of biquad sections."""
    if not sections:
        return np.array(samples, dtype=np.float64)
    sos = np.vstack(sections)
    return scipy_signal.sosfilt(sos, samples)


def tone_lowpass(tone: float, sample_rate: int) -> np.ndarray:
    """The tone control low-pass shared by distortion, delay and reverb."""
    return design_biquad("lowpass", 800.0 + tone * 150.0, sample_rate, q=0.7)
