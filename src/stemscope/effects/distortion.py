"""
Waveshaping distortion.

Signal path: pre-gain -> soft-clip curve (4x oversampled) -> high-pass ->
low-pass -> output gain, then dry/wet.
"""

import numpy as np
from scipy import signal as scipy_signal

from stemscope.effects.base import mix_dry_wet
from stemscope.effects.biquad import apply_sections, design_biquad, tone_lowpass
from stemscope.settings import DistortionSettings

CURVE_SAMPLES = 2048
OVERSAMPLE = 4


def distortion_curve(drive: float, n_samples: int = CURVE_SAMPLES) -> np.ndarray:
    """
    Soft-clip transfer curve over inputs in [-1, 1].

    Harder drive pushes the knee towards the origin.
    """
    k = 1.0 + (min(100.0, max(0.0, drive)) / 100.0) * 80.0
    deg = np.pi / 180.0
    x = np.linspace(-1.0, 1.0, n_samples)
    return ((3.0 + k) * x * 20.0 * deg) / (np.pi + k * np.abs(x))


def shape(samples: np.ndarray, curve: np.ndarray) -> np.ndarray:
    """Look samples up in a transfer curve; input outside [-1, 1] is held at the ends."""
    grid = np.linspace(-1.0, 1.0, len(curve))
    return np.interp(samples, grid, curve)


def apply_distortion(samples: np.ndarray, settings: DistortionSettings, sample_rate: int) -> np.ndarray:
    """Distort, tone-shape and blend one buffer."""
    curve = distortion_curve(settings.drive)
    pre_gain = 1.0 + (settings.drive / 100.0) * 8.0
    sections = [
        design_biquad("highpass", 40.0 + settings.tone * 3.0, sample_rate, q=0.7),
        tone_lowpass(settings.tone, sample_rate),
    ]
    post_gain = min(150.0, max(0.0, settings.output)) / 100.0

    def wet(x: np.ndarray) -> np.ndarray:
        if len(x) == 0:
            return x.copy()
        upsampled = scipy_signal.resample_poly(x * pre_gain, OVERSAMPLE, 1)
        shaped = scipy_signal.resample_poly(shape(upsampled, curve), 1, OVERSAMPLE)[:len(x)]
        return apply_sections(shaped, sections) * post_gain

    return mix_dry_wet(samples, settings.mix, wet)
