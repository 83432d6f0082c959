"""Five-band equalizer: low shelf, three peaking bands, high shelf."""

import numpy as np

from stemscope.effects.biquad import apply_sections, design_biquad
from stemscope.settings import EqSettings


def apply_eq(samples: np.ndarray, settings: EqSettings, sample_rate: int) -> np.ndarray:
    """
    Run the enabled bands in series.

    Returns the input array itself when the unit is disabled or no enabled
    band has a non-zero gain.
    """
    if not settings.is_effective:
        return samples

    sections = [
        design_biquad(band.kind, band.frequency, sample_rate, q=band.q, gain_db=band.gain_db)
        for band in settings.bands
        if band.enabled
    ]
    return apply_sections(samples, sections)
