"""Single resonant filter (low-pass, high-pass or band-pass)."""

import numpy as np

from stemscope.effects.base import mix_dry_wet
from stemscope.effects.biquad import apply_sections, design_biquad
from stemscope.settings import FilterSettings


def apply_filter(samples: np.ndarray, settings: FilterSettings, sample_rate: int) -> np.ndarray:
    """Filter at ``cutoff`` with ``resonance`` as Q, blended by ``mix``."""
    section = design_biquad(settings.mode, settings.cutoff, sample_rate, q=settings.resonance)
    return mix_dry_wet(samples, settings.mix, lambda x: apply_sections(x, [section]))
