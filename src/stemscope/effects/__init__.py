"""Whole-buffer effect units: ``(samples, settings, sample_rate) -> samples``."""

from stemscope.effects.delay import apply_delay
from stemscope.effects.distortion import apply_distortion
from stemscope.effects.eq import apply_eq
from stemscope.effects.filter import apply_filter
from stemscope.effects.reverb import apply_reverb

__all__ = ["apply_eq", "apply_distortion", "apply_filter", "apply_delay", "apply_reverb"]
