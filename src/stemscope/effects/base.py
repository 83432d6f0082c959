"""Dry/wet blending shared by all effect units."""

from collections.abc import Callable

import numpy as np


def mix_dry_wet(
    dry: np.ndarray,
    mix_percent: float,
    render_wet: Callable[[np.ndarray], np.ndarray],
) -> np.ndarray:
    """
    Blend ``dry * (1 - mix) + wet * mix``.

    The wet path is not rendered at all when mix is 0, so the dry input
    comes back unchanged.

    Args:
        dry: Input samples.
        mix_percent: Wet amount in percent, clamped to [0, 100].
        render_wet: Produces the wet signal from the dry one.

    Returns:
        Blended samples, same length as ``dry``.
    """
    dry = np.asarray(dry, dtype=np.float64)
    mix = min(100.0, max(0.0, float(mix_percent))) / 100.0
    if mix <= 0:
        return dry.copy()

    wet = np.asarray(render_wet(dry), dtype=np.float64)
    if len(wet) != len(dry):
        raise ValueError(f"Wet signal has {len(wet)} samples, expected {len(dry)}")
    return dry * (1.0 - mix) + wet * mix
