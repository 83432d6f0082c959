"""
Take adjustment: tape-style varispeed, transposition, gain and loop range.

Varispeed and transposition combine into one playback-rate factor, so time
and pitch change together (no independent time-stretch).
"""

import math
from dataclasses import dataclass
from typing import Any, Mapping

import numpy as np

from stemscope.core.buffers import AudioBuffer
from stemscope.settings import clamp, round_half_up

MIN_PLAYBACK_RATE = 0.05


@dataclass(frozen=True)
class AdjustSettings:
    """Integer-valued adjust parameters; defaults leave audio untouched."""

    varispeed_percent: int = 100
    pitch_semitones: int = 0
    input_gain_percent: int = 100
    output_gain_percent: int = 100

    def to_dict(self) -> dict[str, int]:
        return {
            "varispeedPercent": self.varispeed_percent,
            "pitchSemitones": self.pitch_semitones,
            "inputGainPercent": self.input_gain_percent,
            "outputGainPercent": self.output_gain_percent,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "AdjustSettings":
        return sanitize_adjust_settings(data)


DEFAULT_ADJUST = AdjustSettings()


@dataclass(frozen=True)
class LoopRange:
    """Loop region in percent of the buffer; ``end >= start + 1`` always holds."""

    start: int = 0
    end: int = 100


def _finite_or(value: Any, fallback: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    return number if math.isfinite(number) else fallback


def sanitize_adjust_settings(data: "Mapping[str, Any] | AdjustSettings | None") -> AdjustSettings:
    """
    Round and clamp adjust parameters; never raises.

    Non-finite or missing values take their defaults.
    """
    if isinstance(data, AdjustSettings):
        data = data.to_dict()
    if not isinstance(data, Mapping):
        data = {}

    def field(key: str, default: int, low: int, high: int) -> int:
        return int(clamp(round_half_up(_finite_or(data.get(key), default)), low, high))

    return AdjustSettings(
        varispeed_percent=field("varispeedPercent", DEFAULT_ADJUST.varispeed_percent, 50, 150),
        pitch_semitones=field("pitchSemitones", DEFAULT_ADJUST.pitch_semitones, -12, 12),
        input_gain_percent=field("inputGainPercent", DEFAULT_ADJUST.input_gain_percent, 0, 200),
        output_gain_percent=field("outputGainPercent", DEFAULT_ADJUST.output_gain_percent, 0, 200),
    )


def has_active_adjust(settings: "Mapping[str, Any] | AdjustSettings | None") -> bool:
    """True when any sanitized parameter differs from its default."""
    return sanitize_adjust_settings(settings) != DEFAULT_ADJUST


def playback_rate(settings: "Mapping[str, Any] | AdjustSettings | None") -> float:
    """``varispeed/100 * 2**(semitones/12)``, floored at 0.05."""
    safe = sanitize_adjust_settings(settings)
    varispeed = safe.varispeed_percent / 100.0
    transpose = 2.0 ** (safe.pitch_semitones / 12.0)
    return max(MIN_PLAYBACK_RATE, varispeed * transpose)


def estimated_length(n_samples: int, rate: float) -> int:
    """Output length of a buffer played back at ``rate``."""
    return max(1, int(math.ceil(n_samples / rate)))


def clamp_loop_range(start: Any, end: Any) -> LoopRange:
    """
    Clamp a loop region to whole percent with at least one point of length.

    Start lies in [0, 99] and end in [1, 100]; if end would not be after
    start, start is moved to ``end - 1``.
    """
    safe_start = int(clamp(round_half_up(_finite_or(start, 0.0) or 0.0), 0, 99))
    safe_end = int(clamp(round_half_up(_finite_or(end, 100.0) or 100.0), 1, 100))
    if safe_end <= safe_start:
        return LoopRange(start=max(0, safe_end - 1), end=safe_end)
    return LoopRange(start=safe_start, end=safe_end)


def slice_loop(buffer: AudioBuffer, loop: LoopRange) -> AudioBuffer:
    """Cut the loop region out of a buffer."""
    loop = clamp_loop_range(loop.start, loop.end)
    first = int(math.floor(buffer.n_samples * loop.start / 100.0))
    last = int(math.floor(buffer.n_samples * loop.end / 100.0))
    return AudioBuffer(buffer.samples[:, first:last].copy(), buffer.sample_rate)


def render_adjusted(
    buffer: AudioBuffer,
    settings: "Mapping[str, Any] | AdjustSettings | None",
) -> AudioBuffer:
    """
    Apply gain and varispeed to every channel of a buffer.

    Output sample ``i`` reads the source at ``i * rate`` with linear
    interpolation; reads past the end are silent.

    Args:
        buffer: Source take.
        settings: Adjust settings (sanitized here).

    Returns:
        The same buffer object when no parameter is active, otherwise a new
        buffer of ``ceil(n / rate)`` samples.
    """
    safe = sanitize_adjust_settings(settings)
    if not has_active_adjust(safe):
        return buffer

    rate = playback_rate(safe)
    gain = (safe.input_gain_percent / 100.0) * (safe.output_gain_percent / 100.0)
    length = estimated_length(buffer.n_samples, rate)
    positions = np.arange(length) * rate
    source_index = np.arange(buffer.n_samples)

    channels = [
        np.interp(positions, source_index, channel, right=0.0) * gain
        if buffer.n_samples
        else np.zeros(length)
        for channel in buffer.samples
    ]
    return AudioBuffer(np.vstack(channels), buffer.sample_rate)
