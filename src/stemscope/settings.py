"""
Effect chain settings.

Settings arrive as JSON-shaped dictionaries (camelCase keys) owned by the
host application. ``sanitize_chain_settings`` turns any such value into a
fully populated, range-clamped, immutable ChainSettings snapshot; it never
raises. Unknown or non-finite values fall back to defaults.
"""

import math
from dataclasses import dataclass, replace
from typing import Any, Mapping

FILTER_MODES = ("lowpass", "highpass", "bandpass")
SYNC_MODES = ("free", "bpm")

# Fraction of a quarter note for each delay division
DELAY_DIVISIONS = {
    "1/4": 1.0,
    "1/8": 0.5,
    "1/8D": 0.75,
    "1/8T": 1.0 / 3.0,
    "1/16": 0.25,
}

DEFAULT_FILTER_MODE = "lowpass"
DEFAULT_DIVISION = "1/8"
DEFAULT_BPM = 90
MIN_BPM = 40
MAX_BPM = 240


def clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 going up."""
    return int(math.floor(value + 0.5))


def _number(value: Any, fallback: float) -> float:
    """Coerce to float; missing, zero or non-finite input gives ``fallback``."""
    if isinstance(value, bool):
        value = float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number) or number == 0:
        return fallback
    return number


def _section(data: Mapping[str, Any] | None, key: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        return {}
    section = data.get(key)
    return section if isinstance(section, Mapping) else {}


@dataclass(frozen=True)
class EqBand:
    """One equalizer band. Role (``kind``) and label never change."""

    label: str
    kind: str  # "lowshelf", "peaking" or "highshelf"
    frequency: float
    gain_db: float = 0.0
    q: float = 1.0
    enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "label": self.label,
            "type": self.kind,
            "frequency": self.frequency,
            "gainDb": self.gain_db,
            "q": self.q,
        }


DEFAULT_EQ_BANDS = (
    EqBand("Low Shelf", "lowshelf", 120.0, q=0.7),
    EqBand("Low-Mid", "peaking", 350.0, q=1.0),
    EqBand("Mid", "peaking", 1200.0, q=1.0),
    EqBand("High-Mid", "peaking", 4200.0, q=1.0),
    EqBand("High Shelf", "highshelf", 9000.0, q=0.7),
)


@dataclass(frozen=True)
class EqSettings:
    enabled: bool = False
    bands: tuple[EqBand, ...] = DEFAULT_EQ_BANDS

    @property
    def is_effective(self) -> bool:
        """Enabled with at least one enabled band that changes the gain."""
        return self.enabled and any(
            band.enabled and abs(band.gain_db) > 0.01 for band in self.bands
        )


@dataclass(frozen=True)
class AutotuneSettings:
    enabled: bool = False
    amount: float = 45.0
    retune_speed: float = 70.0
    robot: bool = False
    mix: float = 60.0


@dataclass(frozen=True)
class DistortionSettings:
    enabled: bool = False
    drive: float = 28.0
    tone: float = 55.0
    output: float = 100.0
    mix: float = 40.0


@dataclass(frozen=True)
class FilterSettings:
    enabled: bool = False
    mode: str = DEFAULT_FILTER_MODE
    cutoff: float = 14000.0
    resonance: float = 0.8
    mix: float = 100.0


@dataclass(frozen=True)
class DelaySettings:
    enabled: bool = False
    sync_mode: str = "free"
    time_ms: float = 220.0
    note_division: str = DEFAULT_DIVISION
    feedback: float = 30.0
    tone: float = 45.0
    mix: float = 35.0


@dataclass(frozen=True)
class ReverbSettings:
    enabled: bool = False
    size: float = 35.0
    decay: float = 45.0
    pre_delay_ms: float = 12.0
    tone: float = 45.0
    mix: float = 28.0


@dataclass(frozen=True)
class ChainSettings:
    """Complete effect chain snapshot, one section per unit."""

    eq: EqSettings = EqSettings()
    autotune: AutotuneSettings = AutotuneSettings()
    distortion: DistortionSettings = DistortionSettings()
    filter: FilterSettings = FilterSettings()
    delay: DelaySettings = DelaySettings()
    reverb: ReverbSettings = ReverbSettings()

    @property
    def any_enabled(self) -> bool:
        return any(
            section.enabled
            for section in (self.eq, self.autotune, self.distortion, self.filter, self.delay, self.reverb)
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-shaped representation with camelCase keys."""
        return {
            "eq": {
                "enabled": self.eq.enabled,
                "bands": [band.to_dict() for band in self.eq.bands],
            },
            "autotune": {
                "enabled": self.autotune.enabled,
                "amount": self.autotune.amount,
                "retuneSpeed": self.autotune.retune_speed,
                "robot": self.autotune.robot,
                "mix": self.autotune.mix,
            },
            "distortion": {
                "enabled": self.distortion.enabled,
                "drive": self.distortion.drive,
                "tone": self.distortion.tone,
                "output": self.distortion.output,
                "mix": self.distortion.mix,
            },
            "filter": {
                "enabled": self.filter.enabled,
                "mode": self.filter.mode,
                "cutoff": self.filter.cutoff,
                "resonance": self.filter.resonance,
                "mix": self.filter.mix,
            },
            "delay": {
                "enabled": self.delay.enabled,
                "syncMode": self.delay.sync_mode,
                "timeMs": self.delay.time_ms,
                "noteDivision": self.delay.note_division,
                "feedback": self.delay.feedback,
                "tone": self.delay.tone,
                "mix": self.delay.mix,
            },
            "reverb": {
                "enabled": self.reverb.enabled,
                "size": self.reverb.size,
                "decay": self.reverb.decay,
                "preDelayMs": self.reverb.pre_delay_ms,
                "tone": self.reverb.tone,
                "mix": self.reverb.mix,
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "ChainSettings":
        return sanitize_chain_settings(data)


def default_chain_settings() -> ChainSettings:
    """All units disabled, parameters at their starting positions."""
    return ChainSettings()


def _sanitize_band(data: Any, fallback: EqBand) -> EqBand:
    if not isinstance(data, Mapping):
        data = fallback.to_dict()
    return replace(
        fallback,
        enabled=bool(data.get("enabled")),
        frequency=clamp(_number(data.get("frequency"), fallback.frequency), 20.0, 20000.0),
        gain_db=clamp(_number(data.get("gainDb"), 0.0), -18.0, 18.0),
        q=clamp(_number(data.get("q"), fallback.q), 0.2, 12.0),
    )


def sanitize_chain_settings(data: "Mapping[str, Any] | ChainSettings | None") -> ChainSettings:
    """
    Build a fully populated, clamped ChainSettings from any input.

    Idempotent: sanitizing an already sanitized value returns an equal value.

    Args:
        data: JSON-shaped settings, an existing ChainSettings, or None.

    Returns:
        ChainSettings with every parameter inside its documented range.
    """
    if isinstance(data, ChainSettings):
        data = data.to_dict()
    base = default_chain_settings()

    eq = _section(data, "eq")
    raw_bands = eq.get("bands")
    if not isinstance(raw_bands, (list, tuple)):
        raw_bands = ()
    bands = tuple(
        _sanitize_band(raw_bands[i] if i < len(raw_bands) else fallback, fallback)
        for i, fallback in enumerate(base.eq.bands)
    )

    autotune = _section(data, "autotune")
    distortion = _section(data, "distortion")
    filt = _section(data, "filter")
    delay = _section(data, "delay")
    reverb = _section(data, "reverb")

    mode = filt.get("mode")
    division = delay.get("noteDivision")

    return ChainSettings(
        eq=EqSettings(enabled=bool(eq.get("enabled")), bands=bands),
        autotune=AutotuneSettings(
            enabled=bool(autotune.get("enabled")),
            amount=clamp(_number(autotune.get("amount"), 0.0), 0.0, 100.0),
            retune_speed=clamp(_number(autotune.get("retuneSpeed"), 0.0), 0.0, 100.0),
            robot=bool(autotune.get("robot")),
            mix=clamp(_number(autotune.get("mix"), 0.0), 0.0, 100.0),
        ),
        distortion=DistortionSettings(
            enabled=bool(distortion.get("enabled")),
            drive=clamp(_number(distortion.get("drive"), 0.0), 0.0, 100.0),
            tone=clamp(_number(distortion.get("tone"), 0.0), 0.0, 100.0),
            output=clamp(_number(distortion.get("output"), 0.0), 0.0, 150.0),
            mix=clamp(_number(distortion.get("mix"), 0.0), 0.0, 100.0),
        ),
        filter=FilterSettings(
            enabled=bool(filt.get("enabled")),
            mode=mode if mode in FILTER_MODES else DEFAULT_FILTER_MODE,
            cutoff=clamp(_number(filt.get("cutoff"), base.filter.cutoff), 20.0, 20000.0),
            resonance=clamp(_number(filt.get("resonance"), base.filter.resonance), 0.1, 20.0),
            mix=clamp(_number(filt.get("mix"), 0.0), 0.0, 100.0),
        ),
        delay=DelaySettings(
            enabled=bool(delay.get("enabled")),
            sync_mode="bpm" if delay.get("syncMode") == "bpm" else "free",
            time_ms=clamp(_number(delay.get("timeMs"), base.delay.time_ms), 40.0, 1200.0),
            note_division=division if division in DELAY_DIVISIONS else DEFAULT_DIVISION,
            feedback=clamp(_number(delay.get("feedback"), 0.0), 0.0, 90.0),
            tone=clamp(_number(delay.get("tone"), 0.0), 0.0, 100.0),
            mix=clamp(_number(delay.get("mix"), 0.0), 0.0, 100.0),
        ),
        reverb=ReverbSettings(
            enabled=bool(reverb.get("enabled")),
            size=clamp(_number(reverb.get("size"), 0.0), 0.0, 100.0),
            decay=clamp(_number(reverb.get("decay"), 0.0), 0.0, 100.0),
            pre_delay_ms=clamp(_number(reverb.get("preDelayMs"), 0.0), 0.0, 120.0),
            tone=clamp(_number(reverb.get("tone"), 0.0), 0.0, 100.0),
            mix=clamp(_number(reverb.get("mix"), 0.0), 0.0, 100.0),
        ),
    )


def has_enabled_fx(settings: "Mapping[str, Any] | ChainSettings | None") -> bool:
    """True when at least one unit of the sanitized chain is enabled."""
    return sanitize_chain_settings(settings).any_enabled


def safe_bpm(value: Any, fallback: int = DEFAULT_BPM) -> int:
    """Round a tempo and clamp it to [40, 240]; unusable input gives ``fallback``."""
    number = _number(value, 0.0)
    if number == 0:
        return fallback
    return int(clamp(round_half_up(number), MIN_BPM, MAX_BPM))


def delay_time_ms(bpm: Any, division: str) -> int:
    """
    Delay time of a note division at a tempo.

    Args:
        bpm: Tempo; sanitized to an integer in [40, 240].
        division: One of DELAY_DIVISIONS; unknown values use 1/8.

    Returns:
        Delay time in whole milliseconds.
    """
    ratio = DELAY_DIVISIONS.get(division, DELAY_DIVISIONS[DEFAULT_DIVISION])
    quarter_ms = 60000.0 / safe_bpm(bpm)
    return round_half_up(quarter_ms * ratio)
