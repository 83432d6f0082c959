"""
Engine configuration.

Defaults are the values the analysis and render paths were tuned with.
Every field can be overridden from the environment with a ``STEMSCOPE_``
prefixed variable, and the CLI overrides the environment.
"""

import logging
import math
import os
from dataclasses import dataclass, field, replace
from pathlib import Path

logger = logging.getLogger(__name__)

ENV_PREFIX = "STEMSCOPE_"


def _default_cache_dir() -> Path:
    return Path.home() / ".cache" / "stemscope" / "analysis"


@dataclass(frozen=True)
class EngineConfig:
    """Tunable engine settings."""

    # Heavy analysis runs on a downsampled copy of the first N seconds.
    analysis_sample_rate: int = 11025
    analysis_max_seconds: float = 75.0

    # Preview renders are coalesced for this long before starting.
    preview_debounce_ms: float = 300.0

    # Tempo used by synced delay when the caller has none.
    default_bpm: int = 90

    cache_dir: Path = field(default_factory=_default_cache_dir)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "EngineConfig":
        """
        Build a config from ``STEMSCOPE_*`` environment variables.

        Unparseable values are logged and ignored.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``).

        Returns:
            EngineConfig with overrides applied.
        """
        environ = os.environ if environ is None else environ
        config = cls()
        overrides: dict[str, object] = {}

        numeric = {
            "analysis_sample_rate": int,
            "analysis_max_seconds": float,
            "preview_debounce_ms": float,
            "default_bpm": int,
        }
        for name, cast in numeric.items():
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is None:
                continue
            try:
                value = cast(raw)
            except ValueError:
                logger.warning("Ignoring %s%s=%r: not a number", ENV_PREFIX, name.upper(), raw)
                continue
            if not math.isfinite(value) or value <= 0:
                logger.warning("Ignoring %s%s=%r: must be positive", ENV_PREFIX, name.upper(), raw)
                continue
            overrides[name] = value

        cache_dir = environ.get(ENV_PREFIX + "CACHE_DIR")
        if cache_dir:
            overrides["cache_dir"] = Path(cache_dir).expanduser()

        return replace(config, **overrides)
