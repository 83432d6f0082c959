"""
Effect chain orchestration.

The stage order is fixed: EQ -> pitch correction -> distortion -> filter ->
delay -> reverb. Disabled stages are skipped; a stage that fails is logged
and bypassed so the rest of the chain still runs.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Mapping

import numpy as np

from stemscope.core.buffers import AudioBuffer, downmix, encode_wav
from stemscope.core.hardtune import apply_hardtune
from stemscope.effects import apply_delay, apply_distortion, apply_eq, apply_filter, apply_reverb
from stemscope.settings import ChainSettings, round_half_up, safe_bpm, sanitize_chain_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessedLayer:
    """Encoded output of one processed take."""

    wav: bytes
    duration_sec: int
    buffer: AudioBuffer


def _run_stage(name: str, samples: np.ndarray, stage: Callable[[np.ndarray], np.ndarray]) -> np.ndarray:
    try:
        return stage(samples)
    except (ValueError, FloatingPointError, np.linalg.LinAlgError) as exc:
        logger.warning("Effect stage %s failed, bypassing: %s", name, exc)
        return samples


def process_chain(
    buffer: AudioBuffer,
    settings: "Mapping[str, Any] | ChainSettings | None",
    bpm: float | None = None,
) -> AudioBuffer:
    """
    Run a buffer through the effect chain.

    Args:
        buffer: Input audio (downmixed to mono first).
        settings: Chain settings, sanitized here.
        bpm: Project tempo for synced delay; unusable values mean 90.

    Returns:
        Mono buffer with the same length and rate as the input.
    """
    safe = sanitize_chain_settings(settings)
    sr = buffer.sample_rate
    tempo = safe_bpm(bpm)
    samples = downmix(buffer).samples[0]

    if safe.eq.enabled:
        samples = _run_stage("eq", samples, lambda x: apply_eq(x, safe.eq, sr))
    if safe.autotune.enabled:
        samples = _run_stage("autotune", samples, lambda x: apply_hardtune(x, sr, safe.autotune))
    if safe.distortion.enabled:
        samples = _run_stage("distortion", samples, lambda x: apply_distortion(x, safe.distortion, sr))
    if safe.filter.enabled:
        samples = _run_stage("filter", samples, lambda x: apply_filter(x, safe.filter, sr))
    if safe.delay.enabled:
        samples = _run_stage("delay", samples, lambda x: apply_delay(x, safe.delay, sr, tempo))
    if safe.reverb.enabled:
        samples = _run_stage("reverb", samples, lambda x: apply_reverb(x, safe.reverb, sr))

    return AudioBuffer.from_mono(samples, sr)


def render_processed_layer(
    buffer: AudioBuffer,
    settings: "Mapping[str, Any] | ChainSettings | None",
    bpm: float | None = None,
) -> ProcessedLayer:
    """Process a take and encode it as WAV with a whole-second duration."""
    rendered = process_chain(buffer, settings, bpm)
    return ProcessedLayer(
        wav=encode_wav(rendered),
        duration_sec=max(0, round_half_up(rendered.duration)),
        buffer=rendered,
    )
