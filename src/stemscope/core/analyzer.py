"""
Tempo and key analysis of a complete performance.

Combines the tempo and key estimators into a single AnalysisResult,
the metadata attached to an uploaded recording.
"""

import logging
from dataclasses import dataclass
from typing import Any

from stemscope.config import EngineConfig
from stemscope.core.buffers import AudioBuffer, decode_audio, downmix, limit_duration
from stemscope.core.key import estimate_key
from stemscope.core.tempo import estimate_tempo
from stemscope.errors import DecodeError

logger = logging.getLogger(__name__)

METHOD_VERSION = "mvp-1"


@dataclass(frozen=True)
class AnalysisResult:
    """Tempo and key estimate. Missing estimates are None, not errors."""

    bpm: int | None
    bpm_confidence: float | None
    key_root: str | None
    key_mode: str | None
    key_confidence: float | None
    method_version: str = METHOD_VERSION

    @property
    def is_empty(self) -> bool:
        """True when neither a tempo nor a full key was found."""
        return self.bpm is None and not (self.key_root and self.key_mode)

    def to_dict(self) -> dict[str, Any]:
        return {
            "bpm": self.bpm,
            "bpmConfidence": self.bpm_confidence,
            "keyRoot": self.key_root,
            "keyMode": self.key_mode,
            "keyConfidence": self.key_confidence,
            "methodVersion": self.method_version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AnalysisResult":
        return cls(
            bpm=data.get("bpm"),
            bpm_confidence=data.get("bpmConfidence"),
            key_root=data.get("keyRoot"),
            key_mode=data.get("keyMode"),
            key_confidence=data.get("keyConfidence"),
            method_version=data.get("methodVersion", METHOD_VERSION),
        )

    def to_upload_fields(self) -> dict[str, str]:
        """
        Form fields describing this analysis for an upload request.

        Null estimates are left out; source and version are always present.
        """
        fields: dict[str, str] = {}
        if self.bpm is not None:
            fields["analysisBpm"] = str(int(round(self.bpm)))
        if self.bpm_confidence is not None:
            fields["analysisBpmConfidence"] = str(self.bpm_confidence)
        if self.key_root:
            fields["analysisKeyRoot"] = self.key_root
        if self.key_mode:
            fields["analysisKeyMode"] = self.key_mode
        if self.key_confidence is not None:
            fields["analysisKeyConfidence"] = str(self.key_confidence)
        fields["analysisSource"] = "AUTO"
        fields["analysisVersion"] = self.method_version
        return fields


def analyze_buffer(
    buffer: AudioBuffer,
    config: EngineConfig | None = None,
) -> AnalysisResult:
    """
    Estimate tempo and key of a decoded buffer.

    Only the first ``config.analysis_max_seconds`` of the downmixed signal
    are analyzed.

    Args:
        buffer: Decoded audio.
        config: Engine configuration (defaults if None).

    Returns:
        AnalysisResult; fields are None when the signal is too short or quiet.
    """
    config = config or EngineConfig()
    mono = limit_duration(downmix(buffer), config.analysis_max_seconds)
    y = mono.samples[0]

    tempo = estimate_tempo(y, mono.sample_rate, config.analysis_sample_rate)
    key = estimate_key(y, mono.sample_rate, config.analysis_sample_rate)
    logger.debug(
        "Analysis: bpm=%s (%s), key=%s %s (%s)",
        tempo.bpm, tempo.confidence, key.root, key.mode, key.confidence,
    )

    return AnalysisResult(
        bpm=tempo.bpm,
        bpm_confidence=tempo.confidence,
        key_root=key.root,
        key_mode=key.mode,
        key_confidence=key.confidence,
    )


def analyze_blob(blob: bytes, config: EngineConfig | None = None) -> AnalysisResult:
    """
    Decode an encoded blob and analyze it.

    Raises:
        DecodeError: If the blob cannot be decoded.
    """
    return analyze_buffer(decode_audio(blob), config)


def detect_analysis(blob: bytes, config: EngineConfig | None = None) -> AnalysisResult | None:
    """
    Best-effort analysis for attaching metadata to an upload.

    Returns None when the blob cannot be decoded or when nothing useful was
    detected, so the upload can go ahead without analysis fields.
    """
    try:
        result = analyze_blob(blob, config)
    except DecodeError as exc:
        logger.warning("Audio analysis failed: %s", exc)
        return None
    if result.is_empty:
        return None
    return result
