"""Core analysis modules."""

from stemscope.core.analyzer import AnalysisResult, analyze_buffer
from stemscope.core.hardtune import apply_hardtune
from stemscope.core.key import KeyEstimate, estimate_key
from stemscope.core.tempo import TempoEstimate, estimate_tempo

__all__ = [
    "AnalysisResult",
    "KeyEstimate",
    "TempoEstimate",
    "analyze_buffer",
    "apply_hardtune",
    "estimate_key",
    "estimate_tempo",
]
