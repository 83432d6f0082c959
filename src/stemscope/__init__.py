"""Tempo/key analysis and effect rendering for recorded takes."""

from stemscope.adjust import AdjustSettings, render_adjusted
from stemscope.chain import process_chain, render_processed_layer
from stemscope.config import EngineConfig
from stemscope.core.analyzer import AnalysisResult, analyze_blob, detect_analysis
from stemscope.core.buffers import AudioBuffer
from stemscope.errors import DecodeError, NoActiveLayersError, RenderError, StemscopeError
from stemscope.io.exporter import AnalysisExporter
from stemscope.pipeline import AnalysisPipeline
from stemscope.render import Layer, RenderRequest, render_mixdown
from stemscope.settings import ChainSettings, sanitize_chain_settings

__version__ = "0.1.0"
__all__ = [
    "AdjustSettings",
    "AnalysisExporter",
    "AnalysisPipeline",
    "AnalysisResult",
    "AudioBuffer",
    "ChainSettings",
    "DecodeError",
    "EngineConfig",
    "Layer",
    "NoActiveLayersError",
    "RenderError",
    "RenderRequest",
    "StemscopeError",
    "analyze_blob",
    "detect_analysis",
    "process_chain",
    "render_adjusted",
    "render_mixdown",
    "render_processed_layer",
    "sanitize_chain_settings",
]
