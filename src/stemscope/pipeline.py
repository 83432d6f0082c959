"""
File analysis pipeline.

Loads an audio file, estimates tempo and key, and writes a JSON report.
Reports are cached on disk keyed by the file contents and the analysis
configuration.
"""

import hashlib
import json
import logging
import shutil
from pathlib import Path
from typing import Any, Union

from stemscope.config import EngineConfig
from stemscope.core.analyzer import METHOD_VERSION, AnalysisResult, analyze_buffer
from stemscope.core.buffers import AudioBuffer, load_audio
from stemscope.io.exporter import AnalysisExporter

logger = logging.getLogger(__name__)


class AnalysisPipeline:
    """
    Audio-file-to-report processing pipeline.

    Combines loading, analysis and export into a single interface.
    """

    # Version of the report schema. Together with METHOD_VERSION it is part
    # of the cache key, so bump it when the report layout changes.
    REPORT_VERSION = "1.0"

    def __init__(self, config: EngineConfig | None = None):
        """
        Initialize the pipeline.

        Args:
            config: Engine configuration (defaults if None).
        """
        self.config = config or EngineConfig()
        self.exporter = AnalysisExporter()

    def _get_cache_dir(self) -> Path:
        """Return the directory for cached reports."""
        cache_dir = Path(self.config.cache_dir)
        cache_dir.mkdir(parents=True, exist_ok=True)
        return cache_dir

    def _calculate_file_hash(self, file_path: Path) -> str:
        """Calculate SHA256 hash of the file."""
        sha256_hash = hashlib.sha256()
        with open(file_path, "rb") as f:
            for byte_block in iter(lambda: f.read(4096), b""):
                sha256_hash.update(byte_block)
        return sha256_hash.hexdigest()

    def _get_config_hash(self) -> str:
        """Calculate hash of the settings that affect analysis output."""
        config = {
            "version": self.REPORT_VERSION,
            "method": METHOD_VERSION,
            "sr": self.config.analysis_sample_rate,
            "max_seconds": self.config.analysis_max_seconds,
        }
        return hashlib.md5(json.dumps(config, sort_keys=True).encode("utf-8")).hexdigest()

    def _get_cache_path(self, audio_path: Path) -> Path:
        """Get the cache file path for a given audio file."""
        file_hash = self._calculate_file_hash(audio_path)
        config_hash = self._get_config_hash()
        return self._get_cache_dir() / f"analysis_{file_hash}_{config_hash}.json"

    def clear_cache(self):
        """Clear the report cache."""
        cache_dir = Path(self.config.cache_dir)
        if cache_dir.exists():
            shutil.rmtree(cache_dir)
        cache_dir.mkdir(parents=True, exist_ok=True)

    def load(self, audio_path: Union[str, Path]) -> AudioBuffer:
        """
        Load an audio file at its native rate.

        Raises:
            DecodeError: If the file cannot be read.
        """
        return load_audio(audio_path)

    def analyze(self, buffer: AudioBuffer) -> AnalysisResult:
        """Estimate tempo and key of a loaded buffer."""
        return analyze_buffer(buffer, self.config)

    def _result(self, report: dict[str, Any]) -> dict[str, Any]:
        metadata = report.get("metadata", {})
        return {
            "report": report,
            "analysis": AnalysisResult.from_dict(report.get("analysis", {})),
            "duration": metadata.get("duration", 0.0),
            "sample_rate": metadata.get("sample_rate", 0),
        }

    def _load_cached(self, audio_path: Path) -> dict[str, Any] | None:
        try:
            cache_path = self._get_cache_path(audio_path)
            if not cache_path.exists():
                return None
            with open(cache_path, "r", encoding="utf-8") as f:
                report = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Failed to load cache: %s. Re-analyzing.", e)
            return None
        logger.info("Loaded analysis from cache: %s", cache_path)
        return report

    def _save_cached(self, audio_path: Path, report: dict[str, Any]) -> None:
        try:
            cache_path = self._get_cache_path(audio_path)
            with open(cache_path, "w", encoding="utf-8") as f:
                json.dump(report, f, indent=2)
        except OSError as e:
            logger.warning("Failed to save cache: %s", e)

    def process(
        self,
        audio_path: Union[str, Path],
        output_path: Union[str, Path] | None = None,
        use_cache: bool = True,
    ) -> dict[str, Any]:
        """
        Run the complete pipeline from audio file to report.

        Args:
            audio_path: Path to input audio file.
            output_path: Path for the JSON report. If None, only returns dict.
            use_cache: Whether to use a cached report if available.

        Returns:
            Dictionary with the report, the AnalysisResult, duration and
            sample rate (and ``output_path`` when a file was written).

        Raises:
            DecodeError: If the file cannot be read.
        """
        audio_path = Path(audio_path)

        report = self._load_cached(audio_path) if use_cache else None
        if report is None:
            buffer = self.load(audio_path)
            analysis = self.analyze(buffer)
            report = self.exporter.build_report(
                analysis,
                duration=buffer.duration,
                sample_rate=buffer.sample_rate,
                source=audio_path.name,
            )
            if use_cache:
                self._save_cached(audio_path, report)

        result = self._result(report)
        if output_path:
            written_path = self.exporter.export_json(report, output_path)
            result["output_path"] = str(written_path)

        return result
