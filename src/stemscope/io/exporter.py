"""
Report and audio serialization.

Writes analysis reports as JSON and rendered buffers as 16-bit WAV files.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

from stemscope.core.analyzer import AnalysisResult
from stemscope.core.buffers import AudioBuffer, encode_wav


@dataclass
class ReportMetadata:
    """Metadata header for an analysis report."""

    source: str
    duration: float
    sample_rate: int
    version: str = "1.0"


class AnalysisExporter:
    """
    Exports analysis results to a JSON report.

    The report has a ``metadata`` header describing the source audio and an
    ``analysis`` body in the camelCase shape used for uploads.
    """

    def __init__(self, precision: int = 3):
        """
        Initialize the exporter.

        Args:
            precision: Decimal places for floating point values.
        """
        self.precision = precision

    def _round(self, value: float | None) -> float | None:
        """Round to configured precision, passing None through."""
        if value is None:
            return None
        return round(float(value), self.precision)

    def build_report(
        self,
        result: AnalysisResult,
        duration: float,
        sample_rate: int,
        source: str = "",
    ) -> dict[str, Any]:
        """
        Build the complete report dictionary.

        Args:
            result: Tempo and key estimate.
            duration: Source duration in seconds.
            sample_rate: Source sample rate.
            source: Source file name.

        Returns:
            Report dictionary ready for serialization.
        """
        metadata = ReportMetadata(
            source=source,
            duration=self._round(duration),
            sample_rate=int(sample_rate),
        )
        analysis = result.to_dict()
        for key in ("bpmConfidence", "keyConfidence"):
            analysis[key] = self._round(analysis[key])

        return {
            "metadata": {
                "source": metadata.source,
                "duration": metadata.duration,
                "sample_rate": metadata.sample_rate,
                "version": metadata.version,
            },
            "analysis": analysis,
        }

    def export_json(
        self,
        report: dict[str, Any],
        output_path: Union[str, Path],
        indent: int = 2,
    ) -> Path:
        """
        Write a report to a JSON file.

        Args:
            report: Dictionary from ``build_report``.
            output_path: Path for output JSON file.
            indent: JSON indentation level.

        Returns:
            Path to written file.
        """
        output_path = Path(output_path)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=indent)

        return output_path

    def export_wav(self, buffer: AudioBuffer, output_path: Union[str, Path]) -> Path:
        """Write a buffer as a mono 16-bit WAV file."""
        output_path = Path(output_path)
        output_path.write_bytes(encode_wav(buffer))
        return output_path
