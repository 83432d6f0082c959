"""Tests for the AnalysisPipeline and its report cache."""

import json
from unittest.mock import patch

import pytest

from stemscope.config import EngineConfig
from stemscope.core.analyzer import AnalysisResult
from stemscope.errors import DecodeError
from stemscope.pipeline import AnalysisPipeline


class TestAnalysisPipeline:
    """Tests for the file-to-report pipeline."""

    @pytest.fixture
    def pipeline(self, tmp_path):
        return AnalysisPipeline(EngineConfig(cache_dir=tmp_path / "cache"))

    def test_process_returns_result(self, pipeline, temp_audio_file):
        result = pipeline.process(temp_audio_file)

        assert isinstance(result["analysis"], AnalysisResult)
        assert result["duration"] == pytest.approx(2.0, abs=0.01)
        assert result["sample_rate"] == 22050
        assert result["report"]["metadata"]["source"] == temp_audio_file.name
        assert "output_path" not in result

    def test_process_writes_report(self, pipeline, temp_audio_file, tmp_path):
        output = tmp_path / "report.json"
        result = pipeline.process(temp_audio_file, output_path=output)

        assert result["output_path"] == str(output)
        with open(output, encoding="utf-8") as f:
            report = json.load(f)
        assert report == result["report"]

    def test_missing_file_raises(self, pipeline, tmp_path):
        with pytest.raises(DecodeError):
            pipeline.process(tmp_path / "missing.wav")

    def test_clear_cache(self, pipeline, temp_audio_file):
        pipeline.process(temp_audio_file)
        cache_dir = pipeline.config.cache_dir
        assert list(cache_dir.glob("analysis_*.json"))

        pipeline.clear_cache()
        assert cache_dir.exists()
        assert not list(cache_dir.glob("*.json"))


def test_pipeline_caching(temp_audio_file, tmp_path, monkeypatch):
    """Test that caching works correctly (miss, hit, bypass)."""
    monkeypatch.setattr(AnalysisPipeline, "_get_cache_dir", lambda self: tmp_path)

    pipeline = AnalysisPipeline()

    # 1. First run: analyze and save to cache
    with patch.object(pipeline, "load", wraps=pipeline.load) as mock_load:
        result1 = pipeline.process(temp_audio_file)
        assert mock_load.called

    cache_files = list(tmp_path.glob("analysis_*.json"))
    assert len(cache_files) == 1

    # 2. Second run: served from cache
    with patch.object(pipeline, "load", wraps=pipeline.load) as mock_load:
        result2 = pipeline.process(temp_audio_file)
        assert not mock_load.called, "Should have used cache"
        assert result2["report"] == result1["report"]
        assert result2["analysis"] == result1["analysis"]

    # 3. use_cache=False: re-analyze
    with patch.object(pipeline, "load", wraps=pipeline.load) as mock_load:
        result3 = pipeline.process(temp_audio_file, use_cache=False)
        assert mock_load.called, "Should have re-analyzed"
        assert result3["analysis"] == result1["analysis"]


def test_cache_differentiation(temp_audio_file, tmp_path, monkeypatch):
    """Different analysis settings use different cache entries."""
    monkeypatch.setattr(AnalysisPipeline, "_get_cache_dir", lambda self: tmp_path)

    AnalysisPipeline().process(temp_audio_file)
    assert len(list(tmp_path.glob("analysis_*.json"))) == 1

    AnalysisPipeline(EngineConfig(analysis_max_seconds=1.0)).process(temp_audio_file)
    assert len(list(tmp_path.glob("analysis_*.json"))) == 2

    AnalysisPipeline(EngineConfig(analysis_sample_rate=8000)).process(temp_audio_file)
    assert len(list(tmp_path.glob("analysis_*.json"))) == 3


def test_corrupt_cache_is_reanalyzed(temp_audio_file, tmp_path, monkeypatch):
    monkeypatch.setattr(AnalysisPipeline, "_get_cache_dir", lambda self: tmp_path)
    pipeline = AnalysisPipeline()
    pipeline.process(temp_audio_file)

    cache_file, = tmp_path.glob("analysis_*.json")
    cache_file.write_text("{not json", encoding="utf-8")

    with patch.object(pipeline, "load", wraps=pipeline.load) as mock_load:
        result = pipeline.process(temp_audio_file)
        assert mock_load.called
    assert isinstance(result["analysis"], AnalysisResult)
