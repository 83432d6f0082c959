"""Tests for pitch detection and hardtune correction."""

import numpy as np
import pytest

from stemscope.core.hardtune import apply_hardtune, detect_pitch, hann_window
from stemscope.settings import AutotuneSettings


def _sine(frequency, sample_rate, seconds, amplitude=0.5):
    t = np.arange(int(sample_rate * seconds)) / sample_rate
    return amplitude * np.sin(2 * np.pi * frequency * t)


class TestDetectPitch:
    """Tests for the autocorrelation pitch detector."""

    def test_detects_period_of_sine(self):
        sr = 44100
        frame = _sine(441.0, sr, 2048 / sr)
        detection = detect_pitch(frame, sr)

        assert detection.hz is not None
        assert detection.confidence >= 0.55
        # Autocorrelation peaks at every multiple of the period
        periods = (sr / detection.hz) / 100.0
        assert periods == pytest.approx(round(periods), abs=0.02)

    def test_silence_is_unvoiced(self):
        detection = detect_pitch(np.zeros(2048), 44100)
        assert detection.hz is None
        assert detection.confidence == 0.0

    def test_noise_is_unvoiced(self, white_noise):
        y, sr = white_noise
        assert detect_pitch(y[:2048].astype(np.float64), sr).hz is None

    def test_empty_frame(self):
        assert detect_pitch(np.zeros(0), 44100).hz is None


class TestApplyHardtune:
    """Tests for the correction loop."""

    @pytest.fixture
    def detuned(self):
        """A tone 30 cents sharp of A4."""
        sr = 22050
        return _sine(440.0 * 2 ** (30 / 1200), sr, 1.0), sr

    def test_zero_amount_is_dry(self, detuned):
        y, sr = detuned
        out = apply_hardtune(y, sr, AutotuneSettings(enabled=True, amount=0.0, mix=100.0))
        np.testing.assert_array_equal(out, y)

    def test_zero_mix_is_dry(self, detuned):
        y, sr = detuned
        out = apply_hardtune(y, sr, AutotuneSettings(enabled=True, amount=100.0, mix=0.0))
        np.testing.assert_array_equal(out, y)

    def test_empty_input(self):
        out = apply_hardtune(np.zeros(0), 22050, AutotuneSettings(enabled=True))
        assert len(out) == 0

    @pytest.mark.parametrize("robot", [False, True])
    def test_length_preserved_and_changed(self, detuned, robot):
        y, sr = detuned
        settings = AutotuneSettings(enabled=True, amount=100.0, retune_speed=100.0, robot=robot, mix=100.0)
        out = apply_hardtune(y, sr, settings)

        assert len(out) == len(y)
        assert not np.allclose(out, y)

    def test_output_is_clamped(self):
        sr = 22050
        loud = _sine(300.0, sr, 0.5, amplitude=1.8)
        out = apply_hardtune(loud, sr, AutotuneSettings(enabled=True, amount=100.0, mix=100.0))
        assert np.max(np.abs(out)) <= 1.0

    def test_hann_window(self):
        window = hann_window(5)
        np.testing.assert_allclose(window, [0.0, 0.5, 1.0, 0.5, 0.0], atol=1e-12)
        assert len(hann_window(1)) == 1
