"""Tests for varispeed, transposition, gain and loop ranges."""

import math

import numpy as np
import pytest

from stemscope.adjust import (
    AdjustSettings,
    LoopRange,
    clamp_loop_range,
    estimated_length,
    has_active_adjust,
    playback_rate,
    render_adjusted,
    sanitize_adjust_settings,
    slice_loop,
)
from stemscope.core.buffers import AudioBuffer


@pytest.fixture
def ramp():
    return AudioBuffer.from_mono(np.linspace(0.0, 1.0, 1000), 1000)


class TestSanitize:
    """Tests for adjust settings sanitizing."""

    def test_defaults(self):
        assert sanitize_adjust_settings(None) == AdjustSettings()
        assert not has_active_adjust(None)

    def test_clamps_and_rounds(self):
        safe = sanitize_adjust_settings(
            {"varispeedPercent": 10, "pitchSemitones": 13.6, "inputGainPercent": 250.4}
        )
        assert safe.varispeed_percent == 50
        assert safe.pitch_semitones == 12
        assert safe.input_gain_percent == 200
        assert safe.output_gain_percent == 100

    def test_non_finite_uses_default(self):
        safe = sanitize_adjust_settings({"varispeedPercent": math.inf, "outputGainPercent": "loud"})
        assert safe.varispeed_percent == 100
        assert safe.output_gain_percent == 100

    def test_dict_round_trip(self):
        settings = AdjustSettings(varispeed_percent=80, pitch_semitones=-3)
        assert AdjustSettings.from_dict(settings.to_dict()) == settings


class TestPlaybackRate:
    """Tests for the combined rate factor."""

    @pytest.mark.parametrize(
        "settings,expected",
        [
            ({}, 1.0),
            ({"varispeedPercent": 50}, 0.5),
            ({"pitchSemitones": 12}, 2.0),
            ({"pitchSemitones": -12}, 0.5),
            ({"varispeedPercent": 150, "pitchSemitones": -12}, 0.75),
        ],
    )
    def test_rate(self, settings, expected):
        assert playback_rate(settings) == pytest.approx(expected)

    def test_estimated_length(self):
        assert estimated_length(1000, 2.0) == 500
        assert estimated_length(1001, 2.0) == 501
        assert estimated_length(1000, 0.5) == 2000
        assert estimated_length(0, 1.0) == 1


class TestRenderAdjusted:
    """Tests for render_adjusted."""

    def test_inactive_returns_same_buffer(self, ramp):
        assert render_adjusted(ramp, None) is ramp
        assert render_adjusted(ramp, AdjustSettings()) is ramp

    def test_octave_up_halves_length(self, ramp):
        out = render_adjusted(ramp, {"pitchSemitones": 12})
        assert out.n_samples == 500
        np.testing.assert_allclose(out.samples[0], ramp.samples[0][::2])

    def test_half_speed_doubles_length(self, ramp):
        out = render_adjusted(ramp, {"varispeedPercent": 50})
        assert out.n_samples == 2000
        assert out.samples[0][1] == pytest.approx(ramp.samples[0][0] / 2 + ramp.samples[0][1] / 2)
        # Reads past the end are silent
        assert out.samples[0][-1] == 0.0

    def test_gains_multiply(self, ramp):
        out = render_adjusted(ramp, {"inputGainPercent": 50, "outputGainPercent": 200})
        assert out is not ramp
        np.testing.assert_allclose(out.samples, ramp.samples)

    def test_zero_gain_silences(self, ramp):
        out = render_adjusted(ramp, {"inputGainPercent": 0})
        np.testing.assert_array_equal(out.samples, 0.0)

    def test_stereo_keeps_channels(self):
        stereo = AudioBuffer(np.ones((2, 100)), 1000)
        out = render_adjusted(stereo, {"varispeedPercent": 150})
        assert out.n_channels == 2
        assert out.n_samples == 67


class TestLoopRange:
    """Tests for loop range clamping and slicing."""

    @pytest.mark.parametrize(
        "start,end,expected",
        [
            (10, 60, (10, 60)),
            (-5, 500, (0, 100)),
            (50, 50, (49, 50)),
            (80, 20, (19, 20)),
            (99.6, 100, (99, 100)),
            (None, None, (0, 100)),
            (math.nan, 40.4, (0, 40)),
        ],
    )
    def test_clamp(self, start, end, expected):
        loop = clamp_loop_range(start, end)
        assert (loop.start, loop.end) == expected
        assert loop.end >= loop.start + 1

    def test_slice_loop(self, ramp):
        part = slice_loop(ramp, LoopRange(10, 20))
        assert part.n_samples == 100
        assert part.samples[0][0] == pytest.approx(ramp.samples[0][100])
