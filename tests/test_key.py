"""Tests for key estimation."""

import numpy as np
import pytest

from stemscope.core.key import (
    KEY_LABELS,
    MAJOR_PROFILE,
    MAX_HZ,
    MIN_HZ,
    NO_KEY,
    candidate_pitches,
    chroma_vector,
    estimate_key,
    narrowband_power,
    rotate_profile,
)


class TestKeyEstimation:
    """Tests for estimate_key."""

    def test_a440_is_in_a(self, pure_sine):
        """A pure A4 should give an A-rooted key."""
        y, sr = pure_sine
        estimate = estimate_key(y, sr)

        assert estimate.root == "A"
        assert estimate.mode in ("major", "minor")
        assert 0.0 <= estimate.confidence <= 1.0

    def test_silence_has_no_key(self, sample_rate):
        assert estimate_key(np.zeros(sample_rate * 2), sample_rate) == NO_KEY

    def test_short_input_has_no_key(self):
        assert estimate_key(np.ones(1000) * 0.5, 11025) == NO_KEY

    def test_quiet_input_has_no_key(self, pure_sine):
        """Frames under the RMS gate contribute nothing."""
        y, sr = pure_sine
        assert estimate_key(y * 0.005, sr) == NO_KEY

    def test_roots_use_flat_spelling(self):
        assert "Bb" in KEY_LABELS
        assert "A#" not in KEY_LABELS
        assert len(KEY_LABELS) == 12


class TestChroma:
    """Tests for the chroma helpers."""

    def test_candidate_pitches_within_band(self):
        pitches = candidate_pitches()
        assert pitches
        for pitch_class, hz in pitches:
            assert 0 <= pitch_class < 12
            assert MIN_HZ <= hz <= MAX_HZ

    def test_narrowband_power_peaks_at_tone_frequency(self):
        sr = 11025
        n = np.arange(4096)
        frame = np.sin(2 * np.pi * 440.0 * n / sr)[:, np.newaxis]
        power = narrowband_power(frame, sr, np.array([220.0, 440.0, 880.0]))
        assert power.shape == (3, 1)
        assert np.argmax(power[:, 0]) == 1

    def test_chroma_peaks_at_a(self, pure_sine):
        y, sr = pure_sine
        chroma = chroma_vector(y[::2], sr // 2)
        assert np.argmax(chroma) == KEY_LABELS.index("A")

    def test_rotate_profile_moves_tonic(self):
        rotated = rotate_profile(MAJOR_PROFILE, 2)
        assert rotated[2] == pytest.approx(MAJOR_PROFILE[0])
