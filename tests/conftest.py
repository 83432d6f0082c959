"""Pytest configuration and shared fixtures."""

import io

import numpy as np
import pytest
import soundfile as sf

# Default sample rate for test audio
TEST_SR = 22050

# 8192 Hz with 512-sample tempo frames gives 16 frames per second, so a
# 120 BPM beat lands exactly every 8 frames.
CLICK_SR = 8192


@pytest.fixture
def sample_rate() -> int:
    """Default sample rate for tests."""
    return TEST_SR


@pytest.fixture
def pure_sine(sample_rate: int) -> tuple[np.ndarray, int]:
    """
    Generate a pure 440Hz sine wave (A4 note).

    Returns:
        Tuple of (audio_signal, sample_rate).
    """
    duration = 2.0  # 2 seconds
    t = np.linspace(0, duration, int(sample_rate * duration), endpoint=False)
    frequency = 440.0  # A4
    y = 0.5 * np.sin(2 * np.pi * frequency * t)
    return y.astype(np.float32), sample_rate


def _click_train(sample_rate: int, bpm: float, duration: float, click_ms: float) -> np.ndarray:
    samples_per_beat = int(sample_rate * 60 / bpm)
    total_samples = int(sample_rate * duration)
    y = np.zeros(total_samples, dtype=np.float32)

    # Exponentially decaying clicks at each beat
    click_duration = max(1, int(sample_rate * click_ms / 1000))
    for beat_start in range(0, total_samples, samples_per_beat):
        click_end = min(beat_start + click_duration, total_samples)
        click_samples = click_end - beat_start
        y[beat_start:click_end] = 0.8 * np.exp(-np.linspace(0, 5, click_samples))
    return y


@pytest.fixture
def click_track() -> tuple[np.ndarray, int]:
    """
    Generate a click track at 120 BPM, beats aligned to tempo frames.

    Returns:
        Tuple of (audio_signal, sample_rate).
    """
    return _click_train(CLICK_SR, 120, 8.0, click_ms=10), CLICK_SR


@pytest.fixture
def make_click_track():
    """Factory for click tracks at an arbitrary rate and tempo."""

    def _make(sample_rate: int, bpm: float = 120, duration: float = 8.0) -> np.ndarray:
        return _click_train(sample_rate, bpm, duration, click_ms=1)

    return _make


@pytest.fixture
def white_noise(sample_rate: int) -> tuple[np.ndarray, int]:
    """
    Generate white noise.

    Returns:
        Tuple of (audio_signal, sample_rate).
    """
    rng = np.random.default_rng(42)  # Reproducible
    duration = 2.0
    samples = int(sample_rate * duration)
    y = rng.standard_normal(samples).astype(np.float32) * 0.3
    return y, sample_rate


@pytest.fixture
def mixed_signal(sample_rate: int) -> tuple[np.ndarray, int]:
    """
    Generate a signal with both harmonic and percussive content.

    Returns:
        Tuple of (audio_signal, sample_rate).
    """
    duration = 2.0
    t = np.linspace(0, duration, int(sample_rate * duration), endpoint=False)

    # Harmonic: chord (C major: C4, E4, G4)
    harmonic = (
        0.2 * np.sin(2 * np.pi * 261.63 * t) +  # C4
        0.2 * np.sin(2 * np.pi * 329.63 * t) +  # E4
        0.2 * np.sin(2 * np.pi * 392.00 * t)    # G4
    )

    # Percussive: clicks at 120 BPM
    bpm = 120
    samples_per_beat = int(sample_rate * 60 / bpm)
    total_samples = len(t)
    percussive = np.zeros(total_samples)

    click_duration = int(sample_rate * 0.01)
    for beat_start in range(0, total_samples, samples_per_beat):
        click_end = min(beat_start + click_duration, total_samples)
        click_samples = click_end - beat_start
        decay = np.exp(-np.linspace(0, 5, click_samples))
        percussive[beat_start:click_end] = 0.3 * decay

    y = (harmonic + percussive).astype(np.float32)
    return y, sample_rate


@pytest.fixture
def temp_audio_file(tmp_path, mixed_signal):
    """Create a temporary audio file for testing file I/O."""
    y, sr = mixed_signal
    audio_path = tmp_path / "test_audio.wav"
    sf.write(audio_path, y, sr)
    return audio_path


@pytest.fixture
def make_wav_blob():
    """Factory encoding (samples, sample_rate) as in-memory WAV bytes."""

    def _make(samples: np.ndarray, sr: int) -> bytes:
        out = io.BytesIO()
        sf.write(out, np.asarray(samples, dtype=np.float32).T, sr, format="WAV", subtype="PCM_16")
        return out.getvalue()

    return _make
