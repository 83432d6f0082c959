"""Tests for audio buffers, resampling and WAV encoding."""

import io
import wave

import numpy as np
import pytest

from stemscope.core.buffers import (
    AudioBuffer,
    decode_audio,
    downmix,
    encode_wav,
    limit_duration,
    load_audio,
    quantize_pcm16,
    resample,
    resample_linear,
)
from stemscope.errors import DecodeError


class TestAudioBuffer:
    """Tests for the AudioBuffer container."""

    def test_one_dimensional_input_is_one_channel(self):
        buffer = AudioBuffer(np.zeros(100), 8000)
        assert buffer.n_channels == 1
        assert buffer.n_samples == 100

    def test_duration(self):
        buffer = AudioBuffer.from_mono(np.zeros(16000), 8000)
        assert buffer.duration == pytest.approx(2.0)

    def test_rejects_three_dimensional_input(self):
        with pytest.raises(ValueError):
            AudioBuffer(np.zeros((2, 2, 2)), 8000)

    def test_downmix_averages_channels(self):
        buffer = AudioBuffer(np.array([[1.0, 1.0], [0.0, -1.0]]), 8000)
        mono = downmix(buffer)
        assert mono.n_channels == 1
        np.testing.assert_allclose(mono.samples[0], [0.5, 0.0])

    def test_limit_duration(self):
        buffer = AudioBuffer.from_mono(np.ones(10000), 1000)
        limited = limit_duration(buffer, 2.5)
        assert limited.n_samples == 2500

    def test_limit_duration_keeps_short_buffers(self):
        buffer = AudioBuffer.from_mono(np.ones(100), 1000)
        assert limit_duration(buffer, 10.0).n_samples == 100


class TestResample:
    """Tests for linear-interpolation resampling."""

    def test_downsample_by_two_picks_even_samples(self):
        samples = np.arange(100, dtype=np.float64)
        out = resample_linear(samples, 2000, 1000)
        assert len(out) == 50
        np.testing.assert_allclose(out, samples[::2])

    def test_upsample_interpolates(self):
        samples = np.arange(10, dtype=np.float64)
        out = resample_linear(samples, 1000, 2000)
        assert len(out) == 20
        np.testing.assert_allclose(out[:4], [0.0, 0.5, 1.0, 1.5])
        # Reads past the last sample hold it
        assert out[-1] == pytest.approx(9.0)

    def test_same_rate_is_a_copy(self):
        samples = np.arange(5, dtype=np.float64)
        out = resample_linear(samples, 1000, 1000)
        np.testing.assert_array_equal(out, samples)
        assert out is not samples

    def test_resample_buffer_keeps_channels(self):
        buffer = AudioBuffer(np.ones((2, 400)), 4000)
        out = resample(buffer, 2000)
        assert out.sample_rate == 2000
        assert out.samples.shape == (2, 200)

    def test_resample_rejects_bad_rate(self):
        with pytest.raises(ValueError):
            resample(AudioBuffer.from_mono(np.ones(4), 1000), 0)


class TestWavEncoding:
    """Tests for PCM quantization and WAV output."""

    def test_quantize_uses_asymmetric_scale(self):
        pcm = quantize_pcm16(np.array([-1.0, 0.0, 1.0]))
        np.testing.assert_array_equal(pcm, [-32768, 0, 32767])

    def test_quantize_clamps(self):
        pcm = quantize_pcm16(np.array([-3.0, 2.0]))
        np.testing.assert_array_equal(pcm, [-32768, 32767])

    def test_header_is_mono_16_bit(self):
        buffer = AudioBuffer(np.zeros((2, 480)), 48000)
        data = encode_wav(buffer)

        assert data[:4] == b"RIFF"
        assert data[8:12] == b"WAVE"
        with wave.open(io.BytesIO(data), "rb") as wav_file:
            assert wav_file.getnchannels() == 1
            assert wav_file.getsampwidth() == 2
            assert wav_file.getframerate() == 48000
            assert wav_file.getnframes() == 480

    def test_round_trip_within_one_step_at_full_scale(self):
        rng = np.random.default_rng(7)
        samples = rng.uniform(-1.0, 1.0, 44100)
        samples[:4] = [-1.0, 1.0, 0.99999, -0.99999]
        decoded = decode_audio(encode_wav(AudioBuffer.from_mono(samples, 44100)))

        assert decoded.sample_rate == 44100
        assert decoded.n_samples == len(samples)
        error = np.abs(decoded.samples[0] - samples) * 32768
        assert error.max() < 1.0

    def test_full_scale_peaks_decode_exactly(self):
        decoded = decode_audio(encode_wav(AudioBuffer.from_mono(np.array([-1.0, 0.0, 1.0]), 8000)))
        np.testing.assert_array_equal(decoded.samples[0], [-1.0, 0.0, 1.0])


class TestDecode:
    """Tests for blob and file decoding."""

    def test_decode_stereo_blob(self, make_wav_blob):
        stereo = np.vstack([np.full(100, 0.25), np.full(100, -0.25)])
        decoded = decode_audio(make_wav_blob(stereo, 16000))

        assert decoded.n_channels == 2
        assert decoded.sample_rate == 16000
        np.testing.assert_allclose(decoded.samples[0], 0.25, atol=1e-4)

    def test_empty_blob_raises(self):
        with pytest.raises(DecodeError):
            decode_audio(b"")

    def test_garbage_blob_raises(self):
        with pytest.raises(DecodeError):
            decode_audio(b"definitely not audio" * 10)

    def test_load_audio_preserves_rate(self, temp_audio_file, sample_rate):
        buffer = load_audio(temp_audio_file)
        assert buffer.sample_rate == sample_rate
        assert buffer.duration == pytest.approx(2.0, abs=0.01)

    def test_load_missing_file_raises(self, tmp_path):
        with pytest.raises(DecodeError):
            load_audio(tmp_path / "missing.wav")
