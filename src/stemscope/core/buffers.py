"""
Audio buffer container and the low-level helpers every other module uses.

Buffers are treated as immutable values: each helper returns a new buffer
and never writes into the arrays it was given.
"""

import io
import logging
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import librosa
import numpy as np
import soundfile as sf

from stemscope.errors import DecodeError

logger = logging.getLogger(__name__)

# 16-bit PCM scale factors (asymmetric, matching the signed integer range)
PCM16_NEGATIVE_SCALE = 32768.0
PCM16_POSITIVE_SCALE = 32767.0


@dataclass(frozen=True, eq=False)
class AudioBuffer:
    """Decoded audio: float samples shaped (channels, n_samples) plus rate."""

    samples: np.ndarray
    sample_rate: int

    def __post_init__(self):
        samples = np.asarray(self.samples, dtype=np.float64)
        if samples.ndim == 1:
            samples = samples[np.newaxis, :]
        if samples.ndim != 2:
            raise ValueError(f"Expected 1-D or 2-D samples, got shape {samples.shape}")
        object.__setattr__(self, "samples", samples)
        object.__setattr__(self, "sample_rate", int(self.sample_rate))

    @classmethod
    def from_mono(cls, samples: np.ndarray, sample_rate: int) -> "AudioBuffer":
        """Wrap a 1-D sample array."""
        return cls(np.asarray(samples, dtype=np.float64).reshape(1, -1), sample_rate)

    @property
    def n_channels(self) -> int:
        return self.samples.shape[0]

    @property
    def n_samples(self) -> int:
        return self.samples.shape[1]

    @property
    def duration(self) -> float:
        """Length in seconds."""
        if self.sample_rate <= 0:
            return 0.0
        return self.n_samples / self.sample_rate

    @property
    def mono(self) -> np.ndarray:
        """Channel-averaged samples as a 1-D array."""
        return self.samples.mean(axis=0)


def downmix(buffer: AudioBuffer) -> AudioBuffer:
    """
    Average all channels into one.

    Args:
        buffer: Source buffer with any channel count.

    Returns:
        Single-channel buffer with the same rate and length.
    """
    return AudioBuffer.from_mono(buffer.mono, buffer.sample_rate)


def resample_linear(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """
    Resample a 1-D signal by linear interpolation.

    Output sample ``i`` reads the source at ``i * source_rate / target_rate``;
    the right-hand neighbour is clamped to the last source sample.
    """
    samples = np.asarray(samples, dtype=np.float64)
    n = len(samples)
    if n == 0 or source_rate == target_rate:
        return samples.copy()

    ratio = source_rate / target_rate
    out_length = max(1, int(np.floor(n / ratio)))
    positions = np.arange(out_length) * ratio
    left = np.floor(positions).astype(np.int64)
    right = np.minimum(n - 1, left + 1)
    frac = positions - left
    return samples[left] * (1.0 - frac) + samples[right] * frac


def resample(buffer: AudioBuffer, target_rate: int) -> AudioBuffer:
    """
    Resample every channel of a buffer to ``target_rate``.

    Args:
        buffer: Source buffer.
        target_rate: Desired sample rate in Hz.

    Returns:
        New buffer at ``target_rate``.
    """
    target_rate = int(target_rate)
    if target_rate <= 0:
        raise ValueError(f"target_rate must be positive, got {target_rate}")
    channels = [
        resample_linear(channel, buffer.sample_rate, target_rate)
        for channel in buffer.samples
    ]
    return AudioBuffer(np.vstack(channels), target_rate)


def limit_duration(buffer: AudioBuffer, max_seconds: float) -> AudioBuffer:
    """Keep at most the first ``max_seconds`` of a buffer."""
    max_samples = min(buffer.n_samples, int(np.floor(buffer.sample_rate * max_seconds)))
    return AudioBuffer(buffer.samples[:, :max_samples].copy(), buffer.sample_rate)


def quantize_pcm16(samples: np.ndarray) -> np.ndarray:
    """
    Convert float samples to 16-bit PCM integers.

    Samples are clamped to [-1, 1]; negative values scale by 32768 and
    positive values by 32767.
    """
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(
        clipped < 0,
        clipped * PCM16_NEGATIVE_SCALE,
        clipped * PCM16_POSITIVE_SCALE,
    )
    return np.rint(scaled).astype("<i2")


def encode_wav(buffer: AudioBuffer) -> bytes:
    """
    Encode a buffer as a RIFF/WAVE container.

    The output is always 16-bit PCM mono at the buffer's own rate;
    multi-channel input is downmixed first.

    Args:
        buffer: Buffer to encode.

    Returns:
        Complete WAV file contents.
    """
    pcm = quantize_pcm16(buffer.mono)

    out = io.BytesIO()
    with wave.open(out, "wb") as wav_file:
        wav_file.setnchannels(1)
        wav_file.setsampwidth(2)
        wav_file.setframerate(buffer.sample_rate)
        wav_file.writeframes(pcm.tobytes())
    return out.getvalue()


def dequantize_pcm16(pcm: np.ndarray) -> np.ndarray:
    """Inverse of :func:`quantize_pcm16`."""
    pcm = np.asarray(pcm, dtype=np.float64)
    return np.where(
        pcm < 0,
        pcm / PCM16_NEGATIVE_SCALE,
        pcm / PCM16_POSITIVE_SCALE,
    )


def decode_audio(blob: bytes) -> AudioBuffer:
    """
    Decode an encoded audio blob into a float buffer.

    Any container libsndfile understands is accepted (WAV, FLAC, OGG, ...).
    16-bit PCM is read as integers and scaled with the same asymmetric
    factors :func:`encode_wav` uses, so encoded buffers decode back to
    within one quantization step.

    Args:
        blob: Encoded audio bytes.

    Returns:
        AudioBuffer with the file's channels and sample rate.

    Raises:
        DecodeError: If the blob is empty, malformed or unsupported.
    """
    if not blob:
        raise DecodeError("Cannot decode an empty audio blob")
    try:
        with sf.SoundFile(io.BytesIO(blob)) as sound_file:
            sample_rate = sound_file.samplerate
            if sound_file.subtype == "PCM_16":
                data = dequantize_pcm16(sound_file.read(dtype="int16", always_2d=True))
            else:
                data = sound_file.read(dtype="float32", always_2d=True)
    except (RuntimeError, TypeError, ValueError) as exc:
        raise DecodeError(f"Unable to decode audio blob: {exc}") from exc

    logger.debug("Decoded %d frames x %d channels at %d Hz", data.shape[0], data.shape[1], sample_rate)
    return AudioBuffer(data.T, sample_rate)


def load_audio(
    audio_path: Union[str, Path],
    sr: int | None = None,
) -> AudioBuffer:
    """
    Load an audio file from disk.

    Args:
        audio_path: Path to audio file (wav, mp3, flac).
        sr: Target sample rate. None preserves original.

    Returns:
        AudioBuffer with all channels preserved.

    Raises:
        DecodeError: If the file cannot be read.
    """
    try:
        y, sr_out = librosa.load(audio_path, sr=sr, mono=False)
    except Exception as exc:
        raise DecodeError(f"Unable to load {audio_path}: {exc}") from exc
    return AudioBuffer(y, sr_out)
