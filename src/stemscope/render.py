"""
Multi-layer rendering.

Layers are decoded once and cached by id. The designated take alone goes
through the adjust stage and the effect chain, then every unmuted layer is
scaled by its volume and summed into a mono mixdown.

Renders are asynchronous. Each render is tagged with a token from a
RenderSequence; a result whose token has been superseded by a newer render
is dropped instead of published. Superseded renders are not interrupted,
they just finish unseen.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable, Iterable
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from stemscope.adjust import AdjustSettings, render_adjusted, sanitize_adjust_settings
from stemscope.chain import process_chain
from stemscope.config import EngineConfig
from stemscope.core.buffers import AudioBuffer, decode_audio, downmix, encode_wav, resample
from stemscope.errors import NoActiveLayersError
from stemscope.settings import ChainSettings, clamp, round_half_up, sanitize_chain_settings

logger = logging.getLogger(__name__)

LAYER_KINDS = ("recorded", "imported")
DEFAULT_LAYER_VOLUME = 0.9


@dataclass(frozen=True)
class Layer:
    """One take in the session: encoded audio plus its mixer state."""

    id: str
    blob: bytes
    muted: bool = False
    volume: float = DEFAULT_LAYER_VOLUME
    kind: str = "recorded"

    def __post_init__(self):
        object.__setattr__(self, "volume", clamp(float(self.volume), 0.0, 1.0))
        if self.kind not in LAYER_KINDS:
            object.__setattr__(self, "kind", "recorded")


@dataclass(frozen=True)
class RenderRequest:
    """Everything a mixdown needs. At most one layer is the designated take."""

    layers: tuple[Layer, ...]
    take_id: str | None = None
    chain: ChainSettings = field(default_factory=ChainSettings)
    adjust: AdjustSettings = field(default_factory=AdjustSettings)
    bpm: float | None = None

    def __post_init__(self):
        object.__setattr__(self, "layers", tuple(self.layers))
        object.__setattr__(self, "chain", sanitize_chain_settings(self.chain))
        object.__setattr__(self, "adjust", sanitize_adjust_settings(self.adjust))

    @property
    def active_layers(self) -> tuple[Layer, ...]:
        return tuple(layer for layer in self.layers if not layer.muted)


@dataclass(frozen=True)
class RenderedMix:
    """Encoded render output."""

    wav: bytes
    duration_sec: int
    sample_rate: int
    n_samples: int


class RenderSequence:
    """
    Monotonic render generation counter.

    Call ``begin()`` before starting a render and ``is_current(token)``
    after it finishes; only the most recently begun render is current.
    """

    def __init__(self):
        self._current = 0

    @property
    def current(self) -> int:
        return self._current

    def begin(self) -> int:
        self._current += 1
        return self._current

    def is_current(self, token: int) -> bool:
        return token == self._current


class LayerDecodeCache:
    """
    Decoded buffers keyed by layer id; decoding runs off the event loop.

    Concurrent requests for the same layer share one decode. A decode that
    finishes after its layer was evicted is returned to its callers but not
    cached.
    """

    def __init__(self, decoder: Callable[[bytes], AudioBuffer] = decode_audio):
        self._decoder = decoder
        self._decoded: dict[str, AudioBuffer] = {}
        self._pending: dict[str, asyncio.Future] = {}

    def __contains__(self, layer_id: str) -> bool:
        return layer_id in self._decoded

    def __len__(self) -> int:
        return len(self._decoded)

    async def get(self, layer: Layer) -> AudioBuffer:
        """
        Decoded audio of a layer, decoding on first use.

        Raises:
            DecodeError: If the layer's blob cannot be decoded.
        """
        cached = self._decoded.get(layer.id)
        if cached is not None:
            return cached

        pending = self._pending.get(layer.id)
        if pending is None:
            pending = asyncio.ensure_future(asyncio.to_thread(self._decoder, layer.blob))
            self._pending[layer.id] = pending
        try:
            # A cancelled caller leaves the shared decode running
            return await asyncio.shield(pending)
        finally:
            if pending.done() and self._pending.get(layer.id) is pending:
                del self._pending[layer.id]
                if not pending.cancelled() and pending.exception() is None:
                    self._decoded[layer.id] = pending.result()

    def evict(self, layer_id: str) -> None:
        """Forget a removed layer, including a decode still in flight."""
        self._decoded.pop(layer_id, None)
        self._pending.pop(layer_id, None)

    def retain(self, layer_ids: Iterable[str]) -> None:
        """Drop every cached or decoding layer not in ``layer_ids``."""
        keep = set(layer_ids)
        for layer_id in set(self._decoded) | set(self._pending):
            if layer_id not in keep:
                self.evict(layer_id)


def process_take(
    buffer: AudioBuffer,
    chain: ChainSettings,
    adjust: AdjustSettings,
    bpm: float | None = None,
) -> AudioBuffer:
    """Adjust stage, then the effect chain, for the designated take."""
    adjusted = render_adjusted(buffer, adjust)
    safe_chain = sanitize_chain_settings(chain)
    if not safe_chain.any_enabled:
        return adjusted
    return process_chain(adjusted, safe_chain, bpm)


def mix_layers(tracks: list[tuple[AudioBuffer, float]]) -> AudioBuffer:
    """
    Sum volume-scaled tracks into one mono buffer.

    The first track sets the output rate; others are resampled to it. The
    output is as long as the longest track.

    Args:
        tracks: (buffer, volume) pairs, at least one.

    Returns:
        Mono mixdown (a sum, not an average).
    """
    sample_rate = tracks[0][0].sample_rate
    prepared = []
    for buffer, volume in tracks:
        mono = downmix(buffer)
        if mono.sample_rate != sample_rate:
            mono = resample(mono, sample_rate)
        prepared.append((mono.samples[0], volume))

    total = max(len(samples) for samples, _ in prepared)
    accumulator = np.zeros(total)
    for samples, volume in prepared:
        accumulator[:len(samples)] += samples * volume
    return AudioBuffer.from_mono(accumulator, sample_rate)


def encode_rendered(buffer: AudioBuffer) -> RenderedMix:
    return RenderedMix(
        wav=encode_wav(buffer),
        duration_sec=max(0, round_half_up(buffer.duration)),
        sample_rate=buffer.sample_rate,
        n_samples=buffer.n_samples,
    )


def _render_decoded(
    request: RenderRequest,
    layers: tuple[Layer, ...],
    decoded: list[AudioBuffer],
) -> RenderedMix:
    tracks = []
    for layer, buffer in zip(layers, decoded):
        if layer.id == request.take_id:
            buffer = process_take(buffer, request.chain, request.adjust, request.bpm)
        tracks.append((buffer, layer.volume))
    return encode_rendered(mix_layers(tracks))


def _is_stale(sequence: RenderSequence | None, token: int | None) -> bool:
    return sequence is not None and token is not None and not sequence.is_current(token)


async def render_mixdown(
    request: RenderRequest,
    cache: LayerDecodeCache,
    *,
    sequence: RenderSequence | None = None,
    token: int | None = None,
) -> RenderedMix | None:
    """
    Render all unmuted layers into one WAV.

    Args:
        request: Layers, designated take and its settings.
        cache: Decode cache shared across renders.
        sequence: Generation counter the token was taken from.
        token: Value returned by ``sequence.begin()`` for this render.

    Returns:
        RenderedMix, or None when a newer render began meanwhile.

    Raises:
        NoActiveLayersError: If every layer is muted.
        DecodeError: If a layer cannot be decoded.
    """
    active = request.active_layers
    if not active:
        raise NoActiveLayersError("All layers are muted; unmute at least one to mix down")

    decoded = await asyncio.gather(*(cache.get(layer) for layer in active))
    rendered = await asyncio.to_thread(_render_decoded, request, active, list(decoded))

    if _is_stale(sequence, token):
        logger.debug("Dropping stale mixdown (token %s, current %s)", token, sequence.current)
        return None
    logger.info("Mixdown ready: %d layers, %d s", len(active), rendered.duration_sec)
    return rendered


async def render_take_preview(
    layer: Layer,
    cache: LayerDecodeCache,
    chain: ChainSettings,
    adjust: AdjustSettings,
    bpm: float | None = None,
    *,
    sequence: RenderSequence | None = None,
    token: int | None = None,
) -> RenderedMix | None:
    """
    Render a single take through adjust and chain, for previewing edits.

    Returns None when a newer preview of the same sequence began meanwhile.
    """
    buffer = await cache.get(layer)
    rendered = await asyncio.to_thread(
        lambda: encode_rendered(process_take(buffer, chain, adjust, bpm))
    )
    if _is_stale(sequence, token):
        logger.debug("Dropping stale preview of %s (token %s)", layer.id, token)
        return None
    return rendered


class PreviewDebouncer:
    """
    Coalesces bursts of requests per key.

    Only the last request submitted within the delay window runs. A request
    that has already started is never cancelled.
    """

    def __init__(self, delay_ms: float = 300.0):
        self.delay = max(0.0, delay_ms) / 1000.0
        self._pending: dict[Hashable, asyncio.TimerHandle] = {}
        self._running: set[asyncio.Task] = set()

    @property
    def pending_keys(self) -> set[Hashable]:
        return set(self._pending)

    def submit(self, key: Hashable, job: Callable[[], Awaitable[Any]]) -> None:
        """Schedule ``job`` for ``key``, replacing any pending job for it."""
        self.cancel(key)
        loop = asyncio.get_running_loop()
        self._pending[key] = loop.call_later(self.delay, self._start, key, job)

    def cancel(self, key: Hashable) -> None:
        handle = self._pending.pop(key, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for key in list(self._pending):
            self.cancel(key)

    def _start(self, key: Hashable, job: Callable[[], Awaitable[Any]]) -> None:
        self._pending.pop(key, None)
        task = asyncio.ensure_future(job())
        self._running.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._running.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Preview render failed: %s", exc, exc_info=exc)

    async def drain(self) -> None:
        """Wait until nothing is pending or running."""
        while self._pending or self._running:
            if self._running:
                await asyncio.gather(*self._running, return_exceptions=True)
            else:
                await asyncio.sleep(self.delay / 2 or 0.001)


class PreviewRenderer:
    """
    Debounced per-take preview renders with stale-result dropping.

    ``on_ready(layer_id, mix)`` is called only with the newest result for a
    layer. Previews of different layers run independently.
    """

    def __init__(
        self,
        cache: LayerDecodeCache,
        on_ready: Callable[[str, RenderedMix], None],
        config: EngineConfig | None = None,
    ):
        config = config or EngineConfig()
        self.cache = cache
        self.on_ready = on_ready
        self.debouncer = PreviewDebouncer(config.preview_debounce_ms)
        self._sequences: dict[str, RenderSequence] = {}

    def sequence_for(self, layer_id: str) -> RenderSequence:
        return self._sequences.setdefault(layer_id, RenderSequence())

    def request(
        self,
        layer: Layer,
        chain: ChainSettings,
        adjust: AdjustSettings,
        bpm: float | None = None,
    ) -> None:
        """Queue a preview of ``layer`` with a snapshot of its settings."""
        chain = sanitize_chain_settings(chain)
        adjust = sanitize_adjust_settings(adjust)
        self.debouncer.submit(layer.id, lambda: self._render(layer, chain, adjust, bpm))

    async def _render(
        self,
        layer: Layer,
        chain: ChainSettings,
        adjust: AdjustSettings,
        bpm: float | None,
    ) -> None:
        sequence = self.sequence_for(layer.id)
        token = sequence.begin()
        result = await render_take_preview(
            layer, self.cache, chain, adjust, bpm, sequence=sequence, token=token
        )
        if result is not None:
            self.on_ready(layer.id, result)

    def remove_layer(self, layer_id: str) -> None:
        """Forget a layer: pending previews, cached decode and sequence."""
        self.debouncer.cancel(layer_id)
        self.cache.evict(layer_id)
        sequence = self._sequences.pop(layer_id, None)
        if sequence is not None:
            # Anything still in flight for this layer becomes stale
            sequence.begin()

    async def drain(self) -> None:
        await self.debouncer.drain()
