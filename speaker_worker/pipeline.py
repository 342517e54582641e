"""
Synthesis tees shared by the playback unit and the bytes-returning path.

One provider stream feeds up to three consumers at once: the cache file,
an optional audio sink, and the word-timing sidecar. A synthesis only
counts as finished when all of them have finished.
"""

import logging
import queue
import wave
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import numpy as np

from .cache import SAMPLE_WIDTH, ContentCache
from .errors import SynthesisError
from .interfaces.text_to_speech import TextToSpeechInterface
from .models import ResolvedSpeechRequest, WordTiming

logger = logging.getLogger(__name__)

# Frames read per chunk when playing a WAV file
FILE_CHUNK_FRAMES = 1024

_END_OF_AUDIO = None


class AudioSink(ABC):
    """Destination for PCM audio; the playback unit's device output is one."""

    @abstractmethod
    def open(self, sample_rate: int, channels: int) -> None:
        pass

    @abstractmethod
    def write(self, chunk: bytes) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


def output_channels(channels: int, pan: Sequence[float]) -> int:
    return len(pan) if pan else channels


def apply_gain(pcm: bytes, channels: int, volume: float, pan: Sequence[float] = ()) -> np.ndarray:
    """
    Convert 16-bit PCM to float frames with volume and pan applied.

    With a pan of N gains the output has N channels, channel i being the
    first input channel scaled by pan[i].

    Returns:
        np.ndarray: float32 array of shape (frames, output channels) in [-1, 1]
    """
    samples = np.frombuffer(pcm, dtype="<i2").astype(np.float32) / 32768.0
    frames = samples.reshape(-1, channels) * volume
    if pan:
        frames = np.outer(frames[:, 0], np.asarray(pan, dtype=np.float32))
    return np.clip(frames, -1.0, 1.0).astype(np.float32)


def collect_timings(words: Iterable[WordTiming], cache: ContentCache, key: str) -> List[WordTiming]:
    """Drain the word event stream and flush it to the cache sidecar."""
    timings = list(words)
    cache.write_timings(key, timings)
    return timings


def _drain(chunks: "queue.Queue", sink: AudioSink) -> None:
    try:
        while True:
            chunk = chunks.get()
            if chunk is _END_OF_AUDIO:
                break
            sink.write(chunk)
    finally:
        sink.close()


def _close(iterator: Iterable) -> None:
    close = getattr(iterator, "close", None)
    if close is not None:
        close()


def synthesize_to_cache(
    provider: TextToSpeechInterface,
    request: ResolvedSpeechRequest,
    cache: ContentCache,
    sink: Optional[AudioSink] = None,
) -> List[WordTiming]:
    """
    Synthesize a request into the cache, optionally playing it as it arrives.

    The cache file is published only once the whole stream has been
    received. The sink is fed from its own thread so a slow device never
    holds up the download. The word stream is only read once the cache
    file and the sink are open.

    Returns:
        List[WordTiming]: The word timings written to the sidecar

    Raises:
        SynthesisError: If the provider fails or produces no audio
    """
    key = request.cache_key
    stream = provider.synthesize(request.text, request.voice, request.language)

    try:
        with cache.open_writer(key, stream.sample_rate, stream.channels) as writer:
            chunks = None
            if sink is not None:
                sink.open(stream.sample_rate, stream.channels)
                chunks = queue.Queue()

            with ThreadPoolExecutor(max_workers=2) as pool:
                timings_future = pool.submit(collect_timings, stream.words, cache, key)
                sink_future = pool.submit(_drain, chunks, sink) if chunks is not None else None

                received = 0
                try:
                    for chunk in stream.audio:
                        received += len(chunk)
                        writer.write(chunk)
                        if chunks is not None:
                            chunks.put(chunk)
                    if not received:
                        raise SynthesisError("provider returned no audio")
                finally:
                    # Ends the audio stream before the word thread is joined
                    _close(stream.audio)
                    if chunks is not None:
                        chunks.put(_END_OF_AUDIO)

                timings = timings_future.result()
                if sink_future is not None:
                    sink_future.result()
    finally:
        _close(stream.audio)

    logger.info(f"Cached {received} bytes of audio and {len(timings)} word timings for {key}")
    return timings


def play_file(path: Path, sink: AudioSink, chunk_frames: int = FILE_CHUNK_FRAMES) -> None:
    """Play a 16-bit WAV file through a sink."""
    with wave.open(str(path), "rb") as wav:
        if wav.getsampwidth() != SAMPLE_WIDTH:
            raise wave.Error(f"unsupported sample width: {wav.getsampwidth()}")

        sink.open(wav.getframerate(), wav.getnchannels())
        try:
            frames = wav.readframes(chunk_frames)
            while frames:
                sink.write(frames)
                frames = wav.readframes(chunk_frames)
        finally:
            sink.close()
