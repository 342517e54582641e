"""
Audio output for the isolated playback unit.

Only the playback unit opens the output device: blocking on it is exactly
what the coordinating process must never do. sounddevice is imported when
a device is opened, so jobs can be run against any other sink.
"""

import logging
from pathlib import Path
from typing import Optional, Sequence

from .cache import SAMPLE_WIDTH, ContentCache, align_frames
from .config import Settings
from .models import PlaybackJob
from .pipeline import AudioSink, apply_gain, output_channels, play_file, synthesize_to_cache
from .providers import create_provider

logger = logging.getLogger(__name__)


class DeviceOutput(AudioSink):
    """Plays PCM on the default output device with volume and pan applied."""

    def __init__(self, volume: float = 1.0, pan: Sequence[float] = (), device=None):
        self.volume = volume
        self.pan = list(pan)
        self.device = device
        self.channels = 1
        self._remainder = b""
        self._stream = None

    def open(self, sample_rate: int, channels: int) -> None:
        import sounddevice as sd

        self.channels = channels
        self._stream = sd.OutputStream(
            samplerate=sample_rate,
            channels=output_channels(channels, self.pan),
            dtype="float32",
            device=self.device,
        )
        self._stream.start()

    def write(self, chunk: bytes) -> None:
        frames, self._remainder = align_frames(self._remainder, chunk, SAMPLE_WIDTH * self.channels)
        if frames:
            self._stream.write(apply_gain(frames, self.channels, self.volume, self.pan))

    def close(self) -> None:
        if self._stream is None:
            return
        # stop() returns once every queued buffer has been played
        self._stream.stop()
        self._stream.close()
        self._stream = None


def run_job(job: PlaybackJob, settings: Settings, sink: Optional[AudioSink] = None) -> None:
    """
    Play one job to completion.

    Raises:
        SynthesisError: If the provider cannot produce audio
        sounddevice.PortAudioError: If the output device fails
    """
    request = job.request
    if sink is None:
        sink = DeviceOutput(request.volume, request.pan)

    if job.source_path:
        logger.info(f"Playing buffer {job.source_path}")
        play_file(Path(job.source_path), sink)
        return

    cache = ContentCache(Path(job.cache_dir))
    key = request.cache_key

    if cache.exists(key):
        logger.info(f"Playing cached audio {key}")
        play_file(cache.path_for(key), sink)
        return

    provider = create_provider(job.provider or "polly", settings, buffer_size=job.chunk_size)
    if request.stream:
        synthesize_to_cache(provider, request, cache, sink=sink)
    else:
        synthesize_to_cache(provider, request, cache)
        play_file(cache.path_for(key), sink)
