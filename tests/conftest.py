"""Shared fixtures for speaker worker tests."""

import asyncio
import struct
import sys
from typing import Any, Dict, List, Optional, Tuple

import pytest

from speaker_worker.cache import ContentCache
from speaker_worker.catalog import VoiceCatalog
from speaker_worker.config import RuntimeConfig
from speaker_worker.errors import SynthesisError
from speaker_worker.events import EventPublisher
from speaker_worker.interfaces.text_to_speech import SynthesisStream, TextToSpeechInterface
from speaker_worker.models import WordTiming
from speaker_worker.pipeline import AudioSink
from speaker_worker.supervisor import PlaybackSupervisor

# Child commands standing in for the playback unit
SUCCEEDING_UNIT = [sys.executable, "-c", "import sys; sys.exit(0)"]
FAILING_UNIT = [sys.executable, "-c", "import sys; sys.exit(3)"]
SLOW_UNIT = [sys.executable, "-c", "import time; time.sleep(30)"]


def pcm(samples: List[int]) -> bytes:
    """Pack 16-bit little-endian mono samples."""
    return struct.pack(f"<{len(samples)}h", *samples)


class FakeProvider(TextToSpeechInterface):
    """Provider returning canned PCM and word timings."""

    name = "fake"

    def __init__(
        self,
        voices: Optional[Dict[str, List[str]]] = None,
        chunks: Optional[List[bytes]] = None,
        words: Optional[List[WordTiming]] = None,
        fail: bool = False,
    ):
        self.voices = voices if voices is not None else {"en-US": ["LisaVoice", "AllisonVoice"]}
        self.chunks = chunks if chunks is not None else [pcm([0, 1000, -1000, 2000]), pcm([3000, -3000])]
        self.words = words if words is not None else [WordTiming("hello", 0.0, 0.2), WordTiming("world", 0.2, 0.4)]
        self.fail = fail
        self.calls: List[Tuple[str, str, str]] = []

    def list_voices(self) -> Dict[str, List[str]]:
        return self.voices

    def synthesize(self, text: str, voice: str, language: str) -> SynthesisStream:
        self.calls.append((text, voice, language))
        if self.fail:
            raise SynthesisError("fake provider failure")
        return SynthesisStream(audio=iter(list(self.chunks)), words=iter(list(self.words)))


class RecordingPublisher(EventPublisher):
    """Keeps every published event in order."""

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        self.events.append((topic, payload))

    def topics(self) -> List[str]:
        return [topic for topic, _ in self.events]


class RecordingSink(AudioSink):
    """AudioSink that keeps what it was given."""

    def __init__(self):
        self.opened: Optional[Tuple[int, int]] = None
        self.chunks: List[bytes] = []
        self.closed = False

    def open(self, sample_rate: int, channels: int) -> None:
        self.opened = (sample_rate, channels)

    def write(self, chunk: bytes) -> None:
        self.chunks.append(chunk)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def catalog():
    return VoiceCatalog(
        {"en-US": ["LisaVoice", "AllisonVoice"], "de-DE": ["Vicki"]},
        {"en-US": "fake", "de-DE": "fake"},
    )


@pytest.fixture
def runtime_config():
    return RuntimeConfig(default_language="en-US", default_voices={}, volume=0.8)


@pytest.fixture
def cache(tmp_path):
    content_cache = ContentCache(tmp_path / "cache")
    content_cache.create()
    return content_cache


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def supervisor():
    return PlaybackSupervisor(command=SUCCEEDING_UNIT)


async def wait_for_active(supervisor: PlaybackSupervisor, timeout: float = 5.0) -> None:
    """Wait until the supervisor has a running unit."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while supervisor.active is None or not supervisor.active.running:
        if loop.time() > deadline:
            raise TimeoutError("playback unit never started")
        await asyncio.sleep(0.01)
