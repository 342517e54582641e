"""
Text-to-Speech interface definition for the speaker worker.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Iterator, List

from ..models import WordTiming


@dataclass
class SynthesisStream:
    """
    Audio and word timings produced by one synthesis call.

    Both iterators are single-use and may be consumed from different
    threads. Audio is raw 16-bit little-endian PCM.
    """

    audio: Iterator[bytes]
    words: Iterator[WordTiming] = field(default_factory=lambda: iter(()))
    sample_rate: int = 16000
    channels: int = 1


class TextToSpeechInterface(ABC):
    """Interface for cloud text-to-speech providers with streaming support."""

    name = "tts"

    @abstractmethod
    def list_voices(self) -> Dict[str, List[str]]:
        """
        List the voices this provider offers.

        Returns:
            Dict[str, List[str]]: Voice names keyed by language code (e.g. "en-US")
        """
        pass

    @abstractmethod
    def synthesize(self, text: str, voice: str, language: str) -> SynthesisStream:
        """
        Start synthesizing text with the given voice.

        Args:
            text: Text to speak
            voice: Voice name as listed by list_voices
            language: Language code the voice belongs to

        Returns:
            SynthesisStream: Streams of audio chunks and word timings

        Raises:
            SynthesisError: If the provider cannot produce audio
        """
        pass
