"""
Speak coordination: one request from arrival to reply.

A request is resolved, validated, looked up in the cache and then either
played by an isolated playback unit or synthesized and returned as bytes.
Playback is single-flight: at most one unit plays at a time.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from .cache import ContentCache
from .catalog import VoiceCatalog
from .config import RuntimeConfig
from .errors import (
    InvalidLanguageError,
    InvalidVoiceError,
    MissingTextError,
    PlaybackInterrupted,
    ProviderUnavailableError,
    SpeakerError,
    SynthesisError,
)
from .events import SPEAK_BEGIN, SPEAK_CONTENT, SPEAK_END, EventPublisher, NullPublisher
from .interfaces.text_to_speech import TextToSpeechInterface
from .models import PlaybackJob, ResolvedSpeechRequest, SpeakReply, SpeechRequest
from .pipeline import synthesize_to_cache
from .resolver import resolve
from .supervisor import PlaybackSupervisor

logger = logging.getLogger(__name__)

HistoryListener = Callable[[Dict[str, Any]], Awaitable[None]]


class OutputMode(str, Enum):
    PLAY_LOCALLY = "play-locally"
    RETURN_BYTES = "return-bytes"


class PlaybackPolicy(str, Enum):
    # Wait for the current utterance to finish
    QUEUE = "queue"
    # Kill the current utterance and play the new one
    PREEMPT = "preempt"


@dataclass
class SpeakOutcome:
    reply: SpeakReply
    audio: Optional[bytes] = None


class SpeakCoordinator:
    """
    Orchestrates speech requests for both output modes.

    All methods run on the event loop; blocking cache and provider work is
    pushed to the default executor, and blocking playback lives in the
    playback unit.
    """

    def __init__(
        self,
        config: RuntimeConfig,
        catalog: VoiceCatalog,
        cache: ContentCache,
        supervisor: PlaybackSupervisor,
        providers: Mapping[str, TextToSpeechInterface],
        publisher: Optional[EventPublisher] = None,
        speaker_id: str = "speaker-worker",
        playback_policy: Union[PlaybackPolicy, str] = PlaybackPolicy.QUEUE,
        chunk_size: int = 1024,
    ):
        self.config = config
        self.catalog = catalog
        self.cache = cache
        self.supervisor = supervisor
        self.providers = dict(providers)
        self.publisher = publisher or NullPublisher()
        self.speaker_id = speaker_id
        self.playback_policy = PlaybackPolicy(playback_policy)
        self.chunk_size = chunk_size
        self.history_listeners: List[HistoryListener] = []
        self._playback_slot = asyncio.Lock()

    # Requests

    def resolve(self, params: Union[SpeechRequest, Mapping[str, Any]]) -> ResolvedSpeechRequest:
        return resolve(params, self.config, self.catalog)

    def validate(self, request: ResolvedSpeechRequest) -> None:
        if not request.text:
            raise MissingTextError()
        if not self.catalog.has_language(request.language):
            raise InvalidLanguageError()
        if not self.catalog.supports(request.language, request.voice):
            raise InvalidVoiceError()

    async def speak(self, params: Union[SpeechRequest, Mapping[str, Any]]) -> SpeakReply:
        outcome = await self.handle(params, OutputMode.PLAY_LOCALLY)
        return outcome.reply

    async def get_synthesized_audio(self, params: Union[SpeechRequest, Mapping[str, Any]]) -> bytes:
        """
        Synthesize (or reuse) audio without playing it.

        Raises:
            SpeakerError: With the reply message when no audio is available
        """
        outcome = await self.handle(params, OutputMode.RETURN_BYTES)
        if outcome.audio is None:
            raise SpeakerError(reply_message=outcome.reply.message)
        return outcome.audio

    async def handle(
        self,
        params: Union[SpeechRequest, Mapping[str, Any]],
        mode: OutputMode = OutputMode.PLAY_LOCALLY,
    ) -> SpeakOutcome:
        try:
            request = self.resolve(params)
        except ValidationError as error:
            logger.warning(f"Invalid speech request: {error}")
            return SpeakOutcome(SpeakReply.error("invalid request"))

        try:
            self.validate(request)
        except SpeakerError as error:
            logger.warning(f"Rejected speech request ({error.reply_message}): {request.language}/{request.voice}")
            return SpeakOutcome(SpeakReply.error(error.reply_message))

        await self.publisher.publish(SPEAK_CONTENT, self._content_event(request))

        # Checked once: only the request that found no entry may clean it up
        created_entry = not await self._run_blocking(self.cache.exists, request.cache_key)

        if mode is OutputMode.RETURN_BYTES:
            return await self._return_bytes(request, created_entry)
        return SpeakOutcome(await self._play(request, created_entry))

    async def _play(self, request: ResolvedSpeechRequest, created_entry: bool) -> SpeakReply:
        logger.info(f"Speaking: {request.text}")
        await self.publisher.publish(SPEAK_BEGIN, request.to_payload())
        await self._notify_history(request)

        job = PlaybackJob(
            request=request,
            cache_dir=str(self.cache.cache_dir),
            provider=self.catalog.provider_for(request.language),
            chunk_size=self.chunk_size,
        )
        try:
            completed = await self._run_unit(job)
        finally:
            await self.publisher.publish(SPEAK_END, request.to_payload())

        if not completed:
            if created_entry:
                await self._discard_entry(request.cache_key)
            return SpeakReply.error(PlaybackInterrupted.reply_message, data=request)

        request.timings = await self._run_blocking(self.cache.read_timings_if_present, request.cache_key)
        return SpeakReply.success(request)

    async def _return_bytes(self, request: ResolvedSpeechRequest, created_entry: bool) -> SpeakOutcome:
        key = request.cache_key
        try:
            if created_entry:
                provider = self._provider_for(request.language)
                await self._run_blocking(synthesize_to_cache, provider, request, self.cache)
            audio = await self._run_blocking(self.cache.read, key)
        except (SpeakerError, OSError) as error:
            logger.error(f"Could not synthesize {key}: {error}")
            if created_entry:
                await self._discard_entry(key)
            message = error.reply_message if isinstance(error, SpeakerError) else SynthesisError.reply_message
            return SpeakOutcome(SpeakReply.error(message, data=request))

        request.timings = await self._run_blocking(self.cache.read_timings_if_present, key)
        return SpeakOutcome(SpeakReply.success(request), audio)

    async def play_buffer(self, audio: bytes) -> SpeakReply:
        """Play caller-supplied WAV bytes at full volume, without caching them."""
        path = self.cache.cache_dir / f"tmp-{uuid.uuid4()}"
        await self._run_blocking(self.cache.create)
        await self._run_blocking(path.write_bytes, audio)

        request = ResolvedSpeechRequest(
            language=self.config.default_language,
            volume=1.0,
            timestamp=datetime.now(),
            cache_key=path.name,
        )
        job = PlaybackJob(request=request, cache_dir=str(self.cache.cache_dir), source_path=str(path))
        try:
            completed = await self._run_unit(job)
        finally:
            await self._run_blocking(lambda: path.unlink(missing_ok=True))

        if completed:
            return SpeakReply.success()
        return SpeakReply.error(PlaybackInterrupted.reply_message)

    def stop(self) -> SpeakReply:
        """Kill the active playback; the interrupted request replies on its own."""
        self.supervisor.kill_active()
        return SpeakReply.success()

    # Control commands

    def set_default_language(self, language: str) -> bool:
        return self.config.set_default_language(language, self.catalog)

    def set_default_voice(self, language: str, voice: str) -> bool:
        return self.config.set_default_voice(language, voice, self.catalog)

    def change_volume(self, change: Optional[float] = None, volume: Optional[float] = None) -> float:
        return self.config.change_volume(change=change, volume=volume)

    async def clear_cache(self) -> None:
        await self._run_blocking(self.cache.clear_all)

    def shutdown(self) -> None:
        self.supervisor.kill_active()

    # Internals

    async def _run_unit(self, job: PlaybackJob) -> bool:
        if self.playback_policy is PlaybackPolicy.PREEMPT:
            self.supervisor.kill_active()

        async with self._playback_slot:
            try:
                handle = await self.supervisor.start(job)
            except OSError as error:
                logger.error(f"Could not start playback unit: {error}")
                return False
            result = await handle.wait()
            return self.supervisor.succeeded(handle, result)

    async def _discard_entry(self, key: str) -> None:
        """Remove whatever a failed synthesis left behind for key."""
        def discard() -> None:
            self.cache.delete_if_present(key)
            self.cache.delete_timings_if_present(key)
            self.cache.delete_partials(key)

        await self._run_blocking(discard)
        logger.info(f"Removed partial cache entry {key}")

    def _provider_for(self, language: str) -> TextToSpeechInterface:
        name = self.catalog.provider_for(language)
        if name is None or name not in self.providers:
            raise ProviderUnavailableError()
        return self.providers[name]

    def _content_event(self, request: ResolvedSpeechRequest) -> Dict[str, Any]:
        return {
            "text": request.text,
            "time_captured": int(time.time() * 1000),
            "timestamp": request.timestamp.isoformat(),
            "speaker": self.speaker_id,
            "voice": request.voice,
            "language": request.language,
        }

    async def _notify_history(self, request: ResolvedSpeechRequest) -> None:
        entry = {
            "type": "history",
            "text": request.text,
            "language": request.language,
            "voice": request.voice,
            "timestamp": request.timestamp.strftime("%H:%M:%S"),
        }
        for listener in list(self.history_listeners):
            try:
                await listener(entry)
            except Exception as error:
                logger.warning(f"History listener failed: {error}")

    @staticmethod
    async def _run_blocking(func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)
