"""
Message-queue transport over redis pub/sub.

Control commands arrive on topics and get no reply. RPC requests arrive as
``{"correlation_id", "reply_to", "content"}`` envelopes; the reply is
published on ``reply_to`` as ``{"correlation_id", "content"}``. Audio
travels base64 encoded.
"""

import asyncio
import base64
import binascii
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Set

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from .coordinator import SpeakCoordinator
from .errors import SpeakerError
from .events import EventPublisher
from .models import DefaultLanguageCommand, DefaultVoiceCommand, VolumeCommand

logger = logging.getLogger(__name__)

CACHE_CLEAR = "speaker.command.cache.clear"
DEFAULT_LANGUAGE = "speaker.command.default.language"
DEFAULT_VOICE = "speaker.command.default.voice"
VOLUME_CHANGE = "speaker.command.volume.change"

RPC_SPEAK_TEXT = "rpc-speaker-speakText"
RPC_SYNTHESIZED_SPEECH = "rpc-speaker-getSynthesizedSpeech"
RPC_PLAY_BUFFER = "rpc-speaker-playBuffer"
RPC_STOP = "rpc-speaker-stop"

RpcHandler = Callable[[Any], Awaitable[Any]]


class RedisEventPublisher(EventPublisher):
    """Publishes lifecycle events as JSON on redis channels"""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        try:
            await self.redis.publish(topic, json.dumps(payload, default=str))
        except RedisError as error:
            logger.warning(f"Could not publish {topic}: {error}")


class MessageBus:
    """Routes queue messages to the coordinator"""

    def __init__(self, redis_client: redis.Redis, coordinator: SpeakCoordinator):
        self.redis = redis_client
        self.coordinator = coordinator
        self._tasks: Set[asyncio.Task] = set()

        self.topics: Dict[str, Callable[[Dict[str, Any]], Awaitable[None]]] = {
            CACHE_CLEAR: self.on_cache_clear,
            DEFAULT_LANGUAGE: self.on_default_language,
            DEFAULT_VOICE: self.on_default_voice,
            VOLUME_CHANGE: self.on_volume_change,
        }
        self.rpcs: Dict[str, RpcHandler] = {
            RPC_SPEAK_TEXT: self.on_speak_text,
            RPC_SYNTHESIZED_SPEECH: self.on_synthesized_speech,
            RPC_PLAY_BUFFER: self.on_play_buffer,
            RPC_STOP: self.on_stop,
        }

    async def run(self) -> None:
        """Subscribe to every command channel and dispatch until cancelled"""
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(*self.topics, *self.rpcs)
        logger.info(f"Subscribed to {len(self.topics) + len(self.rpcs)} speaker channels")

        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                await self.dispatch(_decode(message["channel"]), message["data"])
        finally:
            for task in list(self._tasks):
                task.cancel()
            await pubsub.aclose()

    async def dispatch(self, channel: str, data: Any) -> None:
        try:
            envelope = json.loads(data)
        except (TypeError, ValueError) as error:
            logger.error(f"Malformed message on {channel}: {error}")
            return

        if channel in self.topics:
            # Control commands mutate runtime config, so they run inline, in order
            try:
                await self.topics[channel](envelope)
            except (ValidationError, SpeakerError) as error:
                logger.warning(f"Rejected {channel} command: {error}")
        elif channel in self.rpcs:
            # RPCs may run for a whole utterance; stop must get through meanwhile
            task = asyncio.create_task(self._call(channel, envelope))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _call(self, channel: str, envelope: Dict[str, Any]) -> None:
        try:
            content = await self.rpcs[channel](envelope.get("content"))
        except (ValidationError, SpeakerError, binascii.Error, KeyError, TypeError) as error:
            logger.warning(f"Rejected {channel} request: {error}")
            content = {"status": "error", "message": getattr(error, "reply_message", "invalid request")}

        reply_to = envelope.get("reply_to")
        if not reply_to:
            return
        reply = {"correlation_id": envelope.get("correlation_id"), "content": content}
        try:
            await self.redis.publish(reply_to, json.dumps(reply, default=str))
        except RedisError as error:
            logger.error(f"Could not reply on {reply_to}: {error}")

    # Topics

    async def on_cache_clear(self, envelope: Dict[str, Any]) -> None:
        await self.coordinator.clear_cache()

    async def on_default_language(self, envelope: Dict[str, Any]) -> None:
        command = DefaultLanguageCommand.model_validate(envelope)
        self.coordinator.set_default_language(command.language)

    async def on_default_voice(self, envelope: Dict[str, Any]) -> None:
        command = DefaultVoiceCommand.model_validate(envelope)
        self.coordinator.set_default_voice(command.language, command.voice)

    async def on_volume_change(self, envelope: Dict[str, Any]) -> None:
        command = VolumeCommand.model_validate(envelope)
        self.coordinator.change_volume(change=command.change, volume=command.volume)

    # RPCs

    async def on_speak_text(self, content: Any) -> Dict[str, Any]:
        reply = await self.coordinator.speak(content or {})
        return reply.to_payload()

    async def on_synthesized_speech(self, content: Any) -> Dict[str, Any]:
        audio = await self.coordinator.get_synthesized_audio(content or {})
        return {"status": "success", "audio": base64.b64encode(audio).decode("ascii")}

    async def on_play_buffer(self, content: Any) -> Dict[str, Any]:
        audio = base64.b64decode(content["audio"], validate=True)
        reply = await self.coordinator.play_buffer(audio)
        return reply.to_payload()

    async def on_stop(self, content: Any) -> Dict[str, Any]:
        return self.coordinator.stop().to_payload()


def _decode(channel: Any) -> str:
    return channel.decode("utf-8") if isinstance(channel, bytes) else channel
