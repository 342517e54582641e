"""Data models for the speaker worker"""

from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field


# Keys name files in the cache directory
CACHE_KEY_PATTERN = r"^[A-Za-z0-9_-]+$"


class WordTiming(NamedTuple):
    """When a word is spoken within an utterance, in seconds from its start."""

    word: str
    start: float
    end: float


class SpeechRequest(BaseModel):
    """Loosely specified speech request as received from a caller"""

    model_config = ConfigDict(extra="ignore")

    text: Optional[str] = None
    language: Optional[str] = None
    lang: Optional[str] = None
    voice: Optional[str] = None
    volume: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    pan: Optional[List[float]] = None
    stream: Optional[bool] = None
    timestamp: Optional[datetime] = None
    cache_key: Optional[str] = Field(default=None, pattern=CACHE_KEY_PATTERN)


class ResolvedSpeechRequest(BaseModel):
    """Fully specified speech request; voice is None only for unknown languages"""

    text: str = ""
    language: str
    voice: Optional[str] = None
    volume: float
    pan: List[float] = Field(default_factory=list)
    stream: bool = True
    timestamp: datetime
    cache_key: str = Field(pattern=CACHE_KEY_PATTERN)
    timings: Optional[List[WordTiming]] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class PlaybackJob(BaseModel):
    """Everything the isolated playback unit needs, serialized onto its command line"""

    request: ResolvedSpeechRequest
    cache_dir: str
    provider: Optional[str] = None
    source_path: Optional[str] = None
    chunk_size: int = 1024


class SpeakReply(BaseModel):
    """Reply envelope for Speak and PlayBuffer"""

    status: str
    message: Optional[str] = None
    data: Optional[ResolvedSpeechRequest] = None

    @classmethod
    def success(cls, data: Optional[ResolvedSpeechRequest] = None) -> "SpeakReply":
        return cls(status="success", data=data)

    @classmethod
    def error(cls, message: str, data: Optional[ResolvedSpeechRequest] = None) -> "SpeakReply":
        return cls(status="error", message=message, data=data)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class DefaultLanguageCommand(BaseModel):
    language: str


class DefaultVoiceCommand(BaseModel):
    language: str
    voice: str


class VolumeCommand(BaseModel):
    change: Optional[float] = None
    volume: Optional[float] = None
