"""Configuration settings for the speaker worker"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from .catalog import VoiceCatalog

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Static settings, loaded once from the environment"""

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    speaker_id: str = "speaker-worker"

    # Message queue, disabled when unset
    redis_url: Optional[str] = None

    # Runtime defaults
    default_language: str = "en-US"
    default_voices: Dict[str, str] = Field(default_factory=lambda: {"en-US": "Joanna"})
    volume: float = Field(default=1.0, ge=0.0, le=1.0)

    # Storage
    cache_dir: Path = Path("cache")

    # Playback
    playback_policy: Literal["queue", "preempt"] = "queue"
    playback_success_signals: List[int] = Field(default_factory=list)
    playback_command: Optional[List[str]] = None
    stream_chunk_size: int = 1024

    # AWS Polly
    aws_region: Optional[str] = None
    aws_profile: Optional[str] = None
    polly_engine: str = "neural"
    polly_sample_rate: int = 16000

    # Baidu, enabled only when both credentials are present
    baidu_client_id: Optional[str] = None
    baidu_client_secret: Optional[str] = None
    baidu_auth_url: str = "https://openapi.baidu.com/oauth/2.0/token"
    baidu_tts_url: str = "https://tsn.baidu.com/text2audio"
    baidu_token_file: Path = Path("baidu.json")
    baidu_cuid: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="SPEAKER_",
        env_file=".env",
        case_sensitive=False,
    )

    @property
    def baidu_enabled(self) -> bool:
        return bool(self.baidu_client_id and self.baidu_client_secret)


@dataclass
class RuntimeConfig:
    """
    Process-wide defaults that control commands may change at runtime.

    Owned by the coordinator and read on every resolve; all mutation goes
    through the methods below so it stays on the event loop thread.
    """

    default_language: str = "en-US"
    default_voices: Dict[str, str] = field(default_factory=dict)
    volume: float = 1.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RuntimeConfig":
        return cls(
            default_language=settings.default_language,
            default_voices=dict(settings.default_voices),
            volume=settings.volume,
        )

    def set_default_language(self, language: str, catalog: "VoiceCatalog") -> bool:
        if not catalog.has_language(language):
            logger.warning(f"Invalid new default language: {language}")
            return False

        self.default_language = language
        logger.info(f"Default language set to {self.default_language}")
        return True

    def set_default_voice(self, language: str, voice: str, catalog: "VoiceCatalog") -> bool:
        if not catalog.has_language(language):
            logger.warning(f"Invalid language for default voice: {language}")
            return False

        if not catalog.supports(language, voice):
            logger.warning(f"Invalid default voice for language {language}: {voice}")
            return False

        self.default_voices[language] = voice
        logger.info(f"Default voice for {language} set to {voice}")
        return True

    def change_volume(self, change: Optional[float] = None, volume: Optional[float] = None) -> float:
        """
        Apply a volume command and return the new volume.

        Args:
            change: Relative change in percentage points (+20 means +0.2)
            volume: Absolute volume, used only when no change is given

        Returns:
            float: The new volume, clamped to [0, 1]
        """
        if change is not None:
            self.volume = self.volume + change / 100
        elif volume is not None:
            self.volume = volume

        self.volume = min(max(self.volume, 0.0), 1.0)

        logger.info(f"Set volume to {self.volume}")
        return self.volume
