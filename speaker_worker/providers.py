"""
Provider factory: builds the configured text-to-speech providers.
"""

import logging
from typing import Dict, List, Optional

from .config import Settings
from .errors import ProviderUnavailableError
from .implementations.baidu_tts import BaiduTextToSpeech
from .implementations.polly_tts import PollyTextToSpeech
from .interfaces.text_to_speech import TextToSpeechInterface

logger = logging.getLogger(__name__)


def create_provider(name: str, settings: Settings, buffer_size: Optional[int] = None) -> TextToSpeechInterface:
    """
    Create one provider by name.

    buffer_size overrides the configured stream chunk size.
    """
    buffer_size = buffer_size or settings.stream_chunk_size
    if name == PollyTextToSpeech.name:
        return PollyTextToSpeech(
            engine=settings.polly_engine,
            sample_rate=settings.polly_sample_rate,
            region_name=settings.aws_region,
            profile_name=settings.aws_profile,
            buffer_size=buffer_size,
        )

    if name == BaiduTextToSpeech.name:
        if not settings.baidu_enabled:
            raise ProviderUnavailableError("baidu credentials are not configured")
        return BaiduTextToSpeech(
            client_id=settings.baidu_client_id,
            client_secret=settings.baidu_client_secret,
            auth_url=settings.baidu_auth_url,
            tts_url=settings.baidu_tts_url,
            token_file=settings.baidu_token_file,
            cuid=settings.baidu_cuid,
            buffer_size=buffer_size,
        )

    raise ProviderUnavailableError(f"unknown provider: {name}")


def build_providers(settings: Settings) -> Dict[str, TextToSpeechInterface]:
    """
    Build every enabled provider, in catalog merge order.

    Polly is always enabled; Baidu only when its credentials are set.
    """
    names: List[str] = [PollyTextToSpeech.name]
    if settings.baidu_enabled:
        names.append(BaiduTextToSpeech.name)
    else:
        logger.info("Baidu credentials not set, zh-CN voices disabled")

    return {name: create_provider(name, settings) for name in names}
