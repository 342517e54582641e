"""
Turns loosely specified speech requests into fully specified ones.
"""

import hashlib
import re
from datetime import datetime
from typing import Any, Mapping, Optional, Tuple, Union

from .catalog import VoiceCatalog
from .config import RuntimeConfig
from .models import ResolvedSpeechRequest, SpeechRequest

# Voices may carry their language, e.g. "en-US_AllisonVoice"
VOICE_LANGUAGE_PATTERN = re.compile(r"^([a-z]{2}-[A-Z]{2})_")


def fingerprint(language: str, voice: Optional[str], text: str) -> str:
    """Stable cache key for a (language, voice, text) triple."""
    key = f"{language}|{voice or ''}|{text}"
    return hashlib.sha1(key.encode("utf-8")).hexdigest()


def split_voice_language(voice: str) -> Tuple[Optional[str], str]:
    """
    Split a language prefix off a voice name.

    Returns:
        Tuple[Optional[str], str]: (language, voice), language is None when
        the voice carries no prefix
    """
    match = VOICE_LANGUAGE_PATTERN.match(voice)
    if not match:
        return None, voice
    language = match.group(1)
    return language, voice[len(language) + 1:]


def resolve(
    request: Union[SpeechRequest, Mapping[str, Any]],
    config: RuntimeConfig,
    catalog: VoiceCatalog,
    now: Optional[datetime] = None,
) -> ResolvedSpeechRequest:
    """
    Fill in every parameter a speech request left out.

    Explicit values always win over defaults. Resolution never fails on
    missing text; the caller checks that.

    Args:
        request: The request as received
        config: Current runtime defaults
        catalog: Voices available per language
        now: Timestamp for requests without one (default: current time)

    Returns:
        ResolvedSpeechRequest: The canonical request with its cache key
    """
    if not isinstance(request, SpeechRequest):
        request = SpeechRequest.model_validate(request)

    language = request.lang or request.language
    voice = request.voice

    if not language and voice:
        prefix, remainder = split_voice_language(voice)
        if prefix:
            language, voice = prefix, remainder

    if not language:
        language = config.default_language

    if not voice:
        voice = config.default_voices.get(language) or catalog.first_voice(language)

    text = request.text or ""

    return ResolvedSpeechRequest(
        text=text,
        language=language,
        voice=voice,
        volume=config.volume if request.volume is None else request.volume,
        pan=list(request.pan or []),
        stream=True if request.stream is None else request.stream,
        timestamp=request.timestamp or now or datetime.now(),
        cache_key=request.cache_key or fingerprint(language, voice, text),
    )
