"""
Error types for the speaker worker.

Every error carries the message that is sent back to the caller in an
``{"status": "error", "message": ...}`` reply. The exception text holds the
internal detail, which is only logged.
"""

from typing import Optional


class SpeakerError(Exception):
    """Base class for errors reported back to a caller."""

    reply_message = "speaker error"

    def __init__(self, message: Optional[str] = None, reply_message: Optional[str] = None):
        super().__init__(message or reply_message or self.reply_message)
        if reply_message is not None:
            self.reply_message = reply_message


class MissingTextError(SpeakerError):
    reply_message = "text parameter is missing"


class InvalidLanguageError(SpeakerError):
    reply_message = "invalid language"


class InvalidVoiceError(SpeakerError):
    reply_message = "invalid voice"


class SynthesisError(SpeakerError):
    """The provider produced no usable audio stream."""

    reply_message = "failure to synthesize"


class PlaybackInterrupted(SpeakerError):
    """The isolated playback unit did not exit successfully."""

    reply_message = "interrupted"


class ProviderUnavailableError(SpeakerError):
    reply_message = "no provider available for language"


class CatalogBootstrapError(SpeakerError):
    """The voice catalog could not be built at startup."""

    reply_message = "voice catalog unavailable"


class InvalidCacheKeyError(SpeakerError):
    """A cache key that would address a file outside the cache directory."""

    reply_message = "invalid cache key"


class CacheEntryNotFound(SpeakerError, KeyError):
    reply_message = "cache entry not found"

    def __str__(self) -> str:
        # KeyError would quote the message
        return Exception.__str__(self)
