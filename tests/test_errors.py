"""Tests for caller-facing error messages."""

from speaker_worker.errors import CacheEntryNotFound, InvalidVoiceError, SpeakerError, SynthesisError


def test_detail_stays_out_of_the_reply():
    error = SynthesisError("polly synthesis failed: ThrottlingException")

    assert error.reply_message == "failure to synthesize"
    assert str(error) == "polly synthesis failed: ThrottlingException"


def test_default_text_is_the_reply():
    error = InvalidVoiceError()

    assert str(error) == "invalid voice"
    assert error.reply_message == "invalid voice"


def test_explicit_reply_message():
    error = SpeakerError(reply_message="interrupted")

    assert error.reply_message == "interrupted"
    assert str(error) == "interrupted"
    assert SpeakerError.reply_message == "speaker error"


def test_cache_miss_text_is_not_quoted():
    assert str(CacheEntryNotFound("cache entry not found: key")) == "cache entry not found: key"
