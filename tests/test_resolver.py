"""Tests for speech request resolution."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from speaker_worker.models import SpeechRequest
from speaker_worker.resolver import fingerprint, resolve, split_voice_language

NOW = datetime(2024, 5, 1, 12, 30, 0)


class TestSplitVoiceLanguage:
    def test_prefixed_voice(self):
        assert split_voice_language("en-US_AllisonVoice") == ("en-US", "AllisonVoice")

    def test_plain_voice(self):
        assert split_voice_language("Joanna") == (None, "Joanna")

    def test_prefix_must_match_case(self):
        assert split_voice_language("EN-us_AllisonVoice") == (None, "EN-us_AllisonVoice")


class TestFingerprint:
    def test_deterministic(self):
        assert fingerprint("en-US", "LisaVoice", "hi") == fingerprint("en-US", "LisaVoice", "hi")

    def test_sha1_hex(self):
        key = fingerprint("en-US", "LisaVoice", "hi")
        assert len(key) == 40
        int(key, 16)

    def test_differs_by_each_component(self):
        base = fingerprint("en-US", "LisaVoice", "hi")
        assert fingerprint("de-DE", "LisaVoice", "hi") != base
        assert fingerprint("en-US", "AllisonVoice", "hi") != base
        assert fingerprint("en-US", "LisaVoice", "hello") != base


class TestResolve:
    def test_voice_prefix_supplies_language(self, runtime_config, catalog):
        """A prefixed voice sets the language and loses its prefix."""
        resolved = resolve({"text": "hi", "voice": "en-US_AllisonVoice"}, runtime_config, catalog, now=NOW)

        assert resolved.language == "en-US"
        assert resolved.voice == "AllisonVoice"
        assert resolved.volume == 0.8
        assert resolved.pan == []
        assert resolved.stream is True
        assert resolved.timestamp == NOW
        assert resolved.cache_key == fingerprint("en-US", "AllisonVoice", "hi")

    def test_explicit_language_keeps_prefixed_voice(self, runtime_config, catalog):
        resolved = resolve(
            {"text": "hi", "language": "de-DE", "voice": "en-US_AllisonVoice"}, runtime_config, catalog
        )

        assert resolved.language == "de-DE"
        assert resolved.voice == "en-US_AllisonVoice"

    def test_defaults_to_first_catalog_voice(self, runtime_config, catalog):
        resolved = resolve({"text": "hi"}, runtime_config, catalog)

        assert resolved.language == "en-US"
        assert resolved.voice == "LisaVoice"

    def test_configured_default_voice_wins_over_catalog(self, runtime_config, catalog):
        runtime_config.default_voices["en-US"] = "AllisonVoice"

        resolved = resolve({"text": "hi"}, runtime_config, catalog)

        assert resolved.voice == "AllisonVoice"

    def test_lang_alias(self, runtime_config, catalog):
        resolved = resolve({"text": "hallo", "lang": "de-DE"}, runtime_config, catalog)

        assert resolved.language == "de-DE"
        assert resolved.voice == "Vicki"

    def test_unknown_language_has_no_voice(self, runtime_config, catalog):
        resolved = resolve({"text": "hi", "language": "fr-FR"}, runtime_config, catalog)

        assert resolved.language == "fr-FR"
        assert resolved.voice is None

    def test_explicit_values_win(self, runtime_config, catalog):
        request = {
            "text": "hi",
            "volume": 0.0,
            "pan": [1.0, 0.0],
            "stream": False,
            "timestamp": "2024-01-02T03:04:05",
            "cache_key": "custom-key",
        }

        resolved = resolve(request, runtime_config, catalog, now=NOW)

        assert resolved.volume == 0.0
        assert resolved.pan == [1.0, 0.0]
        assert resolved.stream is False
        assert resolved.timestamp == datetime(2024, 1, 2, 3, 4, 5)
        assert resolved.cache_key == "custom-key"

    def test_missing_text_still_resolves(self, runtime_config, catalog):
        resolved = resolve({}, runtime_config, catalog)

        assert resolved.text == ""
        assert resolved.cache_key == fingerprint("en-US", "LisaVoice", "")

    def test_same_request_same_key(self, runtime_config, catalog):
        first = resolve(SpeechRequest(text="hi"), runtime_config, catalog)
        second = resolve({"text": "hi", "voice": "en-US_LisaVoice"}, runtime_config, catalog)

        assert first.cache_key == second.cache_key

    def test_out_of_range_volume_rejected(self, runtime_config, catalog):
        with pytest.raises(ValidationError):
            resolve({"text": "hi", "volume": 1.5}, runtime_config, catalog)

    @pytest.mark.parametrize("key", ["../x", "/etc/passwd", "a.b", "key with spaces", ""])
    def test_cache_key_must_be_a_plain_name(self, runtime_config, catalog, key):
        with pytest.raises(ValidationError):
            resolve({"text": "hi", "cache_key": key}, runtime_config, catalog)
