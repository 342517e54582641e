"""Tests for the provider factory."""

from unittest.mock import patch

import pytest

from speaker_worker.config import Settings
from speaker_worker.errors import ProviderUnavailableError
from speaker_worker.implementations.baidu_tts import BaiduTextToSpeech
from speaker_worker.providers import build_providers, create_provider


@pytest.fixture
def polly_class():
    with patch("speaker_worker.providers.PollyTextToSpeech") as polly:
        polly.name = "polly"
        yield polly


def test_polly_only_without_baidu_credentials(polly_class):
    settings = Settings(_env_file=None, baidu_client_id=None, baidu_client_secret=None)

    providers = build_providers(settings)

    assert list(providers) == ["polly"]
    polly_class.assert_called_once_with(
        engine="neural",
        sample_rate=16000,
        region_name=None,
        profile_name=None,
        buffer_size=1024,
    )


def test_baidu_with_credentials(polly_class, tmp_path):
    settings = Settings(
        _env_file=None,
        baidu_client_id="id",
        baidu_client_secret="secret",
        baidu_token_file=tmp_path / "baidu.json",
        baidu_cuid="cuid",
    )

    providers = build_providers(settings)

    assert list(providers) == ["polly", "baidu"]
    assert isinstance(providers["baidu"], BaiduTextToSpeech)
    assert providers["baidu"].token_file == tmp_path / "baidu.json"


def test_baidu_requires_credentials():
    with pytest.raises(ProviderUnavailableError):
        create_provider("baidu", Settings(_env_file=None, baidu_client_id=None, baidu_client_secret=None))


def test_unknown_provider():
    with pytest.raises(ProviderUnavailableError, match="unknown provider"):
        create_provider("festival", Settings(_env_file=None))


def test_buffer_size_override(polly_class):
    create_provider("polly", Settings(_env_file=None), buffer_size=4096)

    assert polly_class.call_args.kwargs["buffer_size"] == 4096
