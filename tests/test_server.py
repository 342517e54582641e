"""Tests for the HTTP interface."""

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from speaker_worker.config import Settings
from speaker_worker.errors import CatalogBootstrapError
from speaker_worker.server import create_app, install_crash_handler
from tests.conftest import SUCCEEDING_UNIT, FakeProvider


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        cache_dir=tmp_path / "cache",
        playback_command=SUCCEEDING_UNIT,
        redis_url=None,
        default_voices={},
    )


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def client(settings, provider):
    with patch("speaker_worker.server.build_providers", return_value={"fake": provider}):
        with TestClient(create_app(settings)) as test_client:
            yield test_client


class TestRoutes:
    def test_languages(self, client):
        response = client.get("/languages")

        assert response.status_code == 200
        assert response.json() == {"en-US": ["AllisonVoice", "LisaVoice"]}

    def test_index_lists_voices(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert 'value="en-US_AllisonVoice"' in response.text

    def test_speak(self, client):
        response = client.post("/", json={"text": "hello", "voice": "en-US_LisaVoice"})

        body = response.json()
        assert body["status"] == "success"
        assert body["data"]["voice"] == "LisaVoice"
        assert body["data"]["language"] == "en-US"

    def test_speak_without_text(self, client):
        response = client.post("/", json={"voice": "en-US_LisaVoice"})

        assert response.json() == {"status": "error", "message": "text parameter is missing"}

    def test_synthesize(self, client, provider):
        response = client.post("/synthesize", json={"text": "hello"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "audio/wav"
        assert response.content.startswith(b"RIFF")
        assert provider.calls == [("hello", "AllisonVoice", "en-US")]

    def test_synthesize_invalid_language(self, client):
        response = client.post("/synthesize", json={"text": "hello", "language": "xx-XX"})

        assert response.status_code == 400
        assert response.json() == {"status": "error", "message": "invalid language"}

    def test_stop(self, client):
        assert client.post("/stop").json() == {"status": "success"}

    def test_history_feed(self, client):
        with client.websocket_connect("/ws/history") as websocket:
            client.post("/", json={"text": "hello", "timestamp": "2024-05-01T10:11:12"})
            entry = websocket.receive_json()

        assert entry == {
            "type": "history",
            "text": "hello",
            "language": "en-US",
            "voice": "AllisonVoice",
            "timestamp": "10:11:12",
        }


def test_catalog_failure_aborts_startup(settings):
    broken = MagicMock()
    broken.name = "polly"
    broken.list_voices.side_effect = RuntimeError("no credentials")

    with patch("speaker_worker.server.build_providers", return_value={"polly": broken}):
        with pytest.raises(CatalogBootstrapError):
            with TestClient(create_app(settings)):
                pass


class TestCrashHandler:
    def test_unhandled_error_kills_playback_and_exits(self):
        loop = MagicMock()
        coordinator = MagicMock()
        install_crash_handler(loop, coordinator)
        handle = loop.set_exception_handler.call_args.args[0]

        with patch("speaker_worker.server.os._exit") as exit_process:
            handle(loop, {"message": "boom", "exception": ValueError("boom")})

        coordinator.shutdown.assert_called_once()
        exit_process.assert_called_once_with(127)

    @pytest.mark.parametrize("context", [{"message": "no exception"}, {"exception": ConnectionResetError()}])
    def test_routine_errors_are_not_fatal(self, context):
        loop = MagicMock()
        coordinator = MagicMock()
        install_crash_handler(loop, coordinator)
        handle = loop.set_exception_handler.call_args.args[0]

        with patch("speaker_worker.server.os._exit") as exit_process:
            handle(loop, context)

        exit_process.assert_not_called()
        loop.default_exception_handler.assert_called_once_with(context)
