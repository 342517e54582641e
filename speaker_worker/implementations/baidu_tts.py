"""
Baidu REST Text-to-Speech implementation for the speaker worker.
"""

import json
import logging
import time
import uuid
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import httpx

from ..errors import SynthesisError
from ..interfaces.text_to_speech import SynthesisStream, TextToSpeechInterface

logger = logging.getLogger(__name__)

# Human-readable voice label to Baidu "per" parameter
BAIDU_VOICES: Dict[str, int] = {
    "Xiaomei": 0,
    "Xiaoyu": 1,
    "Happy": 3,
    "Ya": 4,
}

BAIDU_LANGUAGE = "zh-CN"

# Audio encoding 4 is raw 16 kHz 16-bit mono PCM
PCM_16K = 4
PCM_SAMPLE_RATE = 16000

# Seconds before expiry at which the token is considered stale
EXPIRY_MARGIN = 20


def mac_address() -> str:
    node = uuid.getnode()
    return ":".join(f"{(node >> shift) & 0xFF:02x}" for shift in range(40, -1, -8))


class BaiduTextToSpeech(TextToSpeechInterface):
    """
    Baidu implementation of the TextToSpeechInterface.

    Baidu offers a fixed set of Mandarin voices and no word timings. Access
    tokens are kept in a JSON file so every process shares the token the
    coordinating process obtained.
    """

    name = "baidu"

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        auth_url: str = "https://openapi.baidu.com/oauth/2.0/token",
        tts_url: str = "https://tsn.baidu.com/text2audio",
        token_file: Path = Path("baidu.json"),
        cuid: Optional[str] = None,
        buffer_size: int = 1024,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.auth_url = auth_url
        self.tts_url = tts_url
        self.token_file = Path(token_file)
        self.cuid = cuid or mac_address()
        self.buffer_size = buffer_size
        self.timeout = timeout
        self.transport = transport
        self.token: Dict[str, object] = {}

    @property
    def access_token(self) -> Optional[str]:
        if not self.token:
            self.load_token()
        return self.token.get("access_token")

    @property
    def expires_in(self) -> float:
        return float(self.token.get("expires_in", 0))

    def load_token(self) -> bool:
        if not self.token_file.exists():
            return False
        try:
            self.token = json.loads(self.token_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as error:
            logger.error(f"Could not read or parse {self.token_file}: {error}")
            return False
        return True

    def _token_params(self) -> Dict[str, str]:
        expires_at = float(self.token.get("expires_at", 0))
        if self.token.get("refresh_token") and expires_at and time.time() > expires_at:
            return {
                "grant_type": "refresh_token",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.token["refresh_token"],
            }
        return {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }

    def authenticate(self) -> Dict[str, object]:
        """
        Obtain or refresh the access token and persist it to the token file.

        Returns:
            Dict[str, object]: The token response with an added "expires_at"
        """
        if not self.token:
            self.load_token()

        with self._client() as client:
            response = client.get(self.auth_url, params=self._token_params())
            response.raise_for_status()
            token = response.json()
        if "access_token" not in token:
            raise SynthesisError(f"baidu authentication failed: {token}")

        token["expires_at"] = time.time() + float(token.get("expires_in", 0)) - EXPIRY_MARGIN
        self.token = token
        self.token_file.write_text(json.dumps(token, indent=2), encoding="utf-8")
        logger.info("Baidu access token refreshed")
        return token

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self.transport)

    def list_voices(self) -> Dict[str, List[str]]:
        return {BAIDU_LANGUAGE: list(BAIDU_VOICES)}

    def synthesize(self, text: str, voice: str, language: str) -> SynthesisStream:
        params = {
            "tex": text,
            "lan": "zh",
            "cuid": self.cuid,
            "ctp": 1,
            "tok": self.access_token,
            "per": BAIDU_VOICES.get(voice, 0),
            "aue": PCM_16K,
        }
        client = self._client()
        try:
            response = client.send(client.build_request("GET", self.tts_url, params=params), stream=True)
        except httpx.HTTPError as error:
            client.close()
            logger.error(f"Error synthesizing speech: {error}")
            raise SynthesisError(f"baidu synthesis failed: {error}") from error

        content_type = response.headers.get("content-type", "")
        if not content_type or "application/json" in content_type or response.status_code != 200:
            body = response.read()
            response.close()
            client.close()
            logger.error(f"Baidu returned an error: {body[:500]!r}")
            raise SynthesisError("baidu returned no audio")

        def audio() -> Iterator[bytes]:
            try:
                for chunk in response.iter_bytes(self.buffer_size):
                    yield chunk
            except httpx.HTTPError as error:
                logger.error(f"Error reading audio stream: {error}")
                raise SynthesisError(f"baidu audio stream failed: {error}") from error
            finally:
                response.close()
                client.close()

        return SynthesisStream(audio=audio(), sample_rate=PCM_SAMPLE_RATE, channels=1)
