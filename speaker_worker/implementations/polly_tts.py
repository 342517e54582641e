"""
AWS Polly-based Text-to-Speech implementation for the speaker worker.
"""

import json
import logging
import threading
from typing import Dict, Iterator, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import SynthesisError
from ..interfaces.text_to_speech import SynthesisStream, TextToSpeechInterface
from ..models import WordTiming

logger = logging.getLogger(__name__)


class PollyTextToSpeech(TextToSpeechInterface):
    """
    AWS Polly-based implementation of the TextToSpeechInterface.

    Audio is requested as 16-bit PCM and streamed in chunks. Word timings
    come from a second request for Polly's word speech marks; each word ends
    where the next one starts and the last word ends with the audio.
    """

    name = "polly"

    # Seconds the word stream waits for the audio stream to report its length
    AUDIO_END_TIMEOUT = 60.0

    def __init__(
        self,
        engine: str = "neural",
        sample_rate: int = 16000,
        region_name: Optional[str] = None,
        profile_name: Optional[str] = None,
        buffer_size: int = 1024,
        client=None,
    ):
        """
        Initialize the Polly TTS component.

        Args:
            engine: Polly engine to use ("neural" or "standard", default: "neural")
            sample_rate: Audio sample rate in Hz (default: 16000)
            region_name: AWS region name (default: None, uses boto3 default)
            profile_name: AWS profile name (default: None, uses boto3 default)
            buffer_size: Size of each audio chunk in bytes (default: 1024)
            client: Preconfigured Polly client (default: None, creates one)
        """
        self.engine = engine
        self.sample_rate = sample_rate
        self.buffer_size = buffer_size

        if client is None:
            session = boto3.Session(profile_name=profile_name, region_name=region_name)
            client = session.client("polly")
        self.polly_client = client

    def list_voices(self) -> Dict[str, List[str]]:
        languages: Dict[str, List[str]] = {}
        kwargs = {"Engine": self.engine}

        while True:
            response = self.polly_client.describe_voices(**kwargs)
            for voice in response["Voices"]:
                languages.setdefault(voice["LanguageCode"], []).append(voice["Id"])

            next_token = response.get("NextToken")
            if not next_token:
                break
            kwargs["NextToken"] = next_token

        return languages

    def _request(self, text: str, voice: str, language: str, **kwargs):
        try:
            return self.polly_client.synthesize_speech(
                Engine=self.engine,
                LanguageCode=language,
                Text=text,
                TextType="text",
                VoiceId=voice,
                **kwargs,
            )
        except (BotoCoreError, ClientError) as error:
            logger.error(f"Error synthesizing speech: {error}")
            raise SynthesisError(f"polly synthesis failed: {error}") from error

    def synthesize(self, text: str, voice: str, language: str) -> SynthesisStream:
        response = self._request(
            text,
            voice,
            language,
            OutputFormat="pcm",
            SampleRate=str(self.sample_rate),
        )
        audio_done = threading.Event()
        audio_state = {"bytes": 0, "complete": False}

        def audio() -> Iterator[bytes]:
            stream = response["AudioStream"]
            try:
                chunk = stream.read(self.buffer_size)
                while chunk:
                    audio_state["bytes"] += len(chunk)
                    yield chunk
                    chunk = stream.read(self.buffer_size)
            except (BotoCoreError, ClientError) as error:
                logger.error(f"Error reading audio stream: {error}")
                raise SynthesisError(f"polly audio stream failed: {error}") from error
            else:
                audio_state["complete"] = True
            finally:
                stream.close()
                audio_done.set()

        def words() -> Iterator[WordTiming]:
            marks = self._speech_marks(text, voice, language)
            for current, following in zip(marks, marks[1:]):
                yield WordTiming(current[0], current[1], following[1])

            if marks:
                word, start = marks[-1]
                end = start
                if audio_done.wait(self.AUDIO_END_TIMEOUT) and audio_state["complete"]:
                    end = max(start, audio_state["bytes"] / (2 * self.sample_rate))
                yield WordTiming(word, start, end)

        return SynthesisStream(
            audio=audio(),
            words=words(),
            sample_rate=self.sample_rate,
            channels=1,
        )

    def _speech_marks(self, text: str, voice: str, language: str) -> List[tuple]:
        """
        Fetch word speech marks as (word, start seconds) pairs.

        A failure here only loses the timings, not the utterance.
        """
        try:
            response = self._request(
                text,
                voice,
                language,
                OutputFormat="json",
                SpeechMarkTypes=["word"],
            )
            body = response["AudioStream"].read().decode("utf-8")
        except (SynthesisError, BotoCoreError, ClientError) as error:
            logger.warning(f"Word timings unavailable: {error}")
            return []

        marks = []
        for line in body.splitlines():
            if not line.strip():
                continue
            mark = json.loads(line)
            if mark.get("type") == "word":
                marks.append((mark["value"], mark["time"] / 1000.0))
        return marks
