"""
Entry point of the isolated playback unit.

Runs as its own process so the coordinator can kill it mid-utterance: the
provider download, the cache tee and the device output all block, and a
separate process is the only thing that can be stopped immediately no
matter where it is blocked. The outcome is reported by exit status only.

Usage:
    python -m speaker_worker.stream '<playback job json>'
"""

import logging
import sys
import wave
from typing import List, Optional

from pydantic import ValidationError

from .config import Settings
from .errors import SpeakerError
from .models import PlaybackJob

EXIT_OK = 0
EXIT_BAD_JOB = 2
EXIT_SYNTHESIS_FAILED = 3
EXIT_PLAYBACK_FAILED = 4

logger = logging.getLogger("speaker_worker.stream")


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    settings = Settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        job = PlaybackJob.model_validate_json(argv[0])
    except (IndexError, ValidationError) as error:
        logger.error(f"Invalid playback job: {error}")
        return EXIT_BAD_JOB

    # Imported here so a bad job is reported without touching the audio device
    import sounddevice as sd

    from .playback import run_job

    try:
        run_job(job, settings)
    except SpeakerError as error:
        logger.error(f"Synthesis failed: {error}")
        return EXIT_SYNTHESIS_FAILED
    except (sd.PortAudioError, wave.Error, OSError) as error:
        logger.error(f"Playback failed: {error}")
        return EXIT_PLAYBACK_FAILED

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
