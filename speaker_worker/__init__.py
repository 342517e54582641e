"""Speech synthesis worker with cached cloud TTS and killable local playback."""

__version__ = "0.1.0"
