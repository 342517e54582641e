"""Disk cache of synthesized audio for the speaker worker.

Entries are keyed by the request fingerprint:

    cache/
    ├── 3f786850e387550fdab836ed7e6dc881de23001b                  # WAV audio
    ├── 3f786850e387550fdab836ed7e6dc881de23001b_timings.json     # word timings
    └── 89e6c98d92887913cadf06b2adb97f26cde4849b.k2j4h1.part      # write in progress

Every write goes to a ``.part`` file first and is renamed into place when
complete, so readers never see a partial entry. Concurrent writers of the
same key are not locked against each other; the last rename wins.
"""

import json
import logging
import os
import shutil
import tempfile
import wave
from pathlib import Path
from typing import Iterable, List, Optional

from .errors import CacheEntryNotFound, InvalidCacheKeyError
from .models import WordTiming

logger = logging.getLogger(__name__)

SAMPLE_WIDTH = 2


def align_frames(remainder: bytes, chunk: bytes, frame_size: int):
    """
    Join a leftover partial frame with a new chunk.

    Returns:
        Tuple[bytes, bytes]: (whole frames, new leftover)
    """
    data = remainder + chunk
    whole = len(data) - len(data) % frame_size
    return data[:whole], data[whole:]


class AudioCacheWriter:
    """Streams PCM into a WAV temp file and publishes it on commit."""

    def __init__(self, cache: "ContentCache", key: str, sample_rate: int, channels: int = 1):
        self.cache = cache
        self.key = key
        self.frame_size = SAMPLE_WIDTH * channels
        self._remainder = b""
        self._committed = False

        handle, name = tempfile.mkstemp(prefix=f"{key}.", suffix=ContentCache.PARTIAL_SUFFIX, dir=cache.cache_dir)
        self.temp_path = Path(name)
        self._file = os.fdopen(handle, "wb")
        self._wav = wave.open(self._file, "wb")
        self._wav.setnchannels(channels)
        self._wav.setsampwidth(SAMPLE_WIDTH)
        self._wav.setframerate(sample_rate)

    def write(self, chunk: bytes) -> None:
        frames, self._remainder = align_frames(self._remainder, chunk, self.frame_size)
        if frames:
            self._wav.writeframes(frames)

    def commit(self) -> Path:
        self._wav.close()
        self._file.close()
        path = self.cache.path_for(self.key)
        os.replace(self.temp_path, path)
        self._committed = True
        return path

    def discard(self) -> None:
        if self._committed:
            return
        try:
            self._wav.close()
        except (OSError, wave.Error):
            pass
        self._file.close()
        self.temp_path.unlink(missing_ok=True)

    def __enter__(self) -> "AudioCacheWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.commit()
        else:
            self.discard()


class ContentCache:
    """Directory-backed store of audio and word timings keyed by fingerprint."""

    TIMINGS_SUFFIX = "_timings.json"
    PARTIAL_SUFFIX = ".part"

    def __init__(self, cache_dir: Path) -> None:
        self.cache_dir = Path(cache_dir)

    def create(self) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self._entry_path(key)

    def timings_path_for(self, key: str) -> Path:
        self._entry_path(key)
        return self._entry_path(f"{key}{self.TIMINGS_SUFFIX}")

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def read(self, key: str) -> bytes:
        try:
            return self.path_for(key).read_bytes()
        except FileNotFoundError:
            raise CacheEntryNotFound(f"cache entry not found: {key}") from None

    def write(self, key: str, data: bytes) -> None:
        self._write_atomic(self.path_for(key), data)

    def open_writer(self, key: str, sample_rate: int, channels: int = 1) -> AudioCacheWriter:
        """Open a streaming WAV writer; use as a context manager."""
        self._entry_path(key)
        self.create()
        return AudioCacheWriter(self, key, sample_rate, channels)

    def read_timings(self, key: str) -> List[WordTiming]:
        try:
            raw = self.timings_path_for(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            raise CacheEntryNotFound(f"timings not found: {key}") from None
        return [WordTiming(word, float(start), float(end)) for word, start, end in json.loads(raw)]

    def read_timings_if_present(self, key: str) -> Optional[List[WordTiming]]:
        try:
            return self.read_timings(key)
        except CacheEntryNotFound:
            return None

    def write_timings(self, key: str, timings: Iterable[WordTiming]) -> None:
        data = json.dumps([list(timing) for timing in timings])
        self._write_atomic(self.timings_path_for(key), data.encode("utf-8"))

    def delete_if_present(self, key: str) -> bool:
        return self._unlink(self.path_for(key))

    def delete_timings_if_present(self, key: str) -> bool:
        return self._unlink(self.timings_path_for(key))

    def delete_partials(self, key: str) -> int:
        """Remove writes for key that never completed (e.g. their writer was killed)."""
        self._entry_path(key)
        removed = 0
        if not self.cache_dir.is_dir():
            return removed
        for pattern in (f"{key}.*{self.PARTIAL_SUFFIX}", f"{key}{self.TIMINGS_SUFFIX}.*{self.PARTIAL_SUFFIX}"):
            for path in self.cache_dir.glob(pattern):
                removed += self._unlink(path)
        return removed

    def clear_all(self) -> None:
        """Remove every entry; a missing cache directory is left alone."""
        if not self.cache_dir.is_dir():
            return

        for path in self.cache_dir.iterdir():
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink(missing_ok=True)
        logger.info(f"Cleared cache at {self.cache_dir}")

    def _entry_path(self, name: str) -> Path:
        """
        Path of a file directly inside the cache directory.

        Raises:
            InvalidCacheKeyError: If name would address anything else
        """
        path = self.cache_dir / name
        if Path(os.path.abspath(path)).parent != Path(os.path.abspath(self.cache_dir)):
            raise InvalidCacheKeyError(f"cache key escapes {self.cache_dir}: {name!r}")
        return path

    def _write_atomic(self, path: Path, data: bytes) -> None:
        self.create()
        handle, name = tempfile.mkstemp(prefix=f"{path.name}.", suffix=self.PARTIAL_SUFFIX, dir=self.cache_dir)
        try:
            with os.fdopen(handle, "wb") as f:
                f.write(data)
            os.replace(name, path)
        except BaseException:
            Path(name).unlink(missing_ok=True)
            raise

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True
