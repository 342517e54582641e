"""Tests for the playback unit entry point."""

import subprocess
import sys

from speaker_worker.stream import EXIT_BAD_JOB, main


def test_missing_job():
    assert main([]) == EXIT_BAD_JOB


def test_malformed_job():
    assert main(['{"request": {"text": "hi"}}']) == EXIT_BAD_JOB


def test_runs_as_module():
    result = subprocess.run(
        [sys.executable, "-m", "speaker_worker.stream", "not json"],
        capture_output=True,
        timeout=30,
    )

    assert result.returncode == EXIT_BAD_JOB
    assert b"Invalid playback job" in result.stderr
