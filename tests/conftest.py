"""Shared test fixtures."""

import io
from pathlib import Path
from unittest.mock import MagicMock

import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_manifest_path() -> Path:
    return FIXTURES_DIR / "sample_manifest.json"


class ChunkedReader(io.RawIOBase):
    """A byte stream whose read1() returns fixed-size chunks, like a pipe."""

    def __init__(self, data: bytes, chunk_size: int = 7):
        self._data = data
        self._pos = 0
        self._chunk_size = chunk_size

    def readable(self) -> bool:
        return True

    def read1(self, size: int = -1) -> bytes:
        n = self._chunk_size if size < 0 else min(size, self._chunk_size)
        chunk = self._data[self._pos:self._pos + n]
        self._pos += len(chunk)
        return chunk


def _make_proc(stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0) -> MagicMock:
    """Build a fake Popen object streaming the given output."""
    proc = MagicMock()
    proc.stdout = ChunkedReader(stdout)
    proc.stderr = ChunkedReader(stderr)
    proc.wait.return_value = returncode
    proc.poll.return_value = returncode
    return proc


@pytest.fixture
def make_proc():
    return _make_proc
