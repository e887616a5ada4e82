"""Shared test fixtures."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable

import pytest

SECOND = 1_000_000_000


@pytest.fixture
def write_file() -> Callable[..., Path]:
    """Write *content* to *path*, creating parents, optionally pinning its mtime."""

    def _write(path: Path, content: bytes | str = b"", *, mtime_s: int | None = None) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        data = content.encode("utf-8") if isinstance(content, str) else content
        path.write_bytes(data)
        if mtime_s is not None:
            os.utime(path, ns=(mtime_s * SECOND, mtime_s * SECOND))
        return path

    return _write


@pytest.fixture
def set_mtime() -> Callable[[Path, int], None]:
    def _set(path: Path, mtime_s: int) -> None:
        os.utime(path, ns=(mtime_s * SECOND, mtime_s * SECOND))

    return _set
